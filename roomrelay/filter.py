from __future__ import annotations

import re
from collections.abc import Iterable

from .constants import MESSAGE_MAX_CHARS, NICK_MAX_CHARS
from .envelope import now_ms

_WORD = re.compile(r"^\w+$")


class ContentFilter:
    """
    Censors and length-limits free text.

    Every configured word is matched whole and case-insensitively and
    replaced by asterisks of the same length. Asterisks never match a word,
    so censoring is idempotent. Truncation is applied after censoring.
    """

    def __init__(
        self,
        words: Iterable[str] = (),
        *,
        nick_max_chars: int = NICK_MAX_CHARS,
        message_max_chars: int = MESSAGE_MAX_CHARS,
    ) -> None:
        self.nick_max_chars = int(nick_max_chars)
        self.message_max_chars = int(message_max_chars)

        cleaned = sorted(
            {w.strip().lower() for w in words if _WORD.match(w.strip())},
            key=lambda w: (-len(w), w),
        )
        self.words: tuple[str, ...] = tuple(cleaned)
        self._pattern: re.Pattern[str] | None = None
        if cleaned:
            alternatives = "|".join(re.escape(w) for w in cleaned)
            self._pattern = re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)

    def censor(self, text: str) -> str:
        if self._pattern is None or not text:
            return text
        return self._pattern.sub(lambda m: "*" * len(m.group(0)), text)

    def clean_nickname(self, name: str) -> str:
        # Newlines and NUL break client UIs and log lines.
        s = "".join(" " if ch in "\r\n\x00" else ch for ch in name).strip()
        if not s:
            s = str(now_ms())
        return self.censor(s)[: self.nick_max_chars]

    def clean_message(self, text: str) -> str:
        return self.censor(text)[: self.message_max_chars]
