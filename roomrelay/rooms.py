"""Private room directory.

The directory is the read-only set of room codes a client may join with
JOIN_PRIVATE. It is loaded once at startup from a human-edited file and
never changes afterwards; a missing or malformed file is fatal.

The file is TOML unless its name ends in ``.json``::

    private = ["ABCDEFG", "LOBBY42"]
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable

import tomlkit
from tomlkit.exceptions import TOMLKitError

from .constants import ROOM_CODE_LEN

log = logging.getLogger("roomrelay.rooms")


class RoomListError(RuntimeError):
    """The room list could not be loaded. The hub must not start."""


def normalize_room_code(code: str) -> str:
    """Uppercase ``code`` and keep its first seven characters.

    Uppercasing happens before truncation because some characters expand
    when uppercased; the other order would not be idempotent.
    """
    return code.upper()[:ROOM_CODE_LEN]


class RoomDirectory:
    """Immutable set of valid private room codes."""

    def __init__(self, codes: Iterable[str]) -> None:
        self._codes: frozenset[str] = frozenset(str(c) for c in codes)

    def __len__(self) -> int:
        return len(self._codes)

    def __contains__(self, code: object) -> bool:
        return code in self._codes

    @property
    def codes(self) -> frozenset[str]:
        return self._codes

    def is_valid_private_room(self, code: str) -> bool:
        """``code`` must already be normalized by the caller."""
        return code in self._codes

    @classmethod
    def load(cls, path: str) -> RoomDirectory:
        if not path:
            raise RoomListError("room list path is not set")
        if not os.path.exists(path):
            raise RoomListError(f"room list not found: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise RoomListError(f"failed to read room list {path}: {e}") from e

        try:
            if path.lower().endswith(".json"):
                data = json.loads(text)
            else:
                data = tomlkit.parse(text).unwrap()
        except (json.JSONDecodeError, TOMLKitError) as e:
            raise RoomListError(f"failed to parse room list {path}: {e}") from e

        if not isinstance(data, dict):
            raise RoomListError(f"room list {path}: top level must be a table")
        private = data.get("private")
        if not isinstance(private, list):
            raise RoomListError(f"room list {path}: 'private' must be a list")
        for entry in private:
            if not isinstance(entry, str):
                raise RoomListError(
                    f"room list {path}: room codes must be strings, got {entry!r}"
                )
            if entry != normalize_room_code(entry):
                # Still loaded as-is; such an entry can never be joined.
                log.warning(
                    "Room code %r is not uppercase/%d chars; it can never match",
                    entry,
                    ROOM_CODE_LEN,
                )

        directory = cls(private)
        log.info("Loaded %d private room(s) from %s", len(directory), path)
        return directory
