from __future__ import annotations

import os
from typing import Any


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def fmt_hash(h: Any, *, prefix: int = 12) -> str:
    if isinstance(h, (bytes, bytearray)):
        s = bytes(h).hex()
        return s if prefix <= 0 else s[: min(prefix, len(s))]
    return "-"


def fmt_link_id(link: Any) -> str:
    lid = getattr(link, "link_id", None)
    if isinstance(lid, (bytes, bytearray)):
        return bytes(lid).hex()
    h = getattr(link, "hash", None)
    if isinstance(h, (bytes, bytearray)):
        return bytes(h).hex()
    return "-"
