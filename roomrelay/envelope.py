from __future__ import annotations

import os
import time

import cbor2

from .constants import (
    K_BODY,
    K_ID,
    K_KIND,
    K_NICK,
    K_ROOM,
    K_SRC,
    K_T,
    K_TS,
    K_V,
    RELAY_VERSION,
)


def encode(env: dict) -> bytes:
    return cbor2.dumps(env)


def decode(data: bytes):
    return cbor2.loads(data)


def now_ms() -> int:
    return int(time.time() * 1000)


def msg_id() -> bytes:
    return os.urandom(8)


def make_envelope(
    msg_type: int,
    *,
    src: bytes,
    room: str | None = None,
    body=None,
    nick: str | None = None,
    kind: str | None = None,
    mid: bytes | None = None,
    ts: int | None = None,
) -> dict:
    env: dict[int, object] = {
        K_V: RELAY_VERSION,
        K_T: int(msg_type),
        K_ID: mid or msg_id(),
        K_TS: ts or now_ms(),
        K_SRC: src,
    }
    if room is not None:
        env[K_ROOM] = room
    if body is not None:
        env[K_BODY] = body
    if nick is not None:
        env[K_NICK] = nick
    if kind is not None:
        env[K_KIND] = kind
    return env


def validate_envelope(env: dict) -> None:
    if not isinstance(env, dict):
        raise TypeError("envelope must be a CBOR map (dict)")

    for k in env.keys():
        if not isinstance(k, int):
            raise TypeError("envelope keys must be integers")
        if k < 0:
            raise ValueError("envelope keys must be unsigned integers")

    for k in (K_V, K_T, K_ID, K_TS, K_SRC):
        if k not in env:
            raise ValueError(f"missing envelope key {k}")

    v = env[K_V]
    if not isinstance(v, int):
        raise TypeError("protocol version must be an integer")
    if v != RELAY_VERSION:
        raise ValueError(f"unsupported version {v}")

    if not isinstance(env[K_T], int):
        raise TypeError("message type must be an integer")

    if not isinstance(env[K_ID], (bytes, bytearray)):
        raise TypeError("message id must be bytes")

    ts = env[K_TS]
    if not isinstance(ts, int):
        raise TypeError("timestamp must be an integer")
    if ts < 0:
        raise ValueError("timestamp must be unsigned")

    if not isinstance(env[K_SRC], (bytes, bytearray)):
        raise TypeError("sender identity must be bytes")

    # Empty rooms are legal on the wire; the router decides what they mean.
    if K_ROOM in env and not isinstance(env[K_ROOM], str):
        raise TypeError("room name must be a string")

    if K_NICK in env and not isinstance(env[K_NICK], str):
        raise TypeError("nickname must be a string")

    if K_KIND in env and not isinstance(env[K_KIND], str):
        raise TypeError("message kind must be a string")
