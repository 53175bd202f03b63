"""Typed relay events.

Every packet that crosses a link is one of a closed set of events. Inbound
events come from clients; outbound events are produced by the hub. Each
variant maps to exactly one envelope type with a fixed field set.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .constants import (
    K_BODY,
    K_KIND,
    K_NICK,
    K_ROOM,
    K_T,
    KIND_JOIN,
    KIND_LEAVE,
    T_ERROR,
    T_INVALID,
    T_JOIN_PRIVATE,
    T_JOIN_PUBLIC,
    T_MESSAGE,
    T_NICK,
    T_ONLINE_COUNT,
    T_SEND,
)
from .envelope import make_envelope


class EventError(ValueError):
    """Raised when a validated envelope does not form a known event."""


@dataclass(frozen=True)
class JoinPrivate:
    code: str


@dataclass(frozen=True)
class JoinPublic:
    pass


@dataclass(frozen=True)
class SetNickname:
    nickname: str


@dataclass(frozen=True)
class SendMessage:
    text: str


InboundEvent = Union[JoinPrivate, JoinPublic, SetNickname, SendMessage]


@dataclass(frozen=True)
class Invalid:
    pass


@dataclass(frozen=True)
class Message:
    """Chat or presence message. ``kind`` is None for plain chat."""

    text: str
    room: str
    nickname: str | None = None
    kind: str | None = None


@dataclass(frozen=True)
class OnlineCount:
    count: int


@dataclass(frozen=True)
class Error:
    text: str


OutboundEvent = Union[Invalid, Message, OnlineCount, Error]


def _str_field(env: dict, key: int, what: str) -> str:
    value = env.get(key)
    if not isinstance(value, str):
        raise EventError(f"{what} must be a string")
    return value


def inbound_from_envelope(env: dict) -> InboundEvent:
    t = env.get(K_T)
    if t == T_JOIN_PRIVATE:
        return JoinPrivate(code=_str_field(env, K_BODY, "room code"))
    if t == T_JOIN_PUBLIC:
        return JoinPublic()
    if t == T_NICK:
        return SetNickname(nickname=_str_field(env, K_NICK, "nickname"))
    if t == T_SEND:
        return SendMessage(text=_str_field(env, K_BODY, "message text"))
    raise EventError(f"unknown event type {t}")


def inbound_to_envelope(event: InboundEvent, *, src: bytes) -> dict:
    if isinstance(event, JoinPrivate):
        return make_envelope(T_JOIN_PRIVATE, src=src, body=event.code)
    if isinstance(event, JoinPublic):
        return make_envelope(T_JOIN_PUBLIC, src=src)
    if isinstance(event, SetNickname):
        return make_envelope(T_NICK, src=src, nick=event.nickname)
    if isinstance(event, SendMessage):
        return make_envelope(T_SEND, src=src, body=event.text)
    raise TypeError(f"not an inbound event: {event!r}")


def outbound_to_envelope(event: OutboundEvent, *, src: bytes) -> dict:
    if isinstance(event, Invalid):
        return make_envelope(T_INVALID, src=src)
    if isinstance(event, Message):
        return make_envelope(
            T_MESSAGE,
            src=src,
            room=event.room,
            body=event.text,
            nick=event.nickname,
            kind=event.kind,
        )
    if isinstance(event, OnlineCount):
        return make_envelope(T_ONLINE_COUNT, src=src, body=int(event.count))
    if isinstance(event, Error):
        return make_envelope(T_ERROR, src=src, body=event.text)
    raise TypeError(f"not an outbound event: {event!r}")


def outbound_from_envelope(env: dict) -> OutboundEvent:
    t = env.get(K_T)
    if t == T_INVALID:
        return Invalid()
    if t == T_MESSAGE:
        kind = env.get(K_KIND)
        if kind is not None and kind not in (KIND_JOIN, KIND_LEAVE):
            raise EventError(f"unknown message kind {kind!r}")
        nick = env.get(K_NICK)
        return Message(
            text=_str_field(env, K_BODY, "message text"),
            room=_str_field(env, K_ROOM, "room"),
            nickname=nick if isinstance(nick, str) else None,
            kind=kind,
        )
    if t == T_ONLINE_COUNT:
        count = env.get(K_BODY)
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            raise EventError("online count must be an unsigned integer")
        return OnlineCount(count=count)
    if t == T_ERROR:
        return Error(text=_str_field(env, K_BODY, "error text"))
    raise EventError(f"unknown event type {t}")
