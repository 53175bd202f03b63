from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, assert_never

from cbor2 import CBORDecodeError

from .constants import KIND_JOIN, KIND_LEAVE, PUBLIC_ROOM
from .envelope import decode, encode, validate_envelope
from .events import (
    Error,
    EventError,
    InboundEvent,
    Invalid,
    JoinPrivate,
    JoinPublic,
    Message,
    OnlineCount,
    OutboundEvent,
    SendMessage,
    SetNickname,
    inbound_from_envelope,
    outbound_to_envelope,
)
from .rooms import normalize_room_code
from .session import Session

if TYPE_CHECKING:
    import RNS

    from .service import HubService

Outgoing = list[tuple["RNS.Link", bytes]]

LEAVE_TEXT = "A user left the room."


def join_text(nickname: str) -> str:
    return f"The user {nickname} joined the room."


class MessageRouter:
    """
    Session state machine and fan-out for the relay hub.

    This class is responsible for:
    - Decoding and validating incoming packets into typed events
    - Moving sessions from unjoined to joined
    - Choosing the delivery set for every outbound event
    - Presence: join/leave notices and online counts

    Join notices and chat are filtered by room here. Leave notices and
    online counts go to every session; clients drop leave notices for rooms
    they are not in.

    Every method must be called with the hub state lock held. Nothing is
    sent directly: payloads are appended to ``outgoing`` and the caller
    sends them after releasing the lock.
    """

    def __init__(self, hub: HubService) -> None:
        self.hub = hub
        self.log = logging.getLogger("roomrelay.router")

    # Transport lifecycle

    def on_connect(self, link: RNS.Link, outgoing: Outgoing) -> Session:
        sess = self.hub.session_registry.register(link)
        self.hub.stats_manager.inc("connects")
        self._broadcast_online_count(outgoing)
        return sess

    def on_disconnect(self, connection_id: str, outgoing: Outgoing) -> Session | None:
        """
        Tear down a session. Safe to call more than once.

        The leave notice goes out only when the session had both a room and
        a nickname; a session that never identified itself leaves silently.
        """
        registry = self.hub.session_registry
        sess = registry.find(connection_id)
        if sess is None:
            return None

        if sess.room and sess.nickname:
            self.log.info(
                "LEAVE nick=%r room=%s link_id=%s", sess.nickname, sess.room, connection_id
            )
            self._fan_out(
                outgoing,
                (s for s in registry.all() if s.connection_id != connection_id),
                Message(text=LEAVE_TEXT, room=sess.room, kind=KIND_LEAVE),
            )
            self.hub.stats_manager.inc("leave_notices")

        registry.remove(connection_id)
        self.hub.stats_manager.inc("disconnects")
        self._broadcast_online_count(outgoing)
        return sess

    # Inbound packets

    def route_packet(self, link: RNS.Link, data: bytes, outgoing: Outgoing) -> None:
        """Main entry point for an incoming packet."""
        sess = self.hub.session_registry.find_by_link(link)
        if sess is None:
            return

        self.hub.stats_manager.inc("pkts_in")
        self.hub.stats_manager.inc("bytes_in", len(data))

        try:
            env = decode(data)
            validate_envelope(env)
            event = inbound_from_envelope(env)
        except (CBORDecodeError, EventError, TypeError, ValueError) as e:
            self._reject(sess, outgoing, data, e)
            return

        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "RX link_id=%s event=%s bytes=%s",
                sess.connection_id,
                type(event).__name__,
                len(data),
            )

        self.handle_event(sess, event, outgoing)

    def handle_event(self, sess: Session, event: InboundEvent, outgoing: Outgoing) -> None:
        if isinstance(event, JoinPrivate):
            self._handle_join_private(sess, event, outgoing)
        elif isinstance(event, JoinPublic):
            self._handle_join_public(sess, outgoing)
        elif isinstance(event, SetNickname):
            self._handle_nickname(sess, event, outgoing)
        elif isinstance(event, SendMessage):
            self._handle_message(sess, event, outgoing)
        else:
            assert_never(event)

    def _handle_join_private(
        self, sess: Session, event: JoinPrivate, outgoing: Outgoing
    ) -> None:
        code = normalize_room_code(event.code)
        if not self.hub.room_directory.is_valid_private_room(code):
            self.hub.stats_manager.inc("joins_invalid")
            self.log.info(
                "JOIN rejected code=%r link_id=%s", code, sess.connection_id
            )
            self._queue_event(outgoing, sess.link, Invalid())
            return

        self._enter_room(sess, code, outgoing)

    def _handle_join_public(self, sess: Session, outgoing: Outgoing) -> None:
        self._enter_room(sess, PUBLIC_ROOM, outgoing)

    def _enter_room(self, sess: Session, room: str, outgoing: Outgoing) -> None:
        sess.room = room
        self.hub.stats_manager.inc("joins")
        self.log.info(
            "JOIN nick=%r room=%s link_id=%s", sess.nickname, room, sess.connection_id
        )
        # Without a nickname the notice waits for the NICK event.
        if sess.nickname:
            self._announce_join(sess, outgoing)

    def _handle_nickname(
        self, sess: Session, event: SetNickname, outgoing: Outgoing
    ) -> None:
        nickname = self.hub.content_filter.clean_nickname(event.nickname)
        old = sess.nickname
        sess.nickname = nickname
        self.hub.stats_manager.inc("nicks")
        self.log.info(
            "NICK old=%r new=%r room=%s link_id=%s",
            old,
            nickname,
            sess.room or "-",
            sess.connection_id,
        )
        if sess.room:
            self._announce_join(sess, outgoing)

    def _handle_message(
        self, sess: Session, event: SendMessage, outgoing: Outgoing
    ) -> None:
        if not event.text.strip():
            self.hub.stats_manager.inc("msgs_dropped")
            return
        if not sess.joined:
            # Unjoined sessions have no room to speak in.
            self.hub.stats_manager.inc("msgs_dropped")
            self.log.debug("Dropped message from unjoined link_id=%s", sess.connection_id)
            return

        text = self.hub.content_filter.clean_message(event.text)
        recipients = self._room_members(sess.room, exclude=sess)
        self._fan_out(
            outgoing,
            recipients,
            Message(text=text, room=sess.room, nickname=sess.nickname),
        )
        self.hub.stats_manager.inc("msgs_forwarded")

        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "Forwarded nick=%r room=%s recipients=%s chars=%s",
                sess.nickname,
                sess.room,
                len(recipients),
                len(text),
            )

    # Fan-out helpers

    def _announce_join(self, sess: Session, outgoing: Outgoing) -> None:
        self._fan_out(
            outgoing,
            self._room_members(sess.room, exclude=sess),
            Message(text=join_text(sess.nickname), room=sess.room, kind=KIND_JOIN),
        )
        self.hub.stats_manager.inc("join_notices")

    def _broadcast_online_count(self, outgoing: Outgoing) -> None:
        sessions = self.hub.session_registry.all()
        self._fan_out(outgoing, sessions, OnlineCount(count=len(sessions)))
        self.hub.stats_manager.inc("online_counts")

    def _room_members(self, room: str, *, exclude: Session) -> list[Session]:
        return [
            s
            for s in self.hub.session_registry.all()
            if s.room == room and s.connection_id != exclude.connection_id
        ]

    def _fan_out(
        self, outgoing: Outgoing, sessions: Iterable[Session], event: OutboundEvent
    ) -> None:
        payload = encode(outbound_to_envelope(event, src=self.hub.hub_hash))
        for s in sessions:
            self._queue_payload(outgoing, s.link, payload)

    def _queue_event(
        self, outgoing: Outgoing, link: RNS.Link, event: OutboundEvent
    ) -> None:
        payload = encode(outbound_to_envelope(event, src=self.hub.hub_hash))
        self._queue_payload(outgoing, link, payload)

    def _queue_payload(self, outgoing: Outgoing, link: RNS.Link, payload: bytes) -> None:
        self.hub.stats_manager.inc("bytes_out", len(payload))
        outgoing.append((link, payload))

    def _reject(
        self, sess: Session, outgoing: Outgoing, data: bytes, err: Exception
    ) -> None:
        self.hub.stats_manager.inc("pkts_bad")
        self.log.debug(
            "Bad packet link_id=%s bytes=%s err=%s", sess.connection_id, len(data), err
        )
        self.hub.stats_manager.inc("errors_sent")
        self._queue_event(outgoing, sess.link, Error(text=f"bad message: {err}"))
