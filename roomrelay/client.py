"""Connecting side of the relay.

A RelayClient owns at most one live link to a hub. The caller is expected
to have started Reticulum (``RNS.Reticulum()``) in this process.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

import RNS
from cbor2 import CBORDecodeError

from .constants import CONNECT_TIMEOUT_S, PUBLIC_ROOM
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
    SendMessage,
    SetNickname,
    inbound_to_envelope,
    outbound_from_envelope,
)
from .rooms import normalize_room_code
from .util import fmt_hash


class ConnectTimeout(RuntimeError):
    """The hub link was not established in time."""


class ConnectError(RuntimeError):
    """The hub could not be reached."""


class RelayClient:
    def __init__(
        self,
        *,
        dest_name: str = "roomrelay.hub",
        identity: RNS.Identity | None = None,
        on_message: Callable[[Message], None] | None = None,
        on_invalid: Callable[[], None] | None = None,
        on_online_count: Callable[[int], None] | None = None,
        on_error: Callable[[str], None] | None = None,
    ) -> None:
        self.log = logging.getLogger("roomrelay.client")
        self.dest_name = dest_name
        self.identity = identity or RNS.Identity()
        self.on_message = on_message
        self.on_invalid = on_invalid
        self.on_online_count = on_online_count
        self.on_error = on_error

        self.link: RNS.Link | None = None
        self.room = ""
        self.nickname = ""
        self.online_count: int | None = None

    def connect(self, dest_hash: bytes, timeout: float = CONNECT_TIMEOUT_S) -> None:
        """
        Establish a link to the hub at ``dest_hash``.

        Raises ConnectTimeout when no link is up within ``timeout`` seconds.
        A previously active link is closed only once the new one is up.
        """
        deadline = time.monotonic() + float(timeout)

        if not RNS.Transport.has_path(dest_hash):
            RNS.Transport.request_path(dest_hash)
            while not RNS.Transport.has_path(dest_hash):
                if time.monotonic() >= deadline:
                    raise ConnectTimeout(f"no path to hub {fmt_hash(dest_hash)}")
                time.sleep(0.1)

        server_identity = RNS.Identity.recall(dest_hash)
        if server_identity is None:
            raise ConnectError(f"unknown hub identity {fmt_hash(dest_hash)}")

        parts = [p for p in self.dest_name.split(".") if p]
        destination = RNS.Destination(
            server_identity,
            RNS.Destination.OUT,
            RNS.Destination.SINGLE,
            parts[0],
            *parts[1:],
        )

        established = threading.Event()
        link = RNS.Link(
            destination,
            established_callback=lambda _l: established.set(),
            closed_callback=self._on_closed,
        )

        if not established.wait(max(0.0, deadline - time.monotonic())):
            link.teardown()
            raise ConnectTimeout(f"link to hub {fmt_hash(dest_hash)} timed out")

        previous = self.link
        if previous is not None and previous.status == RNS.Link.ACTIVE:
            previous.teardown()

        self.link = link
        link.set_packet_callback(lambda data, _pkt: self.handle_payload(data))
        link.identify(self.identity)
        self.log.info("Connected to hub %s", fmt_hash(dest_hash))

    def close(self) -> None:
        if self.link is not None:
            self.link.teardown()
            self.link = None

    def _on_closed(self, link: RNS.Link) -> None:
        if link is self.link:
            self.log.info("Hub link closed")
            self.link = None

    # Requests

    def join_public(self) -> None:
        self.room = PUBLIC_ROOM
        self.send(JoinPublic())

    def join_private(self, code: str) -> None:
        # Optimistic; cleared again if the hub answers INVALID.
        self.room = normalize_room_code(code)
        self.send(JoinPrivate(code=code))

    def set_nickname(self, nickname: str) -> None:
        self.nickname = nickname
        self.send(SetNickname(nickname=nickname))

    def send_message(self, text: str) -> None:
        self.send(SendMessage(text=text))

    def send(self, event: InboundEvent) -> None:
        if self.link is None:
            raise ConnectError("not connected")
        payload = encode(inbound_to_envelope(event, src=bytes(self.identity.hash)))
        RNS.Packet(self.link, payload).send()

    # Hub events

    def handle_payload(self, data: bytes) -> None:
        try:
            env = decode(data)
            validate_envelope(env)
            event = outbound_from_envelope(env)
        except (CBORDecodeError, EventError, TypeError, ValueError) as e:
            self.log.debug("Ignoring bad packet from hub bytes=%s err=%s", len(data), e)
            return

        if isinstance(event, Message):
            # Leave notices are broadcast hub-wide; keep only our room.
            if event.room != self.room:
                return
            if self.on_message is not None:
                self.on_message(event)
        elif isinstance(event, Invalid):
            self.room = ""
            self.log.warning("Invalid room code")
            if self.on_invalid is not None:
                self.on_invalid()
        elif isinstance(event, OnlineCount):
            self.online_count = event.count
            if self.on_online_count is not None:
                self.on_online_count(event.count)
        elif isinstance(event, Error):
            self.log.warning("Hub error: %s", event.text)
            if self.on_error is not None:
                self.on_error(event.text)
