from __future__ import annotations

import logging
import os
import signal
import threading
import time

import RNS

from .config import HubRuntimeConfig
from .envelope import encode
from .filter import ContentFilter
from .rooms import RoomDirectory
from .router import MessageRouter, Outgoing
from .session import SessionRegistry
from .stats import StatsManager
from .util import expand_path, fmt_hash, fmt_link_id


class HubService:
    def __init__(self, config: HubRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger("roomrelay.hub")

        # Reticulum delivers link callbacks on its own threads. Every event
        # handler runs to completion under this lock, so the registry sees at
        # most one mutation in flight.
        self._state_lock = threading.RLock()

        self._shutdown = threading.Event()

        self.session_registry = SessionRegistry()
        self.room_directory = RoomDirectory(())
        self.content_filter = ContentFilter(
            config.censored_words,
            nick_max_chars=config.nick_max_chars,
            message_max_chars=config.message_max_chars,
        )
        self.stats_manager = StatsManager(self)
        self.router = MessageRouter(self)

        self.identity: RNS.Identity | None = None
        self.destination: RNS.Destination | None = None

        self._announce_thread: threading.Thread | None = None

    @property
    def hub_hash(self) -> bytes:
        if self.identity is None:
            return b""
        return bytes(self.identity.hash)

    def load_room_directory(self) -> RoomDirectory:
        """Load the private room list. Raises RoomListError on any problem."""
        path = expand_path(self.config.room_list_path) if self.config.room_list_path else ""
        directory = RoomDirectory.load(path)
        with self._state_lock:
            self.room_directory = directory
        return directory

    def start(self) -> None:
        self.stats_manager.set_start_time()

        # Fail before touching the network: never serve with an unknown room set.
        self.load_room_directory()

        self.log.info("Starting Reticulum")
        RNS.Reticulum(configdir=self.config.configdir, require_shared_instance=False)

        if not self.config.identity_path:
            raise RuntimeError("identity_path is not set")
        self.identity = self._load_identity(self.config.identity_path)

        parts = [p for p in str(self.config.dest_name).split(".") if p]
        if not parts:
            raise ValueError("dest_name must not be empty")
        app_name, aspects = parts[0], parts[1:]

        self.destination = RNS.Destination(
            self.identity,
            RNS.Destination.IN,
            RNS.Destination.SINGLE,
            app_name,
            *aspects,
        )
        self.destination.set_link_established_callback(self._on_link)

        if self.config.announce_on_start:
            self._announce_once()

        if self.config.announce_period_s and self.config.announce_period_s > 0:
            self._announce_thread = threading.Thread(
                target=self._announce_loop,
                name="roomrelay-announce",
                daemon=True,
            )
            self._announce_thread.start()

        self.log.info(
            "Hub running dest_name=%s dest_hash=%s private_rooms=%s",
            self.config.dest_name,
            fmt_hash(self.destination.hash, prefix=0),
            len(self.room_directory),
        )
        self.log.info(
            "Policy nick_max_chars=%s message_max_chars=%s censored_words=%s",
            self.config.nick_max_chars,
            self.config.message_max_chars,
            len(self.content_filter.words),
        )

    def _announce_once(self) -> None:
        if self.destination is None:
            return
        try:
            self.destination.announce(
                app_data=encode({"proto": "roomrelay", "v": 1, "hub": self.config.hub_name})
            )
            self.stats_manager.inc("announces")
        except Exception:
            self.log.exception("Announce failed")

    def _announce_loop(self) -> None:
        while not self._shutdown.is_set():
            period = float(self.config.announce_period_s)
            if period <= 0:
                time.sleep(1.0)
                continue

            if self._shutdown.wait(period):
                break
            self._announce_once()

    def run_forever(self) -> None:
        if self.destination is None:
            self.start()

        signal.signal(signal.SIGINT, lambda *_: self.stop())
        signal.signal(signal.SIGTERM, lambda *_: self.stop())

        while not self._shutdown.is_set():
            time.sleep(0.25)

    def stop(self) -> None:
        if self._shutdown.is_set():
            return
        self._shutdown.set()

        with self._state_lock:
            links = self.session_registry.clear_all()

        for link in links:
            try:
                link.teardown()
            except Exception:
                self.log.debug(
                    "Teardown failed link_id=%s", fmt_link_id(link), exc_info=True
                )

        self.log.info("Hub stopped\n%s", self.stats_manager.format_stats())

    def _load_identity(self, path: str) -> RNS.Identity:
        p = expand_path(path)
        if not os.path.exists(p):
            raise RuntimeError(f"Identity not found at {p}")
        ident = RNS.Identity.from_file(p)
        if ident is None:
            raise RuntimeError(f"Failed to load identity from {p}")
        return ident

    # Link callbacks

    def _on_link(self, link: RNS.Link) -> None:
        outgoing: Outgoing = []
        with self._state_lock:
            self.router.on_connect(link, outgoing)

        link.set_packet_callback(lambda data, pkt: self._on_packet(link, data))
        link.set_link_closed_callback(lambda closed_link: self._on_close(closed_link))

        self.log.info("Link established link_id=%s", fmt_link_id(link))
        self._flush(outgoing)

        # A close before the callback was installed would otherwise be lost.
        if link.status == RNS.Link.CLOSED:
            self._on_close(link)

    def _on_packet(self, link: RNS.Link, data: bytes) -> None:
        # Mutate state under the lock, but never hold it while sending.
        outgoing: Outgoing = []
        with self._state_lock:
            self.router.route_packet(link, data, outgoing)
        self._flush(outgoing)

    def _on_close(self, link: RNS.Link) -> None:
        outgoing: Outgoing = []
        with self._state_lock:
            cid = self.session_registry.connection_id_for(link)
            sess = self.router.on_disconnect(cid, outgoing)

        if sess is not None:
            self.log.info(
                "Link closed nick=%r room=%s link_id=%s",
                sess.nickname,
                sess.room or "-",
                sess.connection_id,
            )
        self._flush(outgoing)

    def _flush(self, outgoing: Outgoing) -> None:
        if self.log.isEnabledFor(logging.DEBUG) and outgoing:
            self.log.debug("Sending %d payload(s)", len(outgoing))

        for out_link, payload in outgoing:
            try:
                RNS.Packet(out_link, payload).send()
            except OSError as e:
                # Common failure mode on low-MTU links: packet too large.
                self.log.warning(
                    "Send failed link_id=%s bytes=%s err=%s",
                    fmt_link_id(out_link),
                    len(payload),
                    e,
                )
            except Exception:
                self.log.debug(
                    "Send failed link_id=%s bytes=%s",
                    fmt_link_id(out_link),
                    len(payload),
                    exc_info=True,
                )

