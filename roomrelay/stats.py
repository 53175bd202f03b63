"""Statistics tracking and reporting for the relay hub."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .service import HubService


class StatsManager:
    """
    Lifetime counters for the hub.

    Tracks:
    - Bytes and packets in/out
    - Connects and disconnects
    - Room joins (valid and invalid) and nickname changes
    - Messages forwarded or dropped
    - Presence notices and online-count broadcasts
    - Errors sent and announces
    """

    def __init__(self, hub: HubService) -> None:
        self.hub = hub

        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "bytes_in": 0,
            "bytes_out": 0,
            "pkts_in": 0,
            "pkts_bad": 0,
            "connects": 0,
            "disconnects": 0,
            "joins": 0,
            "joins_invalid": 0,
            "nicks": 0,
            "msgs_forwarded": 0,
            "msgs_dropped": 0,
            "join_notices": 0,
            "leave_notices": 0,
            "online_counts": 0,
            "errors_sent": 0,
            "announces": 0,
        }

    def set_start_time(self) -> None:
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        with self.hub._state_lock:
            self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def get(self, key: str) -> int:
        with self.hub._state_lock:
            return int(self._counters.get(key, 0))

    def format_stats(self) -> str:
        """Format current statistics as a human-readable string."""
        from . import __version__

        started = self.started_monotonic
        uptime_s = (time.monotonic() - started) if started is not None else 0.0

        with self.hub._state_lock:
            s = self.hub.session_registry.get_stats()
            c = dict(self._counters)
            private_rooms = len(self.hub.room_directory)

        lines: list[str] = []
        lines.append(f"roomrelay {__version__} stats")
        lines.append(f"uptime_s={uptime_s:.1f}")
        lines.append(
            f"clients_total={s['total']} clients_joined={s['joined']} "
            f"clients_named={s['named']} active_rooms={s['rooms']} "
            f"private_rooms={private_rooms}"
        )
        lines.append(
            "io: pkts_in={} pkts_bad={} bytes_in={} bytes_out={}".format(
                c.get("pkts_in", 0),
                c.get("pkts_bad", 0),
                c.get("bytes_in", 0),
                c.get("bytes_out", 0),
            )
        )
        lines.append(
            "sessions: connects={} disconnects={} joins={} joins_invalid={} nicks={}".format(
                c.get("connects", 0),
                c.get("disconnects", 0),
                c.get("joins", 0),
                c.get("joins_invalid", 0),
                c.get("nicks", 0),
            )
        )
        lines.append(
            "events: msgs_fwd={} msgs_dropped={} join_notices={} leave_notices={} "
            "online_counts={} errors_sent={} announces={}".format(
                c.get("msgs_forwarded", 0),
                c.get("msgs_dropped", 0),
                c.get("join_notices", 0),
                c.get("leave_notices", 0),
                c.get("online_counts", 0),
                c.get("errors_sent", 0),
                c.get("announces", 0),
            )
        )
        return "\n".join(lines)
