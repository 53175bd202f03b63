from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .util import fmt_link_id

if TYPE_CHECKING:
    import RNS


@dataclass
class Session:
    """Server-side state of one connected client."""

    connection_id: str
    link: RNS.Link
    room: str = ""
    nickname: str = ""

    @property
    def joined(self) -> bool:
        return bool(self.room)


class SessionRegistry:
    """
    Tracks every connected session, keyed by connection id.

    The registry does no locking of its own. All access goes through the
    hub's state lock, which serializes event handlers.
    """

    def __init__(self) -> None:
        self.log = logging.getLogger("roomrelay.session")
        self.sessions: dict[str, Session] = {}

    @staticmethod
    def connection_id_for(link: RNS.Link) -> str:
        lid = fmt_link_id(link)
        if lid == "-":
            return f"obj-{id(link):x}"
        return lid

    def register(self, link: RNS.Link) -> Session:
        """Create a session for a freshly established link."""
        cid = self.connection_id_for(link)
        existing = self.sessions.get(cid)
        if existing is not None:
            self.log.warning("Link registered twice link_id=%s; replacing session", cid)

        sess = Session(connection_id=cid, link=link)
        self.sessions[cid] = sess
        self.log.info("Session created link_id=%s", cid)
        return sess

    def find(self, connection_id: str) -> Session | None:
        return self.sessions.get(connection_id)

    def find_by_link(self, link: RNS.Link) -> Session | None:
        return self.sessions.get(self.connection_id_for(link))

    def remove(self, connection_id: str) -> Session | None:
        """Drop a session. Removing an unknown id is a no-op."""
        sess = self.sessions.pop(connection_id, None)
        if sess is not None:
            self.log.info(
                "Session removed link_id=%s nick=%r room=%s",
                connection_id,
                sess.nickname,
                sess.room or "-",
            )
        return sess

    def all(self) -> list[Session]:
        return list(self.sessions.values())

    def count(self) -> int:
        return len(self.sessions)

    def clear_all(self) -> list[RNS.Link]:
        """Clear all sessions and return their links for teardown."""
        links = [s.link for s in self.sessions.values()]
        self.sessions.clear()
        return links

    def get_stats(self) -> dict[str, Any]:
        total = len(self.sessions)
        joined = sum(1 for s in self.sessions.values() if s.joined)
        named = sum(1 for s in self.sessions.values() if s.nickname)
        rooms = {s.room for s in self.sessions.values() if s.room}
        return {
            "total": total,
            "joined": joined,
            "named": named,
            "rooms": len(rooms),
        }
