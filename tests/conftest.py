import os

import pytest

from roomrelay.config import HubRuntimeConfig
from roomrelay.envelope import decode
from roomrelay.events import outbound_from_envelope
from roomrelay.rooms import RoomDirectory
from roomrelay.service import HubService


class FakeLink:
    """Stands in for RNS.Link; the router only needs a stable link_id."""

    def __init__(self) -> None:
        self.link_id = os.urandom(16)

    def __repr__(self) -> str:
        return f"FakeLink({self.link_id.hex()[:8]})"


class FakeIdentity:
    def __init__(self) -> None:
        self.hash = os.urandom(16)


@pytest.fixture
def hub() -> HubService:
    svc = HubService(HubRuntimeConfig(censored_words=("darn",)))
    svc.room_directory = RoomDirectory(["ABCDEFG", "LOBBY42"])
    svc.identity = FakeIdentity()
    return svc


def delivered(outgoing, link):
    """Outbound events queued for ``link``, in order."""
    return [outbound_from_envelope(decode(p)) for out_link, p in outgoing if out_link is link]


def recipients(outgoing):
    return [out_link for out_link, _ in outgoing]
