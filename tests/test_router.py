from conftest import FakeLink, delivered, recipients

from roomrelay.constants import KIND_JOIN, KIND_LEAVE, PUBLIC_ROOM, T_NICK, T_SEND
from roomrelay.envelope import encode, make_envelope
from roomrelay.events import (
    Error,
    Invalid,
    JoinPrivate,
    JoinPublic,
    Message,
    OnlineCount,
    SendMessage,
    SetNickname,
    inbound_to_envelope,
)


def connect(hub):
    link = FakeLink()
    outgoing = []
    sess = hub.router.on_connect(link, outgoing)
    return link, sess


def send(hub, link, event):
    outgoing = []
    data = encode(inbound_to_envelope(event, src=b"peer"))
    hub.router.route_packet(link, data, outgoing)
    return outgoing


def disconnect(hub, sess):
    outgoing = []
    hub.router.on_disconnect(sess.connection_id, outgoing)
    return outgoing


def room_messages(outgoing, link):
    return [e for e in delivered(outgoing, link) if isinstance(e, Message)]


def test_connect_broadcasts_count_to_everyone(hub) -> None:
    a, _ = connect(hub)
    b = FakeLink()
    outgoing = []
    hub.router.on_connect(b, outgoing)
    assert sorted(recipients(outgoing), key=id) == sorted([a, b], key=id)
    assert delivered(outgoing, a) == [OnlineCount(count=2)]
    assert delivered(outgoing, b) == [OnlineCount(count=2)]


def test_public_join_then_nickname_announces_to_room_only(hub) -> None:
    a, sa = connect(hub)
    b, sb = connect(hub)
    c, sc = connect(hub)
    send(hub, a, JoinPublic())
    send(hub, a, SetNickname("alice"))
    send(hub, c, JoinPrivate("ABCDEFG"))

    assert send(hub, b, JoinPublic()) == []
    out = send(hub, b, SetNickname("bob"))

    assert delivered(out, a) == [
        Message(text="The user bob joined the room.", room=PUBLIC_ROOM, kind=KIND_JOIN)
    ]
    assert delivered(out, b) == []
    assert delivered(out, c) == []
    assert sb.room == PUBLIC_ROOM
    assert sb.nickname == "bob"


def test_join_with_nickname_already_set_announces_immediately(hub) -> None:
    a, _ = connect(hub)
    b, _ = connect(hub)
    send(hub, a, JoinPublic())
    send(hub, b, SetNickname("bob"))

    out = send(hub, b, JoinPublic())
    assert room_messages(out, a) == [
        Message(text="The user bob joined the room.", room=PUBLIC_ROOM, kind=KIND_JOIN)
    ]
    assert delivered(out, b) == []


def test_nickname_without_room_announces_nothing(hub) -> None:
    a, _ = connect(hub)
    b, _ = connect(hub)
    send(hub, a, JoinPublic())
    assert send(hub, b, SetNickname("bob")) == []


def test_private_code_is_normalized(hub) -> None:
    a, sa = connect(hub)
    out = send(hub, a, JoinPrivate("abcdefgh"))
    assert sa.room == "ABCDEFG"
    assert Invalid() not in delivered(out, a)


def test_invalid_code_only_tells_requester(hub) -> None:
    a, sa = connect(hub)
    b, sb = connect(hub)
    send(hub, b, JoinPrivate("ZZZZZZZ"))
    send(hub, a, SetNickname("alice"))

    out = send(hub, a, JoinPrivate("zzzzzzz"))
    assert out == [(a, out[0][1])]
    assert delivered(out, a) == [Invalid()]
    assert sa.room == ""


def test_invalid_code_leaves_existing_room_alone(hub) -> None:
    a, sa = connect(hub)
    send(hub, a, JoinPublic())
    out = send(hub, a, JoinPrivate("nope"))
    assert delivered(out, a) == [Invalid()]
    assert sa.room == PUBLIC_ROOM


def test_invalid_join_can_be_retried(hub) -> None:
    a, sa = connect(hub)
    for _ in range(5):
        assert delivered(send(hub, a, JoinPrivate("wrong")), a) == [Invalid()]
    send(hub, a, JoinPrivate("lobby42"))
    assert sa.room == "LOBBY42"


def test_switching_rooms_moves_the_session(hub) -> None:
    a, sa = connect(hub)
    b, _ = connect(hub)
    send(hub, a, JoinPublic())
    send(hub, b, JoinPublic())
    send(hub, a, JoinPrivate("ABCDEFG"))

    out = send(hub, b, SendMessage("anyone?"))
    assert delivered(out, a) == []


def test_message_goes_to_room_except_sender(hub) -> None:
    a, sa = connect(hub)
    b, _ = connect(hub)
    c, _ = connect(hub)
    d, _ = connect(hub)
    for link in (a, b, c):
        send(hub, link, JoinPrivate("ABCDEFG"))
    send(hub, d, JoinPublic())
    send(hub, a, SetNickname("alice"))

    out = send(hub, a, SendMessage("hello"))
    expected = Message(text="hello", room="ABCDEFG", nickname="alice")
    assert delivered(out, b) == [expected]
    assert delivered(out, c) == [expected]
    assert a not in recipients(out)
    assert d not in recipients(out)


def test_message_is_censored_and_truncated(hub) -> None:
    a, _ = connect(hub)
    b, _ = connect(hub)
    send(hub, a, JoinPublic())
    send(hub, b, JoinPublic())

    out = send(hub, a, SendMessage("darn " + "x" * 2000))
    (msg,) = delivered(out, b)
    assert msg.text.startswith("**** x")
    assert len(msg.text) == 1024
    assert msg.nickname == ""


def test_blank_message_is_dropped_silently(hub) -> None:
    a, _ = connect(hub)
    b, _ = connect(hub)
    send(hub, a, JoinPublic())
    send(hub, b, JoinPublic())
    assert send(hub, a, SendMessage("   ")) == []
    assert send(hub, a, SendMessage("")) == []
    assert hub.stats_manager.get("msgs_dropped") == 2


def test_message_from_unjoined_session_is_dropped(hub) -> None:
    a, _ = connect(hub)
    connect(hub)
    assert send(hub, a, SendMessage("hello?")) == []


def test_sender_never_receives_own_message(hub) -> None:
    links = [connect(hub)[0] for _ in range(4)]
    for link in links:
        send(hub, link, JoinPublic())
    for link in links:
        out = send(hub, link, SendMessage("ping"))
        assert link not in recipients(out)
        assert len(out) == len(links) - 1


def test_disconnect_with_room_and_nick_broadcasts_leave_to_everyone(hub) -> None:
    a, sa = connect(hub)
    b, _ = connect(hub)
    c, _ = connect(hub)
    send(hub, a, JoinPrivate("ABCDEFG"))
    send(hub, a, SetNickname("alice"))
    send(hub, c, JoinPublic())

    out = disconnect(hub, sa)
    leave = Message(text="A user left the room.", room="ABCDEFG", kind=KIND_LEAVE)
    # Global: b is unjoined and c sits in another room, both still get it.
    assert delivered(out, b) == [leave, OnlineCount(count=2)]
    assert delivered(out, c) == [leave, OnlineCount(count=2)]
    assert a not in recipients(out)
    assert hub.session_registry.find(sa.connection_id) is None


def test_disconnect_without_nickname_is_silent(hub) -> None:
    a, sa = connect(hub)
    b, _ = connect(hub)
    send(hub, a, JoinPublic())
    send(hub, b, JoinPublic())

    out = disconnect(hub, sa)
    assert delivered(out, b) == [OnlineCount(count=1)]


def test_disconnect_without_room_is_silent(hub) -> None:
    a, sa = connect(hub)
    b, _ = connect(hub)
    send(hub, a, SetNickname("alice"))

    out = disconnect(hub, sa)
    assert delivered(out, b) == [OnlineCount(count=1)]


def test_double_disconnect_is_a_noop(hub) -> None:
    a, sa = connect(hub)
    b, _ = connect(hub)
    send(hub, a, JoinPublic())
    send(hub, a, SetNickname("alice"))

    first = disconnect(hub, sa)
    second = disconnect(hub, sa)
    assert len(delivered(first, b)) == 2
    assert second == []
    assert hub.session_registry.count() == 1
    assert hub.stats_manager.get("disconnects") == 1


def test_disconnect_of_unknown_session_is_a_noop(hub) -> None:
    connect(hub)
    outgoing = []
    assert hub.router.on_disconnect("feedface", outgoing) is None
    assert outgoing == []


def test_online_count_after_connects_and_disconnects(hub) -> None:
    sessions = [connect(hub)[1] for _ in range(6)]
    last = None
    for sess in sessions[:4]:
        out = disconnect(hub, sess)
        counts = [e for e in delivered(out, sessions[5].link) if isinstance(e, OnlineCount)]
        last = counts[-1]
    assert last == OnlineCount(count=2)


def test_last_disconnect_sends_nothing(hub) -> None:
    _, sa = connect(hub)
    assert disconnect(hub, sa) == []


def test_packets_from_unknown_links_are_ignored(hub) -> None:
    stranger = FakeLink()
    assert send(hub, stranger, JoinPublic()) == []


def test_garbage_packet_gets_error_reply(hub) -> None:
    a, sa = connect(hub)
    b, _ = connect(hub)
    outgoing = []
    hub.router.route_packet(a, b"\xff\x00garbage", outgoing)
    assert recipients(outgoing) == [a]
    (err,) = delivered(outgoing, a)
    assert isinstance(err, Error)
    assert err.text.startswith("bad message")
    assert sa.room == ""
    assert hub.stats_manager.get("pkts_bad") == 1


def test_unknown_event_type_gets_error_reply(hub) -> None:
    a, _ = connect(hub)
    outgoing = []
    hub.router.route_packet(a, encode(make_envelope(99, src=b"p")), outgoing)
    (err,) = delivered(outgoing, a)
    assert isinstance(err, Error)


def test_wrong_body_type_gets_error_reply(hub) -> None:
    a, sa = connect(hub)
    outgoing = []
    env = make_envelope(T_NICK, src=b"p")
    hub.router.route_packet(a, encode(env), outgoing)
    (err,) = delivered(outgoing, a)
    assert isinstance(err, Error)
    assert sa.nickname == ""


def test_empty_nickname_gets_default(hub) -> None:
    a, sa = connect(hub)
    b, _ = connect(hub)
    send(hub, a, JoinPublic())
    send(hub, b, JoinPublic())
    out = send(hub, a, SetNickname(""))
    assert sa.nickname.isdigit()
    (msg,) = delivered(out, b)
    assert msg.text == f"The user {sa.nickname} joined the room."


def test_non_string_message_body_gets_error_reply(hub) -> None:
    a, _ = connect(hub)
    b, _ = connect(hub)
    send(hub, a, JoinPublic())
    send(hub, b, JoinPublic())
    outgoing = []
    hub.router.route_packet(a, encode(make_envelope(T_SEND, src=b"p", body=42)), outgoing)
    assert recipients(outgoing) == [a]
