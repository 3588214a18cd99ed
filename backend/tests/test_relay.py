"""
Relay protocol engine tests, driven frame by frame without a socket
"""
import json

import pytest

from fakes import FakeConnection
from powerslides.services.relay import CLOSE_POLICY_VIOLATION, RelaySession, SessionState
from powerslides.services.room_registry import RoomRegistry

CODE = "GEZDGNBVGY3T"


def join(create_room=False, password=CODE, slide_id=CODE):
    message = {"type": "join", "slideId": slide_id, "password": password}
    if create_room:
        message["createRoom"] = True
    return json.dumps(message)


def state(current, total=10, **extra):
    payload = {
        "current": current,
        "total": total,
        "speakerNote": f"note {current}",
        "title": "Deck",
        "updatedAt": 1_700_000_000_000 + current,
        "presentationStartedAt": None,
    }
    payload.update(extra)
    return {"type": "state", "payload": payload}


def command(command_id="c1", command_type="next"):
    return {"type": "command", "payload": {"id": command_id, "type": command_type, "at": 1_700_000_000_500, "from": "evenhub"}}


@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def session_for(registry):
    def factory():
        connection = FakeConnection()
        return RelaySession(registry, connection), connection
    return factory


def test_publisher_join_creates_room(registry, session_for):
    session, connection = session_for()
    session.handle(join(create_room=True))
    assert session.state == SessionState.JOINED
    assert session.can_publish
    assert registry.get_room(CODE) is not None
    assert connection.is_open


def test_room_key_join(registry, session_for):
    session, _ = session_for()
    session.handle(json.dumps({"type": "join", "roomKey": CODE, "createRoom": True}))
    room = registry.get_room(CODE)
    assert room is not None and room.password == CODE


def test_controller_join_without_room_closes(registry, session_for):
    session, connection = session_for()
    session.handle(join())
    assert connection.close_code == CLOSE_POLICY_VIOLATION
    assert connection.close_reason == "Join rejected"
    assert session.state == SessionState.CLOSED
    assert registry.room_count == 0


def test_password_mismatch_closes_without_touching_room(registry, session_for):
    presenter, presenter_conn = session_for()
    presenter.handle(join(create_room=True))
    presenter.handle(json.dumps(state(1)))

    intruder, intruder_conn = session_for()
    intruder.handle(join(password="WRONG"))
    assert intruder_conn.close_reason == "Join rejected"

    room = registry.get_room(CODE)
    assert room.password == CODE
    assert room.last_state == state(1)["payload"]
    assert list(room.members) == [presenter_conn.connection_id]
    assert intruder_conn.sent == []


def test_rejected_joins_do_not_reveal_room_existence(session_for):
    presenter, _ = session_for()
    presenter.handle(join(create_room=True))

    wrong_password, wrong_password_conn = session_for()
    wrong_password.handle(join(password="WRONG"))
    missing_room, missing_room_conn = session_for()
    missing_room.handle(join(slide_id="ZZZZ", password="WRONG"))

    assert wrong_password_conn.close_code == missing_room_conn.close_code == CLOSE_POLICY_VIOLATION
    assert wrong_password_conn.close_reason == missing_room_conn.close_reason


def test_join_without_credential_closes(session_for):
    session, connection = session_for()
    session.handle(json.dumps({"type": "join", "slideId": CODE}))
    assert connection.close_code == CLOSE_POLICY_VIOLATION


@pytest.mark.parametrize("frame", [state(1), command()])
def test_message_before_join_closes(session_for, frame):
    session, connection = session_for()
    session.handle(json.dumps(frame))
    assert connection.close_code == CLOSE_POLICY_VIOLATION
    assert session.state == SessionState.CLOSED


@pytest.mark.parametrize("frame", ["not json", "[1, 2]", json.dumps({"type": "hello"}), b"\xff\xfe"])
def test_malformed_frames_are_dropped_without_closing(session_for, frame):
    session, connection = session_for()
    session.handle(frame)
    assert connection.is_open
    assert session.state == SessionState.UNJOINED

    session.handle(join(create_room=True))
    assert session.state == SessionState.JOINED


def test_invalid_state_payload_is_dropped(registry, session_for):
    session, connection = session_for()
    session.handle(join(create_room=True))
    session.handle(json.dumps({"type": "state", "payload": "nope"}))
    assert connection.is_open
    assert registry.get_room(CODE).last_state is None


def test_state_is_broadcast_verbatim_to_all_members(registry, session_for):
    presenter, presenter_conn = session_for()
    presenter.handle(join(create_room=True))
    controllers = [session_for() for _ in range(2)]
    for controller, _ in controllers:
        controller.handle(join())

    frame = state(3, custom="kept")
    presenter.handle(json.dumps(frame))

    assert presenter.is_publishing
    assert presenter_conn.sent == [frame]
    for _, connection in controllers:
        assert connection.sent == [frame]


def test_state_from_subscriber_is_dropped(registry, session_for):
    presenter, _ = session_for()
    presenter.handle(join(create_room=True))
    controller, controller_conn = session_for()
    controller.handle(join())

    controller.handle(json.dumps(state(9)))
    assert controller_conn.is_open
    assert registry.get_room(CODE).last_state is None
    assert registry.get_room(CODE).publisher is None


def test_late_joiner_gets_s1_then_s2(session_for):
    presenter, _ = session_for()
    presenter.handle(join(create_room=True))
    presenter.handle(json.dumps(state(1)))

    controller, controller_conn = session_for()
    controller.handle(join())
    presenter.handle(json.dumps(state(2)))

    assert [m["payload"]["current"] for m in controller_conn.sent] == [1, 2]


def test_command_forwarded_unmodified_to_publisher(session_for):
    presenter, presenter_conn = session_for()
    presenter.handle(join(create_room=True))
    presenter.handle(json.dumps(state(1)))
    controller, controller_conn = session_for()
    controller.handle(join())

    frame = command()
    controller.handle(json.dumps(frame))
    assert presenter_conn.of_type("command") == [frame]
    assert controller_conn.of_type("command") == []


def test_command_without_publisher_is_dropped(session_for):
    presenter, presenter_conn = session_for()
    presenter.handle(join(create_room=True))
    controller, controller_conn = session_for()
    controller.handle(join())

    controller.handle(json.dumps(command()))
    assert controller_conn.is_open
    assert presenter_conn.of_type("command") == []


def test_command_with_unknown_type_is_dropped(session_for):
    presenter, presenter_conn = session_for()
    presenter.handle(join(create_room=True))
    presenter.handle(json.dumps(state(1)))
    controller, controller_conn = session_for()
    controller.handle(join())

    controller.handle(json.dumps(command(command_type="explode")))
    assert controller_conn.is_open
    assert presenter_conn.of_type("command") == []


def test_publisher_leaving_stops_command_delivery(registry, session_for):
    presenter, presenter_conn = session_for()
    presenter.handle(join(create_room=True))
    presenter.handle(json.dumps(state(1)))
    controller, _ = session_for()
    controller.handle(join())

    presenter.close()
    controller.handle(json.dumps(command()))
    room = registry.get_room(CODE)
    assert room.publisher is None
    assert room.last_state == state(1)["payload"]
    assert presenter_conn.of_type("command") == []


def test_rejoin_is_idempotent_and_redelivers_state(registry, session_for):
    presenter, _ = session_for()
    presenter.handle(join(create_room=True))
    presenter.handle(json.dumps(state(4)))
    controller, controller_conn = session_for()
    controller.handle(join())
    controller.handle(join())

    assert registry.get_room(CODE).member_count == 2
    assert [m["payload"]["current"] for m in controller_conn.sent] == [4, 4]


def test_close_removes_member_and_empty_room(registry, session_for):
    session, _ = session_for()
    session.handle(join(create_room=True))
    session.close()
    session.close()
    assert registry.room_count == 0
    assert session.state == SessionState.CLOSED


def test_frames_after_close_are_ignored(session_for):
    session, connection = session_for()
    session.handle(join(create_room=True))
    session.close()
    session.handle(json.dumps(state(1)))
    assert connection.sent == []


def test_rooms_are_isolated(session_for):
    a, a_conn = session_for()
    a.handle(join(create_room=True, slide_id="AAAA", password="AAAA"))
    b, b_conn = session_for()
    b.handle(join(create_room=True, slide_id="BBBB", password="BBBB"))

    a.handle(json.dumps(state(1)))
    assert b_conn.sent == []
    assert a_conn.sent == [state(1)]
