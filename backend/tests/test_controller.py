"""
Remote controller tests against a fake relay socket
"""
import pytest

from fakes import FakeConnector, wait_for
from powerslides.config import settings
from powerslides.core.exceptions import ConfigurationError, ExpiredCodeError, InvalidCodeError
from powerslides.models.presentation import CommandType
from powerslides.services.pairing import create_pairing_session
from powerslides.services.peers.controller import CONNECTION_FAILED_MESSAGE, RemoteController

URL = "ws://relay.test/ws"
NOW = 1_700_000_000.0
NOW_MS = int(NOW * 1000)


def state(current=1, total=10, **extra):
    payload = {
        "current": current,
        "total": total,
        "speakerNote": "Intro",
        "title": "Deck",
        "updatedAt": NOW_MS,
        "presentationStartedAt": None,
    }
    payload.update(extra)
    return {"type": "state", "payload": payload}


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def received():
    return []


@pytest.fixture
async def controller(connector, received):
    controller = RemoteController(
        url=URL,
        on_state=received.append,
        loading_timeout=60,
        source_name="evenhub",
        connector=connector,
        clock=lambda: NOW,
    )
    yield controller
    await controller.disconnect()


async def paired(controller, connector):
    session = create_pairing_session(now=NOW)
    await controller.pair(session.code)
    await wait_for(lambda: controller.is_ready and connector.socket.of_type("join"))
    return session


async def test_pair_joins_as_subscriber(controller, connector):
    session = await paired(controller, connector)
    assert connector.socket.of_type("join") == [{
        "type": "join",
        "slideId": session.credential.slide_id,
        "password": session.credential.password,
    }]
    assert controller.credential == session.credential
    assert controller.loading


async def test_state_clears_loading_and_notifies(controller, connector, received):
    await paired(controller, connector)
    connector.socket.push(state(3))
    await wait_for(lambda: received)

    assert controller.state.current == 3
    assert controller.state.speaker_note == "Intro"
    assert not controller.loading
    assert received == [controller.state]


async def test_state_with_numeric_strings_is_normalized(controller, connector):
    await paired(controller, connector)
    connector.socket.push({
        "type": "state",
        "payload": {"current": "4", "total": "12", "updatedAt": str(NOW_MS), "speakerNote": 7},
    })
    await wait_for(lambda: controller.state is not None)

    assert controller.state.current == 4
    assert controller.state.total == 12
    assert controller.state.updated_at == NOW_MS
    assert controller.state.speaker_note is None


async def test_send_command(controller, connector):
    await paired(controller, connector)
    connector.socket.push(state())
    await wait_for(lambda: not controller.loading)

    command = await controller.next_slide()
    assert command is not None
    assert connector.socket.of_type("command") == [{
        "type": "command",
        "payload": {"id": command.id, "type": "next", "at": NOW_MS, "from": "evenhub"},
    }]
    assert controller.loading


async def test_commands_are_skipped_while_loading(controller, connector):
    await paired(controller, connector)
    connector.socket.push(state())
    await wait_for(lambda: not controller.loading)

    assert await controller.send_command("next") is not None
    assert await controller.send_command(CommandType.PREVIOUS) is None
    assert len(connector.socket.of_type("command")) == 1

    connector.socket.push(state(2))
    await wait_for(lambda: not controller.loading)
    assert await controller.previous_slide() is not None
    assert len(connector.socket.of_type("command")) == 2


async def test_loading_guard_times_out(connector):
    controller = RemoteController(url=URL, loading_timeout=0.01, connector=connector, clock=lambda: NOW)
    await paired(controller, connector)
    await wait_for(lambda: not controller.loading)

    assert await controller.start_presentation() is not None
    assert controller.loading
    await wait_for(lambda: not controller.loading)
    assert await controller.open_present() is not None
    await controller.disconnect()


async def test_command_skipped_when_not_ready(controller):
    assert await controller.send_command("next") is None


async def test_unknown_command_type_is_rejected(controller):
    with pytest.raises(ValueError):
        await controller.send_command("explode")


async def test_invalid_code_is_rejected_before_connecting(controller, connector):
    with pytest.raises(InvalidCodeError):
        await controller.pair("ABCD-EFGH")
    assert connector.calls == 0
    assert controller.socket is None


async def test_expired_code_is_rejected(connector):
    session = create_pairing_session(now=NOW - 10 * 60)
    controller = RemoteController(url=URL, connector=connector, clock=lambda: NOW)
    with pytest.raises(ExpiredCodeError):
        await controller.pair(session.code)
    assert connector.calls == 0


async def test_refresh_resends_join(controller, connector):
    await paired(controller, connector)
    connector.socket.push(state())
    await wait_for(lambda: not controller.loading)

    await controller.refresh()
    assert len(connector.socket.of_type("join")) == 2
    assert controller.loading

    connector.socket.push(state())
    await wait_for(lambda: not controller.loading)


async def test_presentation_duration(controller, connector):
    assert controller.presentation_duration_ms() is None

    await paired(controller, connector)
    connector.socket.push(state())
    await wait_for(lambda: controller.state is not None)
    assert controller.presentation_duration_ms() is None

    connector.socket.push(state(presentationStartedAt=NOW_MS - 5000))
    await wait_for(lambda: controller.state.presentation_started_at is not None)
    assert controller.presentation_duration_ms() == 5000
    assert controller.presentation_duration_ms(now=NOW + 1) == 6000


async def test_disconnect_clears_pairing_and_state(controller, connector):
    await paired(controller, connector)
    connector.socket.push(state())
    await wait_for(lambda: controller.state is not None)

    await controller.disconnect()
    assert controller.credential is None
    assert controller.state is None
    assert not controller.is_ready
    assert connector.socket.closed


async def test_rejoins_after_relay_drop(connector, monkeypatch):
    monkeypatch.setattr("powerslides.services.peers.reconnect.backoff_delay", lambda *args: 0)
    controller = RemoteController(url=URL, connector=connector, clock=lambda: NOW)
    await paired(controller, connector)
    first = connector.socket

    first.drop()
    await wait_for(lambda: connector.socket is not first and connector.socket.of_type("join"))
    assert connector.socket.of_type("join") == first.of_type("join")
    await controller.disconnect()


async def test_missing_relay_url(monkeypatch):
    monkeypatch.setattr(settings, "WEBSOCKET_URL", None)
    controller = RemoteController()
    with pytest.raises(ConfigurationError):
        await controller.pair(create_pairing_session().code)


async def test_relay_drop_surfaces_error_until_next_state(connector, monkeypatch):
    monkeypatch.setattr("powerslides.services.peers.reconnect.backoff_delay", lambda *args: 0)
    errors = []
    controller = RemoteController(url=URL, on_error=errors.append, connector=connector, clock=lambda: NOW)
    await paired(controller, connector)
    connector.socket.push(state())
    await wait_for(lambda: controller.state is not None)
    assert controller.error is None

    first = connector.socket
    first.drop()
    await wait_for(lambda: controller.error is not None)
    assert controller.error == CONNECTION_FAILED_MESSAGE
    assert errors == [CONNECTION_FAILED_MESSAGE]

    await wait_for(lambda: connector.socket is not first and controller.is_ready)
    connector.socket.push(state(2))
    await wait_for(lambda: controller.error is None)
    assert controller.state.current == 2
    await controller.disconnect()


async def test_failed_connect_surfaces_error():
    connector = FakeConnector(failures=100)
    errors = []
    controller = RemoteController(
        url=URL, on_error=errors.append, connector=connector, base_delay=60, max_delay=60, clock=lambda: NOW
    )
    await controller.pair(create_pairing_session(now=NOW).code)
    await wait_for(lambda: errors)
    assert controller.error == CONNECTION_FAILED_MESSAGE
    assert not controller.loading

    await controller.disconnect()
    assert controller.error is None


async def test_missing_relay_url_is_surfaced(monkeypatch):
    monkeypatch.setattr(settings, "WEBSOCKET_URL", None)
    errors = []
    controller = RemoteController(on_error=errors.append)
    with pytest.raises(ConfigurationError):
        await controller.pair(create_pairing_session().code)
    assert controller.error == "Missing WebSocket configuration."
    assert errors == [controller.error]
