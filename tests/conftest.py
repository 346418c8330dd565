import asyncio
import sys
from types import SimpleNamespace

import pytest
from loguru import logger
from socketio import exceptions as sio_exceptions

from quizlive.client.channel import ChannelManager
from quizlive.client.game_state import GameStateMachine
from quizlive.client.identity_store import SessionIdentityStore
from quizlive.shared.config import Settings
from quizlive.shared.events import EventDispatcher
from quizlive.shared.models import ConnectionState


class FakeTransport:
    """Stands in for socketio.AsyncClient: records emits, lets tests push events and drop the link."""

    def __init__(self, fail_connects: int = 0):
        self.handlers = {}
        self.emitted = []
        self.connected = False
        self.connect_calls = 0
        self.fail_connects = fail_connects
        self._dropped = None

    def on(self, event, handler=None):
        self.handlers[event] = handler

    async def connect(self, url, transports=None, wait_timeout=None):
        self.connect_calls += 1
        if self.fail_connects > 0:
            self.fail_connects -= 1
            raise sio_exceptions.ConnectionError("Connection refused by the server")
        self.connected = True
        self._dropped = asyncio.Event()

    async def wait(self):
        await self._dropped.wait()

    async def emit(self, event, data=None):
        if not self.connected:
            raise sio_exceptions.BadNamespaceError("/ is not a connected namespace.")
        self.emitted.append((event, data))

    async def disconnect(self):
        self.drop()

    def drop(self):
        self.connected = False
        if self._dropped is not None:
            self._dropped.set()

    async def push(self, event, *args):
        await self.handlers["*"](event, *args)

    def sent(self, name):
        return [data for event, data in self.emitted if event == name]


async def wait_for(predicate, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


@pytest.fixture(autouse=True)
def quiet_logs():
    logger.remove()
    logger.add(sys.stderr, level="WARNING")
    yield


@pytest.fixture()
def fast_settings(tmp_path):
    return Settings(
        RECONNECT_BASE_DELAY_S=0.001,
        RECONNECT_MAX_DELAY_S=0.01,
        JOIN_TIMEOUT_S=5.0,
        IDENTITY_PATH=tmp_path / "session.json",
        PUBLIC_BASE_URL="http://quiz.local:4200",
    )


@pytest.fixture()
def eventually():
    return wait_for


@pytest.fixture()
def rig(fast_settings):
    """Everything a participant needs, wired to a fake transport."""
    transport = FakeTransport()
    dispatcher = EventDispatcher()
    channel = ChannelManager(dispatcher, cfg=fast_settings, transport=transport)
    store = SessionIdentityStore(fast_settings.IDENTITY_PATH)
    game = GameStateMachine(channel, dispatcher, store, cfg=fast_settings)
    game.attach()

    async def start():
        await channel.connect()
        await wait_for(lambda: channel.state is ConnectionState.CONNECTED)

    return SimpleNamespace(
        transport=transport,
        dispatcher=dispatcher,
        channel=channel,
        store=store,
        game=game,
        settings=fast_settings,
        start=start,
    )


@pytest.fixture()
def question_payload():
    return {
        "question_number": 1,
        "total_questions": 3,
        "question": "Which planet is known as the Red Planet?",
        "answers": ["Venus", "Jupiter", "Mars", "Saturn"],
        "time_limit": 20,
    }
