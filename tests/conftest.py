"""
Shared fixtures.

Django is configured from ws_server.settings with DEBUG on, no Redis and no AWS
secrets, so every test runs against the in-memory channel layer.
"""

import os

os.environ["DJANGO_SETTINGS_MODULE"] = "ws_server.settings"
os.environ["DJANGO_DEBUG"] = "1"
os.environ.pop("REDIS_URL", None)
os.environ.pop("WS_SECRET_NAME", None)

import django  # noqa: E402

django.setup()

import pytest  # noqa: E402
from channels.layers import get_channel_layer  # noqa: E402
from channels.routing import URLRouter  # noqa: E402
from channels.testing import WebsocketCommunicator  # noqa: E402

from realtime.arbiter import RoleArbiter  # noqa: E402
from realtime.broadcaster import StateBroadcaster  # noqa: E402
from realtime.presence import PresenceNotifier  # noqa: E402
from realtime.registry import SessionRegistry  # noqa: E402
from realtime.routing import build_websocket_urlpatterns  # noqa: E402

GRACE_SECONDS = 0.05


class RecordingOutbox:
    """Stands in for ChannelLayerOutbox; remembers every frame per channel."""

    def __init__(self):
        self.sent = []

    async def send(self, channel_name, payload):
        self.sent.append((channel_name, payload))
        return True

    async def revoke(self, channel_name, payload):
        self.sent.append((channel_name, dict(payload, revoked=True)))
        return True

    def frames(self, channel_name):
        return [payload for channel, payload in self.sent if channel == channel_name]

    def types(self, channel_name):
        return [payload["type"] for payload in self.frames(channel_name)]


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class _ManualHandle:
    def __init__(self, callback):
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualFrameScheduler:
    """Frame scheduler driven by the test: ``tick()`` runs one refresh."""

    def __init__(self):
        self.handles = []

    def request_frame(self, callback):
        handle = _ManualHandle(callback)
        self.handles.append(handle)
        return handle

    @property
    def outstanding(self):
        return [h for h in self.handles if not h.cancelled]

    def tick(self):
        due, self.handles = self.handles, []
        for handle in due:
            if not handle.cancelled:
                handle.callback()


@pytest.fixture
def outbox():
    return RecordingOutbox()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return ManualFrameScheduler()


@pytest.fixture
async def registry():
    reg = SessionRegistry(grace_seconds=GRACE_SECONDS)
    yield reg
    await reg.close()


@pytest.fixture
def services(registry, outbox):
    notifier = PresenceNotifier(outbox)
    broadcaster = StateBroadcaster(registry, outbox, clock=lambda: 1_700_000_000_000)
    arbiter = RoleArbiter(registry, notifier, broadcaster)
    return arbiter, broadcaster, notifier


@pytest.fixture
async def application(registry):
    await get_channel_layer().flush()
    return URLRouter(build_websocket_urlpatterns(registry))


@pytest.fixture
def connect(application):
    """Open a sync socket and swallow the initial ``connected`` frame."""

    async def _connect():
        communicator = WebsocketCommunicator(application, "/ws/sync/")
        connected, _ = await communicator.connect()
        assert connected
        hello = await communicator.receive_json_from()
        assert hello["type"] == "connected"
        return communicator

    return _connect
