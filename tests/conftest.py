"""Shared fixtures: a manual clock, an in-memory store and form fakes."""
import pytest

from agent_secrets.clock import ManualClock
from agent_secrets.errors import FormServerError
from agent_secrets.forms.manager import FormSessionManager
from agent_secrets.forms.ports import PortPool
from agent_secrets.tunnel import TunnelProvider
from agent_secrets.vault.backends import MemoryWorldStore
from agent_secrets.vault.config import SecretsConfig
from agent_secrets.vault.models import SecretContext, SecretScope
from agent_secrets.vault.store import SecretStore

AGENT_ID = "agent-1"
WORLD_ID = "world-1"
USER_ID = "user-1"


def global_context(requester_id=AGENT_ID) -> SecretContext:
    return SecretContext(
        scope=SecretScope.GLOBAL, agent_id=AGENT_ID, requester_id=requester_id
    )


def world_context(requester_id="owner-1", world_id=WORLD_ID) -> SecretContext:
    return SecretContext(
        scope=SecretScope.WORLD,
        agent_id=AGENT_ID,
        world_id=world_id,
        requester_id=requester_id,
    )


def user_context(requester_id=USER_ID, user_id=USER_ID) -> SecretContext:
    return SecretContext(
        scope=SecretScope.USER,
        agent_id=AGENT_ID,
        user_id=user_id,
        requester_id=requester_id,
    )


# --- Fakes ---

class FakeTunnelBackend:
    """Tunnel backend recording calls instead of talking to ngrok."""

    def __init__(self, fail_connect=False, fail_disconnect=False):
        self.fail_connect = fail_connect
        self.fail_disconnect = fail_disconnect
        self.connected = []
        self.disconnected = []
        self.shut_down = False

    async def connect(self, port):
        if self.fail_connect:
            raise RuntimeError("tunnel backend unavailable")
        self.connected.append(port)
        return f"https://tunnel-{port}.example.test"

    async def disconnect(self, url):
        if self.fail_disconnect:
            raise RuntimeError("disconnect failed")
        self.disconnected.append(url)

    async def shutdown(self):
        self.shut_down = True


class FakeFormServer:
    """Form server that never binds a socket."""

    def __init__(self, session_id, host, port, manager, fail=False):
        self.session_id = session_id
        self.host = host
        self.port = port
        self.manager = manager
        self.fail = fail
        self.started = False
        self.stopped = False

    async def start(self):
        if self.fail:
            raise FormServerError(f"cannot bind {self.port}")
        self.started = True

    async def stop(self):
        self.stopped = True


class ServerRecorder:
    """Server factory keeping every server it built."""

    def __init__(self):
        self.servers = []
        self.fail_start = False

    def __call__(self, session_id, host, port, manager):
        server = FakeFormServer(session_id, host, port, manager, self.fail_start)
        self.servers.append(server)
        return server


# --- Fixtures ---

@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def worlds():
    store = MemoryWorldStore()
    store.add_world(
        WORLD_ID,
        roles={
            "owner-1": "OWNER",
            "admin-1": "ADMIN",
            "member-1": "MEMBER",
        },
    )
    return store


@pytest.fixture
def store(clock, worlds):
    return SecretStore(AGENT_ID, salt="test-salt", worlds=worlds, clock=clock)


@pytest.fixture
def backend():
    return FakeTunnelBackend()


@pytest.fixture
def tunnels(backend, clock):
    return TunnelProvider(backend, clock=clock)


@pytest.fixture
def servers():
    return ServerRecorder()


@pytest.fixture
def config():
    return SecretsConfig(agent_id=AGENT_ID, encryption_salt="test-salt")


@pytest.fixture
def port_pool():
    return PortPool(20000, 5, probe=lambda host, port: True)


@pytest.fixture
def manager(store, tunnels, config, clock, servers, port_pool):
    return FormSessionManager(
        store,
        tunnels,
        config=config,
        clock=clock,
        server_factory=servers,
        port_pool=port_pool,
    )
