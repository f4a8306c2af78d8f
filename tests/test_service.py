"""Tests for SecretsService wiring."""
import pytest

from agent_secrets import SecretsService
from agent_secrets.clock import ManualClock
from agent_secrets.vault.backends import MemoryWorldStore
from agent_secrets.vault.config import SecretsConfig

from conftest import AGENT_ID, FakeTunnelBackend, world_context


@pytest.fixture
def service():
    worlds = MemoryWorldStore()
    worlds.add_world("world-1", roles={"owner-1": "OWNER"})
    return SecretsService(
        SecretsConfig(agent_id=AGENT_ID, encryption_salt="pepper"),
        tunnel_backend=FakeTunnelBackend(),
        clock=ManualClock(),
        worlds=worlds,
    )


class TestSecretsService:
    """Tests for SecretsService."""

    @pytest.mark.asyncio
    async def test_components_share_configuration(self, service):
        assert service.store.agent_id == AGENT_ID
        assert service.store.encryption_enabled
        assert await service.store.set("K", "v", world_context())
        assert await service.store.get("K", world_context()) == "v"

    @pytest.mark.asyncio
    async def test_start_stop(self, service):
        await service.start()
        await service.start()
        await service.stop()
        assert service.tunnels.get_active_tunnels() == []
        assert service.forms.list_sessions() == []

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("AGENT_ID", "agent-env")
        monkeypatch.setenv("ENCRYPTION_SALT", "pepper")
        service = SecretsService.from_env(tunnel_backend=FakeTunnelBackend())
        assert service.config.agent_id == "agent-env"
        assert service.store.encryption_enabled
