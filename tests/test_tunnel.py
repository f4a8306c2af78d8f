"""Tests for TunnelProvider."""
import pytest

from agent_secrets.errors import TunnelError
from agent_secrets.tunnel import TunnelProvider

from conftest import FakeTunnelBackend


class TestTunnelProvider:
    """Tests for tunnel creation, expiry and teardown."""

    @pytest.mark.asyncio
    async def test_create_tunnel(self, tunnels, backend, clock):
        tunnel = await tunnels.create_tunnel(20000, "secret-form-abc", 300)
        assert tunnel.url == "https://tunnel-20000.example.test"
        assert tunnel.port == 20000
        assert tunnel.purpose == "secret-form-abc"
        assert tunnel.expires_at == clock.now() + 300
        assert backend.connected == [20000]
        assert tunnels.get_tunnel(tunnel.id) == tunnel
        assert tunnels.is_tunnel_active(tunnel.id)

    @pytest.mark.asyncio
    async def test_default_duration(self, backend, clock):
        provider = TunnelProvider(backend, clock=clock, default_duration=60)
        tunnel = await provider.create_tunnel(20000, "p")
        assert tunnel.expires_at == clock.now() + 60

    @pytest.mark.asyncio
    async def test_create_failure_raises(self, clock):
        provider = TunnelProvider(FakeTunnelBackend(fail_connect=True), clock=clock)
        with pytest.raises(TunnelError, match="Failed to create tunnel"):
            await provider.create_tunnel(20000, "p")
        assert provider.get_active_tunnels() == []

    @pytest.mark.asyncio
    async def test_close_tunnel(self, tunnels, backend):
        tunnel = await tunnels.create_tunnel(20000, "p")
        await tunnels.close_tunnel(tunnel.id)
        assert backend.disconnected == [tunnel.url]
        assert tunnels.get_tunnel(tunnel.id) is None
        assert not tunnels.is_tunnel_active(tunnel.id)

    @pytest.mark.asyncio
    async def test_close_unknown_is_noop(self, tunnels, backend):
        await tunnels.close_tunnel("missing")
        assert backend.disconnected == []

    @pytest.mark.asyncio
    async def test_failed_disconnect_still_forgets(self, clock):
        """Test a tunnel is untracked even when the backend disconnect fails."""
        provider = TunnelProvider(FakeTunnelBackend(fail_disconnect=True), clock=clock)
        tunnel = await provider.create_tunnel(20000, "p")
        await provider.close_tunnel(tunnel.id)
        assert provider.get_tunnel(tunnel.id) is None
        assert provider.get_active_tunnels() == []

    @pytest.mark.asyncio
    async def test_expiry_and_extension(self, tunnels, clock):
        tunnel = await tunnels.create_tunnel(20000, "p", 100)
        clock.advance(90)
        assert tunnels.extend_tunnel(tunnel.id, 50)
        clock.advance(20)
        assert tunnels.is_tunnel_active(tunnel.id)
        assert await tunnels.cleanup_expired_tunnels() == 0
        clock.advance(40)
        assert not tunnels.is_tunnel_active(tunnel.id)
        assert await tunnels.cleanup_expired_tunnels() == 1
        assert tunnels.get_tunnel(tunnel.id) is None

    def test_extend_unknown(self, tunnels):
        assert tunnels.extend_tunnel("missing", 10) is False

    @pytest.mark.asyncio
    async def test_stop_closes_everything(self, tunnels, backend):
        await tunnels.create_tunnel(20000, "a")
        await tunnels.create_tunnel(20001, "b")
        await tunnels.stop()
        assert tunnels.get_active_tunnels() == []
        assert len(backend.disconnected) == 2
        assert backend.shut_down
