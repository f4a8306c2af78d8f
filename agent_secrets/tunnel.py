"""
Tunnels — Temporary public URLs routed to local form servers.

``TunnelProvider`` tracks every open tunnel with its own deadline. The
deadline is enforced by :meth:`TunnelProvider.cleanup_expired_tunnels`,
which the form manager runs on every sweep, so a tunnel is closed even if the
session that asked for it is never closed explicitly.

``NgrokBackend`` is the default backend. pyngrok calls block, so they run in
a worker thread.
"""
import asyncio
import logging
import uuid
from typing import Optional, Protocol

from pydantic import BaseModel
from pyngrok import ngrok

from .clock import Clock, SystemClock
from .errors import TunnelError

logger = logging.getLogger("agent_secrets.tunnel")

DEFAULT_TUNNEL_DURATION = 30 * 60.0  # seconds


class Tunnel(BaseModel):
    id: str
    url: str
    port: int
    created_at: float
    expires_at: float
    purpose: str


class TunnelBackend(Protocol):
    async def connect(self, port: int) -> str:
        ...

    async def disconnect(self, url: str) -> None:
        ...

    async def shutdown(self) -> None:
        ...


class NgrokBackend:
    """Open HTTP tunnels through the ngrok agent managed by pyngrok."""

    def __init__(self, auth_token: Optional[str] = None):
        self._auth_token = auth_token
        self._configured = False

    async def _configure(self) -> None:
        if self._configured:
            return
        if self._auth_token:
            await asyncio.to_thread(ngrok.set_auth_token, self._auth_token)
            logger.info("Ngrok auth token configured")
        else:
            logger.warning(
                "No NGROK_AUTH_TOKEN found, using anonymous tunnels (limited)"
            )
        self._configured = True

    async def connect(self, port: int) -> str:
        await self._configure()
        tunnel = await asyncio.to_thread(ngrok.connect, str(port), "http")
        return tunnel.public_url

    async def disconnect(self, url: str) -> None:
        await asyncio.to_thread(ngrok.disconnect, url)

    async def shutdown(self) -> None:
        await asyncio.to_thread(ngrok.kill)


class TunnelProvider:
    """Creates, tracks and closes public tunnels to local ports."""

    def __init__(
        self,
        backend: TunnelBackend,
        clock: Optional[Clock] = None,
        default_duration: float = DEFAULT_TUNNEL_DURATION,
    ):
        self._backend = backend
        self._clock = clock or SystemClock()
        self._default_duration = default_duration
        self._tunnels: dict[str, Tunnel] = {}

    async def create_tunnel(
        self, port: int, purpose: str, duration: Optional[float] = None
    ) -> Tunnel:
        """Open a tunnel to ``port``.

        Args:
            port: Local port to expose.
            purpose: Free-form label, kept for inspection.
            duration: Seconds until the tunnel is closed automatically.

        Returns:
            The tracked tunnel.

        Raises:
            TunnelError: If the backend cannot open the tunnel.
        """
        logger.info("Creating tunnel for port %d, purpose: %s", port, purpose)
        try:
            url = await self._backend.connect(port)
        except Exception as err:
            logger.error("Failed to create tunnel for port %d: %s", port, err)
            raise TunnelError(f"Failed to create tunnel: {err}") from err

        lifetime = duration or self._default_duration
        now = self._clock.now()
        tunnel = Tunnel(
            id=uuid.uuid4().hex,
            url=url,
            port=port,
            created_at=now,
            expires_at=now + lifetime,
            purpose=purpose,
        )
        self._tunnels[tunnel.id] = tunnel
        logger.info("Tunnel created: %s (expires in %ds)", url, int(lifetime))
        return tunnel

    async def close_tunnel(self, tunnel_id: str) -> None:
        """Disconnect and forget a tunnel; unknown ids are ignored.

        The tunnel stops being tracked even when the backend fails to
        disconnect, so a failed close never leaves a stale entry behind.
        """
        tunnel = self._tunnels.pop(tunnel_id, None)
        if tunnel is None:
            logger.debug("Tunnel %s not found", tunnel_id)
            return
        logger.info("Closing tunnel %s (%s)", tunnel_id, tunnel.url)
        try:
            await self._backend.disconnect(tunnel.url)
        except Exception as err:
            logger.error("Error disconnecting tunnel %s: %s", tunnel_id, err)
            return
        logger.info("Tunnel %s closed", tunnel_id)

    def get_tunnel(self, tunnel_id: str) -> Optional[Tunnel]:
        return self._tunnels.get(tunnel_id)

    def get_active_tunnels(self) -> list[Tunnel]:
        return list(self._tunnels.values())

    def is_tunnel_active(self, tunnel_id: str) -> bool:
        tunnel = self._tunnels.get(tunnel_id)
        if tunnel is None:
            return False
        return self._clock.now() < tunnel.expires_at

    def extend_tunnel(self, tunnel_id: str, extra: float) -> bool:
        """Push the deadline of a tunnel back by ``extra`` seconds."""
        tunnel = self._tunnels.get(tunnel_id)
        if tunnel is None:
            return False
        tunnel.expires_at += extra
        logger.info("Extended tunnel %s by %ds", tunnel_id, int(extra))
        return True

    async def cleanup_expired_tunnels(self) -> int:
        """Close every tunnel past its deadline.

        Returns:
            Number of tunnels closed.
        """
        now = self._clock.now()
        expired = [
            tunnel_id
            for tunnel_id, tunnel in self._tunnels.items()
            if now >= tunnel.expires_at
        ]
        for tunnel_id in expired:
            await self.close_tunnel(tunnel_id)
        if expired:
            logger.info("Cleaned up %d expired tunnel(s)", len(expired))
        return len(expired)

    async def stop(self) -> None:
        """Close all tunnels and shut the backend down."""
        logger.info("Stopping tunnel provider")
        for tunnel_id in list(self._tunnels):
            await self.close_tunnel(tunnel_id)
        await self._backend.shutdown()
        logger.info("Tunnel provider stopped")
