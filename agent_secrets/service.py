"""
Secrets Service — Wires the store, tunnels and form manager together.

Usage::

    service = SecretsService.from_env()
    await service.start()
    url, session_id = await service.forms.create_secret_form(request, context)
    ...
    await service.stop()
"""
import logging
from typing import Any, Optional

from .clock import Clock, SystemClock
from .forms.manager import FormSessionManager
from .tunnel import NgrokBackend, TunnelBackend, TunnelProvider
from .vault.config import SecretsConfig
from .vault.store import SecretStore

logger = logging.getLogger("agent_secrets")


class SecretsService:
    """Owns one SecretStore, TunnelProvider and FormSessionManager.

    Attributes:
        store: Scoped secret storage.
        tunnels: Tunnel registry backing the forms.
        forms: Form session manager.
    """

    def __init__(
        self,
        config: SecretsConfig,
        *,
        tunnel_backend: Optional[TunnelBackend] = None,
        clock: Optional[Clock] = None,
        **store_collaborators: Any,
    ):
        self.config = config
        self.clock = clock or SystemClock()
        self.store = SecretStore.from_config(
            config, clock=self.clock, **store_collaborators
        )
        self.tunnels = TunnelProvider(
            tunnel_backend or NgrokBackend(config.tunnel_auth_token),
            clock=self.clock,
            default_duration=config.default_form_ttl,
        )
        self.forms = FormSessionManager(
            self.store, self.tunnels, config=config, clock=self.clock
        )
        self._started = False

    @classmethod
    def from_env(cls, **kwargs: Any) -> "SecretsService":
        """Build the service from environment variables.

        Args:
            **kwargs: Collaborators passed to the constructor.
        """
        return cls(SecretsConfig.from_env(), **kwargs)

    async def start(self) -> None:
        if self._started:
            return
        self.forms.start()
        self._started = True
        logger.info(
            "Secrets service started for agent=%s (encryption %s)",
            self.config.agent_id,
            "enabled" if self.store.encryption_enabled else "disabled",
        )

    async def stop(self) -> None:
        """Close every form and tunnel, then the store."""
        await self.forms.stop()
        await self.tunnels.stop()
        await self.store.close()
        self._started = False
        logger.info("Secrets service stopped")
