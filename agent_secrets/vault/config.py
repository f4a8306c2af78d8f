"""
Secrets Configuration — Validated settings for the store and form service.

Reads settings from environment variables:
    AGENT_ID = <agent process identity>
    ENCRYPTION_SALT = <salt mixed into the derived encryption key>
    SECRETS_ALLOW_DEFAULT_SALT = <true|false>
    NGROK_AUTH_TOKEN = <tunnel backend token, optional>
    SECRETS_FORM_HOST, SECRETS_PORT_RANGE_START, SECRETS_PORT_RANGE_SIZE,
    SECRETS_SWEEP_INTERVAL, SECRETS_FORM_TTL

Security Note:
    Never log the salt or the tunnel token. Only log whether they are set.
"""
import os
import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .crypto import DEFAULT_SALT

logger = logging.getLogger("agent_secrets.vault")

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _env_number(name: str, cast: type) -> Optional[float]:
    """Read a numeric env var.

    Raises:
        ValueError: If the variable is set but is not a valid number.
    """
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return cast(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be a number, got {raw!r}") from err


class SecretsConfig(BaseModel):
    """Validated configuration of the secrets subsystem."""

    agent_id: str = Field(min_length=1)
    encryption_salt: Optional[str] = None
    allow_default_salt: bool = False
    tunnel_auth_token: Optional[str] = None
    form_host: str = Field(default="127.0.0.1")
    port_range_start: int = Field(default=10000, ge=1024, le=65535)
    port_range_size: int = Field(default=100, ge=1, le=10000)
    sweep_interval: float = Field(default=60.0, gt=0)
    default_form_ttl: float = Field(default=30 * 60.0, gt=0)
    audit_capacity: int = Field(default=1000, ge=1)

    @field_validator("encryption_salt", "tunnel_auth_token")
    @classmethod
    def blank_is_unset(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty strings as not configured."""
        if v is not None and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def validate_port_range(self) -> "SecretsConfig":
        """Ensure the form port pool fits in the TCP port space."""
        last = self.port_range_start + self.port_range_size - 1
        if last > 65535:
            raise ValueError(
                f"Port range {self.port_range_start}-{last} exceeds 65535"
            )
        return self

    @property
    def effective_salt(self) -> Optional[str]:
        """Salt used for key derivation, or None when encryption is disabled."""
        if self.encryption_salt:
            return self.encryption_salt
        if self.allow_default_salt:
            return DEFAULT_SALT
        return None

    @classmethod
    def from_env(cls, **overrides) -> "SecretsConfig":
        """Create SecretsConfig by loading values from environment.

        Args:
            **overrides: Values taking precedence over the environment.

        Returns:
            Populated SecretsConfig instance.

        Raises:
            RuntimeError: If no agent id is available.
            ValueError: If a numeric variable is malformed.
        """
        values: dict = {
            "agent_id": os.environ.get("AGENT_ID"),
            "encryption_salt": os.environ.get("ENCRYPTION_SALT"),
            "allow_default_salt": _env_bool("SECRETS_ALLOW_DEFAULT_SALT"),
            "tunnel_auth_token": os.environ.get("NGROK_AUTH_TOKEN"),
            "form_host": os.environ.get("SECRETS_FORM_HOST"),
            "port_range_start": _env_number("SECRETS_PORT_RANGE_START", int),
            "port_range_size": _env_number("SECRETS_PORT_RANGE_SIZE", int),
            "sweep_interval": _env_number("SECRETS_SWEEP_INTERVAL", float),
            "default_form_ttl": _env_number("SECRETS_FORM_TTL", float),
        }
        values.update(overrides)
        if not values.get("agent_id"):
            raise RuntimeError(
                "AGENT_ID environment variable is not set"
            )
        config = cls(**{k: v for k, v in values.items() if v is not None})
        logger.debug(
            "Loaded secrets config: agent=%s salt_configured=%s "
            "tunnel_token_configured=%s",
            config.agent_id,
            config.encryption_salt is not None,
            config.tunnel_auth_token is not None,
        )
        return config
