"""
Vault Models — Records, contexts and audit entries of the Secret Store.

A secret key is only meaningful together with its scope and, for world and
user scopes, the owning identifier: the same key may exist independently at
all three scopes with unrelated values.
"""
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SecretScope(str, Enum):
    GLOBAL = "global"
    WORLD = "world"
    USER = "user"


class SecretKind(str, Enum):
    API_KEY = "api_key"
    PRIVATE_KEY = "private_key"
    PUBLIC_KEY = "public_key"
    URL = "url"
    CREDENTIAL = "credential"
    CONFIG = "config"
    SECRET = "secret"


class SecretStatus(str, Enum):
    MISSING = "missing"
    GENERATING = "generating"
    VALIDATING = "validating"
    INVALID = "invalid"
    VALID = "valid"


class AccessAction(str, Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    SHARE = "share"


class Role(str, Enum):
    NONE = "NONE"
    MEMBER = "MEMBER"
    ADMIN = "ADMIN"
    OWNER = "OWNER"


class SecretContext(BaseModel):
    """Request frame of a store call.

    ``agent_id`` is the process identity; ``requester_id`` is whoever is
    actually asking. Permission decisions depend only on this frame.
    """

    model_config = ConfigDict(frozen=True)

    scope: SecretScope
    agent_id: str
    world_id: Optional[str] = None
    user_id: Optional[str] = None
    requester_id: Optional[str] = None

    @property
    def accessor(self) -> str:
        """Identity recorded in access logs and grants."""
        return self.requester_id or self.user_id or self.agent_id

    def has_scope_identity(self) -> bool:
        """Whether the identifier required by the scope is present."""
        if self.scope is SecretScope.WORLD:
            return bool(self.world_id)
        if self.scope is SecretScope.USER:
            return bool(self.user_id)
        return True


class EncryptedPayload(BaseModel):
    """AES-GCM output, every binary field base64-encoded."""

    ciphertext: str
    iv: str
    auth_tag: Optional[str] = None
    algorithm: str = "aes-256-gcm"
    key_id: str = "default"


class SecretPermission(BaseModel):
    entity_id: str
    permissions: list[AccessAction]
    granted_by: str
    granted_at: float
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class SecretConfig(BaseModel):
    """Partial overrides applied over the defaults of a write."""

    kind: Optional[SecretKind] = None
    description: Optional[str] = None
    required: Optional[bool] = None
    encrypted: Optional[bool] = None
    validation_method: Optional[str] = None
    permissions: Optional[list[SecretPermission]] = None
    plugin: Optional[str] = None


class SecretMetadata(BaseModel):
    """Everything known about a secret except its value."""

    key: str
    kind: SecretKind = SecretKind.SECRET
    description: str = ""
    scope: SecretScope
    owner_id: Optional[str] = None
    world_id: Optional[str] = None
    plugin: Optional[str] = None
    required: bool = False
    encrypted: bool = True
    validation_method: Optional[str] = None
    permissions: list[SecretPermission] = Field(default_factory=list)
    shared_with: list[str] = Field(default_factory=list)
    status: SecretStatus = SecretStatus.VALID
    attempts: int = 0
    last_error: Optional[str] = None
    created_at: Optional[float] = None
    validated_at: Optional[float] = None

    @model_validator(mode="after")
    def sync_shared_with(self) -> "SecretMetadata":
        """Keep ``shared_with`` equal to the grantees listed in permissions."""
        grantees: list[str] = []
        for grant in self.permissions:
            if grant.entity_id not in grantees:
                grantees.append(grant.entity_id)
        self.shared_with = grantees
        return self


class SecretRecord(SecretMetadata):
    """A stored secret; ``value`` is plaintext or an encrypted payload."""

    value: Union[EncryptedPayload, str, None] = None

    def metadata(self) -> SecretMetadata:
        """Return a copy without the value, safe for listings."""
        return SecretMetadata.model_validate(
            self.model_dump(exclude={"value"})
        )

    def with_permissions(
        self, permissions: list[SecretPermission]
    ) -> "SecretRecord":
        """Return a copy carrying ``permissions`` and a matching ``shared_with``."""
        data = self.model_dump()
        data["permissions"] = [grant.model_dump() for grant in permissions]
        return SecretRecord.model_validate(data)


class AccessLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    secret_key: str
    accessed_by: str
    action: AccessAction
    timestamp: float
    context: SecretContext
    success: bool
    error: Optional[str] = None


class ValidationResult(BaseModel):
    is_valid: bool
    error: Optional[str] = None
    details: Optional[str] = None
