"""Secret Store — Scoped, encrypted secrets with access control.

Security Note (Threat Model):
    One AES-256-GCM key is derived per agent process from the agent id and
    the configured salt, and held in process memory for its lifetime. Anyone
    who knows both can decrypt every stored secret; without a configured salt
    encryption is disabled rather than falling back to a guessable default.
"""

from .audit import AccessAuditLog
from .backends import (
    MemoryRecordStore,
    MemorySettingsStore,
    MemoryWorldStore,
    WorldRoleLookup,
)
from .config import SecretsConfig
from .crypto import CryptoBox, derive_key
from .models import (
    AccessAction,
    AccessLogEntry,
    EncryptedPayload,
    Role,
    SecretConfig,
    SecretContext,
    SecretKind,
    SecretMetadata,
    SecretPermission,
    SecretRecord,
    SecretScope,
    SecretStatus,
    ValidationResult,
)
from .permissions import PermissionEvaluator, decide
from .store import SecretStore
from .validation import validate_format

__all__ = [
    "AccessAction",
    "AccessAuditLog",
    "AccessLogEntry",
    "CryptoBox",
    "EncryptedPayload",
    "MemoryRecordStore",
    "MemorySettingsStore",
    "MemoryWorldStore",
    "PermissionEvaluator",
    "Role",
    "SecretConfig",
    "SecretContext",
    "SecretKind",
    "SecretMetadata",
    "SecretPermission",
    "SecretRecord",
    "SecretScope",
    "SecretStatus",
    "SecretStore",
    "SecretsConfig",
    "ValidationResult",
    "WorldRoleLookup",
    "decide",
    "derive_key",
    "validate_format",
]
