"""
SecretStore — Context-scoped secret storage with access control and audit.

Provides the public API of the Secret Store:
- ``get(key, context)`` — check read permission, decrypt and return a value
- ``set(key, value, context, config)`` — check write permission, validate,
  encrypt and persist a value
- ``delete(key, context)`` — remove a secret from its scope
- ``list(context)`` — value-free metadata of every secret in a scope
- ``grant_access()`` / ``revoke_access()`` / ``check_access()`` — per-secret
  grants to other entities
- ``get_access_logs(key, context)`` — recent access attempts

Every ``get``/``set``/``delete``/``grant_access``/``revoke_access`` call
appends exactly one entry to the access log, whatever its outcome.

Security Note:
    Never log plaintext or ciphertext values. Only log key names, scopes,
    operations and entity ids.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Iterable, Mapping
from typing import Any, Optional, Union

from ..clock import Clock, SystemClock
from ..errors import EncryptionUnavailableError
from .audit import AccessAuditLog
from .backends import (
    SECRET_RECORD_TYPE,
    MemoryRecordStore,
    MemorySettingsStore,
    MemoryWorldStore,
    RecordStore,
    RoleLookup,
    SettingsStore,
    WorldRoleLookup,
    WorldStore,
)
from .config import SecretsConfig
from .crypto import CryptoBox, as_payload
from .migration import migrate_world_settings
from .models import (
    AccessAction,
    AccessLogEntry,
    EncryptedPayload,
    SecretConfig,
    SecretContext,
    SecretKind,
    SecretMetadata,
    SecretPermission,
    SecretRecord,
    SecretScope,
    SecretStatus,
)
from .permissions import PermissionEvaluator
from .validation import Validator, validate_format

logger = logging.getLogger("agent_secrets.vault")

_NOT_FOUND = "Secret not found"
_DENIED = "Permission denied"


class SecretStore:
    """Secrets at global, world and user scope for one agent process.

    Each scope is resolved independently: a key missing at user scope is not
    looked up at world or global scope.
    """

    def __init__(
        self,
        agent_id: str,
        *,
        salt: Optional[str] = None,
        settings: Optional[SettingsStore] = None,
        worlds: Optional[WorldStore] = None,
        records: Optional[RecordStore] = None,
        role_lookup: Optional[RoleLookup] = None,
        legacy_settings: Optional[Mapping[str, str]] = None,
        validator: Optional[Validator] = validate_format,
        audit_log: Optional[AccessAuditLog] = None,
        clock: Optional[Clock] = None,
    ):
        self.agent_id = agent_id
        self._settings = settings if settings is not None else MemorySettingsStore()
        self._worlds = worlds if worlds is not None else MemoryWorldStore()
        self._records = records if records is not None else MemoryRecordStore()
        self._permissions = PermissionEvaluator(
            role_lookup if role_lookup is not None else WorldRoleLookup(self._worlds)
        )
        self._legacy = legacy_settings if legacy_settings is not None else {}
        self._validator = validator
        self._audit = audit_log if audit_log is not None else AccessAuditLog()
        self._clock = clock or SystemClock()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._crypto: Optional[CryptoBox] = None
        if salt:
            self._crypto = CryptoBox.from_agent(agent_id, salt)
        else:
            logger.warning(
                "No encryption salt configured for agent=%s: encrypted "
                "secrets can be neither written nor read", agent_id,
            )

    @classmethod
    def from_config(cls, config: SecretsConfig, **collaborators: Any) -> "SecretStore":
        """Build a store from validated configuration.

        Args:
            config: Secrets configuration.
            **collaborators: Backends, clock or validator overrides.

        Returns:
            Configured SecretStore.
        """
        if not config.encryption_salt and config.allow_default_salt:
            logger.warning(
                "ENCRYPTION_SALT is not set; falling back to the built-in "
                "default salt. Encrypted secrets are recoverable by anyone "
                "who knows the agent id."
            )
        collaborators.setdefault("audit_log", AccessAuditLog(config.audit_capacity))
        return cls(config.agent_id, salt=config.effective_salt, **collaborators)

    @property
    def audit_log(self) -> AccessAuditLog:
        return self._audit

    @property
    def encryption_enabled(self) -> bool:
        return self._crypto is not None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _log(
        self,
        key: str,
        action: AccessAction,
        context: SecretContext,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        self._audit.record(key, action, context, success, self._clock.now(), error)

    @contextlib.asynccontextmanager
    async def _scope_lock(self, context: SecretContext):
        """Serialize read-modify-write cycles on one scope instance.

        The lock is dropped once no caller holds or waits on it.
        """
        if context.scope is SecretScope.WORLD:
            name = f"world:{context.world_id}"
        elif context.scope is SecretScope.USER:
            name = f"user:{context.user_id}"
        else:
            name = "global"
        lock = self._locks.setdefault(name, asyncio.Lock())
        self._lock_users[name] = self._lock_users.get(name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_users.pop(name, 1) - 1
            if remaining:
                self._lock_users[name] = remaining
            elif self._locks.get(name) is lock:
                del self._locks[name]

    async def _guard(
        self, action: AccessAction, context: SecretContext
    ) -> Optional[str]:
        """Return why a call must be refused, or None when it may proceed."""
        if not context.has_scope_identity():
            missing = "world_id" if context.scope is SecretScope.WORLD else "user_id"
            return f"{missing} is required for {context.scope.value} secrets"
        if not await self._permissions.allow(action, context):
            return _DENIED
        return None

    def _require_crypto(self) -> CryptoBox:
        if self._crypto is None:
            raise EncryptionUnavailableError(
                "Encryption is disabled because no encryption salt is configured"
            )
        return self._crypto

    def _seal(
        self, value: str, encrypted: bool
    ) -> Union[EncryptedPayload, str]:
        if not encrypted:
            return value
        return self._require_crypto().encrypt(value)

    def _open(self, value: Any) -> Optional[str]:
        payload = as_payload(value)
        if payload is None or isinstance(payload, str):
            # records written before encryption was introduced
            return payload
        return self._require_crypto().decrypt(payload)

    def _coerce_record(
        self, key: str, raw: Any, context: SecretContext
    ) -> SecretRecord:
        if isinstance(raw, str):
            return SecretRecord(
                key=key,
                scope=context.scope,
                world_id=context.world_id,
                owner_id=context.user_id,
                encrypted=False,
                value=raw,
            )
        data = dict(raw)
        data.setdefault("key", key)
        data.setdefault("scope", context.scope)
        return SecretRecord.model_validate(data)

    def _record_id(self, user_id: str, key: str) -> str:
        return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{self.agent_id}:{user_id}:{key}"))

    async def _find_user_record(self, user_id: str, key: str) -> Optional[dict]:
        for record in await self._records.list_records(user_id):
            if record.get("type") != SECRET_RECORD_TYPE:
                continue
            if (record.get("data") or {}).get("key") == key:
                return record
        return None

    @staticmethod
    def _unpack_user_record(record: dict) -> dict:
        data = record.get("data") or {}
        unpacked = dict(data.get("metadata") or {})
        unpacked["key"] = data.get("key")
        unpacked["value"] = data.get("value")
        return unpacked

    # ------------------------------------------------------------------
    # Scope persistence
    # ------------------------------------------------------------------

    async def _load(self, key: str, context: SecretContext) -> Optional[SecretRecord]:
        raw: Any = None
        if context.scope is SecretScope.GLOBAL:
            raw = await self._settings.get(key)
        elif context.scope is SecretScope.WORLD:
            world = await self._worlds.get_world(context.world_id)
            raw = ((world or {}).get("secrets") or {}).get(key)
        else:
            record = await self._find_user_record(context.user_id, key)
            if record is not None:
                raw = self._unpack_user_record(record)
        if raw is None:
            return None
        return self._coerce_record(key, raw, context)

    async def _persist(self, record: SecretRecord, context: SecretContext) -> bool:
        """Write a record into its scope; False when the world does not exist."""
        data = record.model_dump(mode="json")
        if context.scope is SecretScope.GLOBAL:
            await self._settings.put(record.key, data)
            return True

        if context.scope is SecretScope.WORLD:
            world = await self._worlds.get_world(context.world_id)
            if world is None:
                return False
            secrets = world.get("secrets") or {}
            secrets[record.key] = data
            world["secrets"] = secrets
            await self._worlds.update_world(context.world_id, world)
            return True

        now = self._clock.now()
        value = data.pop("value")
        payload = {
            "key": record.key,
            "value": value,
            "metadata": data,
            "updated_at": now,
        }
        existing = await self._find_user_record(context.user_id, record.key)
        if existing is not None:
            existing["data"] = payload
            await self._records.update_record(existing)
        else:
            await self._records.create_record({
                "id": self._record_id(context.user_id, record.key),
                "entity_id": context.user_id,
                "agent_id": self.agent_id,
                "type": SECRET_RECORD_TYPE,
                "data": payload,
                "created_at": now,
            })
        return True

    async def _remove(self, key: str, context: SecretContext) -> bool:
        if context.scope is SecretScope.GLOBAL:
            return await self._settings.delete(key)
        if context.scope is SecretScope.WORLD:
            world = await self._worlds.get_world(context.world_id)
            secrets = (world or {}).get("secrets") or {}
            if key not in secrets:
                return False
            del secrets[key]
            world["secrets"] = secrets
            await self._worlds.update_world(context.world_id, world)
            return True
        record = await self._find_user_record(context.user_id, key)
        if record is None:
            return False
        return await self._records.delete_record(record["id"])

    async def _write(
        self,
        key: str,
        value: str,
        context: SecretContext,
        config: SecretConfig,
    ) -> bool:
        """Merge ``config`` over the defaults and persist without permission checks.

        Permissions already granted on an existing record are kept unless
        ``config`` supplies its own list.
        """
        async with self._scope_lock(context):
            existing = await self._load(key, context)
            now = self._clock.now()
            if config.encrypted is not None:
                encrypted = config.encrypted
            else:
                # global records stay plaintext for the legacy settings loader
                encrypted = context.scope is not SecretScope.GLOBAL
            if config.permissions is not None:
                permissions = list(config.permissions)
            elif existing is not None:
                permissions = existing.permissions
            else:
                permissions = []
            record = SecretRecord(
                key=key,
                kind=config.kind or SecretKind.SECRET,
                description=config.description or f"Secret: {key}",
                scope=context.scope,
                owner_id=context.user_id if context.scope is SecretScope.USER else None,
                world_id=context.world_id if context.scope is SecretScope.WORLD else None,
                plugin=config.plugin or context.scope.value,
                required=bool(config.required),
                encrypted=encrypted,
                validation_method=config.validation_method,
                permissions=permissions,
                status=SecretStatus.VALID,
                attempts=0,
                created_at=(
                    existing.created_at
                    if existing is not None and existing.created_at
                    else now
                ),
                validated_at=now,
                value=self._seal(value, encrypted),
            )
            return await self._persist(record, context)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get(self, key: str, context: SecretContext) -> Optional[str]:
        """Return the plaintext of a secret.

        Args:
            key: Secret name.
            context: Request frame selecting the scope.

        Returns:
            The plaintext value, or None when the secret is absent, the scope
            identifier is missing, or read access is denied.

        Raises:
            CryptoError: If the stored payload fails authentication.
        """
        try:
            denial = await self._guard(AccessAction.READ, context)
            if denial:
                self._log(key, AccessAction.READ, context, False, denial)
                return None
            record = await self._load(key, context)
            if record is None or record.value is None:
                if context.scope is SecretScope.GLOBAL and key in self._legacy:
                    self._log(key, AccessAction.READ, context, True)
                    return self._legacy[key]
                self._log(key, AccessAction.READ, context, False, _NOT_FOUND)
                return None
            value = self._open(record.value)
        except Exception as err:
            self._log(key, AccessAction.READ, context, False, str(err))
            logger.error(
                "Error reading secret key=%s scope=%s: %s",
                key, context.scope.value, err,
            )
            raise
        self._log(key, AccessAction.READ, context, True)
        return value

    async def set(
        self,
        key: str,
        value: str,
        context: SecretContext,
        config: Optional[SecretConfig] = None,
    ) -> bool:
        """Validate, encrypt and persist a secret.

        Args:
            key: Secret name.
            value: Plaintext value.
            context: Request frame selecting the scope.
            config: Partial overrides of the record defaults.

        Returns:
            True when stored; False on denial, missing scope identifier,
            failed validation or an unknown world.

        Raises:
            EncryptionUnavailableError: If encryption is requested but no salt
                is configured.
            Exception: Backing-store failures propagate unchanged.
        """
        config = config or SecretConfig()
        try:
            denial = await self._guard(AccessAction.WRITE, context)
            if denial:
                self._log(key, AccessAction.WRITE, context, False, denial)
                return False
            if not isinstance(value, str):
                self._log(
                    key, AccessAction.WRITE, context, False,
                    "Secret value must be a string",
                )
                return False
            if self._validator is not None and (
                config.kind is not None or config.validation_method
            ):
                result = await self._validator(
                    key, value, config.kind or SecretKind.SECRET,
                    config.validation_method,
                )
                if not result.is_valid:
                    error = f"Validation failed: {result.error}"
                    logger.warning("Rejected secret key=%s: %s", key, error)
                    self._log(key, AccessAction.WRITE, context, False, error)
                    return False
            stored = await self._write(key, value, context, config)
        except Exception as err:
            self._log(key, AccessAction.WRITE, context, False, str(err))
            logger.error(
                "Error setting secret key=%s scope=%s: %s",
                key, context.scope.value, err,
            )
            raise
        if not stored:
            self._log(
                key, AccessAction.WRITE, context, False,
                f"World {context.world_id} not found",
            )
            return False
        self._log(key, AccessAction.WRITE, context, True)
        logger.debug("Secret set: key=%s scope=%s", key, context.scope.value)
        return True

    async def delete(self, key: str, context: SecretContext) -> bool:
        """Remove a secret from its scope.

        Returns:
            True if a secret was removed.
        """
        try:
            denial = await self._guard(AccessAction.DELETE, context)
            if denial:
                self._log(key, AccessAction.DELETE, context, False, denial)
                return False
            async with self._scope_lock(context):
                removed = await self._remove(key, context)
        except Exception as err:
            self._log(key, AccessAction.DELETE, context, False, str(err))
            raise
        self._log(
            key, AccessAction.DELETE, context, removed,
            None if removed else _NOT_FOUND,
        )
        if removed:
            logger.debug("Secret deleted: key=%s scope=%s", key, context.scope.value)
        return removed

    async def list(self, context: SecretContext) -> dict[str, SecretMetadata]:
        """List secrets of a scope without their values.

        Returns:
            Mapping of key to metadata; empty when the scope identifier is
            missing.
        """
        if not context.has_scope_identity():
            return {}
        raw: dict[str, Any] = {}
        if context.scope is SecretScope.GLOBAL:
            raw = await self._settings.items()
        elif context.scope is SecretScope.WORLD:
            world = await self._worlds.get_world(context.world_id)
            raw = dict((world or {}).get("secrets") or {})
        else:
            for record in await self._records.list_records(context.user_id):
                if record.get("type") == SECRET_RECORD_TYPE:
                    unpacked = self._unpack_user_record(record)
                    raw[unpacked["key"]] = unpacked
        return {
            key: self._coerce_record(key, data, context).metadata()
            for key, data in raw.items()
        }

    async def grant_access(
        self,
        key: str,
        context: SecretContext,
        grantee_id: str,
        permissions: Iterable[Union[AccessAction, str]],
        expires_at: Optional[float] = None,
    ) -> bool:
        """Grant ``grantee_id`` the given permissions on a secret.

        A new grant replaces any earlier grant to the same entity.

        Returns:
            True when the grant was stored; False on denial, an unknown
            permission name or unknown secret.
        """
        try:
            actions = [AccessAction(p) for p in permissions]
        except ValueError as err:
            self._log(key, AccessAction.SHARE, context, False, str(err))
            return False
        try:
            denial = await self._guard(AccessAction.SHARE, context)
            if denial:
                self._log(key, AccessAction.SHARE, context, False, denial)
                return False
            async with self._scope_lock(context):
                record = await self._load(key, context)
                if record is None:
                    self._log(key, AccessAction.SHARE, context, False, _NOT_FOUND)
                    return False
                grant = SecretPermission(
                    entity_id=grantee_id,
                    permissions=actions,
                    granted_by=context.accessor,
                    granted_at=self._clock.now(),
                    expires_at=expires_at,
                )
                kept = [p for p in record.permissions if p.entity_id != grantee_id]
                await self._persist(record.with_permissions([*kept, grant]), context)
        except Exception as err:
            self._log(key, AccessAction.SHARE, context, False, str(err))
            raise
        self._log(key, AccessAction.SHARE, context, True)
        logger.info(
            "Granted %s on key=%s to entity=%s",
            [a.value for a in actions], key, grantee_id,
        )
        return True

    async def revoke_access(
        self, key: str, context: SecretContext, grantee_id: str
    ) -> bool:
        """Remove every grant held by ``grantee_id`` on a secret.

        Returns:
            True when the secret exists and the caller may share it.
        """
        try:
            denial = await self._guard(AccessAction.SHARE, context)
            if denial:
                self._log(key, AccessAction.SHARE, context, False, denial)
                return False
            async with self._scope_lock(context):
                record = await self._load(key, context)
                if record is None:
                    self._log(key, AccessAction.SHARE, context, False, _NOT_FOUND)
                    return False
                kept = [p for p in record.permissions if p.entity_id != grantee_id]
                if len(kept) != len(record.permissions):
                    await self._persist(record.with_permissions(kept), context)
        except Exception as err:
            self._log(key, AccessAction.SHARE, context, False, str(err))
            raise
        self._log(key, AccessAction.SHARE, context, True)
        logger.info("Revoked access on key=%s from entity=%s", key, grantee_id)
        return True

    async def check_access(
        self,
        key: str,
        context: SecretContext,
        entity_id: str,
        permission: Union[AccessAction, str],
    ) -> bool:
        """Whether ``entity_id`` holds an unexpired grant for ``permission``."""
        try:
            wanted = AccessAction(permission)
        except ValueError:
            return False
        if not context.has_scope_identity():
            return False
        record = await self._load(key, context)
        if record is None or not record.permissions:
            return False
        now = self._clock.now()
        for grant in record.permissions:
            if grant.entity_id == entity_id and not grant.is_expired(now):
                return wanted in grant.permissions
        return False

    async def get_access_logs(
        self, key: str, context: Optional[SecretContext] = None
    ) -> list[AccessLogEntry]:
        return self._audit.filter(key, context)

    async def migrate_world_settings(self, world_id: str) -> int:
        """Move secret-flagged world settings into encrypted world secrets."""
        return await migrate_world_settings(self, world_id)

    async def close(self) -> None:
        """Drop in-memory state held by the store."""
        self._audit.clear()
        self._locks.clear()
        self._lock_users.clear()
        logger.info("Secret store for agent=%s closed", self.agent_id)
