"""
Vault Migration — Move secret-flagged world settings into world secrets.

Older worlds kept sensitive values in their plain ``settings`` map, flagged
with ``{"secret": true}``. Migration re-stores each of them as an encrypted
world secret and drops it from ``settings``. The operation is idempotent:
migrated keys are no longer present in ``settings`` on a second run.

Security Note:
    Plaintext exists in memory only while each value is re-stored.
    Never log setting values.
"""
import logging
from typing import TYPE_CHECKING

from .models import (
    AccessAction,
    SecretConfig,
    SecretContext,
    SecretKind,
    SecretScope,
)

if TYPE_CHECKING:
    from .store import SecretStore

logger = logging.getLogger("agent_secrets.vault")


async def migrate_world_settings(store: "SecretStore", world_id: str) -> int:
    """Migrate secret settings of one world.

    Runs as the agent itself: the migration is maintenance, not a member
    request, so world roles are not consulted. Each migrated key still gets a
    write entry in the access log.

    Args:
        store: Secret store owning the world scope.
        world_id: World whose settings are migrated.

    Returns:
        Number of settings migrated.
    """
    world = await store._worlds.get_world(world_id)
    if not world or not world.get("settings"):
        return 0

    context = SecretContext(
        scope=SecretScope.WORLD,
        world_id=world_id,
        agent_id=store.agent_id,
        requester_id=store.agent_id,
    )
    migrated: list[str] = []

    logger.info("Migrating world settings for world=%s", world_id)

    for key, setting in world["settings"].items():
        if not isinstance(setting, dict) or not setting.get("secret"):
            continue
        value = setting.get("value")
        if not isinstance(value, str) or not value:
            logger.warning(
                "Skipping world setting key=%s: no string value to migrate", key,
            )
            continue
        config = SecretConfig(
            kind=SecretKind.SECRET,
            required=bool(setting.get("required", False)),
            description=setting.get("description"),
            encrypted=True,
        )
        try:
            stored = await store._write(key, value, context, config)
        except Exception as err:
            store._log(key, AccessAction.WRITE, context, False, str(err))
            raise
        store._log(
            key, AccessAction.WRITE, context, stored,
            None if stored else f"World {world_id} not found",
        )
        if stored:
            migrated.append(key)

    if migrated:
        # reload: every write above replaced the world record
        async with store._scope_lock(context):
            world = await store._worlds.get_world(world_id)
            if world:
                settings = world.get("settings") or {}
                for key in migrated:
                    settings.pop(key, None)
                world["settings"] = settings
                await store._worlds.update_world(world_id, world)
        logger.info(
            "Migrated %d secret(s) for world=%s", len(migrated), world_id,
        )
    return len(migrated)
