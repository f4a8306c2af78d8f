"""
Vault Backends — Persistence collaborators behind each secret scope.

- global: ``SettingsStore`` keyed by secret name, plus a read-only mapping of
  legacy environment settings consulted when no record exists.
- world: ``WorldStore`` holding one world dict per world id; secrets live in
  its ``secrets`` field keyed by name, member roles in ``roles``.
- user: ``RecordStore`` of typed records owned by an entity; each user secret
  is one record with ``type == "secret"``.

The in-memory implementations deep-copy on the way in and out so callers
cannot mutate stored state without going through the store API.
"""
import copy
from typing import Any, Optional, Protocol

from .models import Role

SECRET_RECORD_TYPE = "secret"


class SettingsStore(Protocol):
    async def get(self, key: str) -> Optional[dict]:
        ...

    async def put(self, key: str, data: dict) -> None:
        ...

    async def delete(self, key: str) -> bool:
        ...

    async def items(self) -> dict[str, dict]:
        ...


class WorldStore(Protocol):
    async def get_world(self, world_id: str) -> Optional[dict]:
        ...

    async def update_world(self, world_id: str, world: dict) -> None:
        ...


class RecordStore(Protocol):
    async def list_records(self, entity_id: str) -> list[dict]:
        ...

    async def create_record(self, record: dict) -> None:
        ...

    async def update_record(self, record: dict) -> None:
        ...

    async def delete_record(self, record_id: str) -> bool:
        ...


class RoleLookup(Protocol):
    async def get_role(self, world_id: str, entity_id: Optional[str]) -> Role:
        ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------

class MemorySettingsStore:
    """Agent-wide secret records held in process memory."""

    def __init__(self) -> None:
        self._data: dict[str, dict] = {}

    async def get(self, key: str) -> Optional[dict]:
        data = self._data.get(key)
        return copy.deepcopy(data) if data is not None else None

    async def put(self, key: str, data: dict) -> None:
        self._data[key] = copy.deepcopy(data)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def items(self) -> dict[str, dict]:
        return copy.deepcopy(self._data)


class MemoryWorldStore:
    """World records keyed by world id."""

    def __init__(self, worlds: Optional[dict[str, dict]] = None):
        self._worlds: dict[str, dict] = copy.deepcopy(worlds or {})

    def add_world(
        self,
        world_id: str,
        roles: Optional[dict[str, Any]] = None,
        settings: Optional[dict[str, Any]] = None,
    ) -> dict:
        """Register a world with member roles and legacy settings."""
        world = {
            "id": world_id,
            "roles": {
                entity: Role(role).value for entity, role in (roles or {}).items()
            },
            "settings": copy.deepcopy(settings or {}),
            "secrets": {},
        }
        self._worlds[world_id] = world
        return copy.deepcopy(world)

    async def get_world(self, world_id: str) -> Optional[dict]:
        world = self._worlds.get(world_id)
        return copy.deepcopy(world) if world is not None else None

    async def update_world(self, world_id: str, world: dict) -> None:
        if world_id not in self._worlds:
            raise KeyError(f"World {world_id} not found")
        self._worlds[world_id] = copy.deepcopy(world)


class MemoryRecordStore:
    """Typed records owned by entities."""

    def __init__(self) -> None:
        self._records: dict[str, dict] = {}

    async def list_records(self, entity_id: str) -> list[dict]:
        return [
            copy.deepcopy(record)
            for record in self._records.values()
            if record.get("entity_id") == entity_id
        ]

    async def create_record(self, record: dict) -> None:
        if record["id"] in self._records:
            raise KeyError(f"Record {record['id']} already exists")
        self._records[record["id"]] = copy.deepcopy(record)

    async def update_record(self, record: dict) -> None:
        if record["id"] not in self._records:
            raise KeyError(f"Record {record['id']} not found")
        self._records[record["id"]] = copy.deepcopy(record)

    async def delete_record(self, record_id: str) -> bool:
        return self._records.pop(record_id, None) is not None


class WorldRoleLookup:
    """Resolve member roles from the ``roles`` map of a world record."""

    def __init__(self, worlds: WorldStore):
        self._worlds = worlds

    async def get_role(self, world_id: str, entity_id: Optional[str]) -> Role:
        if not entity_id:
            return Role.NONE
        world = await self._worlds.get_world(world_id)
        if not world:
            return Role.NONE
        raw = (world.get("roles") or {}).get(entity_id)
        if raw is None:
            return Role.NONE
        try:
            return Role(str(raw).upper())
        except ValueError:
            return Role.NONE
