"""Bounded in-memory access log of the Secret Store."""
import logging
from collections import deque
from typing import Iterator, Optional

from .models import AccessAction, AccessLogEntry, SecretContext

logger = logging.getLogger("agent_secrets.vault")

DEFAULT_CAPACITY = 1000


class AccessAuditLog:
    """Append-only ring of the most recent access attempts.

    Appending beyond ``capacity`` evicts the oldest entry. Nothing is
    persisted; the log starts empty on every process start.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("Audit log capacity must be at least 1")
        self._entries: deque[AccessLogEntry] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[AccessLogEntry]:
        return iter(list(self._entries))

    def append(self, entry: AccessLogEntry) -> None:
        self._entries.append(entry)
        logger.debug(
            "Access log: key=%s action=%s by=%s scope=%s success=%s%s",
            entry.secret_key,
            entry.action.value,
            entry.accessed_by,
            entry.context.scope.value,
            entry.success,
            f" error={entry.error}" if entry.error else "",
        )

    def record(
        self,
        key: str,
        action: AccessAction,
        context: SecretContext,
        success: bool,
        timestamp: float,
        error: Optional[str] = None,
    ) -> AccessLogEntry:
        """Build an entry from a store call and append it."""
        entry = AccessLogEntry(
            secret_key=key,
            accessed_by=context.accessor,
            action=action,
            timestamp=timestamp,
            context=context,
            success=success,
            error=error,
        )
        self.append(entry)
        return entry

    def entries(self) -> list[AccessLogEntry]:
        return list(self._entries)

    def filter(
        self, key: str, context: Optional[SecretContext] = None
    ) -> list[AccessLogEntry]:
        """Entries for ``key``, optionally restricted to a context's scope.

        When a context is given, its scope must match and any world or user id
        it carries must match as well.
        """
        result = []
        for entry in self._entries:
            if entry.secret_key != key:
                continue
            if context is not None:
                if entry.context.scope != context.scope:
                    continue
                if context.world_id and entry.context.world_id != context.world_id:
                    continue
                if context.user_id and entry.context.user_id != context.user_id:
                    continue
            result.append(entry)
        return result

    def clear(self) -> None:
        self._entries.clear()
