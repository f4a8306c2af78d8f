"""Tests for the bounded access log."""
import pytest

from agent_secrets.vault.audit import AccessAuditLog
from agent_secrets.vault.models import AccessAction

from conftest import user_context, world_context


class TestAccessAuditLog:
    """Tests for AccessAuditLog."""

    def test_default_capacity(self):
        assert AccessAuditLog().capacity == 1000

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            AccessAuditLog(0)

    def test_never_exceeds_capacity(self):
        """Test the 1001st entry evicts the first one."""
        log = AccessAuditLog()
        context = user_context()
        for i in range(1001):
            log.record(f"KEY_{i}", AccessAction.READ, context, True, float(i))
        assert len(log) == 1000
        assert log.filter("KEY_0") == []
        assert log.entries()[0].secret_key == "KEY_1"
        assert log.entries()[-1].secret_key == "KEY_1000"

    def test_record_uses_accessor(self):
        """Test entries are attributed to the requester."""
        entry = AccessAuditLog().record(
            "API_KEY", AccessAction.WRITE, world_context("admin-1"), False, 1.0,
            "Permission denied",
        )
        assert entry.accessed_by == "admin-1"
        assert entry.success is False
        assert entry.error == "Permission denied"

    def test_filter_by_key_and_context(self):
        """Test filtering by key, scope and owning ids."""
        log = AccessAuditLog()
        log.record("API_KEY", AccessAction.READ, user_context(), True, 1.0)
        log.record(
            "API_KEY", AccessAction.READ,
            user_context("user-2", user_id="user-2"), True, 2.0,
        )
        log.record("API_KEY", AccessAction.READ, world_context(), True, 3.0)
        log.record("OTHER", AccessAction.READ, user_context(), True, 4.0)

        assert len(log.filter("API_KEY")) == 3
        mine = log.filter("API_KEY", user_context())
        assert [e.timestamp for e in mine] == [1.0]
        assert [e.timestamp for e in log.filter("API_KEY", world_context())] == [3.0]

    def test_clear(self):
        log = AccessAuditLog(5)
        log.record("K", AccessAction.READ, user_context(), True, 1.0)
        log.clear()
        assert len(log) == 0
