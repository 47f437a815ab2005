"""Tests for user-driven alert actions and statistics."""
import pytest

from alerts.manager import AlertManager
from models.alerts import Alert
from models.enums import AlertType, Priority, EventType
from utils.errors import AlertNotFoundError
from conftest import NOW


def _insert(db, building_id="b1", priority=Priority.MEDIUM, title="Sensor Data Stale"):
    return db.insert_alert(Alert(building_id=building_id, type=AlertType.WARNING, title=title,
                                 priority=priority, created_at=NOW))


@pytest.fixture
def manager(seeded_db, sink, clock):
    return AlertManager(seeded_db, sink, clock=clock)


class TestAlertManager:
    def test_mark_read(self, seeded_db, manager, sink):
        alert = _insert(seeded_db)
        updated = manager.mark_read(alert.id)
        assert updated.is_read
        assert sink.events[-1][1].event_type == EventType.UPDATE

    def test_mark_read_unknown(self, manager):
        with pytest.raises(AlertNotFoundError):
            manager.mark_read(999)

    def test_mark_all_read_scoped_to_buildings(self, seeded_db, manager):
        _insert(seeded_db, "b1")
        _insert(seeded_db, "b2")
        other = _insert(seeded_db, "b3")

        assert manager.mark_all_read(["b1", "b2"]) == 2
        assert not seeded_db.get_alert(other.id).is_read
        assert manager.mark_all_read(["b1", "b2"]) == 0
        assert manager.mark_all_read([]) == 0

    def test_manual_resolve(self, seeded_db, manager, sink):
        alert = _insert(seeded_db)
        resolved = manager.resolve(alert.id, "u1", note="replaced battery")

        assert resolved.is_resolved
        assert resolved.is_read
        assert resolved.resolved_by == "u1"
        assert resolved.resolved_at == NOW
        assert resolved.resolution_note == "replaced battery"
        assert not resolved.auto_resolved
        assert sink.events[-1][1].to_dict()["alert"]["auto_resolved"] is False

    def test_resolve_is_terminal(self, seeded_db, manager, sink):
        alert = _insert(seeded_db)
        manager.resolve(alert.id, "u1")
        again = manager.resolve(alert.id, "u2", note="late")

        assert again.resolved_by == "u1"
        assert again.resolution_note is None
        assert len(sink.events) == 1

    def test_resolve_unknown(self, manager):
        with pytest.raises(AlertNotFoundError):
            manager.resolve(42, "u1")

    def test_list_active(self, seeded_db, manager):
        open_alert = _insert(seeded_db)
        closed = _insert(seeded_db, title="Sensor Error")
        manager.resolve(closed.id, "u1")

        assert [a.id for a in manager.list_active(["b1"])] == [open_alert.id]

    def test_statistics(self, seeded_db, manager):
        _insert(seeded_db, priority=Priority.CRITICAL)
        _insert(seeded_db, priority=Priority.HIGH)
        resolved = _insert(seeded_db, priority=Priority.CRITICAL)
        _insert(seeded_db, "b3", priority=Priority.CRITICAL)
        manager.resolve(resolved.id, "u1")

        stats = manager.get_statistics(["b1", "b2"])
        assert stats == {"total": 3, "unread": 2, "unresolved": 2, "critical": 1, "high": 1}
