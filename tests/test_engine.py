"""Tests for batch generation and auto-resolution runs."""
import threading
from datetime import timedelta

import pytest

from alerts.engine import AlertEngine
from models.alerts import Alert
from models.enums import AlertType, Priority, EventType
from utils.errors import TransientStoreError
from conftest import NOW, make_sensor, hourly_readings, daily_readings


@pytest.fixture
def engine(seeded_db, sink, clock):
    return AlertEngine(seeded_db, sink, max_concurrent_buildings=4, clock=clock)


def _seed_healthy(db, building_id):
    db.save_readings(hourly_readings(building_id, [10] * 24))
    db.save_readings(daily_readings(building_id, [80] * 7))


class FlakyStore:
    """Delegates to a real store but fails energy reads for chosen buildings."""
    def __init__(self, db, failing=()):
        self.db = db
        self.failing = set(failing)

    def __getattr__(self, name):
        return getattr(self.db, name)

    def list_energy_readings(self, building_id, granularity, limit=None, since=None):
        if building_id in self.failing:
            raise TransientStoreError("energy store timed out", operation="list_energy_readings")
        return self.db.list_energy_readings(building_id, granularity, limit=limit, since=since)


class TestFetchSnapshot:
    def test_snapshot_gathers_all_slices(self, seeded_db, engine):
        _seed_healthy(seeded_db, "b1")
        seeded_db.save_sensor(make_sensor())
        building = seeded_db.list_buildings()[0]

        snap = engine.fetch_snapshot(building)
        assert snap.taken_at == NOW
        assert len(snap.hourly_readings) == 24
        assert snap.hourly_readings[0].timestamp == NOW
        assert len(snap.daily_readings) == 7
        assert len(snap.sensors) == 1
        assert snap.open_critical_alerts == []
        assert snap.recent_alerts == []

    def test_failed_slice_left_empty(self, seeded_db, clock):
        engine = AlertEngine(FlakyStore(seeded_db, failing={"b1"}), clock=clock)
        snap = engine.fetch_snapshot(seeded_db.list_buildings()[0])
        assert snap.hourly_readings is None
        assert snap.daily_readings is None
        assert snap.sensors == []


class TestGenerateForAllBuildings:
    def test_only_online_buildings(self, seeded_db, engine):
        report = engine.generate_for_all_buildings()
        assert report.total_buildings == 3
        assert [r.building_id for r in report.results] == ["b1", "b2", "b3"]

    def test_no_data_alerts(self, engine, sink):
        """Buildings with no telemetry get one 'No Energy Data' warning each."""
        report = engine.generate_for_all_buildings()
        assert report.total_alerts == 3
        for result in report.results:
            assert [a.title for a in result.alerts] == ["No Energy Data"]
        assert all(e.event_type == EventType.INSERT for _, e in sink.events)

    def test_rerun_is_idempotent(self, seeded_db, engine):
        seeded_db.save_readings(hourly_readings("b1", [25]))
        first = engine.generate_for_all_buildings()
        second = engine.generate_for_all_buildings()

        assert first.total_alerts > 0
        assert second.total_alerts == 0
        assert sum(r.suppressed for r in second.results) == first.total_alerts
        assert len(seeded_db.list_alerts()) == first.total_alerts

    def test_high_consumption_scenario(self, seeded_db, engine):
        _seed_healthy(seeded_db, "b1")
        seeded_db.save_readings(hourly_readings("b1", [25]))
        report = engine.generate_for_all_buildings()

        b1 = report.results[0]
        assert b1.ok
        assert [a.title for a in b1.alerts] == ["High Energy Consumption"]
        alert = b1.alerts[0]
        assert alert.priority == Priority.HIGH
        assert alert.metadata["expectedConsumption"] == 10

    def test_failing_building_does_not_stop_batch(self, seeded_db, engine, monkeypatch):
        original = engine.check_building

        def check(building):
            if building.id == "b2":
                raise RuntimeError("boom")
            return original(building)

        monkeypatch.setattr(engine, "check_building", check)
        report = engine.generate_for_all_buildings()

        by_id = {r.building_id: r for r in report.results}
        assert by_id["b2"].error == "boom"
        assert not by_id["b2"].ok
        assert by_id["b1"].ok and by_id["b3"].ok
        assert [r.building_id for r in report.failed] == ["b2"]
        assert report.total_alerts == 2

    def test_energy_store_outage_degrades_gracefully(self, seeded_db, sink, clock):
        seeded_db.save_sensor(make_sensor(building_id="b2", status="error"))
        engine = AlertEngine(FlakyStore(seeded_db, failing={"b2"}), sink, clock=clock)
        report = engine.generate_for_all_buildings()

        b2 = report.results[1]
        assert b2.ok
        assert [a.title for a in b2.alerts] == ["Sensor Error"]

    def test_write_error_recorded(self, seeded_db, sink, clock):
        class BrokenInsert(FlakyStore):
            def insert_alert(self, alert):
                raise TransientStoreError("insert timed out", operation="insert_alert")

        engine = AlertEngine(BrokenInsert(seeded_db), sink, clock=clock)
        report = engine.generate_for_all_buildings()
        assert report.total_alerts == 0
        for result in report.results:
            assert result.error is None
            assert result.errors == ["No Energy Data: insert timed out"]

    def test_cancelled_run_starts_nothing(self, seeded_db, engine):
        cancel = threading.Event()
        cancel.set()
        report = engine.generate_for_all_buildings(cancel_event=cancel)

        assert all(r.cancelled for r in report.results)
        assert report.total_alerts == 0
        assert seeded_db.list_alerts() == []

    def test_cancel_mid_run_lets_in_flight_buildings_finish(self, seeded_db, sink, clock, monkeypatch):
        """Two buildings are running when the event is set; the third never starts."""
        engine = AlertEngine(seeded_db, sink, max_concurrent_buildings=2, clock=clock)
        cancel = threading.Event()
        second_started = threading.Event()
        original = engine.check_building

        def check(building):
            if building.id == "b1":
                assert second_started.wait(5)
                cancel.set()
            elif building.id == "b2":
                second_started.set()
                assert cancel.wait(5)
            return original(building)

        monkeypatch.setattr(engine, "check_building", check)
        report = engine.generate_for_all_buildings(cancel_event=cancel)

        by_id = {r.building_id: r for r in report.results}
        assert by_id["b1"].ok and by_id["b1"].alerts_generated == 1
        assert by_id["b2"].ok and by_id["b2"].alerts_generated == 1
        assert by_id["b3"].cancelled
        assert by_id["b3"].alerts == []
        assert report.total_alerts == 2
        assert {a.building_id for a in seeded_db.list_alerts()} == {"b1", "b2"}

    def test_building_listing_failure_reported(self, seeded_db, engine, monkeypatch):
        def down(**kwargs):
            raise TransientStoreError("list_buildings timed out after 10s", operation="list_buildings")

        monkeypatch.setattr(seeded_db, "list_buildings", down)
        report = engine.generate_for_all_buildings()

        assert report.error == "list_buildings timed out after 10s"
        assert report.results == []
        assert report.total_buildings == 0
        assert report.total_alerts == 0

    def test_evaluator_failure_is_isolated(self, seeded_db, engine, monkeypatch):
        import alerts.engine as engine_module

        def broken(building, snapshot, settings):
            raise ValueError("bad rule")

        monkeypatch.setitem(engine_module.EVALUATORS, "performance", broken)
        report = engine.generate_for_all_buildings()
        assert report.total_alerts == 3


class TestAutoResolveAll:
    def _insert(self, db, title, type=AlertType.WARNING, created_at=NOW, metadata=None):
        return db.insert_alert(Alert(
            building_id="b1", type=type, title=title, priority=Priority.MEDIUM,
            metadata=metadata or {}, created_at=created_at,
        ))

    def test_resolves_cleared_conditions(self, seeded_db, engine, sink):
        seeded_db.save_readings(hourly_readings("b1", [10, 10, 10]))
        high = self._insert(seeded_db, "High Energy Consumption")
        trend = self._insert(seeded_db, "Increasing Consumption Trend", type=AlertType.INFO,
                             created_at=NOW - timedelta(hours=30))
        stuck = self._insert(seeded_db, "Unresolved Critical Alerts")

        report = engine.auto_resolve_all()
        assert report.total_checked == 3
        assert report.resolved == 2
        assert {a.id for a in report.resolved_alerts} == {high.id, trend.id}
        assert not seeded_db.get_alert(stuck.id).is_resolved
        assert all(e.event_type == EventType.UPDATE for _, e in sink.events)

    def test_second_run_resolves_nothing(self, seeded_db, engine):
        self._insert(seeded_db, "Increasing Consumption Trend", type=AlertType.INFO,
                     created_at=NOW - timedelta(hours=30))
        assert engine.auto_resolve_all().resolved == 1
        report = engine.auto_resolve_all()
        assert report.total_checked == 0
        assert report.resolved == 0

    def test_per_alert_errors_collected(self, seeded_db, sink, clock):
        engine = AlertEngine(FlakyStore(seeded_db, failing={"b1"}), sink, clock=clock)
        broken = self._insert(seeded_db, "High Energy Consumption")
        expired = self._insert(seeded_db, "Increasing Consumption Trend", type=AlertType.INFO,
                               created_at=NOW - timedelta(hours=30))

        report = engine.auto_resolve_all()
        assert report.resolved == 1
        assert report.resolved_alerts[0].id == expired.id
        assert report.errors == [{"alert_id": broken.id, "error": "energy store timed out"}]

    def test_open_alert_listing_failure_reported(self, seeded_db, engine, monkeypatch):
        self._insert(seeded_db, "Increasing Consumption Trend", type=AlertType.INFO,
                     created_at=NOW - timedelta(hours=30))

        def down(**kwargs):
            raise TransientStoreError("list_alerts timed out after 10s", operation="list_alerts")

        monkeypatch.setattr(seeded_db, "list_alerts", down)
        report = engine.auto_resolve_all()

        assert report.error == "list_alerts timed out after 10s"
        assert report.total_checked == 0
        assert report.resolved == 0
