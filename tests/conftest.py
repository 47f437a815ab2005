"""Shared test fixtures."""
import os
import sys
import pytest
import tempfile
from datetime import datetime, timedelta, timezone

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.database import Database
from models.telemetry import Building, Sensor, TelemetryReading, BuildingSnapshot

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class RecordingSink:
    """Notification sink that keeps every published event."""
    def __init__(self):
        self.events = []

    def publish(self, building_id, event):
        self.events.append((building_id, event))


class FailingSink:
    def publish(self, building_id, event):
        raise ConnectionError("broadcaster down")


def make_building(id="b1", name="Town Hall", type="office", yearly_consumption=87_600,
                  status="online", owner_id="u1"):
    return Building(id=id, name=name, type=type, yearly_consumption=yearly_consumption,
                    status=status, owner_id=owner_id)


def hourly_readings(building_id, consumptions, efficiency=80.0, production=5.0, start=NOW):
    """Hourly readings, newest first, one hour apart ending at ``start``."""
    return [
        TelemetryReading(building_id=building_id, timestamp=start - timedelta(hours=i),
                         consumption=c, production=production, efficiency=efficiency,
                         granularity="hour")
        for i, c in enumerate(consumptions)
    ]


def daily_readings(building_id, efficiencies, consumptions=None, start=NOW):
    """Daily readings, newest first."""
    consumptions = consumptions or [100.0] * len(efficiencies)
    return [
        TelemetryReading(building_id=building_id, timestamp=start - timedelta(days=i),
                         consumption=c, production=10.0, efficiency=e, granularity="day")
        for i, (e, c) in enumerate(zip(efficiencies, consumptions))
    ]


def make_sensor(id="s1", building_id="b1", name="Boiler Temp", status="active",
                last_reading_at=None, current_value=None, alert_threshold=None):
    return Sensor(id=id, building_id=building_id, name=name, type="temperature", status=status,
                  last_reading_at=last_reading_at or NOW - timedelta(minutes=10),
                  current_value=current_value, alert_threshold=alert_threshold)


def snapshot(building_id="b1", **fields):
    return BuildingSnapshot(building_id=building_id, taken_at=NOW, **fields)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.unlink(db_path + suffix)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def seeded_db(temp_db):
    """Three online buildings and one offline, owned by u1/u2."""
    temp_db.save_building(make_building("b1", "Town Hall"))
    temp_db.save_building(make_building("b2", "Library", yearly_consumption=None))
    temp_db.save_building(make_building("b3", "School", owner_id="u2"))
    temp_db.save_building(make_building("b4", "Depot", status="offline"))
    return temp_db
