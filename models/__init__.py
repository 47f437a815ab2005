"""Data models."""
from models.enums import (
    AlertType, Priority, Category, BuildingStatus, SensorStatus, Granularity, EventType, Period,
)
from models.telemetry import Building, TelemetryReading, Sensor, BuildingSnapshot
from models.alerts import AlertCandidate, Alert, AlertEvent, ResolutionDecision
