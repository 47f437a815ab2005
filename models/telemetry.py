"""Dataclasses for buildings, sensors and energy telemetry."""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from numbers import Number
from typing import Optional

from models.enums import BuildingStatus, SensorStatus, Granularity
from utils.clock import parse_timestamp, utc_now
from utils.errors import ConfigurationError, DataIntegrityError

DEFAULT_YEARLY_CONSUMPTION = 100_000  # kWh/yr
HOURS_PER_YEAR = 365 * 24

logger = logging.getLogger("buildingalerts.models.telemetry")


@dataclass
class Building:
    id: str = ""
    name: str = ""
    type: str = ""
    yearly_consumption: Optional[float] = None
    status: str = BuildingStatus.ONLINE.value
    owner_id: Optional[str] = None

    def effective_yearly_consumption(self, default=DEFAULT_YEARLY_CONSUMPTION):
        """Yearly consumption, falling back to ``default`` when unset or unusable."""
        try:
            return self._checked_yearly_consumption()
        except DataIntegrityError as e:
            logger.debug(f"{e}; using default {default}")
            return default

    def _checked_yearly_consumption(self):
        value = self.yearly_consumption
        if value is None or not isinstance(value, Number) or value <= 0:
            raise DataIntegrityError(f"Building {self.id} has no usable yearly_consumption ({value!r})")
        return float(value)

    def expected_hourly(self, default=DEFAULT_YEARLY_CONSUMPTION):
        return self.effective_yearly_consumption(default) / HOURS_PER_YEAR

    @classmethod
    def from_dict(cls, d):
        return cls(
            id=str(d["id"]),
            name=d.get("name") or "",
            type=d.get("type") or "",
            yearly_consumption=d.get("yearly_consumption"),
            status=d.get("status") or BuildingStatus.ONLINE.value,
            owner_id=d.get("owner_id"),
        )


@dataclass
class TelemetryReading:
    """One energy data point. A field the meter did not report stays None."""
    building_id: str = ""
    timestamp: datetime = field(default_factory=utc_now)
    consumption: Optional[float] = None
    production: Optional[float] = None
    efficiency: Optional[float] = None
    co2_saved: Optional[float] = None
    granularity: str = Granularity.HOUR.value

    @classmethod
    def from_dict(cls, d):
        return cls(
            building_id=str(d["building_id"]),
            timestamp=parse_timestamp(d["timestamp"]),
            consumption=d.get("consumption"),
            production=d.get("production"),
            efficiency=d.get("efficiency"),
            co2_saved=d.get("co2_saved"),
            granularity=d.get("granularity") or Granularity.HOUR.value,
        )


@dataclass
class Sensor:
    id: str = ""
    building_id: str = ""
    name: str = ""
    type: str = ""
    status: str = SensorStatus.ACTIVE.value
    last_reading_at: Optional[datetime] = None
    current_value: Optional[float] = None
    alert_threshold: Optional[object] = None

    def threshold_bounds(self):
        """Return ``(min, max)`` from ``alert_threshold``; either may be None.

        Raises ConfigurationError when the threshold is present but is not a
        mapping of numeric bounds.
        """
        raw = self.alert_threshold
        if raw is None:
            return None, None
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Sensor {self.id}: alert_threshold must be a mapping, got {raw!r}")
        bounds = []
        for key in ("min", "max"):
            value = raw.get(key)
            if value is not None and (isinstance(value, bool) or not isinstance(value, Number)):
                raise ConfigurationError(f"Sensor {self.id}: alert_threshold.{key} is not numeric ({value!r})")
            bounds.append(value)
        return bounds[0], bounds[1]

    @classmethod
    def from_dict(cls, d):
        return cls(
            id=str(d["id"]),
            building_id=str(d["building_id"]),
            name=d.get("name") or "",
            type=d.get("type") or "",
            status=d.get("status") or SensorStatus.ACTIVE.value,
            last_reading_at=parse_timestamp(d.get("last_reading_at")),
            current_value=d.get("current_value"),
            alert_threshold=d.get("alert_threshold"),
        )


@dataclass
class BuildingSnapshot:
    """Telemetry gathered for one building at ``taken_at``.

    A field left as None could not be fetched; the matching evaluator
    contributes no candidates. An empty list means the fetch succeeded
    and returned nothing.
    """
    building_id: str = ""
    taken_at: datetime = field(default_factory=utc_now)
    hourly_readings: Optional[list] = None
    daily_readings: Optional[list] = None
    sensors: Optional[list] = None
    open_critical_alerts: Optional[list] = None
    recent_alerts: Optional[list] = None
