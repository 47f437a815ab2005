"""Auto-resolution of open alerts whose triggering condition has cleared."""
import logging

from models.alerts import AlertEvent, ResolutionDecision
from models.enums import AlertType, Category, EventType, Granularity, SensorStatus
from models.telemetry import DEFAULT_YEARLY_CONSUMPTION, HOURS_PER_YEAR
from utils.clock import utc_now

logger = logging.getLogger("buildingalerts.alerts.resolution")

FRESH_SENSOR_MINUTES = 60
NORMAL_CONSUMPTION_FACTOR = 1.2
CONSUMPTION_SAMPLE = 3
EFFICIENCY_SAMPLE = 6
RECOVERED_EFFICIENCY = 70
INFO_EXPIRY_HOURS = 24

REASON_SENSOR_FRESH = "sensor now reporting fresh data"
REASON_CONSUMPTION_NORMAL = "consumption returned to normal"
REASON_SENSOR_ACTIVE = "sensor restored to active"
REASON_INFO_EXPIRED = "info alert auto-expired"
REASON_EFFICIENCY_IMPROVED = "efficiency improved"


class AutoResolver:
    """Decides whether an open alert can be closed, and closes it.

    ``buildings`` maps building id to Building and supplies the yearly
    consumption used to judge "normal" consumption. Unknown buildings fall
    back to the default yearly consumption. Sensor lists are cached for the
    lifetime of the resolver, so create one per run.
    """

    def __init__(self, store, sink=None, buildings=None,
                 default_yearly_consumption=DEFAULT_YEARLY_CONSUMPTION, clock=utc_now):
        self.store = store
        self.sink = sink
        self.buildings = buildings or {}
        self.default_yearly_consumption = default_yearly_consumption
        self.clock = clock
        self._sensor_cache = {}

    def _expected_hourly(self, building_id):
        building = self.buildings.get(building_id)
        if building is None:
            return self.default_yearly_consumption / HOURS_PER_YEAR
        return building.expected_hourly(self.default_yearly_consumption)

    def _find_sensor(self, building_id, sensor_id):
        if building_id not in self._sensor_cache:
            self._sensor_cache[building_id] = {
                s.id: s for s in self.store.list_sensors(building_id)
            }
        return self._sensor_cache[building_id].get(str(sensor_id))

    def should_auto_resolve(self, alert, now=None):
        """Run the ordered resolution checks; the first that matches wins."""
        now = now or self.clock()
        if alert.is_resolved:
            return ResolutionDecision(resolve=False)

        sensor_id = (alert.metadata or {}).get("sensorId")

        if alert.category == Category.STALE_DATA.value and sensor_id:
            sensor = self._find_sensor(alert.building_id, sensor_id)
            if sensor and sensor.last_reading_at:
                minutes = (now - sensor.last_reading_at).total_seconds() / 60
                if minutes < FRESH_SENSOR_MINUTES:
                    return ResolutionDecision(True, REASON_SENSOR_FRESH)

        if "High Energy Consumption" in alert.title:
            recent = self.store.list_energy_readings(
                alert.building_id, Granularity.HOUR.value, limit=CONSUMPTION_SAMPLE
            )
            values = [r.consumption for r in recent if r.consumption is not None]
            if len(values) >= CONSUMPTION_SAMPLE:
                avg = sum(values) / len(values)
                if avg <= self._expected_hourly(alert.building_id) * NORMAL_CONSUMPTION_FACTOR:
                    return ResolutionDecision(True, REASON_CONSUMPTION_NORMAL)

        if "Sensor Error" in alert.title and sensor_id:
            sensor = self._find_sensor(alert.building_id, sensor_id)
            if sensor and sensor.status == SensorStatus.ACTIVE.value:
                return ResolutionDecision(True, REASON_SENSOR_ACTIVE)

        if alert.type == AlertType.INFO and alert.age_hours(now) > INFO_EXPIRY_HOURS:
            return ResolutionDecision(True, REASON_INFO_EXPIRED)

        if "Low Energy Efficiency" in alert.title:
            recent = self.store.list_energy_readings(
                alert.building_id, Granularity.HOUR.value, limit=EFFICIENCY_SAMPLE
            )
            values = [r.efficiency for r in recent if r.efficiency is not None]
            if len(values) >= EFFICIENCY_SAMPLE:
                avg = sum(values) / len(values)
                if avg >= RECOVERED_EFFICIENCY:
                    return ResolutionDecision(True, REASON_EFFICIENCY_IMPROVED)

        return ResolutionDecision(resolve=False)

    def resolve(self, alert, reason, now=None):
        """Mark ``alert`` system-resolved. Returns the resolved Alert, or None if it was already closed."""
        now = now or self.clock()
        updated = self.store.update_alert_resolution(
            alert.id,
            is_resolved=True,
            resolved_at=now,
            resolved_by=None,
            resolution_note=reason,
        )
        if not updated:
            logger.debug(f"Alert {alert.id} already resolved, skipping")
            return None

        resolved = alert.resolved(now, resolved_by=None, note=reason)
        logger.info(f"Auto-resolved alert {alert.id}: {alert.title} - {reason}")
        if self.sink is not None:
            try:
                self.sink.publish(alert.building_id, AlertEvent(EventType.UPDATE, resolved))
            except Exception as e:
                logger.warning(f"Publish of resolution for alert {alert.id} failed: {e}")
        return resolved
