"""Rule evaluators: pure functions from (building, snapshot) to alert candidates.

Evaluators never touch the store, the clock or the notification sinks. All
telemetry arrives in a BuildingSnapshot and the reference instant is
``snapshot.taken_at``. A snapshot field of None means the fetch failed and
the evaluator returns no candidates.
"""
import logging
from datetime import timedelta, timezone
from zoneinfo import ZoneInfo

import numpy as np

from models.alerts import AlertCandidate
from models.enums import AlertType, Priority, Category, SensorStatus
from models.telemetry import DEFAULT_YEARLY_CONSUMPTION
from utils.clock import hours_between
from utils.errors import ConfigurationError

logger = logging.getLogger("buildingalerts.alerts.evaluators")

# Energy
HIGH_CONSUMPTION_FACTOR = 2.0
HIGH_CONSUMPTION_CRITICAL_FACTOR = 3.0
CRITICAL_CONSUMPTION_FACTOR = 5.0
LOW_EFFICIENCY = 60
VERY_LOW_EFFICIENCY = 40
TARGET_EFFICIENCY = 75
DAYLIGHT_HOURS = (8, 18)
TREND_WINDOW = 12
TREND_FACTOR = 1.3

# Sensor
STALE_HOURS = 2
VERY_STALE_HOURS = 24

# Performance
MIN_DAILY_POINTS = 3
POOR_EFFICIENCY = 50
DECLINE_POINTS = 7
DECLINE_FACTOR = 0.9
MAX_CONSUMPTION_CV = 0.3

# System
FREQUENCY_MAX_ALERTS = 10
FREQUENCY_WINDOW_HOURS = 2
UNRESOLVED_CRITICAL_HOURS = 24

DEFAULT_POOL_TYPES = ("hallenbad", "pool", "swimming_pool")


class EvaluatorSettings:
    """Deployment-specific knobs the rules depend on."""

    def __init__(self, local_timezone="UTC", pool_building_types=DEFAULT_POOL_TYPES,
                 default_yearly_consumption=DEFAULT_YEARLY_CONSUMPTION,
                 unresolved_critical_hours=UNRESOLVED_CRITICAL_HOURS,
                 frequency_max_alerts=FREQUENCY_MAX_ALERTS,
                 frequency_window_hours=FREQUENCY_WINDOW_HOURS):
        self.tz = ZoneInfo(local_timezone) if local_timezone != "UTC" else timezone.utc
        self.pool_building_types = {t.lower() for t in pool_building_types}
        self.default_yearly_consumption = default_yearly_consumption
        self.unresolved_critical_hours = unresolved_critical_hours
        self.frequency_max_alerts = frequency_max_alerts
        self.frequency_window_hours = frequency_window_hours

    @classmethod
    def from_config(cls, config):
        engine_cfg = config.get("engine", {})
        alerts_cfg = config.get("alerts", {})
        return cls(
            local_timezone=engine_cfg.get("local_timezone", "UTC"),
            pool_building_types=engine_cfg.get("pool_building_types", DEFAULT_POOL_TYPES),
            default_yearly_consumption=alerts_cfg.get("default_yearly_consumption", DEFAULT_YEARLY_CONSUMPTION),
            unresolved_critical_hours=alerts_cfg.get("unresolved_critical_hours", UNRESOLVED_CRITICAL_HOURS),
            frequency_max_alerts=alerts_cfg.get("frequency_max_alerts", FREQUENCY_MAX_ALERTS),
            frequency_window_hours=alerts_cfg.get("frequency_window_hours", FREQUENCY_WINDOW_HOURS),
        )


DEFAULT_SETTINGS = EvaluatorSettings()


def _present(values):
    return [v for v in values if v is not None]


def _mean(values):
    return float(np.mean(values)) if len(values) else 0.0


def evaluate_energy(building, snapshot, settings=DEFAULT_SETTINGS):
    """High/critical consumption, low efficiency, missing production and trend."""
    readings = snapshot.hourly_readings
    if readings is None:
        return []

    if not readings:
        return [AlertCandidate(
            type=AlertType.WARNING,
            priority=Priority.MEDIUM,
            category=Category.DATA_MISSING,
            title="No Energy Data",
            message=f"No energy data received for {building.name} in the last 24 hours.",
        )]

    latest = readings[0]
    candidates = []

    if latest.consumption is None:
        _log_missing(building, latest, "consumption")
    else:
        expected_hourly = building.expected_hourly(settings.default_yearly_consumption)
        candidates.extend(_consumption_candidates(latest.consumption, expected_hourly))

    if latest.efficiency is None:
        _log_missing(building, latest, "efficiency")
    else:
        candidates.extend(_efficiency_candidates(latest.efficiency))

    is_pool = (building.type or "").lower() in settings.pool_building_types
    if latest.production is None:
        _log_missing(building, latest, "production")
    elif not is_pool and latest.production == 0:
        local_hour = latest.timestamp.astimezone(settings.tz).hour
        if DAYLIGHT_HOURS[0] <= local_hour <= DAYLIGHT_HOURS[1]:
            candidates.append(AlertCandidate(
                type=AlertType.WARNING,
                priority=Priority.MEDIUM,
                category=Category.NO_PRODUCTION,
                title="No Energy Production",
                message=(
                    "No renewable energy production detected during daylight hours. "
                    "Check solar panels or production equipment."
                ),
                metadata={"localHour": local_hour},
            ))

    if len(readings) >= TREND_WINDOW * 2:
        candidates.extend(_trend_candidates(readings))

    return candidates


def _log_missing(building, reading, name):
    logger.debug(
        f"Building {building.id}: reading at {reading.timestamp.isoformat()} has no {name}, "
        f"skipping {name} rules"
    )


def _consumption_candidates(consumption, expected_hourly):
    candidates = []
    if consumption > expected_hourly * HIGH_CONSUMPTION_FACTOR:
        pct_above = round((consumption / expected_hourly - 1) * 100)
        critical = consumption > expected_hourly * HIGH_CONSUMPTION_CRITICAL_FACTOR
        candidates.append(AlertCandidate(
            type=AlertType.WARNING,
            priority=Priority.CRITICAL if critical else Priority.HIGH,
            category=Category.HIGH_CONSUMPTION,
            title="High Energy Consumption",
            message=f"Current consumption ({consumption:.1f} kWh) is {pct_above}% above normal levels.",
            metadata={
                "currentConsumption": consumption,
                "expectedConsumption": expected_hourly,
                "exceedsBy": consumption - expected_hourly,
            },
        ))

    if consumption >= expected_hourly * CRITICAL_CONSUMPTION_FACTOR:
        candidates.append(AlertCandidate(
            type=AlertType.CRITICAL,
            priority=Priority.CRITICAL,
            category=Category.CRITICAL_CONSUMPTION,
            title="Critical Energy Consumption",
            message=(
                f"Energy consumption ({consumption:.1f} kWh) is critically high. "
                f"Immediate investigation required."
            ),
            metadata={
                "currentConsumption": consumption,
                "expectedConsumption": expected_hourly,
            },
        ))
    return candidates


def _efficiency_candidates(efficiency):
    if efficiency >= LOW_EFFICIENCY:
        return []
    return [AlertCandidate(
        type=AlertType.WARNING,
        priority=Priority.HIGH if efficiency < VERY_LOW_EFFICIENCY else Priority.MEDIUM,
        category=Category.LOW_EFFICIENCY,
        title="Low Energy Efficiency",
        message=(
            f"Energy efficiency ({efficiency:.1f}%) is below optimal levels. "
            f"Target efficiency is 75-85%."
        ),
        metadata={
            "currentEfficiency": efficiency,
            "targetEfficiency": TARGET_EFFICIENCY,
        },
    )]


def _trend_candidates(readings):
    """Newest 12 vs previous 12 hours; readings without consumption are left out."""
    recent = _present([r.consumption for r in readings[:TREND_WINDOW]])
    older = _present([r.consumption for r in readings[TREND_WINDOW:TREND_WINDOW * 2]])
    if not recent or not older:
        return []
    recent_avg = _mean(recent)
    older_avg = _mean(older)
    if recent_avg <= older_avg * TREND_FACTOR:
        return []
    change = round((recent_avg / older_avg - 1) * 100) if older_avg > 0 else None
    return [AlertCandidate(
        type=AlertType.INFO,
        priority=Priority.LOW,
        category=Category.CONSUMPTION_TREND,
        title="Increasing Consumption Trend",
        message=(
            f"Energy consumption has increased by {change}% compared to the previous 12 hours."
            if change is not None else
            "Energy consumption has risen from near zero over the previous 12 hours."
        ),
        metadata={"recentAverage": recent_avg, "previousAverage": older_avg},
    )]


def _sensor_threshold_candidates(sensor):
    value = sensor.current_value
    if value is None:
        return []
    low, high = sensor.threshold_bounds()
    candidates = []
    if high is not None and value > high:
        candidates.append(AlertCandidate(
            type=AlertType.WARNING,
            priority=Priority.MEDIUM,
            category=Category.VALUE_HIGH,
            title="Sensor Value Too High",
            message=f"{sensor.name} reports {value} which exceeds maximum threshold of {high}.",
            metadata={"sensorId": sensor.id, "sensorName": sensor.name, "value": value, "threshold": high},
        ))
    if low is not None and value < low:
        candidates.append(AlertCandidate(
            type=AlertType.WARNING,
            priority=Priority.MEDIUM,
            category=Category.VALUE_LOW,
            title="Sensor Value Too Low",
            message=f"{sensor.name} reports {value} which is below minimum threshold of {low}.",
            metadata={"sensorId": sensor.id, "sensorName": sensor.name, "value": value, "threshold": low},
        ))
    return candidates


def evaluate_sensors(building, snapshot, settings=DEFAULT_SETTINGS):
    """Error/offline status, stale data and threshold violations per sensor."""
    if snapshot.sensors is None:
        return []

    candidates = []
    for sensor in snapshot.sensors:
        ident = {"sensorId": sensor.id, "sensorName": sensor.name}

        if sensor.status == SensorStatus.ERROR.value:
            candidates.append(AlertCandidate(
                type=AlertType.CRITICAL,
                priority=Priority.CRITICAL,
                category=Category.SENSOR_ERROR,
                title="Sensor Error",
                message=f'Sensor "{sensor.name}" ({sensor.type}) is reporting an error status.',
                metadata=dict(ident),
            ))

        if sensor.status == SensorStatus.INACTIVE.value:
            candidates.append(AlertCandidate(
                type=AlertType.WARNING,
                priority=Priority.HIGH,
                category=Category.SENSOR_OFFLINE,
                title="Sensor Offline",
                message=f'Sensor "{sensor.name}" ({sensor.type}) is offline.',
                metadata=dict(ident),
            ))

        if sensor.last_reading_at is not None:
            hours = hours_between(sensor.last_reading_at, snapshot.taken_at)
            if hours > STALE_HOURS:
                candidates.append(AlertCandidate(
                    type=AlertType.WARNING,
                    priority=Priority.HIGH if hours > VERY_STALE_HOURS else Priority.MEDIUM,
                    category=Category.STALE_DATA,
                    title="Sensor Data Stale",
                    message=f'Sensor "{sensor.name}" has not reported data for {round(hours)} hours.',
                    metadata={**ident, "hoursSinceReading": round(hours)},
                ))

        try:
            candidates.extend(_sensor_threshold_candidates(sensor))
        except ConfigurationError as e:
            logger.warning(f"Skipping threshold check for building {building.id}: {e}")

    return candidates


def evaluate_performance(building, snapshot, settings=DEFAULT_SETTINGS):
    """Week-long efficiency level, efficiency decline and usage variability."""
    daily = snapshot.daily_readings
    if daily is None or len(daily) < MIN_DAILY_POINTS:
        return []

    candidates = []
    # Days without a value are left out of each statistic
    efficiencies = np.array(_present([r.efficiency for r in daily]), dtype=float)
    consumptions = np.array(_present([r.consumption for r in daily]), dtype=float)
    avg_efficiency = _mean(efficiencies)

    if len(efficiencies) >= MIN_DAILY_POINTS and avg_efficiency < POOR_EFFICIENCY:
        candidates.append(AlertCandidate(
            type=AlertType.WARNING,
            priority=Priority.HIGH,
            category=Category.POOR_EFFICIENCY,
            title="Poor Energy Efficiency",
            message=f"Average efficiency ({avg_efficiency:.1f}%) is significantly below target levels.",
            metadata={
                "avgEfficiency": avg_efficiency,
                "targetEfficiency": TARGET_EFFICIENCY,
                "period": "7 days",
            },
        ))

    if len(efficiencies) >= DECLINE_POINTS:
        # Readings are newest first
        recent_avg = float(efficiencies[:3].mean())
        older_avg = float(efficiencies[-3:].mean())
        if recent_avg < older_avg * DECLINE_FACTOR:
            candidates.append(AlertCandidate(
                type=AlertType.INFO,
                priority=Priority.MEDIUM,
                category=Category.EFFICIENCY_DECLINE,
                title="Declining Efficiency Trend",
                message=(
                    f"Energy efficiency has declined by {round((1 - recent_avg / older_avg) * 100)}% "
                    f"over the past week."
                ),
                metadata={"recentAverage": recent_avg, "olderAverage": older_avg},
            ))

    avg_consumption = _mean(consumptions)
    if len(consumptions) >= MIN_DAILY_POINTS and avg_consumption > 0:
        cv = float(consumptions.std()) / avg_consumption
        if cv > MAX_CONSUMPTION_CV:
            candidates.append(AlertCandidate(
                type=AlertType.INFO,
                priority=Priority.LOW,
                category=Category.USAGE_INCONSISTENT,
                title="Inconsistent Energy Usage",
                message=(
                    f"Energy consumption shows high variability ({round(cv * 100)}% coefficient "
                    f"of variation). Consider reviewing usage patterns."
                ),
                metadata={"coefficientOfVariation": cv},
            ))

    return candidates


def evaluate_system(building, snapshot, settings=DEFAULT_SETTINGS):
    """Long-unresolved critical alerts and alert storms."""
    candidates = []

    if snapshot.open_critical_alerts is not None:
        cutoff = snapshot.taken_at - timedelta(hours=settings.unresolved_critical_hours)
        stale_critical = [
            a for a in snapshot.open_critical_alerts
            if not a.is_resolved and a.priority == Priority.CRITICAL and a.created_at < cutoff
        ]
        if stale_critical:
            candidates.append(AlertCandidate(
                type=AlertType.CRITICAL,
                priority=Priority.CRITICAL,
                category=Category.UNRESOLVED_CRITICAL,
                title="Unresolved Critical Alerts",
                message=(
                    f"{len(stale_critical)} critical alerts have been unresolved for more than "
                    f"{settings.unresolved_critical_hours} hours."
                ),
                metadata={"count": len(stale_critical), "alertIds": [a.id for a in stale_critical]},
            ))

    if snapshot.recent_alerts is not None and len(snapshot.recent_alerts) > settings.frequency_max_alerts:
        count = len(snapshot.recent_alerts)
        candidates.append(AlertCandidate(
            type=AlertType.WARNING,
            priority=Priority.HIGH,
            category=Category.ALERT_FREQUENCY,
            title="High Alert Frequency",
            message=(
                f"{count} alerts generated in the last {settings.frequency_window_hours} hours. "
                f"This may indicate a systemic issue."
            ),
            metadata={"count": count},
        ))

    return candidates


EVALUATORS = {
    "energy": evaluate_energy,
    "sensor": evaluate_sensors,
    "performance": evaluate_performance,
    "system": evaluate_system,
}
