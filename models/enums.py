"""Enums for alert types, priorities, categories and telemetry states."""
from enum import Enum


class AlertType(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Category(str, Enum):
    # Energy
    DATA_MISSING = "data_missing"
    HIGH_CONSUMPTION = "high_consumption"
    CRITICAL_CONSUMPTION = "critical_consumption"
    LOW_EFFICIENCY = "low_efficiency"
    NO_PRODUCTION = "no_production"
    CONSUMPTION_TREND = "consumption_trend"
    # Sensor
    SENSOR_ERROR = "sensor_error"
    SENSOR_OFFLINE = "sensor_offline"
    STALE_DATA = "stale_data"
    VALUE_HIGH = "value_high"
    VALUE_LOW = "value_low"
    # Performance
    POOR_EFFICIENCY = "poor_efficiency"
    EFFICIENCY_DECLINE = "efficiency_decline"
    USAGE_INCONSISTENT = "usage_inconsistent"
    # System
    UNRESOLVED_CRITICAL = "unresolved_critical"
    ALERT_FREQUENCY = "alert_frequency"


class BuildingStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    MAINTENANCE = "maintenance"


class SensorStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"
    MAINTENANCE = "maintenance"


class Granularity(str, Enum):
    HOUR = "hour"
    DAY = "day"


class EventType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"


class Period(str, Enum):
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
