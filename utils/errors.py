"""Error taxonomy for the alert engine."""


class AlertEngineError(Exception):
    """Base class for all alert engine errors."""


class StoreError(AlertEngineError):
    """Telemetry or alert store call failed."""
    def __init__(self, message, operation=None):
        super().__init__(message)
        self.operation = operation


class TransientStoreError(StoreError):
    """Timeout or connectivity failure; the call may succeed if retried."""


class DataIntegrityError(AlertEngineError):
    """Record is missing an expected field or carries an unusable value."""


class PublishError(AlertEngineError):
    """Notification fan-out failed. Never affects persisted alert state."""


class ConfigurationError(AlertEngineError):
    """Malformed configuration or rule metadata (e.g. sensor thresholds)."""


class AlertNotFoundError(AlertEngineError):
    def __init__(self, alert_id):
        super().__init__(f"Alert {alert_id} not found")
        self.alert_id = alert_id
