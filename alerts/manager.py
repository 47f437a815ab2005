"""Human-driven alert lifecycle actions and summary statistics."""
import logging

from models.alerts import AlertEvent
from models.enums import EventType, Priority
from utils.clock import utc_now
from utils.errors import AlertNotFoundError

logger = logging.getLogger("buildingalerts.alerts.manager")


class AlertManager:
    def __init__(self, store, sink=None, clock=utc_now):
        self.store = store
        self.sink = sink
        self.clock = clock

    def _get(self, alert_id):
        alert = self.store.get_alert(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        return alert

    def _publish(self, alert):
        if self.sink is None:
            return
        try:
            self.sink.publish(alert.building_id, AlertEvent(EventType.UPDATE, alert))
        except Exception as e:
            logger.warning(f"Publish of update for alert {alert.id} failed: {e}")

    def mark_read(self, alert_id):
        self._get(alert_id)
        self.store.mark_alert_read(alert_id)
        alert = self._get(alert_id)
        self._publish(alert)
        return alert

    def mark_all_read(self, building_ids):
        count = self.store.mark_alerts_read(list(building_ids))
        logger.info(f"Marked {count} alerts as read")
        return count

    def resolve(self, alert_id, user_id, note=None):
        """Resolve on behalf of ``user_id``. Already-resolved alerts are returned unchanged."""
        alert = self._get(alert_id)
        if alert.is_resolved:
            return alert
        updated = self.store.update_alert_resolution(
            alert_id,
            is_resolved=True,
            resolved_at=self.clock(),
            resolved_by=str(user_id),
            resolution_note=note,
            is_read=True,
        )
        alert = self._get(alert_id)
        if updated:
            logger.info(f"Alert {alert_id} resolved by user {user_id}")
            self._publish(alert)
        return alert

    def list_active(self, building_ids):
        return self.store.list_alerts(building_ids=list(building_ids), is_resolved=False)

    def get_statistics(self, building_ids):
        alerts = self.store.list_alerts(building_ids=list(building_ids))
        unresolved = [a for a in alerts if not a.is_resolved]
        return {
            "total": len(alerts),
            "unread": sum(1 for a in alerts if not a.is_read),
            "unresolved": len(unresolved),
            "critical": sum(1 for a in unresolved if a.priority == Priority.CRITICAL),
            "high": sum(1 for a in unresolved if a.priority == Priority.HIGH),
        }
