"""Deduplicating alert writer."""
import logging
from datetime import timedelta

from models.alerts import Alert, AlertEvent
from models.enums import EventType
from utils.clock import utc_now

logger = logging.getLogger("buildingalerts.alerts.writer")

DEDUP_WINDOW_HOURS = 6


class AlertWriter:
    """Persists candidates unless an open alert with the same title exists.

    At most one open alert per (building, title) is written within the dedup
    window. The duplicate check and the insert are two store calls, so two
    overlapping runs can both pass the check; that rare duplicate is accepted.
    """

    def __init__(self, store, sink=None, dedup_window_hours=DEDUP_WINDOW_HOURS, clock=utc_now):
        self.store = store
        self.sink = sink
        self.dedup_window = timedelta(hours=dedup_window_hours)
        self.clock = clock

    def submit(self, building_id, candidate):
        """Write ``candidate`` for ``building_id``; returns the Alert or None if suppressed.

        Store errors propagate to the caller. Publish errors are logged only.
        """
        now = self.clock()
        existing = self.store.find_open_alert(building_id, candidate.title, now - self.dedup_window)
        if existing is not None:
            logger.debug(f"Suppressed duplicate '{candidate.title}' for building {building_id} (open alert {existing.id})")
            return None

        alert = self.store.insert_alert(Alert.from_candidate(building_id, candidate, created_at=now))
        logger.info(f"Created {alert.priority.value} alert for building {building_id}: {alert.title}")
        self.publish(building_id, AlertEvent(EventType.INSERT, alert))
        return alert

    def publish(self, building_id, event):
        if self.sink is None:
            return
        try:
            self.sink.publish(building_id, event)
        except Exception as e:
            logger.warning(f"Publish of {event.event_type.value} for alert {event.alert.id} failed: {e}")
