"""Dataclasses for alert candidates, persisted alerts and fan-out events."""
import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from models.enums import AlertType, Priority, Category, EventType
from utils.clock import parse_timestamp, utc_now

ENGINE_SOURCE = "AlertEngine"


@dataclass(frozen=True)
class AlertCandidate:
    """A rule hit, not yet deduplicated or persisted."""
    type: AlertType
    priority: Priority
    category: Category
    title: str
    message: str
    metadata: dict = field(default_factory=dict)


@dataclass
class Alert:
    id: Optional[int] = None
    building_id: str = ""
    type: AlertType = AlertType.INFO
    title: str = ""
    message: str = ""
    priority: Priority = Priority.LOW
    category: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    is_read: bool = False
    is_resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution_note: Optional[str] = None
    source: str = ENGINE_SOURCE

    @classmethod
    def from_candidate(cls, building_id, candidate, created_at=None):
        return cls(
            building_id=building_id,
            type=candidate.type,
            title=candidate.title,
            message=candidate.message,
            priority=candidate.priority,
            category=candidate.category.value,
            metadata=dict(candidate.metadata),
            created_at=created_at or utc_now(),
        )

    @property
    def auto_resolved(self):
        return self.is_resolved and self.resolved_by is None

    def age_hours(self, now=None):
        now = now or utc_now()
        return (now - self.created_at).total_seconds() / 3600

    def resolved(self, resolved_at, resolved_by=None, note=None):
        """Return a resolved copy; resolution is terminal."""
        return replace(
            self,
            is_resolved=True,
            resolved_at=resolved_at,
            resolved_by=resolved_by,
            resolution_note=note,
        )

    def to_dict(self):
        """Flatten into a JSON-serializable dict (event payloads, DB rows)."""
        return {
            "id": self.id,
            "building_id": self.building_id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "priority": self.priority.value,
            "category": self.category,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "is_read": self.is_read,
            "is_resolved": self.is_resolved,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolved_by": self.resolved_by,
            "resolution_note": self.resolution_note,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, d):
        """Reconstruct from a flat dict (e.g., DB row)."""
        metadata = d.get("metadata") or {}
        if isinstance(metadata, str):
            metadata = json.loads(metadata)
        return cls(
            id=d.get("id"),
            building_id=str(d["building_id"]),
            type=AlertType(d["type"]),
            title=d["title"],
            message=d.get("message") or "",
            priority=Priority(d["priority"]),
            category=d.get("category"),
            metadata=metadata,
            created_at=parse_timestamp(d["created_at"]),
            is_read=bool(d.get("is_read", False)),
            is_resolved=bool(d.get("is_resolved", False)),
            resolved_at=parse_timestamp(d.get("resolved_at")),
            resolved_by=d.get("resolved_by"),
            resolution_note=d.get("resolution_note"),
            source=d.get("source") or ENGINE_SOURCE,
        )


@dataclass
class AlertEvent:
    event_type: EventType
    alert: Alert

    def to_dict(self):
        payload = self.alert.to_dict()
        if self.event_type == EventType.UPDATE and self.alert.is_resolved:
            payload["auto_resolved"] = self.alert.auto_resolved
        return {"event_type": self.event_type.value, "alert": payload}


@dataclass
class ResolutionDecision:
    resolve: bool = False
    reason: Optional[str] = None
