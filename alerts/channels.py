"""Notification sinks for alert-created and alert-resolved events."""
import json
import logging
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

import requests
from rich.markup import escape

from utils.errors import PublishError

logger = logging.getLogger("buildingalerts.alerts.channels")


@runtime_checkable
class NotificationSink(Protocol):
    def publish(self, building_id, event) -> None: ...


class ConsoleChannel:
    """Print alert events to the terminal with rich formatting."""

    PRIORITY_STYLES = {
        "critical": "bold white on red",
        "high": "bold red",
        "medium": "bold yellow",
        "low": "bold blue",
    }

    def __init__(self, console=None):
        if console is None:
            from rich.console import Console
            console = Console()
        self.console = console

    def publish(self, building_id, event):
        alert = event.alert
        if alert.is_resolved:
            how = "auto" if alert.auto_resolved else f"by {alert.resolved_by}"
            detail = escape(f"[{building_id}] {alert.title} ({how}): {alert.resolution_note or ''}")
            self.console.print(f"[green]RESOLVED[/green] {detail}", highlight=False)
            return
        style = self.PRIORITY_STYLES.get(alert.priority.value, "bold")
        label = escape(f"[{alert.priority.value.upper()}]")
        detail = escape(f"[{building_id}] {alert.title}: {alert.message}")
        self.console.print(f"[{style}]{label}[/] {detail}", highlight=False)


class FileChannel:
    """Append alert events to a JSON lines log file."""

    def __init__(self, log_path="data/alert_events.jsonl"):
        self.log_path = Path(log_path)
        self._lock = threading.Lock()

    def publish(self, building_id, event):
        entry = {"building_id": building_id, **event.to_dict()}
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with self._lock, open(self.log_path, "a") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            raise PublishError(f"Failed to write alert event to {self.log_path}: {e}") from e


class WebhookChannel:
    """POST alert events as JSON to a subscriber endpoint."""

    def __init__(self, url, timeout=5, session=None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": "BuildingAlerts/1.0"})

    def publish(self, building_id, event):
        payload = {"building_id": building_id, **event.to_dict()}
        try:
            resp = self.session.post(
                self.url, data=json.dumps(payload, default=str),
                headers={"Content-Type": "application/json"}, timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise PublishError(f"Webhook {self.url} unreachable: {e}") from e
        if resp.status_code >= 400:
            raise PublishError(f"Webhook {self.url} returned HTTP {resp.status_code}")


class FanOutSink:
    """Publish each event to every channel; one failing channel does not stop the rest.

    Having no channels at all is not an error. PublishError is raised only
    when every channel failed.
    """

    def __init__(self, channels=None):
        self.channels = list(channels or [])

    def add(self, channel):
        self.channels.append(channel)

    def publish(self, building_id, event):
        failures = []
        for channel in self.channels:
            try:
                channel.publish(building_id, event)
            except Exception as e:
                logger.warning(f"{type(channel).__name__} dispatch error: {e}")
                failures.append(e)
        if self.channels and len(failures) == len(self.channels):
            raise PublishError(f"All {len(failures)} notification channels failed")


def build_sink(config):
    """Assemble the configured channels into a FanOutSink."""
    notif_cfg = config.get("notifications", {})
    sink = FanOutSink()
    if notif_cfg.get("console", True):
        sink.add(ConsoleChannel())
    file_cfg = notif_cfg.get("file", {})
    if file_cfg.get("enabled", False):
        sink.add(FileChannel(file_cfg.get("path", "data/alert_events.jsonl")))
    hook_cfg = notif_cfg.get("webhook", {})
    if hook_cfg.get("enabled") and hook_cfg.get("url"):
        sink.add(WebhookChannel(hook_cfg["url"], timeout=hook_cfg.get("timeout_seconds", 5)))
    return sink
