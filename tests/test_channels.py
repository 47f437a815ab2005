"""Tests for notification channels and fan-out."""
import json
from io import StringIO
from unittest.mock import MagicMock

import pytest
import requests
from rich.console import Console

from alerts.channels import ConsoleChannel, FileChannel, WebhookChannel, FanOutSink, build_sink
from models.alerts import Alert, AlertEvent
from models.enums import AlertType, Priority, EventType
from utils.errors import PublishError
from conftest import NOW, RecordingSink, FailingSink


def _event(event_type=EventType.INSERT, **kw):
    alert = Alert(id=7, building_id="b1", type=AlertType.WARNING, title="High Energy Consumption",
                  message="Current consumption (25.0 kWh) is 150% above normal levels.",
                  priority=Priority.HIGH, created_at=NOW, **kw)
    return AlertEvent(event_type, alert)


class TestFileChannel:
    def test_appends_json_lines(self, tmp_path):
        path = tmp_path / "events" / "alerts.jsonl"
        channel = FileChannel(path)
        channel.publish("b1", _event())
        channel.publish("b1", _event(EventType.UPDATE, is_resolved=True, resolved_at=NOW))

        lines = path.read_text().splitlines()
        assert len(lines) == 2
        first, second = (json.loads(line) for line in lines)
        assert first["building_id"] == "b1"
        assert first["event_type"] == "INSERT"
        assert first["alert"]["priority"] == "high"
        assert second["event_type"] == "UPDATE"
        assert second["alert"]["auto_resolved"] is True

    def test_unwritable_path(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(PublishError):
            FileChannel(blocker / "alerts.jsonl").publish("b1", _event())


class TestWebhookChannel:
    def test_posts_payload(self):
        session = MagicMock()
        session.headers = {}
        session.post.return_value.status_code = 200
        WebhookChannel("http://hooks.local/alerts", session=session).publish("b1", _event())

        args, kwargs = session.post.call_args
        assert args[0] == "http://hooks.local/alerts"
        body = json.loads(kwargs["data"])
        assert body["building_id"] == "b1"
        assert body["alert"]["title"] == "High Energy Consumption"
        assert kwargs["timeout"] == 5

    def test_http_error(self):
        session = MagicMock()
        session.headers = {}
        session.post.return_value.status_code = 503
        with pytest.raises(PublishError, match="503"):
            WebhookChannel("http://hooks.local", session=session).publish("b1", _event())

    def test_connection_error(self):
        session = MagicMock()
        session.headers = {}
        session.post.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(PublishError):
            WebhookChannel("http://hooks.local", session=session).publish("b1", _event())


class TestConsoleChannel:
    def test_prints_new_and_resolved(self):
        out = StringIO()
        channel = ConsoleChannel(Console(file=out, width=200, color_system=None))
        channel.publish("b1", _event())
        channel.publish("b1", _event(EventType.UPDATE, is_resolved=True, resolved_by="u1",
                                     resolution_note="fixed [valve]"))
        text = out.getvalue()
        assert "[HIGH] [b1] High Energy Consumption" in text
        assert "RESOLVED [b1] High Energy Consumption (by u1): fixed [valve]" in text


class TestFanOutSink:
    def test_every_channel_receives(self):
        a, b = RecordingSink(), RecordingSink()
        FanOutSink([a, b]).publish("b1", _event())
        assert len(a.events) == 1 and len(b.events) == 1

    def test_failing_channel_isolated(self):
        ok = RecordingSink()
        FanOutSink([FailingSink(), ok]).publish("b1", _event())
        assert len(ok.events) == 1

    def test_all_failed_raises(self):
        with pytest.raises(PublishError):
            FanOutSink([FailingSink(), FailingSink()]).publish("b1", _event())

    def test_no_channels_is_fine(self):
        FanOutSink().publish("b1", _event())


def test_build_sink_from_config(tmp_path):
    config = {"notifications": {
        "console": False,
        "file": {"enabled": True, "path": str(tmp_path / "e.jsonl")},
        "webhook": {"enabled": True, "url": "http://hooks.local", "timeout_seconds": 2},
    }}
    sink = build_sink(config)
    assert [type(c).__name__ for c in sink.channels] == ["FileChannel", "WebhookChannel"]
    assert sink.channels[1].timeout == 2


def test_build_sink_skips_webhook_without_url():
    sink = build_sink({"notifications": {"console": True, "webhook": {"enabled": True, "url": ""}}})
    assert [type(c).__name__ for c in sink.channels] == ["ConsoleChannel"]
