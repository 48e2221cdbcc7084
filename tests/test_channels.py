"""Tests for console/file channels, formatting helpers and channel assembly."""
import json
from io import StringIO
from datetime import datetime, timezone

from rich.console import Console

from models.alerts import Alert
from alerts.channels import (
    AlertChannel, ConsoleChannel, FileChannel, TelegramChannel, EmailChannel, build_channels,
)
from alerts.formatting import format_value, local_time, metric_unit, severity_color, severity_emoji


def _alert(severity="warning"):
    return Alert(title="High Error Rate", message="error rate 12 > 5", severity=severity,
                 metric="errorRate", current_value=12.0, threshold=5.0,
                 timestamp=datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc))


# ── Formatting ──────────────────────────────────────────

def test_metric_unit():
    assert metric_unit("average_response_time") == "ms"
    assert metric_unit("responseTime") == "ms"
    assert metric_unit("successRate") == "%"
    assert metric_unit("cpu_percent") == "%"
    assert metric_unit("active_users") == ""
    assert metric_unit(None) == ""


def test_format_value():
    assert format_value(12.0, "errorRate") == "12%"
    assert format_value(12.345, "errorRate") == "12.35%"
    assert format_value(None) == "N/A"


def test_severity_lookups_fall_back():
    assert severity_emoji("CRITICAL") == "\U0001f6a8"
    assert severity_emoji("unknown") == "\U0001f4ca"
    assert severity_color("info") == "#3b82f6"
    assert severity_color("nope") == "#6366f1"


def test_local_time_kyiv():
    ts = datetime(2025, 7, 1, 9, 30, tzinfo=timezone.utc)
    assert local_time(ts, "Europe/Kyiv") == "01.07.2025, 12:30"


# ── Console / file ──────────────────────────────────────

def test_console_channel():
    buf = StringIO()
    channel = ConsoleChannel(console=Console(file=buf, force_terminal=False))
    assert channel.deliver(_alert()) is True
    assert "High Error Rate" in buf.getvalue()
    assert "[WARNING]" in buf.getvalue()


def test_file_channel_writes_jsonl(tmp_path):
    path = tmp_path / "logs" / "alerts.jsonl"
    channel = FileChannel(str(path))
    assert channel.deliver(_alert()) is True
    assert channel.deliver(_alert("critical")) is True
    lines = path.read_text().splitlines()
    assert len(lines) == 2
    record = json.loads(lines[1])
    assert record["severity"] == "critical"
    assert record["metric"] == "errorRate"
    assert channel.test_connection() is True


def test_channels_satisfy_protocol(tmp_path):
    assert isinstance(FileChannel(str(tmp_path / "a.jsonl")), AlertChannel)


# ── build_channels ──────────────────────────────────────

def _config(tmp_path, **overrides):
    config = {
        "alerts": {"file_log": str(tmp_path / "alerts.jsonl")},
        "display": {"dashboard_url": "https://dash.example.com", "timezone": "Europe/Kyiv", "app_name": "Dash"},
        "email": {"enabled": True},
        "telegram": {"enabled": True},
    }
    config.update(overrides)
    return config


def test_build_channels_skips_unconfigured(tmp_path, monkeypatch):
    for key in ("HEALTHWATCH_TELEGRAM_TOKEN", "HEALTHWATCH_TELEGRAM_CHAT_ID",
                "HEALTHWATCH_SMTP_USER", "HEALTHWATCH_SMTP_PASS", "HEALTHWATCH_SMTP_HOST",
                "HEALTHWATCH_ALERT_EMAIL_TO"):
        monkeypatch.delenv(key, raising=False)
    channels = build_channels(_config(tmp_path))
    assert [c.name for c in channels] == ["file"]


def test_build_channels_with_credentials(tmp_path, monkeypatch):
    monkeypatch.setenv("HEALTHWATCH_TELEGRAM_TOKEN", "tok")
    monkeypatch.setenv("HEALTHWATCH_TELEGRAM_CHAT_ID", "42")
    email_cfg = {"email": {
        "enabled": True, "smtp_host": "smtp.test.com", "to_address": "a@test.com",
        "smtp_username": "u@test.com", "smtp_password": "p", "min_severity": "error",
    }}
    monkeypatch.delenv("HEALTHWATCH_SMTP_USER", raising=False)
    monkeypatch.delenv("HEALTHWATCH_SMTP_PASS", raising=False)
    channels = build_channels(_config(tmp_path, **email_cfg))
    names = [c.name for c in channels]
    assert names == ["file", "email", "telegram"]
    email = next(c for c in channels if isinstance(c, EmailChannel))
    assert email.min_severity == "error"
    tg = next(c for c in channels if isinstance(c, TelegramChannel))
    assert tg.bot.chat_id == "42"
    assert tg.dashboard_url == "https://dash.example.com"


def test_build_channels_respects_disabled(tmp_path, monkeypatch):
    monkeypatch.setenv("HEALTHWATCH_TELEGRAM_TOKEN", "tok")
    monkeypatch.setenv("HEALTHWATCH_TELEGRAM_CHAT_ID", "42")
    channels = build_channels(_config(tmp_path, telegram={"enabled": False}, email={"enabled": False}))
    assert [c.name for c in channels] == ["file"]


def test_build_channels_interactive_adds_console(tmp_path):
    channels = build_channels(_config(tmp_path, telegram={"enabled": False}, email={"enabled": False}),
                              interactive=True)
    assert [c.name for c in channels] == ["file", "console"]
