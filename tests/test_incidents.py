"""Tests for incident recording and housekeeping."""
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from models.incidents import Incident
from alerts.incidents import (
    IncidentRecorder, IncidentJanitor, describe_breach, open_manual_incident,
    resolve_incident, summarize,
)


def test_describe_breach(slow_rule):
    text = describe_breach(slow_rule, 6200.0)
    assert text == (
        "average_response_time threshold exceeded: observed 6200, "
        "which is greater than the threshold of 5000"
    )


def test_record_incident(temp_db, slow_rule, sample_snapshot, now):
    result = IncidentRecorder(temp_db).record_incident(slow_rule, sample_snapshot, now)
    assert result.ok
    stored = temp_db.get_incident(result.value.id)
    assert stored.title == "Alert: High Response Time"
    assert stored.severity == "warning"
    assert stored.service == "monitoring"
    assert stored.status == "investigating"
    assert stored.start_time == now
    assert stored.affected_users == 34


def test_record_incident_failure_is_a_result(slow_rule, sample_snapshot, now):
    store = MagicMock()
    store.insert_incident.side_effect = RuntimeError("db gone")
    result = IncidentRecorder(store).record_incident(slow_rule, sample_snapshot, now)
    assert result.ok is False
    assert "db gone" in result.error


def test_mark_alert_sent_failure(now):
    store = MagicMock()
    store.mark_incident_alert_sent.side_effect = RuntimeError("locked")
    inc = Incident(id=7, start_time=now)
    result = IncidentRecorder(store).mark_alert_sent(inc)
    assert result.ok is False
    assert inc.alert_sent is False


def test_janitor_cleanup(temp_db, now):
    temp_db.insert_incident(Incident(title="stale", start_time=now - timedelta(hours=25)))
    temp_db.insert_incident(Incident(title="old", status="resolved",
                                     start_time=now - timedelta(days=9), end_time=now - timedelta(days=8)))
    result = IncidentJanitor(temp_db).cleanup(now)
    assert result == {"closed": 1, "deleted": 1}
    remaining = temp_db.list_incidents()
    assert len(remaining) == 1
    assert remaining[0].resolution == "Auto-resolved: Incident older than 24 hours"
    assert remaining[0].end_time == now


def test_open_manual_incident(temp_db, now):
    inc = open_manual_incident(temp_db, "Checkout errors", severity="error", now=now)
    assert inc.id is not None
    assert inc.description == "Manual incident: Checkout errors"
    assert inc.service == "manual"


@pytest.mark.parametrize("kwargs", [
    {"title": ""},
    {"title": "x", "severity": "fatal"},
    {"title": "x", "status": "closed"},
])
def test_open_manual_incident_validation(temp_db, kwargs):
    with pytest.raises(ValueError):
        open_manual_incident(temp_db, **kwargs)


def test_resolve_incident(temp_db, now):
    inc = open_manual_incident(temp_db, "Outage", now=now)
    assert resolve_incident(temp_db, inc.id, "fixed", now=now + timedelta(minutes=42)) is True
    stored = temp_db.get_incident(inc.id)
    assert stored.status == "resolved"
    assert stored.duration_minutes == 42
    assert resolve_incident(temp_db, 9999) is False


def test_summarize(now):
    incidents = [
        Incident(severity="critical", status="investigating", start_time=now),
        Incident(severity="warning", status="monitoring", start_time=now),
        Incident(severity="warning", status="resolved", start_time=now),
    ]
    s = summarize(incidents)
    assert s["total"] == 3
    assert s["active"] == 2
    assert s["resolved"] == 1
    assert s["critical"] == 1
    assert s["byStatus"]["monitoring"] == 1
    assert s["bySeverity"]["warning"] == 2
    assert s["bySeverity"]["info"] == 0
