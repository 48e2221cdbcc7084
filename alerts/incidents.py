"""Incident recording and lifecycle housekeeping."""
import logging
from datetime import datetime, timedelta, timezone

from alerts.evaluator import OPERATOR_LABELS, metric_value
from models.alerts import StepResult
from models.enums import IncidentStatus, Severity
from models.incidents import Incident

logger = logging.getLogger("healthwatch.alerts.incidents")

MONITORING_SERVICE = "monitoring"


def describe_breach(rule, value):
    """Human-readable sentence for a rule whose condition holds."""
    op = OPERATOR_LABELS.get(rule.operator, rule.operator)
    return (
        f"{rule.metric} threshold exceeded: observed {value:g}, "
        f"which is {op} the threshold of {rule.threshold:g}"
    )


class IncidentRecorder:
    """Creates one incident per fired rule."""

    def __init__(self, store):
        self.store = store

    def build_incident(self, rule, snapshot, now):
        value = metric_value(rule, snapshot)
        return Incident(
            severity=rule.severity,
            service=MONITORING_SERVICE,
            title=f"Alert: {rule.name}",
            description=describe_breach(rule, value) if value is not None else rule.description,
            status=IncidentStatus.INVESTIGATING.value,
            start_time=now,
            affected_users=snapshot.active_users,
            alert_sent=False,
        )

    def record_incident(self, rule, snapshot, now=None):
        now = now or datetime.now(timezone.utc)
        incident = self.build_incident(rule, snapshot, now)
        try:
            stored = self.store.insert_incident(incident)
        except Exception as e:
            logger.error(f"Failed to record incident for rule {rule.id}: {e}")
            return StepResult.failure(e)
        logger.info(f"Incident #{stored.id} opened: {stored.title}")
        return StepResult.success(stored)

    def mark_alert_sent(self, incident):
        try:
            self.store.mark_incident_alert_sent(incident.id)
        except Exception as e:
            logger.error(f"Failed to flag incident #{incident.id} as alerted: {e}")
            return StepResult.failure(e)
        incident.alert_sent = True
        return StepResult.success(incident)


class IncidentJanitor:
    """Auto-resolves stale incidents and prunes old resolved ones."""

    def __init__(self, store, auto_resolve_hours=24, retention_days=7):
        self.store = store
        self.auto_resolve_hours = auto_resolve_hours
        self.retention_days = retention_days

    def cleanup(self, now=None):
        now = now or datetime.now(timezone.utc)
        resolution = f"Auto-resolved: Incident older than {self.auto_resolve_hours} hours"
        closed = self.store.resolve_stale_incidents(
            older_than=now - timedelta(hours=self.auto_resolve_hours),
            now=now,
            resolution=resolution,
        )
        deleted = self.store.delete_resolved_incidents(before=now - timedelta(days=self.retention_days))
        logger.info(f"Incident cleanup: closed {closed}, deleted {deleted}")
        return {"closed": closed, "deleted": deleted}


def open_manual_incident(store, title, description="", severity=Severity.WARNING.value,
                         service="manual", status=IncidentStatus.INVESTIGATING.value, now=None):
    """Operator-reported incident. Raises ValueError on invalid input."""
    if not title:
        raise ValueError("Title is required")
    if severity not in {s.value for s in Severity}:
        raise ValueError(f"Invalid severity: {severity}")
    if status not in {s.value for s in IncidentStatus}:
        raise ValueError(f"Invalid status: {status}")
    incident = Incident(
        title=title,
        description=description or f"Manual incident: {title}",
        severity=severity,
        service=service,
        status=status,
        start_time=now or datetime.now(timezone.utc),
    )
    return store.insert_incident(incident)


def resolve_incident(store, incident_id, resolution="Resolved manually", now=None):
    return store.update_incident_status(
        incident_id, IncidentStatus.RESOLVED.value,
        end_time=now or datetime.now(timezone.utc), resolution=resolution,
    )


def summarize(incidents):
    """Counts by status and severity for a list of incidents."""
    by_status = {s.value: 0 for s in IncidentStatus}
    by_severity = {s.value: 0 for s in Severity}
    for i in incidents:
        by_status[i.status] = by_status.get(i.status, 0) + 1
        by_severity[i.severity] = by_severity.get(i.severity, 0) + 1
    resolved = by_status[IncidentStatus.RESOLVED.value]
    return {
        "total": len(incidents),
        "active": len(incidents) - resolved,
        "resolved": resolved,
        "critical": by_severity[Severity.CRITICAL.value],
        "byStatus": by_status,
        "bySeverity": by_severity,
    }
