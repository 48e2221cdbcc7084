"""Alert evaluation cycle: rules → cooldown → incident → notifications."""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from alerts.cooldown import CooldownGate
from alerts.dispatcher import NotificationDispatcher
from alerts.evaluator import OPERATOR_SYMBOLS, evaluate, metric_value
from alerts.incidents import IncidentRecorder, MONITORING_SERVICE, describe_breach
from models.alerts import Alert, StepResult
from models.enums import Severity

logger = logging.getLogger("healthwatch.alerts.engine")


@dataclass
class FiredRule:
    rule_id: str
    rule_name: str
    severity: str
    value: Optional[float]
    incident_id: Optional[int] = None
    deliveries: dict = field(default_factory=dict)

    def to_dict(self):
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "severity": self.severity,
            "value": self.value,
            "incident_id": self.incident_id,
            "deliveries": dict(self.deliveries),
        }


@dataclass
class CycleReport:
    timestamp: datetime
    snapshot_found: bool = False
    rules_evaluated: int = 0
    fired: list = field(default_factory=list)
    suppressed: list = field(default_factory=list)
    errors: dict = field(default_factory=dict)

    def to_dict(self):
        return {
            "timestamp": self.timestamp.isoformat(),
            "snapshot_found": self.snapshot_found,
            "rules_evaluated": self.rules_evaluated,
            "fired": [f.to_dict() for f in self.fired],
            "suppressed": list(self.suppressed),
            "errors": dict(self.errors),
        }


def _utcnow():
    return datetime.now(timezone.utc)


class EvaluationCycle:
    """One pass over the latest snapshot and every enabled rule.

    All collaborators are injected. Runs on one instance are serialized, so a
    manual check cannot race the scheduler. Only one process should drive a
    given database; nothing here locks across processes.
    """

    def __init__(self, snapshots, rules, incidents, dispatcher=None, channels=None,
                 gate=None, clock=None, persistence_failure_limit=3):
        self.snapshots = snapshots
        self.rules = rules
        self.recorder = IncidentRecorder(incidents)
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.channels = channels
        self.gate = gate or CooldownGate()
        self.clock = clock or _utcnow
        self.persistence_failure_limit = persistence_failure_limit
        self._failure_streaks = {}
        self._run_lock = threading.Lock()

    # ── steps ────────────────────────────────────────

    def build_alert(self, rule, snapshot, now):
        value = metric_value(rule, snapshot)
        return Alert(
            title=rule.name,
            message=describe_breach(rule, value),
            severity=rule.severity,
            service=MONITORING_SERVICE,
            metric=rule.metric,
            current_value=value,
            threshold=rule.threshold,
            timestamp=now,
        )

    def _persist_last_triggered(self, rule):
        try:
            self.rules.update_last_triggered(rule.id, rule.last_triggered_at)
        except Exception as e:
            logger.error(f"Failed to persist last trigger for rule {rule.id}: {e}")
            return StepResult.failure(e)
        return StepResult.success(rule)

    def _track(self, kind, step):
        """Count failed writes per kind; escalate once the streaks add up to the limit.

        A success clears only the streak of its own kind.
        """
        if step.ok:
            self._failure_streaks[kind] = 0
            return
        self._failure_streaks[kind] = self._failure_streaks.get(kind, 0) + 1
        failures = sum(self._failure_streaks.values())
        if failures >= self.persistence_failure_limit:
            logger.critical(f"{failures} consecutive persistence failures ({kind} last)")
            self._escalate_persistence(step.error)
            self._failure_streaks.clear()

    def _escalate_persistence(self, error):
        alert = Alert(
            title="Alert persistence failing",
            message=(
                f"{self.persistence_failure_limit} consecutive writes of alert state failed. "
                f"Incidents and cooldowns may not be recorded. Last error: {error}"
            ),
            severity=Severity.CRITICAL.value,
            service=MONITORING_SERVICE,
            timestamp=self.clock(),
        )
        self.dispatcher.dispatch(alert, self.channels)

    def _process_rule(self, rule, snapshot, now, report):
        if not evaluate(rule, snapshot):
            return
        if not self.gate.may_fire(rule, now):
            remaining = self.gate.remaining_seconds(rule, now)
            logger.debug(f"Rule {rule.id} in cooldown ({remaining:.0f}s left)")
            report.suppressed.append(rule.id)
            return

        value = metric_value(rule, snapshot)
        logger.warning(
            f"ALERT: {rule.name} - {rule.metric}: {value} "
            f"{OPERATOR_SYMBOLS.get(rule.operator, rule.operator)} {rule.threshold}"
        )

        # Cooldown is persisted before anything is sent.
        fired_rule = self.gate.record_fired(rule, now)
        self._track("rule_update", self._persist_last_triggered(fired_rule))

        recorded = self.recorder.record_incident(rule, snapshot, now)
        self._track("incident_insert", recorded)

        deliveries = self.dispatcher.dispatch(self.build_alert(rule, snapshot, now), self.channels)

        incident = recorded.value if recorded.ok else None
        if incident is not None and any(deliveries.values()):
            self._track("alert_sent", self.recorder.mark_alert_sent(incident))

        report.fired.append(FiredRule(
            rule_id=rule.id,
            rule_name=rule.name,
            severity=rule.severity,
            value=value,
            incident_id=incident.id if incident is not None else None,
            deliveries=deliveries,
        ))

    # ── entry points ─────────────────────────────────

    def run(self, now=None):
        """Evaluate every enabled rule against the latest snapshot."""
        with self._run_lock:
            return self._run(now or self.clock())

    def _run(self, now):
        report = CycleReport(timestamp=now)

        try:
            snapshot = self.snapshots.get_latest_snapshot()
        except Exception as e:
            logger.error(f"Alert check failed: could not load snapshot: {e}")
            report.errors["snapshot"] = str(e)
            return report
        if snapshot is None:
            logger.debug("No metrics snapshot yet; skipping alert check")
            return report
        report.snapshot_found = True

        try:
            rules = self.rules.list_enabled_rules()
        except Exception as e:
            logger.error(f"Alert check failed: could not load rules: {e}")
            report.errors["rules"] = str(e)
            return report

        for rule in rules:
            if not rule.enabled:
                continue
            report.rules_evaluated += 1
            try:
                self._process_rule(rule, snapshot, now, report)
            except Exception as e:
                logger.exception(f"Rule {rule.id} failed: {e}")
                report.errors[rule.id] = str(e)

        if report.fired:
            logger.info(f"Alert check: {len(report.fired)} rule(s) fired")
        return report

    def dry_run(self, snapshot=None):
        """Evaluate ALL rules ignoring cooldowns, without side effects."""
        snapshot = snapshot or self.snapshots.get_latest_snapshot()
        if snapshot is None:
            return []
        list_all = getattr(self.rules, "list_rules", self.rules.list_enabled_rules)
        now = self.clock()
        results = []
        for rule in list_all():
            results.append({
                "rule_id": rule.id,
                "name": rule.name,
                "metric": rule.metric,
                "operator": rule.operator,
                "threshold": rule.threshold,
                "current_value": metric_value(rule, snapshot),
                "would_fire": evaluate(rule, snapshot),
                "in_cooldown": not self.gate.may_fire(rule, now),
                "severity": rule.severity,
                "enabled": rule.enabled,
            })
        return results

    @staticmethod
    def format_summary(report):
        """Format a cycle report for display."""
        if not report.snapshot_found:
            return "No metrics snapshot available - nothing evaluated."
        if not report.fired:
            return "All clear - no alerts triggered."
        lines = []
        for f in report.fired:
            icon = {"critical": "!!!", "error": "!!", "warning": "!"}.get(f.severity, "i")
            sent = ", ".join(f"{k}={'ok' if v else 'failed'}" for k, v in f.deliveries.items()) or "no channels"
            lines.append(f"[{icon}] [{f.severity.upper()}] {f.rule_name} ({sent})")
        return "\n".join(lines)
