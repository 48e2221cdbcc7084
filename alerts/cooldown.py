"""Cooldown gate: keeps a rule from firing again inside its cooldown window."""
import logging
import threading
from datetime import timezone

logger = logging.getLogger("healthwatch.alerts.cooldown")


def _aware(ts):
    if ts is not None and ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


class CooldownGate:
    """Decides whether a rule may fire at a given instant.

    The persisted `last_triggered_at` on the rule is authoritative. The gate
    also remembers fires it has recorded itself, so a failed write of
    `last_triggered_at` still suppresses a repeat within this process.
    """

    def __init__(self):
        self._fired = {}
        self._lock = threading.Lock()

    def last_fired(self, rule):
        with self._lock:
            remembered = self._fired.get(rule.id)
        persisted = _aware(rule.last_triggered_at)
        if remembered is None:
            return persisted
        if persisted is None:
            return remembered
        return max(remembered, persisted)

    def may_fire(self, rule, now):
        last = self.last_fired(rule)
        if last is None:
            return True
        elapsed = (_aware(now) - last).total_seconds()
        return elapsed >= rule.cooldown_seconds

    def remaining_seconds(self, rule, now):
        last = self.last_fired(rule)
        if last is None:
            return 0
        elapsed = (_aware(now) - last).total_seconds()
        return max(0, rule.cooldown_seconds - elapsed)

    def record_fired(self, rule, now):
        """Return the rule with `last_triggered_at` advanced to `now`.

        The timestamp never moves backwards.
        """
        now = _aware(now)
        last = self.last_fired(rule)
        ts = now if last is None or now >= last else last
        with self._lock:
            self._fired[rule.id] = ts
        return rule.with_last_triggered(ts)

    def reset(self, rule_id=None):
        with self._lock:
            if rule_id is None:
                self._fired.clear()
            else:
                self._fired.pop(rule_id, None)
