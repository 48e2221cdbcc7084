"""Alert rules loading and syncing from YAML into the rule store."""
import logging
import yaml
from pathlib import Path

from models.alerts import AlertRule
from models.enums import Operator, RULE_SEVERITIES
from models.metrics import METRIC_ALIASES, METRIC_FIELDS

logger = logging.getLogger("healthwatch.alerts.rules")

OPERATOR_ALIASES = {
    "greater_than": Operator.GREATER_THAN.value,
    "gt": Operator.GREATER_THAN.value,
    ">": Operator.GREATER_THAN.value,
    "less_than": Operator.LESS_THAN.value,
    "lt": Operator.LESS_THAN.value,
    "<": Operator.LESS_THAN.value,
    "equal": Operator.EQUAL.value,
    "eq": Operator.EQUAL.value,
    "==": Operator.EQUAL.value,
}


def normalize_operator(op):
    return OPERATOR_ALIASES.get(str(op).strip().lower()) if op is not None else None


def normalize_metric(metric):
    return METRIC_ALIASES.get(metric, metric)


class RulesManager:
    def __init__(self, rules_path="config/alerts_rules.yaml", default_cooldown=300):
        self.rules_path = Path(rules_path)
        self.default_cooldown = default_cooldown
        self.rules = []
        self.load()

    def load(self):
        if not self.rules_path.exists():
            logger.warning(f"Alert rules file not found: {self.rules_path}")
            return
        with open(self.rules_path) as f:
            data = yaml.safe_load(f) or {}
        self.rules = self._parse_rules(data.get("rules", []))
        logger.info(f"Loaded {len(self.rules)} alert rules")

    def _parse_rules(self, raw_rules):
        rules = []
        for r in raw_rules:
            rule_id = r.get("id")
            operator = normalize_operator(r.get("operator"))
            if operator is None:
                logger.warning(f"Invalid operator in rule {rule_id}: {r.get('operator')}")
                continue
            metric = normalize_metric(r.get("metric"))
            if metric not in METRIC_FIELDS:
                logger.warning(f"Unknown metric in rule {rule_id}: {r.get('metric')}")
                continue
            severity = str(r.get("severity", "warning")).lower()
            if severity not in RULE_SEVERITIES:
                logger.warning(f"Invalid severity in rule {rule_id}: {severity}")
                continue
            try:
                threshold = float(r["threshold"])
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Missing or non-numeric threshold in rule {rule_id}")
                continue
            rules.append(AlertRule(
                id=str(rule_id),
                name=r.get("name", rule_id),
                metric=metric,
                operator=operator,
                threshold=threshold,
                severity=severity,
                cooldown_seconds=int(r.get("cooldown_seconds", self.default_cooldown)),
                enabled=r.get("enabled", True),
                description=r.get("description", ""),
            ))
        return rules

    def sync(self, store):
        """Upsert every parsed rule. Stored trigger times are left untouched."""
        for rule in self.rules:
            store.upsert_rule(rule)
        logger.info(f"Synced {len(self.rules)} alert rules to database")
        return len(self.rules)

    def get_enabled_rules(self):
        return [r for r in self.rules if r.enabled]

    def get_rule(self, rule_id):
        for r in self.rules:
            if r.id == rule_id:
                return r
        return None

    def get_all_rules(self):
        return self.rules
