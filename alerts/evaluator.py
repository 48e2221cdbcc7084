"""Rule evaluation: does a rule's condition hold for a snapshot?"""
import logging
import numbers

logger = logging.getLogger("healthwatch.alerts.evaluator")

# `equal` is exact float comparison; no tolerance is applied.
OPERATOR_MAP = {
    "greater_than": lambda v, t: v > t,
    "less_than": lambda v, t: v < t,
    "equal": lambda v, t: v == t,
}

OPERATOR_LABELS = {
    "greater_than": "greater than",
    "less_than": "less than",
    "equal": "equal to",
}

OPERATOR_SYMBOLS = {
    "greater_than": ">",
    "less_than": "<",
    "equal": "==",
}


def metric_value(rule, snapshot):
    """Return the snapshot value named by the rule, or None when it is not a number."""
    value = snapshot.get_metric(rule.metric)
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return None
    return value


def evaluate(rule, snapshot):
    """True when `rule`'s condition currently holds for `snapshot`.

    Unknown metrics and unknown operators never fire.
    """
    value = metric_value(rule, snapshot)
    if value is None:
        return False
    func = OPERATOR_MAP.get(rule.operator)
    if func is None:
        logger.debug(f"Rule {rule.id}: unknown operator {rule.operator!r}")
        return False
    return func(value, rule.threshold)
