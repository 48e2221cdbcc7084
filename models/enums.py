"""Enums for operators, severities, incident and service status."""
from enum import Enum


class Operator(str, Enum):
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    EQUAL = "equal"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


# Rules never carry INFO; that level is reserved for status/recovery notices.
RULE_SEVERITIES = {Severity.WARNING.value, Severity.ERROR.value, Severity.CRITICAL.value}


class IncidentStatus(str, Enum):
    INVESTIGATING = "investigating"
    IDENTIFIED = "identified"
    MONITORING = "monitoring"
    RESOLVED = "resolved"


ACTIVE_INCIDENT_STATUSES = (
    IncidentStatus.INVESTIGATING.value,
    IncidentStatus.IDENTIFIED.value,
    IncidentStatus.MONITORING.value,
)


class ServiceStatus(str, Enum):
    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    PARTIAL = "partial"
    MAJOR = "major"
    MAINTENANCE = "maintenance"
