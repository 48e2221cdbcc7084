"""Data models."""
from models.enums import Operator, Severity, IncidentStatus, ServiceStatus
from models.metrics import MetricSnapshot, GenerationLog
from models.alerts import AlertRule, Alert, DispatchResult, StepResult
from models.incidents import Incident
