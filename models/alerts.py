"""Dataclasses for alert rules, channel payloads and step results."""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional


@dataclass
class AlertRule:
    id: str = ""
    name: str = ""
    metric: str = ""
    threshold: float = 0.0
    operator: str = "greater_than"
    severity: str = "warning"
    enabled: bool = True
    cooldown_seconds: int = 300
    last_triggered_at: Optional[datetime] = None
    description: str = ""

    def with_last_triggered(self, ts):
        return replace(self, last_triggered_at=ts)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "metric": self.metric,
            "threshold": self.threshold,
            "operator": self.operator,
            "severity": self.severity,
            "enabled": self.enabled,
            "cooldown_seconds": self.cooldown_seconds,
            "last_triggered_at": self.last_triggered_at.isoformat() if self.last_triggered_at else None,
            "description": self.description,
        }


@dataclass
class Alert:
    """Structured payload handed to every notification channel.

    Channels render it themselves; nothing upstream pre-formats text.
    """
    title: str = ""
    message: str = ""
    severity: str = "info"
    service: str = "system"
    metric: Optional[str] = None
    current_value: Optional[float] = None
    threshold: Optional[float] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "service": self.service,
            "metric": self.metric,
            "current_value": self.current_value,
            "threshold": self.threshold,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class DispatchResult:
    channel: str
    delivered: bool


@dataclass
class StepResult:
    """Tagged outcome of one pipeline step."""
    ok: bool
    value: Any = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value=None):
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error):
        return cls(ok=False, error=str(error))
