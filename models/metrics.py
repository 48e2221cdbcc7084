"""Dataclasses for aggregated metric snapshots and raw generation logs."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def _parse_ts(value):
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, str):
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        return datetime.now(timezone.utc)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


# Rule definitions name metrics the way the dashboard API exposes them.
METRIC_ALIASES = {
    "generationsPerMinute": "generations_per_minute",
    "averageResponseTime": "average_response_time",
    "successRate": "success_rate",
    "errorRate": "error_rate",
    "activeUsers": "active_users",
    "assistantsOnline": "assistants_online",
}

METRIC_FIELDS = tuple(METRIC_ALIASES.values())


@dataclass(frozen=True)
class MetricSnapshot:
    generations_per_minute: float = 0.0
    average_response_time: float = 0.0  # ms
    success_rate: float = 100.0
    error_rate: float = 0.0
    active_users: int = 0
    assistants_online: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[int] = None

    def get_metric(self, name):
        """Return the numeric value for a metric name, or None if unknown."""
        key = METRIC_ALIASES.get(name, name)
        if key not in METRIC_FIELDS:
            return None
        return getattr(self, key)

    def to_dict(self):
        return {
            "generations_per_minute": self.generations_per_minute,
            "average_response_time": self.average_response_time,
            "success_rate": self.success_rate,
            "error_rate": self.error_rate,
            "active_users": self.active_users,
            "assistants_online": self.assistants_online,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_api_dict(self):
        """camelCase view used by the JSON API."""
        d = {alias: getattr(self, key) for alias, key in METRIC_ALIASES.items()}
        d["timestamp"] = self.timestamp.isoformat()
        return d

    @classmethod
    def from_dict(cls, d):
        """Reconstruct from a flat dict (e.g., DB row)."""
        return cls(
            generations_per_minute=d.get("generations_per_minute") or 0.0,
            average_response_time=d.get("average_response_time") or 0.0,
            success_rate=d.get("success_rate", 100.0),
            error_rate=d.get("error_rate") or 0.0,
            active_users=d.get("active_users") or 0,
            assistants_online=d.get("assistants_online") or 0,
            timestamp=_parse_ts(d.get("timestamp")),
            id=d.get("id"),
        )


@dataclass
class GenerationLog:
    processing_time: float = 0.0  # ms
    success: bool = True
    generation_type: str = "unknown"
    assistant_used: str = "unknown"
    request_id: Optional[str] = None
    user_id: Optional[str] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[int] = None

    @classmethod
    def from_payload(cls, payload):
        """Build from an API payload of the form {metric, value, timestamp, metadata}.

        Raises ValueError when the payload has no numeric value.
        """
        value = payload.get("value")
        if value is None or isinstance(value, bool):
            raise ValueError("Invalid metric format: missing value")
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid metric value: {value!r}")

        meta = payload.get("metadata") or {}
        return cls(
            processing_time=value,
            success=bool(meta.get("success", True)),
            generation_type=meta.get("type", "unknown"),
            assistant_used=meta.get("assistant", "unknown"),
            request_id=meta.get("requestId"),
            user_id=meta.get("userId"),
            error_type=meta.get("errorType"),
            error_message=meta.get("errorMessage"),
            created_at=_parse_ts(payload.get("timestamp")) if payload.get("timestamp") else datetime.now(timezone.utc),
        )
