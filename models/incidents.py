"""Dataclass for incident records."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


@dataclass
class Incident:
    title: str = ""
    description: str = ""
    severity: str = "warning"
    service: str = "monitoring"
    status: str = "investigating"
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: Optional[datetime] = None
    affected_users: int = 0
    alert_sent: bool = False
    resolution: Optional[str] = None
    id: Optional[int] = None

    @property
    def duration_minutes(self):
        if self.end_time is None:
            return None
        return int((self.end_time - self.start_time).total_seconds() // 60)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity,
            "service": self.service,
            "status": self.status,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat() if self.end_time else None,
            "duration": f"{self.duration_minutes} minutes" if self.duration_minutes is not None else None,
            "affectedUsers": self.affected_users,
            "alertSent": self.alert_sent,
            "resolution": self.resolution,
        }
