"""Shared test fixtures."""
import os
import sys
import pytest
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timezone
from models.database import Database
from models.metrics import MetricSnapshot
from models.alerts import AlertRule


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.unlink(db_path + suffix)


@pytest.fixture
def now():
    return datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_snapshot(now):
    """A realistic snapshot with a slow, slightly failing backend."""
    return MetricSnapshot(
        generations_per_minute=2.5,
        average_response_time=6200.0,
        success_rate=88.0,
        error_rate=12.0,
        active_users=34,
        assistants_online=3,
        timestamp=now,
    )


@pytest.fixture
def slow_rule():
    return AlertRule(
        id="high_response_time", name="High Response Time",
        metric="average_response_time", operator="greater_than",
        threshold=5000, severity="warning", cooldown_seconds=300,
    )


class FakeChannel:
    """Records every alert; outcome is configurable."""

    def __init__(self, name="fake", result=True, raises=None, delay=0.0, enabled=True):
        self.name = name
        self.result = result
        self.raises = raises
        self.delay = delay
        self.enabled = enabled
        self.received = []

    def accepts(self, alert):
        return True

    def deliver(self, alert):
        import time
        if self.delay:
            time.sleep(self.delay)
        self.received.append(alert)
        if self.raises:
            raise self.raises
        return self.result

    def test_connection(self):
        if self.raises:
            raise self.raises
        return self.result


@pytest.fixture
def fake_channel_cls():
    return FakeChannel
