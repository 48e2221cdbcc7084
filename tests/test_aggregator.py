"""Tests for metric aggregation."""
from datetime import timedelta

import pytest

from models.metrics import GenerationLog
from monitor.aggregator import MetricsAggregator


def test_update_snapshot_aggregates_last_hour(temp_db, now):
    agg = MetricsAggregator(temp_db, assistants_online=4)
    agg.record_generation(GenerationLog(processing_time=1000, user_id="a", created_at=now - timedelta(minutes=10)))
    agg.record_generation(GenerationLog(processing_time=3000, user_id="b", created_at=now - timedelta(minutes=5)))
    agg.record_generation(GenerationLog(processing_time=2000, success=False, user_id="a", created_at=now))
    agg.record_generation(GenerationLog(processing_time=9999, created_at=now - timedelta(hours=2)))

    snap = agg.update_snapshot(now)

    assert snap.generations_per_minute == pytest.approx(3 / 60)
    assert snap.average_response_time == pytest.approx(2000)
    assert snap.success_rate == pytest.approx(200 / 3)
    assert snap.error_rate == pytest.approx(100 / 3)
    assert snap.active_users == 2
    assert snap.assistants_online == 4
    assert temp_db.get_latest_snapshot().average_response_time == pytest.approx(2000)


def test_update_snapshot_without_traffic(temp_db, now):
    snap = MetricsAggregator(temp_db).update_snapshot(now)
    assert snap.success_rate == 100.0
    assert snap.error_rate == 0.0
    assert snap.average_response_time == 0.0
    assert snap.generations_per_minute == 0.0


def test_record_batch(temp_db, now):
    items = [
        {"metric": "generation", "value": 1200, "metadata": {"userId": "u1", "type": "post"}},
        {"metric": "generation", "value": "slow"},
        {"value": 10},
        {"metric": "generation"},
        {"metric": "generation", "value": 800, "timestamp": now.isoformat(),
         "metadata": {"success": False, "errorType": "timeout"}},
    ]
    result = MetricsAggregator(temp_db).record_batch(items)
    assert result["processed"] == 2
    assert result["errors"] == 3
    assert len(result["error_details"]) == 3
    assert result["error_details"][1] == "Metric None: Invalid metric format"

    logs = temp_db.get_generation_logs_since(now - timedelta(days=1))
    failed = [log for log in logs if not log.success]
    assert len(failed) == 1
    assert failed[0].error_type == "timeout"


def test_from_payload_rejects_bool():
    with pytest.raises(ValueError):
        GenerationLog.from_payload({"metric": "generation", "value": True})
