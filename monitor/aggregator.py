"""Raw generation logs → one-minute metric snapshots."""
import logging
from datetime import datetime, timedelta, timezone

from models.metrics import GenerationLog, MetricSnapshot

logger = logging.getLogger("healthwatch.monitor.aggregator")

WINDOW = timedelta(hours=1)


class MetricsAggregator:
    def __init__(self, db, assistants_online=0):
        self.db = db
        self.assistants_online = assistants_online

    def record_generation(self, log: GenerationLog):
        log_id = self.db.save_generation_log(log)
        logger.debug(f"Recorded generation {log.request_id or log_id}: {log.processing_time:.0f}ms")
        return log_id

    def record_batch(self, items):
        """Store every valid item; invalid ones are counted, not raised."""
        processed = 0
        error_details = []
        for item in items:
            name = item.get("metric") if isinstance(item, dict) else None
            try:
                if not name:
                    raise ValueError("Invalid metric format")
                self.record_generation(GenerationLog.from_payload(item))
                processed += 1
            except ValueError as e:
                error_details.append(f"Metric {name}: {e}")
        if error_details:
            logger.warning(f"Batch: {processed} saved, {len(error_details)} rejected")
        else:
            logger.info(f"Batch: {processed} saved")
        return {"processed": processed, "errors": len(error_details), "error_details": error_details}

    def build_snapshot(self, logs, active_users, now):
        total = len(logs)
        ok = sum(1 for log in logs if log.success)
        return MetricSnapshot(
            generations_per_minute=total / 60,
            average_response_time=sum(log.processing_time for log in logs) / total if total else 0.0,
            success_rate=ok / total * 100 if total else 100.0,
            error_rate=(total - ok) / total * 100 if total else 0.0,
            active_users=active_users,
            assistants_online=self.assistants_online,
            timestamp=now,
        )

    def update_snapshot(self, now=None):
        """Aggregate the last hour of logs and store the result."""
        now = now or datetime.now(timezone.utc)
        since = now - WINDOW
        logs = self.db.get_generation_logs_since(since)
        snapshot = self.build_snapshot(logs, self.db.count_active_users_since(since), now)
        self.db.save_snapshot(snapshot)
        logger.info(
            f"Snapshot: {snapshot.generations_per_minute:.2f}/min, "
            f"{snapshot.average_response_time:.0f}ms avg, {snapshot.success_rate:.1f}% ok"
        )
        return snapshot
