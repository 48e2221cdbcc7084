"""SQLite database for metric snapshots, generation logs, alert rules and incidents."""
import sqlite3
import logging
from datetime import datetime, timezone
from pathlib import Path
from models.metrics import MetricSnapshot, GenerationLog
from models.alerts import AlertRule
from models.incidents import Incident
from models.enums import ACTIVE_INCIDENT_STATUSES, IncidentStatus

logger = logging.getLogger("healthwatch.db")

_ACTIVE = f"status IN ({','.join('?' * len(ACTIVE_INCIDENT_STATUSES))})"


def _iso(ts):
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat()


def _parse(value):
    if not value:
        return None
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class Database:
    def __init__(self, db_path="data/healthwatch.db", timeout=5.0):
        self.db_path = db_path
        # sqlite busy timeout; bounds every call against a locked database
        self.timeout = timeout
        self.conn = None

    def connect(self):
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, timeout=self.timeout, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS metrics_snapshots (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                generations_per_minute REAL DEFAULT 0,
                average_response_time REAL DEFAULT 0,
                success_rate REAL DEFAULT 100,
                error_rate REAL DEFAULT 0,
                active_users INTEGER DEFAULT 0,
                assistants_online INTEGER DEFAULT 0
            );

            CREATE INDEX IF NOT EXISTS idx_snapshots_timestamp
                ON metrics_snapshots(timestamp);

            CREATE TABLE IF NOT EXISTS generation_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                request_id TEXT,
                user_id TEXT,
                generation_type TEXT DEFAULT 'unknown',
                assistant_used TEXT DEFAULT 'unknown',
                processing_time REAL NOT NULL,
                success INTEGER DEFAULT 1,
                error_type TEXT,
                error_message TEXT,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_generation_created
                ON generation_logs(created_at);

            CREATE TABLE IF NOT EXISTS alert_rules (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                metric TEXT NOT NULL,
                threshold REAL NOT NULL,
                operator TEXT NOT NULL,
                severity TEXT NOT NULL,
                enabled INTEGER DEFAULT 1,
                cooldown_seconds INTEGER DEFAULT 300,
                last_triggered_at TEXT,
                description TEXT DEFAULT ''
            );

            CREATE TABLE IF NOT EXISTS incident_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                severity TEXT NOT NULL,
                service TEXT NOT NULL,
                title TEXT NOT NULL,
                description TEXT,
                status TEXT NOT NULL DEFAULT 'investigating',
                start_time TEXT NOT NULL,
                end_time TEXT,
                affected_users INTEGER DEFAULT 0,
                alert_sent INTEGER DEFAULT 0,
                resolution TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_incidents_start
                ON incident_logs(start_time);
        """)
        self.conn.commit()

    def ping(self):
        self.conn.execute("SELECT 1").fetchone()
        return True

    # --- Metrics Snapshots ---

    def save_snapshot(self, snapshot: MetricSnapshot):
        d = snapshot.to_dict()
        cur = self.conn.execute("""
            INSERT INTO metrics_snapshots
            (timestamp, generations_per_minute, average_response_time, success_rate,
             error_rate, active_users, assistants_online)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            _iso(snapshot.timestamp), d["generations_per_minute"], d["average_response_time"],
            d["success_rate"], d["error_rate"], d["active_users"], d["assistants_online"],
        ))
        self.conn.commit()
        logger.debug(f"Saved snapshot at {d['timestamp']}")
        return cur.lastrowid

    def get_latest_snapshot(self):
        row = self.conn.execute(
            "SELECT * FROM metrics_snapshots ORDER BY timestamp DESC, id DESC LIMIT 1"
        ).fetchone()
        if row is None:
            return None
        return MetricSnapshot.from_dict(dict(row))

    def get_snapshots(self, limit=60):
        rows = self.conn.execute(
            "SELECT * FROM metrics_snapshots ORDER BY timestamp DESC, id DESC LIMIT ?", (limit,)
        ).fetchall()
        return [MetricSnapshot.from_dict(dict(r)) for r in rows]

    # --- Generation Logs ---

    def save_generation_log(self, log: GenerationLog):
        cur = self.conn.execute("""
            INSERT INTO generation_logs
            (request_id, user_id, generation_type, assistant_used, processing_time,
             success, error_type, error_message, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            log.request_id, log.user_id, log.generation_type, log.assistant_used,
            log.processing_time, int(log.success), log.error_type, log.error_message,
            _iso(log.created_at),
        ))
        self.conn.commit()
        return cur.lastrowid

    def get_generation_logs_since(self, since):
        rows = self.conn.execute(
            "SELECT * FROM generation_logs WHERE created_at >= ? ORDER BY created_at ASC",
            (_iso(since),),
        ).fetchall()
        return [
            GenerationLog(
                id=r["id"], request_id=r["request_id"], user_id=r["user_id"],
                generation_type=r["generation_type"], assistant_used=r["assistant_used"],
                processing_time=r["processing_time"], success=bool(r["success"]),
                error_type=r["error_type"], error_message=r["error_message"],
                created_at=_parse(r["created_at"]),
            )
            for r in rows
        ]

    def count_active_users_since(self, since):
        row = self.conn.execute("""
            SELECT COUNT(DISTINCT user_id) AS cnt FROM generation_logs
            WHERE created_at >= ? AND user_id IS NOT NULL
        """, (_iso(since),)).fetchone()
        return row["cnt"]

    # --- Alert Rules ---

    @staticmethod
    def _row_to_rule(row):
        return AlertRule(
            id=row["id"],
            name=row["name"],
            metric=row["metric"],
            threshold=row["threshold"],
            operator=row["operator"],
            severity=row["severity"],
            enabled=bool(row["enabled"]),
            cooldown_seconds=row["cooldown_seconds"],
            last_triggered_at=_parse(row["last_triggered_at"]),
            description=row["description"] or "",
        )

    def list_rules(self):
        rows = self.conn.execute("SELECT * FROM alert_rules ORDER BY id").fetchall()
        return [self._row_to_rule(r) for r in rows]

    def list_enabled_rules(self):
        rows = self.conn.execute(
            "SELECT * FROM alert_rules WHERE enabled = 1 ORDER BY id"
        ).fetchall()
        return [self._row_to_rule(r) for r in rows]

    def get_rule(self, rule_id):
        row = self.conn.execute("SELECT * FROM alert_rules WHERE id = ?", (rule_id,)).fetchone()
        return self._row_to_rule(row) if row else None

    def upsert_rule(self, rule: AlertRule):
        """Insert or update a rule definition.

        An existing row keeps its `enabled` flag and `last_triggered_at`; both
        are operator state, not definition.
        """
        self.conn.execute("""
            INSERT INTO alert_rules
            (id, name, metric, threshold, operator, severity, enabled, cooldown_seconds,
             last_triggered_at, description)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                metric = excluded.metric,
                threshold = excluded.threshold,
                operator = excluded.operator,
                severity = excluded.severity,
                cooldown_seconds = excluded.cooldown_seconds,
                description = excluded.description
        """, (
            rule.id, rule.name, rule.metric, rule.threshold, rule.operator, rule.severity,
            int(rule.enabled), rule.cooldown_seconds, _iso(rule.last_triggered_at),
            rule.description,
        ))
        self.conn.commit()

    def set_rule_enabled(self, rule_id, enabled):
        cur = self.conn.execute(
            "UPDATE alert_rules SET enabled = ? WHERE id = ?", (int(enabled), rule_id)
        )
        self.conn.commit()
        return cur.rowcount > 0

    def update_last_triggered(self, rule_id, timestamp):
        # Guarded so the stored value never moves backwards.
        ts = _iso(timestamp)
        self.conn.execute("""
            UPDATE alert_rules SET last_triggered_at = ?
            WHERE id = ? AND (last_triggered_at IS NULL OR last_triggered_at <= ?)
        """, (ts, rule_id, ts))
        self.conn.commit()

    # --- Incidents ---

    @staticmethod
    def _row_to_incident(row):
        return Incident(
            id=row["id"],
            severity=row["severity"],
            service=row["service"],
            title=row["title"],
            description=row["description"] or "",
            status=row["status"],
            start_time=_parse(row["start_time"]),
            end_time=_parse(row["end_time"]),
            affected_users=row["affected_users"] or 0,
            alert_sent=bool(row["alert_sent"]),
            resolution=row["resolution"],
        )

    def insert_incident(self, incident: Incident):
        cur = self.conn.execute("""
            INSERT INTO incident_logs
            (severity, service, title, description, status, start_time, end_time,
             affected_users, alert_sent, resolution)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            incident.severity, incident.service, incident.title, incident.description,
            incident.status, _iso(incident.start_time), _iso(incident.end_time),
            incident.affected_users, int(incident.alert_sent), incident.resolution,
        ))
        self.conn.commit()
        incident.id = cur.lastrowid
        return incident

    def get_incident(self, incident_id):
        row = self.conn.execute(
            "SELECT * FROM incident_logs WHERE id = ?", (incident_id,)
        ).fetchone()
        return self._row_to_incident(row) if row else None

    def list_incidents(self, since=None, limit=10, status=None, severity=None):
        """Incidents newest first, active ones before resolved."""
        query = "SELECT * FROM incident_logs WHERE 1=1"
        params = []
        if since:
            query += " AND start_time >= ?"
            params.append(_iso(since))
        if status:
            statuses = [status] if isinstance(status, str) else list(status)
            query += f" AND status IN ({','.join('?' * len(statuses))})"
            params.extend(statuses)
        if severity:
            query += " AND severity = ?"
            params.append(severity)
        query += f" ORDER BY ({_ACTIVE}) DESC, start_time DESC LIMIT ?"
        params.extend(ACTIVE_INCIDENT_STATUSES)
        params.append(limit)
        rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_incident(r) for r in rows]

    def update_incident_status(self, incident_id, status, end_time=None, resolution=None):
        cur = self.conn.execute("""
            UPDATE incident_logs
            SET status = ?, end_time = COALESCE(?, end_time), resolution = COALESCE(?, resolution)
            WHERE id = ?
        """, (status, _iso(end_time), resolution, incident_id))
        self.conn.commit()
        return cur.rowcount > 0

    def mark_incident_alert_sent(self, incident_id):
        self.conn.execute(
            "UPDATE incident_logs SET alert_sent = 1 WHERE id = ?", (incident_id,)
        )
        self.conn.commit()

    def resolve_stale_incidents(self, older_than, now, resolution):
        cur = self.conn.execute(f"""
            UPDATE incident_logs
            SET status = ?, end_time = ?, resolution = ?
            WHERE {_ACTIVE} AND start_time < ?
        """, (IncidentStatus.RESOLVED.value, _iso(now), resolution, *ACTIVE_INCIDENT_STATUSES,
              _iso(older_than)))
        self.conn.commit()
        return cur.rowcount

    def delete_resolved_incidents(self, before):
        cur = self.conn.execute("""
            DELETE FROM incident_logs
            WHERE status = ? AND end_time IS NOT NULL AND end_time < ?
        """, (IncidentStatus.RESOLVED.value, _iso(before)))
        self.conn.commit()
        return cur.rowcount

    def get_incident_stats(self, active_only=True):
        query = "SELECT severity, COUNT(*) AS count FROM incident_logs"
        params = ()
        if active_only:
            query += f" WHERE {_ACTIVE}"
            params = ACTIVE_INCIDENT_STATUSES
        query += " GROUP BY severity"
        rows = self.conn.execute(query, params).fetchall()
        return {r["severity"]: r["count"] for r in rows}
