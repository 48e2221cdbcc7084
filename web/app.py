"""
Flask JSON API for the health dashboard.

  GET  /api/health                 Database and upstream service probes
  GET  /api/metrics                Latest snapshot plus recent history
  POST /api/metrics                Record one generation
  POST /api/metrics/batch          Record many generations
  GET  /api/incidents              Incident list with summary
  POST /api/incidents              Open a manual incident
  POST /api/incidents/cleanup      Auto-resolve stale, prune old resolved
  GET  /api/alerts                 Alert rules with cooldown state
  POST /api/actions/check-alerts   Run one evaluation cycle now
  POST /api/actions/test-channels  Send a test message on every channel

Started via: python main.py web [--port 8080] [--host 0.0.0.0]
"""
import logging
import time
from datetime import datetime, timedelta, timezone

from flask import Flask, jsonify, request

from alerts.incidents import open_manual_incident, summarize
from models.metrics import GenerationLog

logger = logging.getLogger("healthwatch.web.app")

HISTORY_LIMITS = {"1h": 60, "24h": 1440, "7d": 2000, "30d": 2000}


def _int_arg(name, default, maximum):
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        value = default
    return max(1, min(value, maximum))


def create_app(config: dict, engines: dict) -> Flask:
    """
    Factory function. Receives initialized components from main.py CLI.

    Args:
        config: Application config dict
        engines: dict with db, aggregator, cycle, janitor, alert_service, health
    """
    app = Flask(__name__)
    batch_source = config.get("web", {}).get("batch_source", "")

    @app.after_request
    def no_cache(resp):
        resp.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
        return resp

    # ─── Health ──────────────────────────────────────────

    @app.route("/api/health")
    def api_health():
        started = time.monotonic()
        try:
            report = engines["health"].report()
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return jsonify({"status": "major", "error": "Health check failed", "details": str(e)}), 500
        report["responseTime"] = round((time.monotonic() - started) * 1000)
        return jsonify(report)

    # ─── Metrics ─────────────────────────────────────────

    @app.route("/api/metrics", methods=["GET"])
    def api_metrics():
        db = engines["db"]
        timeframe = request.args.get("timeframe", "1h")
        limit = HISTORY_LIMITS.get(timeframe, 60)
        latest = db.get_latest_snapshot()
        history = db.get_snapshots(limit=limit)
        return jsonify({
            "success": True,
            "current": latest.to_api_dict() if latest else None,
            "history": [s.to_api_dict() for s in reversed(history)],
            "timeframe": timeframe,
        })

    @app.route("/api/metrics", methods=["POST"])
    def api_record_metric():
        payload = request.get_json(silent=True) or {}
        if not payload.get("metric"):
            return jsonify({"success": False, "error": "Invalid metric format"}), 400
        try:
            log = GenerationLog.from_payload(payload)
        except ValueError as e:
            return jsonify({"success": False, "error": str(e)}), 400
        log_id = engines["aggregator"].record_generation(log)
        return jsonify({"success": True, "id": log_id, "message": "Metric recorded"})

    @app.route("/api/metrics/batch", methods=["POST"])
    def api_record_batch():
        if batch_source and request.headers.get("X-Source") != batch_source:
            return jsonify({"success": False, "error": "Invalid source"}), 403
        body = request.get_json(silent=True) or {}
        items = body.get("metrics")
        if not isinstance(items, list):
            return jsonify({"success": False, "error": "Missing or invalid metrics array"}), 400
        result = engines["aggregator"].record_batch(items)
        resp = {
            "success": True,
            "message": "Batch metrics processed",
            "processed": result["processed"],
            "errors": result["errors"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if result["errors"]:
            resp["errorDetails"] = result["error_details"]
        return jsonify(resp)

    # ─── Incidents ───────────────────────────────────────

    @app.route("/api/incidents", methods=["GET"])
    def api_incidents():
        limit = _int_arg("limit", 10, 100)
        days = _int_arg("days", 30, 365)
        since = datetime.now(timezone.utc) - timedelta(days=days)
        incidents = engines["db"].list_incidents(
            since=since, limit=limit,
            status=request.args.get("status"), severity=request.args.get("severity"),
        )
        return jsonify({
            "success": True,
            "incidents": [i.to_dict() for i in incidents],
            "summary": summarize(incidents),
            "meta": {"limit": limit, "days": days},
        })

    @app.route("/api/incidents", methods=["POST"])
    def api_create_incident():
        body = request.get_json(silent=True) or {}
        try:
            incident = open_manual_incident(
                engines["db"],
                title=body.get("title"),
                description=body.get("description", ""),
                severity=body.get("severity", "warning"),
                service=body.get("service", "manual"),
                status=body.get("status", "investigating"),
            )
        except ValueError as e:
            return jsonify({"success": False, "error": str(e)}), 400
        return jsonify({
            "success": True,
            "incident": incident.to_dict(),
            "message": "Incident created successfully",
        })

    @app.route("/api/incidents/cleanup", methods=["POST"])
    def api_cleanup_incidents():
        result = engines["janitor"].cleanup()
        return jsonify({"success": True, **result})

    # ─── Alerts ──────────────────────────────────────────

    @app.route("/api/alerts")
    def api_alerts():
        cycle = engines["cycle"]
        rules = engines["db"].list_rules()
        now = datetime.now(timezone.utc)
        out = []
        for rule in rules:
            d = rule.to_dict()
            d["cooldown_remaining"] = round(cycle.gate.remaining_seconds(rule, now))
            out.append(d)
        return jsonify({"rules": out, "count": len(out)})

    @app.route("/api/actions/check-alerts", methods=["POST"])
    def api_check_alerts():
        report = engines["cycle"].run()
        return jsonify({"success": not report.errors, "report": report.to_dict()})

    @app.route("/api/actions/test-channels", methods=["POST"])
    def api_test_channels():
        results = engines["alert_service"].test_all_channels()
        return jsonify({"success": any(results.values()), "results": results})

    return app
