"""Operator-facing alert helpers: status updates, channel tests, canned alerts."""
import logging
from datetime import datetime, timezone

from alerts.dispatcher import NotificationDispatcher
from alerts.formatting import local_time
from models.alerts import Alert
from models.enums import ServiceStatus, Severity

logger = logging.getLogger("healthwatch.alerts.service")

STATUS_SEVERITY = {
    ServiceStatus.OPERATIONAL.value: Severity.INFO.value,
    ServiceStatus.DEGRADED.value: Severity.WARNING.value,
    ServiceStatus.MAJOR.value: Severity.CRITICAL.value,
}


class AlertService:
    def __init__(self, dispatcher=None, channels=None, tz_name="Europe/Kyiv"):
        self.dispatcher = dispatcher or NotificationDispatcher(channels)
        self.channels = list(channels) if channels is not None else list(self.dispatcher.channels)
        self.tz_name = tz_name

    def send_alert(self, alert):
        return self.dispatcher.dispatch(alert, self.channels)

    def send_status_update(self, status, details=None, affected=None):
        """Broadcast a system status change.

        Channels with a native status format (Telegram) use it; the rest get
        a regular alert.
        """
        if status not in STATUS_SEVERITY:
            raise ValueError(f"Unknown status: {status}")
        title = f"System Status: {status.upper()}"
        message = details or f"System status changed to {status}"
        if affected:
            message += f"\n\nAffected services: {', '.join(affected)}"
        alert = Alert(title=title, message=message, severity=STATUS_SEVERITY[status], service="system")

        native = [ch for ch in self.channels if hasattr(ch, "send_status_update")]
        plain = [ch for ch in self.channels if ch not in native]

        results = self.dispatcher.dispatch(alert, plain) if plain else {}
        for ch in native:
            if not ch.enabled:
                continue
            try:
                results[ch.name] = ch.send_status_update(status, message)
            except Exception as e:
                logger.error(f"Failed to send {ch.name} status update: {e}")
                results[ch.name] = False
        return results

    def test_all_channels(self):
        results = {}
        for ch in self.channels:
            try:
                results[ch.name] = bool(ch.test_connection())
            except Exception as e:
                logger.error(f"{ch.name} test failed: {e}")
                results[ch.name] = False
        logger.info(f"Channel test results: {results}")
        return results

    # ── templates ────────────────────────────────────

    def response_time_alert(self, current_ms, threshold_ms, service):
        return self.send_alert(Alert(
            title="High Response Time Detected",
            message=(
                f"Response time for {service} has exceeded the warning threshold. "
                "This may indicate performance degradation or high system load."
            ),
            severity="critical" if current_ms > threshold_ms * 2 else "warning",
            service=service,
            metric="average_response_time",
            current_value=current_ms,
            threshold=threshold_ms,
        ))

    def success_rate_alert(self, current_rate, threshold, service):
        return self.send_alert(Alert(
            title="Low Success Rate Detected",
            message=(
                f"Success rate for {service} has dropped below the warning threshold. "
                "Users may be experiencing failures."
            ),
            severity="critical" if current_rate < threshold - 10 else "warning",
            service=service,
            metric="success_rate",
            current_value=current_rate,
            threshold=threshold,
        ))

    def service_down_alert(self, service, error=None):
        detail = f"Error: {error}" if error else "Health check failed."
        return self.send_alert(Alert(
            title=f"Service Down: {service}",
            message=f"{service} is currently unavailable. {detail}",
            severity="critical",
            service=service,
        ))

    def service_recovered_alert(self, service, downtime=None):
        message = f"{service} has recovered and is now operational."
        if downtime:
            message += f" Downtime: {downtime}"
        return self.send_alert(Alert(
            title=f"Service Recovered: {service}",
            message=message,
            severity="info",
            service=service,
        ))

    def maintenance_alert(self, service, duration, start_time=None):
        start_time = start_time or datetime.now(timezone.utc)
        return self.send_alert(Alert(
            title=f"Scheduled Maintenance: {service}",
            message=(
                f"Scheduled maintenance for {service} will begin at "
                f"{local_time(start_time, self.tz_name)} and is expected to last {duration}."
            ),
            severity="info",
            service=service,
        ))
