"""Presentation helpers shared by notification channels."""
import logging
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger("healthwatch.alerts.formatting")

SEVERITY_EMOJI = {
    "critical": "\U0001f6a8",
    "error": "❌",
    "warning": "⚠️",
    "info": "ℹ️",
}
DEFAULT_EMOJI = "\U0001f4ca"

SEVERITY_COLORS = {
    "critical": "#dc2626",
    "error": "#ef4444",
    "warning": "#f59e0b",
    "info": "#3b82f6",
}
DEFAULT_COLOR = "#6366f1"

STATUS_EMOJI = {
    "operational": "✅",
    "degraded": "⚠️",
    "major": "\U0001f6a8",
}


def severity_emoji(severity):
    return SEVERITY_EMOJI.get(str(severity).lower(), DEFAULT_EMOJI)


def severity_color(severity):
    return SEVERITY_COLORS.get(str(severity).lower(), DEFAULT_COLOR)


def metric_unit(metric):
    """Infer a display unit from a metric name: *time* is ms, *rate*/*percent* is %."""
    if not metric:
        return ""
    name = metric.lower()
    if "time" in name:
        return "ms"
    if "rate" in name or "percent" in name:
        return "%"
    return ""


def format_value(value, metric=None):
    if value is None:
        return "N/A"
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    elif isinstance(value, float):
        value = round(value, 2)
    return f"{value}{metric_unit(metric)}"


def local_time(ts=None, tz_name="Europe/Kyiv"):
    """Format a timestamp in the display timezone as DD.MM.YYYY, HH:MM."""
    ts = ts or datetime.now(timezone.utc)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {tz_name!r}, using UTC")
        tz = timezone.utc
    return ts.astimezone(tz).strftime("%d.%m.%Y, %H:%M")


def timezone_label(tz_name):
    return tz_name.rsplit("/", 1)[-1].replace("_", " ")
