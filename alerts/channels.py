"""Alert notification channels.

Every channel receives the structured Alert and renders it itself.
"""
import html
import json
import logging
import os
from pathlib import Path
from typing import Protocol, runtime_checkable

from rich.markup import escape

from alerts.formatting import (
    STATUS_EMOJI, severity_emoji, severity_color, format_value, local_time, timezone_label,
)

logger = logging.getLogger("healthwatch.alerts.channels")

_SEVERITY_ORDER = {"info": 0, "warning": 1, "error": 2, "critical": 3}


@runtime_checkable
class AlertChannel(Protocol):
    name: str
    enabled: bool

    def deliver(self, alert) -> bool: ...

    def test_connection(self) -> bool: ...


class BaseChannel:
    name = "base"

    def __init__(self, min_severity="info"):
        self.min_severity = min_severity

    @property
    def enabled(self):
        return True

    def accepts(self, alert) -> bool:
        sev = _SEVERITY_ORDER.get(str(alert.severity).lower(), 0)
        return sev >= _SEVERITY_ORDER.get(self.min_severity, 0)

    def deliver(self, alert) -> bool:
        raise NotImplementedError

    def test_connection(self) -> bool:
        return self.enabled


class ConsoleChannel(BaseChannel):
    """Print alerts to terminal with rich formatting."""

    name = "console"

    def __init__(self, console=None, min_severity="info"):
        super().__init__(min_severity)
        from rich.console import Console
        self.console = console or Console()

    def deliver(self, alert) -> bool:
        severity_styles = {
            "critical": "bold white on red",
            "error": "bold red",
            "warning": "bold yellow",
            "info": "bold blue",
        }
        style = severity_styles.get(alert.severity, "")
        self.console.print(
            f"[{style}] {escape(f'[{alert.severity.upper()}]')} {escape(alert.title)}[/] {escape(alert.message)}",
            highlight=False,
        )
        return True


class FileChannel(BaseChannel):
    """Append alerts to a JSON lines log file."""

    name = "file"

    def __init__(self, log_path="data/alerts.jsonl", min_severity="info"):
        super().__init__(min_severity)
        self.log_path = log_path

    def deliver(self, alert) -> bool:
        Path(self.log_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self.log_path, "a") as f:
                f.write(json.dumps(alert.to_dict()) + "\n")
            return True
        except OSError as e:
            logger.warning(f"Failed to write alert to file: {e}")
            return False

    def test_connection(self) -> bool:
        parent = Path(self.log_path).parent
        return parent.exists() and os.access(parent, os.W_OK)


class TelegramChannel(BaseChannel):
    """Send alert notifications via Telegram (HTML parse mode)."""

    name = "telegram"

    def __init__(self, bot, min_severity="info", dashboard_url="", tz_name="Europe/Kyiv",
                 app_name="Health Monitor"):
        super().__init__(min_severity)
        self.bot = bot
        self.dashboard_url = dashboard_url.rstrip("/")
        self.tz_name = tz_name
        self.app_name = app_name

    @property
    def enabled(self):
        return self.bot is not None

    def format_message(self, alert) -> str:
        e = html.escape
        lines = [
            f"{severity_emoji(alert.severity)} <b>{e(self.app_name)} Alert</b>",
            "",
            f"<b>{e(alert.title)}</b>",
            "",
            "<b>Details:</b>",
            f"• Service: <code>{e(alert.service)}</code>",
            f"• Severity: <code>{alert.severity.upper()}</code>",
        ]
        if alert.metric:
            lines.append(f"• Metric: <code>{e(alert.metric)}</code>")
        if alert.current_value is not None:
            lines.append(f"• Current Value: <code>{format_value(alert.current_value, alert.metric)}</code>")
        if alert.threshold is not None:
            lines.append(f"• Threshold: <code>{format_value(alert.threshold, alert.metric)}</code>")
        lines.append(
            f"• Time: <code>{local_time(alert.timestamp, self.tz_name)}</code> "
            f"({timezone_label(self.tz_name)})"
        )
        lines += ["", "<b>Description:</b>", e(alert.message)]
        if self.dashboard_url:
            lines += [
                "",
                f'<a href="{e(self.dashboard_url)}">View Dashboard</a>',
                f'<a href="{e(self.dashboard_url)}/api/health">Check System Health</a>',
            ]
        return "\n".join(lines)

    def deliver(self, alert) -> bool:
        if not self.enabled:
            return False
        try:
            data = self.bot.send_message(self.format_message(alert), parse_mode="HTML")
            return bool(data.get("ok"))
        except Exception as e:
            logger.warning("Telegram alert failed: %s", e)
            return False

    def send_status_update(self, status, details=None, tz_name=None) -> bool:
        if not self.enabled:
            return False
        emoji = STATUS_EMOJI.get(status, "\U0001f6a8")
        text = (
            f"{emoji} <b>{html.escape(self.app_name)} Status Update</b>\n\n"
            f"System Status: <code>{status.capitalize()}</code>\n"
        )
        if details:
            text += f"\nDetails: {html.escape(details)}\n"
        tz = tz_name or self.tz_name
        text += f"\n{local_time(None, tz)} ({timezone_label(tz)})"
        try:
            return bool(self.bot.send_message(text, parse_mode="HTML").get("ok"))
        except Exception as e:
            logger.warning("Telegram status update failed: %s", e)
            return False

    def test_connection(self) -> bool:
        if not self.enabled:
            return False
        try:
            data = self.bot.send_message(
                f"\U0001f9ea <b>{html.escape(self.app_name)} Test</b>\n\n"
                "Telegram notifications are working correctly!",
                parse_mode="HTML",
            )
            return bool(data.get("ok"))
        except Exception as e:
            logger.error("Telegram connection test failed: %s", e)
            return False


class EmailChannel(BaseChannel):
    """Email alert channel: one HTML message per alert."""

    name = "email"

    def __init__(self, sender, min_severity="info", dashboard_url="", tz_name="Europe/Kyiv",
                 app_name="Health Monitor"):
        super().__init__(min_severity)
        self.sender = sender
        self.dashboard_url = dashboard_url.rstrip("/")
        self.tz_name = tz_name
        self.app_name = app_name

    @property
    def enabled(self):
        return self.sender is not None and self.sender.is_configured()

    def subject(self, alert) -> str:
        return f"[{self.app_name} Alert] {severity_emoji(alert.severity)} {alert.title}"

    def render_html(self, alert) -> str:
        e = html.escape
        color = severity_color(alert.severity)
        rows = [
            f"<p><strong>Service:</strong> {e(alert.service)}</p>",
            f"<p><strong>Severity:</strong> {alert.severity.upper()}</p>",
        ]
        if alert.metric:
            rows.append(f"<p><strong>Metric:</strong> {e(alert.metric)}</p>")
        if alert.current_value is not None:
            rows.append(
                f'<p><strong>Current Value:</strong> <span style="font-size: 24px; font-weight: bold; '
                f'color: {color};">{format_value(alert.current_value, alert.metric)}</span></p>'
            )
        if alert.threshold is not None:
            rows.append(f"<p><strong>Threshold:</strong> {format_value(alert.threshold, alert.metric)}</p>")
        button = (
            f'<div style="text-align: center; margin: 30px 0;"><a href="{e(self.dashboard_url)}" '
            f'style="background: {color}; color: white; padding: 12px 24px; text-decoration: none; '
            f'border-radius: 6px;">View Dashboard</a></div>'
            if self.dashboard_url else ""
        )
        return f"""
<!DOCTYPE html>
<html>
<body style="font-family: system-ui, sans-serif; margin: 0; padding: 20px; background-color: #f8fafc;">
  <div style="max-width: 600px; margin: 0 auto; background: white; border-radius: 8px; overflow: hidden;">
    <div style="background: {color}; color: white; padding: 20px; text-align: center;">
      <h1>{severity_emoji(alert.severity)} {e(self.app_name)} Alert</h1>
      <p style="margin: 0;">{e(alert.title)}</p>
    </div>
    <div style="padding: 30px;">
      <div style="background: #f1f5f9; border-left: 4px solid {color}; padding: 15px; margin: 20px 0;">
        <h3 style="margin-top: 0;">Alert Details</h3>
        {''.join(rows)}
      </div>
      <h3>Description</h3>
      <p>{e(alert.message)}</p>
      {button}
      <p style="color: #64748b; font-size: 14px;">
        <strong>Timestamp:</strong> {local_time(alert.timestamp, self.tz_name)} ({timezone_label(self.tz_name)} time)
      </p>
    </div>
    <div style="background: #f8fafc; padding: 20px; text-align: center; color: #64748b; font-size: 14px;">
      <p>{e(self.app_name)} | Automated monitoring system</p>
    </div>
  </div>
</body>
</html>
"""

    def render_text(self, alert) -> str:
        lines = [
            f"{self.app_name} Alert - {alert.severity.upper()}",
            "",
            f"Subject: {alert.title}",
            f"Service: {alert.service}",
            f"Severity: {alert.severity}",
        ]
        if alert.metric:
            lines.append(f"Metric: {alert.metric}")
        if alert.current_value is not None:
            lines.append(f"Current Value: {format_value(alert.current_value, alert.metric)}")
        if alert.threshold is not None:
            lines.append(f"Threshold: {format_value(alert.threshold, alert.metric)}")
        lines += [
            "",
            "Description:",
            alert.message,
            "",
            f"Timestamp: {local_time(alert.timestamp, self.tz_name)} ({timezone_label(self.tz_name)} time)",
        ]
        if self.dashboard_url:
            lines.append(f"View Dashboard: {self.dashboard_url}")
        return "\n".join(lines)

    def deliver(self, alert) -> bool:
        if not self.enabled:
            return False
        return self.sender.send(self.subject(alert), self.render_html(alert), self.render_text(alert))

    def test_connection(self) -> bool:
        if not self.enabled:
            return False
        result = self.sender.test_connection()
        if result["status"] != "ok":
            logger.error(f"Email connection test failed: {result['message']}")
        return result["status"] == "ok"


def build_channels(config, telegram_bot=None, email_sender=None, interactive=False):
    """Assemble the configured channels.

    Channels without credentials are logged once here and left out.
    """
    from notifications.email_sender import EmailSender
    from notifications.telegram_bot import TelegramBot

    alerts_cfg = config.get("alerts", {})
    display = config.get("display", {})
    dashboard_url = display.get("dashboard_url", "")
    tz_name = display.get("timezone", "Europe/Kyiv")
    app_name = display.get("app_name", "Health Monitor")

    channels = []

    if alerts_cfg.get("file_log"):
        channels.append(FileChannel(alerts_cfg["file_log"]))

    if interactive:
        channels.append(ConsoleChannel())

    email_cfg = config.get("email", {})
    if email_cfg.get("enabled", True):
        sender = email_sender or EmailSender(config)
        if sender.is_configured():
            channels.append(EmailChannel(
                sender,
                min_severity=email_cfg.get("min_severity", "info"),
                dashboard_url=dashboard_url, tz_name=tz_name, app_name=app_name,
            ))
            logger.info("Email alerts configured")
        else:
            logger.warning("Email alerts not configured - missing SMTP credentials")

    tg_cfg = config.get("telegram", {})
    if tg_cfg.get("enabled", True):
        token = os.environ.get("HEALTHWATCH_TELEGRAM_TOKEN", tg_cfg.get("bot_token", ""))
        chat_id = os.environ.get("HEALTHWATCH_TELEGRAM_CHAT_ID", tg_cfg.get("chat_id", ""))
        bot = telegram_bot
        if bot is None and token and chat_id:
            bot = TelegramBot(token, chat_id, timeout=tg_cfg.get("timeout_seconds", 10))
        if bot is not None:
            channels.append(TelegramChannel(
                bot,
                min_severity=tg_cfg.get("min_severity", "info"),
                dashboard_url=dashboard_url, tz_name=tz_name, app_name=app_name,
            ))
            logger.info("Telegram alerts configured")
        else:
            logger.warning("Telegram alerts not configured - missing bot token or chat ID")

    return channels
