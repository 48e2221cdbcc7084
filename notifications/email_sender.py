"""
SMTP transport for alert email.

Rendering lives in alerts.channels.EmailChannel; this module only builds
the MIME envelope and talks to the server. Settings come from the
`email` config section, with HEALTHWATCH_SMTP_* environment variables
taking priority.
"""
import os
import ssl
import smtplib
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate

logger = logging.getLogger("healthwatch.notifications.email_sender")

ENV_SETTINGS = {
    "smtp_host": "HEALTHWATCH_SMTP_HOST",
    "smtp_username": "HEALTHWATCH_SMTP_USER",
    "smtp_password": "HEALTHWATCH_SMTP_PASS",
    "to_address": "HEALTHWATCH_ALERT_EMAIL_TO",
}


def _setting(section, key, default=""):
    env_key = ENV_SETTINGS.get(key)
    if env_key and os.environ.get(env_key):
        return os.environ[env_key]
    return section.get(key, default)


class EmailSender:
    """SMTP client with STARTTLS and login.

    `to_address` may hold several comma-separated recipients.
    """

    def __init__(self, config: dict):
        section = config.get("email", {})
        self.smtp_host = _setting(section, "smtp_host")
        self.smtp_port = int(section.get("smtp_port", 587))
        self.use_tls = section.get("use_tls", True)
        self.timeout = section.get("timeout_seconds", 10)
        self.username = _setting(section, "smtp_username")
        self.password = _setting(section, "smtp_password")
        self.from_address = section.get("from_address") or self.username
        self.from_name = section.get("from_name", "Health Monitor")
        self.recipients = [
            addr.strip() for addr in str(_setting(section, "to_address")).split(",") if addr.strip()
        ]

    @property
    def to_address(self):
        return ", ".join(self.recipients)

    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_address and self.recipients
                    and self.username and self.password)

    def build_message(self, subject, html_content, plaintext=None):
        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.from_address))
        msg["To"] = self.to_address
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        # Clients show the last part they can render, so HTML goes last.
        if plaintext:
            msg.attach(MIMEText(plaintext, "plain", "utf-8"))
        msg.attach(MIMEText(html_content, "html", "utf-8"))
        return msg

    def send(self, subject: str, html_content: str, plaintext: str = None) -> bool:
        """Send one message to every recipient. Never raises."""
        if not self.is_configured():
            logger.warning("Email not configured - skipping send")
            return False
        msg = self.build_message(subject, html_content, plaintext)
        try:
            with self._connect() as server:
                server.send_message(msg)
        except smtplib.SMTPAuthenticationError:
            logger.error("SMTP authentication failed. Check username/password.")
            return False
        except smtplib.SMTPRecipientsRefused:
            logger.error(f"Recipients refused: {self.to_address}")
            return False
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Email send failed: {e}")
            return False
        logger.info(f"Email sent to {self.to_address}: {subject}")
        return True

    def test_connection(self) -> dict:
        """Log in and NOOP without sending anything."""
        try:
            with self._connect() as server:
                code = server.noop()[0]
        except smtplib.SMTPAuthenticationError as e:
            return {"status": "error", "message": f"Authentication failed: {e}"}
        except smtplib.SMTPConnectError as e:
            return {"status": "error", "message": f"Connection failed: {e}"}
        except (smtplib.SMTPException, OSError) as e:
            return {"status": "error", "message": str(e)}
        return {"status": "ok", "message": f"SMTP connection successful ({code})"}

    def _connect(self):
        server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout)
        try:
            server.ehlo()
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
                server.ehlo()
            server.login(self.username, self.password)
        except Exception:
            server.close()
            raise
        return server
