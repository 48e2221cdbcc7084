"""Tests for email sender and email alert channel."""
import smtplib
import pytest
from unittest.mock import patch, MagicMock

from notifications.email_sender import EmailSender
from alerts.channels import EmailChannel
from models.alerts import Alert

CONFIGURED = {"email": {
    "smtp_host": "smtp.test.com",
    "smtp_port": 587,
    "from_address": "alerts@test.com",
    "to_address": "oncall@test.com",
    "smtp_username": "user",
    "smtp_password": "pass",
}}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("HEALTHWATCH_SMTP_USER", "HEALTHWATCH_SMTP_PASS",
                "HEALTHWATCH_SMTP_HOST", "HEALTHWATCH_ALERT_EMAIL_TO"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def smtp():
    with patch("notifications.email_sender.smtplib.SMTP") as mock_smtp_class:
        server = mock_smtp_class.return_value
        server.__enter__.return_value = server
        yield server


def _alert(**kw):
    fields = dict(title="High Response Time", message="avg 6200ms", severity="warning",
                  service="monitoring", metric="average_response_time",
                  current_value=6200.0, threshold=5000.0)
    fields.update(kw)
    return Alert(**fields)


class TestEmailSender:
    def test_not_configured_missing_fields(self):
        assert EmailSender({"email": {}}).is_configured() is False

    def test_configured_with_all_fields(self):
        assert EmailSender(CONFIGURED).is_configured() is True

    def test_from_address_defaults_to_username(self):
        sender = EmailSender({"email": {"smtp_username": "me@test.com"}})
        assert sender.from_address == "me@test.com"

    def test_env_vars_override_config(self, monkeypatch):
        monkeypatch.setenv("HEALTHWATCH_SMTP_USER", "env_user")
        monkeypatch.setenv("HEALTHWATCH_SMTP_PASS", "env_pass")
        sender = EmailSender({"email": {"smtp_username": "config_user", "smtp_password": "config_pass"}})
        assert sender.username == "env_user"
        assert sender.password == "env_pass"

    def test_multiple_recipients(self, smtp):
        config = {"email": dict(CONFIGURED["email"], to_address="a@test.com, b@test.com,")}
        sender = EmailSender(config)
        assert sender.recipients == ["a@test.com", "b@test.com"]
        assert sender.send("s", "<p>x</p>") is True
        assert smtp.send_message.call_args[0][0]["To"] == "a@test.com, b@test.com"

    def test_send_returns_false_when_not_configured(self):
        assert EmailSender({"email": {}}).send("s", "<p>x</p>") is False

    def test_send_success(self, smtp):
        result = EmailSender(CONFIGURED).send("Subject", "<h1>Hi</h1>", "Hi")
        assert result is True
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("user", "pass")
        msg = smtp.send_message.call_args[0][0]
        assert msg["To"] == "oncall@test.com"
        assert msg["Subject"] == "Subject"
        assert len(msg.get_payload()) == 2

    def test_auth_failure_returns_false(self, smtp):
        smtp.login.side_effect = smtplib.SMTPAuthenticationError(535, b"Bad credentials")
        assert EmailSender(CONFIGURED).send("s", "<p>x</p>") is False
        smtp.close.assert_called_once()

    def test_test_connection_ok(self, smtp):
        smtp.noop.return_value = (250, b"OK")
        assert EmailSender(CONFIGURED).test_connection()["status"] == "ok"

    def test_test_connection_error(self, smtp):
        smtp.login.side_effect = smtplib.SMTPAuthenticationError(535, b"nope")
        result = EmailSender(CONFIGURED).test_connection()
        assert result["status"] == "error"
        assert "Authentication failed" in result["message"]


class TestEmailChannel:
    def test_disabled_without_credentials(self):
        channel = EmailChannel(EmailSender({"email": {}}))
        assert channel.enabled is False
        assert channel.deliver(_alert()) is False

    def test_subject_has_severity_emoji(self):
        channel = EmailChannel(EmailSender(CONFIGURED), app_name="Dash")
        assert channel.subject(_alert(severity="critical")) == "[Dash Alert] \U0001f6a8 High Response Time"

    def test_render_infers_units(self):
        channel = EmailChannel(EmailSender(CONFIGURED))
        html = channel.render_html(_alert())
        text = channel.render_text(_alert())
        assert "6200ms" in html and "5000ms" in html
        assert "Current Value: 6200ms" in text
        assert "#f59e0b" in html

    def test_render_escapes_html(self):
        channel = EmailChannel(EmailSender(CONFIGURED))
        html = channel.render_html(_alert(message="<script>x</script>"))
        assert "<script>" not in html

    def test_render_rate_metric(self):
        channel = EmailChannel(EmailSender(CONFIGURED))
        text = channel.render_text(_alert(metric="successRate", current_value=85.0, threshold=90.0))
        assert "85%" in text and "90%" in text

    def test_deliver_sends_via_smtp(self, smtp):
        channel = EmailChannel(EmailSender(CONFIGURED), dashboard_url="https://dash.example.com")
        assert channel.deliver(_alert()) is True
        msg = smtp.send_message.call_args[0][0]
        assert "High Response Time" in msg["Subject"]

    def test_test_connection_reports_failure(self):
        sender = MagicMock()
        sender.is_configured.return_value = True
        sender.test_connection.return_value = {"status": "error", "message": "refused"}
        assert EmailChannel(sender).test_connection() is False
