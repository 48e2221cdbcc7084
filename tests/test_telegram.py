"""Tests for Telegram bot and channel."""
import pytest
import requests
from unittest.mock import patch, MagicMock

from notifications.telegram_bot import TelegramBot, BOT_COMMANDS
from alerts.channels import TelegramChannel
from models.alerts import Alert


def _ok_response(data=None):
    resp = MagicMock(status_code=200)
    resp.json.return_value = data or {"ok": True, "result": {}}
    resp.raise_for_status = MagicMock()
    return resp


def _alert(**kw):
    fields = dict(title="Low Success Rate", message="success rate 85 < 90", severity="error",
                  service="monitoring", metric="successRate", current_value=85.0, threshold=90.0)
    fields.update(kw)
    return Alert(**fields)


# ── TelegramBot tests ────────────────────────────────

def test_send_message():
    """send_message makes correct HTTP POST."""
    with patch("requests.post", return_value=_ok_response()) as mock_post:
        bot = TelegramBot("fake_token", "123456", timeout=7)
        result = bot.send_message("hello")

        assert result["ok"]
        mock_post.assert_called_once()
        assert "botfake_token/sendMessage" in mock_post.call_args[0][0]
        payload = mock_post.call_args.kwargs["json"]
        assert payload["chat_id"] == "123456"
        assert payload["text"] == "hello"
        assert payload["parse_mode"] == "HTML"
        assert mock_post.call_args.kwargs["timeout"] == 7


def test_send_message_custom_chat_id():
    with patch("requests.post", return_value=_ok_response()) as mock_post:
        TelegramBot("token", "default_id").send_message("test", chat_id="other_id")
        assert mock_post.call_args.kwargs["json"]["chat_id"] == "other_id"


def test_send_message_network_error_raises():
    with patch("requests.post", side_effect=requests.ConnectionError("down")):
        with pytest.raises(requests.RequestException):
            TelegramBot("token", "1").send_message("x")


def test_verify_token():
    with patch("requests.get", return_value=_ok_response({"ok": True, "result": {"username": "testbot"}})) as mock_get:
        result = TelegramBot("fake_token", "123").verify_token()
        assert result["result"]["username"] == "testbot"
        assert "getMe" in mock_get.call_args[0][0]


def test_set_my_commands():
    with patch("requests.post", return_value=_ok_response()) as mock_post:
        TelegramBot("token", "1").set_my_commands()
        assert "setMyCommands" in mock_post.call_args[0][0]
        assert mock_post.call_args.kwargs["json"]["commands"] == BOT_COMMANDS


# ── TelegramChannel tests ────────────────────────────

def test_channel_formats_structured_alert():
    channel = TelegramChannel(MagicMock(), dashboard_url="https://dash.example.com/", app_name="Dash")
    text = channel.format_message(_alert())
    assert text.startswith("❌ <b>Dash Alert</b>")
    assert "<code>85%</code>" in text
    assert "<code>90%</code>" in text
    assert "<code>ERROR</code>" in text
    assert 'href="https://dash.example.com/api/health"' in text


def test_channel_escapes_html():
    text = TelegramChannel(MagicMock()).format_message(_alert(title="a < b & c"))
    assert "a &lt; b &amp; c" in text


def test_channel_deliver_ok():
    bot = MagicMock()
    bot.send_message.return_value = {"ok": True}
    assert TelegramChannel(bot).deliver(_alert()) is True
    assert bot.send_message.call_args.kwargs["parse_mode"] == "HTML"


def test_channel_deliver_api_error():
    bot = MagicMock()
    bot.send_message.return_value = {"ok": False, "description": "chat not found"}
    assert TelegramChannel(bot).deliver(_alert()) is False


def test_channel_deliver_exception_returns_false():
    bot = MagicMock()
    bot.send_message.side_effect = requests.Timeout("slow")
    assert TelegramChannel(bot).deliver(_alert()) is False


def test_channel_min_severity():
    channel = TelegramChannel(MagicMock(), min_severity="critical")
    assert channel.accepts(_alert(severity="error")) is False
    assert channel.accepts(_alert(severity="critical")) is True


def test_channel_disabled_without_bot():
    channel = TelegramChannel(None)
    assert channel.enabled is False
    assert channel.deliver(_alert()) is False
    assert channel.test_connection() is False


def test_status_update():
    bot = MagicMock()
    bot.send_message.return_value = {"ok": True}
    assert TelegramChannel(bot).send_status_update("degraded", "DB slow") is True
    text = bot.send_message.call_args[0][0]
    assert "⚠️" in text
    assert "<code>Degraded</code>" in text
    assert "DB slow" in text
