"""Telegram Bot API client.

Uses raw HTTP POST via requests.
"""
import logging
import requests

logger = logging.getLogger("healthwatch.telegram")

TELEGRAM_API = "https://api.telegram.org/bot{token}"

BOT_COMMANDS = [
    {"command": "status", "description": "Get current system status"},
    {"command": "health", "description": "Check system health"},
    {"command": "metrics", "description": "View key metrics"},
    {"command": "alerts", "description": "List active alerts"},
]


class TelegramBot:
    """Thin wrapper around Telegram Bot API."""

    def __init__(self, bot_token: str, chat_id: str, timeout: float = 10):
        self.bot_token = bot_token
        self.chat_id = str(chat_id)
        self.timeout = timeout
        self.base_url = TELEGRAM_API.format(token=bot_token)

    # ── core API ─────────────────────────────────────

    def send_message(self, text: str, chat_id: str = None,
                     parse_mode: str = "HTML", disable_preview: bool = True) -> dict:
        """Send a text message. Returns Telegram API response dict."""
        url = f"{self.base_url}/sendMessage"
        payload = {
            "chat_id": chat_id or self.chat_id,
            "text": text,
            "parse_mode": parse_mode,
            "disable_web_page_preview": disable_preview,
        }
        try:
            resp = requests.post(url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
            if not data.get("ok"):
                logger.warning("Telegram API error: %s", data.get("description"))
            return data
        except requests.RequestException as e:
            logger.error("Telegram send failed: %s", e)
            raise

    def verify_token(self) -> dict:
        """Verify bot token via getMe endpoint."""
        url = f"{self.base_url}/getMe"
        resp = requests.get(url, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def set_my_commands(self, commands=None) -> dict:
        """Register the bot's slash-command menu."""
        url = f"{self.base_url}/setMyCommands"
        resp = requests.post(url, json={"commands": commands or BOT_COMMANDS}, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()
