"""Outbound transports: SMTP email and Telegram Bot API."""
from notifications.email_sender import EmailSender
from notifications.telegram_bot import TelegramBot
