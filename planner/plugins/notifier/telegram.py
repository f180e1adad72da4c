import logging
from typing import Any, Dict, Optional

import requests


class TelegramNotifier:
    """Sends activity changes to a Telegram chat. Delivery failures are logged, never raised."""

    API_URL = "https://api.telegram.org/bot{token}/sendMessage"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.enabled = config.get("enabled", True)
        self.bot_token = config.get("bot_token")
        self.chat_id = config.get("chat_id")
        self.timeout = config.get("timeout", 10)
        self.logger = logging.getLogger(self.__class__.__name__)

    def send(self, text: str) -> bool:
        """Send text (Telegram HTML). Returns True if Telegram accepted it."""
        if not self.enabled:
            self.logger.debug("Notifier disabled, skipping notification")
            return False
        if not self.bot_token or not self.chat_id:
            self.logger.warning("Telegram credentials not found. Skipping notification.")
            return False
        try:
            response = requests.post(
                self.API_URL.format(token=self.bot_token),
                json={"chat_id": self.chat_id, "text": text, "parse_mode": "HTML"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            self.logger.error(f"Failed to send Telegram message: {e}")
            return False
        if not response.ok:
            self.logger.error(f"Telegram API Error: {response.status_code} {response.text[:200]}")
            return False
        return True
