import html
import logging
from typing import Any, Dict, Optional

import requests

from options_platform.config import Settings

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Operator alert channel. Every method is a no-op until a bot and chat are configured."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.base_url = f"https://api.telegram.org/bot{settings.telegram_bot_token}"

    def is_configured(self) -> bool:
        return bool(self.settings.telegram_bot_token and self.settings.telegram_chat_id)

    def send_message(self, text: str, parse_mode: Optional[str] = None) -> Optional[Dict[str, Any]]:
        if not self.is_configured():
            return None
        payload = {"chat_id": self.settings.telegram_chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        try:
            response = requests.post(f"{self.base_url}/sendMessage", json=payload, timeout=15)
        except requests.RequestException as exc:
            logger.warning(f"Telegram alert failed: {exc}")
            return None
        if response.ok:
            return response.json().get("result")
        logger.warning("Telegram alert rejected: %s", response.text[:500])
        return None

    def alert_partial_settlement(self, user_strategy_id: str, run_id: str,
                                 executed: int, failed_index: int, error: str) -> None:
        self.send_message(
            f"⚠️ <b>Copy-trade settlement stopped</b>\n"
            f"User strategy: <code>{html.escape(str(user_strategy_id))}</code>\n"
            f"Run: <code>{html.escape(str(run_id))}</code>\n"
            f"Legs executed: {executed}\n"
            f"Failed leg: #{failed_index}\n"
            f"Error: {html.escape(str(error))}\n"
            f"<i>Executed legs were not reversed, reconcile manually.</i>",
            parse_mode="HTML",
        )

    def alert_strategy_pending_review(self, strategy_id: str, title: str) -> None:
        self.send_message(f"📝 Strategy awaiting review: {title} ({strategy_id})")
