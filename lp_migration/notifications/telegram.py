"""Telegram progress sink — reports migration outcomes."""
import logging
import ssl

import aiohttp
import certifi

from ..config import TelegramConfig
from ..models import STATUS_COMPLETED, MigrationProgress

logger = logging.getLogger(__name__)


class TelegramProgressNotifier:
    """Send the terminal state of a migration to a Telegram chat.

    Intermediate snapshots are ignored; only completed/failed plans are posted.
    """

    def __init__(self, config: TelegramConfig) -> None:
        self.bot_token = config.bot_token
        self.chat_id = config.chat_id

    async def __call__(self, progress: MigrationProgress) -> None:
        if not progress.is_terminal:
            return
        await self.send_message(self.format_progress(progress))

    @staticmethod
    def format_progress(progress: MigrationProgress) -> str:
        icon = "✅" if progress.status == STATUS_COMPLETED else "🚨"
        lines = [
            f"{icon} Migration {progress.plan_id} — {progress.status.upper()}",
            "",
            f"Steps: {len(progress.completed_steps)}/{progress.total_steps} completed",
        ]
        if progress.failed_steps:
            lines.append(f"Failed: {', '.join(progress.failed_steps)}")
        if progress.errors:
            lines.append("")
            lines.append("Errors:")
            for err in progress.errors:
                lines.append(f"  {err.step_id}: {err.error}")
        if progress.end_time:
            lines.append("")
            lines.append(f"{progress.end_time.strftime('%Y-%m-%d %H:%M:%S')} UTC")
        return "\n".join(lines)

    async def send_message(self, message: str, silent: bool = False) -> bool:
        """Send a Telegram message; returns False when unconfigured or rejected."""
        if not self.bot_token or not self.chat_id:
            logger.warning("Telegram credentials not configured")
            return False

        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": message,
            "disable_notification": silent,
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.post(url, json=payload) as response:
                if response.status == 200:
                    logger.info("Telegram migration report sent")
                    return True
                logger.error("Failed to send Telegram message: %s", response.status)
                return False
