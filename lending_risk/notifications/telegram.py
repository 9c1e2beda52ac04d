"""Telegram notification service."""
import asyncio
import logging
import ssl

import aiohttp
import certifi

from ..config import TelegramConfig

logger = logging.getLogger(__name__)

_API_URL = "https://api.telegram.org/bot{token}/sendMessage"
# Bot API rejects longer texts.
MAX_MESSAGE_LENGTH = 4096
_TRUNCATION_MARK = "\n…(truncated)"


def _fit(message: str) -> str:
    if len(message) <= MAX_MESSAGE_LENGTH:
        return message
    return message[: MAX_MESSAGE_LENGTH - len(_TRUNCATION_MARK)] + _TRUNCATION_MARK


class TelegramNotifier:
    """Risk alerts go to an unmuted bot, cycle summaries to a quiet one."""

    def __init__(self, config: TelegramConfig, timeout: float = 10.0) -> None:
        self._alert_token = config.alert_bot_token
        self._log_token = config.log_bot_token
        self._chat_id = config.chat_id
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def _post(self, bot_token: str, text: str, silent: bool) -> bool:
        if not bot_token or not self._chat_id:
            logger.warning("Telegram credentials not configured")
            return False

        payload = {
            "chat_id": self._chat_id,
            "text": _fit(text),
            "disable_notification": silent,
        }
        ssl_context = ssl.create_default_context(cafile=certifi.where())

        try:
            connector = aiohttp.TCPConnector(ssl=ssl_context)
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.post(
                    _API_URL.format(token=bot_token),
                    json=payload,
                    timeout=self._timeout,
                ) as response:
                    if response.status != 200:
                        logger.error("Telegram API returned HTTP %s", response.status)
                        return False
                    return True
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Telegram request failed: %s", e)
            return False

    async def send_alert(self, message: str, subject: str = "") -> bool:
        """The subject line is already part of every alert body."""
        sent = await self._post(self._alert_token, message, silent=False)
        if sent:
            logger.info("Telegram alert delivered")
        return sent

    async def send_log(self, message: str, silent: bool = True) -> bool:
        sent = await self._post(self._log_token, message, silent=silent)
        if sent:
            logger.debug("Telegram cycle log delivered")
        return sent
