"""
MeteoraRebalancer - Telegram Alert Manager
Handles notifications for relocations, errors, and system events
"""
import asyncio
import html
import logging
from enum import Enum
from typing import Optional

import requests

from config import Config

logger = logging.getLogger(__name__)


class AlertType(str, Enum):
    """Alert severities understood by the alert sink"""
    LOSS = 'LOSS'
    PERFORMANCE_REPORT = 'PERFORMANCE_REPORT'
    ERROR = 'ERROR'
    WARNING = 'WARNING'
    INFO = 'INFO'


ALERT_ICONS = {
    AlertType.ERROR: '🚨',
    AlertType.LOSS: '📉',
    AlertType.PERFORMANCE_REPORT: '📊',
    AlertType.WARNING: '⚠️',
    AlertType.INFO: 'ℹ️',
}

# Console log level per alert type
_LOG_LEVELS = {
    AlertType.ERROR: logging.ERROR,
    AlertType.LOSS: logging.WARNING,
    AlertType.WARNING: logging.WARNING,
}


def format_alert(alert_type: AlertType, message: str) -> str:
    """Prefix a message with the alert icon and type tag"""
    return f"{ALERT_ICONS[alert_type]}[{alert_type.value}] {message}"


class TelegramAlertManager:
    """Manages console and Telegram notifications for the rebalancer"""

    def __init__(self, config: Config):
        """
        Initialize Telegram alert manager

        Args:
            config: Configuration object
        """
        self.config = config
        self.bot_token = config.TELEGRAM_BOT_TOKEN
        self.chat_id = config.TELEGRAM_CHAT_ID
        self.enabled = bool(config.TELEGRAM_ENABLED)
        self.timeout = getattr(config, 'HTTP_TIMEOUT_SECONDS', 10)

        if self.enabled:
            logger.info("Telegram alerts enabled")
        else:
            logger.info("Telegram alerts disabled (missing bot token or chat ID)")

    def test_connection(self) -> bool:
        """
        Test Telegram bot connection

        Returns:
            True if connection successful, False otherwise
        """
        if not self.enabled:
            return False
        try:
            url = f"https://api.telegram.org/bot{self.bot_token}/getMe"
            response = requests.get(url, timeout=self.timeout)
            return response.status_code == 200
        except Exception as e:
            logger.error(f"Telegram connection test failed: {e}")
            return False

    def _send_message(self, message: str, parse_mode: str = "HTML") -> bool:
        """
        Send message to Telegram

        Args:
            message: Message to send
            parse_mode: Message parse mode (HTML or Markdown)

        Returns:
            True if message sent successfully, False otherwise
        """
        if not self.enabled:
            logger.debug("Telegram alerts disabled - not sending message")
            return False

        try:
            url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
            data = {
                'chat_id': self.chat_id,
                'text': message,
                'parse_mode': parse_mode,
                'disable_web_page_preview': True
            }

            response = requests.post(url, data=data, timeout=self.timeout)

            if response.status_code == 200:
                logger.debug("Telegram message sent successfully")
                return True
            else:
                logger.error(f"Failed to send Telegram message: {response.status_code} - {response.text}")
                return False

        except Exception as e:
            logger.error(f"Error sending Telegram message: {e}")
            return False

    async def send_alert(self, alert_type: AlertType, message: str) -> bool:
        """
        Log an alert to the console and deliver it to Telegram

        Never raises: a failed delivery is logged and reported as False.

        Args:
            alert_type: Alert severity
            message: Alert text

        Returns:
            True if the Telegram message was delivered
        """
        formatted = format_alert(alert_type, message)
        logger.log(_LOG_LEVELS.get(alert_type, logging.INFO), formatted)

        if not self.enabled:
            return False

        try:
            return await asyncio.to_thread(self._send_message, html.escape(formatted))
        except Exception as e:
            logger.error(f"Failed to send Telegram alert: {e}")
            return False

    async def check_loss_threshold(self, current_value: float,
                                   previous_value: Optional[float] = None,
                                   threshold: float = -0.02) -> bool:
        """
        Send a LOSS alert when value dropped by at least the threshold

        Args:
            current_value: Current total value
            previous_value: Value to compare against
            threshold: Relative change that counts as a loss (-0.02 = -2%)

        Returns:
            True if a loss was detected
        """
        if not previous_value:
            return False

        percentage_change = (current_value - previous_value) / previous_value
        if percentage_change <= threshold:
            await self.send_alert(
                AlertType.LOSS,
                f"Value dropped by {percentage_change * 100:.2f}%\n"
                f"Previous: {previous_value:.2f}\n"
                f"Current: {current_value:.2f}"
            )
            return True
        return False

    async def send_performance_report(self, current_value: float, previous_value: float,
                                      unit: str = '$') -> bool:
        """
        Send a performance report comparing two values

        Args:
            current_value: Current total value
            previous_value: Previous total value
            unit: Unit the values are expressed in

        Returns:
            True if the report was delivered
        """
        if not previous_value:
            return False

        change = current_value - previous_value
        percent_change = change / previous_value * 100
        sign = '+' if change >= 0 else ''

        return await self.send_alert(
            AlertType.PERFORMANCE_REPORT,
            f"Performance Report:\n"
            f"Current Value: {current_value:.2f} {unit}\n"
            f"Change: {sign}{change:.2f} {unit} ({percent_change:.2f}%)"
        )

    async def send_startup_notification(self, pool_address: str, pair: str, mode: str) -> bool:
        """
        Send startup notification

        Args:
            pool_address: Pool being managed
            pair: Pool pair name, e.g. SOL-USDC
            mode: "live" or "paper"
        """
        short_address = pool_address if len(pool_address) <= 16 else f"{pool_address[:8]}...{pool_address[-6:]}"
        return await self.send_alert(
            AlertType.INFO,
            f"Meteora Rebalancer started ({mode})\n"
            f"Pair: {pair}\n"
            f"Pool: {short_address}"
        )

    async def send_shutdown_notification(self, reason: str = "Manual shutdown") -> bool:
        """
        Send shutdown notification

        Args:
            reason: Reason for shutdown
        """
        return await self.send_alert(AlertType.INFO, f"Meteora Rebalancer stopped: {reason}")
