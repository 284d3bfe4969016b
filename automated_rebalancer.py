"""
Core rebalancing loop for MeteoraRebalancer.
Monitors the pool's active bin and relocates the position when it leaves the range.
"""
import asyncio
import logging
import time
from typing import Any, Dict, Optional

from alert_manager import AlertType, TelegramAlertManager
from balance_logger import BalanceLogger
from config import Config
from ledger import LedgerGateway
from lp_position_manager import LPPositionManager
from strategy import is_out_of_range
from utils import ErrorHandler, retry_async

logger = logging.getLogger(__name__)


class AutomatedRebalancer:
    """Automated DLMM position rebalancer"""

    def __init__(self,
                 config: Config,
                 position_manager: LPPositionManager,
                 gateway: LedgerGateway,
                 alert_manager: TelegramAlertManager,
                 balance_logger: BalanceLogger):
        """Initialize the automated rebalancer"""
        self.config = config
        self.position_manager = position_manager
        self.gateway = gateway
        self.alert_manager = alert_manager
        self.balance_logger = balance_logger
        self.pool_address = config.METEORA_POOL_ADDRESS

        # Monitoring state
        self.is_running = False
        self._stop_event: Optional[asyncio.Event] = None
        self.cycle_count = 0
        self.relocation_count = 0
        self.last_active_bin_id: Optional[int] = None
        self.last_check_time: Optional[float] = None
        self.last_rebalance_time: Optional[float] = None

        logger.info("Automated Rebalancer initialized")

    async def initialize(self) -> bool:
        """
        Adopt the existing position or create the first one

        Returns:
            True if a new position was created
        """
        return await self.position_manager.load_initial_state()

    async def evaluate(self) -> bool:
        """
        Run one decision cycle

        Returns:
            True if the position was relocated (or re-created), False otherwise.
            Per-cycle failures are logged and alerted, never raised.
        """
        self.cycle_count += 1
        self.last_check_time = time.time()
        try:
            if not self.position_manager.has_position:
                logger.warning("No position bounds held, re-synchronizing with the ledger")
                return await self.position_manager.load_initial_state()

            position_range = self.position_manager.position_range
            active_bin = await retry_async(
                lambda: self.gateway.get_active_bin(self.pool_address),
                retries=self.config.MAX_RETRIES,
                delay=self.config.RETRY_DELAY_SECONDS,
                description="get_active_bin",
            )
            self.last_active_bin_id = active_bin.bin_id

            if is_out_of_range(active_bin.bin_id, position_range):
                message = (f"Detected that pool active bin {active_bin.bin_id} is out of position bin range: "
                           f"{position_range.lower_bin_id} to {position_range.upper_bin_id}")
                logger.info(message)
                self.balance_logger.log_action(message)

                await self.position_manager.relocate()
                self.relocation_count += 1
                self.last_rebalance_time = time.time()
                logger.info("Rebalancing successful")
                return True

            logger.info(f"Active bin {active_bin.bin_id} is within position range "
                        f"{position_range.lower_bin_id} to {position_range.upper_bin_id}")
            return False

        except asyncio.CancelledError:
            raise
        except Exception as e:
            if ErrorHandler.is_no_position(e):
                await self._recover_missing_position(e)
                return False

            logger.error(f"Error in rebalance: {e}")
            await self.alert_manager.send_alert(AlertType.ERROR, f"In rebalance: {e}")
            return False

    async def rebalance(self) -> bool:
        """Alias of evaluate()"""
        return await self.evaluate()

    async def _recover_missing_position(self, error: Exception) -> None:
        logger.warning(f"No position found during cycle ({error}), reloading initial state")
        try:
            await self.position_manager.load_initial_state()
        except asyncio.CancelledError:
            raise
        except Exception as reload_error:
            logger.error(f"Error in load_initial_state: {reload_error}")
            await self.alert_manager.send_alert(AlertType.ERROR, f"In load_initial_state: {reload_error}")
            return

        await self.alert_manager.send_alert(
            AlertType.WARNING,
            f"Position was missing from pool {self.pool_address}, state reloaded"
        )

    async def monitoring_loop(self) -> None:
        """Run decision cycles until stop() is called, waiting between cycles"""
        logger.info("Starting monitoring loop...")
        interval = self.config.MONITORING_INTERVAL_SECONDS

        while self.is_running:
            await self.evaluate()
            if not self.is_running:
                break
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Monitoring loop exited")

    async def start(self) -> None:
        """Start monitoring; returns when stop() is called"""
        if self.is_running:
            logger.warning("Monitoring is already running")
            return

        self._stop_event = asyncio.Event()
        self.is_running = True
        logger.info("Monitoring started")
        try:
            await self.monitoring_loop()
        finally:
            self.is_running = False

    def stop(self) -> None:
        """Stop monitoring; an in-flight cycle finishes, the wait is interrupted"""
        if not self.is_running:
            logger.warning("Monitoring is not running")
            return

        self.is_running = False
        if self._stop_event is not None:
            self._stop_event.set()
        logger.info("Monitoring stopped")

    def get_status(self) -> Dict[str, Any]:
        """Get current status of the rebalancer"""
        position_range = self.position_manager.position_range
        return {
            'is_running': self.is_running,
            'pool_address': self.pool_address,
            'has_position': position_range is not None,
            'lower_bin_id': position_range.lower_bin_id if position_range else None,
            'upper_bin_id': position_range.upper_bin_id if position_range else None,
            'range_interval': self.position_manager.range_interval,
            'last_active_bin_id': self.last_active_bin_id,
            'last_check_time': self.last_check_time,
            'last_rebalance_time': self.last_rebalance_time,
            'cycle_count': self.cycle_count,
            'relocation_count': self.relocation_count,
            'monitoring_interval': self.config.MONITORING_INTERVAL_SECONDS,
        }
