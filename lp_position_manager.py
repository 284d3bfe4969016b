"""
LP Position Manager for Meteora DLMM
Opens, adopts and relocates the single liquidity position on the pool
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from alert_manager import AlertType, TelegramAlertManager
from asset_balancer import AssetBalancer, BalanceOutcome
from balance_logger import BalanceLogger
from balances import BalanceAccessor
from config import Config
from errors import (
    InsufficientFundsForPositionFees,
    PoolMetadataError,
    PoolMetadataUnavailable,
    RebalancerError,
)
from ledger import LedgerGateway
from meteora_client import MeteoraApiClient, PoolDetails
from strategy import PositionRange, calculate_range_interval
from utils import retry_async, retry_until_found

logger = logging.getLogger(__name__)


class LPPositionManager:
    """
    Owns the position's bin range and sequences every position change.

    States are NoPosition (position_range is None) and
    HasPosition(position_range). The ledger is the source of truth for
    whether a position exists; only its bin bounds are cached here.
    """

    def __init__(self,
                 config: Config,
                 gateway: LedgerGateway,
                 pool_client: MeteoraApiClient,
                 alert_manager: TelegramAlertManager,
                 balance_logger: BalanceLogger):
        """Initialize the LP Position Manager"""
        self.config = config
        self.gateway = gateway
        self.pool_client = pool_client
        self.alert_manager = alert_manager
        self.balance_logger = balance_logger

        self.pool_address = config.METEORA_POOL_ADDRESS
        self.relative_range = config.METEORA_POSITION_RANGE_PER_SIDE_RELATIVE
        if self.relative_range is None or not self.relative_range > 0:
            raise ValueError("METEORA_POSITION_RANGE_PER_SIDE_RELATIVE must be set and be a valid number")

        self.balance_accessor = BalanceAccessor(gateway, config)
        self.asset_balancer = AssetBalancer(gateway, self.balance_accessor, balance_logger, config)

        self._pool_details: Optional[PoolDetails] = None
        self.range_interval: Optional[int] = None
        self.position_range: Optional[PositionRange] = None

    @property
    def pool_details(self) -> PoolDetails:
        if self._pool_details is None:
            raise RebalancerError("Pool details not initialized. Make sure to call load_initial_state()")
        return self._pool_details

    @property
    def has_position(self) -> bool:
        return self.position_range is not None

    async def _retry(self, operation: Callable[[], Awaitable[Any]], description: str) -> Any:
        return await retry_async(
            operation,
            retries=self.config.MAX_RETRIES,
            delay=self.config.RETRY_DELAY_SECONDS,
            description=description,
        )

    async def _wait_for_positions(self, retries: int, delay: float) -> list:
        return await retry_until_found(
            lambda: self.gateway.get_positions(self.pool_address),
            retries=retries,
            delay=delay,
            description="get_positions",
        )

    async def _resolve_pool(self) -> None:
        if self._pool_details is not None:
            return

        try:
            self._pool_details = await self.pool_client.get_pool_details(self.pool_address)
        except PoolMetadataError as e:
            logger.error(f"Error in get_pool_details: {e}")
            await self.alert_manager.send_alert(AlertType.ERROR, f"In get_pool_details: {e}")
            raise PoolMetadataUnavailable(f"Failed to get pool details for pool: {self.pool_address}") from e

        range_interval, clipped = calculate_range_interval(
            self.relative_range, self._pool_details.bin_step, self.config.MAX_BINS_PER_SIDE
        )
        if clipped:
            await self.alert_manager.send_alert(
                AlertType.WARNING,
                f"Range interval for {self.relative_range} relative range is greater than the maximum "
                f"allowed {self.config.MAX_BINS_PER_SIDE}. Clipping to max."
            )
        self.range_interval = range_interval

    async def load_initial_state(self) -> bool:
        """
        Resolve pool metadata and adopt or create the position

        Returns:
            True if a new position was created, False if an existing one was adopted

        Raises:
            PoolMetadataUnavailable: If pool metadata cannot be resolved
            InsufficientFundsForPositionFees: If the native reserve is too low
        """
        await self._resolve_pool()
        details = self.pool_details

        balances = await self.balance_accessor.get_usable_balances(details)
        logger.info(f"Initial usable balances: {balances[details.asset_a_symbol]} {details.asset_a_symbol}, "
                    f"{balances[details.asset_b_symbol]} {details.asset_b_symbol}")
        logger.info(f"Using specified pool: {self.pool_address} with bin step: {details.bin_step}, "
                    f"range interval: {self.range_interval} bins per side")

        positions = await self._wait_for_positions(
            self.config.POSITION_LOOKUP_RETRIES, self.config.RETRY_DELAY_SECONDS
        )

        if not positions:
            logger.info(f"No open positions found for pool: {self.pool_address}")
            self.position_range = None
            await self.verify_native_balance_for_fees()
            await self.rebalance_assets()
            await self.verify_native_buffer_for_positions()
            await self.add_liquidity()
            return True

        if len(positions) > 1:
            logger.warning(f"Found {len(positions)} positions in pool {self.pool_address}, tracking the first one")

        position = positions[0]
        self.position_range = PositionRange(position.lower_bin_id, position.upper_bin_id)
        logger.info(f"Found existing position in pool: {self.pool_address} with bin range: "
                    f"{position.lower_bin_id} to {position.upper_bin_id}")
        return False

    async def relocate(self) -> None:
        """
        Close the current position and open a new one around the current price

        Failures propagate. The next decision cycle re-reads the ledger.
        """
        if self.position_range is None:
            raise RebalancerError("Cannot relocate: no position is being tracked")

        await self.remove_liquidity()
        await self.rebalance_assets()
        await self.verify_native_buffer_for_positions()
        await self.add_liquidity()

    async def remove_liquidity(self) -> None:
        """Withdraw all liquidity, claim fees and close the position"""
        details = self.pool_details
        result = await self._retry(
            lambda: self.gateway.remove_liquidity(self.pool_address, close_position=True),
            "remove_liquidity",
        )

        removed_a, removed_b = result.liquidity_removed
        rewards_a, rewards_b = result.fees_claimed
        self.balance_logger.log_balances(removed_a, removed_b, 'Liquidity removed from pool',
                                         details.asset_a_symbol, details.asset_b_symbol)
        self.balance_logger.log_balances(rewards_a, rewards_b, 'Rewards claimed',
                                         details.asset_a_symbol, details.asset_b_symbol)

        # Position is gone on the ledger
        self.position_range = None

        # Wait for the wallet to update with the new balances
        await asyncio.sleep(self.config.SETTLEMENT_DELAY_SECONDS)

        balances = await self.balance_accessor.get_usable_balances(details)
        self.balance_logger.log_action(
            f"Withdrew liquidity and rewards from pool {self.pool_address}: "
            f"{balances[details.asset_a_symbol]} {details.asset_a_symbol}, "
            f"{balances[details.asset_b_symbol]} {details.asset_b_symbol}"
        )

    async def rebalance_assets(self) -> BalanceOutcome:
        """Bring both assets to a 50/50 value split and record the result"""
        details = self.pool_details
        try:
            outcome = await self.asset_balancer.rebalance(self.pool_address, details)
        except Exception as e:
            logger.error(f"Error in rebalance_assets: {e}")
            raise

        await self.report_performance(outcome)
        self.balance_logger.log_balances(
            outcome.balances[details.asset_a_symbol],
            outcome.balances[details.asset_b_symbol],
            BalanceLogger.TOTAL_BALANCE_PREFIX,
            details.asset_a_symbol,
            details.asset_b_symbol,
        )
        return outcome

    async def report_performance(self, outcome: BalanceOutcome) -> None:
        """
        Compare the new balances with the last recorded ones at the current price

        Both snapshots are valued in asset-B terms at the same price. Records
        written for another asset pair are ignored.
        """
        details = self.pool_details
        previous = self.balance_logger.get_last_balance(
            asset_a_symbol=details.asset_a_symbol,
            asset_b_symbol=details.asset_b_symbol,
        )
        if previous is None:
            return

        previous_value = previous[0] * outcome.price + previous[1]
        current_value = outcome.balances[details.asset_a_symbol] * outcome.price + \
            outcome.balances[details.asset_b_symbol]
        if previous_value <= 0:
            return

        await self.alert_manager.send_performance_report(current_value, previous_value, details.asset_b_symbol)
        await self.alert_manager.check_loss_threshold(current_value, previous_value,
                                                      self.config.LOSS_ALERT_THRESHOLD)

    async def verify_native_balance_for_fees(self) -> None:
        """Warn when the native balance is below the minimum operating balance"""
        native_balance = await self.balance_accessor.get_native_balance()
        if native_balance < self.config.NATIVE_TOKEN_MIN_BALANCE:
            await self.alert_manager.send_alert(AlertType.WARNING, 'Low native token balance detected')

    async def verify_native_buffer_for_positions(self) -> None:
        """
        Make sure the raw native balance covers position creation fees

        Raises:
            InsufficientFundsForPositionFees: Never retried
        """
        native_balance = await self.balance_accessor.get_native_balance()
        required = self.config.NATIVE_TOKEN_FEE_BUFFER
        if native_balance < required:
            symbol = self.config.NATIVE_TOKEN_SYMBOL
            message = (f"Insufficient native token balance for position creation fees: "
                       f"{native_balance} {symbol}. Minimum required: {required} {symbol}")
            logger.error(message)
            await self.alert_manager.send_alert(AlertType.ERROR, message)
            raise InsufficientFundsForPositionFees(message)

    async def add_liquidity(self) -> None:
        """Open a position with all usable balances and read back its bin range"""
        details = self.pool_details
        balances = await self.balance_accessor.get_usable_balances(details)
        amount_a = balances[details.asset_a_symbol]
        amount_b = balances[details.asset_b_symbol]

        logger.info(f"Adding liquidity with range interval: {self.range_interval}")
        await self._retry(
            lambda: self.gateway.add_liquidity(self.pool_address, amount_a, amount_b, self.range_interval),
            "add_liquidity",
        )
        self.balance_logger.log_balances(amount_a, amount_b, 'Liquidity added to pool',
                                         details.asset_a_symbol, details.asset_b_symbol)

        logger.info("Collecting new opened position lower and upper bin ids..")
        positions = await self._wait_for_positions(
            self.config.POSITION_CONFIRM_RETRIES, self.config.POSITION_CONFIRM_DELAY_SECONDS
        )
        if not positions:
            logger.warning("Could not find positions after adding liquidity. "
                           "The next cycle will re-read the ledger.")
            return

        position = positions[0]
        self.position_range = PositionRange(position.lower_bin_id, position.upper_bin_id)
        logger.info(f"New position lower and upper bin ids collected: "
                    f"{position.lower_bin_id} {position.upper_bin_id}")
