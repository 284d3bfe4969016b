"""
Asset balancer for MeteoraRebalancer.
Swaps the excess asset so both pool assets hold equal value.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from balance_logger import BalanceLogger
from balances import BalanceAccessor
from config import Config
from ledger import LedgerGateway
from meteora_client import PoolDetails
from strategy import SWAP_A_TO_B, SwapPlan, plan_swap
from utils import retry_async

logger = logging.getLogger(__name__)


@dataclass
class BalanceOutcome:
    """Result of one 50/50 rebalance"""
    price: float
    plan: SwapPlan
    swap_output: Optional[float]
    balances: Dict[str, float]


class AssetBalancer:
    """Brings the wallet's two pool assets to a 50/50 value split"""

    def __init__(self, gateway: LedgerGateway, balance_accessor: BalanceAccessor,
                 balance_logger: BalanceLogger, config: Config):
        self.gateway = gateway
        self.balance_accessor = balance_accessor
        self.balance_logger = balance_logger
        self.config = config

    async def _retry(self, operation, description: str):
        return await retry_async(
            operation,
            retries=self.config.MAX_RETRIES,
            delay=self.config.RETRY_DELAY_SECONDS,
            description=description,
        )

    async def rebalance(self, pool_address: str, pool_details: PoolDetails) -> BalanceOutcome:
        """
        Swap the excess asset into the other at the pool's current price

        Args:
            pool_address: Pool whose active bin gives the price
            pool_details: Resolved pool metadata

        Returns:
            BalanceOutcome with the price used, the plan, the swap output
            (None when no swap was needed) and fresh usable balances
        """
        symbol_a = pool_details.asset_a_symbol
        symbol_b = pool_details.asset_b_symbol

        balances = await self.balance_accessor.get_usable_balances(pool_details)
        amount_a = balances[symbol_a]
        amount_b = balances[symbol_b]
        logger.info(f"Current balances before rebalance: {amount_a} {symbol_a}, {amount_b} {symbol_b}")

        active_bin = await self._retry(
            lambda: self.gateway.get_active_bin(pool_address),
            "get_active_bin",
        )
        price = float(active_bin.price_per_token)
        logger.info(f"Current price of {symbol_a}/{symbol_b}: {price}")

        plan = plan_swap(amount_a, amount_b, price, self.config.SWAP_TOLERANCE)
        logger.info(f"Target usable balances: {plan.target_a} {symbol_a}, {plan.target_b} {symbol_b}")

        swap_output = None
        if plan.needs_swap:
            if plan.direction == SWAP_A_TO_B:
                input_mint, output_mint = pool_details.asset_a_mint, pool_details.asset_b_mint
                input_symbol, output_symbol = symbol_a, symbol_b
            else:
                input_mint, output_mint = pool_details.asset_b_mint, pool_details.asset_a_mint
                input_symbol, output_symbol = symbol_b, symbol_a

            logger.info(f"Need to swap {plan.amount:.6f} {input_symbol} for {output_symbol}")
            swap_output = await self._retry(
                lambda: self.gateway.swap(input_mint, output_mint, plan.amount),
                "swap",
            )
            self.balance_logger.log_action(
                f"Swapped {plan.amount:.6f} {input_symbol} for {swap_output:.6f} {output_symbol} to rebalance"
            )
        else:
            logger.info("Balances already at a 50/50 value split, no swap needed")

        self.balance_logger.log_current_price(price, symbol_a, symbol_b)

        if swap_output is not None:
            # Wallet may not reflect the swap yet
            await asyncio.sleep(self.config.SETTLEMENT_DELAY_SECONDS)

        new_balances = await self.balance_accessor.get_usable_balances(pool_details)
        return BalanceOutcome(price=price, plan=plan, swap_output=swap_output, balances=new_balances)
