"""
Wallet balance access for MeteoraRebalancer.
Reads pool asset balances and holds back the native fee reserve.
"""
import logging
from typing import Dict

from config import Config
from ledger import LedgerGateway
from meteora_client import PoolDetails

logger = logging.getLogger(__name__)


class BalanceAccessor:
    """Reads usable balances of the two pool assets"""

    def __init__(self, gateway: LedgerGateway, config: Config):
        self.gateway = gateway
        self.native_symbol = config.NATIVE_TOKEN_SYMBOL.lower()
        self.fee_buffer = config.NATIVE_TOKEN_FEE_BUFFER

    def _usable(self, symbol: str, balance: float) -> float:
        if symbol.lower() == self.native_symbol:
            return max(0.0, balance - self.fee_buffer)
        return balance

    async def get_usable_balances(self, pool_details: PoolDetails) -> Dict[str, float]:
        """
        Get wallet balances of both pool assets, keyed by symbol

        The native asset is reduced by the fee buffer, floored at zero.

        Args:
            pool_details: Resolved pool metadata

        Returns:
            Mapping of asset symbol to usable amount
        """
        balance_a = await self.gateway.get_balance(pool_details.asset_a_mint)
        balance_b = await self.gateway.get_balance(pool_details.asset_b_mint)

        return {
            pool_details.asset_a_symbol: self._usable(pool_details.asset_a_symbol, balance_a),
            pool_details.asset_b_symbol: self._usable(pool_details.asset_b_symbol, balance_b),
        }

    async def get_native_balance(self) -> float:
        """Get the raw native balance, without the fee buffer applied"""
        return await self.gateway.get_balance()
