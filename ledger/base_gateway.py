"""
Abstract base class for ledger gateways.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple
from config import Config


@dataclass(frozen=True)
class ActiveBin:
    """Point-in-time observation of the bin holding the current price"""
    bin_id: int
    price_per_token: float


@dataclass(frozen=True)
class PositionInfo:
    """Open position as reported by the ledger"""
    lower_bin_id: int
    upper_bin_id: int
    address: str = ''


@dataclass(frozen=True)
class RemovalResult:
    """Amounts returned when liquidity is removed from a position"""
    liquidity_removed: Tuple[float, float]  # (asset A, asset B)
    fees_claimed: Tuple[float, float]  # (asset A, asset B)


class LedgerGateway(ABC):
    """
    Abstract base class for the wallet, swap and pool capabilities.

    The ledger is the source of truth for balances and open positions;
    the engine re-reads it instead of caching. Implementations raise the
    error kinds from errors.py (InsufficientFunds, NoPositionFound,
    TransientError, BadRequestError) so the engine can dispatch on kind.
    """

    def __init__(self, config: Config):
        """
        Initialize the gateway.

        Args:
            config: Configuration object (wallet credential, RPC endpoint)
        """
        self.config = config
        self.gateway_name = self.__class__.__name__

    @abstractmethod
    async def get_balance(self, mint: Optional[str] = None) -> float:
        """
        Get the wallet balance of an asset.

        Args:
            mint: Asset mint address; None returns the native balance
        """

    @abstractmethod
    async def swap(self, input_mint: str, output_mint: str, amount: float) -> float:
        """
        Swap an amount of one asset into another.

        Returns:
            Amount of the output asset received
        """

    @abstractmethod
    async def get_positions(self, pool_address: str) -> List[PositionInfo]:
        """Get the wallet's open positions on a pool (empty list when none)"""

    @abstractmethod
    async def get_active_bin(self, pool_address: str) -> ActiveBin:
        """Get the pool's active bin"""

    @abstractmethod
    async def add_liquidity(self, pool_address: str, amount_a: float, amount_b: float,
                            range_interval: int) -> None:
        """
        Open a position around the active bin.

        The ledger picks the center bin; exact bounds are read back with
        get_positions().
        """

    @abstractmethod
    async def remove_liquidity(self, pool_address: str, close_position: bool = True) -> RemovalResult:
        """Withdraw all liquidity and claim fees, optionally closing the position"""

    async def close(self) -> None:
        """Release network resources"""
