"""
Paper ledger for dry runs.
Simulates a wallet and a Meteora DLMM pool in memory, using live or
injected prices, so the engine can run end to end without signing anything.
"""
import logging
import math
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional
from config import Config
from errors import InsufficientFunds, NoPositionFound, RebalancerError
from .base_gateway import ActiveBin, LedgerGateway, PositionInfo, RemovalResult

logger = logging.getLogger(__name__)

# Wrapped SOL mint; balances of this mint are the native balance
NATIVE_MINT = 'So11111111111111111111111111111111111111112'

# Balance shortfalls below this are float noise, not missing funds
_DUST = 1e-9

PriceSource = Callable[[str], Awaitable[float]]


@dataclass
class PaperPosition:
    """Simulated open position"""
    address: str
    lower_bin_id: int
    upper_bin_id: int
    amount_a: float
    amount_b: float


class PaperGateway(LedgerGateway):
    """
    In-memory ledger for paper trading.

    Prices come from an async price source (the Meteora API by default).
    Swaps fill at the active price minus PAPER_SWAP_FEE_BPS. A position
    spans active bin +/- range_interval and, when withdrawn after the price
    left its range, comes back entirely in the asset the price moved into,
    converted at the range's mid price.
    """

    def __init__(self, config: Config, price_source: Optional[PriceSource] = None):
        super().__init__(config)
        self.swap_fee = config.PAPER_SWAP_FEE_BPS / 10000
        self.balances: Dict[str, float] = {NATIVE_MINT: float(config.PAPER_NATIVE_BALANCE)}
        self.positions: Dict[str, List[PaperPosition]] = {}
        self.pools: Dict[str, dict] = {}
        self._price_source = price_source
        self._position_counter = 0

    def seed_pool(self, pool_address: str, asset_a_mint: str, asset_b_mint: str,
                  bin_step: int, balance_a: Optional[float] = None,
                  balance_b: Optional[float] = None) -> None:
        """
        Register a pool and fund the paper wallet with its two assets

        Args:
            pool_address: Pool address
            asset_a_mint: Mint of asset A (pool x token)
            asset_b_mint: Mint of asset B (pool y token)
            bin_step: Pool bin step in basis points
            balance_a: Starting balance of A (PAPER_BALANCE_A by default)
            balance_b: Starting balance of B (PAPER_BALANCE_B by default)
        """
        self.pools[pool_address] = {
            'mint_a': asset_a_mint,
            'mint_b': asset_b_mint,
            'bin_step': bin_step,
        }
        self.positions.setdefault(pool_address, [])

        if balance_a is None:
            balance_a = self.config.PAPER_BALANCE_A
        if balance_b is None:
            balance_b = self.config.PAPER_BALANCE_B

        for mint, amount in ((asset_a_mint, balance_a), (asset_b_mint, balance_b)):
            if mint == NATIVE_MINT:
                self.balances[mint] = self.balances.get(mint, 0.0) + amount
            else:
                self.balances[mint] = amount

        logger.info(f"Paper pool {pool_address} seeded with {balance_a} A / {balance_b} B")

    def _pool(self, pool_address: str) -> dict:
        if pool_address not in self.pools:
            raise RebalancerError(f"Paper pool {pool_address} has not been seeded")
        return self.pools[pool_address]

    def _bin_base(self, pool_address: str) -> float:
        return 1 + self._pool(pool_address)['bin_step'] / 10000

    def bin_id_for_price(self, pool_address: str, price: float) -> int:
        """Bin holding a price: price = (1 + bin_step / 10000) ** bin_id"""
        if price <= 0:
            raise RebalancerError(f"Invalid price {price} for pool {pool_address}")
        return math.floor(round(math.log(price) / math.log(self._bin_base(pool_address)), 9))

    def price_for_bin(self, pool_address: str, bin_id: float) -> float:
        return self._bin_base(pool_address) ** bin_id

    async def _current_price(self, pool_address: str) -> float:
        if self._price_source is None:
            # Imported lazily so the paper ledger can run with an injected source only
            from meteora_client import MeteoraApiClient
            self._price_source = MeteoraApiClient(self.config).get_current_price
        return float(await self._price_source(pool_address))

    def _debit(self, mint: str, amount: float) -> None:
        balance = self.balances.get(mint, 0.0)
        if amount > balance + _DUST:
            raise InsufficientFunds(f"Insufficient funds: need {amount} of {mint}, have {balance}")
        self.balances[mint] = max(0.0, balance - amount)

    def _credit(self, mint: str, amount: float) -> None:
        self.balances[mint] = self.balances.get(mint, 0.0) + amount

    async def get_balance(self, mint: Optional[str] = None) -> float:
        return self.balances.get(mint or NATIVE_MINT, 0.0)

    async def swap(self, input_mint: str, output_mint: str, amount: float) -> float:
        pool_address = self._pool_for_mints(input_mint, output_mint)
        pool = self.pools[pool_address]
        price = await self._current_price(pool_address)

        if input_mint == pool['mint_a']:
            output_amount = amount * price * (1 - self.swap_fee)
        else:
            output_amount = amount / price * (1 - self.swap_fee)

        self._debit(input_mint, amount)
        self._credit(output_mint, output_amount)
        logger.debug(f"Paper swap {amount} {input_mint} -> {output_amount} {output_mint}")
        return output_amount

    def _pool_for_mints(self, input_mint: str, output_mint: str) -> str:
        for address, pool in self.pools.items():
            if {input_mint, output_mint} == {pool['mint_a'], pool['mint_b']}:
                return address
        raise RebalancerError(f"No paper pool trades {input_mint} against {output_mint}")

    async def get_positions(self, pool_address: str) -> List[PositionInfo]:
        return [
            PositionInfo(lower_bin_id=p.lower_bin_id, upper_bin_id=p.upper_bin_id, address=p.address)
            for p in self.positions.get(pool_address, [])
        ]

    async def get_active_bin(self, pool_address: str) -> ActiveBin:
        price = await self._current_price(pool_address)
        return ActiveBin(bin_id=self.bin_id_for_price(pool_address, price), price_per_token=price)

    async def add_liquidity(self, pool_address: str, amount_a: float, amount_b: float,
                            range_interval: int) -> None:
        pool = self._pool(pool_address)
        active_bin = await self.get_active_bin(pool_address)

        self._debit(pool['mint_a'], amount_a)
        try:
            self._debit(pool['mint_b'], amount_b)
        except InsufficientFunds:
            self._credit(pool['mint_a'], amount_a)
            raise

        self._position_counter += 1
        position = PaperPosition(
            address=f"paper-position-{self._position_counter}",
            lower_bin_id=active_bin.bin_id - range_interval,
            upper_bin_id=active_bin.bin_id + range_interval,
            amount_a=amount_a,
            amount_b=amount_b,
        )
        self.positions[pool_address].append(position)
        logger.info(f"Paper position {position.address} opened on bins "
                    f"{position.lower_bin_id}..{position.upper_bin_id}")

    async def remove_liquidity(self, pool_address: str, close_position: bool = True) -> RemovalResult:
        pool = self._pool(pool_address)
        positions = self.positions.get(pool_address, [])
        if not positions:
            raise NoPositionFound("No positions found in this pool")

        position = positions[0]
        active_bin = await self.get_active_bin(pool_address)
        mid_price = self.price_for_bin(pool_address, (position.lower_bin_id + position.upper_bin_id) / 2)

        amount_a, amount_b = position.amount_a, position.amount_b
        if active_bin.bin_id > position.upper_bin_id:
            # Price moved up through the range: all A was sold for B
            amount_a, amount_b = 0.0, amount_b + amount_a * mid_price
        elif active_bin.bin_id < position.lower_bin_id:
            amount_a, amount_b = amount_a + amount_b / mid_price, 0.0

        self._credit(pool['mint_a'], amount_a)
        self._credit(pool['mint_b'], amount_b)

        if close_position:
            positions.pop(0)
        else:
            position.amount_a = 0.0
            position.amount_b = 0.0

        return RemovalResult(liquidity_removed=(amount_a, amount_b), fees_claimed=(0.0, 0.0))
