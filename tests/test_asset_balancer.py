"""
Tests for the 50/50 asset balancer, driven against the paper ledger.
"""
import asyncio
import pytest
import sys
import os
from unittest.mock import AsyncMock, patch

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from asset_balancer import AssetBalancer
from balance_logger import BalanceLogger
from balances import BalanceAccessor
from errors import TransientError
from ledger import PaperGateway
from strategy import SWAP_A_TO_B, SWAP_B_TO_A
from helpers import POOL_ADDRESS, MemoryStorage, make_config, make_pool_details


class TestAssetBalancer:
    """Test swap sizing and execution."""

    def setup_method(self):
        self.config = make_config()
        self.price = 2.0
        self.gateway = PaperGateway(self.config, price_source=self._price_source)
        self.details = make_pool_details()
        self.storage = MemoryStorage()
        self.balance_logger = BalanceLogger(storage=self.storage)
        self.balancer = AssetBalancer(
            self.gateway,
            BalanceAccessor(self.gateway, self.config),
            self.balance_logger,
            self.config,
        )

    async def _price_source(self, pool_address):
        return self.price

    def _seed(self, balance_a, balance_b):
        self.gateway.seed_pool(POOL_ADDRESS, 'MintA', 'MintB', 100, balance_a, balance_b)

    def test_swaps_excess_asset_a(self):
        """10 A at price 2 with no B: swap exactly 5 A, log the received amount."""
        self._seed(10.0, 0.0)

        outcome = asyncio.run(self.balancer.rebalance(POOL_ADDRESS, self.details))

        assert outcome.price == 2.0
        assert outcome.plan.direction == SWAP_A_TO_B
        assert outcome.plan.amount == pytest.approx(5.0)
        assert outcome.swap_output == pytest.approx(10.0)
        assert outcome.balances['TKA'] == pytest.approx(5.0)
        assert outcome.balances['TKB'] == pytest.approx(10.0)
        assert self.storage.contains("Swapped 5.000000 TKA for 10.000000 TKB to rebalance")
        assert self.storage.contains("Current price: 1 TKA = 2.0 TKB")

    def test_swaps_excess_asset_b(self):
        self._seed(0.0, 100.0)
        self.price = 4.0

        outcome = asyncio.run(self.balancer.rebalance(POOL_ADDRESS, self.details))

        assert outcome.plan.direction == SWAP_B_TO_A
        assert outcome.plan.amount == pytest.approx(50.0)
        assert outcome.balances['TKA'] == pytest.approx(12.5)
        assert outcome.balances['TKB'] == pytest.approx(50.0)

    def test_balanced_wallet_does_not_swap(self):
        self._seed(5.0, 10.0)

        with patch('asset_balancer.asyncio.sleep', new=AsyncMock()) as mock_sleep:
            outcome = asyncio.run(self.balancer.rebalance(POOL_ADDRESS, self.details))

        assert outcome.swap_output is None
        assert outcome.balances == {'TKA': 5.0, 'TKB': 10.0}
        assert not self.storage.contains("Swapped")
        mock_sleep.assert_not_awaited()

    def test_second_rebalance_is_a_no_op(self):
        self._seed(10.0, 0.0)

        asyncio.run(self.balancer.rebalance(POOL_ADDRESS, self.details))
        outcome = asyncio.run(self.balancer.rebalance(POOL_ADDRESS, self.details))

        assert outcome.plan.needs_swap is False

    def test_settlement_delay_after_swap(self):
        self._seed(10.0, 0.0)
        self.config.SETTLEMENT_DELAY_SECONDS = 7

        with patch('asset_balancer.asyncio.sleep', new=AsyncMock()) as mock_sleep:
            asyncio.run(self.balancer.rebalance(POOL_ADDRESS, self.details))

        mock_sleep.assert_awaited_once_with(7)

    def test_swap_is_retried(self):
        self._seed(10.0, 0.0)
        swap = AsyncMock(side_effect=[TransientError("rpc busy"), 10.0])
        self.gateway.swap = swap

        outcome = asyncio.run(self.balancer.rebalance(POOL_ADDRESS, self.details))

        assert swap.await_count == 2
        swap.assert_awaited_with('MintA', 'MintB', pytest.approx(5.0))
        assert outcome.swap_output == 10.0
