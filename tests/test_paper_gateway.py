"""
Tests for the in-memory paper ledger.
"""
import asyncio
import pytest
import sys
import os
from unittest.mock import AsyncMock, patch

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from errors import InsufficientFunds, NoPositionFound, RebalancerError
from ledger import NATIVE_MINT, PaperGateway, PositionInfo
from helpers import POOL_ADDRESS, make_config


class TestPaperGateway:
    """Test the simulated wallet and pool."""

    def setup_method(self):
        self.config = make_config(PAPER_SWAP_FEE_BPS=10)
        self.price = 1.0
        self.gateway = PaperGateway(self.config, price_source=self._price_source)
        self.gateway.seed_pool(POOL_ADDRESS, 'MintA', 'MintB', 100, 10.0, 100.0)

    async def _price_source(self, pool_address):
        return self.price

    def test_seeded_balances(self):
        assert asyncio.run(self.gateway.get_balance('MintA')) == 10.0
        assert asyncio.run(self.gateway.get_balance('MintB')) == 100.0
        assert asyncio.run(self.gateway.get_balance()) == 0.5
        assert asyncio.run(self.gateway.get_balance('Unknown')) == 0.0

    def test_native_asset_pool_adds_to_native_balance(self):
        gateway = PaperGateway(self.config, price_source=self._price_source)
        gateway.seed_pool(POOL_ADDRESS, NATIVE_MINT, 'MintB', 100, 2.0, 100.0)

        assert asyncio.run(gateway.get_balance()) == pytest.approx(2.5)

    @pytest.mark.parametrize("price,bin_id", [
        (1.0, 0),
        (1.01, 1),
        (1.01 ** 10, 10),
        (1.01 ** 10 * 1.005, 10),
        (1.01 ** -3, -3),
    ])
    def test_bin_id_for_price(self, price, bin_id):
        assert self.gateway.bin_id_for_price(POOL_ADDRESS, price) == bin_id

    def test_active_bin(self):
        self.price = 1.01 ** 7

        active_bin = asyncio.run(self.gateway.get_active_bin(POOL_ADDRESS))

        assert active_bin.bin_id == 7
        assert active_bin.price_per_token == pytest.approx(1.01 ** 7)

    def test_swap_applies_fee(self):
        self.price = 2.0

        received = asyncio.run(self.gateway.swap('MintA', 'MintB', 5.0))

        assert received == pytest.approx(5.0 * 2.0 * 0.999)
        assert self.gateway.balances['MintA'] == pytest.approx(5.0)
        assert self.gateway.balances['MintB'] == pytest.approx(100.0 + received)

    def test_swap_more_than_balance(self):
        with pytest.raises(InsufficientFunds):
            asyncio.run(self.gateway.swap('MintA', 'MintB', 11.0))
        assert self.gateway.balances['MintA'] == 10.0

    def test_swap_unknown_pair(self):
        with pytest.raises(RebalancerError):
            asyncio.run(self.gateway.swap('MintA', 'MintC', 1.0))

    def test_add_liquidity_spans_active_bin(self):
        self.price = 1.01 ** 20

        asyncio.run(self.gateway.add_liquidity(POOL_ADDRESS, 4.0, 50.0, 5))

        positions = asyncio.run(self.gateway.get_positions(POOL_ADDRESS))
        assert positions == [PositionInfo(15, 25, 'paper-position-1')]
        assert self.gateway.balances['MintA'] == pytest.approx(6.0)
        assert self.gateway.balances['MintB'] == pytest.approx(50.0)

    def test_add_liquidity_rolls_back_on_shortfall(self):
        with pytest.raises(InsufficientFunds):
            asyncio.run(self.gateway.add_liquidity(POOL_ADDRESS, 4.0, 500.0, 5))

        assert self.gateway.balances['MintA'] == pytest.approx(10.0)
        assert asyncio.run(self.gateway.get_positions(POOL_ADDRESS)) == []

    def test_remove_in_range_returns_deposit(self):
        asyncio.run(self.gateway.add_liquidity(POOL_ADDRESS, 4.0, 50.0, 5))

        result = asyncio.run(self.gateway.remove_liquidity(POOL_ADDRESS))

        assert result.liquidity_removed == (4.0, 50.0)
        assert result.fees_claimed == (0.0, 0.0)
        assert asyncio.run(self.gateway.get_positions(POOL_ADDRESS)) == []
        assert self.gateway.balances['MintA'] == pytest.approx(10.0)

    def test_remove_after_price_moved_up(self):
        asyncio.run(self.gateway.add_liquidity(POOL_ADDRESS, 4.0, 50.0, 5))
        self.price = 1.01 ** 8

        result = asyncio.run(self.gateway.remove_liquidity(POOL_ADDRESS))

        amount_a, amount_b = result.liquidity_removed
        assert amount_a == 0.0
        assert amount_b == pytest.approx(54.0)

    def test_remove_after_price_moved_down(self):
        asyncio.run(self.gateway.add_liquidity(POOL_ADDRESS, 4.0, 50.0, 5))
        self.price = 1.01 ** -8

        result = asyncio.run(self.gateway.remove_liquidity(POOL_ADDRESS))

        assert result.liquidity_removed == (pytest.approx(54.0), 0.0)

    def test_remove_without_closing_keeps_position(self):
        asyncio.run(self.gateway.add_liquidity(POOL_ADDRESS, 4.0, 50.0, 5))

        asyncio.run(self.gateway.remove_liquidity(POOL_ADDRESS, close_position=False))

        assert len(asyncio.run(self.gateway.get_positions(POOL_ADDRESS))) == 1

    def test_remove_without_position(self):
        with pytest.raises(NoPositionFound):
            asyncio.run(self.gateway.remove_liquidity(POOL_ADDRESS))

    def test_unseeded_pool(self):
        with pytest.raises(RebalancerError):
            asyncio.run(self.gateway.get_active_bin('OtherPool'))

    def test_default_price_source_is_meteora_api(self):
        gateway = PaperGateway(self.config)
        gateway.seed_pool(POOL_ADDRESS, 'MintA', 'MintB', 100)

        with patch('meteora_client.MeteoraApiClient.get_current_price',
                   new=AsyncMock(return_value=1.01)) as mock_price:
            active_bin = asyncio.run(gateway.get_active_bin(POOL_ADDRESS))

        assert active_bin.bin_id == 1
        mock_price.assert_awaited_once_with(POOL_ADDRESS)
