"""
Tests for ledger gateway lookup and loading.
"""
import pytest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ledger import GatewayFactory, LedgerGateway, PaperGateway
from helpers import make_config


class RecordingGateway(LedgerGateway):
    """Minimal gateway used to exercise registration."""

    async def get_balance(self, mint=None):
        return 0.0

    async def swap(self, input_mint, output_mint, amount):
        return 0.0

    async def get_positions(self, pool_address):
        return []

    async def get_active_bin(self, pool_address):
        raise NotImplementedError

    async def add_liquidity(self, pool_address, amount_a, amount_b, range_interval):
        return None

    async def remove_liquidity(self, pool_address, close_position=True):
        raise NotImplementedError


class TestGatewayFactory:
    """Test the gateway factory."""

    def setup_method(self):
        self.config = make_config()

    def teardown_method(self):
        GatewayFactory._gateways.pop('recording', None)

    def test_create_paper_gateway(self):
        gateway = GatewayFactory.create_gateway('paper', self.config)

        assert isinstance(gateway, PaperGateway)
        assert gateway.config is self.config
        assert gateway.gateway_name == 'PaperGateway'

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown gateway"):
            GatewayFactory.create_gateway('solana', self.config)

    def test_load_from_import_path(self):
        assert GatewayFactory.resolve('ledger.paper_gateway:PaperGateway') is PaperGateway
        assert GatewayFactory.resolve('test_gateway_factory:RecordingGateway') is RecordingGateway

    def test_import_path_to_missing_module(self):
        with pytest.raises(ValueError, match="Cannot load gateway"):
            GatewayFactory.resolve('no_such_module_here:Gateway')

    def test_import_path_to_missing_class(self):
        with pytest.raises(ValueError, match="Cannot load gateway"):
            GatewayFactory.resolve('ledger.paper_gateway:MissingGateway')

    def test_import_path_to_non_gateway(self):
        with pytest.raises(ValueError, match="inherit from LedgerGateway"):
            GatewayFactory.resolve('json:JSONDecoder')

    def test_register_gateway(self):
        GatewayFactory.register_gateway('recording', RecordingGateway)

        gateway = GatewayFactory.create_gateway('recording', self.config)

        assert isinstance(gateway, RecordingGateway)

    def test_register_non_gateway(self):
        with pytest.raises(ValueError):
            GatewayFactory.register_gateway('bad', dict)
