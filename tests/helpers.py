"""
Shared fixtures for MeteoraRebalancer tests.
"""
import os
import sys
from unittest.mock import Mock

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from meteora_client import PoolDetails

POOL_ADDRESS = 'PoolAddress1111111111111111111111111111111'


def make_config(**overrides):
    """Mock config with zero delays and no Telegram delivery."""
    config = Mock()
    values = {
        'SOLANA_RPC_URL': 'https://rpc.example.org',
        'METEORA_API_URL': 'https://dlmm-api.example.org',
        'HTTP_TIMEOUT_SECONDS': 5,
        'METEORA_POOL_ADDRESS': POOL_ADDRESS,
        'METEORA_POSITION_RANGE_PER_SIDE_RELATIVE': 0.05,
        'MAX_BINS_PER_SIDE': 34,
        'LEDGER_GATEWAY': 'paper',
        'NATIVE_TOKEN_SYMBOL': 'SOL',
        'NATIVE_TOKEN_FEE_BUFFER': 0.1,
        'NATIVE_TOKEN_MIN_BALANCE': 0.01,
        'MONITORING_INTERVAL_SECONDS': 0,
        'SETTLEMENT_DELAY_SECONDS': 0,
        'SWAP_TOLERANCE': 1e-6,
        'LOSS_ALERT_THRESHOLD': -0.02,
        'MAX_RETRIES': 3,
        'RETRY_DELAY_SECONDS': 0,
        'POSITION_LOOKUP_RETRIES': 3,
        'POSITION_CONFIRM_RETRIES': 3,
        'POSITION_CONFIRM_DELAY_SECONDS': 0,
        'TELEGRAM_BOT_TOKEN': '',
        'TELEGRAM_CHAT_ID': '',
        'TELEGRAM_ENABLED': False,
        'PAPER_BALANCE_A': 1.0,
        'PAPER_BALANCE_B': 100.0,
        'PAPER_NATIVE_BALANCE': 0.5,
        'PAPER_SWAP_FEE_BPS': 0,
        'BALANCE_LOG_FILE': 'logs/balances.log',
        'USE_CLOUD_WATCH_STORAGE': False,
        'AWS_REGION': '',
        'LOG_GROUP_NAME': '',
        'BALANCE_LOG_STREAM_NAME': '',
    }
    values.update(overrides)
    for name, value in values.items():
        setattr(config, name, value)
    return config


def make_pool_details(bin_step=100, symbol_a='TKA', symbol_b='TKB'):
    return PoolDetails(
        bin_step=bin_step,
        asset_a_mint='MintA',
        asset_b_mint='MintB',
        asset_a_symbol=symbol_a,
        asset_b_symbol=symbol_b,
    )


class MemoryStorage:
    """In-memory balance log storage."""

    def __init__(self):
        self.lines = []

    def append(self, content):
        self.lines.append(content.rstrip('\n'))

    def read_lines(self):
        return list(self.lines)

    def contains(self, text):
        return any(text in line for line in self.lines)
