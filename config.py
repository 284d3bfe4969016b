"""
Configuration management for MeteoraRebalancer.
Loads settings from environment variables.
"""
import math
import os
from typing import Dict, Any, Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Public endpoint that rate-limits and answers 410 Gone for most of what we need
DEFAULT_SOLANA_RPC_URL = 'https://api.mainnet-beta.solana.com'

# Protocol limit on bins per side of a single position
MAX_BINS_PER_SIDE = 34


def _get_float(name: str, default: Optional[str]) -> Optional[float]:
    value = os.getenv(name, default)
    if value is None or value == '':
        return None
    try:
        return float(value)
    except ValueError:
        return float('nan')


class Config:
    """Configuration class for the Meteora DLMM rebalancer"""

    # Network settings
    SOLANA_RPC_URL = os.getenv('SOLANA_RPC_URL', '')
    METEORA_API_URL = os.getenv('METEORA_API_URL', 'https://dlmm-api.meteora.ag')
    HTTP_TIMEOUT_SECONDS = float(os.getenv('HTTP_TIMEOUT_SECONDS', '10'))

    # Wallet credential. Either the base58 key itself or a ${VARIABLE_NAME}
    # reference to another environment variable holding it.
    SOLANA_PRIVATE_KEY = os.getenv('SOLANA_PRIVATE_KEY', '')

    # Pool and position configuration
    METEORA_POOL_ADDRESS = os.getenv('METEORA_POOL_ADDRESS', '')
    METEORA_POSITION_RANGE_PER_SIDE_RELATIVE = _get_float('METEORA_POSITION_RANGE_PER_SIDE_RELATIVE', None)
    MAX_BINS_PER_SIDE = MAX_BINS_PER_SIDE

    # Ledger gateway: registered name ("paper") or "package.module:ClassName"
    LEDGER_GATEWAY = os.getenv('LEDGER_GATEWAY', '')

    # Native token reserve
    NATIVE_TOKEN_SYMBOL = os.getenv('NATIVE_TOKEN_SYMBOL', 'SOL')
    NATIVE_TOKEN_FEE_BUFFER = float(os.getenv('NATIVE_TOKEN_FEE_BUFFER', '0.1'))
    NATIVE_TOKEN_MIN_BALANCE = float(os.getenv('NATIVE_TOKEN_MIN_BALANCE', '0.01'))

    # Rebalancing configuration
    MONITORING_INTERVAL_SECONDS = float(os.getenv('MONITORING_INTERVAL_SECONDS', '10'))
    SETTLEMENT_DELAY_SECONDS = float(os.getenv('SETTLEMENT_DELAY_SECONDS', '5'))
    SWAP_TOLERANCE = float(os.getenv('SWAP_TOLERANCE', '1e-6'))
    LOSS_ALERT_THRESHOLD = float(os.getenv('LOSS_ALERT_THRESHOLD', '-0.02'))

    # Error handling
    MAX_RETRIES = int(os.getenv('MAX_RETRIES', '5'))
    RETRY_DELAY_SECONDS = float(os.getenv('RETRY_DELAY_SECONDS', '5'))
    POSITION_LOOKUP_RETRIES = int(os.getenv('POSITION_LOOKUP_RETRIES', '3'))
    POSITION_CONFIRM_RETRIES = int(os.getenv('POSITION_CONFIRM_RETRIES', '10'))
    POSITION_CONFIRM_DELAY_SECONDS = float(os.getenv('POSITION_CONFIRM_DELAY_SECONDS', '10'))

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE', 'logs/rebalancer.log')
    BALANCE_LOG_FILE = os.getenv('BALANCE_LOG_FILE', 'logs/balances.log')

    # Balance log on CloudWatch Logs instead of BALANCE_LOG_FILE
    USE_CLOUD_WATCH_STORAGE = os.getenv('USE_CLOUD_WATCH_STORAGE', 'false').lower() == 'true'
    AWS_REGION = os.getenv('AWS_REGION', '')
    LOG_GROUP_NAME = os.getenv('LOG_GROUP_NAME', '')
    BALANCE_LOG_STREAM_NAME = os.getenv('BALANCE_LOG_STREAM_NAME', '')

    # Telegram alerting
    TELEGRAM_BOT_TOKEN = os.getenv('TELEGRAM_BOT_TOKEN', '')
    TELEGRAM_CHAT_ID = os.getenv('TELEGRAM_CHAT_ID', '')
    TELEGRAM_ENABLED = bool(TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID)

    # Paper trading (simulated ledger)
    PAPER_BALANCE_A = float(os.getenv('PAPER_BALANCE_A', '1.0'))
    PAPER_BALANCE_B = float(os.getenv('PAPER_BALANCE_B', '100.0'))
    PAPER_NATIVE_BALANCE = float(os.getenv('PAPER_NATIVE_BALANCE', '0.5'))
    PAPER_SWAP_FEE_BPS = float(os.getenv('PAPER_SWAP_FEE_BPS', '10'))

    @classmethod
    def resolve_private_key(cls) -> Optional[str]:
        """
        Resolve the wallet credential, following a ${VARIABLE_NAME} reference

        Returns:
            Private key string or None when not configured

        Raises:
            ValueError: If a referenced environment variable is not set
        """
        key = cls.SOLANA_PRIVATE_KEY
        if not key:
            return None

        if key.startswith('${') and key.endswith('}'):
            env_var_name = key[2:-1]
            resolved = os.getenv(env_var_name)
            if not resolved:
                raise ValueError(f"Environment variable '{env_var_name}' referenced in SOLANA_PRIVATE_KEY is not set")
            return resolved

        return key

    @classmethod
    def is_default_rpc(cls) -> bool:
        """Check whether the RPC endpoint is the public default one"""
        return cls.SOLANA_RPC_URL.rstrip('/') == DEFAULT_SOLANA_RPC_URL

    @classmethod
    def validate_config(cls, paper: bool = False) -> bool:
        """
        Validate that required configuration is present

        Args:
            paper: Paper trading mode, which needs no wallet or RPC endpoint

        Returns:
            True if the configuration is valid

        Raises:
            ValueError: Listing every problem found
        """
        errors = []

        if not paper:
            try:
                if not cls.resolve_private_key():
                    errors.append("SOLANA_PRIVATE_KEY is not set")
            except ValueError as e:
                errors.append(str(e))

            if not cls.SOLANA_RPC_URL:
                errors.append("SOLANA_RPC_URL is not set")

            if not cls.LEDGER_GATEWAY:
                errors.append("LEDGER_GATEWAY is not set")

        if not cls.METEORA_POOL_ADDRESS:
            errors.append("METEORA_POOL_ADDRESS is not set")

        relative = cls.METEORA_POSITION_RANGE_PER_SIDE_RELATIVE
        if relative is None or math.isnan(relative) or relative <= 0:
            errors.append("METEORA_POSITION_RANGE_PER_SIDE_RELATIVE must be set and be a valid positive number")

        if cls.NATIVE_TOKEN_FEE_BUFFER < 0:
            errors.append("NATIVE_TOKEN_FEE_BUFFER must not be negative")

        if cls.MAX_RETRIES < 1:
            errors.append("MAX_RETRIES must be at least 1")

        if cls.POSITION_LOOKUP_RETRIES < 1 or cls.POSITION_CONFIRM_RETRIES < 1:
            errors.append("POSITION_LOOKUP_RETRIES and POSITION_CONFIRM_RETRIES must be at least 1")

        if cls.USE_CLOUD_WATCH_STORAGE:
            for name in ('AWS_REGION', 'LOG_GROUP_NAME', 'BALANCE_LOG_STREAM_NAME'):
                if not getattr(cls, name):
                    errors.append(f"{name} is required when USE_CLOUD_WATCH_STORAGE is true")

        if errors:
            raise ValueError("Configuration validation failed:\n" + "\n".join(f"- {error}" for error in errors))

        return True

    @classmethod
    def get_summary(cls) -> Dict[str, Any]:
        """Get a loggable summary of the configuration (no secrets)"""
        return {
            'pool_address': cls.METEORA_POOL_ADDRESS,
            'rpc_url': cls.SOLANA_RPC_URL,
            'ledger_gateway': cls.LEDGER_GATEWAY or 'paper',
            'range_per_side_relative': cls.METEORA_POSITION_RANGE_PER_SIDE_RELATIVE,
            'native_fee_buffer': cls.NATIVE_TOKEN_FEE_BUFFER,
            'native_min_balance': cls.NATIVE_TOKEN_MIN_BALANCE,
            'monitoring_interval': cls.MONITORING_INTERVAL_SECONDS,
            'telegram_enabled': cls.TELEGRAM_ENABLED,
            'balance_log_storage': 'cloudwatch' if cls.USE_CLOUD_WATCH_STORAGE else 'file',
        }
