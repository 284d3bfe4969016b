"""
MeteoraRebalancer - Balance Logger
Append-only record of balances, prices and actions taken by the rebalancer
"""
import logging
import os
import re
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import boto3
import pandas as pd
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

_LINE_PATTERN = re.compile(r'^\[(?P<timestamp>[^\]]+)\] (?P<text>.*)$')
_BALANCE_PATTERN = re.compile(
    r'(?P<symbol_a>\S+): (?P<amount_a>[-+\d.eE]+), (?P<symbol_b>\S+): (?P<amount_b>[-+\d.eE]+)\s*$'
)

HISTORY_COLUMNS = ['timestamp', 'prefix', 'asset_a_symbol', 'asset_a', 'asset_b_symbol', 'asset_b']


class LocalFileStorage:
    """Text file storage backend for the balance log"""

    def __init__(self, log_file: str = 'logs/balances.log'):
        self.log_file = log_file
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

    def append(self, content: str) -> None:
        with open(self.log_file, 'a', encoding='utf-8') as f:
            f.write(content)

    def read_lines(self) -> List[str]:
        if not os.path.exists(self.log_file):
            return []
        with open(self.log_file, 'r', encoding='utf-8') as f:
            return f.read().splitlines()


class CloudWatchStorage:
    """
    CloudWatch Logs storage backend for the balance log

    Each entry is one log event on a single stream. Failures surface as
    OSError like the file backend.
    """

    def __init__(self, log_group_name: str, log_stream_name: str,
                 region_name: Optional[str] = None, client=None):
        self.log_group_name = log_group_name
        self.log_stream_name = log_stream_name
        self.client = client or boto3.client('logs', region_name=region_name or None)
        self._create_log_stream()

    def _create_log_stream(self) -> None:
        try:
            self.client.create_log_stream(logGroupName=self.log_group_name,
                                          logStreamName=self.log_stream_name)
            logger.info(f"Created CloudWatch log stream: {self.log_stream_name}")
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ResourceAlreadyExistsException':
                logger.info(f"Using existing CloudWatch log stream: {self.log_stream_name}")
            else:
                logger.error(f"Error creating CloudWatch log stream: {e}")
        except BotoCoreError as e:
            logger.error(f"Error creating CloudWatch log stream: {e}")

    def append(self, content: str) -> None:
        event = {
            'timestamp': int(datetime.now(timezone.utc).timestamp() * 1000),
            'message': content.rstrip('\n'),
        }
        try:
            self.client.put_log_events(logGroupName=self.log_group_name,
                                       logStreamName=self.log_stream_name,
                                       logEvents=[event])
        except (BotoCoreError, ClientError) as e:
            raise OSError(f"CloudWatch put_log_events failed: {e}") from e

    def read_lines(self) -> List[str]:
        lines: List[str] = []
        kwargs = {
            'logGroupName': self.log_group_name,
            'logStreamName': self.log_stream_name,
            'startFromHead': True,
        }
        try:
            while True:
                response = self.client.get_log_events(**kwargs)
                lines.extend(event.get('message', '') for event in response.get('events', []))
                next_token = response.get('nextForwardToken')
                # Same token twice marks the end of the stream
                if not next_token or next_token == kwargs.get('nextToken'):
                    break
                kwargs['nextToken'] = next_token
        except (BotoCoreError, ClientError) as e:
            raise OSError(f"CloudWatch get_log_events failed: {e}") from e
        return lines


def create_storage(config):
    """
    Build the balance log storage backend selected by the configuration

    Args:
        config: Configuration with USE_CLOUD_WATCH_STORAGE and its settings

    Returns:
        CloudWatchStorage or LocalFileStorage
    """
    if config.USE_CLOUD_WATCH_STORAGE:
        return CloudWatchStorage(config.LOG_GROUP_NAME, config.BALANCE_LOG_STREAM_NAME, config.AWS_REGION)
    return LocalFileStorage(config.BALANCE_LOG_FILE)


class BalanceLogger:
    """Writes timestamped balance, price and action records"""

    TOTAL_BALANCE_PREFIX = 'Total usable balances after rebalancing'

    def __init__(self, log_file: str = 'logs/balances.log', storage=None):
        """
        Initialize the balance logger

        Args:
            log_file: Path of the balance log
            storage: Storage backend with append and read_lines (a LocalFileStorage
                on log_file by default)
        """
        self.storage = storage or LocalFileStorage(log_file)
        logger.info(f"Initialized BalanceLogger with {type(self.storage).__name__} storage backend")

    @staticmethod
    def _timestamp() -> str:
        return datetime.now(timezone.utc).isoformat()

    def _write(self, text: str) -> str:
        entry = f"[{self._timestamp()}] {text.replace(chr(10), ' ')}\n"
        try:
            self.storage.append(entry)
        except OSError as e:
            logger.error(f"Failed to write balance log entry: {e}")
        return entry

    def log_balances(self, asset_a_balance: float, asset_b_balance: float, prefix: str,
                     asset_a_symbol: str = 'Asset A', asset_b_symbol: str = 'Asset B') -> None:
        """
        Record a pair of balances

        Args:
            asset_a_balance: Amount of asset A
            asset_b_balance: Amount of asset B
            prefix: Description of the balances (e.g. "Rewards claimed")
            asset_a_symbol: Symbol of asset A
            asset_b_symbol: Symbol of asset B
        """
        entry = self._write(f"{prefix}  -  {asset_a_symbol}: {asset_a_balance}, {asset_b_symbol}: {asset_b_balance}")
        logger.info(entry.strip())

    def log_current_price(self, price: float, asset_a_symbol: str = 'Asset A',
                          asset_b_symbol: str = 'Asset B') -> None:
        """Record the current price of asset A in asset B"""
        self._write(f"Current price: 1 {asset_a_symbol} = {price} {asset_b_symbol}")

    def log_action(self, action: str) -> None:
        """Record an action taken by the rebalancer"""
        entry = self._write(action)
        logger.info(entry.strip())

    def load_history(self, prefix: Optional[str] = None) -> pd.DataFrame:
        """
        Load balance records from the log

        Args:
            prefix: Only keep records with this prefix (total balances by default)

        Returns:
            DataFrame with HISTORY_COLUMNS, ordered by timestamp
        """
        prefix = prefix or self.TOTAL_BALANCE_PREFIX

        try:
            lines = self.storage.read_lines()
        except OSError as e:
            logger.error(f"Failed to read balance log: {e}")
            lines = []

        records = []
        for line in lines:
            line_match = _LINE_PATTERN.match(line)
            if not line_match or prefix not in line_match.group('text'):
                continue
            balance_match = _BALANCE_PATTERN.search(line_match.group('text'))
            if not balance_match:
                continue
            timestamp = pd.to_datetime(line_match.group('timestamp'), utc=True, errors='coerce')
            if pd.isna(timestamp):
                continue
            try:
                records.append({
                    'timestamp': timestamp,
                    'prefix': prefix,
                    'asset_a_symbol': balance_match.group('symbol_a'),
                    'asset_a': float(balance_match.group('amount_a')),
                    'asset_b_symbol': balance_match.group('symbol_b'),
                    'asset_b': float(balance_match.group('amount_b')),
                })
            except ValueError:
                continue

        history = pd.DataFrame(records, columns=HISTORY_COLUMNS)
        if history.empty:
            return history
        return history.sort_values('timestamp', kind='stable').reset_index(drop=True)

    def get_last_balance(self, timestamp: Optional[datetime] = None,
                         asset_a_symbol: Optional[str] = None,
                         asset_b_symbol: Optional[str] = None) -> Optional[Tuple[float, float]]:
        """
        Get the latest total usable balances recorded at or before a time

        Args:
            timestamp: Upper bound (now by default)
            asset_a_symbol: Only consider records for this asset A
            asset_b_symbol: Only consider records for this asset B

        Returns:
            Tuple of (asset A, asset B) amounts, or None if nothing was recorded
        """
        history = self.load_history()
        if history.empty:
            return None

        cutoff = pd.Timestamp(timestamp or datetime.now(timezone.utc))
        if cutoff.tzinfo is None:
            cutoff = cutoff.tz_localize('UTC')

        eligible = history[history['timestamp'] <= cutoff]
        if asset_a_symbol is not None:
            eligible = eligible[eligible['asset_a_symbol'] == asset_a_symbol]
        if asset_b_symbol is not None:
            eligible = eligible[eligible['asset_b_symbol'] == asset_b_symbol]
        if eligible.empty:
            return None

        last = eligible.iloc[-1]
        return float(last['asset_a']), float(last['asset_b'])
