"""
Meteora DLMM API client.
Resolves static pool metadata over HTTP.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import requests

from config import Config
from errors import MalformedPoolMetadata, PoolMetadataUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoolDetails:
    """Static facts about a pool, resolved once per agent lifetime"""
    bin_step: int
    asset_a_mint: str
    asset_b_mint: str
    asset_a_symbol: str
    asset_b_symbol: str


def parse_pool_name(name: Any) -> Tuple[str, str]:
    """
    Split a pool name like "SOL-USDC" into its two asset symbols

    Raises:
        MalformedPoolMetadata: If the name does not hold exactly two symbols
    """
    if not isinstance(name, str):
        raise MalformedPoolMetadata(f"Invalid pool name format: {name}")

    parts = [part.strip() for part in name.split('-')]
    if len(parts) != 2 or not all(parts):
        raise MalformedPoolMetadata(f"Invalid pool name format: {name}")

    return parts[0], parts[1]


class MeteoraApiClient:
    """Client for the public Meteora DLMM HTTP API"""

    def __init__(self, config: Config = None, session: Optional[requests.Session] = None):
        """Initialize the API client"""
        self.config = config or Config()
        self.base_url = self.config.METEORA_API_URL.rstrip('/')
        self.timeout = self.config.HTTP_TIMEOUT_SECONDS
        self.session = session or requests.Session()

        # Pool metadata is immutable, keep it for the agent's lifetime
        self._pool_cache: Dict[str, PoolDetails] = {}

    def _get_pair(self, pool_address: str) -> Dict[str, Any]:
        url = f"{self.base_url}/pair/{pool_address}"
        try:
            response = self.session.get(url, headers={'accept': 'application/json'}, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise PoolMetadataUnavailable(f"Request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise PoolMetadataUnavailable(f"HTTP error! status: {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise MalformedPoolMetadata(f"Pool {pool_address} returned invalid JSON") from e

    def fetch_pool_details(self, pool_address: str) -> PoolDetails:
        """
        Fetch pool metadata (blocking)

        Args:
            pool_address: Pool account address

        Returns:
            PoolDetails for the pool

        Raises:
            PoolMetadataUnavailable: If the API cannot be reached
            MalformedPoolMetadata: If the response is not usable
        """
        if pool_address in self._pool_cache:
            return self._pool_cache[pool_address]

        data = self._get_pair(pool_address)
        asset_a_symbol, asset_b_symbol = parse_pool_name(data.get('name'))

        mint_x = data.get('mint_x')
        mint_y = data.get('mint_y')
        if not mint_x or not mint_y:
            raise MalformedPoolMetadata(f"Pool {pool_address} is missing asset mint addresses")

        try:
            bin_step = int(data.get('bin_step'))
        except (TypeError, ValueError):
            raise MalformedPoolMetadata(f"Pool {pool_address} has invalid bin step: {data.get('bin_step')}")
        if bin_step <= 0:
            raise MalformedPoolMetadata(f"Pool {pool_address} has invalid bin step: {bin_step}")

        details = PoolDetails(
            bin_step=bin_step,
            asset_a_mint=mint_x,
            asset_b_mint=mint_y,
            asset_a_symbol=asset_a_symbol,
            asset_b_symbol=asset_b_symbol,
        )
        self._pool_cache[pool_address] = details
        logger.info(f"Resolved pool {pool_address}: {asset_a_symbol}-{asset_b_symbol}, bin step {bin_step}")
        return details

    async def get_pool_details(self, pool_address: str) -> PoolDetails:
        """Fetch pool metadata without blocking the event loop"""
        if pool_address in self._pool_cache:
            return self._pool_cache[pool_address]
        return await asyncio.to_thread(self.fetch_pool_details, pool_address)

    def fetch_current_price(self, pool_address: str) -> float:
        """Fetch the pool's current price of asset A in asset B (blocking)"""
        data = self._get_pair(pool_address)
        try:
            return float(data['current_price'])
        except (KeyError, TypeError, ValueError):
            raise MalformedPoolMetadata(f"Pool {pool_address} returned no usable current price")

    async def get_current_price(self, pool_address: str) -> float:
        """Fetch the pool's current price without blocking the event loop"""
        return await asyncio.to_thread(self.fetch_current_price, pool_address)
