"""
Tests for pool metadata resolution over the Meteora HTTP API.
"""
import asyncio
import pytest
import sys
import os
from unittest.mock import Mock

import requests

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from errors import MalformedPoolMetadata, PoolMetadataUnavailable
from meteora_client import MeteoraApiClient, PoolDetails, parse_pool_name
from helpers import POOL_ADDRESS, make_config


def _response(status_code=200, payload=None):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    return response


PAIR_PAYLOAD = {
    'address': POOL_ADDRESS,
    'name': 'SOL-USDC',
    'mint_x': 'So11111111111111111111111111111111111111112',
    'mint_y': 'EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v',
    'bin_step': 20,
    'current_price': 142.5,
}


class TestParsePoolName:
    """Test splitting of pool names into symbols."""

    def test_two_symbols(self):
        assert parse_pool_name('SOL-USDC') == ('SOL', 'USDC')

    @pytest.mark.parametrize("name", ['SOLUSDC', 'SOL-USDC-X', 'SOL-', '-USDC', '', None, 42])
    def test_malformed_names(self, name):
        with pytest.raises(MalformedPoolMetadata):
            parse_pool_name(name)


class TestMeteoraApiClient:
    """Test the pool metadata resolver."""

    def setup_method(self):
        self.session = Mock()
        self.client = MeteoraApiClient(make_config(), session=self.session)

    def test_fetch_pool_details(self):
        self.session.get.return_value = _response(payload=PAIR_PAYLOAD)

        details = self.client.fetch_pool_details(POOL_ADDRESS)

        assert details == PoolDetails(
            bin_step=20,
            asset_a_mint=PAIR_PAYLOAD['mint_x'],
            asset_b_mint=PAIR_PAYLOAD['mint_y'],
            asset_a_symbol='SOL',
            asset_b_symbol='USDC',
        )
        url = self.session.get.call_args[0][0]
        assert url == f"https://dlmm-api.example.org/pair/{POOL_ADDRESS}"

    def test_pool_details_are_cached(self):
        self.session.get.return_value = _response(payload=PAIR_PAYLOAD)

        first = asyncio.run(self.client.get_pool_details(POOL_ADDRESS))
        second = asyncio.run(self.client.get_pool_details(POOL_ADDRESS))

        assert first == second
        assert self.session.get.call_count == 1

    def test_http_error_is_unavailable(self):
        self.session.get.return_value = _response(status_code=503)

        with pytest.raises(PoolMetadataUnavailable, match="503"):
            self.client.fetch_pool_details(POOL_ADDRESS)

    def test_network_error_is_unavailable(self):
        self.session.get.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(PoolMetadataUnavailable):
            self.client.fetch_pool_details(POOL_ADDRESS)

    def test_invalid_json_is_malformed(self):
        response = _response()
        response.json.side_effect = ValueError("not json")
        self.session.get.return_value = response

        with pytest.raises(MalformedPoolMetadata):
            self.client.fetch_pool_details(POOL_ADDRESS)

    def test_malformed_name(self):
        self.session.get.return_value = _response(payload={**PAIR_PAYLOAD, 'name': 'SOLUSDC'})

        with pytest.raises(MalformedPoolMetadata):
            self.client.fetch_pool_details(POOL_ADDRESS)

    @pytest.mark.parametrize("bin_step", [0, -5, 'abc', None])
    def test_invalid_bin_step(self, bin_step):
        self.session.get.return_value = _response(payload={**PAIR_PAYLOAD, 'bin_step': bin_step})

        with pytest.raises(MalformedPoolMetadata):
            self.client.fetch_pool_details(POOL_ADDRESS)

    def test_missing_mint(self):
        payload = dict(PAIR_PAYLOAD)
        del payload['mint_y']
        self.session.get.return_value = _response(payload=payload)

        with pytest.raises(MalformedPoolMetadata):
            self.client.fetch_pool_details(POOL_ADDRESS)

    def test_failed_lookup_is_not_cached(self):
        self.session.get.side_effect = [_response(status_code=500), _response(payload=PAIR_PAYLOAD)]

        with pytest.raises(PoolMetadataUnavailable):
            self.client.fetch_pool_details(POOL_ADDRESS)
        assert self.client.fetch_pool_details(POOL_ADDRESS).bin_step == 20

    def test_current_price(self):
        self.session.get.return_value = _response(payload=PAIR_PAYLOAD)

        assert asyncio.run(self.client.get_current_price(POOL_ADDRESS)) == pytest.approx(142.5)

    def test_missing_current_price(self):
        payload = dict(PAIR_PAYLOAD)
        del payload['current_price']
        self.session.get.return_value = _response(payload=payload)

        with pytest.raises(MalformedPoolMetadata):
            self.client.fetch_current_price(POOL_ADDRESS)
