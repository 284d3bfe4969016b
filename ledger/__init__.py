"""
Ledger gateways for MeteoraRebalancer.
"""
from .base_gateway import ActiveBin, LedgerGateway, PositionInfo, RemovalResult
from .paper_gateway import NATIVE_MINT, PaperGateway
from .gateway_factory import GatewayFactory

__all__ = ['ActiveBin', 'LedgerGateway', 'PositionInfo', 'RemovalResult',
           'NATIVE_MINT', 'PaperGateway', 'GatewayFactory']
