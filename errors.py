"""
MeteoraRebalancer - Error kinds
Closed set of failure kinds raised by the ledger gateway and the engine.
"""


class RebalancerError(Exception):
    """Base class for every failure the rebalancer knows how to dispatch on"""


class InsufficientFunds(RebalancerError):
    """Funding shortfall - retrying cannot fix it"""


class InsufficientFundsForPositionFees(InsufficientFunds):
    """Native balance is below the reserve needed to open a position"""


class NoPositionFound(RebalancerError):
    """The ledger reports no open position on the pool"""


class TransientError(RebalancerError):
    """Temporary node or network unavailability"""


class BadRequestError(RebalancerError):
    """Request rejected by a remote service"""


class PoolMetadataError(RebalancerError):
    """Pool metadata could not be resolved"""


class MalformedPoolMetadata(PoolMetadataError):
    """Pool metadata was fetched but is not usable"""


class PoolMetadataUnavailable(PoolMetadataError):
    """Pool metadata could not be fetched"""
