"""
Shared strategy logic for MeteoraRebalancer.
Centralizes the relocation trigger, range sizing and 50/50 swap sizing.
"""
from dataclasses import dataclass
from typing import Optional, Tuple
import math

from config import MAX_BINS_PER_SIDE
from errors import RebalancerError

# Protocol bin step is expressed in basis points
BASIS_POINTS = 10000

SWAP_A_TO_B = 'a_to_b'
SWAP_B_TO_A = 'b_to_a'


@dataclass(frozen=True)
class PositionRange:
    """Inclusive bin range in which the position supplies liquidity"""
    lower_bin_id: int
    upper_bin_id: int

    def contains(self, bin_id: int) -> bool:
        return self.lower_bin_id <= bin_id <= self.upper_bin_id


@dataclass(frozen=True)
class SwapPlan:
    """Swap needed to bring both assets to equal value"""
    direction: Optional[str]  # SWAP_A_TO_B, SWAP_B_TO_A or None
    amount: float  # Input amount, in units of the asset being sold
    target_a: float
    target_b: float
    total_value: float  # Total value in asset-B terms

    @property
    def needs_swap(self) -> bool:
        return self.direction is not None


def calculate_range_interval(relative_range: float,
                             bin_step: int,
                             max_bins: int = MAX_BINS_PER_SIDE) -> Tuple[int, bool]:
    """
    Convert a relative half-width into a number of bins per side

    Args:
        relative_range: Price range per side as a fraction (0.05 = +/-5%)
        bin_step: Pool bin step in basis points
        max_bins: Protocol maximum bins per side

    Returns:
        Tuple of (bins per side, whether the value was clipped to max_bins)
    """
    if relative_range is None or relative_range <= 0:
        raise ValueError(f"Relative range must be positive, got {relative_range}")
    if bin_step <= 0:
        raise ValueError(f"Bin step must be positive, got {bin_step}")

    # Round away float noise so 0.07 * 10000 does not become 701 bins
    interval = math.ceil(round(relative_range * BASIS_POINTS / bin_step, 9))
    interval = max(interval, 1)

    if interval > max_bins:
        return max_bins, True
    return interval, False


def is_out_of_range(active_bin_id: int, position_range: PositionRange) -> bool:
    """Relocation trigger: the active bin left the position's bin range"""
    return not position_range.contains(active_bin_id)


def plan_swap(amount_a: float,
              amount_b: float,
              price: float,
              tolerance: float = 1e-6) -> SwapPlan:
    """
    Size the swap that brings both balances to a 50/50 value split

    Args:
        amount_a: Balance of asset A
        amount_b: Balance of asset B
        price: Price of one unit of A in units of B
        tolerance: Imbalance ignored, relative to the total value

    Returns:
        SwapPlan with at most one swap direction
    """
    if price is None or price <= 0:
        raise RebalancerError(f"Cannot rebalance at non-positive price {price}")

    total_value = amount_a * price + amount_b
    target_value = total_value / 2
    target_a = target_value / price
    target_b = target_value

    threshold = total_value * tolerance
    excess_a = amount_a - target_a
    excess_b = amount_b - target_b

    if excess_a > 0 and excess_a * price > threshold:
        return SwapPlan(SWAP_A_TO_B, excess_a, target_a, target_b, total_value)
    if excess_b > 0 and excess_b > threshold:
        return SwapPlan(SWAP_B_TO_A, excess_b, target_a, target_b, total_value)
    return SwapPlan(None, 0.0, target_a, target_b, total_value)
