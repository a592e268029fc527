"""
============================================================================
Quantum Alpha Copy Trader
Follower Quantity Calculator
============================================================================

THE REPLICATION SIZING FORMULA
------------------------------
FollowerQty = floor(MasterQty × ScalingFactor)
FollowerQty = min(FollowerQty, MaxQuantity)      (when a cap is set)
FollowerQty = max(FollowerQty, 1)

SIZING GUARDRAILS
-----------------
- Truncation never allocates more than the scaled master exposure
- A cap is applied before the floor of one, so a cap is never exceeded
  unless the cap itself is below the minimum tradable unit
- Every eligible follower gets at least one unit, so every follower keeps
  exactly one ledger row per master trade

ZERO-FLOAT MANDATE
------------------
The product is computed in decimal.Decimal. Floats are converted through
str() first, so 100 × 0.29 sizes to 29 and not 28.

============================================================================
"""

from decimal import Decimal, ROUND_FLOOR, InvalidOperation
from typing import Optional, Union

Number = Union[int, float, Decimal, str]

# Minimum tradable unit for a replicated order
MIN_FOLLOWER_QUANTITY = 1


def _as_decimal(value: Number) -> Decimal:
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    return result if result.is_finite() else Decimal("0")


def compute_follower_quantity(
    master_qty: Number,
    scaling_factor: Number,
    max_quantity: Optional[int] = None,
) -> int:
    """
    Map a master order size to a bounded follower order size.

    Args:
        master_qty: Master fill quantity (positive integer)
        scaling_factor: Follower multiplier (positive real)
        max_quantity: Optional per-trade cap; ignored when None or not positive

    Returns:
        Follower quantity, always >= 1 and <= max_quantity when a cap is set

    Never raises: degenerate inputs resolve to the minimum tradable unit.
    """
    raw = _as_decimal(master_qty) * _as_decimal(scaling_factor)

    # Truncate toward zero (floor for positive products)
    follower_qty = int(raw.to_integral_value(rounding=ROUND_FLOOR)) if raw > 0 else 0

    if max_quantity is not None and max_quantity > 0 and follower_qty > max_quantity:
        follower_qty = int(max_quantity)

    return max(MIN_FOLLOWER_QUANTITY, follower_qty)
