# ============================================================================
# Quantum Alpha Copy Trader
# Logic Module - Pure sizing functions
# ============================================================================

from quantum_alpha.logic.quantity_calculator import (
    compute_follower_quantity,
    MIN_FOLLOWER_QUANTITY,
)

__all__ = ["compute_follower_quantity", "MIN_FOLLOWER_QUANTITY"]
