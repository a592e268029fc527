# ============================================================================
# Quantum Alpha Copy Trader
# Master-to-follower trade replication pipeline
# ============================================================================

__version__ = "0.4.0"

__all__ = ["__version__"]
