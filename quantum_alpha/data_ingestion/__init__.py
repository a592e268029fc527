"""
============================================================================
Quantum Alpha Copy Trader - Data Ingestion Layer
============================================================================

Trade-book sources and normalisation of upstream records into
MasterTrades.
============================================================================
"""

from quantum_alpha.data_ingestion.trade_normalizer import (
    normalize_raw_trade,
    synthesize_trade_id,
    parse_timestamp,
)

__all__ = [
    "normalize_raw_trade",
    "synthesize_trade_id",
    "parse_timestamp",
]
