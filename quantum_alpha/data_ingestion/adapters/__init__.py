"""
============================================================================
Trade Source Adapters Package
============================================================================

SOURCES:
    1. AliceBlueTradeSource - Alice Blue Open API trade book (production)
    2. StaticTradeSource - In-memory books (tests, dry runs)

All sources implement the BaseTradeSource interface.
============================================================================
"""

from quantum_alpha.data_ingestion.adapters.base_trade_source import BaseTradeSource
from quantum_alpha.data_ingestion.adapters.alice_blue_adapter import (
    AliceBlueTradeSource,
    extract_trade_list,
)
from quantum_alpha.data_ingestion.adapters.static_source import StaticTradeSource

__all__ = [
    "BaseTradeSource",
    "AliceBlueTradeSource",
    "StaticTradeSource",
    "extract_trade_list",
]
