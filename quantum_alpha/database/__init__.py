# ============================================================================
# Quantum Alpha Copy Trader
# Database Module - Keyed store and SQLAlchemy engine construction
# ============================================================================

from quantum_alpha.database.keyed_store import (
    KeyedStore,
    InMemoryKeyedStore,
    SqlKeyedStore,
    StoredRecord,
)
from quantum_alpha.database.session import (
    create_database_engine,
    get_database_url,
    check_database_connection,
)

__all__ = [
    "KeyedStore",
    "InMemoryKeyedStore",
    "SqlKeyedStore",
    "StoredRecord",
    "create_database_engine",
    "get_database_url",
    "check_database_connection",
]
