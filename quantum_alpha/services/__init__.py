# ============================================================================
# Quantum Alpha Copy Trader
# Services Module - Replication pipeline services
# ============================================================================

from quantum_alpha.services.replication_errors import (
    ReplicationErrorCode,
    ReplicationError,
    UpstreamUnavailable,
    DuplicateEntry,
    DuplicateFanOut,
    NotFound,
    InvalidTransition,
    ValidationError,
    ConfigurationError,
)
from quantum_alpha.services.replication_models import (
    TradeSide,
    CopyTradeStatus,
    MasterTrade,
    Follower,
    CopyTrade,
)
from quantum_alpha.services.consent_gate import ConsentGate, ConsentRecord
from quantum_alpha.services.credential_store import CredentialStore
from quantum_alpha.services.follower_directory import FollowerDirectory
from quantum_alpha.services.replication_ledger import ReplicationLedger
from quantum_alpha.services.replication_orchestrator import ReplicationOrchestrator
from quantum_alpha.services.trade_feed_deduplicator import TradeFeedDeduplicator

__all__ = [
    "ReplicationErrorCode",
    "ReplicationError",
    "UpstreamUnavailable",
    "DuplicateEntry",
    "DuplicateFanOut",
    "NotFound",
    "InvalidTransition",
    "ValidationError",
    "ConfigurationError",
    "TradeSide",
    "CopyTradeStatus",
    "MasterTrade",
    "Follower",
    "CopyTrade",
    "ConsentGate",
    "ConsentRecord",
    "CredentialStore",
    "FollowerDirectory",
    "ReplicationLedger",
    "ReplicationOrchestrator",
    "TradeFeedDeduplicator",
]
