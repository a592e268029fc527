"""
============================================================================
Follower Directory Service
============================================================================

Registry of follower accounts and their replication limits. Snapshots
returned to the poller carry the consent gate's current switch position;
the orchestrator still re-reads the gate for every fan-out decision.

============================================================================
"""

from typing import Optional, Dict, Any, List
import logging

from quantum_alpha.database.keyed_store import KeyedStore
from quantum_alpha.services.consent_gate import ConsentGate
from quantum_alpha.services.replication_models import Follower

# Configure module logger
logger = logging.getLogger(__name__)

FOLLOWERS_NAMESPACE = "followers"


class FollowerDirectory:
    """Store-backed follower registry."""

    def __init__(self, store: KeyedStore, consent_gate: ConsentGate) -> None:
        self._store = store
        self._consent_gate = consent_gate

    def register(self, follower: Follower) -> Follower:
        """
        Add or replace a follower's configuration.

        Raises:
            ValidationError: If the follower fails validation
        """
        follower.validate()
        self._store.put(FOLLOWERS_NAMESPACE, follower.id, follower.to_dict())
        logger.info(
            f"[FOLLOWER-DIRECTORY] Follower registered | "
            f"follower_id={follower.id} | "
            f"scaling_factor={follower.scaling_factor} | "
            f"max_quantity_per_trade={follower.max_quantity_per_trade}"
        )
        return follower

    def get(self, follower_id: str) -> Optional[Follower]:
        record = self._store.get(FOLLOWERS_NAMESPACE, follower_id)
        if record is None:
            return None
        return self._with_consent(Follower.from_dict(record.value))

    def list_followers(self) -> List[Follower]:
        """All followers in id order, each with its current consent state."""
        return [
            self._with_consent(Follower.from_dict(record.value))
            for record in self._store.list(FOLLOWERS_NAMESPACE)
        ]

    def list_public(self) -> List[Dict[str, Any]]:
        return [follower.to_public_dict() for follower in self.list_followers()]

    def _with_consent(self, follower: Follower) -> Follower:
        follower.copy_trading_active = self._consent_gate.is_active(follower.id)
        return follower
