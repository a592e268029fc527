"""
============================================================================
Trade Feed Deduplicator Service
============================================================================

Reliability Level: Mission-Critical
Traceability: All operations include correlation_id for audit

Upstream trade books return the whole day's fills on every poll. This
service remembers, per account, which trade ids have already been seen and
returns only first sightings, so each master fill is replicated once.

INGEST FLOW (per account, under a per-account critical section):
    1. Normalise each raw record (malformed records are logged and skipped)
    2. Collapse repeats within the batch
    3. Skip ids that already have a known-id record (one record per id)
    4. Persist each unseen MasterTrade (put_if_absent, idempotent)
    5. Claim the id with put_if_absent; only the claiming caller reports
       it new, so two processes sharing a store never both fan it out

    Replaying the same batch after a crash, a restart or a duplicate
    delivery returns an empty list.

ERROR CODES:
    - REP-005: Malformed upstream record (logged, counted, skipped)

============================================================================
"""

from typing import Optional, Dict, Any, List, Iterable, Set
import logging
import uuid

from quantum_alpha.data_ingestion import trade_normalizer
from quantum_alpha.database.keyed_store import KeyedStore
from quantum_alpha.observability import metrics
from quantum_alpha.services.keyed_locks import KeyedLockRegistry
from quantum_alpha.services.replication_errors import (
    ReplicationErrorCode,
    ValidationError,
)
from quantum_alpha.services.replication_models import MasterTrade, utc_now

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

KNOWN_IDS_NAMESPACE = "known_trade_ids"
MASTER_TRADES_NAMESPACE = "master_trades"


def _trade_key(account_id: str, trade_id: str) -> str:
    return f"{account_id}|{trade_id}"


# =============================================================================
# Trade Feed Deduplicator Class
# =============================================================================

class TradeFeedDeduplicator:
    """
    Turns repeated trade-book snapshots into a stream of first sightings.

    Reliability Level: Mission-Critical
    Thread Safety: Serialised per account; different accounts ingest in parallel
    """

    def __init__(
        self,
        store: KeyedStore,
        correlation_id: Optional[str] = None,
    ) -> None:
        self._store = store
        self._correlation_id = correlation_id or str(uuid.uuid4())
        self._account_locks = KeyedLockRegistry("dedup-account")

    def ingest(
        self,
        account_id: str,
        raw_trades: Iterable[Dict[str, Any]],
    ) -> List[MasterTrade]:
        """
        Record a trade-book snapshot and return the trades never seen before.

        Args:
            account_id: Account the snapshot was fetched for
            raw_trades: Upstream records in upstream order

        Returns:
            Newly-seen MasterTrades in input order
        """
        with self._account_locks.hold(account_id):
            candidates = self._normalize_batch(account_id, raw_trades)
            if not candidates:
                return []

            fresh: List[MasterTrade] = []
            for trade in candidates:
                key = _trade_key(account_id, trade.id)
                if self._store.get(KNOWN_IDS_NAMESPACE, key) is not None:
                    continue

                self._store.put_if_absent(MASTER_TRADES_NAMESPACE, key, trade.to_dict())

                claimed = self._store.put_if_absent(
                    KNOWN_IDS_NAMESPACE,
                    key,
                    {
                        "account_id": account_id,
                        "trade_id": trade.id,
                        "first_seen_at": utc_now().isoformat(),
                    },
                )
                if not claimed:
                    # Another process recorded this id between read and insert
                    logger.debug(
                        f"[TRADE-DEDUP] Trade id claimed concurrently, skipping | "
                        f"account={account_id} | "
                        f"trade_id={trade.id} | "
                        f"correlation_id={self._correlation_id}"
                    )
                    continue
                fresh.append(trade)

        if not fresh:
            logger.debug(
                f"[TRADE-DEDUP] No new trades | "
                f"account={account_id} | "
                f"batch_size={len(candidates)} | "
                f"correlation_id={self._correlation_id}"
            )
            return []

        metrics.record_master_trades_ingested(account_id, len(fresh))
        logger.info(
            f"[TRADE-DEDUP] New master trades recorded | "
            f"account={account_id} | "
            f"new={len(fresh)} | "
            f"batch_size={len(candidates)} | "
            f"trade_ids={[trade.id for trade in fresh]} | "
            f"correlation_id={self._correlation_id}"
        )
        return fresh

    def known_ids(self, account_id: str) -> Set[str]:
        prefix = f"{account_id}|"
        return {
            record.value["trade_id"]
            for record in self._store.list(KNOWN_IDS_NAMESPACE)
            if record.key.startswith(prefix)
        }

    def get_trade(self, account_id: str, trade_id: str) -> Optional[MasterTrade]:
        record = self._store.get(MASTER_TRADES_NAMESPACE, _trade_key(account_id, trade_id))
        if record is None:
            return None
        return MasterTrade.from_dict(record.value)

    def list_trades(self, account_id: str) -> List[MasterTrade]:
        """Every recorded master trade for an account, oldest first."""
        prefix = f"{account_id}|"
        trades = [
            MasterTrade.from_dict(record.value)
            for record in self._store.list(MASTER_TRADES_NAMESPACE)
            if record.key.startswith(prefix)
        ]
        trades.sort(key=lambda trade: (trade.timestamp, trade.id))
        return trades

    # =========================================================================
    # Private Methods
    # =========================================================================

    def _normalize_batch(
        self,
        account_id: str,
        raw_trades: Iterable[Dict[str, Any]],
    ) -> List[MasterTrade]:
        candidates: List[MasterTrade] = []
        batch_ids: Set[str] = set()

        for position, raw in enumerate(raw_trades):
            try:
                trade = trade_normalizer.normalize_raw_trade(account_id, raw)
            except ValidationError as e:
                metrics.record_raw_trade_rejected(account_id)
                logger.error(
                    f"[{ReplicationErrorCode.VALIDATION_ERROR}] Skipping malformed trade record | "
                    f"account={account_id} | "
                    f"position={position} | "
                    f"error={e.message} | "
                    f"correlation_id={self._correlation_id}"
                )
                continue

            if trade.id in batch_ids:
                continue
            batch_ids.add(trade.id)
            candidates.append(trade)

        return candidates
