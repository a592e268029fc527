"""
============================================================================
Replication Ledger Service
============================================================================

Reliability Level: Mission-Critical
Decimal Integrity: Prices persisted as Decimal strings
Traceability: All operations include correlation_id for audit

COPY TRADE STATUS MACHINE:
    Every ledger row follows a strict status machine:

    PENDING → SUCCESS (order placed on the follower account)
    PENDING → FAILED (order placement rejected)
    PENDING → CANCELLED (replication withdrawn)

    Terminal States: SUCCESS, FAILED, CANCELLED (no further transitions)
    Repeating the current terminal status is an idempotent no-op so that
    order-placement callbacks can be retried safely.

UNIQUENESS:
    A row is keyed by its generated id. A second index keyed by
    (master account, master trade id, follower id) is claimed with an
    atomic put_if_absent before the row is written, so two orchestrators
    racing on the same fan-out produce exactly one row.

CONCURRENCY:
    Status updates hold a per-row mutex and commit with a version
    compare-and-swap. Different rows never block each other.

ERROR CODES:
    - REP-002: Duplicate entry (id or fan-out pair)
    - REP-003: Copy trade not found
    - REP-004: Invalid status transition
    - REP-005: Invalid ledger entry

============================================================================
"""

from typing import Optional, Dict, List, Union
import logging
import uuid

from quantum_alpha.database.keyed_store import KeyedStore
from quantum_alpha.observability import metrics
from quantum_alpha.services.keyed_locks import KeyedLockRegistry
from quantum_alpha.services.replication_errors import (
    DuplicateEntry,
    DuplicateFanOut,
    InvalidTransition,
    NotFound,
    ReplicationErrorCode,
    ValidationError,
)
from quantum_alpha.services.replication_models import (
    CopyTrade,
    CopyTradeStatus,
    fan_out_key,
    utc_now,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

LEDGER_NAMESPACE = "copy_trades"
FAN_OUT_NAMESPACE = "copy_trade_fan_out"


# =============================================================================
# Replication Ledger Class
# =============================================================================

class ReplicationLedger:
    """
    Append-only-by-id store of copy trades with a mutable status field.

    ============================================================================
    OPERATIONS:
    ============================================================================
        append(entry)                         → DuplicateEntry on id/pair reuse
        update_status(id, status, reason)     → NotFound / InvalidTransition
        list_by_follower(follower_id, limit)  → newest first
        list_by_master(master_id)             → oldest first
        list_pending(limit)                   → oldest first (work queue)
    ============================================================================

    Side Effects: Writes to the keyed store, logs all mutations, updates metrics
    """

    def __init__(
        self,
        store: KeyedStore,
        correlation_id: Optional[str] = None,
    ) -> None:
        self._store = store
        self._correlation_id = correlation_id or str(uuid.uuid4())
        self._row_locks = KeyedLockRegistry("ledger-row")

        logger.info(
            f"[COPY-LEDGER] Ledger initialized | "
            f"store={type(store).__name__} | "
            f"correlation_id={self._correlation_id}"
        )

    # =========================================================================
    # Mutations
    # =========================================================================

    def append(self, entry: CopyTrade) -> CopyTrade:
        """
        Add one row to the ledger.

        ========================================================================
        APPEND FLOW:
        ========================================================================
        1. Validate the entry (ids present, follower_qty >= 1)
        2. Claim the (master account, master id, follower) fan-out key
        3. Insert the row under its id
        4. If the id already exists, release the fan-out claim and fail
        ========================================================================

        Raises:
            ValidationError: If the entry is malformed
            DuplicateFanOut: If the fan-out pair already has a row
            DuplicateEntry: If a row with the same id already exists
        """
        self._validate_entry(entry)
        pair_key = entry.fan_out_key

        if not self._store.put_if_absent(
            FAN_OUT_NAMESPACE, pair_key, {"copy_trade_id": entry.id}
        ):
            existing = self._store.get(FAN_OUT_NAMESPACE, pair_key)
            existing_id = existing.value.get("copy_trade_id") if existing else None
            logger.warning(
                f"[{ReplicationErrorCode.DUPLICATE_ENTRY}] Fan-out already recorded | "
                f"master_id={entry.master_id} | "
                f"follower_id={entry.follower_id} | "
                f"existing_trade_id={existing_id} | "
                f"correlation_id={self._correlation_id}"
            )
            raise DuplicateFanOut(
                f"Copy trade already exists for master_id={entry.master_id} "
                f"follower_id={entry.follower_id}",
                existing_trade_id=existing_id,
            )

        if not self._store.put_if_absent(LEDGER_NAMESPACE, entry.id, entry.to_dict()):
            self._store.delete(FAN_OUT_NAMESPACE, pair_key)
            logger.error(
                f"[{ReplicationErrorCode.DUPLICATE_ENTRY}] Copy trade id already exists | "
                f"trade_id={entry.id} | "
                f"correlation_id={self._correlation_id}"
            )
            raise DuplicateEntry(f"Copy trade id already exists: {entry.id}")

        logger.info(
            f"[COPY-LEDGER] Copy trade appended | "
            f"trade_id={entry.id} | "
            f"master_id={entry.master_id} | "
            f"follower_id={entry.follower_id} | "
            f"symbol={entry.symbol} | "
            f"side={entry.side.value} | "
            f"follower_qty={entry.follower_qty} | "
            f"status={entry.status.value} | "
            f"correlation_id={self._correlation_id}"
        )
        return entry

    def update_status(
        self,
        trade_id: str,
        new_status: Union[CopyTradeStatus, str],
        reason: Optional[str] = None,
    ) -> CopyTrade:
        """
        Move a copy trade to a terminal status.

        Args:
            trade_id: Ledger row id
            new_status: Target status (enum or its string value)
            reason: Optional explanation, stored for FAILED/CANCELLED

        Returns:
            The row after the update (or unchanged, for an idempotent repeat)

        Raises:
            NotFound: If no row has this id
            InvalidTransition: If the row is terminal and the target differs,
                or the target is not reachable from the current status
            ValidationError: If new_status is not a known status
        """
        target = CopyTradeStatus.parse(new_status)

        with self._row_locks.hold(trade_id):
            while True:
                record = self._store.get(LEDGER_NAMESPACE, trade_id)
                if record is None:
                    metrics.record_status_update(target.value, "not_found")
                    logger.error(
                        f"[{ReplicationErrorCode.NOT_FOUND}] Copy trade not found | "
                        f"trade_id={trade_id} | "
                        f"correlation_id={self._correlation_id}"
                    )
                    raise NotFound(f"Copy trade not found: {trade_id}")

                trade = CopyTrade.from_dict(record.value)
                current = trade.status

                if current == target:
                    metrics.record_status_update(target.value, "noop")
                    logger.info(
                        f"[COPY-LEDGER] Idempotent: already in status {target.value} | "
                        f"trade_id={trade_id} | "
                        f"correlation_id={self._correlation_id}"
                    )
                    return trade

                if current.is_terminal or not target.is_terminal:
                    metrics.record_status_update(target.value, "invalid_transition")
                    logger.error(
                        f"[{ReplicationErrorCode.INVALID_TRANSITION}] "
                        f"Invalid status transition: {current.value} → {target.value} | "
                        f"trade_id={trade_id} | "
                        f"correlation_id={self._correlation_id}"
                    )
                    raise InvalidTransition(
                        f"Invalid status transition: {current.value} → {target.value} "
                        f"for trade_id={trade_id}"
                    )

                trade.status = target
                if reason:
                    trade.reason = reason
                trade.updated_at = utc_now()

                if self._store.compare_and_swap(
                    LEDGER_NAMESPACE, trade_id, record.version, trade.to_dict()
                ):
                    metrics.record_status_update(target.value, "applied")
                    logger.info(
                        f"[COPY-LEDGER] Status transition | "
                        f"trade_id={trade_id} | "
                        f"{current.value} → {target.value} | "
                        f"reason={reason} | "
                        f"correlation_id={self._correlation_id}"
                    )
                    return trade

                # Another process wrote the row between read and swap
                logger.debug(
                    f"[COPY-LEDGER] Status update lost race, re-reading | "
                    f"trade_id={trade_id}"
                )

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, trade_id: str) -> Optional[CopyTrade]:
        record = self._store.get(LEDGER_NAMESPACE, trade_id)
        if record is None:
            return None
        return CopyTrade.from_dict(record.value)

    def find_fan_out(
        self,
        master_id: str,
        follower_id: str,
        master_account: Optional[str] = None,
    ) -> Optional[CopyTrade]:
        """
        Return the row already created for this master trade and follower.

        Without a master account the ledger is scanned, since the fan-out
        index is keyed by account.
        """
        if master_account is None:
            for trade in self.list_by_master(master_id):
                if trade.follower_id == follower_id:
                    return trade
            return None

        claim = self._store.get(
            FAN_OUT_NAMESPACE, fan_out_key(master_account, master_id, follower_id)
        )
        if claim is None:
            return None
        return self.get(claim.value.get("copy_trade_id", ""))

    def list_by_follower(
        self,
        follower_id: str,
        limit: Optional[int] = None,
    ) -> List[CopyTrade]:
        """Rows for one follower, newest first by creation timestamp."""
        trades = [t for t in self._all_trades() if t.follower_id == follower_id]
        trades.sort(key=lambda t: (t.timestamp, t.id), reverse=True)
        return trades[:limit] if limit is not None else trades

    def list_by_master(
        self,
        master_id: str,
        master_account: Optional[str] = None,
    ) -> List[CopyTrade]:
        """Rows fanned out from one master trade, oldest first."""
        trades = [
            t for t in self._all_trades()
            if t.master_id == master_id
            and (master_account is None or t.master_account == master_account)
        ]
        trades.sort(key=lambda t: (t.timestamp, t.follower_id))
        return trades

    def list_pending(self, limit: Optional[int] = None) -> List[CopyTrade]:
        """PENDING rows awaiting order placement, oldest first."""
        trades = [t for t in self._all_trades() if t.status == CopyTradeStatus.PENDING]
        trades.sort(key=lambda t: (t.timestamp, t.id))
        return trades[:limit] if limit is not None else trades

    def count_by_status(self) -> Dict[str, int]:
        """Row counts per status; also refreshes the Prometheus gauge."""
        counts = {status.value: 0 for status in CopyTradeStatus}
        for trade in self._all_trades():
            counts[trade.status.value] += 1
        metrics.update_copy_trades_by_status(counts)
        return counts

    # =========================================================================
    # Private Methods
    # =========================================================================

    def _all_trades(self) -> List[CopyTrade]:
        return [
            CopyTrade.from_dict(record.value)
            for record in self._store.list(LEDGER_NAMESPACE)
        ]

    def _validate_entry(self, entry: CopyTrade) -> None:
        missing = [
            name for name in ("id", "master_id", "follower_id", "symbol")
            if not str(getattr(entry, name) or "").strip()
        ]
        if missing:
            raise ValidationError(f"Copy trade missing required fields: {missing}")
        if entry.follower_qty < 1:
            raise ValidationError(
                f"follower_qty must be >= 1, got: {entry.follower_qty} | "
                f"trade_id={entry.id}"
            )
