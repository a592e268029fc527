"""
============================================================================
Replication Orchestrator Service
============================================================================

Reliability Level: Mission-Critical
Decimal Integrity: Scaling uses decimal.Decimal, quantities floor to int
Traceability: All operations include correlation_id for audit

FAN-OUT FLOW (per newly-seen master trade):
    For each follower, in the order given:
    1. Validate the follower record (invalid → logged and skipped)
    2. Skip the follower when its record says inactive or the consent
       gate does (the gate is read on every fan-out, never cached)
    3. Check the ledger for an existing (master trade, follower) row
    4. Compute the follower quantity (scale, floor, cap, minimum 1)
    5. Append a PENDING copy trade

    A concurrent duplicate fan-out surfaces as DuplicateFanOut from the
    ledger and is treated as already replicated. The orchestrator never
    contacts a brokerage; order placement reads PENDING rows and reports
    back through update_status().

ERROR CODES:
    - REP-002: Duplicate fan-out (absorbed, logged)
    - REP-003: Status update on unknown copy trade (propagated)
    - REP-004: Invalid status transition (propagated)
    - REP-005: Invalid follower or manual trade input

============================================================================
"""

from decimal import Decimal
from typing import Optional, Any, List, Iterable, Union
import logging
import uuid

from quantum_alpha.logic.quantity_calculator import compute_follower_quantity
from quantum_alpha.observability import metrics
from quantum_alpha.services.consent_gate import ConsentGate
from quantum_alpha.services.replication_errors import (
    DuplicateFanOut,
    ReplicationErrorCode,
    ValidationError,
)
from quantum_alpha.services.replication_ledger import ReplicationLedger
from quantum_alpha.services.replication_models import (
    CopyTrade,
    CopyTradeStatus,
    Follower,
    MasterTrade,
    TradeSide,
    to_decimal,
    utc_now,
)

# Configure module logger
logger = logging.getLogger(__name__)

MANUAL_TRADE_PREFIX = "MANUAL-"


# =============================================================================
# Skip Reasons
# =============================================================================

class SkipReason:
    """Metric labels for followers left out of a fan-out."""
    INACTIVE = "inactive"
    ALREADY_REPLICATED = "already_replicated"
    INVALID_FOLLOWER = "invalid_follower"


# =============================================================================
# Replication Orchestrator Class
# =============================================================================

class ReplicationOrchestrator:
    """
    Fans master trades out to followers as PENDING ledger rows.

    Reliability Level: Mission-Critical
    Side Effects: Ledger appends, metrics, audit logging
    """

    def __init__(
        self,
        ledger: ReplicationLedger,
        consent_gate: ConsentGate,
        correlation_id: Optional[str] = None,
    ) -> None:
        self._ledger = ledger
        self._consent_gate = consent_gate
        self._correlation_id = correlation_id or str(uuid.uuid4())

    def replicate(
        self,
        master_trade: MasterTrade,
        followers: Iterable[Follower],
    ) -> List[CopyTrade]:
        """
        Create one PENDING copy trade per eligible follower.

        Args:
            master_trade: Newly-seen master fill
            followers: Candidate followers (snapshot from the directory)

        Returns:
            Copy trades created by this call, in follower order
        """
        created: List[CopyTrade] = []

        for follower in followers:
            try:
                follower.validate()
            except ValidationError as e:
                metrics.record_follower_skipped(SkipReason.INVALID_FOLLOWER)
                logger.error(
                    f"[{ReplicationErrorCode.VALIDATION_ERROR}] Skipping invalid follower | "
                    f"master_id={master_trade.id} | "
                    f"follower_id={follower.id} | "
                    f"error={e.message} | "
                    f"correlation_id={self._correlation_id}"
                )
                continue

            if not follower.copy_trading_active or not self._consent_gate.is_active(follower.id):
                metrics.record_follower_skipped(SkipReason.INACTIVE)
                logger.info(
                    f"[REPLICATION] Follower inactive, skipped | "
                    f"master_id={master_trade.id} | "
                    f"follower_id={follower.id} | "
                    f"correlation_id={self._correlation_id}"
                )
                continue

            existing = self._ledger.find_fan_out(
                master_trade.id, follower.id, master_trade.account
            )
            if existing is not None:
                metrics.record_follower_skipped(SkipReason.ALREADY_REPLICATED)
                logger.info(
                    f"[REPLICATION] Already replicated, skipped | "
                    f"master_id={master_trade.id} | "
                    f"follower_id={follower.id} | "
                    f"copy_trade_id={existing.id} | "
                    f"correlation_id={self._correlation_id}"
                )
                continue

            follower_qty = compute_follower_quantity(
                master_trade.quantity,
                follower.scaling_factor,
                follower.max_quantity_per_trade,
            )
            entry = CopyTrade.create(master_trade, follower.id, follower_qty)

            try:
                self._ledger.append(entry)
            except DuplicateFanOut as e:
                metrics.record_follower_skipped(SkipReason.ALREADY_REPLICATED)
                logger.info(
                    f"[REPLICATION] Concurrent fan-out won the race, skipped | "
                    f"master_id={master_trade.id} | "
                    f"follower_id={follower.id} | "
                    f"copy_trade_id={e.existing_trade_id} | "
                    f"correlation_id={self._correlation_id}"
                )
                continue

            metrics.record_copy_trade_created(
                entry.symbol, entry.side.value, self._correlation_id
            )
            created.append(entry)

        logger.info(
            f"[REPLICATION] Fan-out complete | "
            f"master_id={master_trade.id} | "
            f"account={master_trade.account} | "
            f"symbol={master_trade.symbol} | "
            f"side={master_trade.side.value} | "
            f"master_qty={master_trade.quantity} | "
            f"created={len(created)} | "
            f"correlation_id={self._correlation_id}"
        )
        return created

    def replicate_manual(
        self,
        master_account: str,
        symbol: str,
        side: Any,
        quantity: Any,
        price: Any,
        followers: Iterable[Follower],
    ) -> List[CopyTrade]:
        """
        Replicate an operator-entered trade that did not come from a trade book.

        The trade gets a MANUAL-<uuid> id so it can never collide with an
        upstream or synthesised id.

        Raises:
            ValidationError: On missing account/symbol, unknown side,
                non-positive or fractional quantity, or negative price
        """
        if not master_account or not str(master_account).strip():
            raise ValidationError("master_account is required")
        if not symbol or not str(symbol).strip():
            raise ValidationError("symbol is required")

        qty = to_decimal(quantity, "quantity")
        if qty <= 0 or qty != qty.to_integral_value():
            raise ValidationError(f"quantity must be a positive whole number, got: {quantity!r}")
        price_value = to_decimal(price, "price")
        if price_value < Decimal("0"):
            raise ValidationError(f"price must not be negative, got: {price!r}")

        master_trade = MasterTrade(
            id=f"{MANUAL_TRADE_PREFIX}{uuid.uuid4()}",
            account=str(master_account).strip(),
            symbol=str(symbol).strip(),
            side=TradeSide.parse(side),
            quantity=int(qty),
            price=price_value,
            timestamp=utc_now(),
        )
        logger.info(
            f"[REPLICATION] Manual copy trade requested | "
            f"master_id={master_trade.id} | "
            f"account={master_trade.account} | "
            f"symbol={master_trade.symbol} | "
            f"quantity={master_trade.quantity} | "
            f"correlation_id={self._correlation_id}"
        )
        return self.replicate(master_trade, followers)

    def update_status(
        self,
        trade_id: str,
        new_status: Union[CopyTradeStatus, str],
        reason: Optional[str] = None,
    ) -> CopyTrade:
        """Order-placement callback; ledger errors propagate to the caller."""
        return self._ledger.update_status(trade_id, new_status, reason)
