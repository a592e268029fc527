"""
Unit Tests for the Replication Ledger

Tests the ledger contract:
- append rejects duplicate ids and duplicate fan-out pairs
- update_status follows PENDING → terminal with idempotent repeats
- listings are ordered (follower newest first, master oldest first)
- concurrent status updates on one row serialise
"""

import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from quantum_alpha.database import InMemoryKeyedStore
from quantum_alpha.services.replication_errors import (
    DuplicateEntry,
    DuplicateFanOut,
    InvalidTransition,
    NotFound,
    ReplicationErrorCode,
    ValidationError,
)
from quantum_alpha.services.replication_ledger import ReplicationLedger
from quantum_alpha.services.replication_models import (
    CopyTrade,
    CopyTradeStatus,
    MasterTrade,
    TradeSide,
)


# =============================================================================
# Test Fixtures
# =============================================================================

BASE_TIME = datetime(2024, 3, 1, 9, 15, tzinfo=timezone.utc)


def make_master(trade_id: str = "T-1", account: str = "M1") -> MasterTrade:
    return MasterTrade(
        id=trade_id,
        account=account,
        symbol="RELIANCE",
        side=TradeSide.BUY,
        quantity=100,
        price=Decimal("2850.50"),
        timestamp=BASE_TIME,
    )


def make_copy(
    master: MasterTrade,
    follower_id: str,
    qty: int = 10,
    created: datetime = BASE_TIME,
) -> CopyTrade:
    entry = CopyTrade.create(master, follower_id, qty)
    entry.timestamp = created
    return entry


@pytest.fixture
def ledger() -> ReplicationLedger:
    return ReplicationLedger(InMemoryKeyedStore(), correlation_id="test-ledger")


# =============================================================================
# Append
# =============================================================================

class TestAppend:

    def test_append_then_get(self, ledger) -> None:
        entry = make_copy(make_master(), "F1")

        ledger.append(entry)

        stored = ledger.get(entry.id)
        assert stored is not None
        assert stored.status == CopyTradeStatus.PENDING
        assert stored.follower_qty == 10
        assert stored.price == Decimal("2850.50")

    def test_duplicate_id_rejected(self, ledger) -> None:
        entry = make_copy(make_master(), "F1")
        ledger.append(entry)

        clash = make_copy(make_master("T-2"), "F2")
        clash.id = entry.id

        with pytest.raises(DuplicateEntry) as exc_info:
            ledger.append(clash)
        assert exc_info.value.error_code == ReplicationErrorCode.DUPLICATE_ENTRY
        assert not isinstance(exc_info.value, DuplicateFanOut)

    def test_duplicate_id_releases_fan_out_claim(self, ledger) -> None:
        entry = make_copy(make_master(), "F1")
        ledger.append(entry)

        clash = make_copy(make_master("T-2"), "F2")
        clash.id = entry.id
        with pytest.raises(DuplicateEntry):
            ledger.append(clash)

        retry = make_copy(make_master("T-2"), "F2")
        ledger.append(retry)
        assert ledger.find_fan_out("T-2", "F2", "M1").id == retry.id

    def test_duplicate_fan_out_rejected(self, ledger) -> None:
        master = make_master()
        first = ledger.append(make_copy(master, "F1"))

        with pytest.raises(DuplicateFanOut) as exc_info:
            ledger.append(make_copy(master, "F1"))

        assert exc_info.value.existing_trade_id == first.id
        assert len(ledger.list_by_master(master.id)) == 1

    def test_same_trade_id_on_other_account_is_distinct(self, ledger) -> None:
        ledger.append(make_copy(make_master("T-1", "M1"), "F1"))
        ledger.append(make_copy(make_master("T-1", "M2"), "F1"))

        assert len(ledger.list_by_master("T-1")) == 2
        assert len(ledger.list_by_master("T-1", master_account="M2")) == 1

    def test_zero_quantity_rejected(self, ledger) -> None:
        entry = make_copy(make_master(), "F1")
        entry.follower_qty = 0

        with pytest.raises(ValidationError):
            ledger.append(entry)
        assert ledger.get(entry.id) is None


# =============================================================================
# Status Updates
# =============================================================================

class TestUpdateStatus:

    @pytest.mark.parametrize(
        "target",
        [CopyTradeStatus.SUCCESS, CopyTradeStatus.FAILED, CopyTradeStatus.CANCELLED],
    )
    def test_pending_to_terminal(self, ledger, target) -> None:
        entry = ledger.append(make_copy(make_master(), "F1"))

        updated = ledger.update_status(entry.id, target, reason="broker said so")

        assert updated.status == target
        assert updated.reason == "broker said so"
        assert ledger.get(entry.id).status == target

    def test_accepts_status_string(self, ledger) -> None:
        entry = ledger.append(make_copy(make_master(), "F1"))

        assert ledger.update_status(entry.id, "success").status == CopyTradeStatus.SUCCESS

    def test_unknown_id_raises_not_found(self, ledger) -> None:
        with pytest.raises(NotFound) as exc_info:
            ledger.update_status("trade_missing", CopyTradeStatus.SUCCESS)
        assert exc_info.value.error_code == ReplicationErrorCode.NOT_FOUND

    def test_repeat_terminal_status_is_noop(self, ledger) -> None:
        entry = ledger.append(make_copy(make_master(), "F1"))
        first = ledger.update_status(entry.id, CopyTradeStatus.SUCCESS)

        again = ledger.update_status(entry.id, CopyTradeStatus.SUCCESS, reason="retry")

        assert again.status == CopyTradeStatus.SUCCESS
        assert again.updated_at == first.updated_at
        assert again.reason is None

    def test_success_then_failed_is_rejected(self, ledger) -> None:
        entry = ledger.append(make_copy(make_master(), "F1"))
        ledger.update_status(entry.id, "SUCCESS")

        with pytest.raises(InvalidTransition) as exc_info:
            ledger.update_status(entry.id, "FAILED")

        assert exc_info.value.error_code == ReplicationErrorCode.INVALID_TRANSITION
        assert ledger.get(entry.id).status == CopyTradeStatus.SUCCESS

    def test_terminal_back_to_pending_is_rejected(self, ledger) -> None:
        entry = ledger.append(make_copy(make_master(), "F1"))
        ledger.update_status(entry.id, CopyTradeStatus.CANCELLED)

        with pytest.raises(InvalidTransition):
            ledger.update_status(entry.id, CopyTradeStatus.PENDING)

    def test_pending_to_pending_is_noop(self, ledger) -> None:
        entry = ledger.append(make_copy(make_master(), "F1"))

        assert ledger.update_status(entry.id, "PENDING").status == CopyTradeStatus.PENDING

    def test_unknown_status_raises_validation_error(self, ledger) -> None:
        entry = ledger.append(make_copy(make_master(), "F1"))

        with pytest.raises(ValidationError):
            ledger.update_status(entry.id, "FILLED")

    def test_concurrent_terminal_updates_serialise(self, ledger) -> None:
        entry = ledger.append(make_copy(make_master(), "F1"))
        targets = [CopyTradeStatus.SUCCESS, CopyTradeStatus.FAILED] * 8
        outcomes = []
        barrier = threading.Barrier(len(targets))

        def callback(target: CopyTradeStatus) -> None:
            barrier.wait()
            try:
                ledger.update_status(entry.id, target)
                outcomes.append(("ok", target))
            except InvalidTransition:
                outcomes.append(("rejected", target))

        threads = [threading.Thread(target=callback, args=(t,)) for t in targets]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        final = ledger.get(entry.id).status
        winners = {target for outcome, target in outcomes if outcome == "ok"}
        assert winners == {final}
        assert all(target != final for outcome, target in outcomes if outcome == "rejected")


# =============================================================================
# Listings
# =============================================================================

class TestListings:

    def test_list_by_follower_newest_first(self, ledger) -> None:
        for n in range(3):
            ledger.append(
                make_copy(make_master(f"T-{n}"), "F1", created=BASE_TIME + timedelta(minutes=n))
            )
        ledger.append(make_copy(make_master("T-9"), "F2"))

        trades = ledger.list_by_follower("F1")

        assert [t.master_id for t in trades] == ["T-2", "T-1", "T-0"]

    def test_list_by_follower_limit(self, ledger) -> None:
        for n in range(5):
            ledger.append(
                make_copy(make_master(f"T-{n}"), "F1", created=BASE_TIME + timedelta(minutes=n))
            )

        assert [t.master_id for t in ledger.list_by_follower("F1", limit=2)] == ["T-4", "T-3"]

    def test_list_by_master_oldest_first(self, ledger) -> None:
        master = make_master()
        ledger.append(make_copy(master, "F2", created=BASE_TIME + timedelta(seconds=5)))
        ledger.append(make_copy(master, "F1", created=BASE_TIME))

        assert [t.follower_id for t in ledger.list_by_master(master.id)] == ["F1", "F2"]

    def test_list_pending_excludes_terminal_rows(self, ledger) -> None:
        a = ledger.append(make_copy(make_master("T-1"), "F1"))
        b = ledger.append(make_copy(make_master("T-2"), "F1"))
        ledger.update_status(a.id, CopyTradeStatus.SUCCESS)

        assert [t.id for t in ledger.list_pending()] == [b.id]

    def test_count_by_status(self, ledger) -> None:
        a = ledger.append(make_copy(make_master("T-1"), "F1"))
        ledger.append(make_copy(make_master("T-2"), "F1"))
        ledger.update_status(a.id, CopyTradeStatus.FAILED, reason="rejected")

        counts = ledger.count_by_status()

        assert counts == {"PENDING": 1, "SUCCESS": 0, "FAILED": 1, "CANCELLED": 0}

    def test_find_fan_out_without_account_scans(self, ledger) -> None:
        entry = ledger.append(make_copy(make_master(), "F1"))

        assert ledger.find_fan_out("T-1", "F1").id == entry.id
        assert ledger.find_fan_out("T-1", "F9") is None
