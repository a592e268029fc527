"""
============================================================================
Property-Based Tests for the Copy Trade Ledger
============================================================================

Properties tested:
- The first terminal status reached is final; later differing updates fail
  and identical updates are no-ops
- At most one row per (master trade, follower) however often fan-out repeats
- Consent is fail-open: only an explicit stop blocks fan-out

============================================================================
"""

from datetime import datetime, timezone
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from quantum_alpha.database import InMemoryKeyedStore
from quantum_alpha.services.consent_gate import ConsentGate
from quantum_alpha.services.replication_errors import InvalidTransition
from quantum_alpha.services.replication_ledger import ReplicationLedger
from quantum_alpha.services.replication_models import (
    CopyTrade,
    CopyTradeStatus,
    Follower,
    MasterTrade,
    TradeSide,
)
from quantum_alpha.services.replication_orchestrator import ReplicationOrchestrator


# =============================================================================
# HYPOTHESIS STRATEGIES
# =============================================================================

status_strategy = st.sampled_from(list(CopyTradeStatus))

follower_ids_strategy = st.lists(
    st.sampled_from(["F1", "F2", "F3", "F4", "F5"]), min_size=1, max_size=10
)


def master_trade(trade_id: str = "TB-1") -> MasterTrade:
    return MasterTrade(
        id=trade_id,
        account="M1",
        symbol="RELIANCE",
        side=TradeSide.BUY,
        quantity=100,
        price=Decimal("2850.50"),
        timestamp=datetime(2024, 3, 1, 9, 15, tzinfo=timezone.utc),
    )


# =============================================================================
# PROPERTIES
# =============================================================================

class TestStatusStateMachine:

    @settings(max_examples=100)
    @given(updates=st.lists(status_strategy, min_size=1, max_size=8))
    def test_terminal_status_is_final(self, updates) -> None:
        ledger = ReplicationLedger(InMemoryKeyedStore())
        row = ledger.append(CopyTrade.create(master_trade(), "F1", 100))

        expected = CopyTradeStatus.PENDING
        for target in updates:
            allowed = target == expected or (
                not expected.is_terminal and target.is_terminal
            )
            if allowed:
                ledger.update_status(row.id, target)
                expected = target
            else:
                try:
                    ledger.update_status(row.id, target)
                except InvalidTransition:
                    pass
                else:
                    raise AssertionError(f"{expected.value} -> {target.value} accepted")

            assert ledger.get(row.id).status == expected


class TestFanOutUniqueness:

    @settings(max_examples=100)
    @given(batches=st.lists(follower_ids_strategy, min_size=1, max_size=5))
    def test_one_row_per_master_and_follower(self, batches) -> None:
        store = InMemoryKeyedStore()
        ledger = ReplicationLedger(store)
        orchestrator = ReplicationOrchestrator(ledger, ConsentGate(store))
        trade = master_trade()

        for ids in batches:
            orchestrator.replicate(trade, [Follower(id=i) for i in ids])

        rows = ledger.list_by_master(trade.id)
        distinct = {i for ids in batches for i in ids}
        assert sorted(r.follower_id for r in rows) == sorted(distinct)


class TestConsentFailOpen:

    @settings(max_examples=100)
    @given(
        followers=st.sets(st.sampled_from(["F1", "F2", "F3", "F4", "F5"]), min_size=1),
        stopped=st.sets(st.sampled_from(["F1", "F2", "F3", "F4", "F5"])),
    )
    def test_only_explicit_stop_blocks(self, followers, stopped) -> None:
        store = InMemoryKeyedStore()
        gate = ConsentGate(store)
        for follower_id in stopped:
            gate.set_active(follower_id, False, actor="admin")
        orchestrator = ReplicationOrchestrator(ReplicationLedger(store), gate)

        created = orchestrator.replicate(master_trade(), [Follower(id=i) for i in sorted(followers)])

        assert {t.follower_id for t in created} == followers - stopped
