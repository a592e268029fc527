"""
Unit Tests for the Consent Gate

Tests:
- Fail-open default for followers never configured
- stopped_at/stopped_by recorded on stop, cleared on re-activation
- Input validation (follower id and actor required)
"""

import pytest

from quantum_alpha.database import InMemoryKeyedStore
from quantum_alpha.services.consent_gate import CONSENT_NAMESPACE, ConsentGate
from quantum_alpha.services.replication_errors import ValidationError


@pytest.fixture
def store() -> InMemoryKeyedStore:
    return InMemoryKeyedStore()


@pytest.fixture
def gate(store) -> ConsentGate:
    return ConsentGate(store, correlation_id="test-consent")


class TestDefaults:

    def test_unknown_follower_is_active(self, gate) -> None:
        assert gate.is_active("F-new") is True

    def test_default_record_is_not_persisted(self, store, gate) -> None:
        record = gate.get_consent("F-new")

        assert record.copy_trading_active is True
        assert record.stopped_at is None
        assert store.get(CONSENT_NAMESPACE, "F-new") is None


class TestSetActive:

    def test_stop_records_actor_and_time(self, gate) -> None:
        record = gate.set_active("F1", False, actor="admin-7")

        assert gate.is_active("F1") is False
        stored = gate.get_consent("F1")
        assert stored.stopped_by == "admin-7"
        assert stored.stopped_at is not None
        assert stored.stopped_at == record.stopped_at

    def test_reactivation_clears_stop_fields(self, gate) -> None:
        gate.set_active("F1", False, actor="admin-7")

        gate.set_active("F1", True, actor="F1")

        stored = gate.get_consent("F1")
        assert stored.copy_trading_active is True
        assert stored.stopped_at is None
        assert stored.stopped_by is None

    def test_change_visible_to_other_gate_on_same_store(self, store, gate) -> None:
        gate.set_active("F1", False, actor="master")

        assert ConsentGate(store).is_active("F1") is False

    @pytest.mark.parametrize("follower_id", ["", "   ", None])
    def test_empty_follower_id_rejected(self, gate, follower_id) -> None:
        with pytest.raises(ValidationError):
            gate.set_active(follower_id, False, actor="admin")

    @pytest.mark.parametrize("actor", ["", "  ", None])
    def test_empty_actor_rejected(self, gate, actor) -> None:
        with pytest.raises(ValidationError):
            gate.set_active("F1", False, actor=actor)
        assert gate.is_active("F1") is True
