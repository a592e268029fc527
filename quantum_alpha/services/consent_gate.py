"""
============================================================================
Consent Gate Service
============================================================================

Reliability Level: Mission-Critical
Traceability: Every change records who stopped copying and when

A follower's copy-trading switch. The orchestrator reads the gate for
every fan-out decision (never cached), so a deactivation takes effect for
every master trade processed after set_active returns.

DEFAULT POLICY:
    A follower with no consent record is treated as active. Followers are
    registered opted-in, and the gate only records departures from that.

ERROR CODES:
    - REP-005: Empty follower id or actor

============================================================================
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any
import logging
import uuid

from quantum_alpha.database.keyed_store import KeyedStore
from quantum_alpha.services.keyed_locks import KeyedLockRegistry
from quantum_alpha.services.replication_errors import (
    ReplicationErrorCode,
    ValidationError,
)
from quantum_alpha.services.replication_models import utc_now, parse_utc_datetime

# Configure module logger
logger = logging.getLogger(__name__)

CONSENT_NAMESPACE = "follower_consents"


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class ConsentRecord:
    """
    Copy-trading consent for one follower.

    stopped_at/stopped_by are set while copying is off and cleared on
    re-activation.
    """
    follower_id: str
    copy_trading_active: bool = True
    stopped_at: Optional[datetime] = None
    stopped_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "follower_id": self.follower_id,
            "copy_trading_active": self.copy_trading_active,
            "stopped_at": self.stopped_at.isoformat() if self.stopped_at else None,
            "stopped_by": self.stopped_by,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConsentRecord":
        return cls(
            follower_id=str(data["follower_id"]),
            copy_trading_active=bool(data.get("copy_trading_active", True)),
            stopped_at=parse_utc_datetime(data["stopped_at"]) if data.get("stopped_at") else None,
            stopped_by=data.get("stopped_by"),
            updated_at=parse_utc_datetime(data["updated_at"]) if data.get("updated_at") else None,
        )


# =============================================================================
# Consent Gate Class
# =============================================================================

class ConsentGate:
    """Store-backed per-follower copy-trading switch."""

    def __init__(
        self,
        store: KeyedStore,
        correlation_id: Optional[str] = None,
    ) -> None:
        self._store = store
        self._correlation_id = correlation_id or str(uuid.uuid4())
        self._follower_locks = KeyedLockRegistry("consent-follower")

    def set_active(self, follower_id: str, active: bool, actor: str) -> ConsentRecord:
        """
        Turn copy trading on or off for a follower.

        Args:
            follower_id: Follower to update
            active: New switch position
            actor: Who made the change (user id, admin id or "system")

        Returns:
            The stored ConsentRecord

        Raises:
            ValidationError: If follower_id or actor is empty
        """
        if not follower_id or not str(follower_id).strip():
            logger.error(
                f"[{ReplicationErrorCode.VALIDATION_ERROR}] Consent change without follower id | "
                f"actor={actor} | correlation_id={self._correlation_id}"
            )
            raise ValidationError("follower_id is required")
        if not actor or not str(actor).strip():
            logger.error(
                f"[{ReplicationErrorCode.VALIDATION_ERROR}] Consent change without actor | "
                f"follower_id={follower_id} | correlation_id={self._correlation_id}"
            )
            raise ValidationError(f"actor is required | follower_id={follower_id}")

        now = utc_now()
        if active:
            record = ConsentRecord(
                follower_id=follower_id,
                copy_trading_active=True,
                updated_at=now,
            )
        else:
            record = ConsentRecord(
                follower_id=follower_id,
                copy_trading_active=False,
                stopped_at=now,
                stopped_by=actor,
                updated_at=now,
            )

        with self._follower_locks.hold(follower_id):
            self._store.put(CONSENT_NAMESPACE, follower_id, record.to_dict())

        logger.info(
            f"[CONSENT-GATE] Copy trading {'activated' if active else 'stopped'} | "
            f"follower_id={follower_id} | "
            f"actor={actor} | "
            f"correlation_id={self._correlation_id}"
        )
        return record

    def is_active(self, follower_id: str) -> bool:
        return self.get_consent(follower_id).copy_trading_active

    def get_consent(self, follower_id: str) -> ConsentRecord:
        """Current record; an active default (not persisted) when none exists."""
        stored = self._store.get(CONSENT_NAMESPACE, follower_id)
        if stored is None:
            return ConsentRecord(follower_id=follower_id)
        return ConsentRecord.from_dict(stored.value)
