"""
============================================================================
Replication Pipeline - Error Taxonomy
============================================================================

Traceability: Every error carries a stable error code for audit logging

PROPAGATION POLICY:
    - UpstreamUnavailable: per-account, caught at the poll-cycle boundary,
      logged, never aborts sibling accounts
    - DuplicateEntry / InvalidTransition: ledger contract violations,
      surfaced to the caller, never retried automatically
    - NotFound: status update on an unknown copy trade id
    - ValidationError: missing or malformed fields on trade/follower input

ERROR CODES:
    - REP-001: Upstream trade source unavailable
    - REP-002: Duplicate ledger entry (id or fan-out pair)
    - REP-003: Copy trade not found
    - REP-004: Invalid status transition
    - REP-005: Input validation failure
    - REP-006: Required configuration missing or invalid

============================================================================
"""

from typing import Optional


class ReplicationErrorCode:
    """Replication-specific error codes for audit logging."""
    UPSTREAM_UNAVAILABLE = "REP-001"
    DUPLICATE_ENTRY = "REP-002"
    NOT_FOUND = "REP-003"
    INVALID_TRANSITION = "REP-004"
    VALIDATION_ERROR = "REP-005"
    CONFIG_MISSING = "REP-006"


class ReplicationError(Exception):
    """
    Base exception for the replication pipeline.

    The rendered message is prefixed with the error code so that log lines
    and API responses carry it without extra formatting at the call site.
    """

    default_code = "REP-000"

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.error_code = error_code or self.default_code
        self.message = message
        super().__init__(f"[{self.error_code}] {message}")


class UpstreamUnavailable(ReplicationError):
    """Raised when the upstream trade source cannot be read for one account."""

    default_code = ReplicationErrorCode.UPSTREAM_UNAVAILABLE

    def __init__(self, account_id: str, message: str):
        self.account_id = account_id
        super().__init__(f"{message} | account_id={account_id}")


class DuplicateEntry(ReplicationError):
    """Raised when a ledger append would overwrite an existing row."""

    default_code = ReplicationErrorCode.DUPLICATE_ENTRY


class DuplicateFanOut(DuplicateEntry):
    """Raised when a (master trade, follower) pair already has a ledger row."""

    def __init__(self, message: str, existing_trade_id: Optional[str] = None):
        self.existing_trade_id = existing_trade_id
        super().__init__(message)


class NotFound(ReplicationError):
    """Raised when a status update targets an unknown copy trade id."""

    default_code = ReplicationErrorCode.NOT_FOUND


class InvalidTransition(ReplicationError):
    """Raised when a status update would leave a terminal status."""

    default_code = ReplicationErrorCode.INVALID_TRANSITION


class ValidationError(ReplicationError):
    """Raised on missing or malformed trade/follower input."""

    default_code = ReplicationErrorCode.VALIDATION_ERROR


class ConfigurationError(ReplicationError):
    """Raised during startup when required configuration is invalid."""

    default_code = ReplicationErrorCode.CONFIG_MISSING
