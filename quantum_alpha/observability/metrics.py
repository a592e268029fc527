"""
============================================================================
Quantum Alpha Copy Trader
Prometheus Metrics - Replication Pipeline Observability
============================================================================

Side Effects: Updates Prometheus metrics registry

METRICS EXPOSED
---------------
- copytrade_poll_cycles_total: Completed poll cycles
- copytrade_account_polls_total: Account polls by outcome
- copytrade_master_trades_ingested_total: Newly-seen master trades
- copytrade_raw_trades_rejected_total: Upstream records failing validation
- copytrade_copy_trades_created_total: Ledger rows created
- copytrade_followers_skipped_total: Followers skipped during fan-out
- copytrade_status_updates_total: Status callbacks by status and outcome
- copytrade_copy_trades_by_status: Current ledger rows per status

Recording is best-effort: a metrics failure is logged and never propagates
into the replication path.

============================================================================
"""

import logging
from typing import Dict, Optional

from prometheus_client import Counter, Gauge, start_http_server

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# PROMETHEUS METRICS DEFINITIONS
# ============================================================================

POLL_CYCLES = Counter(
    "copytrade_poll_cycles_total",
    "Total number of completed upstream poll cycles",
)

ACCOUNT_POLLS = Counter(
    "copytrade_account_polls_total",
    "Account polls by outcome",
    ["outcome"],
)

MASTER_TRADES_INGESTED = Counter(
    "copytrade_master_trades_ingested_total",
    "Newly-seen master trades recorded by the deduplicator",
    ["account"],
)

RAW_TRADES_REJECTED = Counter(
    "copytrade_raw_trades_rejected_total",
    "Upstream trade records rejected by validation",
    ["account"],
)

COPY_TRADES_CREATED = Counter(
    "copytrade_copy_trades_created_total",
    "Copy trade ledger rows created",
    ["symbol", "side"],
)

FOLLOWERS_SKIPPED = Counter(
    "copytrade_followers_skipped_total",
    "Followers skipped during fan-out",
    ["reason"],
)

STATUS_UPDATES = Counter(
    "copytrade_status_updates_total",
    "Copy trade status updates by target status and outcome",
    ["status", "outcome"],
)

COPY_TRADES_BY_STATUS = Gauge(
    "copytrade_copy_trades_by_status",
    "Current count of copy trades by status",
    ["status"],
)


# ============================================================================
# METRIC UPDATE FUNCTIONS
# ============================================================================

def record_poll_cycle(accounts_attempted: int, accounts_succeeded: int) -> None:
    """Record one completed poll cycle and its per-account outcomes."""
    try:
        POLL_CYCLES.inc()
        ACCOUNT_POLLS.labels(outcome="succeeded").inc(accounts_succeeded)
        ACCOUNT_POLLS.labels(outcome="failed").inc(
            max(0, accounts_attempted - accounts_succeeded)
        )
    except Exception as e:
        logger.error(f"[OBS-001] Failed to record poll cycle metric | error={e}")


def record_master_trades_ingested(account: str, count: int) -> None:
    try:
        if count > 0:
            MASTER_TRADES_INGESTED.labels(account=account).inc(count)
    except Exception as e:
        logger.error(f"[OBS-002] Failed to record ingest metric | error={e}")


def record_raw_trade_rejected(account: str) -> None:
    try:
        RAW_TRADES_REJECTED.labels(account=account).inc()
    except Exception as e:
        logger.error(f"[OBS-003] Failed to record rejection metric | error={e}")


def record_copy_trade_created(
    symbol: str,
    side: str,
    correlation_id: Optional[str] = None,
) -> None:
    """
    Record a ledger row created by the orchestrator.

    Args:
        symbol: Instrument symbol (e.g., "RELIANCE")
        side: "BUY" or "SELL"
        correlation_id: Optional tracking ID
    """
    try:
        COPY_TRADES_CREATED.labels(symbol=symbol, side=side).inc()
        logger.debug(
            "Metric: copy_trade_created | symbol=%s | side=%s | correlation_id=%s",
            symbol, side, correlation_id
        )
    except Exception as e:
        logger.error(f"[OBS-004] Failed to record copy_trade_created metric | error={e}")


def record_follower_skipped(reason: str) -> None:
    try:
        FOLLOWERS_SKIPPED.labels(reason=reason).inc()
    except Exception as e:
        logger.error(f"[OBS-005] Failed to record follower_skipped metric | error={e}")


def record_status_update(status: str, outcome: str) -> None:
    """
    Record a status callback.

    Args:
        status: Target status requested by the caller
        outcome: "applied", "noop", "not_found" or "invalid_transition"
    """
    try:
        STATUS_UPDATES.labels(status=status, outcome=outcome).inc()
    except Exception as e:
        logger.error(f"[OBS-006] Failed to record status_update metric | error={e}")


def update_copy_trades_by_status(counts: Dict[str, int]) -> None:
    try:
        for status, count in counts.items():
            COPY_TRADES_BY_STATUS.labels(status=status).set(count)
    except Exception as e:
        logger.error(f"[OBS-007] Failed to update copy_trades_by_status gauge | error={e}")


def start_metrics_server(port: int) -> None:
    """Expose the default registry over HTTP on the given port."""
    start_http_server(port)
    logger.info(f"[OBSERVABILITY] Metrics server started | port={port}")
