# ============================================================================
# Quantum Alpha Copy Trader
# Observability Module - Prometheus metrics
# ============================================================================

from quantum_alpha.observability.metrics import (
    record_poll_cycle,
    record_master_trades_ingested,
    record_raw_trade_rejected,
    record_copy_trade_created,
    record_follower_skipped,
    record_status_update,
    update_copy_trades_by_status,
    start_metrics_server,
)

__all__ = [
    "record_poll_cycle",
    "record_master_trades_ingested",
    "record_raw_trade_rejected",
    "record_copy_trade_created",
    "record_follower_skipped",
    "record_status_update",
    "update_copy_trades_by_status",
    "start_metrics_server",
]
