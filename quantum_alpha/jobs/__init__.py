"""
Quantum Alpha Copy Trader - Jobs Module

Background jobs for the replication pipeline:
- trade_poller: periodic upstream polling, deduplication and fan-out
"""

from quantum_alpha.jobs.trade_poller import (
    TradePoller,
    PollingWorker,
    PollCycleReport,
    AccountPollResult,
)

__all__ = [
    "TradePoller",
    "PollingWorker",
    "PollCycleReport",
    "AccountPollResult",
]
