#!/usr/bin/env python3
"""
============================================================================
Quantum Alpha Copy Trader
Polling Service Entry Point
============================================================================

Reliability Level: Mission-Critical
Traceability: All operations include correlation_id for audit

STARTUP:
    1. Load .env and configure logging
    2. Load and validate CopyTradingConfig (REP-006 aborts startup)
    3. Build engine → keyed store → services → poller
    4. Register configured master accounts
    5. Start the Prometheus endpoint when COPY_METRICS_PORT is set
    6. Run the PollingWorker until SIGINT/SIGTERM

SHUTDOWN:
    A signal stops the worker after the in-flight poll cycle completes;
    no fan-out is abandoned part way through.

USAGE:
    quantum-alpha-poller
    python -m quantum_alpha.main

============================================================================
"""

from dataclasses import dataclass
from typing import Optional, List
import asyncio
import logging
import signal
import sys
import uuid

from dotenv import load_dotenv
from sqlalchemy.engine import Engine

from quantum_alpha import __version__
from quantum_alpha.config import CopyTradingConfig
from quantum_alpha.data_ingestion.adapters import AliceBlueTradeSource, BaseTradeSource
from quantum_alpha.database import (
    KeyedStore,
    SqlKeyedStore,
    check_database_connection,
    create_database_engine,
)
from quantum_alpha.jobs.trade_poller import PollingWorker, TradePoller
from quantum_alpha.observability import start_metrics_server
from quantum_alpha.services import (
    ConfigurationError,
    ConsentGate,
    CopyTrade,
    CredentialStore,
    FollowerDirectory,
    ReplicationLedger,
    ReplicationOrchestrator,
    TradeFeedDeduplicator,
)

logger = logging.getLogger("COPY-POLLER")


# =============================================================================
# Runtime Wiring
# =============================================================================

@dataclass
class ReplicationRuntime:
    """Every service of the pipeline, wired to one keyed store."""
    config: CopyTradingConfig
    store: KeyedStore
    credentials: CredentialStore
    consent_gate: ConsentGate
    directory: FollowerDirectory
    ledger: ReplicationLedger
    deduplicator: TradeFeedDeduplicator
    orchestrator: ReplicationOrchestrator
    source: BaseTradeSource
    poller: TradePoller

    def recent_copy_trades(
        self,
        follower_id: str,
        limit: Optional[int] = None,
    ) -> List[CopyTrade]:
        """A follower's latest copy trades, capped at COPY_TRADES_LIST_LIMIT."""
        return self.ledger.list_by_follower(
            follower_id, limit or self.config.trades_list_limit
        )


def build_runtime(
    config: CopyTradingConfig,
    store: Optional[KeyedStore] = None,
    source: Optional[BaseTradeSource] = None,
    engine: Optional[Engine] = None,
) -> ReplicationRuntime:
    """
    Wire the pipeline.

    A store or source passed in is used as-is; otherwise an SqlKeyedStore on
    the configured database and an AliceBlueTradeSource are built.
    """
    correlation_id = str(uuid.uuid4())

    if store is None:
        engine = engine or create_database_engine(config.database_url)
        check_database_connection(engine)
        store = SqlKeyedStore(engine)

    if source is None:
        source = AliceBlueTradeSource(
            base_url=config.alice_base_url,
            timeout=config.alice_timeout_seconds,
            correlation_id=correlation_id,
        )

    credentials = CredentialStore(store)
    consent_gate = ConsentGate(store, correlation_id=correlation_id)
    directory = FollowerDirectory(store, consent_gate)
    ledger = ReplicationLedger(store, correlation_id=correlation_id)
    deduplicator = TradeFeedDeduplicator(store, correlation_id=correlation_id)
    orchestrator = ReplicationOrchestrator(ledger, consent_gate, correlation_id=correlation_id)
    poller = TradePoller(
        credentials=credentials,
        source=source,
        deduplicator=deduplicator,
        orchestrator=orchestrator,
        directory=directory,
        max_workers=config.poll_max_workers,
    )

    for account_id in sorted(config.master_accounts):
        if not credentials.is_master(account_id):
            credentials.set_master_account(account_id)

    logger.info(
        f"[COPY-POLLER] Runtime built | "
        f"store={type(store).__name__} | "
        f"source={source.source_name} | "
        f"correlation_id={correlation_id}"
    )

    return ReplicationRuntime(
        config=config,
        store=store,
        credentials=credentials,
        consent_gate=consent_gate,
        directory=directory,
        ledger=ledger,
        deduplicator=deduplicator,
        orchestrator=orchestrator,
        source=source,
        poller=poller,
    )


# =============================================================================
# Service Loop
# =============================================================================

async def run_until_stopped(
    worker: PollingWorker,
    stop_event: asyncio.Event,
) -> None:
    """Run the worker until stop_event is set, then stop it cleanly."""
    await worker.start()
    try:
        await stop_event.wait()
    finally:
        await worker.stop()


async def _serve(runtime: ReplicationRuntime) -> None:
    worker = PollingWorker(runtime.poller, runtime.config.poll_interval_seconds)
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _request_stop(signum: int) -> None:
        logger.warning(f"Received signal {signum} - initiating graceful shutdown")
        stop_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, _request_stop, signum)
        except NotImplementedError:
            signal.signal(signum, lambda s, _frame: loop.call_soon_threadsafe(_request_stop, s))

    await run_until_stopped(worker, stop_event)


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def main() -> int:
    load_dotenv()
    configure_logging()

    logger.info(f"[COPY-POLLER] Quantum Alpha copy trader v{__version__} starting")

    try:
        config = CopyTradingConfig.from_environment()
    except ConfigurationError as e:
        logger.critical(f"[COPY-POLLER] Startup aborted | error={e}")
        return 1

    runtime = build_runtime(config)

    if config.metrics_port is not None:
        start_metrics_server(config.metrics_port)

    try:
        asyncio.run(_serve(runtime))
    finally:
        runtime.source.close()

    logger.info("[COPY-POLLER] Shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
