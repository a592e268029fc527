"""
============================================================================
Trade Poller - Upstream polling loop for the replication pipeline
============================================================================

Reliability Level: Mission-Critical (Hot Path)
Traceability: Every cycle carries a cycle_id in all log lines

POLL CYCLE:
    1. Collect accounts holding a token, master accounts first
    2. Poll accounts concurrently on a bounded thread pool:
       fetch trade book → deduplicate → (master only) fan out new trades
    3. Isolate failures per account; one account never aborts the cycle
    4. Return a PollCycleReport and record cycle metrics

FAILURE ISOLATION:
    - UpstreamUnavailable: logged as a warning, account retried next cycle
    - Any other exception: logged with traceback, isolated the same way

PollingWorker runs cycles on an asyncio loop at a fixed interval. Stopping
the worker waits for the in-flight cycle to finish; it is never cancelled
part way through a fan-out.

============================================================================
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, List
import asyncio
import logging
import time
import uuid

from quantum_alpha.data_ingestion.adapters.base_trade_source import BaseTradeSource
from quantum_alpha.observability import metrics
from quantum_alpha.services.credential_store import CredentialStore
from quantum_alpha.services.follower_directory import FollowerDirectory
from quantum_alpha.services.replication_errors import (
    ReplicationErrorCode,
    UpstreamUnavailable,
)
from quantum_alpha.services.replication_models import utc_now
from quantum_alpha.services.replication_orchestrator import ReplicationOrchestrator
from quantum_alpha.services.trade_feed_deduplicator import TradeFeedDeduplicator

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_MAX_WORKERS = 4
DEFAULT_INTERVAL_SECONDS = 10.0


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class AccountPollResult:
    """Outcome of polling one account within a cycle."""
    account_id: str
    is_master: bool
    new_trades: int = 0
    copy_trades_created: int = 0


@dataclass
class PollCycleReport:
    """
    Summary of one poll cycle.

    Reliability Level: Mission-Critical
    """
    cycle_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    duration_seconds: float = 0.0
    accounts_attempted: int = 0
    accounts_succeeded: int = 0
    failed_accounts: List[str] = field(default_factory=list)
    new_trades: int = 0
    new_trades_by_account: Dict[str, int] = field(default_factory=dict)
    copy_trades_created: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "cycle_id": self.cycle_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": round(self.duration_seconds, 3),
            "accounts_attempted": self.accounts_attempted,
            "accounts_succeeded": self.accounts_succeeded,
            "failed_accounts": list(self.failed_accounts),
            "new_trades": self.new_trades,
            "new_trades_by_account": dict(self.new_trades_by_account),
            "copy_trades_created": self.copy_trades_created,
        }


# =============================================================================
# Trade Poller Class
# =============================================================================

class TradePoller:
    """
    Runs poll cycles over every account with a stored token.

    Thread Safety: run_cycle may be called from any thread; accounts within
    a cycle are polled in parallel, each serialised by the deduplicator.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        source: BaseTradeSource,
        deduplicator: TradeFeedDeduplicator,
        orchestrator: ReplicationOrchestrator,
        directory: FollowerDirectory,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        if max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got: {max_workers}")

        self._credentials = credentials
        self._source = source
        self._deduplicator = deduplicator
        self._orchestrator = orchestrator
        self._directory = directory
        self._max_workers = max_workers

    def accounts_to_poll(self) -> List[str]:
        """Accounts with a token; master accounts first, each group sorted."""
        with_token = self._credentials.list_accounts()
        masters = self._credentials.master_accounts()
        return sorted(with_token, key=lambda account: (account not in masters, account))

    def run_cycle(self) -> PollCycleReport:
        """
        Poll every account once.

        Returns:
            PollCycleReport for the cycle. Per-account failures are listed in
            failed_accounts; they are never raised.
        """
        report = PollCycleReport(cycle_id=str(uuid.uuid4()), started_at=utc_now())
        started = time.monotonic()

        accounts = self.accounts_to_poll()
        report.accounts_attempted = len(accounts)

        logger.info(
            f"[TRADE-POLLER] Poll cycle started | "
            f"accounts={len(accounts)} | "
            f"cycle_id={report.cycle_id}"
        )

        if accounts:
            workers = min(self._max_workers, len(accounts))
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="trade-poller"
            ) as pool:
                futures = {
                    pool.submit(self._poll_account, account_id, report.cycle_id): account_id
                    for account_id in accounts
                }
                for future in as_completed(futures):
                    account_id = futures[future]
                    try:
                        result = future.result()
                    except UpstreamUnavailable as e:
                        report.failed_accounts.append(account_id)
                        logger.warning(
                            f"[{ReplicationErrorCode.UPSTREAM_UNAVAILABLE}] Account poll failed, "
                            f"will retry next cycle | "
                            f"account={account_id} | "
                            f"error={e.message} | "
                            f"cycle_id={report.cycle_id}"
                        )
                        continue
                    except Exception:
                        report.failed_accounts.append(account_id)
                        logger.exception(
                            f"[TRADE-POLLER] Unexpected error polling account | "
                            f"account={account_id} | "
                            f"cycle_id={report.cycle_id}"
                        )
                        continue

                    report.accounts_succeeded += 1
                    report.new_trades += result.new_trades
                    report.copy_trades_created += result.copy_trades_created
                    if result.new_trades:
                        report.new_trades_by_account[account_id] = result.new_trades

        report.failed_accounts.sort()
        report.finished_at = utc_now()
        report.duration_seconds = time.monotonic() - started
        metrics.record_poll_cycle(report.accounts_attempted, report.accounts_succeeded)

        logger.info(
            f"[TRADE-POLLER] Poll cycle complete | "
            f"attempted={report.accounts_attempted} | "
            f"succeeded={report.accounts_succeeded} | "
            f"failed={report.failed_accounts} | "
            f"new_trades={report.new_trades} | "
            f"copy_trades_created={report.copy_trades_created} | "
            f"duration={report.duration_seconds:.3f}s | "
            f"cycle_id={report.cycle_id}"
        )
        return report

    def _poll_account(self, account_id: str, cycle_id: str) -> AccountPollResult:
        token = self._credentials.get_token(account_id)
        if not token:
            raise UpstreamUnavailable(account_id, "No access token stored")

        is_master = self._credentials.is_master(account_id)
        result = AccountPollResult(account_id=account_id, is_master=is_master)

        raw_trades = self._source.fetch_trades(account_id, token)
        new_trades = self._deduplicator.ingest(account_id, raw_trades)
        result.new_trades = len(new_trades)

        if is_master and new_trades:
            followers = self._directory.list_followers()
            for trade in new_trades:
                created = self._orchestrator.replicate(trade, followers)
                result.copy_trades_created += len(created)

        logger.debug(
            f"[TRADE-POLLER] Account polled | "
            f"account={account_id} | "
            f"master={is_master} | "
            f"records={len(raw_trades)} | "
            f"new_trades={result.new_trades} | "
            f"copy_trades_created={result.copy_trades_created} | "
            f"cycle_id={cycle_id}"
        )
        return result


# =============================================================================
# Polling Worker Class
# =============================================================================

class PollingWorker:
    """
    Asyncio background loop running TradePoller.run_cycle at an interval.

    Cycles run in the default executor so the event loop stays responsive.
    """

    def __init__(
        self,
        poller: TradePoller,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(
                f"interval_seconds must be positive, got: {interval_seconds}"
            )

        self._poller = poller
        self._interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None
        self._last_report: Optional[PollCycleReport] = None
        self._cycles_completed = 0

        logger.info(
            f"[POLLING-WORKER] Initialized | "
            f"interval_seconds={interval_seconds}"
        )

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_report(self) -> Optional[PollCycleReport]:
        return self._last_report

    @property
    def cycles_completed(self) -> int:
        return self._cycles_completed

    async def start(self) -> None:
        if self._running:
            logger.warning("[POLLING-WORKER] Already running, ignoring start request")
            return

        self._running = True
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop())

        logger.info(
            f"[POLLING-WORKER] Started | "
            f"interval_seconds={self._interval_seconds}"
        )

    async def stop(self) -> None:
        """Stop after the in-flight cycle, if any, has finished."""
        if not self._running:
            logger.warning("[POLLING-WORKER] Not running, ignoring stop request")
            return

        self._running = False
        if self._wake is not None:
            self._wake.set()

        if self._task is not None:
            await self._task
            self._task = None

        logger.info("[POLLING-WORKER] Stopped")

    async def _run_loop(self) -> None:
        logger.info("[POLLING-WORKER] Starting main loop")
        loop = asyncio.get_running_loop()

        while self._running:
            try:
                self._last_report = await loop.run_in_executor(
                    None, self._poller.run_cycle
                )
                self._cycles_completed += 1
            except Exception:
                logger.exception("[POLLING-WORKER] Error in main loop")

            if not self._running:
                break
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._interval_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("[POLLING-WORKER] Main loop exited")
