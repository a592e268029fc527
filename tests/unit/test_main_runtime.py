"""
Unit Tests for Runtime Wiring and the Service Loop

Tests:
- build_runtime with injected store and source
- Configured master accounts registered at startup
- SQL store built from a database URL
- recent_copy_trades limit handling
- run_until_stopped stops the worker when signalled
- main() aborts on invalid configuration
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from quantum_alpha import main as main_module
from quantum_alpha.config import CopyTradingConfig
from quantum_alpha.data_ingestion.adapters import AliceBlueTradeSource, StaticTradeSource
from quantum_alpha.database import InMemoryKeyedStore, SqlKeyedStore
from quantum_alpha.main import build_runtime, run_until_stopped
from quantum_alpha.services.replication_models import Follower


def raw_fill(trade_id: str, minute: int):
    return {
        "id": trade_id,
        "symbol": "INFY",
        "side": "SELL",
        "qty": 10,
        "price": 1500,
        "timestamp": f"2024-03-01T09:{minute:02d}:00Z",
    }


class TestBuildRuntime:

    def test_injected_dependencies_used(self) -> None:
        store = InMemoryKeyedStore()
        source = StaticTradeSource()

        runtime = build_runtime(CopyTradingConfig(), store=store, source=source)

        assert runtime.store is store
        assert runtime.source is source

    def test_master_accounts_registered(self) -> None:
        config = CopyTradingConfig(master_accounts={"M1", "M2"})

        runtime = build_runtime(config, store=InMemoryKeyedStore(), source=StaticTradeSource())

        assert runtime.credentials.master_accounts() == {"M1", "M2"}

    def test_sql_store_and_broker_source_by_default(self, tmp_path) -> None:
        config = CopyTradingConfig(database_url=f"sqlite:///{tmp_path / 'copy.db'}")

        runtime = build_runtime(config)

        assert isinstance(runtime.store, SqlKeyedStore)
        assert isinstance(runtime.source, AliceBlueTradeSource)
        runtime.source.close()

    def test_runtime_runs_a_cycle(self) -> None:
        source = StaticTradeSource({"M1": [raw_fill("TB-1", 15)]})
        runtime = build_runtime(
            CopyTradingConfig(master_accounts={"M1"}),
            store=InMemoryKeyedStore(),
            source=source,
        )
        runtime.credentials.set_token("M1", "tok")
        runtime.directory.register(Follower(id="F1", scaling_factor=Decimal("2")))

        report = runtime.poller.run_cycle()

        assert report.copy_trades_created == 1
        [row] = runtime.recent_copy_trades("F1")
        assert row.follower_qty == 20


class TestRecentCopyTrades:

    @pytest.fixture
    def runtime(self):
        source = StaticTradeSource({"M1": [raw_fill(f"TB-{i}", i) for i in range(5)]})
        runtime = build_runtime(
            CopyTradingConfig(master_accounts={"M1"}, trades_list_limit=3),
            store=InMemoryKeyedStore(),
            source=source,
        )
        runtime.credentials.set_token("M1", "tok")
        runtime.directory.register(Follower(id="F1"))
        runtime.poller.run_cycle()
        return runtime

    def test_default_limit_from_config(self, runtime) -> None:
        rows = runtime.recent_copy_trades("F1")

        assert len(rows) == 3
        stamps = [r.timestamp for r in rows]
        assert stamps == sorted(stamps, reverse=True)

    def test_explicit_limit(self, runtime) -> None:
        assert len(runtime.recent_copy_trades("F1", limit=5)) == 5
        assert runtime.recent_copy_trades("F9") == []


class TestServiceLoop:

    @pytest.mark.asyncio
    async def test_run_until_stopped(self) -> None:
        worker = MagicMock()
        worker.start = AsyncMock()
        worker.stop = AsyncMock()
        stop_event = asyncio.Event()

        task = asyncio.create_task(run_until_stopped(worker, stop_event))
        await asyncio.sleep(0)
        stop_event.set()
        await asyncio.wait_for(task, timeout=5)

        worker.start.assert_awaited_once()
        worker.stop.assert_awaited_once()

    def test_main_aborts_on_bad_config(self, monkeypatch) -> None:
        monkeypatch.setattr(main_module, "load_dotenv", lambda: None)
        monkeypatch.setenv("COPY_POLL_INTERVAL_SECONDS", "-5")

        assert main_module.main() == 1
