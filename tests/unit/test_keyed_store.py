"""
Unit Tests for the Keyed Store

Every test runs against both the in-memory store and the SQLAlchemy store
on a file-backed SQLite engine, so both honour the same contract:
- put_if_absent inserts once
- compare_and_swap only succeeds at the expected version
- put upserts and bumps the version
- list is namespaced and ordered by key
"""

import threading

import pytest
from sqlalchemy.dialects import mysql
from sqlalchemy.schema import CreateTable

from quantum_alpha.database import (
    InMemoryKeyedStore,
    SqlKeyedStore,
    check_database_connection,
    create_database_engine,
)
from quantum_alpha.database.keyed_store import keyed_records


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryKeyedStore()
        return
    engine = create_database_engine(f"sqlite:///{tmp_path / 'store.db'}")
    yield SqlKeyedStore(engine)
    engine.dispose()


# =============================================================================
# Conditional Writes
# =============================================================================

class TestPutIfAbsent:

    def test_inserts_new_key_at_version_one(self, store) -> None:
        assert store.put_if_absent("ns", "k1", {"a": 1}) is True

        record = store.get("ns", "k1")
        assert record.value == {"a": 1}
        assert record.version == 1

    def test_existing_key_is_not_overwritten(self, store) -> None:
        store.put_if_absent("ns", "k1", {"a": 1})

        assert store.put_if_absent("ns", "k1", {"a": 2}) is False
        assert store.get("ns", "k1").value == {"a": 1}

    def test_same_key_in_other_namespace_is_independent(self, store) -> None:
        store.put_if_absent("ns1", "k1", {"a": 1})

        assert store.put_if_absent("ns2", "k1", {"a": 2}) is True
        assert store.get("ns2", "k1").value == {"a": 2}


class TestCompareAndSwap:

    def test_swap_at_expected_version(self, store) -> None:
        store.put_if_absent("ns", "k1", {"a": 1})

        assert store.compare_and_swap("ns", "k1", 1, {"a": 2}) is True

        record = store.get("ns", "k1")
        assert record.value == {"a": 2}
        assert record.version == 2

    def test_stale_version_is_rejected(self, store) -> None:
        store.put_if_absent("ns", "k1", {"a": 1})
        store.compare_and_swap("ns", "k1", 1, {"a": 2})

        assert store.compare_and_swap("ns", "k1", 1, {"a": 3}) is False
        assert store.get("ns", "k1").value == {"a": 2}

    def test_missing_key_is_rejected(self, store) -> None:
        assert store.compare_and_swap("ns", "absent", 1, {"a": 1}) is False
        assert store.get("ns", "absent") is None


# =============================================================================
# Unconditional Operations
# =============================================================================

class TestPutDeleteList:

    def test_put_inserts_then_updates(self, store) -> None:
        store.put("ns", "k1", {"a": 1})
        store.put("ns", "k1", {"a": 2})

        record = store.get("ns", "k1")
        assert record.value == {"a": 2}
        assert record.version == 2

    def test_delete_removes_record(self, store) -> None:
        store.put("ns", "k1", {"a": 1})

        assert store.delete("ns", "k1") is True
        assert store.get("ns", "k1") is None
        assert store.delete("ns", "k1") is False

    def test_list_is_namespaced_and_ordered(self, store) -> None:
        store.put("ns", "b", {"n": 2})
        store.put("ns", "a", {"n": 1})
        store.put("other", "c", {"n": 3})

        records = store.list("ns")
        assert [r.key for r in records] == ["a", "b"]
        assert [r.value["n"] for r in records] == [1, 2]

    def test_returned_values_are_copies(self, store) -> None:
        store.put("ns", "k1", {"items": [1]})

        store.get("ns", "k1").value["items"].append(2)
        assert store.get("ns", "k1").value == {"items": [1]}


# =============================================================================
# Concurrency
# =============================================================================

class TestConcurrentInsert:

    def test_only_one_concurrent_insert_wins(self, store) -> None:
        results = []
        barrier = threading.Barrier(8)

        def contender(n: int) -> None:
            barrier.wait()
            results.append(store.put_if_absent("ns", "contested", {"winner": n}))

        threads = [threading.Thread(target=contender, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert results.count(False) == 7


class TestEngineFactory:

    def test_in_memory_sqlite_connects(self) -> None:
        engine = create_database_engine("sqlite://")
        assert check_database_connection(engine) is True

    def test_database_url_prefers_explicit_url(self, monkeypatch) -> None:
        from quantum_alpha.database import get_database_url

        monkeypatch.setenv("DATABASE_URL", "sqlite:///explicit.db")
        monkeypatch.setenv("DB_HOST", "db.internal")
        assert get_database_url() == "sqlite:///explicit.db"

    def test_database_url_built_from_parts(self, monkeypatch) -> None:
        from quantum_alpha.database import get_database_url

        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("DB_HOST", "db.internal")
        monkeypatch.setenv("DB_PORT", "3307")
        monkeypatch.setenv("DB_NAME", "copy")
        monkeypatch.setenv("DB_USER", "svc")
        monkeypatch.setenv("DB_PASSWORD", "pw")
        assert get_database_url() == "mysql+pymysql://svc:pw@db.internal:3307/copy"

    def test_database_url_defaults_to_sqlite(self, monkeypatch) -> None:
        from quantum_alpha.database import get_database_url
        from quantum_alpha.database.session import DEFAULT_SQLITE_URL

        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("DB_HOST", raising=False)
        assert get_database_url() == DEFAULT_SQLITE_URL


class TestSchema:

    def test_payload_is_longtext_on_mysql(self) -> None:
        ddl = str(CreateTable(keyed_records).compile(dialect=mysql.dialect()))

        assert "payload LONGTEXT NOT NULL" in ddl

    def test_large_payload_round_trips(self, store) -> None:
        value = {"ids": [f"SYN-{n:032x}" for n in range(3000)]}

        store.put("ns", "big", value)

        assert store.get("ns", "big").value == value
