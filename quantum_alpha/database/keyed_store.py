"""
============================================================================
Quantum Alpha Copy Trader
Keyed Store - Versioned key/value persistence boundary
============================================================================

Reliability Level: Mission-Critical (ledger and dedup state live here)
Side Effects: Database writes (SqlKeyedStore), in-process memory (InMemoryKeyedStore)

STORE CONTRACT:
    Records live in a namespace under a string key. Every record carries a
    version that starts at 1 and increments on each successful write.

    get(ns, key)                          → StoredRecord | None
    put_if_absent(ns, key, value)         → True if inserted, False if present
    compare_and_swap(ns, key, v, value)   → True if stored version was v
    put(ns, key, value)                   → unconditional upsert (CAS loop)
    delete(ns, key)                       → True if a record was removed
    list(ns)                              → records ordered by key

    The ledger, the per-account known-id sets and the consent gate are all
    built on these operations, so the same service logic runs unchanged on
    an in-memory map in tests or on a relational table in production.

============================================================================
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import json
import logging
import threading

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.dialects import mysql
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Schema
# =============================================================================

metadata = MetaData()

keyed_records = Table(
    "keyed_records",
    metadata,
    Column("namespace", String(64), primary_key=True),
    Column("record_key", String(255), primary_key=True),
    # MySQL TEXT stops at 64 KB
    Column("payload", Text().with_variant(mysql.LONGTEXT(), "mysql"), nullable=False),
    Column("version", Integer, nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class StoredRecord:
    """A value as read from the store, with the version it was read at."""
    namespace: str
    key: str
    value: Dict[str, Any]
    version: int


def _encode(value: Dict[str, Any]) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _decode(payload: str) -> Dict[str, Any]:
    return json.loads(payload)


# =============================================================================
# Abstract Store
# =============================================================================

class KeyedStore(ABC):
    """
    Abstract keyed mapping with atomic conditional writes.

    Implementations must make put_if_absent and compare_and_swap atomic
    with respect to every other caller of the same store.
    """

    @abstractmethod
    def get(self, namespace: str, key: str) -> Optional[StoredRecord]:
        """Read one record, or None when absent."""

    @abstractmethod
    def put_if_absent(self, namespace: str, key: str, value: Dict[str, Any]) -> bool:
        """Insert at version 1 unless the key exists."""

    @abstractmethod
    def compare_and_swap(
        self,
        namespace: str,
        key: str,
        expected_version: int,
        value: Dict[str, Any],
    ) -> bool:
        """Replace the value only if the stored version equals expected_version."""

    @abstractmethod
    def delete(self, namespace: str, key: str) -> bool:
        """Remove a record."""

    @abstractmethod
    def list(self, namespace: str) -> List[StoredRecord]:
        """All records in a namespace, ordered by key."""

    def put(self, namespace: str, key: str, value: Dict[str, Any]) -> None:
        """
        Unconditional upsert built on the conditional primitives.

        Retries until either the insert or the swap lands, so a concurrent
        writer can delay but never lose this write.
        """
        while True:
            current = self.get(namespace, key)
            if current is None:
                if self.put_if_absent(namespace, key, value):
                    return
            elif self.compare_and_swap(namespace, key, current.version, value):
                return
            logger.debug(
                f"[KEYED-STORE] put retry after concurrent write | "
                f"namespace={namespace} | key={key}"
            )


# =============================================================================
# In-Memory Store
# =============================================================================

class InMemoryKeyedStore(KeyedStore):
    """
    Process-local store guarded by a single mutex.

    Values are JSON round-tripped on write so callers never share mutable
    state with the store, matching the SQL implementation.
    """

    def __init__(self) -> None:
        self._records: Dict[Tuple[str, str], Tuple[str, int]] = {}
        self._lock = threading.Lock()

    def get(self, namespace: str, key: str) -> Optional[StoredRecord]:
        with self._lock:
            entry = self._records.get((namespace, key))
        if entry is None:
            return None
        payload, version = entry
        return StoredRecord(namespace, key, _decode(payload), version)

    def put_if_absent(self, namespace: str, key: str, value: Dict[str, Any]) -> bool:
        payload = _encode(value)
        with self._lock:
            if (namespace, key) in self._records:
                return False
            self._records[(namespace, key)] = (payload, 1)
            return True

    def compare_and_swap(
        self,
        namespace: str,
        key: str,
        expected_version: int,
        value: Dict[str, Any],
    ) -> bool:
        payload = _encode(value)
        with self._lock:
            entry = self._records.get((namespace, key))
            if entry is None or entry[1] != expected_version:
                return False
            self._records[(namespace, key)] = (payload, expected_version + 1)
            return True

    def delete(self, namespace: str, key: str) -> bool:
        with self._lock:
            return self._records.pop((namespace, key), None) is not None

    def list(self, namespace: str) -> List[StoredRecord]:
        with self._lock:
            items = [
                (key, payload, version)
                for (ns, key), (payload, version) in self._records.items()
                if ns == namespace
            ]
        return [
            StoredRecord(namespace, key, _decode(payload), version)
            for key, payload, version in sorted(items)
        ]


# =============================================================================
# SQLAlchemy Store
# =============================================================================

class SqlKeyedStore(KeyedStore):
    """
    Relational store on a single keyed_records table.

    put_if_absent relies on the (namespace, record_key) primary key and
    compare_and_swap is a version-guarded UPDATE, so both stay atomic across
    processes sharing the database.
    """

    def __init__(self, engine: Engine, create_schema: bool = True) -> None:
        self._engine = engine
        if create_schema:
            metadata.create_all(engine)
        logger.info(
            f"[KEYED-STORE] SQL store initialised | "
            f"dialect={engine.dialect.name}"
        )

    def get(self, namespace: str, key: str) -> Optional[StoredRecord]:
        query = select(keyed_records.c.payload, keyed_records.c.version).where(
            keyed_records.c.namespace == namespace,
            keyed_records.c.record_key == key,
        )
        with self._engine.connect() as conn:
            row = conn.execute(query).first()
        if row is None:
            return None
        return StoredRecord(namespace, key, _decode(row[0]), int(row[1]))

    def put_if_absent(self, namespace: str, key: str, value: Dict[str, Any]) -> bool:
        statement = insert(keyed_records).values(
            namespace=namespace,
            record_key=key,
            payload=_encode(value),
            version=1,
            updated_at=datetime.now(timezone.utc),
        )
        try:
            with self._engine.begin() as conn:
                conn.execute(statement)
        except IntegrityError:
            return False
        return True

    def compare_and_swap(
        self,
        namespace: str,
        key: str,
        expected_version: int,
        value: Dict[str, Any],
    ) -> bool:
        statement = (
            update(keyed_records)
            .where(
                keyed_records.c.namespace == namespace,
                keyed_records.c.record_key == key,
                keyed_records.c.version == expected_version,
            )
            .values(
                payload=_encode(value),
                version=expected_version + 1,
                updated_at=datetime.now(timezone.utc),
            )
        )
        with self._engine.begin() as conn:
            result = conn.execute(statement)
        return result.rowcount == 1

    def delete(self, namespace: str, key: str) -> bool:
        statement = delete(keyed_records).where(
            keyed_records.c.namespace == namespace,
            keyed_records.c.record_key == key,
        )
        with self._engine.begin() as conn:
            result = conn.execute(statement)
        return result.rowcount == 1

    def list(self, namespace: str) -> List[StoredRecord]:
        query = (
            select(
                keyed_records.c.record_key,
                keyed_records.c.payload,
                keyed_records.c.version,
            )
            .where(keyed_records.c.namespace == namespace)
            .order_by(keyed_records.c.record_key)
        )
        with self._engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [
            StoredRecord(namespace, str(row[0]), _decode(row[1]), int(row[2]))
            for row in rows
        ]
