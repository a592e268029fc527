"""
============================================================================
Quantum Alpha Copy Trader
Database Session - SQLAlchemy Engine Construction
============================================================================

Reliability Level: Mission-Critical
Side Effects: Database connections

The engine is built explicitly by the entry point and handed to the keyed
store; nothing in this module connects at import time.

============================================================================
"""

import os
from typing import Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool, StaticPool


# Default local database when nothing is configured
DEFAULT_SQLITE_URL = "sqlite:///quantum_alpha.db"

# SQLite lock wait (milliseconds) for concurrent writers
SQLITE_BUSY_TIMEOUT_MS = 5000


# ============================================================================
# DATABASE CONFIGURATION
# ============================================================================

def get_database_url() -> str:
    """
    Resolve the database URL from environment variables.

    Environment Variables:
        DATABASE_URL: Full SQLAlchemy URL (takes precedence)
        DB_HOST, DB_PORT, DB_NAME, DB_USER, DB_PASSWORD: MySQL parts, used
            when DB_HOST is set

    Returns:
        str: SQLAlchemy connection URL (local SQLite file when unset)
    """
    url = os.getenv("DATABASE_URL", "").strip()
    if url:
        return url

    host = os.getenv("DB_HOST", "").strip()
    if not host:
        return DEFAULT_SQLITE_URL

    port = os.getenv("DB_PORT", "3306")
    name = os.getenv("DB_NAME", "quantumalphaindiadb")
    user = os.getenv("DB_USER", "quantumalphaindiadb")
    password = os.getenv("DB_PASSWORD", "")

    return f"mysql+pymysql://{user}:{password}@{host}:{port}/{name}"


# ============================================================================
# SQLALCHEMY ENGINE
# ============================================================================

def create_database_engine(url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Build an engine suited to the target database.

    In-memory SQLite gets a StaticPool with cross-thread access so every
    poller thread sees the same database; file SQLite gets a busy timeout;
    server databases get a pre-pinged QueuePool.
    """
    url = url or get_database_url()

    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        engine = create_engine(url, echo=echo, **options)
        event.listen(engine, "connect", _set_sqlite_busy_timeout)
        return engine

    return create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
    )


def _set_sqlite_busy_timeout(dbapi_connection, connection_record):
    """Wait for competing SQLite writers instead of failing immediately."""
    cursor = dbapi_connection.cursor()
    cursor.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS}")
    cursor.close()


# ============================================================================
# HEALTH CHECK
# ============================================================================

def check_database_connection(engine: Engine) -> bool:
    """
    Verify database connectivity.

    Raises:
        Exception: If database connection fails
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        raise Exception(f"Database connection failed: {e}")
