"""
============================================================================
Quantum Alpha Copy Trader - Configuration
============================================================================

Traceability: Configuration values are logged at load time (never tokens)

ENVIRONMENT VARIABLES:
    DATABASE_URL                SQLAlchemy URL (default: see database.session)
    COPY_POLL_INTERVAL_SECONDS  Seconds between poll cycles (default: 10)
    COPY_POLL_MAX_WORKERS       Accounts polled in parallel (default: 4)
    ALICE_BASE_URL              Alice Blue API root
                                (default: https://ant.aliceblueonline.com)
    ALICE_TIMEOUT_SECONDS       HTTP timeout per trade book request (default: 30)
    COPY_MASTER_ACCOUNTS        Comma-separated master account ids
    COPY_TRADES_LIST_LIMIT      Default page size for copy trade listings (default: 50)
    COPY_METRICS_PORT           Prometheus port; unset disables the endpoint

ERROR CODES:
    - REP-006: Configuration invalid (ConfigurationError)

============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Set
import logging
import os

from quantum_alpha.services.replication_errors import (
    ConfigurationError,
    ReplicationErrorCode,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_POLL_INTERVAL_SECONDS = 10.0
DEFAULT_POLL_MAX_WORKERS = 4
DEFAULT_ALICE_BASE_URL = "https://ant.aliceblueonline.com"
DEFAULT_ALICE_TIMEOUT_SECONDS = 30.0
DEFAULT_TRADES_LIST_LIMIT = 50


def _read_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(
            f"[COPY-CONFIG] Invalid {name} value: {raw}, using default: {default}"
        )
        return default


def _read_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(
            f"[COPY-CONFIG] Invalid {name} value: {raw}, using default: {default}"
        )
        return default


# =============================================================================
# Configuration Data Class
# =============================================================================

@dataclass
class CopyTradingConfig:
    """
    Runtime configuration for the polling service.

    Reliability Level: Mission-Critical
    """
    database_url: Optional[str] = None
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    poll_max_workers: int = DEFAULT_POLL_MAX_WORKERS
    alice_base_url: str = DEFAULT_ALICE_BASE_URL
    alice_timeout_seconds: float = DEFAULT_ALICE_TIMEOUT_SECONDS
    master_accounts: Set[str] = field(default_factory=set)
    trades_list_limit: int = DEFAULT_TRADES_LIST_LIMIT
    metrics_port: Optional[int] = None

    def validate(self) -> None:
        """
        Reject values the poller cannot run with.

        Raises:
            ConfigurationError: Listing every invalid setting (REP-006)
        """
        errors: List[str] = []

        if self.poll_interval_seconds <= 0:
            errors.append(
                f"COPY_POLL_INTERVAL_SECONDS must be positive, got: {self.poll_interval_seconds}"
            )
        if self.poll_max_workers <= 0:
            errors.append(
                f"COPY_POLL_MAX_WORKERS must be positive, got: {self.poll_max_workers}"
            )
        if self.alice_timeout_seconds <= 0:
            errors.append(
                f"ALICE_TIMEOUT_SECONDS must be positive, got: {self.alice_timeout_seconds}"
            )
        if not self.alice_base_url.startswith(("http://", "https://")):
            errors.append(
                f"ALICE_BASE_URL must be an http(s) URL, got: {self.alice_base_url!r}"
            )
        if self.trades_list_limit <= 0:
            errors.append(
                f"COPY_TRADES_LIST_LIMIT must be positive, got: {self.trades_list_limit}"
            )
        if self.metrics_port is not None and not 0 < self.metrics_port < 65536:
            errors.append(
                f"COPY_METRICS_PORT must be a valid TCP port, got: {self.metrics_port}"
            )

        if errors:
            error_msg = "Copy trading configuration validation failed: " + "; ".join(errors)
            logger.error(f"[{ReplicationErrorCode.CONFIG_MISSING}] {error_msg}")
            raise ConfigurationError(error_msg)

        logger.info(
            f"[COPY-CONFIG] Configuration validated | "
            f"poll_interval_seconds={self.poll_interval_seconds} | "
            f"poll_max_workers={self.poll_max_workers} | "
            f"master_accounts_count={len(self.master_accounts)}"
        )

    @classmethod
    def from_environment(cls, validate: bool = True) -> "CopyTradingConfig":
        """
        Load configuration from environment variables.

        Unparseable numbers fall back to their defaults with a warning;
        out-of-range numbers are rejected by validate().
        """
        master_accounts = {
            account.strip()
            for account in os.environ.get("COPY_MASTER_ACCOUNTS", "").split(",")
            if account.strip()
        }

        config = cls(
            database_url=os.environ.get("DATABASE_URL", "").strip() or None,
            poll_interval_seconds=_read_float(
                "COPY_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS
            ),
            poll_max_workers=_read_int("COPY_POLL_MAX_WORKERS", DEFAULT_POLL_MAX_WORKERS),
            alice_base_url=os.environ.get("ALICE_BASE_URL", "").strip() or DEFAULT_ALICE_BASE_URL,
            alice_timeout_seconds=_read_float(
                "ALICE_TIMEOUT_SECONDS", DEFAULT_ALICE_TIMEOUT_SECONDS
            ),
            master_accounts=master_accounts,
            trades_list_limit=_read_int("COPY_TRADES_LIST_LIMIT", DEFAULT_TRADES_LIST_LIMIT),
            metrics_port=_read_int("COPY_METRICS_PORT", None),
        )

        logger.info(
            f"[COPY-CONFIG] Loading configuration from environment | "
            f"COPY_POLL_INTERVAL_SECONDS={config.poll_interval_seconds} | "
            f"COPY_POLL_MAX_WORKERS={config.poll_max_workers} | "
            f"ALICE_BASE_URL={config.alice_base_url} | "
            f"COPY_MASTER_ACCOUNTS={sorted(config.master_accounts)}"
        )

        if validate:
            config.validate()
        return config

    def to_dict(self) -> Dict[str, Any]:
        return {
            "database_url_set": self.database_url is not None,
            "poll_interval_seconds": self.poll_interval_seconds,
            "poll_max_workers": self.poll_max_workers,
            "alice_base_url": self.alice_base_url,
            "alice_timeout_seconds": self.alice_timeout_seconds,
            "master_accounts": sorted(self.master_accounts),
            "trades_list_limit": self.trades_list_limit,
            "metrics_port": self.metrics_port,
        }
