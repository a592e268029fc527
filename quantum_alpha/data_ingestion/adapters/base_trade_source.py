"""
============================================================================
Base Trade Source - Abstract Interface for Trade-Book Providers
============================================================================

Traceability: All operations include correlation_id

SOURCE INTERFACE:
    A trade source returns the raw trade-book records for one account.
    Records are returned as decoded from the provider; normalisation and
    deduplication happen downstream, so a source never filters fills.

    Any failure to read the book (network, HTTP status, unreadable
    payload) is raised as UpstreamUnavailable so the poller can isolate
    the account and retry on the next cycle.

============================================================================
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List
import logging
import uuid

# Configure module logger
logger = logging.getLogger(__name__)


class BaseTradeSource(ABC):
    """
    Abstract base class for trade-book providers.

    Implementations must be safe to call from several poller threads at
    once for different accounts.
    """

    def __init__(self, correlation_id: Optional[str] = None) -> None:
        self.correlation_id = correlation_id or str(uuid.uuid4())

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Short provider name used in logs."""

    @abstractmethod
    def fetch_trades(self, account_id: str, token: str) -> List[Dict[str, Any]]:
        """
        Fetch the current trade book for an account.

        Args:
            account_id: Brokerage account identifier
            token: Access token for the account

        Returns:
            Raw trade records in provider order

        Raises:
            UpstreamUnavailable: If the book cannot be read
        """

    def close(self) -> None:
        """Release any held connections."""
