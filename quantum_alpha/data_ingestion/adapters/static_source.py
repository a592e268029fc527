"""
============================================================================
Static Trade Source - In-memory trade books for tests and dry runs
============================================================================
"""

from typing import Optional, Dict, Any, List
import copy
import logging
import threading

from quantum_alpha.data_ingestion.adapters.base_trade_source import BaseTradeSource
from quantum_alpha.services.replication_errors import UpstreamUnavailable

# Configure module logger
logger = logging.getLogger(__name__)


class StaticTradeSource(BaseTradeSource):
    """
    Serves preset trade books per account.

    An account marked unavailable raises UpstreamUnavailable, which lets
    callers exercise the poller's per-account failure isolation.
    """

    def __init__(
        self,
        books: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        super().__init__(correlation_id)
        self._lock = threading.Lock()
        self._books: Dict[str, List[Dict[str, Any]]] = {
            account: list(records) for account, records in (books or {}).items()
        }
        self._unavailable: Dict[str, str] = {}
        self.calls: List[str] = []

    @property
    def source_name(self) -> str:
        return "static"

    def set_book(self, account_id: str, records: List[Dict[str, Any]]) -> None:
        with self._lock:
            self._books[account_id] = list(records)

    def add_trade(self, account_id: str, record: Dict[str, Any]) -> None:
        with self._lock:
            self._books.setdefault(account_id, []).append(record)

    def set_unavailable(self, account_id: str, message: str = "source offline") -> None:
        with self._lock:
            self._unavailable[account_id] = message

    def set_available(self, account_id: str) -> None:
        with self._lock:
            self._unavailable.pop(account_id, None)

    def fetch_trades(self, account_id: str, token: str) -> List[Dict[str, Any]]:
        with self._lock:
            self.calls.append(account_id)
            message = self._unavailable.get(account_id)
            records = copy.deepcopy(self._books.get(account_id, []))
        if message is not None:
            raise UpstreamUnavailable(account_id, message)
        return records
