"""
============================================================================
Alice Blue Trade Source - Trade Book over the Open API
============================================================================

Traceability: All operations include correlation_id

ENDPOINT:
    GET {base_url}/open-api/od/v1/trades
    Authorization: Bearer <account token>

PAYLOAD SHAPES:
    The trade list is read from "trades", then "data", then a bare list.

ERROR CODES:
    - REP-001: Timeout, connection failure, HTTP error status or an
      unreadable payload (raised as UpstreamUnavailable)

============================================================================
"""

from typing import Optional, Dict, Any, List
import logging

import requests
from requests.exceptions import Timeout, ConnectionError as RequestsConnectionError

from quantum_alpha.data_ingestion.adapters.base_trade_source import BaseTradeSource
from quantum_alpha.services.replication_errors import (
    ReplicationErrorCode,
    UpstreamUnavailable,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_BASE_URL = "https://ant.aliceblueonline.com"
TRADE_BOOK_PATH = "/open-api/od/v1/trades"
DEFAULT_TIMEOUT = 30.0

# Response bodies are truncated to this length in error logs
ERROR_BODY_LOG_LIMIT = 500


# =============================================================================
# Alice Blue Trade Source Class
# =============================================================================

class AliceBlueTradeSource(BaseTradeSource):
    """
    Reads trade books from the Alice Blue Open API with requests.

    One requests.Session is shared across accounts; the token is sent per
    request and never stored on the session.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        super().__init__(correlation_id)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

        logger.info(
            f"[ALICE-SOURCE] Trade source initialized | "
            f"base_url={self.base_url} | "
            f"timeout={self.timeout} | "
            f"correlation_id={self.correlation_id}"
        )

    @property
    def source_name(self) -> str:
        return "alice_blue"

    def fetch_trades(self, account_id: str, token: str) -> List[Dict[str, Any]]:
        url = f"{self.base_url}{TRADE_BOOK_PATH}"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }

        try:
            response = self._session.get(url, headers=headers, timeout=self.timeout)
        except Timeout as e:
            self._log_failure(account_id, f"timeout after {self.timeout}s", e)
            raise UpstreamUnavailable(account_id, f"Trade book request timed out: {e}")
        except RequestsConnectionError as e:
            self._log_failure(account_id, "connection error", e)
            raise UpstreamUnavailable(account_id, f"Trade book connection failed: {e}")
        except requests.RequestException as e:
            self._log_failure(account_id, "request error", e)
            raise UpstreamUnavailable(account_id, f"Trade book request failed: {e}")

        if not response.ok:
            body = (response.text or "")[:ERROR_BODY_LOG_LIMIT]
            logger.error(
                f"[{ReplicationErrorCode.UPSTREAM_UNAVAILABLE}] Trade book API error | "
                f"account={account_id} | "
                f"status={response.status_code} | "
                f"body={body} | "
                f"correlation_id={self.correlation_id}"
            )
            raise UpstreamUnavailable(
                account_id, f"Trade book API returned {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            self._log_failure(account_id, "unreadable JSON payload", e)
            raise UpstreamUnavailable(account_id, "Trade book payload is not valid JSON")

        trades = extract_trade_list(payload)
        if trades is None:
            logger.error(
                f"[{ReplicationErrorCode.UPSTREAM_UNAVAILABLE}] Unexpected trade book shape | "
                f"account={account_id} | "
                f"payload_type={type(payload).__name__} | "
                f"correlation_id={self.correlation_id}"
            )
            raise UpstreamUnavailable(account_id, "Trade book payload has no trade list")

        logger.debug(
            f"[ALICE-SOURCE] Trade book fetched | "
            f"account={account_id} | "
            f"records={len(trades)} | "
            f"correlation_id={self.correlation_id}"
        )
        return trades

    def close(self) -> None:
        """Close HTTP session."""
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _log_failure(self, account_id: str, what: str, error: Exception) -> None:
        logger.error(
            f"[{ReplicationErrorCode.UPSTREAM_UNAVAILABLE}] Trade book {what} | "
            f"account={account_id} | "
            f"error={error} | "
            f"correlation_id={self.correlation_id}"
        )


def extract_trade_list(payload: Any) -> Optional[List[Dict[str, Any]]]:
    """Pull the trade list out of a decoded payload, or None if there is none."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("trades", "data"):
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return None
