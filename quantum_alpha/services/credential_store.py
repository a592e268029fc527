"""
============================================================================
Credential Store Service
============================================================================

Holds brokerage access tokens per account and the set of master accounts
whose fills are replicated. The poller receives a CredentialStore instance
explicitly; no token lives in module-level state.

Tokens are stored as received and never logged.

============================================================================
"""

from typing import Optional, List, Set
import logging
import threading

from quantum_alpha.database.keyed_store import KeyedStore
from quantum_alpha.services.replication_errors import ValidationError
from quantum_alpha.services.replication_models import utc_now

# Configure module logger
logger = logging.getLogger(__name__)

TOKENS_NAMESPACE = "oauth_tokens"
SETTINGS_NAMESPACE = "settings"
MASTER_ACCOUNTS_KEY = "master_accounts"


class CredentialStore:
    """Store-backed token map plus the master account set."""

    def __init__(self, store: KeyedStore) -> None:
        self._store = store
        self._lock = threading.Lock()

    # =========================================================================
    # Tokens
    # =========================================================================

    def set_token(self, account_id: str, token: str) -> None:
        if not account_id or not str(account_id).strip():
            raise ValidationError("account_id is required")
        if not token:
            raise ValidationError(f"token is required | account_id={account_id}")
        with self._lock:
            self._store.put(
                TOKENS_NAMESPACE,
                account_id,
                {"token": token, "updated_at": utc_now().isoformat()},
            )
        logger.info(f"[CREDENTIALS] Token stored | account_id={account_id}")

    def get_token(self, account_id: str) -> Optional[str]:
        record = self._store.get(TOKENS_NAMESPACE, account_id)
        if record is None:
            return None
        return record.value.get("token") or None

    def remove_token(self, account_id: str) -> bool:
        with self._lock:
            removed = self._store.delete(TOKENS_NAMESPACE, account_id)
        if removed:
            logger.info(f"[CREDENTIALS] Token removed | account_id={account_id}")
        return removed

    def list_accounts(self) -> List[str]:
        """Accounts holding a token, in key order."""
        return [
            record.key
            for record in self._store.list(TOKENS_NAMESPACE)
            if record.value.get("token")
        ]

    # =========================================================================
    # Master Accounts
    # =========================================================================

    def set_master_account(self, account_id: str, is_master: bool = True) -> None:
        """Mark or unmark an account as a replication source."""
        if not account_id or not str(account_id).strip():
            raise ValidationError("account_id is required")
        with self._lock:
            accounts = self.master_accounts()
            if is_master:
                accounts.add(account_id)
            else:
                accounts.discard(account_id)
            self._store.put(
                SETTINGS_NAMESPACE,
                MASTER_ACCOUNTS_KEY,
                {"accounts": sorted(accounts)},
            )
        logger.info(
            f"[CREDENTIALS] Master account {'set' if is_master else 'cleared'} | "
            f"account_id={account_id}"
        )

    def master_accounts(self) -> Set[str]:
        record = self._store.get(SETTINGS_NAMESPACE, MASTER_ACCOUNTS_KEY)
        if record is None:
            return set()
        return set(record.value.get("accounts", []))

    def is_master(self, account_id: str) -> bool:
        return account_id in self.master_accounts()
