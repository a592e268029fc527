"""
============================================================================
Quantum Alpha Copy Trader
Trade Normalizer - Upstream trade-book record → MasterTrade
============================================================================

Brokerage trade books spell the same fill differently depending on the
endpoint and API version. This module maps every known spelling onto the
MasterTrade model and rejects records that cannot be replicated safely.

FIELD ALIASES (first present wins):
    id        ← id, tradeId, trade_id
    symbol    ← symbol, instrument, scrip, scriptName
    side      ← side, buySell, transactionType
    quantity  ← quantity, qty, tradedQty, filledQty
    price     ← price, rate, fillPrice
    timestamp ← timestamp, time, createdAt
    account   ← the polled account; a record whose own account field
                names a different account is rejected

SYNTHESISED IDS:
    When upstream omits the trade id, a stable id is derived from the
    fill's content so that re-delivery of the same fill is recognised:

        SYN-<first 32 hex of sha256("account|symbol|price|qty|side|ts")>

    A record with neither id nor timestamp is rejected, since no stable
    id can be derived for it.

ERROR CODES:
    - REP-005: Record failed validation (ValidationError)

============================================================================
"""

from decimal import Decimal
from typing import Any, Dict, Iterable, Optional
from datetime import datetime, timezone
import hashlib
import logging

from quantum_alpha.services.replication_errors import ValidationError
from quantum_alpha.services.replication_models import (
    MasterTrade,
    TradeSide,
    to_decimal,
    utc_now,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

ID_FIELDS = ("id", "tradeId", "trade_id")
SYMBOL_FIELDS = ("symbol", "instrument", "scrip", "scriptName")
SIDE_FIELDS = ("side", "buySell", "transactionType")
QUANTITY_FIELDS = ("quantity", "qty", "tradedQty", "filledQty")
PRICE_FIELDS = ("price", "rate", "fillPrice")
TIMESTAMP_FIELDS = ("timestamp", "time", "createdAt")

SYNTHETIC_ID_PREFIX = "SYN-"
SYNTHETIC_ID_HEX_LENGTH = 32

# Epoch values above this are taken to be milliseconds (year 5138 in seconds)
EPOCH_MILLIS_THRESHOLD = 100_000_000_000


# =============================================================================
# Field Helpers
# =============================================================================

def _first_present(raw: Dict[str, Any], names: Iterable[str]) -> Optional[Any]:
    for name in names:
        value = raw.get(name)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an upstream timestamp into an aware UTC datetime.

    Accepts datetime objects, ISO-8601 strings (naive is UTC, trailing Z
    allowed) and epoch seconds or milliseconds as numbers or numeric strings.

    Raises:
        ValidationError: If the value cannot be interpreted
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise ValidationError(f"timestamp must not be boolean: {value!r}")
    elif isinstance(value, (int, float, Decimal)):
        parsed = _from_epoch(value)
    else:
        text = str(value).strip()
        try:
            parsed = _from_epoch(Decimal(text))
        except (ArithmeticError, ValueError):
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                raise ValidationError(f"Unparseable timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _from_epoch(value: Any) -> datetime:
    seconds = Decimal(str(value))
    if not seconds.is_finite():
        raise ValidationError(f"timestamp must be finite: {value!r}")
    if abs(seconds) >= EPOCH_MILLIS_THRESHOLD:
        seconds = seconds / 1000
    try:
        return datetime.fromtimestamp(float(seconds), tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        raise ValidationError(f"timestamp out of range: {value!r}")


def _parse_quantity(value: Any) -> int:
    quantity = to_decimal(value, "quantity")
    if quantity != quantity.to_integral_value():
        raise ValidationError(f"quantity must be a whole number, got: {value!r}")
    if quantity <= 0:
        raise ValidationError(f"quantity must be positive, got: {value!r}")
    return int(quantity)


def _parse_price(value: Any) -> Decimal:
    price = to_decimal(value, "price")
    if price < 0:
        raise ValidationError(f"price must not be negative, got: {value!r}")
    return price


def _canonical_price(price: Decimal) -> str:
    # 2500, 2500.0 and 2500.00 must hash identically
    normalized = price.normalize()
    if normalized == normalized.to_integral_value():
        normalized = normalized.quantize(Decimal("1"))
    return format(normalized, "f")


# =============================================================================
# Public API
# =============================================================================

def synthesize_trade_id(
    account: str,
    symbol: str,
    price: Decimal,
    quantity: int,
    side: TradeSide,
    timestamp: datetime,
) -> str:
    """Derive a stable id for a fill whose upstream record carries none."""
    canonical = "|".join([
        account,
        symbol,
        _canonical_price(price),
        str(int(quantity)),
        side.value,
        timestamp.astimezone(timezone.utc).isoformat(),
    ])
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{SYNTHETIC_ID_PREFIX}{digest[:SYNTHETIC_ID_HEX_LENGTH]}"


def normalize_raw_trade(account_id: str, raw: Dict[str, Any]) -> MasterTrade:
    """
    Convert one upstream trade-book record into a MasterTrade.

    Args:
        account_id: Account the record was fetched for
        raw: Record as decoded from the upstream payload

    Returns:
        MasterTrade with a guaranteed non-empty id

    Raises:
        ValidationError: If a required field is missing or malformed
    """
    if not isinstance(raw, dict):
        raise ValidationError(f"Trade record must be an object, got: {type(raw).__name__}")

    account = str(account_id or "").strip()
    if not account:
        raise ValidationError("Trade record has no account")

    # The polled account keys dedup and fan-out; a record naming another is foreign
    record_account = str(raw.get("account") or "").strip()
    if record_account and record_account != account:
        raise ValidationError(
            f"Trade record belongs to another account | "
            f"polled={account} | record_account={record_account}"
        )

    symbol_value = _first_present(raw, SYMBOL_FIELDS)
    if symbol_value is None:
        raise ValidationError(f"Trade record has no symbol | account={account}")
    symbol = str(symbol_value).strip()

    side_value = _first_present(raw, SIDE_FIELDS)
    if side_value is None:
        raise ValidationError(f"Trade record has no side | account={account}")
    side = TradeSide.parse(side_value)

    quantity = _parse_quantity(_first_present(raw, QUANTITY_FIELDS))
    price = _parse_price(_first_present(raw, PRICE_FIELDS))

    upstream_id = _first_present(raw, ID_FIELDS)
    timestamp_value = _first_present(raw, TIMESTAMP_FIELDS)

    if timestamp_value is not None:
        timestamp = parse_timestamp(timestamp_value)
    elif upstream_id is not None:
        timestamp = utc_now()
    else:
        raise ValidationError(
            f"Trade record has neither id nor timestamp | "
            f"account={account} | symbol={symbol}"
        )

    if upstream_id is not None:
        trade_id = str(upstream_id).strip()
    else:
        trade_id = synthesize_trade_id(account, symbol, price, quantity, side, timestamp)
        logger.debug(
            f"[TRADE-NORMALIZER] Synthesised trade id | "
            f"account={account} | symbol={symbol} | trade_id={trade_id}"
        )

    return MasterTrade(
        id=trade_id,
        account=account,
        symbol=symbol,
        side=side,
        quantity=quantity,
        price=price,
        timestamp=timestamp,
    )
