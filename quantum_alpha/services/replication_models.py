"""
============================================================================
Replication Pipeline - Data Model
============================================================================

Decimal Integrity: Prices, scaling factors and risk caps are decimal.Decimal
Traceability: Every CopyTrade carries the master trade id and follower id

ENTITIES:
    MasterTrade  - one executed fill on a master account (immutable)
    Follower     - a subscriber account and its scaling configuration
    CopyTrade    - one replication attempt for a (MasterTrade, Follower) pair

COPY TRADE STATUS MACHINE:
    PENDING → SUCCESS | FAILED | CANCELLED

    Terminal States: SUCCESS, FAILED, CANCELLED (no further transitions)

============================================================================
"""

from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, Any, FrozenSet
from dataclasses import dataclass, field
from enum import Enum
from datetime import datetime, timezone
import uuid

from quantum_alpha.services.replication_errors import ValidationError


# =============================================================================
# Enums
# =============================================================================

class TradeSide(Enum):
    """Order side of a master fill or its replication."""
    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def parse(cls, value: Any) -> "TradeSide":
        """
        Parse an upstream side spelling (BUY/Buy/B, SELL/Sell/S).

        Raises:
            ValidationError: If the value is not a recognised side
        """
        if isinstance(value, TradeSide):
            return value
        text = str(value or "").strip().upper()
        if text in ("BUY", "B"):
            return cls.BUY
        if text in ("SELL", "S"):
            return cls.SELL
        raise ValidationError(f"Unrecognised trade side: {value!r}")


class CopyTradeStatus(Enum):
    """
    Copy trade lifecycle status.

    State Machine:
        PENDING → SUCCESS (order placed and filled on the follower account)
        PENDING → FAILED (order placement rejected)
        PENDING → CANCELLED (replication withdrawn before placement)
    """
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @classmethod
    def parse(cls, value: Any) -> "CopyTradeStatus":
        if isinstance(value, CopyTradeStatus):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            raise ValidationError(f"Unrecognised copy trade status: {value!r}")

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: FrozenSet[CopyTradeStatus] = frozenset({
    CopyTradeStatus.SUCCESS,
    CopyTradeStatus.FAILED,
    CopyTradeStatus.CANCELLED,
})


# =============================================================================
# Helpers
# =============================================================================

def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_decimal(value: Any, field_name: str) -> Decimal:
    """
    Convert a numeric input to Decimal via its string form.

    Floats go through str() so 0.1 stays 0.1 rather than its binary
    expansion.

    Raises:
        ValidationError: If the value is missing or not numeric
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field_name} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be numeric, got: {value!r}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be numeric, got: {value!r}")
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite, got: {value!r}")
    return result


def _optional_decimal(value: Any, field_name: str) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return to_decimal(value, field_name)


def parse_utc_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class MasterTrade:
    """
    One executed fill on a master account.

    Created by the deduplicator on first sighting; never updated or deleted.
    """
    id: str
    account: str
    symbol: str
    side: TradeSide
    quantity: int
    price: Decimal
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "account": self.account,
            "symbol": self.symbol,
            "side": self.side.value,
            "quantity": self.quantity,
            "price": str(self.price),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MasterTrade":
        return cls(
            id=str(data["id"]),
            account=str(data["account"]),
            symbol=str(data["symbol"]),
            side=TradeSide.parse(data["side"]),
            quantity=int(data["quantity"]),
            price=Decimal(str(data["price"])),
            timestamp=parse_utc_datetime(data["timestamp"]),
        )


@dataclass
class Follower:
    """
    A subscriber account and its replication limits.

    Only copy_trading_active is ever changed by the core, and only through
    the consent gate.
    """
    id: str
    display_name: str = ""
    scaling_factor: Decimal = field(default_factory=lambda: Decimal("1.0"))
    max_quantity_per_trade: Optional[int] = None
    max_order_value: Optional[Decimal] = None
    max_daily_loss: Optional[Decimal] = None
    copy_trading_active: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.scaling_factor, Decimal):
            self.scaling_factor = to_decimal(self.scaling_factor, "scaling_factor")
        self.max_order_value = _optional_decimal(self.max_order_value, "max_order_value")
        self.max_daily_loss = _optional_decimal(self.max_daily_loss, "max_daily_loss")
        if not self.display_name:
            self.display_name = self.id

    def validate(self) -> None:
        """
        Check the follower can take part in replication.

        Raises:
            ValidationError: On a missing id, non-positive scaling factor or
                non-positive caps
        """
        if not self.id or not str(self.id).strip():
            raise ValidationError("Follower id is required")
        if self.scaling_factor <= Decimal("0"):
            raise ValidationError(
                f"scaling_factor must be positive, got: {self.scaling_factor} | "
                f"follower_id={self.id}"
            )
        if self.max_quantity_per_trade is not None and self.max_quantity_per_trade < 1:
            raise ValidationError(
                f"max_quantity_per_trade must be >= 1, got: {self.max_quantity_per_trade} | "
                f"follower_id={self.id}"
            )
        for name in ("max_order_value", "max_daily_loss"):
            cap = getattr(self, name)
            if cap is not None and cap <= Decimal("0"):
                raise ValidationError(
                    f"{name} must be positive, got: {cap} | follower_id={self.id}"
                )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "scaling_factor": str(self.scaling_factor),
            "max_quantity_per_trade": self.max_quantity_per_trade,
            "max_order_value": str(self.max_order_value) if self.max_order_value is not None else None,
            "max_daily_loss": str(self.max_daily_loss) if self.max_daily_loss is not None else None,
            "copy_trading_active": self.copy_trading_active,
        }

    def to_public_dict(self) -> Dict[str, Any]:
        """Listing shape exposed to dashboards (limits only, no credentials)."""
        return {
            "id": self.id,
            "username": self.display_name,
            "lotMultiplier": float(self.scaling_factor),
            "maxQuantity": self.max_quantity_per_trade,
            "maxDailyLoss": float(self.max_daily_loss) if self.max_daily_loss is not None else None,
            "copyTradingActive": self.copy_trading_active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Follower":
        max_qty = data.get("max_quantity_per_trade")
        return cls(
            id=str(data.get("id") or ""),
            display_name=str(data.get("display_name") or ""),
            scaling_factor=to_decimal(data.get("scaling_factor", "1.0"), "scaling_factor"),
            max_quantity_per_trade=int(max_qty) if max_qty not in (None, "") else None,
            max_order_value=data.get("max_order_value"),
            max_daily_loss=data.get("max_daily_loss"),
            copy_trading_active=bool(data.get("copy_trading_active", True)),
        )


@dataclass
class CopyTrade:
    """
    Ledger entry: one replication attempt for a (MasterTrade, Follower) pair.

    status is the only field mutated after creation, and only from PENDING
    to a terminal status.
    """
    id: str
    master_id: str
    master_account: str
    follower_id: str
    symbol: str
    side: TradeSide
    master_qty: int
    follower_qty: int
    price: Decimal
    status: CopyTradeStatus
    timestamp: datetime
    reason: Optional[str] = None
    updated_at: Optional[datetime] = None

    @staticmethod
    def generate_id() -> str:
        return f"trade_{uuid.uuid4().hex}"

    @classmethod
    def create(
        cls,
        master_trade: MasterTrade,
        follower_id: str,
        follower_qty: int,
    ) -> "CopyTrade":
        """Build a new PENDING row for a master trade and follower."""
        now = utc_now()
        return cls(
            id=cls.generate_id(),
            master_id=master_trade.id,
            master_account=master_trade.account,
            follower_id=follower_id,
            symbol=master_trade.symbol,
            side=master_trade.side,
            master_qty=master_trade.quantity,
            follower_qty=follower_qty,
            price=master_trade.price,
            status=CopyTradeStatus.PENDING,
            timestamp=now,
            updated_at=now,
        )

    @property
    def fan_out_key(self) -> str:
        return fan_out_key(self.master_account, self.master_id, self.follower_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "master_id": self.master_id,
            "master_account": self.master_account,
            "follower_id": self.follower_id,
            "symbol": self.symbol,
            "side": self.side.value,
            "master_qty": self.master_qty,
            "follower_qty": self.follower_qty,
            "price": str(self.price),
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CopyTrade":
        return cls(
            id=str(data["id"]),
            master_id=str(data["master_id"]),
            master_account=str(data.get("master_account") or ""),
            follower_id=str(data["follower_id"]),
            symbol=str(data["symbol"]),
            side=TradeSide.parse(data["side"]),
            master_qty=int(data["master_qty"]),
            follower_qty=int(data["follower_qty"]),
            price=Decimal(str(data["price"])),
            status=CopyTradeStatus.parse(data["status"]),
            timestamp=parse_utc_datetime(data["timestamp"]),
            reason=data.get("reason"),
            updated_at=parse_utc_datetime(data["updated_at"]) if data.get("updated_at") else None,
        )


def fan_out_key(master_account: str, master_id: str, follower_id: str) -> str:
    """Uniqueness key for one replication of one master trade to one follower."""
    return f"{master_account}|{master_id}|{follower_id}"
