"""Data models for the position ledger."""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import List, Optional, Tuple

from .errors import InvalidTransactionError

# Relative tolerance used for every floating-point comparison in the ledger.
EPSILON = 1e-6


class TransactionType(Enum):
    """Kinds of portfolio events. Only BUY and SELL move quantity or cost basis."""
    BUY = "buy"
    SELL = "sell"
    DIVIDEND = "dividend"
    SPLIT = "split"
    MERGER = "merger"
    TRANSFER = "transfer"

    @property
    def affects_position(self) -> bool:
        return self in (TransactionType.BUY, TransactionType.SELL)


@dataclass(frozen=True)
class Transaction:
    """An immutable portfolio event.

    Attributes:
        portfolio_id: Owning portfolio
        asset_id: Asset the event refers to
        type: Event kind
        quantity: Units traded, strictly positive
        price: Per-unit price, non-negative
        fees: Commission paid, non-negative
        date: Logical trade date
        created_at: Insertion timestamp, breaks ties between same-date events
        id: Unique transaction identifier (UUID)
    """
    portfolio_id: str
    asset_id: str
    type: TransactionType
    quantity: float
    price: float
    fees: float = 0.0
    date: date = field(default_factory=date.today)
    created_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    notes: Optional[str] = None

    @property
    def total_amount(self) -> float:
        """Cash that changed hands, fees included."""
        gross = self.quantity * self.price
        if self.type is TransactionType.BUY:
            return gross + self.fees
        if self.type is TransactionType.SELL:
            return gross - self.fees
        return gross

    @property
    def sort_key(self) -> Tuple[date, datetime, str]:
        return (self.date, self.created_at, self.id)

    def validate(self) -> None:
        """Raise InvalidTransactionError if any numeric field is out of range."""
        validate_trade(self.quantity, self.price, self.fees)


def validate_trade(quantity: float, price: float, fees: float) -> None:
    """Check trade numbers explicitly rather than relying on truthiness.

    Raises:
        InvalidTransactionError: quantity not > 0, price or fees negative,
            or any value NaN/infinite
    """
    for name, value in (("quantity", quantity), ("price", price), ("fees", fees)):
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise InvalidTransactionError(f"{name} must be a number, got {value!r}")
        if not math.isfinite(value):
            raise InvalidTransactionError(f"{name} must be finite, got {value!r}")
    if quantity <= 0.0:
        raise InvalidTransactionError(f"quantity must be greater than zero, got {quantity}")
    if price < 0.0:
        raise InvalidTransactionError(f"price must not be negative, got {price}")
    if fees < 0.0:
        raise InvalidTransactionError(f"fees must not be negative, got {fees}")


def is_close(a: float, b: float, rel_tol: float = EPSILON) -> bool:
    """Relative comparison with a tiny absolute floor so values near zero compare sanely."""
    return math.isclose(a, b, rel_tol=rel_tol, abs_tol=rel_tol * 1e-6)


@dataclass(frozen=True)
class PositionState:
    """The numeric part of a position: what the cost-basis fold produces."""
    quantity: float = 0.0
    average_cost_basis: float = 0.0
    total_cost_basis: float = 0.0
    realized_pl: float = 0.0
    open_date: Optional[date] = None

    @property
    def is_flat(self) -> bool:
        return self.quantity == 0.0

    def matches(self, other: "PositionState", rel_tol: float = EPSILON) -> bool:
        """Compare two states field by field within tolerance."""
        if self.open_date != other.open_date:
            return False
        return all(
            is_close(mine, theirs, rel_tol)
            for mine, theirs in (
                (self.quantity, other.quantity),
                (self.average_cost_basis, other.average_cost_basis),
                (self.total_cost_basis, other.total_cost_basis),
                (self.realized_pl, other.realized_pl),
            )
        )


ZERO_STATE = PositionState()


@dataclass
class Position:
    """Current holding of one asset in one portfolio.

    At most one row exists per (portfolio_id, asset_id). A row whose quantity
    returns to zero is deleted, so stored positions are always active.
    `version` increases on every write and backs conditional updates.
    """
    portfolio_id: str
    asset_id: str
    quantity: float = 0.0
    average_cost_basis: float = 0.0
    total_cost_basis: float = 0.0
    realized_pl: float = 0.0
    open_date: Optional[date] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    version: int = 0

    @property
    def is_active(self) -> bool:
        return self.quantity > 0.0

    @property
    def key(self) -> Tuple[str, str]:
        return (self.portfolio_id, self.asset_id)

    @property
    def state(self) -> PositionState:
        return PositionState(
            quantity=self.quantity,
            average_cost_basis=self.average_cost_basis,
            total_cost_basis=self.total_cost_basis,
            realized_pl=self.realized_pl,
            open_date=self.open_date,
        )

    def with_state(self, state: PositionState) -> "Position":
        """Copy of this row carrying a new numeric state."""
        return replace(
            self,
            quantity=state.quantity,
            average_cost_basis=state.average_cost_basis,
            total_cost_basis=state.total_cost_basis,
            realized_pl=state.realized_pl,
            open_date=state.open_date,
            updated_at=datetime.now(),
        )

    @classmethod
    def from_state(cls, portfolio_id: str, asset_id: str, state: PositionState) -> "Position":
        return cls(
            portfolio_id=portfolio_id,
            asset_id=asset_id,
            quantity=state.quantity,
            average_cost_basis=state.average_cost_basis,
            total_cost_basis=state.total_cost_basis,
            realized_pl=state.realized_pl,
            open_date=state.open_date,
        )


@dataclass
class AssetFailure:
    """An asset whose history could not be replayed during a rebuild."""
    asset_id: str
    error: Exception

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass
class RebuildResult:
    """Outcome of a full reconciliation of one portfolio.

    Attributes:
        created: Position rows inserted
        updated: Position rows rewritten with different values
        deleted: Position rows removed (closed or orphaned)
        unchanged: Rows already matching their replayed history
        failures: Assets skipped because their history is invalid
        cancelled: True when the run stopped early on request
    """
    portfolio_id: str
    created: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    failures: List[AssetFailure] = field(default_factory=list)
    cancelled: bool = False

    @property
    def changes(self) -> int:
        return self.created + self.updated + self.deleted

    @property
    def succeeded(self) -> bool:
        return not self.failures and not self.cancelled

    def as_counts(self) -> dict:
        return {"created": self.created, "updated": self.updated, "deleted": self.deleted}
