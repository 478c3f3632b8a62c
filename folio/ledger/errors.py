"""Exceptions raised by the ledger and its stores."""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every ledger failure."""


class InvalidTransactionError(LedgerError):
    """A transaction carries a non-positive quantity, negative price or fees, or a non-finite number."""


class OversellError(LedgerError):
    """A sell asks for more units than the position holds.

    Attributes:
        asset_id: Asset being sold
        requested: Units the sell asked for
        held: Units held when the sell was evaluated
    """

    def __init__(self, asset_id: str, requested: float, held: float, message: str = "") -> None:
        self.asset_id = asset_id
        self.requested = requested
        self.held = held
        super().__init__(message or f"Cannot sell {requested} of {asset_id}: only {held} held")


class PositionNotFoundError(OversellError):
    """A sell arrived for an asset with no stored position (zero units held)."""

    def __init__(self, portfolio_id: str, asset_id: str, requested: float) -> None:
        self.portfolio_id = portfolio_id
        super().__init__(
            asset_id,
            requested,
            0.0,
            f"No position for {asset_id} in portfolio {portfolio_id}; cannot sell {requested}",
        )


class UnsortedHistoryError(LedgerError):
    """The fold received transactions out of (date, created_at) order."""


class StoreError(LedgerError):
    """The backing store failed to read or write."""


class ConcurrentModificationError(StoreError):
    """A conditional write lost a race: the stored row changed since it was read."""
