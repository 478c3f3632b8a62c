"""Serializers for ledger models to/from JSON-compatible dictionaries."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional

from folio.ledger.errors import StoreError
from folio.ledger.models import Position, Transaction, TransactionType


def _date_or_none(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


class LedgerSerializer:
    """Converts transactions and positions to plain dictionaries and back.

    Floats are written as JSON numbers, which round-trip exactly.
    """

    @staticmethod
    def transaction_to_dict(txn: Transaction) -> Dict[str, Any]:
        return {
            "id": txn.id,
            "portfolio_id": txn.portfolio_id,
            "asset_id": txn.asset_id,
            "type": txn.type.value,
            "quantity": txn.quantity,
            "price": txn.price,
            "fees": txn.fees,
            "date": txn.date.isoformat(),
            "created_at": txn.created_at.isoformat(),
            "notes": txn.notes,
        }

    @staticmethod
    def transaction_from_dict(data: Dict[str, Any]) -> Transaction:
        """Restore a transaction.

        Raises:
            StoreError: If the record is missing fields or holds bad values
        """
        try:
            return Transaction(
                id=data["id"],
                portfolio_id=data["portfolio_id"],
                asset_id=data["asset_id"],
                type=TransactionType(data["type"]),
                quantity=float(data["quantity"]),
                price=float(data["price"]),
                fees=float(data.get("fees", 0.0)),
                date=date.fromisoformat(data["date"]),
                created_at=datetime.fromisoformat(data["created_at"]),
                notes=data.get("notes"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise StoreError(f"Malformed transaction record: {e}") from e

    @staticmethod
    def position_to_dict(position: Position) -> Dict[str, Any]:
        return {
            "id": position.id,
            "portfolio_id": position.portfolio_id,
            "asset_id": position.asset_id,
            "quantity": position.quantity,
            "average_cost_basis": position.average_cost_basis,
            "total_cost_basis": position.total_cost_basis,
            "realized_pl": position.realized_pl,
            "open_date": position.open_date.isoformat() if position.open_date else None,
            "created_at": position.created_at.isoformat(),
            "updated_at": position.updated_at.isoformat(),
            "version": position.version,
        }

    @staticmethod
    def position_from_dict(data: Dict[str, Any]) -> Position:
        """Restore a position.

        Raises:
            StoreError: If the record is missing fields or holds bad values
        """
        try:
            return Position(
                id=data["id"],
                portfolio_id=data["portfolio_id"],
                asset_id=data["asset_id"],
                quantity=float(data["quantity"]),
                average_cost_basis=float(data["average_cost_basis"]),
                total_cost_basis=float(data["total_cost_basis"]),
                realized_pl=float(data["realized_pl"]),
                open_date=_date_or_none(data.get("open_date")),
                created_at=datetime.fromisoformat(data["created_at"]),
                updated_at=datetime.fromisoformat(data["updated_at"]),
                version=int(data["version"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise StoreError(f"Malformed position record: {e}") from e
