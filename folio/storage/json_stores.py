"""File-backed ledger stores built on IStorageService.

Each portfolio is one storage key per table ("transactions-<id>" and
"positions-<id>"). A lock serializes read-modify-write cycles within the
process; the underlying JsonFileStorage replaces files atomically.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from folio.ledger.models import Position, Transaction

from .serializers import LedgerSerializer
from .storage import IStorageService
from .stores import IPositionStore, ITransactionStore, check_version, next_revision


def _transactions_key(portfolio_id: str) -> str:
    return f"transactions-{portfolio_id}"


def _positions_key(portfolio_id: str) -> str:
    return f"positions-{portfolio_id}"


class JsonTransactionStore(ITransactionStore):
    """Transaction log persisted as one JSON list per portfolio."""

    def __init__(self, storage: IStorageService) -> None:
        self._storage = storage
        self._lock = threading.Lock()

    def _load(self, portfolio_id: str) -> List[dict]:
        return self._storage.load(_transactions_key(portfolio_id)) or []

    def get_transactions(self, portfolio_id: str) -> List[Transaction]:
        with self._lock:
            records = self._load(portfolio_id)
        return [LedgerSerializer.transaction_from_dict(record) for record in records]

    def add_transaction(self, transaction: Transaction) -> Transaction:
        with self._lock:
            records = self._load(transaction.portfolio_id)
            records.append(LedgerSerializer.transaction_to_dict(transaction))
            self._storage.save(_transactions_key(transaction.portfolio_id), records)
        return transaction

    def delete_transaction(self, portfolio_id: str, transaction_id: str) -> bool:
        with self._lock:
            records = self._load(portfolio_id)
            remaining = [record for record in records if record.get("id") != transaction_id]
            if len(remaining) == len(records):
                return False
            self._storage.save(_transactions_key(portfolio_id), remaining)
            return True


class JsonPositionStore(IPositionStore):
    """Position table persisted as one JSON object per portfolio, keyed by asset id."""

    def __init__(self, storage: IStorageService) -> None:
        self._storage = storage
        self._lock = threading.Lock()

    def _load(self, portfolio_id: str) -> Dict[str, Position]:
        records = self._storage.load(_positions_key(portfolio_id)) or {}
        return {
            asset_id: LedgerSerializer.position_from_dict(record)
            for asset_id, record in records.items()
        }

    def _save(self, portfolio_id: str, rows: Dict[str, Position]) -> None:
        key = _positions_key(portfolio_id)
        if not rows:
            self._storage.delete(key)
            return
        self._storage.save(
            key, {asset_id: LedgerSerializer.position_to_dict(row) for asset_id, row in rows.items()}
        )

    def get(self, portfolio_id: str, asset_id: str) -> Optional[Position]:
        with self._lock:
            return self._load(portfolio_id).get(asset_id)

    def upsert(self, position: Position, expected_version: Optional[int] = None) -> Position:
        with self._lock:
            rows = self._load(position.portfolio_id)
            existing = rows.get(position.asset_id)
            check_version(existing, expected_version, position.key)
            stored = next_revision(position, existing)
            rows[position.asset_id] = stored
            self._save(position.portfolio_id, rows)
            return replace(stored)

    def insert_if_absent(self, position: Position) -> Tuple[Position, bool]:
        with self._lock:
            rows = self._load(position.portfolio_id)
            existing = rows.get(position.asset_id)
            if existing is not None:
                return existing, False
            stored = next_revision(position, None)
            rows[position.asset_id] = stored
            self._save(position.portfolio_id, rows)
            return replace(stored), True

    def delete(self, portfolio_id: str, asset_id: str, expected_version: Optional[int] = None) -> None:
        with self._lock:
            rows = self._load(portfolio_id)
            check_version(rows.get(asset_id), expected_version, (portfolio_id, asset_id))
            if rows.pop(asset_id, None) is not None:
                self._save(portfolio_id, rows)

    def list_for_portfolio(self, portfolio_id: str) -> List[Position]:
        with self._lock:
            return list(self._load(portfolio_id).values())
