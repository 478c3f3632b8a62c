"""Transaction and position store interfaces with in-memory implementations.

The ledger holds no state of its own; everything it reads or writes goes
through these interfaces. Position writes are atomic per
(portfolio_id, asset_id) and can be made conditional on the version that was
read, which is how concurrent apply() calls avoid lost updates.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from folio.ledger.errors import ConcurrentModificationError
from folio.ledger.models import Position, Transaction


class ITransactionStore(ABC):
    """Append-only log of portfolio transactions."""

    @abstractmethod
    def get_transactions(self, portfolio_id: str) -> List[Transaction]:
        """Get every transaction of a portfolio, in insertion order."""
        ...

    @abstractmethod
    def add_transaction(self, transaction: Transaction) -> Transaction:
        """Append a transaction to its portfolio's log."""
        ...

    @abstractmethod
    def delete_transaction(self, portfolio_id: str, transaction_id: str) -> bool:
        """Remove a transaction. Returns False if it did not exist."""
        ...


class IPositionStore(ABC):
    """Current positions keyed by (portfolio_id, asset_id)."""

    @abstractmethod
    def get(self, portfolio_id: str, asset_id: str) -> Optional[Position]:
        """Get the stored position, or None."""
        ...

    @abstractmethod
    def upsert(self, position: Position, expected_version: Optional[int] = None) -> Position:
        """Create or replace the row for the position's key.

        Args:
            position: Row to store
            expected_version: When given, the stored row must exist and carry
                this version, otherwise ConcurrentModificationError is raised

        Returns:
            The stored row with its version bumped
        """
        ...

    @abstractmethod
    def insert_if_absent(self, position: Position) -> Tuple[Position, bool]:
        """Insert the row unless one exists for its key.

        Returns:
            (stored row, True) when inserted, (existing row, False) on conflict
        """
        ...

    @abstractmethod
    def delete(self, portfolio_id: str, asset_id: str, expected_version: Optional[int] = None) -> None:
        """Delete the row. Missing rows are ignored unless expected_version is given."""
        ...

    @abstractmethod
    def list_for_portfolio(self, portfolio_id: str) -> List[Position]:
        """Get every stored position of a portfolio."""
        ...


def check_version(existing: Optional[Position], expected_version: Optional[int], key: Tuple[str, str]) -> None:
    """Raise ConcurrentModificationError when a conditional write sees a different row."""
    if expected_version is None:
        return
    if existing is None:
        raise ConcurrentModificationError(f"Position {key} was deleted concurrently")
    if existing.version != expected_version:
        raise ConcurrentModificationError(
            f"Position {key} is at version {existing.version}, expected {expected_version}"
        )


def next_revision(position: Position, existing: Optional[Position]) -> Position:
    """Row to persist: keeps the identity of an existing row and bumps the version."""
    if existing is None:
        return replace(position, version=position.version + 1)
    return replace(
        position,
        id=existing.id,
        created_at=existing.created_at,
        updated_at=datetime.now(),
        version=existing.version + 1,
    )


class InMemoryTransactionStore(ITransactionStore):
    """Thread-safe transaction log held in process memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._transactions: Dict[str, List[Transaction]] = {}

    def get_transactions(self, portfolio_id: str) -> List[Transaction]:
        with self._lock:
            return list(self._transactions.get(portfolio_id, []))

    def add_transaction(self, transaction: Transaction) -> Transaction:
        with self._lock:
            self._transactions.setdefault(transaction.portfolio_id, []).append(transaction)
        return transaction

    def delete_transaction(self, portfolio_id: str, transaction_id: str) -> bool:
        with self._lock:
            log = self._transactions.get(portfolio_id, [])
            for index, txn in enumerate(log):
                if txn.id == transaction_id:
                    del log[index]
                    return True
        return False


class InMemoryPositionStore(IPositionStore):
    """Thread-safe position table held in process memory.

    Rows are copied on the way in and out so callers never share mutable
    state with the store.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: Dict[Tuple[str, str], Position] = {}

    def get(self, portfolio_id: str, asset_id: str) -> Optional[Position]:
        with self._lock:
            row = self._rows.get((portfolio_id, asset_id))
            return replace(row) if row is not None else None

    def upsert(self, position: Position, expected_version: Optional[int] = None) -> Position:
        with self._lock:
            existing = self._rows.get(position.key)
            check_version(existing, expected_version, position.key)
            stored = next_revision(position, existing)
            self._rows[position.key] = stored
            return replace(stored)

    def insert_if_absent(self, position: Position) -> Tuple[Position, bool]:
        with self._lock:
            existing = self._rows.get(position.key)
            if existing is not None:
                return replace(existing), False
            stored = next_revision(position, None)
            self._rows[position.key] = stored
            return replace(stored), True

    def delete(self, portfolio_id: str, asset_id: str, expected_version: Optional[int] = None) -> None:
        key = (portfolio_id, asset_id)
        with self._lock:
            check_version(self._rows.get(key), expected_version, key)
            self._rows.pop(key, None)

    def list_for_portfolio(self, portfolio_id: str) -> List[Position]:
        with self._lock:
            return [replace(row) for key, row in self._rows.items() if key[0] == portfolio_id]
