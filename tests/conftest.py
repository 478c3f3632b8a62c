from __future__ import annotations

import pytest

from folio.service import PortfolioLedgerService
from folio.storage import InMemoryPositionStore, InMemoryTransactionStore


@pytest.fixture
def transaction_store() -> InMemoryTransactionStore:
    return InMemoryTransactionStore()


@pytest.fixture
def position_store() -> InMemoryPositionStore:
    return InMemoryPositionStore()


@pytest.fixture
def service(transaction_store, position_store) -> PortfolioLedgerService:
    return PortfolioLedgerService(transaction_store, position_store)
