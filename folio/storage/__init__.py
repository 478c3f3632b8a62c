# Storage module
"""Persistence for transactions and positions."""

from folio.storage.storage import IStorageService, JsonFileStorage
from folio.storage.stores import (
    IPositionStore,
    ITransactionStore,
    InMemoryPositionStore,
    InMemoryTransactionStore,
)
from folio.storage.json_stores import JsonPositionStore, JsonTransactionStore
from folio.storage.serializers import LedgerSerializer

__all__ = [
    "IStorageService",
    "JsonFileStorage",
    "IPositionStore",
    "ITransactionStore",
    "InMemoryPositionStore",
    "InMemoryTransactionStore",
    "JsonPositionStore",
    "JsonTransactionStore",
    "LedgerSerializer",
]
