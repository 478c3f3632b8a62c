"""Property-based tests for the storage module.

Tests the JSON file storage and the transaction/position stores built on it.
"""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest
from hypothesis import given, settings, strategies as st

from folio.ledger.errors import ConcurrentModificationError, StoreError
from folio.ledger.models import Position
from folio.ledger.reconciliation import ReconciliationService
from folio.storage import (
    InMemoryPositionStore,
    JsonFileStorage,
    JsonPositionStore,
    JsonTransactionStore,
    LedgerSerializer,
)

from helpers import make_txn, trade_history_strategy


@given(key=st.text(min_size=1, max_size=50, alphabet=st.characters(whitelist_categories=("L", "N"))))
@settings(max_examples=50)
def test_storage_delete_removes_data(key: str):
    """Test that delete properly removes stored data."""
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = JsonFileStorage(tmpdir)
        test_data = {"test": "value"}

        storage.save(key, test_data)
        assert storage.load(key) == test_data

        storage.delete(key)
        assert storage.load(key) is None


def test_storage_load_nonexistent_returns_none():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = JsonFileStorage(tmpdir)
        assert storage.load("nonexistent_key") is None
        storage.delete("nonexistent_key")


def test_corrupted_file_raises_store_error(tmp_path: Path):
    storage = JsonFileStorage(tmp_path)
    (tmp_path / "positions-pf-1.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(StoreError):
        storage.load("positions-pf-1")
    with pytest.raises(StoreError):
        JsonPositionStore(storage).get("pf-1", "AAPL")


def test_unserializable_data_raises_store_error(tmp_path: Path):
    storage = JsonFileStorage(tmp_path)
    with pytest.raises(StoreError):
        storage.save("bad", {"value": object()})
    assert list(tmp_path.iterdir()) == []


def test_malformed_record_raises_store_error():
    with pytest.raises(StoreError):
        LedgerSerializer.position_from_dict({"id": "x"})
    with pytest.raises(StoreError):
        LedgerSerializer.transaction_from_dict({"id": "x", "type": "teleport"})


@given(history=trade_history_strategy())
@settings(max_examples=30)
def test_transaction_store_round_trip(history):
    """Every field of a stored transaction survives the JSON round trip."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonTransactionStore(JsonFileStorage(tmpdir))
        for txn in history:
            store.add_transaction(txn)

        reopened = JsonTransactionStore(JsonFileStorage(tmpdir))
        assert reopened.get_transactions("pf-1") == history
        assert reopened.get_transactions("pf-2") == []


def test_transaction_store_delete(tmp_path: Path):
    store = JsonTransactionStore(JsonFileStorage(tmp_path))
    keep = store.add_transaction(make_txn("buy", 1, 10))
    drop = store.add_transaction(make_txn("buy", 2, 10, day=1))

    assert store.delete_transaction("pf-1", drop.id)
    assert not store.delete_transaction("pf-1", drop.id)
    assert store.get_transactions("pf-1") == [keep]


def test_position_store_round_trip(tmp_path: Path):
    store = JsonPositionStore(JsonFileStorage(tmp_path))
    created, inserted = store.insert_if_absent(Position("pf-1", "AAPL", 1.5, 10.25, 15.375, -3.5))
    assert inserted

    reopened = JsonPositionStore(JsonFileStorage(tmp_path))
    assert reopened.get("pf-1", "AAPL") == created
    assert reopened.list_for_portfolio("pf-1") == [created]


@pytest.mark.parametrize("store_factory", ["memory", "json"])
def test_conditional_writes(tmp_path: Path, store_factory: str):
    if store_factory == "memory":
        store = InMemoryPositionStore()
    else:
        store = JsonPositionStore(JsonFileStorage(tmp_path))

    first, inserted = store.insert_if_absent(Position("pf-1", "AAPL", 1.0, 10.0, 10.0))
    assert inserted and first.version == 1

    again, inserted = store.insert_if_absent(Position("pf-1", "AAPL", 9.0, 9.0, 81.0))
    assert not inserted
    assert again.quantity == 1.0

    updated = store.upsert(first.with_state(first.state), expected_version=1)
    assert updated.version == 2
    assert updated.id == first.id

    with pytest.raises(ConcurrentModificationError):
        store.upsert(first, expected_version=1)
    with pytest.raises(ConcurrentModificationError):
        store.delete("pf-1", "AAPL", expected_version=1)

    store.delete("pf-1", "AAPL", expected_version=2)
    assert store.get("pf-1", "AAPL") is None
    with pytest.raises(ConcurrentModificationError):
        store.upsert(first, expected_version=2)
    store.delete("pf-1", "AAPL")


def test_returned_rows_are_copies():
    store = InMemoryPositionStore()
    row, _ = store.insert_if_absent(Position("pf-1", "AAPL", 1.0, 10.0, 10.0))
    row.quantity = 99.0
    assert store.get("pf-1", "AAPL").quantity == 1.0


def test_rebuild_over_json_stores(tmp_path: Path):
    storage = JsonFileStorage(tmp_path)
    transactions = JsonTransactionStore(storage)
    positions = JsonPositionStore(storage)
    transactions.add_transaction(make_txn("buy", 10, 10, day=0))
    transactions.add_transaction(make_txn("sell", 4, 12, day=1))

    result = ReconciliationService(transactions, positions).rebuild("pf-1")
    assert result.created == 1

    position = JsonPositionStore(JsonFileStorage(tmp_path)).get("pf-1", "AAPL")
    assert position.quantity == pytest.approx(6)
    assert position.realized_pl == pytest.approx(8)

    transactions.delete_transaction("pf-1", transactions.get_transactions("pf-1")[0].id)
    transactions.delete_transaction("pf-1", transactions.get_transactions("pf-1")[0].id)
    assert ReconciliationService(transactions, positions).rebuild("pf-1").deleted == 1
    assert not (tmp_path / "positions-pf-1.json").exists()
