"""Service facade exposing the ledger to API and ingestion layers."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Dict, List, Optional, Union

from folio.ledger.cost_basis import CostBasisCalculator, sort_transactions
from folio.ledger.models import Position, RebuildResult, Transaction, TransactionType
from folio.ledger.positions import PositionLedger
from folio.ledger.reconciliation import ReconciliationService
from folio.storage.json_stores import JsonPositionStore, JsonTransactionStore
from folio.storage.storage import JsonFileStorage
from folio.storage.stores import (
    InMemoryPositionStore,
    InMemoryTransactionStore,
    IPositionStore,
    ITransactionStore,
)

if TYPE_CHECKING:
    from folio.config import LedgerSettings

logger = logging.getLogger(__name__)


class PortfolioLedgerService:
    """Entry point for applying trades and recalculating positions.

    Only this service (through PositionLedger and ReconciliationService)
    writes position rows.
    """

    def __init__(
        self,
        transactions: ITransactionStore,
        positions: IPositionStore,
        calculator: Optional[CostBasisCalculator] = None,
        max_apply_retries: int = 3,
    ) -> None:
        self._transactions = transactions
        self._positions = positions
        self._calculator = calculator or CostBasisCalculator()
        self._ledger = PositionLedger(positions, self._calculator, max_retries=max_apply_retries)
        self._reconciliation = ReconciliationService(
            transactions, positions, self._calculator, max_retries=max_apply_retries
        )
        # serializes this service's own log-then-position writes
        self._write_lock = threading.RLock()

    @classmethod
    def from_settings(cls, settings: "LedgerSettings") -> "PortfolioLedgerService":
        """Wire stores from settings: JSON files under data_dir, or memory when unset."""
        if settings.data_dir is not None:
            storage = JsonFileStorage(settings.data_dir)
            transactions: ITransactionStore = JsonTransactionStore(storage)
            positions: IPositionStore = JsonPositionStore(storage)
        else:
            transactions = InMemoryTransactionStore()
            positions = InMemoryPositionStore()
        return cls(
            transactions,
            positions,
            CostBasisCalculator(settings.epsilon),
            max_apply_retries=settings.max_apply_retries,
        )

    @property
    def ledger(self) -> PositionLedger:
        return self._ledger

    @property
    def reconciliation(self) -> ReconciliationService:
        return self._reconciliation

    def apply_transaction(
        self,
        portfolio_id: str,
        asset_id: str,
        transaction_type: Union[TransactionType, str],
        quantity: float,
        price: float,
        fees: float = 0.0,
    ) -> Optional[Position]:
        """Apply one buy or sell to the stored position. See PositionLedger.apply."""
        return self._ledger.apply(portfolio_id, asset_id, transaction_type, quantity, price, fees)

    def recalculate_positions(
        self, portfolio_id: str, cancel_event: Optional[threading.Event] = None
    ) -> Dict[str, int]:
        """Rebuild a portfolio and return its created/updated/deleted counts."""
        return self.rebuild(portfolio_id, cancel_event).as_counts()

    def rebuild(
        self, portfolio_id: str, cancel_event: Optional[threading.Event] = None
    ) -> RebuildResult:
        """Rebuild a portfolio and return the full result, failures included."""
        with self._write_lock:
            return self._reconciliation.rebuild(portfolio_id, cancel_event)

    def record_transaction(self, transaction: Transaction) -> Optional[Position]:
        """Append a transaction to the log and bring its position up to date.

        The log entry is written first. For an in-order buy or sell the
        incremental apply follows, and if it fails the entry is removed again
        so the log and the position never disagree about the trade. A buy or
        sell dated before the asset's latest recorded transaction is checked
        against the replayed history, appended, and followed by a rebuild so
        that the position reflects date order rather than arrival order.
        Other transaction types are only appended.

        Returns:
            The asset's position afterwards, or None if it holds no units

        Raises:
            InvalidTransactionError: Bad numbers
            OversellError: The transaction would oversell at its point in history
            StoreError: A store failed
        """
        transaction.validate()
        with self._write_lock:
            if not transaction.type.affects_position:
                self._transactions.add_transaction(transaction)
                return self._positions.get(transaction.portfolio_id, transaction.asset_id)

            history = [
                txn
                for txn in self._transactions.get_transactions(transaction.portfolio_id)
                if txn.asset_id == transaction.asset_id
            ]
            latest = max((txn.sort_key for txn in history), default=None)

            if latest is None or transaction.sort_key >= latest:
                self._transactions.add_transaction(transaction)
                try:
                    return self._ledger.apply_transaction(transaction)
                except Exception:
                    self._transactions.delete_transaction(transaction.portfolio_id, transaction.id)
                    raise

            logger.info(
                f"Back-dated {transaction.type.value} for {transaction.asset_id} "
                f"in {transaction.portfolio_id}, rebuilding"
            )
            self._calculator.fold(sort_transactions(history + [transaction]))
            self._transactions.add_transaction(transaction)
            self._reconciliation.rebuild(transaction.portfolio_id)
            return self._positions.get(transaction.portfolio_id, transaction.asset_id)

    def get_positions(self, portfolio_id: str) -> List[Position]:
        """Stored positions of a portfolio, ordered by asset id."""
        return sorted(self._positions.list_for_portfolio(portfolio_id), key=lambda p: p.asset_id)

    def get_position(self, portfolio_id: str, asset_id: str) -> Optional[Position]:
        return self._positions.get(portfolio_id, asset_id)
