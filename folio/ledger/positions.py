"""Incremental position maintenance.

PositionLedger applies one buy or sell at a time to the stored position of a
(portfolio, asset) pair. It keeps nothing between calls: every apply reads the
current row, runs one step of the cost-basis arithmetic and writes the result
back with a version-conditional upsert or delete.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional, Union

from folio.storage.stores import IPositionStore

from .cost_basis import CostBasisCalculator
from .errors import ConcurrentModificationError, InvalidTransactionError, PositionNotFoundError
from .models import ZERO_STATE, Position, PositionState, Transaction, TransactionType, validate_trade

logger = logging.getLogger(__name__)


def _coerce_type(transaction_type: Union[TransactionType, str]) -> TransactionType:
    if isinstance(transaction_type, TransactionType):
        return transaction_type
    try:
        return TransactionType(str(transaction_type).lower())
    except ValueError as e:
        raise InvalidTransactionError(f"Unknown transaction type {transaction_type!r}") from e


class PositionLedger:
    """Owns the incremental update path for stored positions.

    Concurrent applies for the same pair are serialized by the store: a new
    row is created with insert_if_absent, and updates or deletes only succeed
    against the version that was read. A lost race re-reads and recomputes,
    up to max_retries times.
    """

    def __init__(
        self,
        positions: IPositionStore,
        calculator: Optional[CostBasisCalculator] = None,
        max_retries: int = 3,
    ) -> None:
        """Initialize the ledger.

        Args:
            positions: Store holding the position rows
            calculator: Cost-basis arithmetic; a default one is created if omitted
            max_retries: Extra attempts after a lost write race
        """
        self._positions = positions
        self._calculator = calculator or CostBasisCalculator()
        self._max_retries = max_retries

    def apply(
        self,
        portfolio_id: str,
        asset_id: str,
        transaction_type: Union[TransactionType, str],
        quantity: float,
        price: float,
        fees: float = 0.0,
        trade_date: Optional[date] = None,
    ) -> Optional[Position]:
        """Apply one buy or sell to the stored position.

        Args:
            portfolio_id: Portfolio the trade belongs to
            asset_id: Asset traded
            transaction_type: "buy" or "sell"
            quantity: Units traded, > 0
            price: Per-unit price, >= 0
            fees: Commission, >= 0
            trade_date: Open date for a newly created position (today if omitted)

        Returns:
            The updated position, or None when the sell closed it and the
            row was deleted

        Raises:
            InvalidTransactionError: Bad numbers or a type other than buy/sell
            OversellError: The sell exceeds the units held
            PositionNotFoundError: Sell with no stored position
            ConcurrentModificationError: Still losing the write race after all retries
            StoreError: The position store failed
        """
        txn_type = _coerce_type(transaction_type)
        if not txn_type.affects_position:
            raise InvalidTransactionError(
                f"{txn_type.value} transactions do not change positions"
            )
        validate_trade(quantity, price, fees)
        trade_date = trade_date or date.today()

        attempt = 0
        while True:
            try:
                return self._apply_once(
                    portfolio_id, asset_id, txn_type, quantity, price, fees, trade_date
                )
            except ConcurrentModificationError as e:
                if attempt >= self._max_retries:
                    logger.error(
                        f"Giving up on {txn_type.value} {asset_id} in {portfolio_id} "
                        f"after {attempt + 1} attempts: {e}"
                    )
                    raise
                attempt += 1
                logger.warning(
                    f"Position {asset_id} in {portfolio_id} changed concurrently, "
                    f"retrying ({attempt}/{self._max_retries})"
                )

    def apply_transaction(self, transaction: Transaction) -> Optional[Position]:
        """Apply a recorded Transaction through the incremental path."""
        return self.apply(
            transaction.portfolio_id,
            transaction.asset_id,
            transaction.type,
            transaction.quantity,
            transaction.price,
            transaction.fees,
            transaction.date,
        )

    def _next_state(
        self,
        current: PositionState,
        asset_id: str,
        txn_type: TransactionType,
        quantity: float,
        price: float,
        fees: float,
        trade_date: date,
    ) -> PositionState:
        if txn_type is TransactionType.BUY:
            return self._calculator.apply_buy(current, quantity, price, fees, trade_date)
        return self._calculator.apply_sell(current, quantity, price, fees, asset_id)

    def _apply_once(
        self,
        portfolio_id: str,
        asset_id: str,
        txn_type: TransactionType,
        quantity: float,
        price: float,
        fees: float,
        trade_date: date,
    ) -> Optional[Position]:
        existing = self._positions.get(portfolio_id, asset_id)

        if existing is None:
            if txn_type is TransactionType.SELL:
                raise PositionNotFoundError(portfolio_id, asset_id, quantity)
            new_state = self._next_state(
                ZERO_STATE, asset_id, txn_type, quantity, price, fees, trade_date
            )
            created, inserted = self._positions.insert_if_absent(
                Position.from_state(portfolio_id, asset_id, new_state)
            )
            if inserted:
                logger.info(
                    f"Opened position {asset_id} in {portfolio_id}: "
                    f"{created.quantity} @ {created.average_cost_basis}"
                )
                return created
            # Another writer created the row first; apply against theirs.
            existing = created

        new_state = self._next_state(
            existing.state, asset_id, txn_type, quantity, price, fees, trade_date
        )
        if new_state.is_flat:
            self._positions.delete(portfolio_id, asset_id, expected_version=existing.version)
            logger.info(
                f"Closed position {asset_id} in {portfolio_id} "
                f"(realized P&L {new_state.realized_pl:.2f})"
            )
            return None
        return self._positions.upsert(existing.with_state(new_state), expected_version=existing.version)
