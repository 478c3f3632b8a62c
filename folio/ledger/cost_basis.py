"""Weighted-average cost basis arithmetic.

Pure functions over PositionState: no I/O and no shared state. The same
single-step formulas back both the incremental ledger and the full rebuild,
which is what keeps the two paths in agreement.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Sequence

from .errors import OversellError, UnsortedHistoryError
from .models import EPSILON, ZERO_STATE, PositionState, Transaction, TransactionType, is_close


@dataclass(frozen=True)
class FoldResult:
    """End state of replaying one asset's history.

    Attributes:
        state: Position state after the last transaction; ZERO_STATE if flat
        lifetime_realized_pl: Realized P&L across every lot, closed ones included
        applied: Number of buy/sell transactions that moved the state
    """
    state: PositionState
    lifetime_realized_pl: float = 0.0
    applied: int = 0


def sort_transactions(transactions: Iterable[Transaction]) -> List[Transaction]:
    """Order transactions by (date, created_at), falling back to id for a stable total order."""
    return sorted(transactions, key=lambda t: t.sort_key)


class CostBasisCalculator:
    """Folds buy/sell transactions into a weighted-average position.

    Buys blend into the average cost; sells realize P&L against the current
    average and leave it unchanged for the remaining units.
    """

    def __init__(self, epsilon: float = EPSILON) -> None:
        self._epsilon = epsilon

    @property
    def epsilon(self) -> float:
        return self._epsilon

    def apply_buy(
        self,
        state: PositionState,
        quantity: float,
        price: float,
        fees: float = 0.0,
        trade_date: Optional[date] = None,
    ) -> PositionState:
        """Add units to a position and re-blend its average cost.

        Args:
            state: State before the buy
            quantity: Units bought
            price: Per-unit price
            fees: Commission, added to the cost of the lot
            trade_date: Becomes the open date when the position was flat

        Returns:
            State after the buy; realized P&L is carried over untouched
        """
        total_amount = quantity * price + fees
        new_total_cost_basis = state.quantity * state.average_cost_basis + total_amount
        new_quantity = state.quantity + quantity

        average_cost_basis = state.average_cost_basis
        total_cost_basis = state.total_cost_basis
        if new_quantity > 0.0:
            average_cost_basis = new_total_cost_basis / new_quantity
            total_cost_basis = new_total_cost_basis

        open_date = state.open_date if state.quantity > 0.0 else trade_date
        return PositionState(
            quantity=new_quantity,
            average_cost_basis=average_cost_basis,
            total_cost_basis=total_cost_basis,
            realized_pl=state.realized_pl,
            open_date=open_date,
        )

    def apply_sell(
        self,
        state: PositionState,
        quantity: float,
        price: float,
        fees: float = 0.0,
        asset_id: str = "",
    ) -> PositionState:
        """Remove units from a position and realize P&L against the average cost.

        Selling the whole holding (within epsilon) leaves quantity and total
        cost basis at exactly 0.0. The close is costed on every unit held, so
        the cost of a sub-epsilon residual lands in realized P&L instead of
        disappearing with the position.

        Raises:
            OversellError: quantity exceeds the units held
        """
        held = state.quantity
        closes_position = is_close(quantity, held, self._epsilon)
        if quantity > held and not closes_position:
            raise OversellError(asset_id, quantity, held)

        units_removed = held if closes_position else quantity
        cost_of_sold_units = units_removed * state.average_cost_basis
        sale_proceeds = quantity * price - fees
        realized_pl = state.realized_pl + (sale_proceeds - cost_of_sold_units)

        if closes_position:
            return PositionState(
                quantity=0.0,
                average_cost_basis=state.average_cost_basis,
                total_cost_basis=0.0,
                realized_pl=realized_pl,
                open_date=state.open_date,
            )
        return PositionState(
            quantity=held - quantity,
            average_cost_basis=state.average_cost_basis,
            total_cost_basis=state.total_cost_basis - cost_of_sold_units,
            realized_pl=realized_pl,
            open_date=state.open_date,
        )

    def step(self, state: PositionState, transaction: Transaction) -> PositionState:
        """Apply one transaction. Types other than buy and sell leave the state as is."""
        if transaction.type is TransactionType.BUY:
            transaction.validate()
            return self.apply_buy(
                state, transaction.quantity, transaction.price, transaction.fees, transaction.date
            )
        if transaction.type is TransactionType.SELL:
            transaction.validate()
            return self.apply_sell(
                state, transaction.quantity, transaction.price, transaction.fees, transaction.asset_id
            )
        return state

    def fold(self, transactions: Sequence[Transaction]) -> FoldResult:
        """Replay an asset's full history from a zero state.

        A position that returns to zero is closed: the next buy starts from a
        fresh state, exactly as the incremental path deletes and recreates the
        row. Realized P&L of closed lots is reported in lifetime_realized_pl.

        Args:
            transactions: One asset's history sorted by (date, created_at)

        Raises:
            UnsortedHistoryError: transactions are not in order
            OversellError: a sell exceeds the units held at that point
            InvalidTransactionError: a buy or sell carries invalid numbers
        """
        state = ZERO_STATE
        closed_realized_pl = 0.0
        applied = 0
        previous: Optional[Transaction] = None

        for transaction in transactions:
            if previous is not None and (transaction.date, transaction.created_at) < (
                previous.date,
                previous.created_at,
            ):
                raise UnsortedHistoryError(
                    f"Transaction {transaction.id} is dated before {previous.id}"
                )
            previous = transaction

            if not transaction.type.affects_position:
                continue
            state = self.step(state, transaction)
            applied += 1
            if state.is_flat:
                closed_realized_pl += state.realized_pl
                state = ZERO_STATE

        return FoldResult(
            state=state,
            lifetime_realized_pl=closed_realized_pl + state.realized_pl,
            applied=applied,
        )
