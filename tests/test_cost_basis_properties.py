"""Property-based tests for the weighted-average cost basis arithmetic.

Tests the pure fold and single-step formulas using Hypothesis.
"""

from __future__ import annotations

import math

import pytest
from hypothesis import given, settings, strategies as st

from folio.ledger.cost_basis import CostBasisCalculator, sort_transactions
from folio.ledger.errors import InvalidTransactionError, OversellError, UnsortedHistoryError
from folio.ledger.models import ZERO_STATE, PositionState

from helpers import (
    fees_strategy,
    make_txn,
    positive_quantity_strategy,
    price_strategy,
    trade_history_strategy,
)

calculator = CostBasisCalculator()


def test_weighted_average_scenario():
    history = [
        make_txn("buy", 100, 10, day=0),
        make_txn("buy", 50, 20, day=1),
    ]
    state = calculator.fold(history).state
    assert state.quantity == 150
    assert state.average_cost_basis == pytest.approx(2000 / 150)
    assert state.total_cost_basis == pytest.approx(2000)
    assert state.realized_pl == 0.0

    history.append(make_txn("sell", 100, 15, day=2))
    state = calculator.fold(history).state
    assert state.quantity == pytest.approx(50)
    assert state.average_cost_basis == pytest.approx(13.333333, rel=1e-6)
    assert state.realized_pl == pytest.approx(166.67, abs=0.01)
    assert state.total_cost_basis == pytest.approx(50 * 2000 / 150)


def test_buy_fees_are_capitalized_and_sell_fees_reduce_proceeds():
    state = calculator.apply_buy(ZERO_STATE, 10, 100, fees=5)
    assert state.average_cost_basis == pytest.approx(100.5)
    assert state.total_cost_basis == pytest.approx(1005)

    state = calculator.apply_sell(state, 4, 110, fees=2)
    # proceeds 438, cost 402
    assert state.realized_pl == pytest.approx(36)
    assert state.quantity == pytest.approx(6)
    assert state.average_cost_basis == pytest.approx(100.5)


def test_buy_sets_open_date_only_when_flat():
    first = make_txn("buy", 1, 10, day=0)
    second = make_txn("buy", 1, 12, day=5)
    state = calculator.fold([first, second]).state
    assert state.open_date == first.date


def test_sell_more_than_held_raises_oversell():
    state = calculator.apply_buy(ZERO_STATE, 50, 10)
    with pytest.raises(OversellError) as excinfo:
        calculator.apply_sell(state, 60, 10, asset_id="AAPL")
    assert excinfo.value.requested == 60
    assert excinfo.value.held == 50
    assert excinfo.value.asset_id == "AAPL"


def test_fold_raises_oversell_at_violating_step():
    history = [
        make_txn("buy", 10, 10, day=0),
        make_txn("sell", 5, 10, day=1),
        make_txn("sell", 6, 10, day=2),
    ]
    with pytest.raises(OversellError):
        calculator.fold(history)


def test_selling_within_epsilon_of_holding_closes_exactly():
    state = calculator.apply_buy(ZERO_STATE, 0.1, 10)
    state = calculator.apply_buy(state, 0.2, 10)
    # 0.1 + 0.2 != 0.3 in binary floating point
    closed = calculator.apply_sell(state, 0.3, 12)
    assert closed.quantity == 0.0
    assert closed.total_cost_basis == 0.0
    assert closed.is_flat


def test_close_within_epsilon_realizes_cost_of_every_unit_held():
    state = calculator.apply_buy(ZERO_STATE, 10, 10)
    closed = calculator.apply_sell(state, 9.9999999, 10)

    assert closed.is_flat
    # proceeds 99.999999 against the full 100.0 of cost
    assert closed.realized_pl == pytest.approx(-1e-6, abs=1e-12)


def test_fold_ignores_non_position_types():
    history = [
        make_txn("buy", 10, 10, day=0),
        make_txn("dividend", 10, 0.5, day=1),
        make_txn("split", 2, 0, day=2),
    ]
    result = calculator.fold(history)
    assert result.applied == 1
    assert result.state.quantity == 10
    assert result.state.realized_pl == 0.0


def test_fold_rejects_unsorted_history():
    history = [make_txn("buy", 1, 10, day=3), make_txn("buy", 1, 10, day=1)]
    with pytest.raises(UnsortedHistoryError):
        calculator.fold(history)


def test_fold_rejects_invalid_numbers():
    with pytest.raises(InvalidTransactionError):
        calculator.fold([make_txn("buy", 0.0, 10)])
    with pytest.raises(InvalidTransactionError):
        calculator.fold([make_txn("buy", 1, -1)])
    with pytest.raises(InvalidTransactionError):
        calculator.fold([make_txn("buy", 1, 1, fees=math.nan)])


def test_fold_resets_after_close_and_tracks_lifetime_realized():
    history = [
        make_txn("buy", 10, 10, day=0),
        make_txn("sell", 10, 15, day=1),
        make_txn("buy", 5, 20, day=2),
        make_txn("sell", 1, 18, day=3),
    ]
    result = calculator.fold(history)
    assert result.state.quantity == pytest.approx(4)
    assert result.state.average_cost_basis == pytest.approx(20)
    assert result.state.realized_pl == pytest.approx(-2)
    assert result.state.open_date == history[2].date
    assert result.lifetime_realized_pl == pytest.approx(48)


def test_sort_transactions_breaks_same_date_ties_by_created_at():
    later = make_txn("sell", 1, 10, day=1, seq=30)
    earlier = make_txn("buy", 1, 10, day=1, seq=10)
    previous_day = make_txn("buy", 1, 10, day=0, seq=50)
    assert sort_transactions([later, earlier, previous_day]) == [previous_day, earlier, later]


@given(history=trade_history_strategy())
@settings(max_examples=200)
def test_total_cost_basis_matches_quantity_times_average(history):
    """
    After every step, a position holding units keeps total cost basis equal to
    quantity times average cost basis, and quantity never goes negative.
    """
    state = ZERO_STATE
    for txn in history:
        state = calculator.step(state, txn)
        assert state.quantity >= 0.0
        if state.quantity > 0.0:
            assert math.isclose(
                state.total_cost_basis,
                state.quantity * state.average_cost_basis,
                rel_tol=1e-6,
                abs_tol=1e-6,
            )
        if state.is_flat:
            state = ZERO_STATE


@given(
    quantity=positive_quantity_strategy,
    price=price_strategy,
    fees=fees_strategy,
    realized=st.floats(min_value=-1e6, max_value=1e6, allow_nan=False),
)
@settings(max_examples=100)
def test_buy_never_changes_realized_pl(quantity, price, fees, realized):
    """A buy carries realized P&L over untouched, whatever the starting state."""
    start = PositionState(quantity=3.0, average_cost_basis=7.0, total_cost_basis=21.0, realized_pl=realized)
    assert calculator.apply_buy(start, quantity, price, fees).realized_pl == realized


@given(
    quantity=positive_quantity_strategy,
    price=price_strategy,
    fraction=st.floats(min_value=0.01, max_value=0.99),
)
@settings(max_examples=100)
def test_partial_sell_keeps_average_cost(quantity, price, fraction):
    """Selling part of a holding leaves the average cost of the remaining units unchanged."""
    state = calculator.apply_buy(ZERO_STATE, quantity, price)
    after = calculator.apply_sell(state, quantity * fraction, price * 1.1)
    assert after.average_cost_basis == state.average_cost_basis
    assert after.quantity == pytest.approx(quantity * (1 - fraction))


@given(history=trade_history_strategy())
@settings(max_examples=100)
def test_fold_is_deterministic(history):
    assert calculator.fold(history) == calculator.fold(list(history))
