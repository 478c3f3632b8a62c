"""Transaction builders and Hypothesis strategies shared by the tests."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import List

from hypothesis import strategies as st

from folio.ledger.models import Transaction, TransactionType

BASE_DATE = date(2024, 1, 2)
BASE_TIME = datetime(2024, 1, 2, 9, 30)


def make_txn(
    kind: str,
    quantity: float,
    price: float,
    fees: float = 0.0,
    *,
    asset_id: str = "AAPL",
    portfolio_id: str = "pf-1",
    day: int = 0,
    seq: int = 0,
) -> Transaction:
    """Build a transaction `day` days and `seq` seconds after the base timestamp."""
    return Transaction(
        portfolio_id=portfolio_id,
        asset_id=asset_id,
        type=TransactionType(kind),
        quantity=quantity,
        price=price,
        fees=fees,
        date=BASE_DATE + timedelta(days=day),
        created_at=BASE_TIME + timedelta(days=day, seconds=seq),
    )


positive_quantity_strategy = st.floats(
    min_value=0.01, max_value=1000, allow_nan=False, allow_infinity=False
)

price_strategy = st.floats(
    min_value=0.0, max_value=100000, allow_nan=False, allow_infinity=False
)

fees_strategy = st.floats(
    min_value=0.0, max_value=25, allow_nan=False, allow_infinity=False
)

# Fractions of the held quantity to sell; 1.0 closes the position.
sell_fraction_strategy = st.sampled_from([0.25, 0.5, 0.75, 1.0])


@st.composite
def trade_history_strategy(draw, asset_id: str = "AAPL", portfolio_id: str = "pf-1", max_size: int = 12):
    """Generate a date-ordered buy/sell history that never oversells.

    Sells are drawn as a fraction of what is held at that point, so the
    position may close and reopen several times.
    """
    size = draw(st.integers(min_value=1, max_value=max_size))
    held = 0.0
    history: List[Transaction] = []
    for day in range(size):
        fees = draw(fees_strategy)
        price = draw(price_strategy)
        if held == 0.0 or draw(st.booleans()):
            quantity = draw(positive_quantity_strategy)
            history.append(make_txn("buy", quantity, price, fees, asset_id=asset_id, portfolio_id=portfolio_id, day=day))
            held += quantity
        else:
            fraction = draw(sell_fraction_strategy)
            quantity = held if fraction == 1.0 else held * fraction
            history.append(make_txn("sell", quantity, price, fees, asset_id=asset_id, portfolio_id=portfolio_id, day=day))
            held = 0.0 if fraction == 1.0 else held - quantity
    return history
