"""Display-side profit/loss analytics.

Nothing here feeds back into the ledger. Unrealized figures need a current
price, which comes from a QuoteProvider supplied by the caller.
"""

import csv
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from .cost_basis import CostBasisCalculator, sort_transactions
from .models import Position, Transaction, TransactionType


class QuoteProvider(ABC):
    """Interface for current market prices."""

    @abstractmethod
    def get_current_price(self, asset_id: str) -> Optional[float]:
        """Get the latest price for an asset, or None if unavailable."""
        ...


class StaticQuoteProvider(QuoteProvider):
    """Price cache fed by whatever quote source the caller runs."""

    def __init__(self, prices: Optional[Mapping[str, float]] = None) -> None:
        self._prices: Dict[str, float] = dict(prices or {})

    def update_price(self, asset_id: str, price: float) -> None:
        self._prices[asset_id] = float(price)

    def get_current_price(self, asset_id: str) -> Optional[float]:
        return self._prices.get(asset_id)

    def get_prices_snapshot(self) -> Dict[str, float]:
        return dict(self._prices)


@dataclass
class PositionPL:
    """Profit/loss view of one position at a given price.

    Attributes:
        current_price: Price used for valuation
        market_value: quantity * current_price
        unrealized_pl: market_value - total_cost_basis
        unrealized_pl_percent: unrealized_pl relative to cost basis, in percent
        total_return: realized_pl + unrealized_pl
    """
    portfolio_id: str
    asset_id: str
    quantity: float
    average_cost_basis: float
    current_price: float
    market_value: float
    unrealized_pl: float
    unrealized_pl_percent: float
    realized_pl: float
    total_return: float
    total_return_percent: float


@dataclass
class PortfolioSummary:
    """Aggregate of the positions that could be priced.

    Positions without a quote are valued at cost and listed in `unpriced`.
    """
    market_value: float = 0.0
    total_cost_basis: float = 0.0
    unrealized_pl: float = 0.0
    realized_pl: float = 0.0
    positions: List[PositionPL] = field(default_factory=list)
    unpriced: List[str] = field(default_factory=list)

    @property
    def unrealized_pl_percent(self) -> float:
        return _percent(self.unrealized_pl, self.total_cost_basis)


def _percent(amount: float, base: float) -> float:
    if base == 0.0:
        return 0.0
    return amount / base * 100.0


def position_pl(position: Position, current_price: float) -> PositionPL:
    """Value a position at current_price."""
    market_value = position.quantity * current_price
    unrealized = market_value - position.total_cost_basis
    total_return = position.realized_pl + unrealized
    return PositionPL(
        portfolio_id=position.portfolio_id,
        asset_id=position.asset_id,
        quantity=position.quantity,
        average_cost_basis=position.average_cost_basis,
        current_price=current_price,
        market_value=market_value,
        unrealized_pl=unrealized,
        unrealized_pl_percent=_percent(unrealized, position.total_cost_basis),
        realized_pl=position.realized_pl,
        total_return=total_return,
        total_return_percent=_percent(total_return, position.total_cost_basis),
    )


def portfolio_summary(positions: Iterable[Position], quotes: QuoteProvider) -> PortfolioSummary:
    summary = PortfolioSummary()
    for position in positions:
        summary.total_cost_basis += position.total_cost_basis
        summary.realized_pl += position.realized_pl
        price = quotes.get_current_price(position.asset_id)
        if price is None:
            summary.market_value += position.total_cost_basis
            summary.unpriced.append(position.asset_id)
            continue
        pl = position_pl(position, price)
        summary.positions.append(pl)
        summary.market_value += pl.market_value
        summary.unrealized_pl += pl.unrealized_pl
    return summary


def realized_pl_by_asset(
    transactions: Iterable[Transaction], calculator: Optional[CostBasisCalculator] = None
) -> Dict[str, float]:
    """Lifetime realized P&L per asset, closed lots included.

    Raises:
        OversellError: An asset's history sells more than it holds
    """
    calculator = calculator or CostBasisCalculator()
    by_asset: Dict[str, List[Transaction]] = defaultdict(list)
    for txn in transactions:
        by_asset[txn.asset_id].append(txn)
    return {
        asset_id: calculator.fold(sort_transactions(history)).lifetime_realized_pl
        for asset_id, history in by_asset.items()
    }


def dividend_income(transactions: Iterable[Transaction]) -> float:
    return sum((t.total_amount for t in transactions if t.type is TransactionType.DIVIDEND), 0.0)


def total_fees(transactions: Iterable[Transaction]) -> float:
    return sum((t.fees for t in transactions), 0.0)


def trading_volume(transactions: Iterable[Transaction]) -> float:
    """Gross value of buys and sells, fees excluded."""
    return sum((t.quantity * t.price for t in transactions if t.type.affects_position), 0.0)


def net_cash_flow(transactions: Iterable[Transaction]) -> float:
    """Cash received from sells and dividends minus cash spent on buys."""
    flow = 0.0
    for txn in transactions:
        if txn.type is TransactionType.BUY:
            flow -= txn.total_amount
        elif txn.type in (TransactionType.SELL, TransactionType.DIVIDEND):
            flow += txn.total_amount
    return flow


def export_to_csv(transactions: Iterable[Transaction], filepath: str) -> None:
    """Export transaction history to a CSV file, oldest first."""
    fieldnames = [
        "id", "portfolio_id", "asset_id", "type", "quantity", "price", "fees",
        "total_amount", "date", "created_at",
    ]

    with open(filepath, "w", newline="", encoding="utf-8") as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=fieldnames)
        writer.writeheader()

        for txn in sort_transactions(transactions):
            writer.writerow({
                "id": txn.id,
                "portfolio_id": txn.portfolio_id,
                "asset_id": txn.asset_id,
                "type": txn.type.value,
                "quantity": repr(txn.quantity),
                "price": repr(txn.price),
                "fees": repr(txn.fees),
                "total_amount": repr(txn.total_amount),
                "date": txn.date.isoformat(),
                "created_at": txn.created_at.isoformat(),
            })
