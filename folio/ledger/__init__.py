# Ledger module
"""Position and cost-basis ledger: models, arithmetic, incremental updates and rebuilds."""

from .errors import (
    ConcurrentModificationError,
    InvalidTransactionError,
    LedgerError,
    OversellError,
    PositionNotFoundError,
    StoreError,
    UnsortedHistoryError,
)
from .models import (
    EPSILON,
    ZERO_STATE,
    AssetFailure,
    Position,
    PositionState,
    RebuildResult,
    Transaction,
    TransactionType,
)
from .cost_basis import CostBasisCalculator, FoldResult, sort_transactions
from .positions import PositionLedger
from .reconciliation import ReconciliationService
from .analytics import (
    PortfolioSummary,
    PositionPL,
    QuoteProvider,
    StaticQuoteProvider,
    portfolio_summary,
    position_pl,
)

__all__ = [
    "ConcurrentModificationError",
    "InvalidTransactionError",
    "LedgerError",
    "OversellError",
    "PositionNotFoundError",
    "StoreError",
    "UnsortedHistoryError",
    "EPSILON",
    "ZERO_STATE",
    "AssetFailure",
    "Position",
    "PositionState",
    "RebuildResult",
    "Transaction",
    "TransactionType",
    "CostBasisCalculator",
    "FoldResult",
    "sort_transactions",
    "PositionLedger",
    "ReconciliationService",
    "PortfolioSummary",
    "PositionPL",
    "QuoteProvider",
    "StaticQuoteProvider",
    "portfolio_summary",
    "position_pl",
]
