"""folio: portfolio position and cost-basis ledger."""

__version__ = "0.1.0"

from folio.service import PortfolioLedgerService

__all__ = ["PortfolioLedgerService", "__version__"]
