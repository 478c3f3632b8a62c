"""Full rebuild of a portfolio's positions from its transaction history.

The rebuild is the authority over the incremental path: it replays every
asset's complete history and makes the position store match the result.
Each asset is committed on its own, so an interrupted run leaves every asset
either fully rebuilt or exactly as it was before.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Dict, List, Optional

from folio.storage.stores import IPositionStore, ITransactionStore

from .cost_basis import CostBasisCalculator, sort_transactions
from .errors import (
    ConcurrentModificationError,
    InvalidTransactionError,
    OversellError,
    UnsortedHistoryError,
)
from .models import AssetFailure, Position, PositionState, RebuildResult, Transaction

logger = logging.getLogger(__name__)


class ReconciliationService:
    """Recomputes positions from scratch and reconciles the store."""

    def __init__(
        self,
        transactions: ITransactionStore,
        positions: IPositionStore,
        calculator: Optional[CostBasisCalculator] = None,
        max_retries: int = 3,
    ) -> None:
        self._transactions = transactions
        self._positions = positions
        self._calculator = calculator or CostBasisCalculator()
        self._max_retries = max_retries

    def rebuild(
        self, portfolio_id: str, cancel_event: Optional[threading.Event] = None
    ) -> RebuildResult:
        """Rebuild every position of a portfolio.

        A position that changes between the snapshot and its write (a trade
        applied concurrently) is replayed again from a fresh read of that
        asset's history, up to max_retries times.

        Args:
            portfolio_id: Portfolio to reconcile
            cancel_event: Checked between assets; once set, the remaining
                assets are left untouched and the result is marked cancelled

        Returns:
            Counts of created, updated, deleted and unchanged rows, plus the
            assets whose history could not be replayed

        Raises:
            StoreError: A store read or write failed; assets committed before
                the failure stay committed
            ConcurrentModificationError: An asset kept changing during all retries
        """
        result = RebuildResult(portfolio_id=portfolio_id)
        history = self._transactions.get_transactions(portfolio_id)
        stored: Dict[str, Position] = {
            position.asset_id: position
            for position in self._positions.list_for_portfolio(portfolio_id)
        }

        if not history:
            for asset_id in sorted(stored):
                if self._cancelled(cancel_event, result):
                    break
                self._rebuild_asset(portfolio_id, asset_id, [], stored[asset_id], result)
            self._log_summary(result)
            return result

        by_asset: Dict[str, List[Transaction]] = defaultdict(list)
        for txn in history:
            by_asset[txn.asset_id].append(txn)

        for asset_id in sorted(by_asset):
            if self._cancelled(cancel_event, result):
                self._log_summary(result)
                return result
            self._rebuild_asset(
                portfolio_id, asset_id, sort_transactions(by_asset[asset_id]), stored.get(asset_id), result
            )

        for asset_id in sorted(set(stored) - set(by_asset)):
            if self._cancelled(cancel_event, result):
                break
            logger.info(f"Deleting orphaned position {asset_id} in {portfolio_id}")
            self._rebuild_asset(portfolio_id, asset_id, [], stored[asset_id], result)

        self._log_summary(result)
        return result

    def _rebuild_asset(
        self,
        portfolio_id: str,
        asset_id: str,
        history: List[Transaction],
        existing: Optional[Position],
        result: RebuildResult,
    ) -> None:
        attempt = 0
        while True:
            try:
                self._commit_asset(portfolio_id, asset_id, history, existing, result)
                return
            except ConcurrentModificationError as e:
                if attempt >= self._max_retries:
                    logger.error(
                        f"Giving up on {asset_id} in {portfolio_id} "
                        f"after {attempt + 1} attempts: {e}"
                    )
                    raise
                attempt += 1
                logger.warning(
                    f"Position {asset_id} in {portfolio_id} changed during rebuild, "
                    f"replaying again ({attempt}/{self._max_retries})"
                )
                history = sort_transactions(
                    txn
                    for txn in self._transactions.get_transactions(portfolio_id)
                    if txn.asset_id == asset_id
                )
                existing = self._positions.get(portfolio_id, asset_id)

    def _commit_asset(
        self,
        portfolio_id: str,
        asset_id: str,
        history: List[Transaction],
        existing: Optional[Position],
        result: RebuildResult,
    ) -> None:
        # writes are conditional on the row that was read, so a trade applied
        # since then raises ConcurrentModificationError instead of being lost
        try:
            end_state = self._calculator.fold(history).state
        except (OversellError, InvalidTransactionError, UnsortedHistoryError) as e:
            logger.warning(f"Skipping {asset_id} in {portfolio_id}: {e}")
            result.failures.append(AssetFailure(asset_id=asset_id, error=e))
            return

        if end_state.is_flat:
            if existing is not None:
                self._positions.delete(portfolio_id, asset_id, expected_version=existing.version)
                result.deleted += 1
            return

        if existing is None:
            _, inserted = self._positions.insert_if_absent(
                Position.from_state(portfolio_id, asset_id, end_state)
            )
            if not inserted:
                raise ConcurrentModificationError(
                    f"Position {asset_id} in {portfolio_id} was created concurrently"
                )
            result.created += 1
        elif self._matches(existing.state, end_state):
            result.unchanged += 1
        else:
            self._positions.upsert(existing.with_state(end_state), expected_version=existing.version)
            result.updated += 1

    def _matches(self, stored: PositionState, computed: PositionState) -> bool:
        return stored.matches(computed, self._calculator.epsilon)

    @staticmethod
    def _cancelled(cancel_event: Optional[threading.Event], result: RebuildResult) -> bool:
        if cancel_event is not None and cancel_event.is_set():
            result.cancelled = True
            return True
        return False

    @staticmethod
    def _log_summary(result: RebuildResult) -> None:
        logger.info(
            f"Rebuilt {result.portfolio_id}: {result.created} created, {result.updated} updated, "
            f"{result.deleted} deleted, {result.unchanged} unchanged, "
            f"{len(result.failures)} failed{' (cancelled)' if result.cancelled else ''}"
        )
