"""
Reposting Engine
Replays the ledger of one (item, location) from a date forward and rewrites
the computed balance columns after a backdated or corrected posting.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock_costing.core.exceptions import ConsistencyError, PersistenceError, StockCostingException
from stock_costing.core.locks import KeyedLockRegistry, stock_key_locks
from stock_costing.core.logging import get_logger
from stock_costing.core.precision import ZERO, round_qty, value_matches, to_decimal
from stock_costing.models.stock import StockLedgerEntry
from stock_costing.repositories.base import StockRepository
from stock_costing.repositories.sql import SqlStockRepository
from stock_costing.services.stock.bins import BinService
from stock_costing.services.stock.chain import BalanceState, MovementValuation, apply_movement
from stock_costing.services.stock.item_settings import ItemValuationService

logger = get_logger("ledger")


@dataclass
class RepostResult:
    """Outcome of a repost"""
    item_id: str
    location_id: str
    from_date: date
    entries_reposted: int
    qty_after_transaction: Decimal
    valuation_rate: Decimal
    stock_value: Decimal
    # Lowest running balance among the replayed entries
    lowest_qty: Decimal = ZERO


class RepostingService:
    """
    Historical reposting

    The start state is the latest non-cancelled entry posted strictly before
    from_date. Every non-cancelled entry on or after from_date is revalued in
    (posting_date, posting_time, id) order. All new values are computed and
    checked before the first write, so a ConsistencyError leaves the stored
    ledger untouched. The user supplied quantity and incoming rate of each
    entry are kept; outbound rows get their outgoing rate recomputed.
    """

    def __init__(
        self,
        db: Optional[Session] = None,
        repository: Optional[StockRepository] = None,
        locks: KeyedLockRegistry = stock_key_locks,
        shortfall_policy: Optional[str] = None
    ):
        self.repo = repository or SqlStockRepository(db)
        self.locks = locks
        self.shortfall_policy = shortfall_policy
        self.bins = BinService(repository=self.repo, locks=locks)
        self.item_settings = ItemValuationService(repository=self.repo)

    def repost(self, item_id: str, location_id: str, from_date: date, commit: bool = True) -> RepostResult:
        """Recompute the chain for a key from from_date forward"""
        key = (item_id, location_id)
        with self.locks.hold(key):
            try:
                self.bins.get_or_create_bin(item_id, location_id, for_update=True)
                strategy = self.item_settings.get_strategy(item_id, self.shortfall_policy)

                start_entry = self.repo.latest_entry(item_id, location_id, before_date=from_date)
                state = BalanceState.from_entry(start_entry)
                entries = self.repo.entries_in_range(item_id, location_id, from_date=from_date)

                planned = self._replay(strategy, key, state, entries)

                for entry, valuation in planned:
                    self._write_valuation(entry, valuation, strategy.get_method_name())
                self.bins.reconcile(item_id, location_id)

                if commit:
                    self.repo.commit()

            except StockCostingException:
                if commit:
                    self.repo.rollback()
                raise
            except SQLAlchemyError as e:
                self.repo.rollback()
                logger.error(f"Repost of {item_id}@{location_id} failed: {e}")
                raise PersistenceError(f"Repost of {item_id}@{location_id} failed: {e}") from e

        final_state = planned[-1][1].state if planned else state
        lowest_qty = min((valuation.state.qty for _, valuation in planned), default=ZERO)
        logger.info(
            f"Reposted {len(planned)} entries for {item_id}@{location_id} from {from_date} "
            f"({strategy.get_method_name()}): qty={final_state.qty} value={final_state.value}"
        )
        return RepostResult(
            item_id=item_id,
            location_id=location_id,
            from_date=from_date,
            entries_reposted=len(planned),
            qty_after_transaction=final_state.qty,
            valuation_rate=final_state.rate,
            stock_value=final_state.value,
            lowest_qty=lowest_qty
        )

    def _replay(
        self,
        strategy,
        key: Tuple[str, str],
        state: BalanceState,
        entries: List[StockLedgerEntry]
    ) -> List[Tuple[StockLedgerEntry, MovementValuation]]:
        """Compute and validate every new value without touching the entries"""
        planned = []
        for entry in entries:
            if entry.key != key:
                raise ConsistencyError(f"Entry {entry.id} belongs to {entry.key}, not {key}")

            actual_qty = round_qty(entry.actual_qty)
            if actual_qty == 0:
                raise ConsistencyError(f"Entry {entry.id} has zero quantity")
            if actual_qty > 0 and entry.incoming_rate is None:
                raise ConsistencyError(f"Inbound entry {entry.id} has no incoming rate")

            valuation = apply_movement(strategy, state, actual_qty, entry.incoming_rate)
            new_state = valuation.state

            if new_state.qty != round_qty(state.qty + actual_qty):
                raise ConsistencyError(
                    f"Running balance broken at entry {entry.id}: "
                    f"{state.qty} + {actual_qty} != {new_state.qty}"
                )
            if not value_matches(new_state.qty, new_state.rate, new_state.value):
                raise ConsistencyError(
                    f"Stock value broken at entry {entry.id}: "
                    f"{new_state.qty} x {new_state.rate} != {new_state.value}"
                )

            planned.append((entry, valuation))
            state = new_state
        return planned

    def _write_valuation(self, entry: StockLedgerEntry, valuation: MovementValuation, method_name: str):
        state = valuation.state
        entry.qty_after_transaction = state.qty
        entry.valuation_rate = state.rate
        entry.stock_value = state.value
        entry.stock_value_difference = valuation.stock_value_difference
        entry.stock_queue = state.queue_json()
        entry.valuation_method = method_name
        if to_decimal(entry.actual_qty) < 0:
            entry.outgoing_rate = valuation.outgoing_rate
        self.repo.save_entry(entry)
