"""
Bin Aggregator
Keeps one summary row per (item, location) in step with the stock ledger
"""
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from stock_costing.core.exceptions import NotFoundError, ValidationError
from stock_costing.core.locks import KeyedLockRegistry, stock_key_locks
from stock_costing.core.logging import get_logger
from stock_costing.core.precision import ZERO, round_qty, to_decimal
from stock_costing.models.stock import Bin
from stock_costing.repositories.base import StockRepository
from stock_costing.repositories.sql import SqlStockRepository

logger = get_logger("ledger")


class BinService:
    """
    Bin reconciliation and planning quantities

    The bin is a cache: quantity, rate, value and queue always come from the
    latest non-cancelled ledger entry and any divergence is cured by calling
    reconcile again. Callers own the transaction; nothing here commits.
    """

    def __init__(
        self,
        db: Optional[Session] = None,
        repository: Optional[StockRepository] = None,
        locks: KeyedLockRegistry = stock_key_locks
    ):
        self.repo = repository or SqlStockRepository(db)
        self.locks = locks

    def get_or_create_bin(self, item_id: str, location_id: str, for_update: bool = False) -> Bin:
        """Fetch the bin row, creating an empty one if the key is new"""
        bin_record = self.repo.get_bin(item_id, location_id, for_update=for_update)
        if bin_record is None:
            bin_record = self.repo.add_bin(Bin(
                item_id=item_id,
                location_id=location_id,
                actual_qty=ZERO,
                reserved_qty=ZERO,
                ordered_qty=ZERO,
                planned_qty=ZERO,
                projected_qty=ZERO,
                valuation_rate=ZERO,
                stock_value=ZERO,
                stock_queue=[]
            ))
        return bin_record

    def reconcile(self, item_id: str, location_id: str) -> Bin:
        """Copy the latest ledger state into the bin, or zero it"""
        with self.locks.hold((item_id, location_id)):
            bin_record = self.get_or_create_bin(item_id, location_id, for_update=True)
            latest = self.repo.latest_entry(item_id, location_id)

            if latest is None:
                bin_record.actual_qty = ZERO
                bin_record.valuation_rate = ZERO
                bin_record.stock_value = ZERO
                bin_record.stock_queue = []
            else:
                bin_record.actual_qty = latest.qty_after_transaction
                bin_record.valuation_rate = latest.valuation_rate
                bin_record.stock_value = latest.stock_value
                bin_record.stock_queue = list(latest.stock_queue or [])

            self._set_projected_qty(bin_record)
            self.repo.flush()

            logger.debug(
                f"Bin reconciled {item_id}@{location_id}: qty={bin_record.actual_qty} "
                f"rate={bin_record.valuation_rate} value={bin_record.stock_value}"
            )
            return bin_record

    def update_planning_qty(
        self,
        item_id: str,
        location_id: str,
        reserved: Decimal = ZERO,
        ordered: Decimal = ZERO,
        planned: Decimal = ZERO
    ) -> Bin:
        """Apply deltas to reserved, ordered and planned quantities"""
        with self.locks.hold((item_id, location_id)):
            bin_record = self.get_or_create_bin(item_id, location_id, for_update=True)

            updates = {
                "reserved_qty": to_decimal(reserved),
                "ordered_qty": to_decimal(ordered),
                "planned_qty": to_decimal(planned),
            }
            for column, delta in updates.items():
                new_value = round_qty(to_decimal(getattr(bin_record, column)) + delta)
                if new_value < 0:
                    raise ValidationError(
                        f"{column} for {item_id}@{location_id} cannot go below zero (would be {new_value})"
                    )
                setattr(bin_record, column, new_value)

            self._set_projected_qty(bin_record)
            self.repo.flush()
            return bin_record

    def get_bin(self, item_id: str, location_id: str) -> Bin:
        bin_record = self.repo.get_bin(item_id, location_id)
        if bin_record is None:
            raise NotFoundError(f"No bin for item {item_id} at location {location_id}")
        return bin_record

    def list_bins(self, item_id: Optional[str] = None, location_id: Optional[str] = None) -> List[Bin]:
        return self.repo.list_bins(item_id=item_id, location_id=location_id)

    @staticmethod
    def _set_projected_qty(bin_record: Bin):
        bin_record.projected_qty = round_qty(
            to_decimal(bin_record.actual_qty)
            + to_decimal(bin_record.ordered_qty)
            + to_decimal(bin_record.planned_qty)
            - to_decimal(bin_record.reserved_qty)
        )
