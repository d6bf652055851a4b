"""
Repository interfaces
The storage capabilities the ledger and costing services depend on:
insert, update, query by key range and query latest by key.
Services receive an implementation at construction.
"""
from abc import ABC, abstractmethod
from datetime import date, time
from decimal import Decimal
from typing import List, Optional


class TransactionalRepository(ABC):
    """Unit-of-work controls shared by every repository"""

    @abstractmethod
    def flush(self):
        pass

    @abstractmethod
    def commit(self):
        pass

    @abstractmethod
    def rollback(self):
        pass


class StockRepository(TransactionalRepository):
    """Storage for ledger entries, bins and item valuation settings"""

    # Ledger entries

    @abstractmethod
    def add_entry(self, entry):
        """Insert a ledger entry and assign its id"""

    @abstractmethod
    def save_entry(self, entry):
        """Persist changes to an existing ledger entry"""

    @abstractmethod
    def get_entry(self, entry_id: int):
        pass

    @abstractmethod
    def latest_entry(
        self,
        item_id: str,
        location_id: str,
        up_to: Optional[tuple] = None,
        before_date: Optional[date] = None,
        on_or_before_date: Optional[date] = None,
        before_entry: Optional[tuple] = None
    ):
        """
        Latest non-cancelled entry for a key in (date, time, id) order.

        up_to: (posting_date, posting_time) bound, inclusive
        before_date: only entries posted strictly before this date
        on_or_before_date: only entries posted on or before this date
        before_entry: (posting_date, posting_time, id) bound, exclusive
        """

    @abstractmethod
    def entries_in_range(
        self,
        item_id: str,
        location_id: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        include_cancelled: bool = False,
        descending: bool = False,
        limit: Optional[int] = None
    ) -> List:
        pass

    @abstractmethod
    def has_later_entries(self, item_id: str, location_id: str, posting_date: date,
                          posting_time: time, exclude_id: Optional[int] = None) -> bool:
        pass

    @abstractmethod
    def item_has_entries(self, item_id: str) -> bool:
        pass

    # Bins

    @abstractmethod
    def get_bin(self, item_id: str, location_id: str, for_update: bool = False):
        pass

    @abstractmethod
    def add_bin(self, bin_record):
        pass

    @abstractmethod
    def list_bins(self, item_id: Optional[str] = None, location_id: Optional[str] = None) -> List:
        pass

    @abstractmethod
    def total_stock_value(self, location_id: Optional[str] = None) -> Decimal:
        pass

    # Item settings

    @abstractmethod
    def get_item_setting(self, item_id: str):
        pass

    @abstractmethod
    def save_item_setting(self, setting):
        pass


class CostingRepository(TransactionalRepository):
    """Storage for manufacturing orders, stages, cost logs and stage costs"""

    @abstractmethod
    def get_order(self, order_id: str, for_update: bool = False):
        pass

    @abstractmethod
    def get_stage(self, stage_id: str):
        pass

    @abstractmethod
    def get_stage_by_sequence(self, order_sequence: int):
        pass

    @abstractmethod
    def get_work_center(self, work_center_id: str):
        pass

    @abstractmethod
    def get_default_work_center(self):
        pass

    @abstractmethod
    def add(self, record):
        """Insert any costing record"""

    @abstractmethod
    def sum_labor_cost(self, order_id: str, stage_no: int) -> Decimal:
        pass

    @abstractmethod
    def sum_overhead_cost(self, order_id: str, stage_no: int) -> Decimal:
        pass

    @abstractmethod
    def get_stage_cost(self, order_id: str, stage_no: int, for_update: bool = False):
        pass

    @abstractmethod
    def previous_stage_cost(self, order_id: str, stage_no: int):
        """Stored stage cost with the highest stage number below stage_no"""

    @abstractmethod
    def list_stage_costs(self, order_id: str) -> List:
        pass
