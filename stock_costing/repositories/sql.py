"""
SQLAlchemy repositories
Session backed implementations of the repository interfaces
"""
from datetime import date, time
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import and_, or_, func
from sqlalchemy.orm import Session

from stock_costing.models.stock import StockLedgerEntry, Bin, ItemValuationSetting
from stock_costing.models.manufacturing import (
    ManufacturingOrder, ManufacturingStage, WorkCenter,
    StageCost, LaborTimeLog, OverheadApplied
)
from stock_costing.core.precision import to_decimal
from .base import StockRepository, CostingRepository


class SqlSessionMixin:
    """Unit-of-work controls delegated to the SQLAlchemy session"""

    def __init__(self, db: Session):
        self.db = db

    def flush(self):
        self.db.flush()

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()


def _chain_order(descending: bool = False):
    columns = (StockLedgerEntry.posting_date, StockLedgerEntry.posting_time, StockLedgerEntry.id)
    return [c.desc() for c in columns] if descending else [c.asc() for c in columns]


class SqlStockRepository(SqlSessionMixin, StockRepository):
    """Ledger, bin and item setting storage on a SQLAlchemy session"""

    def add_entry(self, entry: StockLedgerEntry) -> StockLedgerEntry:
        self.db.add(entry)
        self.db.flush()  # Assigns the id used as tie-breaker
        return entry

    def save_entry(self, entry: StockLedgerEntry) -> StockLedgerEntry:
        self.db.add(entry)
        self.db.flush()
        return entry

    def get_entry(self, entry_id: int) -> Optional[StockLedgerEntry]:
        return self.db.get(StockLedgerEntry, entry_id)

    def _key_query(self, item_id: str, location_id: Optional[str] = None, include_cancelled: bool = False):
        query = self.db.query(StockLedgerEntry).filter(StockLedgerEntry.item_id == item_id)
        if location_id is not None:
            query = query.filter(StockLedgerEntry.location_id == location_id)
        if not include_cancelled:
            query = query.filter(StockLedgerEntry.is_cancelled.is_(False))
        return query

    def latest_entry(self, item_id, location_id, up_to=None, before_date=None, on_or_before_date=None,
                     before_entry=None):
        query = self._key_query(item_id, location_id)
        if up_to is not None:
            posting_date, posting_time = up_to
            query = query.filter(or_(
                StockLedgerEntry.posting_date < posting_date,
                and_(
                    StockLedgerEntry.posting_date == posting_date,
                    StockLedgerEntry.posting_time <= posting_time
                )
            ))
        if before_date is not None:
            query = query.filter(StockLedgerEntry.posting_date < before_date)
        if on_or_before_date is not None:
            query = query.filter(StockLedgerEntry.posting_date <= on_or_before_date)
        if before_entry is not None:
            posting_date, posting_time, entry_id = before_entry
            query = query.filter(or_(
                StockLedgerEntry.posting_date < posting_date,
                and_(
                    StockLedgerEntry.posting_date == posting_date,
                    or_(
                        StockLedgerEntry.posting_time < posting_time,
                        and_(StockLedgerEntry.posting_time == posting_time, StockLedgerEntry.id < entry_id)
                    )
                )
            ))
        return query.order_by(*_chain_order(descending=True)).first()

    def entries_in_range(self, item_id, location_id=None, from_date=None, to_date=None,
                         include_cancelled=False, descending=False, limit=None) -> List[StockLedgerEntry]:
        query = self._key_query(item_id, location_id, include_cancelled)
        if from_date is not None:
            query = query.filter(StockLedgerEntry.posting_date >= from_date)
        if to_date is not None:
            query = query.filter(StockLedgerEntry.posting_date <= to_date)
        query = query.order_by(*_chain_order(descending))
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def has_later_entries(self, item_id: str, location_id: str, posting_date: date,
                          posting_time: time, exclude_id: Optional[int] = None) -> bool:
        query = self._key_query(item_id, location_id).filter(or_(
            StockLedgerEntry.posting_date > posting_date,
            and_(
                StockLedgerEntry.posting_date == posting_date,
                StockLedgerEntry.posting_time > posting_time
            )
        ))
        if exclude_id is not None:
            query = query.filter(StockLedgerEntry.id != exclude_id)
        return self.db.query(query.exists()).scalar()

    def item_has_entries(self, item_id: str) -> bool:
        query = self.db.query(StockLedgerEntry).filter(StockLedgerEntry.item_id == item_id)
        return self.db.query(query.exists()).scalar()

    def get_bin(self, item_id: str, location_id: str, for_update: bool = False) -> Optional[Bin]:
        query = self.db.query(Bin).filter(
            and_(Bin.item_id == item_id, Bin.location_id == location_id)
        )
        if for_update:
            # Row lock on servers that support it; SQLite ignores it
            query = query.with_for_update()
        return query.first()

    def add_bin(self, bin_record: Bin) -> Bin:
        self.db.add(bin_record)
        self.db.flush()
        return bin_record

    def list_bins(self, item_id=None, location_id=None) -> List[Bin]:
        query = self.db.query(Bin)
        if item_id is not None:
            query = query.filter(Bin.item_id == item_id)
        if location_id is not None:
            query = query.filter(Bin.location_id == location_id)
        return query.order_by(Bin.item_id, Bin.location_id).all()

    def total_stock_value(self, location_id: Optional[str] = None) -> Decimal:
        query = self.db.query(func.coalesce(func.sum(Bin.stock_value), 0))
        if location_id is not None:
            query = query.filter(Bin.location_id == location_id)
        return to_decimal(query.scalar())

    def get_item_setting(self, item_id: str) -> Optional[ItemValuationSetting]:
        return self.db.get(ItemValuationSetting, item_id)

    def save_item_setting(self, setting: ItemValuationSetting) -> ItemValuationSetting:
        self.db.add(setting)
        self.db.flush()
        return setting


class SqlCostingRepository(SqlSessionMixin, CostingRepository):
    """Manufacturing order and stage cost storage on a SQLAlchemy session"""

    def get_order(self, order_id: str, for_update: bool = False) -> Optional[ManufacturingOrder]:
        query = self.db.query(ManufacturingOrder).filter(ManufacturingOrder.id == order_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_stage(self, stage_id: str) -> Optional[ManufacturingStage]:
        return self.db.get(ManufacturingStage, stage_id)

    def get_stage_by_sequence(self, order_sequence: int) -> Optional[ManufacturingStage]:
        return self.db.query(ManufacturingStage).filter(
            ManufacturingStage.order_sequence == order_sequence
        ).first()

    def get_work_center(self, work_center_id: str) -> Optional[WorkCenter]:
        return self.db.get(WorkCenter, work_center_id)

    def get_default_work_center(self) -> Optional[WorkCenter]:
        return self.db.query(WorkCenter).filter(
            and_(WorkCenter.is_default.is_(True), WorkCenter.is_active.is_(True))
        ).order_by(WorkCenter.id).first()

    def add(self, record):
        self.db.add(record)
        self.db.flush()
        return record

    def sum_labor_cost(self, order_id: str, stage_no: int) -> Decimal:
        total = self.db.query(func.coalesce(func.sum(LaborTimeLog.total_cost), 0)).filter(
            and_(LaborTimeLog.mo_id == order_id, LaborTimeLog.stage_no == stage_no)
        ).scalar()
        return to_decimal(total)

    def sum_overhead_cost(self, order_id: str, stage_no: int) -> Decimal:
        total = self.db.query(func.coalesce(func.sum(OverheadApplied.amount), 0)).filter(
            and_(OverheadApplied.mo_id == order_id, OverheadApplied.stage_no == stage_no)
        ).scalar()
        return to_decimal(total)

    def get_stage_cost(self, order_id: str, stage_no: int, for_update: bool = False) -> Optional[StageCost]:
        query = self.db.query(StageCost).filter(
            and_(StageCost.mo_id == order_id, StageCost.stage_no == stage_no)
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def previous_stage_cost(self, order_id: str, stage_no: int) -> Optional[StageCost]:
        return self.db.query(StageCost).filter(
            and_(StageCost.mo_id == order_id, StageCost.stage_no < stage_no)
        ).order_by(StageCost.stage_no.desc()).first()

    def list_stage_costs(self, order_id: str) -> List[StageCost]:
        return self.db.query(StageCost).filter(
            StageCost.mo_id == order_id
        ).order_by(StageCost.stage_no).all()
