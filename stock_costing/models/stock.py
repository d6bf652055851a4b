"""
Stock Ledger Models
SQLAlchemy models for the valued stock ledger and its per-location bins
"""
from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, Date, Time, Boolean, JSON,
    ForeignKey, CheckConstraint, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from stock_costing.core.database import Base


class StockLedgerEntry(Base):
    """
    Stock Ledger Entry (SLE)

    One valued stock movement for an (item, location). Rows are appended and
    never deleted; the computed balance columns are only rewritten by a
    repost. A cancelled movement keeps its row and gains a reversal row.
    """
    __tablename__ = "stock_ledger_entries"
    __table_args__ = (
        CheckConstraint("actual_qty <> 0", name="non_zero_qty"),
        Index("ix_sle_item_location_posting", "item_id", "location_id", "posting_date", "posting_time", "id"),
        Index("ix_sle_voucher", "voucher_type", "voucher_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, doc="Entry ID, tie-breaker within one posting time")

    # Originating document
    voucher_type = Column(String(60), nullable=False, doc="Originating document type")
    voucher_id = Column(String(60), nullable=False, doc="Originating document ID")
    voucher_detail_no = Column(String(60), doc="Line reference within the document")

    # Key
    item_id = Column(String(60), nullable=False, doc="Item code")
    location_id = Column(String(60), nullable=False, doc="Warehouse / location code")

    # Temporal key
    posting_date = Column(Date, nullable=False, doc="Posting date")
    posting_time = Column(Time, nullable=False, doc="Posting time")

    # Movement
    actual_qty = Column(Numeric(18, 3), nullable=False, doc="Signed quantity, positive for receipts")
    incoming_rate = Column(Numeric(18, 4), default=0, doc="Unit rate of inbound stock")
    outgoing_rate = Column(Numeric(18, 4), default=0, doc="Unit cost of outbound stock")

    # Computed balance after this entry
    qty_after_transaction = Column(Numeric(18, 3), default=0, doc="Running balance")
    valuation_rate = Column(Numeric(18, 4), default=0, doc="Valuation rate after this entry")
    stock_value = Column(Numeric(18, 2), default=0, doc="Stock value after this entry")
    stock_value_difference = Column(Numeric(18, 2), default=0, doc="Change in stock value")
    stock_queue = Column(JSON, default=list, doc="Batch queue [[qty, rate], ...]")
    valuation_method = Column(String(20), doc="Valuation method used")

    # Cancellation
    is_cancelled = Column(Boolean, nullable=False, default=False, doc="Logically voided")
    reversal_of_id = Column(Integer, ForeignKey("stock_ledger_entries.id"), doc="Entry this row reverses")

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())

    reversal_of = relationship("StockLedgerEntry", remote_side=[id])

    @property
    def key(self):
        return (self.item_id, self.location_id)

    def __repr__(self):
        return (
            f"<StockLedgerEntry {self.id} {self.item_id}@{self.location_id} "
            f"{self.posting_date} {self.posting_time} qty={self.actual_qty}>"
        )


class Bin(Base):
    """
    Bin - current balance of one (item, location)

    A cache of the latest non-cancelled ledger entry plus the planning
    quantities maintained by order processing.
    """
    __tablename__ = "bins"
    __table_args__ = (
        UniqueConstraint("item_id", "location_id", name="uq_bins_item_location"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(String(60), nullable=False, doc="Item code")
    location_id = Column(String(60), nullable=False, doc="Warehouse / location code")

    # Quantities
    actual_qty = Column(Numeric(18, 3), nullable=False, default=0, doc="Quantity on hand")
    reserved_qty = Column(Numeric(18, 3), nullable=False, default=0, doc="Reserved for sales orders")
    ordered_qty = Column(Numeric(18, 3), nullable=False, default=0, doc="On purchase order")
    planned_qty = Column(Numeric(18, 3), nullable=False, default=0, doc="Planned by manufacturing")
    projected_qty = Column(Numeric(18, 3), nullable=False, default=0, doc="actual + ordered + planned - reserved")

    # Valuation
    valuation_rate = Column(Numeric(18, 4), nullable=False, default=0, doc="Current valuation rate")
    stock_value = Column(Numeric(18, 2), nullable=False, default=0, doc="Current stock value")
    stock_queue = Column(JSON, default=list, doc="Current batch queue")

    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    def __repr__(self):
        return f"<Bin {self.item_id}@{self.location_id} qty={self.actual_qty}>"


class ItemValuationSetting(Base):
    """Valuation method chosen for an item"""
    __tablename__ = "item_valuation_settings"

    item_id = Column(String(60), primary_key=True, doc="Item code")
    valuation_method = Column(String(20), nullable=False, doc="FIFO, LIFO, Weighted Average or Moving Average")
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())
