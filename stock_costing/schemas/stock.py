"""Stock Ledger Schemas"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import date, time, datetime
from decimal import Decimal

from stock_costing.services.valuation.strategies import ValuationMethod


# Movement Schemas
class StockMovementCreate(BaseModel):
    voucher_type: str = Field(..., min_length=1, max_length=60, description="Originating document type")
    voucher_id: str = Field(..., min_length=1, max_length=60, description="Originating document ID")
    voucher_detail_no: Optional[str] = Field(None, max_length=60)
    item_id: str = Field(..., min_length=1, max_length=60)
    location_id: str = Field(..., min_length=1, max_length=60)
    qty: Decimal = Field(..., description="Signed quantity, positive for receipts")
    rate: Optional[Decimal] = Field(None, ge=0, description="Incoming rate, required for receipts")
    posting_date: date
    posting_time: Optional[time] = None


class StockLedgerEntry(BaseModel):
    id: int
    voucher_type: str
    voucher_id: str
    voucher_detail_no: Optional[str] = None
    item_id: str
    location_id: str
    posting_date: date
    posting_time: time
    actual_qty: Decimal
    incoming_rate: Optional[Decimal] = None
    outgoing_rate: Optional[Decimal] = None
    qty_after_transaction: Decimal
    valuation_rate: Decimal
    stock_value: Decimal
    stock_value_difference: Decimal
    stock_queue: List[List[str]] = []
    valuation_method: Optional[str] = None
    is_cancelled: bool
    reversal_of_id: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class StockPostingResponse(BaseModel):
    entry: StockLedgerEntry
    negative_stock: bool = False
    cost_of_goods_sold: Decimal = Decimal("0")
    entries_reposted: int = 0

    model_config = ConfigDict(from_attributes=True)


class StockLedgerListResponse(BaseModel):
    entries: List[StockLedgerEntry]
    total: int


# Transfer Schemas
class StockTransferCreate(BaseModel):
    item_id: str = Field(..., min_length=1, max_length=60)
    from_location_id: str = Field(..., min_length=1, max_length=60)
    to_location_id: str = Field(..., min_length=1, max_length=60)
    qty: Decimal = Field(..., gt=0)
    posting_date: date
    posting_time: Optional[time] = None
    voucher_id: Optional[str] = Field(None, max_length=60)


class StockTransferResponse(BaseModel):
    outbound: StockLedgerEntry
    inbound: StockLedgerEntry
    transfer_rate: Decimal


# Balance and Bin Schemas
class StockBalance(BaseModel):
    item_id: str
    location_id: str
    qty: Decimal
    valuation_rate: Decimal
    stock_value: Decimal
    as_of: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)


class Bin(BaseModel):
    item_id: str
    location_id: str
    actual_qty: Decimal
    reserved_qty: Decimal
    ordered_qty: Decimal
    planned_qty: Decimal
    projected_qty: Decimal
    valuation_rate: Decimal
    stock_value: Decimal
    stock_queue: List[List[str]] = []
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Repost Schemas
class RepostRequest(BaseModel):
    item_id: str = Field(..., min_length=1, max_length=60)
    location_id: str = Field(..., min_length=1, max_length=60)
    from_date: date


class RepostResponse(BaseModel):
    item_id: str
    location_id: str
    from_date: date
    entries_reposted: int
    qty_after_transaction: Decimal
    valuation_rate: Decimal
    stock_value: Decimal
    lowest_qty: Decimal = Decimal("0")

    model_config = ConfigDict(from_attributes=True)


# Valuation Method Schemas
class ValuationMethodUpdate(BaseModel):
    valuation_method: ValuationMethod


class ItemValuationSetting(BaseModel):
    item_id: str
    valuation_method: str

    model_config = ConfigDict(from_attributes=True)
