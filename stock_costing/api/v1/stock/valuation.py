"""Stock Balance and Valuation API endpoints"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from stock_costing.api import deps
from stock_costing.services.stock import BinService, StockLedgerService, StockMovementService
from stock_costing.schemas.stock import (
    StockBalance, StockLedgerListResponse, StockLedgerEntry, Bin,
    RepostRequest, RepostResponse, ValuationMethodUpdate, ItemValuationSetting
)

router = APIRouter()


@router.get("/balance/{item_id}/{location_id}", response_model=StockBalance)
def get_balance(
    item_id: str,
    location_id: str,
    as_of: Optional[date] = Query(None, description="Balance at the end of this date"),
    service: StockLedgerService = Depends(deps.get_ledger_service),
):
    """Current balance, or the balance as of a past date"""
    if as_of is not None:
        return service.get_balance_at_date(item_id, location_id, as_of)
    return service.get_balance(item_id, location_id)


@router.get("/ledger/{item_id}", response_model=StockLedgerListResponse)
def get_ledger(
    item_id: str,
    location_id: Optional[str] = Query(None, description="Filter by location"),
    from_date: Optional[date] = Query(None, description="Start date"),
    to_date: Optional[date] = Query(None, description="End date"),
    include_cancelled: bool = Query(False, description="Include cancelled entries and reversals"),
    limit: int = Query(100, ge=1, le=1000),
    service: StockLedgerService = Depends(deps.get_ledger_service),
):
    """Ledger entries for an item in posting order"""
    entries = service.get_movements(
        item_id,
        location_id=location_id,
        from_date=from_date,
        to_date=to_date,
        limit=limit,
        include_cancelled=include_cancelled
    )
    return StockLedgerListResponse(
        entries=[StockLedgerEntry.model_validate(e) for e in entries],
        total=len(entries)
    )


@router.get("/bins/{item_id}/{location_id}", response_model=Bin)
def get_bin(
    item_id: str,
    location_id: str,
    service: BinService = Depends(deps.get_bin_service),
):
    return service.get_bin(item_id, location_id)


@router.post("/repost", response_model=RepostResponse)
def repost_valuation(
    request: RepostRequest,
    service: StockMovementService = Depends(deps.get_movement_service),
):
    """Recompute valuation of an item at a location from a date forward"""
    return service.repost_valuation(request.item_id, request.location_id, request.from_date)


@router.put("/items/{item_id}/valuation-method", response_model=ItemValuationSetting)
def set_valuation_method(
    item_id: str,
    update: ValuationMethodUpdate,
    service: StockMovementService = Depends(deps.get_movement_service),
):
    """Set the valuation method of an item; locked once it has transactions"""
    return service.set_item_valuation_method(item_id, update.valuation_method)
