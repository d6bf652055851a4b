"""Stock Movement API endpoints"""

from fastapi import APIRouter, Depends, status

from stock_costing.api import deps
from stock_costing.core.logging import get_logger
from stock_costing.services.stock import StockLedgerService, StockMovementService
from stock_costing.schemas.stock import (
    StockMovementCreate, StockPostingResponse, StockTransferCreate,
    StockTransferResponse, StockLedgerEntry
)

router = APIRouter()
logger = get_logger("api")


@router.post("/movements", response_model=StockPostingResponse, status_code=status.HTTP_201_CREATED)
def create_movement(
    movement: StockMovementCreate,
    service: StockMovementService = Depends(deps.get_movement_service),
):
    """
    Record a stock receipt (positive qty) or issue (negative qty).

    The response flags postings that leave the balance negative.
    """
    result = service.record_movement(
        voucher_type=movement.voucher_type,
        voucher_id=movement.voucher_id,
        item_id=movement.item_id,
        location_id=movement.location_id,
        qty=movement.qty,
        rate=movement.rate,
        posting_date=movement.posting_date,
        posting_time=movement.posting_time,
        voucher_detail_no=movement.voucher_detail_no
    )
    return StockPostingResponse(
        entry=StockLedgerEntry.model_validate(result.entry),
        negative_stock=result.negative_stock,
        cost_of_goods_sold=result.cost_of_goods_sold,
        entries_reposted=result.entries_reposted
    )


@router.post("/transfers", response_model=StockTransferResponse, status_code=status.HTTP_201_CREATED)
def create_transfer(
    transfer: StockTransferCreate,
    service: StockMovementService = Depends(deps.get_movement_service),
):
    """Move stock between locations at the source's issue rate"""
    result = service.transfer_stock(
        item_id=transfer.item_id,
        from_location_id=transfer.from_location_id,
        to_location_id=transfer.to_location_id,
        qty=transfer.qty,
        posting_date=transfer.posting_date,
        posting_time=transfer.posting_time,
        voucher_id=transfer.voucher_id
    )
    return StockTransferResponse(
        outbound=StockLedgerEntry.model_validate(result.outbound.entry),
        inbound=StockLedgerEntry.model_validate(result.inbound.entry),
        transfer_rate=result.transfer_rate
    )


@router.post("/entries/{entry_id}/cancel", response_model=StockPostingResponse)
def cancel_entry(
    entry_id: int,
    service: StockLedgerService = Depends(deps.get_ledger_service),
):
    """
    Cancel a ledger entry.

    Returns the reversal entry; the original stays in the ledger flagged
    as cancelled. negative_stock is set when removing the entry leaves a
    later balance negative.
    """
    result = service.cancel(entry_id)
    logger.info(f"Entry {entry_id} cancelled via API")
    return StockPostingResponse(
        entry=StockLedgerEntry.model_validate(result.entry),
        negative_stock=result.negative_stock,
        entries_reposted=result.entries_reposted
    )
