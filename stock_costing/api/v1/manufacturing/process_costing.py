"""Manufacturing Process Costing API endpoints"""

from typing import List

from fastapi import APIRouter, Depends, status

from stock_costing.api import deps
from stock_costing.core.logging import get_logger
from stock_costing.services.manufacturing import ProcessCostingService
from stock_costing.schemas.stock import StockPostingResponse, StockLedgerEntry
from stock_costing.schemas.manufacturing import (
    LaborTimeCreate, LaborTimeLog, OverheadCreate, OverheadApplied,
    StageCostUpdate, StageCost, OrderCostSummary,
    MaterialIssueCreate, MaterialIssueResponse, FinishedGoodsCreate, ManufacturingOrder,
    stage_ref
)

router = APIRouter()
logger = get_logger("api")


@router.post("/{order_id}/labor", response_model=LaborTimeLog, status_code=status.HTTP_201_CREATED)
def apply_labor_time(
    order_id: str,
    labor: LaborTimeCreate,
    service: ProcessCostingService = Depends(deps.get_costing_service),
):
    """Book labor hours against an order stage"""
    return service.apply_labor_time(
        order_id,
        labor.stage,
        labor.hours,
        labor.hourly_rate,
        work_center_id=labor.work_center_id,
        employee_name=labor.employee_name,
        operation_code=labor.operation_code,
        notes=labor.notes
    )


@router.post("/{order_id}/overhead", response_model=OverheadApplied, status_code=status.HTTP_201_CREATED)
def apply_overhead(
    order_id: str,
    overhead: OverheadCreate,
    service: ProcessCostingService = Depends(deps.get_costing_service),
):
    """Absorb overhead into an order stage"""
    return service.apply_overhead(
        order_id,
        overhead.stage,
        overhead.base_qty,
        overhead.overhead_rate,
        work_center_id=overhead.work_center_id,
        allocation_base=overhead.allocation_base,
        overhead_type=overhead.overhead_type,
        notes=overhead.notes
    )


@router.put("/{order_id}/stages/{stage}/cost", response_model=StageCost)
def upsert_stage_cost(
    order_id: str,
    stage: str,
    update: StageCostUpdate,
    service: ProcessCostingService = Depends(deps.get_costing_service),
):
    """
    Recompute a stage's cost from its labor and overhead logs, the given
    material cost and the previous stage's total.
    """
    return service.upsert_stage_cost(
        order_id,
        stage_ref(stage),
        good_qty=update.good_qty,
        scrap_qty=update.scrap_qty,
        material_cost=update.material_cost,
        mode=update.mode.value,
        work_center_id=update.work_center_id,
        rework_qty=update.rework_qty
    )


@router.get("/{order_id}/stage-costs", response_model=List[StageCost])
def get_stage_costs(
    order_id: str,
    service: ProcessCostingService = Depends(deps.get_costing_service),
):
    return service.get_stage_costs(order_id)


@router.get("/{order_id}/cost-summary", response_model=OrderCostSummary)
def get_cost_summary(
    order_id: str,
    service: ProcessCostingService = Depends(deps.get_costing_service),
):
    """Order totals, unit cost and variance against standard cost"""
    summary = service.get_order_cost_summary(order_id)
    return OrderCostSummary(
        order_id=summary.order_id,
        order_number=summary.order_number,
        item_id=summary.item_id,
        planned_qty=summary.planned_qty,
        completed_qty=summary.completed_qty,
        total_material_cost=summary.total_material_cost,
        total_labor_cost=summary.total_labor_cost,
        total_overhead_cost=summary.total_overhead_cost,
        total_cost=summary.total_cost,
        unit_cost=summary.unit_cost,
        standard_cost=summary.standard_cost,
        standard_total_cost=summary.standard_total_cost,
        variance=summary.variance,
        variance_percentage=summary.variance_percentage,
        stage_costs=[StageCost.model_validate(sc) for sc in summary.stage_costs]
    )


@router.post("/{order_id}/materials", response_model=MaterialIssueResponse, status_code=status.HTTP_201_CREATED)
def issue_materials(
    order_id: str,
    issue: MaterialIssueCreate,
    service: ProcessCostingService = Depends(deps.get_costing_service),
):
    """Issue raw material from stock to an order stage"""
    result = service.issue_materials(
        order_id,
        issue.stage,
        issue.item_id,
        issue.location_id,
        issue.qty,
        issue.posting_date,
        posting_time=issue.posting_time
    )
    return MaterialIssueResponse(
        entry=StockLedgerEntry.model_validate(result.posting.entry),
        stage_no=result.stage_no,
        material_cost=result.material_cost,
        negative_stock=result.posting.negative_stock
    )


@router.post("/{order_id}/finished-goods", response_model=StockPostingResponse, status_code=status.HTTP_201_CREATED)
def receive_finished_goods(
    order_id: str,
    receipt: FinishedGoodsCreate,
    service: ProcessCostingService = Depends(deps.get_costing_service),
):
    """Receive finished output into stock at the final stage's unit cost"""
    result = service.receive_finished_goods(
        order_id,
        receipt.location_id,
        receipt.qty,
        receipt.posting_date,
        posting_time=receipt.posting_time
    )
    return StockPostingResponse(
        entry=StockLedgerEntry.model_validate(result.entry),
        negative_stock=result.negative_stock,
        cost_of_goods_sold=result.cost_of_goods_sold,
        entries_reposted=result.entries_reposted
    )


@router.post("/{order_id}/finish", response_model=ManufacturingOrder)
def finish_order(
    order_id: str,
    service: ProcessCostingService = Depends(deps.get_costing_service),
):
    """Close an order; stage costs can no longer change"""
    order = service.finish_order(order_id)
    logger.info(f"Order {order_id} finished via API")
    return order
