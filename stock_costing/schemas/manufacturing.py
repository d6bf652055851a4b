"""Manufacturing Process Costing Schemas"""

from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List, Union
from datetime import date, time, datetime
from decimal import Decimal
from enum import Enum

from .stock import StockLedgerEntry


class StageCostMode(str, Enum):
    PRECOSTED = "precosted"
    ACTUAL = "actual"
    COMPLETED = "completed"


def stage_ref(value: Union[int, str]) -> Union[int, str]:
    """All-digit stage references are stage numbers, anything else a stage ID"""
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


class StageRequest(BaseModel):
    stage: Union[int, str] = Field(..., description="Stage number or stage ID")

    @field_validator("stage", mode="before")
    @classmethod
    def normalise_stage(cls, v):
        return stage_ref(v)


# Labor Schemas
class LaborTimeCreate(StageRequest):
    hours: Decimal = Field(..., gt=0)
    hourly_rate: Decimal = Field(..., gt=0)
    work_center_id: Optional[str] = None
    employee_name: Optional[str] = Field(None, max_length=100)
    operation_code: Optional[str] = Field(None, max_length=30)
    notes: Optional[str] = None


class LaborTimeLog(BaseModel):
    id: int
    mo_id: str
    stage_no: int
    work_center_id: str
    employee_name: Optional[str] = None
    operation_code: Optional[str] = None
    hours: Decimal
    hourly_rate: Decimal
    total_cost: Decimal
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Overhead Schemas
class OverheadCreate(StageRequest):
    base_qty: Decimal = Field(..., gt=0)
    overhead_rate: Decimal = Field(..., gt=0)
    work_center_id: Optional[str] = None
    allocation_base: str = Field("labor_cost", max_length=30)
    overhead_type: str = Field("variable", max_length=30)
    notes: Optional[str] = None


class OverheadApplied(BaseModel):
    id: int
    mo_id: str
    stage_no: int
    work_center_id: str
    allocation_base: str
    base_qty: Decimal
    overhead_rate: Decimal
    amount: Decimal
    overhead_type: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Stage Cost Schemas
class StageCostUpdate(BaseModel):
    good_qty: Decimal = Field(..., ge=0)
    scrap_qty: Decimal = Field(default=0, ge=0)
    rework_qty: Decimal = Field(default=0, ge=0)
    material_cost: Decimal = Field(default=0, ge=0)
    mode: StageCostMode = StageCostMode.ACTUAL
    work_center_id: Optional[str] = None


class StageCost(BaseModel):
    id: int
    mo_id: str
    stage_no: int
    stage_id: Optional[str] = None
    work_center_id: Optional[str] = None
    good_qty: Decimal
    scrap_qty: Decimal
    rework_qty: Decimal
    material_cost: Decimal
    labor_cost: Decimal
    overhead_cost: Decimal
    transferred_in_cost: Decimal
    total_cost: Decimal
    unit_cost: Decimal
    status: str
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OrderCostSummary(BaseModel):
    order_id: str
    order_number: str
    item_id: str
    planned_qty: Decimal
    completed_qty: Decimal
    total_material_cost: Decimal
    total_labor_cost: Decimal
    total_overhead_cost: Decimal
    total_cost: Decimal
    unit_cost: Decimal
    standard_cost: Optional[Decimal] = None
    standard_total_cost: Optional[Decimal] = None
    variance: Optional[Decimal] = None
    variance_percentage: Optional[Decimal] = None
    stage_costs: List[StageCost] = []

    model_config = ConfigDict(from_attributes=True)


# Inventory hand-off Schemas
class MaterialIssueCreate(StageRequest):
    item_id: str = Field(..., min_length=1, max_length=60)
    location_id: str = Field(..., min_length=1, max_length=60)
    qty: Decimal = Field(..., gt=0)
    posting_date: date
    posting_time: Optional[time] = None


class MaterialIssueResponse(BaseModel):
    entry: StockLedgerEntry
    stage_no: int
    material_cost: Decimal
    negative_stock: bool = False


class FinishedGoodsCreate(BaseModel):
    location_id: str = Field(..., min_length=1, max_length=60)
    qty: Decimal = Field(..., gt=0)
    posting_date: date
    posting_time: Optional[time] = None


class ManufacturingOrder(BaseModel):
    id: str
    order_number: str
    item_id: str
    planned_qty: Decimal
    completed_qty: Decimal
    standard_cost: Optional[Decimal] = None
    status: str

    model_config = ConfigDict(from_attributes=True)
