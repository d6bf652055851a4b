"""
Stock Costing Pydantic Schemas
Request/Response models for the stock ledger and process costing API
"""
from .common import ErrorResponse, HealthResponse
from .stock import (
    StockMovementCreate, StockLedgerEntry, StockPostingResponse, StockLedgerListResponse,
    StockTransferCreate, StockTransferResponse, StockBalance, Bin,
    RepostRequest, RepostResponse, ValuationMethodUpdate, ItemValuationSetting
)
from .manufacturing import (
    StageCostMode, LaborTimeCreate, LaborTimeLog, OverheadCreate, OverheadApplied,
    StageCostUpdate, StageCost, OrderCostSummary, MaterialIssueCreate,
    MaterialIssueResponse, FinishedGoodsCreate, ManufacturingOrder
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "StockMovementCreate",
    "StockLedgerEntry",
    "StockPostingResponse",
    "StockLedgerListResponse",
    "StockTransferCreate",
    "StockTransferResponse",
    "StockBalance",
    "Bin",
    "RepostRequest",
    "RepostResponse",
    "ValuationMethodUpdate",
    "ItemValuationSetting",
    "StageCostMode",
    "LaborTimeCreate",
    "LaborTimeLog",
    "OverheadCreate",
    "OverheadApplied",
    "StageCostUpdate",
    "StageCost",
    "OrderCostSummary",
    "MaterialIssueCreate",
    "MaterialIssueResponse",
    "FinishedGoodsCreate",
    "ManufacturingOrder",
]
