"""
Stock Costing SQLAlchemy Models
"""

# Import all models to ensure they are registered with SQLAlchemy
from .stock import StockLedgerEntry, Bin, ItemValuationSetting
from .manufacturing import (
    WorkCenter, ManufacturingStage, ManufacturingOrder,
    StageCost, LaborTimeLog, OverheadApplied
)

__all__ = [
    "StockLedgerEntry",
    "Bin",
    "ItemValuationSetting",
    "WorkCenter",
    "ManufacturingStage",
    "ManufacturingOrder",
    "StageCost",
    "LaborTimeLog",
    "OverheadApplied",
]
