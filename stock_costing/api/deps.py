"""
API Dependencies
Common dependencies for API endpoints
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from stock_costing.core.database import get_db
from stock_costing.services.stock import StockLedgerService, StockMovementService, BinService
from stock_costing.services.manufacturing import ProcessCostingService


def get_ledger_service(db: Session = Depends(get_db)) -> StockLedgerService:
    return StockLedgerService(db)


def get_movement_service(db: Session = Depends(get_db)) -> StockMovementService:
    return StockMovementService(db)


def get_bin_service(db: Session = Depends(get_db)) -> BinService:
    return BinService(db)


def get_costing_service(db: Session = Depends(get_db)) -> ProcessCostingService:
    return ProcessCostingService(db)


__all__ = [
    "get_db",
    "get_ledger_service",
    "get_movement_service",
    "get_bin_service",
    "get_costing_service",
]
