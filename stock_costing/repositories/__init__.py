"""Storage interfaces and their SQLAlchemy implementations"""
from .base import StockRepository, CostingRepository
from .sql import SqlStockRepository, SqlCostingRepository

__all__ = [
    "StockRepository",
    "CostingRepository",
    "SqlStockRepository",
    "SqlCostingRepository",
]
