"""
Stock Costing Services
Valuation, stock ledger, documents and process costing
"""

from .valuation import ValuationMethod, get_strategy
from .stock import (
    StockLedgerService,
    StockMovementRequest,
    BinService,
    RepostingService,
    ItemValuationService,
    StockMovementService,
)
from .manufacturing import ProcessCostingService
from .documents import (
    DocStatus,
    StockEntry,
    GoodsReceipt,
    DeliveryNote,
    submit_document,
    cancel_document,
)

__all__ = [
    "ValuationMethod",
    "get_strategy",
    "StockLedgerService",
    "StockMovementRequest",
    "BinService",
    "RepostingService",
    "ItemValuationService",
    "StockMovementService",
    "ProcessCostingService",
    "DocStatus",
    "StockEntry",
    "GoodsReceipt",
    "DeliveryNote",
    "submit_document",
    "cancel_document",
]
