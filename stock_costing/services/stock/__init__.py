"""Stock ledger, bins, reposting and movement services"""

from .ledger import StockLedgerService, StockMovementRequest, LedgerPostingResult, StockBalance
from .bins import BinService
from .reposting import RepostingService, RepostResult
from .item_settings import ItemValuationService
from .movements import StockMovementService, TransferResult

__all__ = [
    "StockLedgerService",
    "StockMovementRequest",
    "LedgerPostingResult",
    "StockBalance",
    "BinService",
    "RepostingService",
    "RepostResult",
    "ItemValuationService",
    "StockMovementService",
    "TransferResult",
]
