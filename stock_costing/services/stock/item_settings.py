"""
Item valuation settings
Resolves which valuation method applies to an item
"""
from typing import Optional

from sqlalchemy.orm import Session

from stock_costing.core.config import settings
from stock_costing.core.exceptions import BusinessLogicError
from stock_costing.core.logging import get_logger
from stock_costing.models.stock import ItemValuationSetting
from stock_costing.repositories.base import StockRepository
from stock_costing.repositories.sql import SqlStockRepository
from stock_costing.services.valuation.strategies import (
    ValuationMethod, ValuationStrategy, get_strategy
)

logger = get_logger("ledger")


class ItemValuationService:
    """Per-item valuation method, defaulting to DEFAULT_VALUATION_METHOD"""

    def __init__(self, db: Optional[Session] = None, repository: Optional[StockRepository] = None):
        self.repo = repository or SqlStockRepository(db)

    def get_method(self, item_id: str) -> ValuationMethod:
        setting = self.repo.get_item_setting(item_id)
        if setting is None:
            return ValuationMethod.parse(settings.DEFAULT_VALUATION_METHOD)
        return ValuationMethod.parse(setting.valuation_method)

    def get_strategy(self, item_id: str, shortfall_policy: Optional[str] = None) -> ValuationStrategy:
        """Resolve the item's strategy once for a ledger operation"""
        return get_strategy(self.get_method(item_id), shortfall_policy=shortfall_policy)

    def set_method(self, item_id: str, method) -> ItemValuationSetting:
        """
        Choose the valuation method for an item.

        Changing method once the item has ledger entries would invalidate the
        stored queues, so it is rejected.
        """
        method = ValuationMethod.parse(method)
        current = self.get_method(item_id)
        if method != current and self.repo.item_has_entries(item_id):
            raise BusinessLogicError(
                f"Cannot change valuation method of {item_id} from {current.value} "
                f"to {method.value}: the item already has stock transactions"
            )

        setting = self.repo.get_item_setting(item_id)
        if setting is None:
            setting = ItemValuationSetting(item_id=item_id, valuation_method=method.value)
        else:
            setting.valuation_method = method.value
        self.repo.save_item_setting(setting)
        logger.info(f"Valuation method for {item_id} set to {method.value}")
        return setting
