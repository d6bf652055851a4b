"""
Custom Application Exceptions
"""


class StockCostingException(Exception):
    """Base exception for the stock costing engine"""
    pass


class ValidationError(StockCostingException):
    """Raised when data validation fails, before anything is written"""
    pass


class NegativeStockError(ValidationError):
    """Raised when a posting would leave a negative balance and the policy blocks it"""

    def __init__(self, item_id: str, location_id: str, resulting_qty):
        self.item_id = item_id
        self.location_id = location_id
        self.resulting_qty = resulting_qty
        super().__init__(
            f"Insufficient stock for {item_id} at {location_id}: "
            f"balance would be {resulting_qty}"
        )


class NotFoundError(StockCostingException):
    """Raised when a referenced record does not exist"""
    pass


class BusinessLogicError(StockCostingException):
    """Raised when business rules are violated"""
    pass


class ConsistencyError(StockCostingException):
    """Raised when the ledger chain invariant is broken"""
    pass


class PersistenceError(StockCostingException):
    """Raised when a database write fails"""
    pass


class NegativeStockWarning(UserWarning):
    """Emitted (never raised) when a posting leaves a negative balance"""
    pass
