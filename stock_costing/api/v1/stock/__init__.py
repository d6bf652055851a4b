"""Stock ledger API endpoints"""

from . import movements, valuation

__all__ = ["movements", "valuation"]
