"""Manufacturing services"""
from .process_costing import ProcessCostingService, OrderCostSummary, MaterialIssueResult

__all__ = ["ProcessCostingService", "OrderCostSummary", "MaterialIssueResult"]
