"""
Main API Router - Consolidates all module routes
"""

from fastapi import APIRouter
from stock_costing.api.v1 import stock, manufacturing
from stock_costing.schemas.common import ErrorResponse

# Typed engine errors documented on every route
ERROR_RESPONSES = {
    404: {"model": ErrorResponse, "description": "Referenced record not found"},
    409: {"model": ErrorResponse, "description": "Business rule or ledger consistency violation"},
    422: {"model": ErrorResponse, "description": "Invalid movement or cost input"},
}

api_router = APIRouter(responses=ERROR_RESPONSES)

# Stock ledger routes
api_router.include_router(stock.movements.router, prefix="/stock", tags=["stock-movements"])
api_router.include_router(stock.valuation.router, prefix="/stock", tags=["stock-valuation"])

# Manufacturing routes
api_router.include_router(
    manufacturing.process_costing.router,
    prefix="/manufacturing/orders",
    tags=["process-costing"]
)
