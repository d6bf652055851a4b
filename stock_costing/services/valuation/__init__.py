"""Valuation strategies"""
from .strategies import (
    ValuationMethod,
    StockBatch,
    IncomingRateResult,
    OutgoingRateResult,
    ValuationStrategy,
    WeightedAverageStrategy,
    MovingAverageStrategy,
    FIFOStrategy,
    LIFOStrategy,
    get_strategy,
    get_supported_methods,
    queue_from_json,
    queue_to_json,
)

__all__ = [
    "ValuationMethod",
    "StockBatch",
    "IncomingRateResult",
    "OutgoingRateResult",
    "ValuationStrategy",
    "WeightedAverageStrategy",
    "MovingAverageStrategy",
    "FIFOStrategy",
    "LIFOStrategy",
    "get_strategy",
    "get_supported_methods",
    "queue_from_json",
    "queue_to_json",
]
