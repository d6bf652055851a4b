"""
Running balance chain
The state carried from one ledger entry to the next and the single step
that advances it. Both ledger appends and reposts go through apply_movement
so a replay reproduces the original postings exactly.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from stock_costing.core.precision import ZERO, round_qty, round_rate, round_currency, to_decimal
from stock_costing.services.valuation.strategies import (
    StockBatch, ValuationStrategy, queue_from_json, queue_to_json
)


@dataclass
class BalanceState:
    """Quantity, rate, value and batch queue after some entry"""
    qty: Decimal = ZERO
    rate: Decimal = ZERO
    value: Decimal = ZERO
    queue: List[StockBatch] = field(default_factory=list)

    @classmethod
    def from_entry(cls, entry) -> "BalanceState":
        if entry is None:
            return cls()
        return cls(
            qty=to_decimal(entry.qty_after_transaction),
            rate=to_decimal(entry.valuation_rate),
            value=to_decimal(entry.stock_value),
            queue=queue_from_json(entry.stock_queue)
        )

    def queue_json(self) -> List[List[str]]:
        return queue_to_json(self.queue)


@dataclass
class MovementValuation:
    """Result of valuing one movement against a balance"""
    state: BalanceState
    incoming_rate: Decimal
    outgoing_rate: Decimal
    stock_value_difference: Decimal
    cost_of_goods_sold: Decimal = ZERO
    shortfall_qty: Decimal = ZERO


def _rounded_queue(queue: List[StockBatch]) -> List[StockBatch]:
    return [StockBatch(round_qty(b.qty), round_rate(b.rate)) for b in queue if round_qty(b.qty) != 0]


def apply_movement(
    strategy: ValuationStrategy,
    prev: BalanceState,
    actual_qty,
    incoming_rate: Optional[Decimal] = None
) -> MovementValuation:
    """Value one signed movement and round the new state for storage"""
    actual_qty = round_qty(actual_qty)

    if actual_qty > 0:
        in_rate = round_rate(incoming_rate)
        result = strategy.calculate_incoming_rate(
            prev.qty, prev.rate, prev.value, prev.queue, actual_qty, in_rate
        )
        new_rate, out_rate, cogs, shortfall = result.new_rate, ZERO, ZERO, ZERO
    else:
        in_rate = ZERO
        result = strategy.calculate_outgoing_rate(prev.qty, prev.queue, -actual_qty)
        new_rate = result.valuation_rate
        out_rate = round_rate(result.rate)
        cogs = round_currency(result.cost_of_goods_sold)
        shortfall = result.shortfall_qty

    state = BalanceState(
        qty=round_qty(result.new_qty),
        rate=round_rate(new_rate),
        value=round_currency(result.new_value),
        queue=_rounded_queue(result.new_queue)
    )
    return MovementValuation(
        state=state,
        incoming_rate=in_rate,
        outgoing_rate=out_rate,
        stock_value_difference=state.value - round_currency(prev.value),
        cost_of_goods_sold=cogs,
        shortfall_qty=shortfall
    )
