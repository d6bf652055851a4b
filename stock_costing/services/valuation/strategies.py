"""
Valuation Strategies
Pure calculators for FIFO, LIFO, Weighted Average and Moving Average costing.

Each strategy takes the previous balance of one (item, location) and a
movement, and returns the new balance, valuation rate, value and batch queue.
No strategy touches the database; the ledger and the reposting engine feed
them and persist what they return.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Type

from stock_costing.core.config import settings, QUEUE_SHORTFALL_POLICIES
from stock_costing.core.exceptions import ConsistencyError, ValidationError
from stock_costing.core.precision import ZERO, to_decimal


class ValuationMethod(str, Enum):
    """Stock valuation methods"""
    FIFO = "FIFO"
    LIFO = "LIFO"
    WEIGHTED_AVERAGE = "Weighted Average"
    MOVING_AVERAGE = "Moving Average"

    @classmethod
    def parse(cls, value) -> "ValuationMethod":
        """Accept an enum member, its value or its name in any case"""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip()
        for member in cls:
            if text.lower() in (member.value.lower(), member.name.lower()):
                return member
        raise ValidationError(
            f"Unknown valuation method '{value}'. "
            f"Supported: {', '.join(m.value for m in cls)}"
        )


@dataclass(frozen=True)
class StockBatch:
    """One (qty, rate) layer of on-hand stock"""
    qty: Decimal
    rate: Decimal

    @property
    def value(self) -> Decimal:
        return self.qty * self.rate

    def to_list(self) -> List[str]:
        return [str(self.qty), str(self.rate)]

    @classmethod
    def from_list(cls, pair: Sequence) -> "StockBatch":
        qty, rate = pair
        return cls(qty=to_decimal(qty), rate=to_decimal(rate))


def queue_from_json(raw: Optional[Iterable]) -> List[StockBatch]:
    """Build a batch list from the stored JSON form [[qty, rate], ...]"""
    return [StockBatch.from_list(pair) for pair in (raw or [])]


def queue_to_json(queue: Iterable[StockBatch]) -> List[List[str]]:
    return [batch.to_list() for batch in queue]


def queue_qty(queue: Iterable[StockBatch]) -> Decimal:
    return sum((batch.qty for batch in queue), ZERO)


def queue_value(queue: Iterable[StockBatch]) -> Decimal:
    return sum((batch.value for batch in queue), ZERO)


@dataclass
class IncomingRateResult:
    """Balance after an inbound movement"""
    new_qty: Decimal
    new_rate: Decimal
    new_value: Decimal
    new_queue: List[StockBatch] = field(default_factory=list)


@dataclass
class OutgoingRateResult:
    """Balance after an outbound movement

    rate is the unit cost of the goods removed; valuation_rate is the rate of
    what remains on hand.
    """
    new_qty: Decimal
    cost_of_goods_sold: Decimal
    rate: Decimal
    new_value: Decimal
    valuation_rate: Decimal
    new_queue: List[StockBatch] = field(default_factory=list)
    shortfall_qty: Decimal = ZERO


class ValuationStrategy(ABC):
    """Base class for valuation calculators"""

    method: ValuationMethod

    @abstractmethod
    def calculate_incoming_rate(
        self,
        prev_qty: Decimal,
        prev_rate: Decimal,
        prev_value: Decimal,
        prev_queue: List[StockBatch],
        in_qty: Decimal,
        in_rate: Decimal
    ) -> IncomingRateResult:
        pass

    @abstractmethod
    def calculate_outgoing_rate(
        self,
        qty_on_hand: Decimal,
        queue: List[StockBatch],
        out_qty: Decimal
    ) -> OutgoingRateResult:
        pass

    @abstractmethod
    def get_current_rate(self, queue: List[StockBatch]) -> Decimal:
        pass

    def get_method_name(self) -> str:
        return self.method.value


class WeightedAverageStrategy(ValuationStrategy):
    """
    Weighted average cost (AVCO)

    The whole balance is carried as a single synthetic batch at the current
    average rate. Outbound movements are costed at that rate and leave it
    unchanged; a balance that reaches zero drops the rate back to 0.
    """

    method = ValuationMethod.WEIGHTED_AVERAGE

    def calculate_incoming_rate(self, prev_qty, prev_rate, prev_value, prev_queue, in_qty, in_rate):
        in_qty, in_rate = to_decimal(in_qty), to_decimal(in_rate)
        new_qty = to_decimal(prev_qty) + in_qty

        if new_qty > 0:
            new_value = to_decimal(prev_value) + in_qty * in_rate
            new_rate = new_value / new_qty
        else:
            # Still short after the receipt: nothing on hand to carry a rate
            new_rate = ZERO
            new_value = new_qty * new_rate

        new_queue = [StockBatch(new_qty, new_rate)] if new_qty != 0 else []
        return IncomingRateResult(new_qty=new_qty, new_rate=new_rate, new_value=new_value, new_queue=new_queue)

    def calculate_outgoing_rate(self, qty_on_hand, queue, out_qty):
        out_qty = to_decimal(out_qty)
        current_rate = self.get_current_rate(queue)
        new_qty = to_decimal(qty_on_hand) - out_qty

        if new_qty == 0:
            valuation_rate = ZERO
            new_queue = []
        else:
            valuation_rate = current_rate
            new_queue = [StockBatch(new_qty, current_rate)]

        return OutgoingRateResult(
            new_qty=new_qty,
            cost_of_goods_sold=out_qty * current_rate,
            rate=current_rate,
            new_value=new_qty * valuation_rate,
            valuation_rate=valuation_rate,
            new_queue=new_queue
        )

    def get_current_rate(self, queue):
        return queue[0].rate if queue else ZERO


class MovingAverageStrategy(WeightedAverageStrategy):
    """Moving average; recalculated on every receipt exactly like AVCO"""

    method = ValuationMethod.MOVING_AVERAGE


class QueueStrategy(ValuationStrategy):
    """
    Shared logic for batch-queue methods (FIFO and LIFO)

    Receipts append a batch. Issues drain batches from one end, keeping the
    remainder of a partially consumed batch in place. Value is always the sum
    of the queue and the reported rate is its weighted average.
    """

    def __init__(self, shortfall_policy: Optional[str] = None):
        policy = (shortfall_policy or settings.QUEUE_SHORTFALL_POLICY).lower()
        if policy not in QUEUE_SHORTFALL_POLICIES:
            raise ValidationError(f"Unknown queue shortfall policy '{shortfall_policy}'")
        self.shortfall_policy = policy

    @abstractmethod
    def _drain_order(self, queue: List[StockBatch]) -> List[StockBatch]:
        """Batches in the order they are consumed"""

    @abstractmethod
    def _restore_order(self, remaining: List[StockBatch]) -> List[StockBatch]:
        """Turn the leftover batches back into stored (oldest first) order"""

    def calculate_incoming_rate(self, prev_qty, prev_rate, prev_value, prev_queue, in_qty, in_rate):
        in_qty, in_rate = to_decimal(in_qty), to_decimal(in_rate)
        prev_qty = to_decimal(prev_qty)
        new_qty = prev_qty + in_qty

        if prev_qty < 0:
            # The receipt first settles the deficit; only the surplus is stocked
            new_queue = [StockBatch(new_qty, in_rate)] if new_qty > 0 else []
        else:
            new_queue = list(prev_queue) + [StockBatch(in_qty, in_rate)]

        new_value = queue_value(new_queue)
        new_rate = new_value / new_qty if new_qty > 0 else ZERO
        return IncomingRateResult(new_qty=new_qty, new_rate=new_rate, new_value=new_value, new_queue=new_queue)

    def calculate_outgoing_rate(self, qty_on_hand, queue, out_qty):
        out_qty = to_decimal(out_qty)
        remaining = out_qty
        cost_of_goods_sold = ZERO
        leftover: List[StockBatch] = []

        for batch in self._drain_order(queue):
            if remaining <= 0:
                leftover.append(batch)
                continue
            take = min(batch.qty, remaining)
            cost_of_goods_sold += take * batch.rate
            remaining -= take
            if batch.qty > take:
                leftover.append(StockBatch(batch.qty - take, batch.rate))

        if remaining > 0 and self.shortfall_policy == "raise":
            raise ConsistencyError(
                f"{self.method.value} queue holds {queue_qty(queue)} but {out_qty} was requested"
            )

        new_queue = self._restore_order(leftover)
        new_qty = to_decimal(qty_on_hand) - out_qty
        new_value = queue_value(new_queue)
        return OutgoingRateResult(
            new_qty=new_qty,
            cost_of_goods_sold=cost_of_goods_sold,
            rate=cost_of_goods_sold / out_qty if out_qty > 0 else ZERO,
            new_value=new_value,
            valuation_rate=new_value / new_qty if new_qty > 0 else ZERO,
            new_queue=new_queue,
            shortfall_qty=max(remaining, ZERO)
        )


class FIFOStrategy(QueueStrategy):
    """First in, first out"""

    method = ValuationMethod.FIFO

    def _drain_order(self, queue):
        return list(queue)

    def _restore_order(self, remaining):
        return remaining

    def get_current_rate(self, queue):
        return queue[0].rate if queue else ZERO


class LIFOStrategy(QueueStrategy):
    """Last in, first out"""

    method = ValuationMethod.LIFO

    def _drain_order(self, queue):
        return list(reversed(queue))

    def _restore_order(self, remaining):
        return list(reversed(remaining))

    def get_current_rate(self, queue):
        return queue[-1].rate if queue else ZERO


STRATEGY_REGISTRY: Dict[ValuationMethod, Type[ValuationStrategy]] = {
    ValuationMethod.FIFO: FIFOStrategy,
    ValuationMethod.LIFO: LIFOStrategy,
    ValuationMethod.WEIGHTED_AVERAGE: WeightedAverageStrategy,
    ValuationMethod.MOVING_AVERAGE: MovingAverageStrategy,
}


def get_strategy(method, shortfall_policy: Optional[str] = None) -> ValuationStrategy:
    """Resolve a valuation method (enum or name) to a strategy instance"""
    strategy_class = STRATEGY_REGISTRY[ValuationMethod.parse(method)]
    if issubclass(strategy_class, QueueStrategy):
        return strategy_class(shortfall_policy=shortfall_policy)
    return strategy_class()


def get_supported_methods() -> List[ValuationMethod]:
    return list(STRATEGY_REGISTRY)
