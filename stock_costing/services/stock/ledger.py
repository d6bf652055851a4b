"""
Stock Ledger Store
Appends valued stock movements per (item, location) and keeps the bin in step
"""
import warnings
from dataclasses import dataclass
from datetime import date, time
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock_costing.core.config import settings, NEGATIVE_STOCK_POLICIES
from stock_costing.core.exceptions import (
    BusinessLogicError, NegativeStockError, NegativeStockWarning, NotFoundError,
    PersistenceError, StockCostingException, ValidationError
)
from stock_costing.core.locks import KeyedLockRegistry, stock_key_locks
from stock_costing.core.logging import get_logger
from stock_costing.core.precision import ZERO, round_qty, round_rate, to_decimal
from stock_costing.models.stock import StockLedgerEntry
from stock_costing.repositories.base import StockRepository
from stock_costing.repositories.sql import SqlStockRepository
from stock_costing.services.stock.bins import BinService
from stock_costing.services.stock.chain import BalanceState, apply_movement
from stock_costing.services.stock.item_settings import ItemValuationService
from stock_costing.services.stock.reposting import RepostingService

logger = get_logger("ledger")

DEFAULT_POSTING_TIME = time(0, 0, 0)


@dataclass
class StockMovementRequest:
    """A movement to be valued and appended to the ledger"""
    voucher_type: str
    voucher_id: str
    item_id: str
    location_id: str
    actual_qty: Decimal
    posting_date: date
    posting_time: Optional[time] = None
    incoming_rate: Optional[Decimal] = None
    valuation_rate: Optional[Decimal] = None
    voucher_detail_no: Optional[str] = None


@dataclass
class LedgerPostingResult:
    """Persisted entry plus what the caller needs to know about it"""
    entry: StockLedgerEntry
    negative_stock: bool = False
    cost_of_goods_sold: Decimal = ZERO
    entries_reposted: int = 0


@dataclass
class StockBalance:
    """Quantity, rate and value of one (item, location)"""
    item_id: str
    location_id: str
    qty: Decimal
    valuation_rate: Decimal
    stock_value: Decimal
    as_of: Optional[date] = None


class StockLedgerService:
    """
    Stock ledger

    Every append runs under the per-key lock: read the latest balance at or
    before the posting time, value the movement with the item's strategy,
    insert the entry, bring the bin up to date and commit. A posting dated
    before existing entries reposts the key from its date inside the same
    lock. Entries are never deleted; cancel appends a reversal.
    """

    def __init__(
        self,
        db: Optional[Session] = None,
        repository: Optional[StockRepository] = None,
        locks: KeyedLockRegistry = stock_key_locks,
        negative_stock_policy: Optional[str] = None,
        shortfall_policy: Optional[str] = None,
        auto_repost: Optional[bool] = None
    ):
        self.repo = repository or SqlStockRepository(db)
        self.locks = locks
        self.negative_stock_policy = (negative_stock_policy or settings.NEGATIVE_STOCK_POLICY).lower()
        if self.negative_stock_policy not in NEGATIVE_STOCK_POLICIES:
            raise ValidationError(f"Unknown negative stock policy '{negative_stock_policy}'")
        self.shortfall_policy = shortfall_policy
        self.auto_repost = settings.AUTO_REPOST_BACKDATED if auto_repost is None else auto_repost

        self.bins = BinService(repository=self.repo, locks=locks)
        self.item_settings = ItemValuationService(repository=self.repo)
        self.reposting = RepostingService(repository=self.repo, locks=locks, shortfall_policy=shortfall_policy)

    def validate_request(self, request: StockMovementRequest):
        """Reject incomplete or impossible movements before anything is read or written"""
        errors = []
        if not request.voucher_type:
            errors.append("Voucher type is required")
        if not request.voucher_id:
            errors.append("Voucher ID is required")
        if not request.item_id:
            errors.append("Item ID is required")
        if not request.location_id:
            errors.append("Location ID is required")
        if not request.posting_date:
            errors.append("Posting date is required")

        qty = round_qty(request.actual_qty) if request.actual_qty is not None else ZERO
        if qty == 0:
            errors.append("Quantity cannot be zero")
        elif qty > 0:
            rate = self._incoming_rate(request)
            if rate is None:
                errors.append("Rate is required for incoming stock")
            elif to_decimal(rate) < 0:
                errors.append("Rate cannot be negative")

        if errors:
            raise ValidationError("; ".join(errors))

    @staticmethod
    def _incoming_rate(request: StockMovementRequest) -> Optional[Decimal]:
        if request.incoming_rate is not None:
            return request.incoming_rate
        return request.valuation_rate

    def append(self, request: StockMovementRequest, commit: bool = True) -> LedgerPostingResult:
        """Value a movement and append it to the ledger"""
        self.validate_request(request)

        item_id, location_id = request.item_id, request.location_id
        posting_time = request.posting_time or DEFAULT_POSTING_TIME
        actual_qty = round_qty(request.actual_qty)
        incoming_rate = round_rate(self._incoming_rate(request)) if actual_qty > 0 else ZERO

        with self.locks.hold((item_id, location_id)):
            try:
                self.bins.get_or_create_bin(item_id, location_id, for_update=True)
                strategy = self.item_settings.get_strategy(item_id, self.shortfall_policy)

                previous = self.repo.latest_entry(item_id, location_id, up_to=(request.posting_date, posting_time))
                valuation = apply_movement(strategy, BalanceState.from_entry(previous), actual_qty, incoming_rate)
                state = valuation.state

                negative_stock = state.qty < 0
                if negative_stock:
                    self._handle_negative_stock(item_id, location_id, state.qty)

                entry = StockLedgerEntry(
                    voucher_type=request.voucher_type,
                    voucher_id=request.voucher_id,
                    voucher_detail_no=request.voucher_detail_no,
                    item_id=item_id,
                    location_id=location_id,
                    posting_date=request.posting_date,
                    posting_time=posting_time,
                    actual_qty=actual_qty,
                    incoming_rate=valuation.incoming_rate,
                    outgoing_rate=valuation.outgoing_rate,
                    qty_after_transaction=state.qty,
                    valuation_rate=state.rate,
                    stock_value=state.value,
                    stock_value_difference=valuation.stock_value_difference,
                    stock_queue=state.queue_json(),
                    valuation_method=strategy.get_method_name(),
                    is_cancelled=False
                )
                self.repo.add_entry(entry)

                entries_reposted = 0
                backdated = self.repo.has_later_entries(
                    item_id, location_id, request.posting_date, posting_time, exclude_id=entry.id
                )
                if backdated and self.auto_repost:
                    repost_result = self.reposting.repost(
                        item_id, location_id, request.posting_date, commit=False
                    )
                    entries_reposted = repost_result.entries_reposted
                    # A backdated issue can drive later balances negative
                    if repost_result.lowest_qty < 0 and not negative_stock:
                        negative_stock = True
                        self._handle_negative_stock(item_id, location_id, repost_result.lowest_qty)
                else:
                    if backdated:
                        logger.warning(
                            f"Backdated entry {entry.id} for {item_id}@{location_id} posted "
                            f"without repost; later balances are stale"
                        )
                    self.bins.reconcile(item_id, location_id)

                if commit:
                    self.repo.commit()

            except StockCostingException:
                if commit:
                    self.repo.rollback()
                raise
            except SQLAlchemyError as e:
                self.repo.rollback()
                logger.error(f"Failed to post {request.voucher_type} {request.voucher_id}: {e}")
                raise PersistenceError(f"Failed to create stock ledger entry: {e}") from e

        logger.info(
            f"Posted {entry.voucher_type} {entry.voucher_id} {item_id}@{location_id} "
            f"qty={actual_qty} balance={state.qty} rate={state.rate} value={state.value}"
        )
        return LedgerPostingResult(
            entry=entry,
            negative_stock=negative_stock,
            cost_of_goods_sold=valuation.cost_of_goods_sold,
            entries_reposted=entries_reposted
        )

    def _handle_negative_stock(self, item_id: str, location_id: str, resulting_qty: Decimal):
        if self.negative_stock_policy == "block":
            logger.warning(f"Blocked posting for {item_id}@{location_id}: balance would be {resulting_qty}")
            raise NegativeStockError(item_id, location_id, resulting_qty)
        if self.negative_stock_policy == "warn":
            message = f"Negative stock for {item_id}@{location_id}: balance {resulting_qty}"
            logger.warning(message)
            warnings.warn(message, NegativeStockWarning, stacklevel=3)

    def cancel(self, entry_id: int, commit: bool = True) -> LedgerPostingResult:
        """
        Void an entry by appending its reversal.

        The reversal carries the negated quantity and swapped rates at the
        same posting date and time. Both rows are flagged cancelled so neither
        takes part in the running chain, and the key is reposted from the
        original posting date. The repost is checked against the negative-stock
        policy, so removing a receipt that later issues relied on is blocked
        under `block` and flagged otherwise.
        """
        original = self.repo.get_entry(entry_id)
        if original is None:
            raise NotFoundError(f"Stock ledger entry {entry_id} not found")

        item_id, location_id = original.item_id, original.location_id
        with self.locks.hold((item_id, location_id)):
            try:
                if original.reversal_of_id is not None:
                    raise BusinessLogicError(f"Entry {entry_id} is a reversal and cannot be cancelled")
                if original.is_cancelled:
                    raise BusinessLogicError(f"Entry {entry_id} is already cancelled")

                self.bins.get_or_create_bin(item_id, location_id, for_update=True)
                previous = self.repo.latest_entry(
                    item_id, location_id,
                    before_entry=(original.posting_date, original.posting_time, original.id)
                )
                restored = BalanceState.from_entry(previous)

                reversal = StockLedgerEntry(
                    voucher_type=original.voucher_type,
                    voucher_id=original.voucher_id,
                    voucher_detail_no=original.voucher_detail_no,
                    item_id=item_id,
                    location_id=location_id,
                    posting_date=original.posting_date,
                    posting_time=original.posting_time,
                    actual_qty=-to_decimal(original.actual_qty),
                    incoming_rate=original.outgoing_rate,
                    outgoing_rate=original.incoming_rate,
                    qty_after_transaction=restored.qty,
                    valuation_rate=restored.rate,
                    stock_value=restored.value,
                    stock_value_difference=-to_decimal(original.stock_value_difference),
                    stock_queue=restored.queue_json(),
                    valuation_method=original.valuation_method,
                    is_cancelled=True,
                    reversal_of_id=original.id
                )
                original.is_cancelled = True
                self.repo.save_entry(original)
                self.repo.add_entry(reversal)

                repost_result = self.reposting.repost(item_id, location_id, original.posting_date, commit=False)
                negative_stock = repost_result.lowest_qty < 0
                if negative_stock:
                    self._handle_negative_stock(item_id, location_id, repost_result.lowest_qty)

                if commit:
                    self.repo.commit()

            except StockCostingException:
                if commit:
                    self.repo.rollback()
                raise
            except SQLAlchemyError as e:
                self.repo.rollback()
                logger.error(f"Failed to cancel entry {entry_id}: {e}")
                raise PersistenceError(f"Failed to cancel stock ledger entry {entry_id}: {e}") from e

        logger.info(f"Cancelled entry {entry_id} ({original.voucher_type} {original.voucher_id}) with reversal {reversal.id}")
        return LedgerPostingResult(
            entry=reversal,
            negative_stock=negative_stock,
            entries_reposted=repost_result.entries_reposted
        )

    def get_entry(self, entry_id: int) -> StockLedgerEntry:
        entry = self.repo.get_entry(entry_id)
        if entry is None:
            raise NotFoundError(f"Stock ledger entry {entry_id} not found")
        return entry

    def get_balance(self, item_id: str, location_id: str) -> StockBalance:
        """Current balance from the latest non-cancelled entry"""
        return self._balance_from(item_id, location_id, self.repo.latest_entry(item_id, location_id))

    def get_balance_at_date(self, item_id: str, location_id: str, as_of: date) -> StockBalance:
        """Balance after the last non-cancelled entry posted on or before as_of"""
        entry = self.repo.latest_entry(item_id, location_id, on_or_before_date=as_of)
        return self._balance_from(item_id, location_id, entry, as_of)

    @staticmethod
    def _balance_from(item_id, location_id, entry, as_of=None) -> StockBalance:
        state = BalanceState.from_entry(entry)
        return StockBalance(
            item_id=item_id,
            location_id=location_id,
            qty=state.qty,
            valuation_rate=state.rate,
            stock_value=state.value,
            as_of=as_of
        )

    def get_movements(
        self,
        item_id: str,
        location_id: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        limit: Optional[int] = 100,
        include_cancelled: bool = False
    ) -> List[StockLedgerEntry]:
        """Ledger entries for an item in posting order"""
        return self.repo.entries_in_range(
            item_id, location_id,
            from_date=from_date,
            to_date=to_date,
            include_cancelled=include_cancelled,
            limit=limit
        )

    def get_total_stock_value(self, location_id: Optional[str] = None) -> Decimal:
        """Sum of bin values, optionally for one location"""
        return self.repo.total_stock_value(location_id)
