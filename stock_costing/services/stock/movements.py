"""
Stock Movements Service
Entry points used by purchasing, sales and manufacturing to move stock
"""
import uuid
from dataclasses import dataclass
from datetime import date, time
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock_costing.core.exceptions import PersistenceError, StockCostingException, ValidationError
from stock_costing.core.locks import KeyedLockRegistry, stock_key_locks
from stock_costing.core.logging import get_logger
from stock_costing.core.precision import round_qty, to_decimal
from stock_costing.models.stock import ItemValuationSetting
from stock_costing.repositories.base import StockRepository
from stock_costing.repositories.sql import SqlStockRepository
from stock_costing.services.stock.item_settings import ItemValuationService
from stock_costing.services.stock.ledger import (
    LedgerPostingResult, StockBalance, StockLedgerService, StockMovementRequest
)
from stock_costing.services.stock.reposting import RepostResult

logger = get_logger("ledger")

TRANSFER_VOUCHER_TYPE = "Stock Entry"


@dataclass
class TransferResult:
    """Paired outbound and inbound postings of a transfer"""
    outbound: LedgerPostingResult
    inbound: LedgerPostingResult

    @property
    def transfer_rate(self) -> Decimal:
        return to_decimal(self.outbound.entry.outgoing_rate)


class StockMovementService:
    """
    Stock movement facade

    Thin layer over the ledger for callers that think in vouchers and
    quantities rather than ledger requests.
    """

    def __init__(
        self,
        db: Optional[Session] = None,
        repository: Optional[StockRepository] = None,
        locks: KeyedLockRegistry = stock_key_locks,
        ledger: Optional[StockLedgerService] = None
    ):
        self.repo = repository or SqlStockRepository(db)
        self.locks = locks
        self.ledger = ledger or StockLedgerService(repository=self.repo, locks=locks)
        self.item_settings = ItemValuationService(repository=self.repo)

    def record_movement(
        self,
        voucher_type: str,
        voucher_id: str,
        item_id: str,
        location_id: str,
        qty,
        rate,
        posting_date: date,
        posting_time: Optional[time] = None,
        voucher_detail_no: Optional[str] = None
    ) -> LedgerPostingResult:
        """
        Record a receipt (qty > 0) or issue (qty < 0).

        rate is the incoming rate for receipts; issues are costed by the
        item's valuation method and ignore it.
        """
        qty = to_decimal(qty) if qty is not None else None
        request = StockMovementRequest(
            voucher_type=voucher_type,
            voucher_id=voucher_id,
            item_id=item_id,
            location_id=location_id,
            actual_qty=qty,
            posting_date=posting_date,
            posting_time=posting_time,
            incoming_rate=to_decimal(rate) if rate is not None else None,
            voucher_detail_no=voucher_detail_no
        )
        return self.ledger.append(request)

    def transfer_stock(
        self,
        item_id: str,
        from_location_id: str,
        to_location_id: str,
        qty,
        posting_date: date,
        posting_time: Optional[time] = None,
        voucher_id: Optional[str] = None
    ) -> TransferResult:
        """
        Move stock between locations.

        The outbound leg is costed by the item's valuation method and the
        inbound leg is received at that same rate, so value moves with the
        goods. Both legs commit together.
        """
        qty = round_qty(qty)
        if qty <= 0:
            raise ValidationError("Transfer quantity must be greater than zero")
        if from_location_id == to_location_id:
            raise ValidationError("Source and target locations must differ")

        voucher_id = voucher_id or f"TRF-{uuid.uuid4().hex[:12].upper()}"
        # Fixed lock order so two opposite transfers cannot deadlock
        first, second = sorted([(item_id, from_location_id), (item_id, to_location_id)])

        with self.locks.hold(first), self.locks.hold(second):
            try:
                outbound = self.ledger.append(StockMovementRequest(
                    voucher_type=TRANSFER_VOUCHER_TYPE,
                    voucher_id=voucher_id,
                    item_id=item_id,
                    location_id=from_location_id,
                    actual_qty=-qty,
                    posting_date=posting_date,
                    posting_time=posting_time
                ), commit=False)

                inbound = self.ledger.append(StockMovementRequest(
                    voucher_type=TRANSFER_VOUCHER_TYPE,
                    voucher_id=voucher_id,
                    item_id=item_id,
                    location_id=to_location_id,
                    actual_qty=qty,
                    posting_date=posting_date,
                    posting_time=posting_time,
                    incoming_rate=outbound.entry.outgoing_rate
                ), commit=False)

                self.repo.commit()

            except StockCostingException:
                self.repo.rollback()
                raise
            except SQLAlchemyError as e:
                self.repo.rollback()
                logger.error(f"Transfer {voucher_id} failed: {e}")
                raise PersistenceError(f"Transfer {voucher_id} failed: {e}") from e

        logger.info(
            f"Transferred {qty} of {item_id} from {from_location_id} to {to_location_id} "
            f"at {outbound.entry.outgoing_rate} ({voucher_id})"
        )
        return TransferResult(outbound=outbound, inbound=inbound)

    def cancel_movement(self, entry_id: int):
        return self.ledger.cancel(entry_id)

    def get_balance(self, item_id: str, location_id: str) -> StockBalance:
        return self.ledger.get_balance(item_id, location_id)

    def get_balance_at_date(self, item_id: str, location_id: str, as_of: date) -> StockBalance:
        return self.ledger.get_balance_at_date(item_id, location_id, as_of)

    def repost_valuation(self, item_id: str, location_id: str, from_date: date) -> RepostResult:
        return self.ledger.reposting.repost(item_id, location_id, from_date)

    def set_item_valuation_method(self, item_id: str, method) -> ItemValuationSetting:
        """Choose an item's valuation method; rejected once it has transactions"""
        try:
            setting = self.item_settings.set_method(item_id, method)
            self.repo.commit()
            return setting
        except StockCostingException:
            self.repo.rollback()
            raise
