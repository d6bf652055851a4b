"""
Stock Documents
Movement producing documents built from small capabilities, with an explicit
Draft -> Submitted -> Cancelled life cycle.

A document type implements whichever of Validatable, StockMoveProducer and
Totalable apply to it; submit_document and cancel_document drive the life
cycle and post the resulting movements through an injected ledger.
"""
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Dict, FrozenSet, List, Optional, Protocol, runtime_checkable

from sqlalchemy.exc import SQLAlchemyError

from stock_costing.core.exceptions import (
    BusinessLogicError, PersistenceError, StockCostingException, ValidationError
)
from stock_costing.core.logging import get_logger
from stock_costing.core.precision import ZERO, round_currency, to_decimal
from stock_costing.services.stock.ledger import (
    LedgerPostingResult, StockLedgerService, StockMovementRequest
)

logger = get_logger("ledger")


class DocStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS: Dict[DocStatus, FrozenSet[DocStatus]] = {
    DocStatus.DRAFT: frozenset({DocStatus.SUBMITTED}),
    DocStatus.SUBMITTED: frozenset({DocStatus.CANCELLED}),
    DocStatus.CANCELLED: frozenset(),
}


def check_transition(current: DocStatus, target: DocStatus):
    """Raise unless current -> target is in the transition table"""
    if target not in ALLOWED_TRANSITIONS[DocStatus(current)]:
        raise BusinessLogicError(
            f"Cannot move document from {DocStatus(current).value} to {DocStatus(target).value}"
        )


@dataclass
class StockMove:
    """One movement a document wants posted"""
    item_id: str
    location_id: str
    qty: Decimal
    rate: Optional[Decimal] = None
    voucher_detail_no: Optional[str] = None
    # Receive at the outgoing rate of the move posted just before this one
    inherit_rate: bool = False


@runtime_checkable
class Validatable(Protocol):
    def validate(self) -> None:
        ...


@runtime_checkable
class StockMoveProducer(Protocol):
    def get_stock_moves(self) -> List[StockMove]:
        ...


@runtime_checkable
class Totalable(Protocol):
    def calculate_totals(self) -> Decimal:
        ...


@dataclass
class DocumentState:
    """Life cycle fields shared by every document"""
    name: str
    posting_date: date
    posting_time: Optional[time] = None
    status: DocStatus = DocStatus.DRAFT
    ledger_entry_ids: List[int] = field(default_factory=list)


class StockEntryPurpose(str, Enum):
    MATERIAL_RECEIPT = "Material Receipt"
    MATERIAL_ISSUE = "Material Issue"
    MATERIAL_TRANSFER = "Material Transfer"


@dataclass
class StockEntryItem:
    item_id: str
    qty: Decimal
    rate: Optional[Decimal] = None
    source_location_id: Optional[str] = None
    target_location_id: Optional[str] = None


@dataclass
class StockEntry(DocumentState):
    """Receipt, issue or transfer of stock outside purchasing and sales"""
    voucher_type: ClassVar[str] = "Stock Entry"

    purpose: StockEntryPurpose = StockEntryPurpose.MATERIAL_RECEIPT
    items: List[StockEntryItem] = field(default_factory=list)

    def validate(self):
        if not self.items:
            raise ValidationError(f"Stock Entry {self.name} has no items")
        for idx, row in enumerate(self.items, start=1):
            if to_decimal(row.qty) <= 0:
                raise ValidationError(f"Row {idx}: quantity must be greater than zero")
            if self.purpose in (StockEntryPurpose.MATERIAL_ISSUE, StockEntryPurpose.MATERIAL_TRANSFER):
                if not row.source_location_id:
                    raise ValidationError(f"Row {idx}: source location is required")
            if self.purpose in (StockEntryPurpose.MATERIAL_RECEIPT, StockEntryPurpose.MATERIAL_TRANSFER):
                if not row.target_location_id:
                    raise ValidationError(f"Row {idx}: target location is required")
            if self.purpose == StockEntryPurpose.MATERIAL_RECEIPT and row.rate is None:
                raise ValidationError(f"Row {idx}: rate is required for a material receipt")
            if (self.purpose == StockEntryPurpose.MATERIAL_TRANSFER
                    and row.source_location_id == row.target_location_id):
                raise ValidationError(f"Row {idx}: source and target locations must differ")

    def get_stock_moves(self) -> List[StockMove]:
        moves = []
        for idx, row in enumerate(self.items, start=1):
            qty = to_decimal(row.qty)
            detail = f"{self.name}-{idx}"
            if self.purpose == StockEntryPurpose.MATERIAL_RECEIPT:
                moves.append(StockMove(row.item_id, row.target_location_id, qty, to_decimal(row.rate), detail))
            elif self.purpose == StockEntryPurpose.MATERIAL_ISSUE:
                moves.append(StockMove(row.item_id, row.source_location_id, -qty, None, detail))
            else:
                moves.append(StockMove(row.item_id, row.source_location_id, -qty, None, detail))
                moves.append(StockMove(row.item_id, row.target_location_id, qty, None, detail, inherit_rate=True))
        return moves


@dataclass
class ReceiptItem:
    item_id: str
    qty: Decimal
    rate: Decimal


@dataclass
class GoodsReceipt(DocumentState):
    """Purchase receipt of supplier goods into one location"""
    voucher_type: ClassVar[str] = "Purchase Receipt"

    supplier_id: str = ""
    location_id: str = ""
    items: List[ReceiptItem] = field(default_factory=list)
    grand_total: Decimal = ZERO

    def validate(self):
        if not self.supplier_id:
            raise ValidationError("Supplier is required")
        if not self.location_id:
            raise ValidationError("Receiving location is required")
        if not self.items:
            raise ValidationError(f"Purchase Receipt {self.name} has no items")
        for idx, row in enumerate(self.items, start=1):
            if to_decimal(row.qty) <= 0:
                raise ValidationError(f"Row {idx}: quantity must be greater than zero")
            if to_decimal(row.rate) < 0:
                raise ValidationError(f"Row {idx}: rate cannot be negative")

    def get_stock_moves(self) -> List[StockMove]:
        return [
            StockMove(row.item_id, self.location_id, to_decimal(row.qty), to_decimal(row.rate), f"{self.name}-{idx}")
            for idx, row in enumerate(self.items, start=1)
        ]

    def calculate_totals(self) -> Decimal:
        self.grand_total = round_currency(sum(
            (to_decimal(row.qty) * to_decimal(row.rate) for row in self.items), ZERO
        ))
        return self.grand_total


@dataclass
class DeliveryItem:
    item_id: str
    qty: Decimal
    price: Decimal


@dataclass
class DeliveryNote(DocumentState):
    """Sales delivery of goods from one location"""
    voucher_type: ClassVar[str] = "Delivery Note"

    customer_id: str = ""
    location_id: str = ""
    items: List[DeliveryItem] = field(default_factory=list)
    grand_total: Decimal = ZERO

    def validate(self):
        if not self.customer_id:
            raise ValidationError("Customer is required")
        if not self.location_id:
            raise ValidationError("Delivery location is required")
        if not self.items:
            raise ValidationError(f"Delivery Note {self.name} has no items")
        for idx, row in enumerate(self.items, start=1):
            if to_decimal(row.qty) <= 0:
                raise ValidationError(f"Row {idx}: quantity must be greater than zero")
            if to_decimal(row.price) < 0:
                raise ValidationError(f"Row {idx}: price cannot be negative")

    def get_stock_moves(self) -> List[StockMove]:
        return [
            StockMove(row.item_id, self.location_id, -to_decimal(row.qty), None, f"{self.name}-{idx}")
            for idx, row in enumerate(self.items, start=1)
        ]

    def calculate_totals(self) -> Decimal:
        self.grand_total = round_currency(sum(
            (to_decimal(row.qty) * to_decimal(row.price) for row in self.items), ZERO
        ))
        return self.grand_total


def submit_document(doc: DocumentState, ledger: StockLedgerService) -> List[LedgerPostingResult]:
    """
    Validate, total and post a draft document.

    All of the document's movements are posted in one transaction while
    holding the locks of every key they touch.
    """
    check_transition(doc.status, DocStatus.SUBMITTED)

    if isinstance(doc, Validatable):
        doc.validate()
    if isinstance(doc, Totalable):
        doc.calculate_totals()
    moves = doc.get_stock_moves() if isinstance(doc, StockMoveProducer) else []

    keys = sorted({(move.item_id, move.location_id) for move in moves})
    postings: List[LedgerPostingResult] = []
    with ExitStack() as stack:
        for key in keys:
            stack.enter_context(ledger.locks.hold(key))
        try:
            for move in moves:
                rate = move.rate
                if move.inherit_rate:
                    rate = postings[-1].entry.outgoing_rate
                postings.append(ledger.append(StockMovementRequest(
                    voucher_type=doc.voucher_type,
                    voucher_id=doc.name,
                    voucher_detail_no=move.voucher_detail_no,
                    item_id=move.item_id,
                    location_id=move.location_id,
                    actual_qty=move.qty,
                    posting_date=doc.posting_date,
                    posting_time=doc.posting_time,
                    incoming_rate=rate
                ), commit=False))
            ledger.repo.commit()
        except StockCostingException:
            ledger.repo.rollback()
            raise
        except SQLAlchemyError as e:
            ledger.repo.rollback()
            raise PersistenceError(f"Failed to post {doc.voucher_type} {doc.name}: {e}") from e

    doc.status = DocStatus.SUBMITTED
    doc.ledger_entry_ids = [posting.entry.id for posting in postings]
    logger.info(f"Submitted {doc.voucher_type} {doc.name} with {len(postings)} stock movements")
    return postings


def cancel_document(doc: DocumentState, ledger: StockLedgerService):
    """Reverse every movement of a submitted document, newest first"""
    check_transition(doc.status, DocStatus.CANCELLED)

    reversals = []
    try:
        for entry_id in reversed(doc.ledger_entry_ids):
            reversals.append(ledger.cancel(entry_id, commit=False))
        ledger.repo.commit()
    except StockCostingException:
        ledger.repo.rollback()
        raise
    except SQLAlchemyError as e:
        ledger.repo.rollback()
        raise PersistenceError(f"Failed to cancel {doc.voucher_type} {doc.name}: {e}") from e

    doc.status = DocStatus.CANCELLED
    logger.info(f"Cancelled {doc.voucher_type} {doc.name}; {len(reversals)} movements reversed")
    return reversals
