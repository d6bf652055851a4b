"""
Tests for stock documents and their life cycle
"""
import pytest
from datetime import date
from decimal import Decimal

from stock_costing.core.exceptions import BusinessLogicError, ValidationError
from stock_costing.services.documents import (
    DeliveryItem, DeliveryNote, DocStatus, GoodsReceipt, ReceiptItem, StockEntry,
    StockEntryItem, StockEntryPurpose, StockMoveProducer, Totalable, Validatable,
    cancel_document, check_transition, submit_document
)
from stock_costing.services.stock import StockLedgerService


def make_receipt(name="PR-0001"):
    return GoodsReceipt(
        name=name,
        posting_date=date(2024, 7, 1),
        supplier_id="SUP-ACME",
        location_id="MAIN",
        items=[
            ReceiptItem("RM-BOLT", Decimal("200"), Decimal("0.35")),
            ReceiptItem("RM-NUT", Decimal("150"), Decimal("0.12")),
        ]
    )


class TestTransitions:
    """Test suite for the document state machine"""

    def test_allowed_transitions(self):
        """Test draft -> submitted -> cancelled"""
        check_transition(DocStatus.DRAFT, DocStatus.SUBMITTED)
        check_transition(DocStatus.SUBMITTED, DocStatus.CANCELLED)

    @pytest.mark.parametrize("current,target", [
        (DocStatus.DRAFT, DocStatus.CANCELLED),
        (DocStatus.SUBMITTED, DocStatus.DRAFT),
        (DocStatus.CANCELLED, DocStatus.SUBMITTED),
        (DocStatus.CANCELLED, DocStatus.DRAFT),
    ])
    def test_rejected_transitions(self, current, target):
        """Test every other move is rejected"""
        with pytest.raises(BusinessLogicError, match="Cannot move document"):
            check_transition(current, target)

    def test_capabilities(self):
        """Test documents expose only the capabilities they implement"""
        entry = StockEntry(name="SE-1", posting_date=date(2024, 7, 1))
        receipt = make_receipt()

        assert isinstance(entry, Validatable)
        assert isinstance(entry, StockMoveProducer)
        assert not isinstance(entry, Totalable)
        assert isinstance(receipt, Totalable)


class TestGoodsReceipt:
    """Test suite for purchase receipts"""

    def test_submit_posts_and_totals(self, ledger: StockLedgerService):
        """Test submitting a receipt posts every line and computes the total"""
        receipt = make_receipt()

        postings = submit_document(receipt, ledger)

        assert receipt.status == DocStatus.SUBMITTED
        assert receipt.grand_total == Decimal("88.00")
        assert len(postings) == 2
        assert receipt.ledger_entry_ids == [p.entry.id for p in postings]
        assert postings[0].entry.voucher_type == "Purchase Receipt"
        assert postings[0].entry.voucher_detail_no == "PR-0001-1"
        assert ledger.get_balance("RM-BOLT", "MAIN").stock_value == Decimal("70.00")

    def test_submit_twice(self, ledger: StockLedgerService):
        """Test a submitted document cannot be submitted again"""
        receipt = make_receipt()
        submit_document(receipt, ledger)

        with pytest.raises(BusinessLogicError):
            submit_document(receipt, ledger)

    def test_validation_blocks_posting(self, ledger: StockLedgerService):
        """Test an invalid document posts nothing and stays draft"""
        receipt = make_receipt()
        receipt.supplier_id = ""

        with pytest.raises(ValidationError, match="Supplier is required"):
            submit_document(receipt, ledger)

        assert receipt.status == DocStatus.DRAFT
        assert ledger.get_movements("RM-BOLT", "MAIN") == []

    def test_cancel_reverses_all_lines(self, ledger: StockLedgerService):
        """Test cancelling a receipt zeroes its stock"""
        receipt = make_receipt()
        submit_document(receipt, ledger)

        reversals = cancel_document(receipt, ledger)

        assert receipt.status == DocStatus.CANCELLED
        assert len(reversals) == 2
        assert ledger.get_balance("RM-BOLT", "MAIN").qty == 0
        assert ledger.get_balance("RM-NUT", "MAIN").qty == 0

    def test_cancel_draft(self, ledger: StockLedgerService):
        """Test a draft cannot be cancelled"""
        with pytest.raises(BusinessLogicError):
            cancel_document(make_receipt(), ledger)


class TestDeliveryNote:
    """Test suite for delivery notes"""

    def test_delivery_issues_stock(self, ledger: StockLedgerService):
        """Test a delivery takes stock out at valuation and totals at price"""
        submit_document(make_receipt(), ledger)
        note = DeliveryNote(
            name="DN-0001",
            posting_date=date(2024, 7, 2),
            customer_id="CUST-001",
            location_id="MAIN",
            items=[DeliveryItem("RM-BOLT", Decimal("50"), Decimal("0.90"))]
        )

        postings = submit_document(note, ledger)

        assert note.grand_total == Decimal("45.00")
        assert postings[0].cost_of_goods_sold == Decimal("17.50")
        assert ledger.get_balance("RM-BOLT", "MAIN").qty == Decimal("150")

    def test_customer_required(self, ledger: StockLedgerService):
        """Test deliveries need a customer"""
        note = DeliveryNote(name="DN-0002", posting_date=date(2024, 7, 2), location_id="MAIN",
                            items=[DeliveryItem("RM-BOLT", Decimal("1"), Decimal("1"))])
        with pytest.raises(ValidationError, match="Customer is required"):
            submit_document(note, ledger)


class TestStockEntry:
    """Test suite for stock entries"""

    def test_material_transfer(self, ledger: StockLedgerService):
        """Test a transfer entry moves value at the outbound cost"""
        submit_document(make_receipt(), ledger)
        entry = StockEntry(
            name="SE-0001",
            posting_date=date(2024, 7, 3),
            purpose=StockEntryPurpose.MATERIAL_TRANSFER,
            items=[StockEntryItem("RM-NUT", Decimal("100"), source_location_id="MAIN",
                                  target_location_id="LINE-1")]
        )

        postings = submit_document(entry, ledger)

        assert [p.entry.actual_qty for p in postings] == [Decimal("-100"), Decimal("100")]
        assert postings[1].entry.incoming_rate == postings[0].entry.outgoing_rate
        assert ledger.get_balance("RM-NUT", "LINE-1").stock_value == Decimal("12.00")
        assert ledger.get_balance("RM-NUT", "MAIN").qty == Decimal("50")

    def test_material_receipt_needs_rate(self, ledger: StockLedgerService):
        """Test receipt entries require a rate per row"""
        entry = StockEntry(
            name="SE-0002",
            posting_date=date(2024, 7, 3),
            purpose=StockEntryPurpose.MATERIAL_RECEIPT,
            items=[StockEntryItem("RM-NUT", Decimal("10"), target_location_id="MAIN")]
        )
        with pytest.raises(ValidationError, match="rate is required"):
            submit_document(entry, ledger)

    def test_transfer_same_location(self, ledger: StockLedgerService):
        """Test a transfer into its own source is rejected"""
        entry = StockEntry(
            name="SE-0003",
            posting_date=date(2024, 7, 3),
            purpose=StockEntryPurpose.MATERIAL_TRANSFER,
            items=[StockEntryItem("RM-NUT", Decimal("1"), source_location_id="MAIN",
                                  target_location_id="MAIN")]
        )
        with pytest.raises(ValidationError, match="must differ"):
            submit_document(entry, ledger)

    def test_empty_entry(self, ledger: StockLedgerService):
        """Test an entry without rows is rejected"""
        with pytest.raises(ValidationError, match="has no items"):
            submit_document(StockEntry(name="SE-0004", posting_date=date(2024, 7, 3)), ledger)
