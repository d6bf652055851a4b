"""
Tests for the stock ledger
Validation, running balance chain, negative stock policy, backdated postings,
cancellation and the movement facade
"""
import threading

import pytest
from datetime import date, time
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from stock_costing.core.database import Base
from stock_costing.core.exceptions import (
    BusinessLogicError, NegativeStockError, NegativeStockWarning, NotFoundError, ValidationError
)
from stock_costing.models.stock import StockLedgerEntry
from stock_costing.services.stock import (
    StockLedgerService, StockMovementRequest, StockMovementService
)

ITEM = "RM-STEEL"
STORE = "MAIN"


def receipt(qty, rate, posting_date, item_id=ITEM, location_id=STORE, voucher_id="GRN-001", posting_time=None):
    return StockMovementRequest(
        voucher_type="Purchase Receipt",
        voucher_id=voucher_id,
        item_id=item_id,
        location_id=location_id,
        actual_qty=Decimal(str(qty)),
        posting_date=posting_date,
        posting_time=posting_time,
        incoming_rate=Decimal(str(rate))
    )


def issue(qty, posting_date, item_id=ITEM, location_id=STORE, voucher_id="DN-001", posting_time=None):
    return StockMovementRequest(
        voucher_type="Delivery Note",
        voucher_id=voucher_id,
        item_id=item_id,
        location_id=location_id,
        actual_qty=-Decimal(str(qty)),
        posting_date=posting_date,
        posting_time=posting_time
    )


class TestMovementValidation:
    """Test suite for request validation"""

    def test_missing_fields_reported_together(self, ledger: StockLedgerService):
        """Test every missing field is named in one error"""
        request = StockMovementRequest(
            voucher_type="",
            voucher_id="",
            item_id="",
            location_id="",
            actual_qty=Decimal("0"),
            posting_date=None
        )
        with pytest.raises(ValidationError) as exc_info:
            ledger.append(request)

        message = str(exc_info.value)
        assert "Voucher type is required" in message
        assert "Voucher ID is required" in message
        assert "Item ID is required" in message
        assert "Location ID is required" in message
        assert "Posting date is required" in message
        assert "Quantity cannot be zero" in message

    def test_receipt_requires_rate(self, ledger: StockLedgerService):
        """Test inbound movements must carry a rate"""
        request = receipt(10, 1, date(2024, 1, 1))
        request.incoming_rate = None
        with pytest.raises(ValidationError, match="Rate is required for incoming stock"):
            ledger.append(request)

    def test_negative_rate_rejected(self, ledger: StockLedgerService):
        """Test inbound rates cannot be negative"""
        with pytest.raises(ValidationError, match="Rate cannot be negative"):
            ledger.append(receipt(10, -1, date(2024, 1, 1)))

    def test_valuation_rate_used_as_fallback(self, ledger: StockLedgerService):
        """Test valuation_rate stands in for a missing incoming rate"""
        request = receipt(10, 1, date(2024, 1, 1))
        request.incoming_rate = None
        request.valuation_rate = Decimal("7.5")

        result = ledger.append(request)
        assert result.entry.incoming_rate == Decimal("7.5")
        assert result.entry.stock_value == Decimal("75.00")

    def test_nothing_written_on_rejection(self, ledger: StockLedgerService):
        """Test a rejected movement leaves no entry behind"""
        with pytest.raises(ValidationError):
            ledger.append(receipt(0, 5, date(2024, 1, 1)))
        assert ledger.get_movements(ITEM, STORE) == []


class TestLedgerChain:
    """Test suite for the running balance chain"""

    def test_weighted_average_chain(self, ledger: StockLedgerService):
        """Test receipts and an issue produce a consistent chain"""
        first = ledger.append(receipt(100, 50, date(2024, 1, 1)))
        second = ledger.append(receipt(50, 60, date(2024, 1, 2), voucher_id="GRN-002"))
        third = ledger.append(issue(30, date(2024, 1, 3)))

        assert first.entry.qty_after_transaction == Decimal("100")
        assert first.entry.stock_value == Decimal("5000.00")

        assert second.entry.qty_after_transaction == Decimal("150")
        assert second.entry.valuation_rate == Decimal("53.3333")
        assert second.entry.stock_value == Decimal("8000.00")
        assert second.entry.stock_value_difference == Decimal("3000.00")

        assert third.entry.qty_after_transaction == Decimal("120")
        assert third.entry.outgoing_rate == Decimal("53.3333")
        assert third.entry.stock_value == Decimal("6400.00")
        assert third.entry.stock_value_difference == Decimal("-1600.00")
        assert third.cost_of_goods_sold == Decimal("1600.00")
        assert third.entry.valuation_method == "Weighted Average"

    def test_chain_invariants_hold(self, ledger: StockLedgerService):
        """Test qty and value of each entry follow from the one before"""
        ledger.append(receipt(40, 12, date(2024, 2, 1)))
        ledger.append(issue(15, date(2024, 2, 2)))
        ledger.append(receipt(25, 14.5, date(2024, 2, 3), voucher_id="GRN-002"))
        ledger.append(issue(20, date(2024, 2, 4), voucher_id="DN-002"))

        entries = ledger.get_movements(ITEM, STORE)
        assert len(entries) == 4

        prev_qty, prev_value = Decimal("0"), Decimal("0")
        for entry in entries:
            assert entry.qty_after_transaction == prev_qty + entry.actual_qty
            assert entry.stock_value == prev_value + entry.stock_value_difference
            prev_qty, prev_value = entry.qty_after_transaction, entry.stock_value

        balance = ledger.get_balance(ITEM, STORE)
        assert balance.qty == Decimal("30")
        assert balance.stock_value == entries[-1].stock_value

    def test_bin_follows_ledger(self, ledger: StockLedgerService):
        """Test the bin mirrors the latest entry after each posting"""
        ledger.append(receipt(10, 3, date(2024, 1, 1)))
        result = ledger.append(issue(4, date(2024, 1, 2)))

        bin_record = ledger.bins.get_bin(ITEM, STORE)
        assert bin_record.actual_qty == Decimal("6")
        assert bin_record.valuation_rate == result.entry.valuation_rate
        assert bin_record.stock_value == Decimal("18.00")

    def test_keys_are_independent(self, ledger: StockLedgerService):
        """Test balances of different locations do not mix"""
        ledger.append(receipt(10, 5, date(2024, 1, 1), location_id="EAST"))
        ledger.append(receipt(20, 8, date(2024, 1, 1), location_id="WEST"))

        assert ledger.get_balance(ITEM, "EAST").stock_value == Decimal("50.00")
        assert ledger.get_balance(ITEM, "WEST").stock_value == Decimal("160.00")
        assert ledger.get_total_stock_value() == Decimal("210.00")
        assert ledger.get_total_stock_value("WEST") == Decimal("160.00")

    def test_same_timestamp_ordered_by_id(self, ledger: StockLedgerService):
        """Test entries at one posting time chain in insertion order"""
        moment = time(9, 30)
        ledger.append(receipt(10, 5, date(2024, 1, 1), posting_time=moment))
        second = ledger.append(receipt(10, 7, date(2024, 1, 1), posting_time=moment, voucher_id="GRN-002"))

        assert second.entry.qty_after_transaction == Decimal("20")
        assert second.entries_reposted == 0


class TestNegativeStock:
    """Test suite for the negative stock policy"""

    def test_warn_policy(self, db_session: Session):
        """Test the warn policy posts and emits a warning"""
        ledger = StockLedgerService(db_session, negative_stock_policy="warn")
        ledger.append(receipt(5, 10, date(2024, 1, 1)))

        with pytest.warns(NegativeStockWarning):
            result = ledger.append(issue(8, date(2024, 1, 2)))

        assert result.negative_stock is True
        assert result.entry.qty_after_transaction == Decimal("-3")

    def test_block_policy(self, db_session: Session):
        """Test the block policy rejects the posting and writes nothing"""
        ledger = StockLedgerService(db_session, negative_stock_policy="block")
        ledger.append(receipt(5, 10, date(2024, 1, 1)))

        with pytest.raises(NegativeStockError) as exc_info:
            ledger.append(issue(8, date(2024, 1, 2)))

        assert exc_info.value.resulting_qty == Decimal("-3")
        assert len(ledger.get_movements(ITEM, STORE)) == 1
        assert ledger.get_balance(ITEM, STORE).qty == Decimal("5")

    def test_allow_policy(self, ledger: StockLedgerService):
        """Test the allow policy posts silently"""
        result = ledger.append(issue(2, date(2024, 1, 1)))
        assert result.negative_stock is True
        assert ledger.bins.get_bin(ITEM, STORE).actual_qty == Decimal("-2")

    def test_unknown_policy(self, db_session: Session):
        """Test an unknown policy name is rejected"""
        with pytest.raises(ValidationError):
            StockLedgerService(db_session, negative_stock_policy="ignore")

    def test_block_backdated_issue_that_breaks_later_balance(self, db_session: Session):
        """Test a backdated issue is rejected when a later balance would go negative"""
        ledger = StockLedgerService(db_session, negative_stock_policy="block")
        ledger.append(receipt(10, 5, date(2024, 1, 1)))
        ledger.append(issue(8, date(2024, 1, 5)))

        # 10 - 5 is fine on the day, but the issue on the 5th would then leave -3
        with pytest.raises(NegativeStockError) as exc_info:
            ledger.append(issue(5, date(2024, 1, 3), voucher_id="DN-002"))

        assert exc_info.value.resulting_qty == Decimal("-3")
        entries = ledger.get_movements(ITEM, STORE)
        assert len(entries) == 2
        assert [e.qty_after_transaction for e in entries] == [Decimal("10"), Decimal("2")]
        assert ledger.get_balance(ITEM, STORE).qty == Decimal("2")
        assert ledger.bins.get_bin(ITEM, STORE).actual_qty == Decimal("2")

    def test_warn_backdated_issue_flags_later_balance(self, db_session: Session):
        """Test the warn policy flags a backdated issue that drives a later balance negative"""
        ledger = StockLedgerService(db_session, negative_stock_policy="warn")
        ledger.append(receipt(10, 5, date(2024, 1, 1)))
        ledger.append(issue(8, date(2024, 1, 5)))

        with pytest.warns(NegativeStockWarning):
            result = ledger.append(issue(5, date(2024, 1, 3), voucher_id="DN-002"))

        assert result.negative_stock is True
        assert result.entry.qty_after_transaction == Decimal("5")
        assert result.entries_reposted == 2
        assert ledger.get_balance(ITEM, STORE).qty == Decimal("-3")

    def test_block_cancel_of_consumed_receipt(self, db_session: Session):
        """Test cancelling a receipt that a later issue relied on is rejected"""
        ledger = StockLedgerService(db_session, negative_stock_policy="block")
        first = ledger.append(receipt(10, 5, date(2024, 1, 1))).entry
        ledger.append(issue(8, date(2024, 1, 5)))

        with pytest.raises(NegativeStockError) as exc_info:
            ledger.cancel(first.id)

        assert exc_info.value.resulting_qty == Decimal("-8")
        assert ledger.get_entry(first.id).is_cancelled is False
        assert len(ledger.get_movements(ITEM, STORE, include_cancelled=True)) == 2
        assert ledger.get_balance(ITEM, STORE).qty == Decimal("2")

    def test_warn_cancel_of_consumed_receipt(self, db_session: Session):
        """Test the warn policy reports the negative balance left by a cancellation"""
        ledger = StockLedgerService(db_session, negative_stock_policy="warn")
        first = ledger.append(receipt(10, 5, date(2024, 1, 1))).entry
        ledger.append(issue(8, date(2024, 1, 5)))

        with pytest.warns(NegativeStockWarning):
            result = ledger.cancel(first.id)

        assert result.negative_stock is True
        assert result.entry.reversal_of_id == first.id
        assert ledger.get_balance(ITEM, STORE).qty == Decimal("-8")


class TestBackdatedPosting:
    """Test suite for postings dated before existing entries"""

    def test_backdated_receipt_reposts_later_entries(self, ledger: StockLedgerService):
        """Test a backdated receipt revalues the issue after it"""
        ledger.append(receipt(100, 10, date(2024, 1, 10)))
        later_issue = ledger.append(issue(50, date(2024, 1, 20)))
        assert later_issue.entry.stock_value == Decimal("500.00")

        result = ledger.append(receipt(100, 13, date(2024, 1, 15), voucher_id="GRN-002"))

        assert result.entries_reposted == 2
        assert result.entry.qty_after_transaction == Decimal("200")
        assert result.entry.valuation_rate == Decimal("11.5")

        entries = ledger.get_movements(ITEM, STORE)
        assert [e.posting_date for e in entries] == [date(2024, 1, 10), date(2024, 1, 15), date(2024, 1, 20)]
        last = entries[-1]
        assert last.outgoing_rate == Decimal("11.5")
        assert last.qty_after_transaction == Decimal("150")
        assert last.stock_value == Decimal("1725.00")

        bin_record = ledger.bins.get_bin(ITEM, STORE)
        assert bin_record.stock_value == Decimal("1725.00")

    def test_backdated_without_auto_repost(self, db_session: Session):
        """Test later balances are left as they were when auto repost is off"""
        ledger = StockLedgerService(db_session, negative_stock_policy="allow", auto_repost=False)
        ledger.append(receipt(100, 10, date(2024, 1, 10)))
        ledger.append(issue(50, date(2024, 1, 20)))

        result = ledger.append(receipt(100, 13, date(2024, 1, 15), voucher_id="GRN-002"))

        assert result.entries_reposted == 0
        assert ledger.get_movements(ITEM, STORE)[-1].stock_value == Decimal("500.00")


class TestCancellation:
    """Test suite for cancelling ledger entries"""

    def _post_three(self, ledger: StockLedgerService):
        first = ledger.append(receipt(100, 10, date(2024, 3, 1)))
        second = ledger.append(receipt(50, 16, date(2024, 3, 2), voucher_id="GRN-002"))
        third = ledger.append(issue(30, date(2024, 3, 3)))
        return first.entry, second.entry, third.entry

    def test_cancel_restores_balance(self, ledger: StockLedgerService):
        """Test cancelling a receipt revalues everything after it"""
        _, second, third = self._post_three(ledger)
        assert third.stock_value == Decimal("1440.00")

        result = ledger.cancel(second.id)
        reversal = result.entry

        assert result.negative_stock is False
        assert result.entries_reposted == 1
        assert reversal.reversal_of_id == second.id
        assert reversal.is_cancelled is True
        assert reversal.actual_qty == Decimal("-50")
        assert reversal.outgoing_rate == Decimal("16")
        assert reversal.qty_after_transaction == Decimal("100")
        assert reversal.stock_value == Decimal("1000.00")
        assert reversal.stock_value_difference == Decimal("-800.00")
        assert second.is_cancelled is True

        balance = ledger.get_balance(ITEM, STORE)
        assert balance.qty == Decimal("70")
        assert balance.stock_value == Decimal("700.00")
        assert third.outgoing_rate == Decimal("10")

    def test_cancelled_entries_hidden_by_default(self, ledger: StockLedgerService):
        """Test listings skip cancelled rows unless asked"""
        _, second, _ = self._post_three(ledger)
        ledger.cancel(second.id)

        assert len(ledger.get_movements(ITEM, STORE)) == 2
        assert len(ledger.get_movements(ITEM, STORE, include_cancelled=True)) == 4

    def test_cancel_twice(self, ledger: StockLedgerService):
        """Test an entry can only be cancelled once"""
        first, _, _ = self._post_three(ledger)
        ledger.cancel(first.id)
        with pytest.raises(BusinessLogicError, match="already cancelled"):
            ledger.cancel(first.id)

    def test_cancel_reversal(self, ledger: StockLedgerService):
        """Test a reversal row cannot itself be cancelled"""
        first, _, _ = self._post_three(ledger)
        reversal = ledger.cancel(first.id).entry
        with pytest.raises(BusinessLogicError, match="is a reversal"):
            ledger.cancel(reversal.id)

    def test_cancel_missing_entry(self, ledger: StockLedgerService):
        """Test cancelling an unknown entry"""
        with pytest.raises(NotFoundError):
            ledger.cancel(9999)

    def test_cancel_only_entry_zeroes_bin(self, ledger: StockLedgerService):
        """Test the bin goes back to zero when nothing live remains"""
        only = ledger.append(receipt(10, 4, date(2024, 1, 1))).entry
        ledger.cancel(only.id)

        bin_record = ledger.bins.get_bin(ITEM, STORE)
        assert bin_record.actual_qty == 0
        assert bin_record.stock_value == 0
        assert bin_record.stock_queue == []


class TestBalanceQueries:
    """Test suite for balance lookups"""

    def test_balance_at_date(self, ledger: StockLedgerService):
        """Test historical balances"""
        ledger.append(receipt(100, 10, date(2024, 1, 1)))
        ledger.append(issue(40, date(2024, 1, 5)))

        assert ledger.get_balance_at_date(ITEM, STORE, date(2023, 12, 31)).qty == 0
        assert ledger.get_balance_at_date(ITEM, STORE, date(2024, 1, 3)).qty == Decimal("100")
        at_fifth = ledger.get_balance_at_date(ITEM, STORE, date(2024, 1, 5))
        assert at_fifth.qty == Decimal("60")
        assert at_fifth.stock_value == Decimal("600.00")
        assert at_fifth.as_of == date(2024, 1, 5)

    def test_unknown_key_balance(self, ledger: StockLedgerService):
        """Test an unused key has a zero balance"""
        balance = ledger.get_balance("NOPE", STORE)
        assert balance.qty == 0
        assert balance.stock_value == 0

    def test_movements_date_filter(self, ledger: StockLedgerService):
        """Test movement listing by date range"""
        ledger.append(receipt(10, 1, date(2024, 1, 1)))
        ledger.append(receipt(10, 1, date(2024, 2, 1), voucher_id="GRN-002"))
        ledger.append(receipt(10, 1, date(2024, 3, 1), voucher_id="GRN-003"))

        entries = ledger.get_movements(ITEM, from_date=date(2024, 1, 15), to_date=date(2024, 2, 15))
        assert [e.voucher_id for e in entries] == ["GRN-002"]

    def test_get_entry_missing(self, ledger: StockLedgerService):
        """Test fetching an unknown entry"""
        with pytest.raises(NotFoundError):
            ledger.get_entry(12345)


class TestStockMovementService:
    """Test suite for the movement facade"""

    def test_record_movement(self, movements: StockMovementService):
        """Test receipts and issues through the facade"""
        movements.record_movement("Purchase Receipt", "GRN-9", ITEM, STORE, 20, "2.5", date(2024, 1, 1))
        result = movements.record_movement("Delivery Note", "DN-9", ITEM, STORE, -5, None, date(2024, 1, 2))

        assert result.entry.qty_after_transaction == Decimal("15")
        assert movements.get_balance(ITEM, STORE).stock_value == Decimal("37.50")

    def test_transfer_moves_value(self, movements: StockMovementService):
        """Test a FIFO transfer receives at the outbound cost"""
        movements.set_item_valuation_method(ITEM, "FIFO")
        movements.record_movement("Purchase Receipt", "GRN-1", ITEM, "A", 50, 10, date(2024, 1, 1))
        movements.record_movement("Purchase Receipt", "GRN-2", ITEM, "A", 50, 14, date(2024, 1, 2))

        result = movements.transfer_stock(ITEM, "A", "B", 60, date(2024, 1, 3), voucher_id="TRF-1")

        assert result.outbound.cost_of_goods_sold == Decimal("640.00")
        assert result.transfer_rate == Decimal("10.6667")
        assert result.outbound.entry.voucher_type == "Stock Entry"
        assert result.inbound.entry.voucher_id == "TRF-1"
        assert result.inbound.entry.incoming_rate == Decimal("10.6667")

        source = movements.get_balance(ITEM, "A")
        target = movements.get_balance(ITEM, "B")
        assert source.qty == Decimal("40")
        assert source.stock_value == Decimal("560.00")
        assert target.qty == Decimal("60")
        assert target.stock_value == Decimal("640.00")

    def test_transfer_generates_voucher_id(self, movements: StockMovementService):
        """Test both legs share a generated voucher ID"""
        movements.record_movement("Purchase Receipt", "GRN-1", ITEM, "A", 5, 1, date(2024, 1, 1))
        result = movements.transfer_stock(ITEM, "A", "B", 5, date(2024, 1, 2))

        assert result.outbound.entry.voucher_id.startswith("TRF-")
        assert result.outbound.entry.voucher_id == result.inbound.entry.voucher_id

    def test_transfer_validation(self, movements: StockMovementService):
        """Test transfer quantity and locations are checked"""
        with pytest.raises(ValidationError, match="greater than zero"):
            movements.transfer_stock(ITEM, "A", "B", 0, date(2024, 1, 1))
        with pytest.raises(ValidationError, match="must differ"):
            movements.transfer_stock(ITEM, "A", "A", 5, date(2024, 1, 1))

    def test_valuation_method_locked_after_postings(self, movements: StockMovementService):
        """Test the method cannot change once the item has entries"""
        movements.set_item_valuation_method(ITEM, "LIFO")
        movements.record_movement("Purchase Receipt", "GRN-1", ITEM, STORE, 5, 1, date(2024, 1, 1))

        with pytest.raises(BusinessLogicError, match="already has stock transactions"):
            movements.set_item_valuation_method(ITEM, "FIFO")

        setting = movements.set_item_valuation_method(ITEM, "lifo")
        assert setting.valuation_method == "LIFO"
        assert movements.item_settings.get_method(ITEM).value == "LIFO"

    def test_cancel_movement(self, movements: StockMovementService):
        """Test cancelling through the facade"""
        posted = movements.record_movement("Purchase Receipt", "GRN-1", ITEM, STORE, 5, 2, date(2024, 1, 1))
        reversal = movements.cancel_movement(posted.entry.id).entry

        assert reversal.reversal_of_id == posted.entry.id
        assert movements.get_balance(ITEM, STORE).qty == 0


class TestConcurrentAppends:
    """Test suite for appends racing on one key from separate sessions"""

    def test_parallel_receipts_form_one_chain(self, tmp_path):
        """Test every thread's receipt lands on the balance left by the one before it"""
        engine = create_engine(
            f"sqlite:///{tmp_path / 'ledger.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(bind=engine)
        SessionFactory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        workers = 20
        errors = []

        def post(n):
            session = SessionFactory()
            try:
                ledger = StockLedgerService(session, negative_stock_policy="allow")
                ledger.append(receipt(1, 1, date(2024, 6, 1), voucher_id=f"GRN-{n:03d}"))
            except Exception as e:
                errors.append(e)
            finally:
                session.close()

        threads = [threading.Thread(target=post, args=(n,)) for n in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        try:
            assert errors == []
            session = SessionFactory()
            try:
                entries = session.query(StockLedgerEntry).order_by(StockLedgerEntry.id).all()
                assert [e.qty_after_transaction for e in entries] == [Decimal(n) for n in range(1, workers + 1)]
                assert [e.stock_value for e in entries][-1] == Decimal(workers)
                assert StockLedgerService(session).get_balance(ITEM, STORE).qty == Decimal(workers)
            finally:
                session.close()
        finally:
            engine.dispose()
