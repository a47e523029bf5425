"""
Late Fee Consistency Conformance Tests

INVARIANT: What the views promise is what make_payment charges.

    ∀ active loan L, ∀ time t ≥ due(L):
        late_fee_info(L, t).estimated_late_fee = quote(L, t).total_late_fee
                                              = Δ late_fee_accumulated(make_payment(L, t))
        Δ balance(borrower) = -quote(L, t).total

Views never change state, so asking twice gives the same answer.
"""

from hypothesis import given, settings
from hypothesis import strategies as st
from datetime import timedelta
from decimal import Decimal

from tests.helpers import BORROWER, LENDER, START, make_book, snapshot


class TestLateFeeConsistencyProperties:
    """Property-based view/charge agreement."""

    @given(
        st.integers(min_value=100, max_value=100000),
        st.integers(min_value=1, max_value=36),
        st.integers(min_value=0, max_value=200),
        st.integers(min_value=0, max_value=59),
    )
    @settings(max_examples=50, deadline=None)
    def test_views_match_payment(self, amount, duration, hours, minutes):
        """
        PROPERTY: get_late_fee_info, quote_payment and make_payment agree on
        the late fee and the total debited from the borrower.
        """
        book = make_book(borrower_funds=Decimal("1000000"))
        loan_id = book.create_loan(BORROWER, "LOAN001", Decimal(amount), duration)
        book.fund_loan(LENDER, loan_id)

        due = book.get_loan(loan_id).next_payment_due
        book.advance_time(due + timedelta(hours=hours, minutes=minutes))

        before = snapshot(book)
        info = book.get_late_fee_info(loan_id)
        quote = book.quote_payment(loan_id)
        assert book.get_late_fee_info(loan_id) == info
        assert book.quote_payment(loan_id) == quote
        assert snapshot(book) == before

        assert info.estimated_late_fee == quote.total_late_fee
        if hours == 0 and minutes == 0:
            assert info.estimated_late_fee == 0
            assert info.overdue_periods == 0
        else:
            assert info.estimated_late_fee > 0
            assert info.hours_late == hours

        old = book.get_loan(loan_id)
        balance = book.settlement.get_balance(BORROWER)
        new = book.make_payment(BORROWER, loan_id)

        assert new.late_fee_accumulated - old.late_fee_accumulated == quote.total_late_fee
        assert balance - book.settlement.get_balance(BORROWER) == quote.total
        assert new.available_withdrawal - old.available_withdrawal == quote.total_due
        assert new.periods_paid == len(quote.periods)

    @given(st.integers(min_value=1, max_value=200))
    @settings(max_examples=40, deadline=None)
    def test_fee_grows_with_lateness(self, hours):
        """
        PROPERTY: Every extra hour late raises the estimated late fee.
        """
        book = make_book()
        loan_id = book.create_loan(BORROWER, "LOAN001", Decimal("10000"), 12)
        book.fund_loan(LENDER, loan_id)
        due = book.get_loan(loan_id).next_payment_due

        book.advance_time(due + timedelta(hours=hours))
        earlier = book.get_late_fee_info(loan_id).estimated_late_fee
        book.advance_time(due + timedelta(hours=hours + 1))
        later = book.get_late_fee_info(loan_id).estimated_late_fee
        assert later > earlier


class TestLateFeeConsistencyExamples:

    def test_catch_up_quote_covers_every_period(self):
        book = make_book()
        loan_id = book.create_loan(BORROWER, "LOAN001", Decimal("10000"), 12)
        book.fund_loan(LENDER, loan_id)
        book.advance_time(START + timedelta(days=95))

        quote = book.quote_payment(loan_id)
        info = book.get_late_fee_info(loan_id)
        assert len(quote.periods) == 3
        assert info.overdue_periods == 3
        assert [p.period_number for p in quote.periods] == [1, 2, 3]
        # earlier periods are later, so they carry larger fees
        fees = [p.late_fee for p in quote.periods]
        assert fees == sorted(fees, reverse=True)

        loan = book.make_payment(BORROWER, loan_id)
        assert loan.late_fee_accumulated == info.estimated_late_fee
