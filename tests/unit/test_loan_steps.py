"""
test_loan_steps.py - Unit tests for the pure loan step functions

Tests:
- count_due_periods: early window, on time, catch-up
- settle_period: on-time and late settlement
- plan_payment: bounds and rejections
- compute_* transaction builders: moves, state changes, events, rejections
"""

import pytest
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

from loanbook import (
    CompanyWallets, InvalidAmount, InvalidTransition, LendingConfig, LoanNotActive,
    LoanNotPending, LoanStatus, NoInterestToClaim, NotLoanBorrower, NotLoanLender,
    PaymentNotDue, SelfFunding, calculate_late_fee,
    count_due_periods, plan_payment, settle_period,
)
from loanbook.core import (
    EVENT_FEE_COLLECTED, EVENT_LATE_FEE_APPLIED, EVENT_LOAN_COMPLETED, EVENT_PAYMENT_MADE,
)
from loanbook.fixed_point import bps_of
from loanbook.loan import (
    compute_approval, compute_claim, compute_confirmation, compute_creation,
    compute_funding, compute_payment, compute_request,
)

from tests.helpers import (
    BORROWER, ESCROW, FEE_WALLET, HOUR, INSURANCE_WALLET, LENDER, MATCHING_WALLET,
    PERIOD, START, make_active_loan,
)

WALLETS = CompanyWallets(FEE_WALLET, INSURANCE_WALLET, MATCHING_WALLET)
DUE = START + PERIOD


class TestCountDuePeriods:

    def test_before_window(self):
        loan = make_active_loan()
        assert count_due_periods(loan, START - timedelta(seconds=1), PERIOD) == 0

    def test_early_inside_window(self):
        loan = make_active_loan()
        assert count_due_periods(loan, START, PERIOD) == 1
        assert count_due_periods(loan, START + timedelta(days=29), PERIOD) == 1

    def test_on_due_date(self):
        assert count_due_periods(make_active_loan(), DUE, PERIOD) == 1

    def test_catch_up(self):
        loan = make_active_loan()
        assert count_due_periods(loan, DUE + timedelta(days=29), PERIOD) == 1
        assert count_due_periods(loan, DUE + PERIOD, PERIOD) == 2
        assert count_due_periods(loan, DUE + 5 * PERIOD + HOUR, PERIOD) == 6

    def test_unfunded_loan(self):
        loan = replace(make_active_loan(), next_payment_due=None)
        assert count_due_periods(loan, DUE, PERIOD) == 0


class TestSettlePeriod:
    """Tests for settle_period."""

    def test_on_time(self):
        loan = make_active_loan()
        s = settle_period(loan, DUE)
        assert s.late_fee == 0
        assert s.hours_late == 0
        assert s.due_amount == loan.fixed_emi
        assert s.insurance_fee == bps_of(loan.fixed_emi, 200)
        assert s.principal + s.interest == loan.fixed_emi
        assert s.interest == Decimal("100")

        new = s.loan
        assert new.periods_paid == 1
        assert new.missed_payments == 0
        assert new.next_payment_due == DUE + PERIOD
        assert new.available_withdrawal == loan.fixed_emi
        assert new.total_paid == s.principal
        assert new.total_interest_paid == s.interest
        assert new.status is LoanStatus.ACTIVE

    def test_one_day_late(self):
        loan = make_active_loan()
        s = settle_period(loan, DUE + timedelta(days=1))
        expected_fee = calculate_late_fee(loan.fixed_emi, 1200, 24).total
        assert s.hours_late == 24
        assert s.late_fee == expected_fee
        assert s.due_amount == loan.fixed_emi + expected_fee
        assert s.insurance_fee == bps_of(loan.fixed_emi + expected_fee, 200)
        assert s.loan.missed_payments == 1
        assert s.loan.late_fee_accumulated == expected_fee
        assert s.loan.available_withdrawal == s.due_amount
        # the due date advances by one period regardless of lateness
        assert s.loan.next_payment_due == DUE + PERIOD

    def test_less_than_an_hour_late_is_penalty_only(self):
        loan = make_active_loan()
        s = settle_period(loan, DUE + timedelta(minutes=30))
        assert s.hours_late == 0
        assert s.late_fee == bps_of(loan.fixed_emi, 500)
        assert s.loan.missed_payments == 1

    def test_final_period_completes(self):
        loan = make_active_loan(duration=1)
        s = settle_period(loan, DUE)
        assert s.principal == loan.amount
        assert s.loan.total_paid == loan.amount
        assert s.loan.status is LoanStatus.COMPLETED
        assert s.completes_loan


class TestPlanPayment:
    """Tests for plan_payment."""

    def test_rejects_inactive(self):
        loan = replace(make_active_loan(), status=LoanStatus.PENDING)
        with pytest.raises(LoanNotActive):
            plan_payment(loan, DUE)

    def test_rejects_before_window(self):
        loan = make_active_loan()
        settled = settle_period(loan, START + timedelta(days=1)).loan
        with pytest.raises(PaymentNotDue):
            plan_payment(settled, START + timedelta(days=2))

    def test_catch_up_is_chronological(self):
        loan = make_active_loan()
        plan = plan_payment(loan, DUE + 2 * PERIOD)
        assert [s.period_number for s in plan] == [1, 2, 3]
        assert [s.due_date for s in plan] == [DUE, DUE + PERIOD, DUE + 2 * PERIOD]
        # two overdue periods, the third settled on its due date
        assert [s.late_fee > 0 for s in plan] == [True, True, False]
        assert plan[0].hours_late == 60 * 24
        assert plan[1].hours_late == 30 * 24
        assert plan[-1].loan.missed_payments == 2

    def test_fees_do_not_compound(self):
        loan = make_active_loan()
        plan = plan_payment(loan, DUE + PERIOD)
        emi = loan.fixed_emi
        assert plan[0].late_fee == calculate_late_fee(emi, 1200, 720).total
        assert plan[1].late_fee == 0

    def test_bounded_by_remaining_periods(self):
        loan = make_active_loan(duration=3)
        plan = plan_payment(loan, DUE + 10 * PERIOD)
        assert len(plan) == 3
        assert plan[-1].loan.status is LoanStatus.COMPLETED

    def test_bounded_by_catch_up_guard(self):
        config = LendingConfig(max_catch_up_periods=2)
        plan = plan_payment(make_active_loan(), DUE + 5 * PERIOD, config)
        assert len(plan) == 2


class TestTransactionBuilders:
    """Tests for the compute_* functions."""

    def test_request(self):
        pending = compute_request(1, BORROWER, "LOAN001", START, Decimal("5000"))
        assert pending.moves == ()
        assert pending.state_change.old is None
        loan = pending.state_change.new
        assert loan.status is LoanStatus.REQUESTED
        assert loan.requested_amount == Decimal("5000")

    def test_request_amount_validated(self):
        with pytest.raises(InvalidAmount):
            compute_request(1, BORROWER, "LOAN001", START, Decimal("50"))

    def test_approval_requires_requested(self):
        loan = make_active_loan()
        with pytest.raises(InvalidTransition):
            compute_approval(loan, "owner", Decimal("1000"), 12, START)

    def test_confirmation_above_ceiling(self):
        requested = compute_request(1, BORROWER, "LOAN001", START).state_change.new
        approved = compute_approval(requested, "owner", Decimal("5000"), 6, START).state_change.new
        with pytest.raises(InvalidAmount):
            compute_confirmation(approved, BORROWER, Decimal("5000.01"), START, WALLETS)

    def test_confirmation_by_other_account(self):
        requested = compute_request(1, BORROWER, "LOAN001", START).state_change.new
        approved = compute_approval(requested, "owner", Decimal("5000"), 6, START).state_change.new
        with pytest.raises(NotLoanBorrower):
            compute_confirmation(approved, LENDER, Decimal("5000"), START, WALLETS)

    def test_confirmation_charges_origination_fee(self):
        requested = compute_request(1, BORROWER, "LOAN001", START).state_change.new
        approved = compute_approval(requested, "owner", Decimal("5000"), 6, START).state_change.new
        pending = compute_confirmation(approved, BORROWER, Decimal("4000"), START, WALLETS)
        assert len(pending.moves) == 1
        move = pending.moves[0]
        assert (move.source, move.dest, move.quantity) == (BORROWER, FEE_WALLET, Decimal("20"))
        loan = pending.state_change.new
        assert loan.status is LoanStatus.CONFIRMED
        assert loan.interest_rate == 900
        assert EVENT_FEE_COLLECTED in [e.name for e in pending.events]

    def test_creation_matches_confirmation_terms(self):
        created = compute_creation(
            1, BORROWER, "LOAN001", Decimal("4000"), 6, START, WALLETS
        ).state_change.new
        requested = compute_request(2, BORROWER, "LOAN002", START).state_change.new
        approved = compute_approval(requested, "owner", Decimal("5000"), 6, START).state_change.new
        confirmed = compute_confirmation(
            approved, BORROWER, Decimal("4000"), START, WALLETS
        ).state_change.new
        assert created.status is LoanStatus.PENDING
        assert created.fixed_emi == confirmed.fixed_emi
        assert created.interest_rate == confirmed.interest_rate

    def test_funding_moves(self):
        loan = replace(make_active_loan(), status=LoanStatus.PENDING, lender=None,
                       funded_at=None, next_payment_due=None)
        pending = compute_funding(loan, LENDER, START, WALLETS)
        moves = {(m.source, m.dest): m.quantity for m in pending.moves}
        assert moves == {
            (LENDER, MATCHING_WALLET): Decimal("10"),
            (LENDER, BORROWER): Decimal("9990"),
        }
        funded = pending.state_change.new
        assert funded.lender == LENDER
        assert funded.next_payment_due == START + PERIOD

    def test_funding_rejections(self):
        loan = replace(make_active_loan(), status=LoanStatus.PENDING, lender=None)
        with pytest.raises(SelfFunding):
            compute_funding(loan, BORROWER, START, WALLETS)
        with pytest.raises(LoanNotPending):
            compute_funding(make_active_loan(), LENDER, START, WALLETS)

    def test_payment_moves_and_events(self):
        loan = make_active_loan()
        pending = compute_payment(loan, BORROWER, DUE + 2 * PERIOD, WALLETS)
        escrow_moves = [m for m in pending.moves if m.dest == ESCROW]
        insurance_moves = [m for m in pending.moves if m.dest == INSURANCE_WALLET]
        assert len(escrow_moves) == 3
        assert len(insurance_moves) == 3
        names = [e.name for e in pending.events]
        assert names.count(EVENT_LATE_FEE_APPLIED) == 2
        assert names.count(EVENT_PAYMENT_MADE) == 3
        assert EVENT_LOAN_COMPLETED not in names

        late = [e.params_dict for e in pending.events if e.name == EVENT_LATE_FEE_APPLIED]
        assert [p["missed_payments"] for p in late] == [1, 2]
        assert all(p["total_debt"] > loan.fixed_emi for p in late)

    def test_payment_by_other_account(self):
        with pytest.raises(NotLoanBorrower):
            compute_payment(make_active_loan(), LENDER, DUE, WALLETS)

    def test_claim(self):
        paid = settle_period(make_active_loan(), DUE).loan
        pending = compute_claim(paid, LENDER, DUE)
        assert len(pending.moves) == 1
        move = pending.moves[0]
        assert (move.source, move.dest, move.quantity) == (ESCROW, LENDER, paid.fixed_emi)
        claimed = pending.state_change.new
        assert claimed.available_withdrawal == 0
        assert claimed.total_claimed == paid.fixed_emi

    def test_claim_rejections(self):
        with pytest.raises(NoInterestToClaim):
            compute_claim(make_active_loan(), LENDER, DUE)
        paid = settle_period(make_active_loan(), DUE).loan
        with pytest.raises(NotLoanLender):
            compute_claim(paid, "carol", DUE)
