"""
loan.py - Loan record and pure lifecycle step functions

This module provides the loan record and every state transition of its
lifecycle using a pure function architecture with explicit inputs.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASS (explicit state):
   - Loan: immutable snapshot of a loan; every transition returns a new one

2. PURE CALCULATION FUNCTIONS:
   - count_due_periods, settle_period, plan_payment
   - Take the loan, the time and the configuration as parameters
   - No book, no settlement ledger, no hidden state

3. TRANSACTION BUILDERS (compute_*):
   - Validate the transition, compute the settlement moves, the new loan
     record and the events, and wrap them in a PendingTransaction
   - LoanBook.execute() applies the result atomically

Lifecycle:
    request -> approve -> confirm -> fund -> pay ... pay -> completed
    create (direct) ----------------> fund -> pay ... pay -> completed

Money flows (borrower B, lender L, escrow E):
    confirm/create:  B -> fee wallet         origination fee
    fund:            L -> matching wallet    matching fee
                     L -> B                  amount - matching fee
    pay (per period):B -> E                  emi + late fee
                     B -> insurance wallet   insurance on (emi + late fee)
    claim:           E -> L                  available_withdrawal
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from .amortization import (
    calculate_emi, split_installment, validate_duration, validate_principal,
)
from .arrears import calculate_late_fee, hours_late
from .config import DEFAULT_CONFIG, LendingConfig
from .core import (
    CompanyWallets, LoanEvent, LoanStateChange, LoanStatus, Move,
    PendingTransaction, TransactionOrigin, build_transaction, make_event,
    InvalidAmount, InvalidTransition, LoanNotActive, LoanNotPending,
    NoInterestToClaim, NotLoanBorrower, NotLoanLender, PaymentNotDue,
    SelfFunding,
    EVENT_FEE_COLLECTED, EVENT_INTEREST_CLAIMED, EVENT_LATE_FEE_APPLIED,
    EVENT_LOAN_APPROVED, EVENT_LOAN_COMPLETED, EVENT_LOAN_CONFIRMED,
    EVENT_LOAN_CREATED, EVENT_LOAN_FUNDED, EVENT_LOAN_REQUESTED,
    EVENT_PAYMENT_MADE,
)
from .fixed_point import ZERO, bps_of, with_decimal_context
from .rates import interest_rate_for


# ============================================================================
# LOAN RECORD
# ============================================================================

@dataclass(frozen=True, slots=True)
class Loan:
    """
    Immutable snapshot of a loan at a point in time.

    Negotiated terms (amount, interest_rate, duration, fixed_emi) are set once
    at confirmation or direct creation and never change afterwards. The
    running totals change only through make_payment and claim_interest.
    """
    id: int
    borrower: str
    reference: str
    status: LoanStatus
    created_at: datetime
    requested_amount: Optional[Decimal] = None
    approved_max_amount: Optional[Decimal] = None
    amount: Decimal = ZERO
    interest_rate: int = 0        # annual, basis points
    duration: int = 0             # periods
    fixed_emi: Decimal = ZERO
    lender: Optional[str] = None
    funded_at: Optional[datetime] = None
    next_payment_due: Optional[datetime] = None
    total_paid: Decimal = ZERO    # principal component, capped at amount
    total_interest_paid: Decimal = ZERO
    periods_paid: int = 0
    missed_payments: int = 0
    late_fee_accumulated: Decimal = ZERO
    available_withdrawal: Decimal = ZERO
    total_claimed: Decimal = ZERO

    @property
    def outstanding_principal(self) -> Decimal:
        return self.amount - self.total_paid

    @property
    def remaining_periods(self) -> int:
        return max(self.duration - self.periods_paid, 0)

    @property
    def is_active(self) -> bool:
        return self.status is LoanStatus.ACTIVE

    @property
    def is_funded(self) -> bool:
        return self.funded_at is not None


@dataclass(frozen=True, slots=True)
class PeriodSettlement:
    """
    Outcome of settling one installment period.

    loan is the record after the period is settled.
    """
    loan: Loan
    period_number: int
    due_date: datetime
    hours_late: int
    emi: Decimal
    late_fee: Decimal
    due_amount: Decimal       # emi + late_fee, credited to the lender's withdrawal balance
    insurance_fee: Decimal    # charged on top of due_amount
    principal: Decimal
    interest: Decimal

    @property
    def is_late(self) -> bool:
        return self.late_fee > 0 or self.hours_late > 0

    @property
    def total_charged(self) -> Decimal:
        return self.due_amount + self.insurance_fee

    @property
    def completes_loan(self) -> bool:
        return self.loan.status is LoanStatus.COMPLETED


# ============================================================================
# PURE PAYMENT CALCULATIONS
# ============================================================================

def count_due_periods(loan: Loan, now: datetime, period_length: timedelta) -> int:
    """
    Number of installments payable at now.

    Every due date <= now is one period. If none has passed yet but now is
    inside the current period window, exactly one installment may be paid
    early. Before the window nothing is payable.
    """
    due = loan.next_payment_due
    if due is None:
        return 0
    if now >= due:
        return (now - due) // period_length + 1
    if now >= due - period_length:
        return 1
    return 0


@with_decimal_context
def settle_period(
    loan: Loan,
    now: datetime,
    config: LendingConfig = DEFAULT_CONFIG,
) -> PeriodSettlement:
    """
    Settle the loan's next installment at time now.

    A period settled after its due timestamp is charged a late fee and
    counted as missed. The lender's withdrawal balance is credited with the
    installment plus the late fee; insurance is charged on the same amount.
    """
    due_date = loan.next_payment_due
    hours = hours_late(due_date, now)
    missed_payments = loan.missed_payments
    late_fee_accumulated = loan.late_fee_accumulated
    late_fee = ZERO
    if now > due_date:
        late_fee = calculate_late_fee(
            loan.fixed_emi,
            loan.interest_rate,
            hours,
            penalty_bps=config.late_penalty_bps,
            rate_multiplier=config.overdue_rate_multiplier,
            hours_per_year=config.hours_per_year,
        ).total
        missed_payments += 1
        late_fee_accumulated += late_fee

    due_amount = loan.fixed_emi + late_fee
    insurance_fee = bps_of(due_amount, config.insurance_fee_bps)

    period_number = loan.periods_paid + 1
    principal, interest = split_installment(
        loan.outstanding_principal,
        loan.fixed_emi,
        loan.interest_rate,
        is_final=period_number >= loan.duration,
    )
    total_paid = min(loan.total_paid + principal, loan.amount)
    status = LoanStatus.COMPLETED if total_paid >= loan.amount else loan.status

    new_loan = replace(
        loan,
        status=status,
        next_payment_due=due_date + config.period_length,
        total_paid=total_paid,
        total_interest_paid=loan.total_interest_paid + interest,
        periods_paid=period_number,
        missed_payments=missed_payments,
        late_fee_accumulated=late_fee_accumulated,
        available_withdrawal=loan.available_withdrawal + due_amount,
    )
    return PeriodSettlement(
        loan=new_loan,
        period_number=period_number,
        due_date=due_date,
        hours_late=hours,
        emi=loan.fixed_emi,
        late_fee=late_fee,
        due_amount=due_amount,
        insurance_fee=insurance_fee,
        principal=principal,
        interest=interest,
    )


@with_decimal_context
def plan_payment(
    loan: Loan,
    now: datetime,
    config: LendingConfig = DEFAULT_CONFIG,
) -> List[PeriodSettlement]:
    """
    Settle every payable period in chronological order.

    The loop is bounded by the number of payable periods, the periods left on
    the loan and max_catch_up_periods, and stops as soon as the loan completes.

    Raises:
        LoanNotActive: if the loan is not ACTIVE
        PaymentNotDue: if now is before the current period window
    """
    if not loan.is_active:
        raise LoanNotActive(f"Loan {loan.id} is {loan.status.value}, not active")
    due_count = count_due_periods(loan, now, config.period_length)
    if due_count == 0:
        raise PaymentNotDue(
            f"Loan {loan.id}: next installment window opens at "
            f"{loan.next_payment_due - config.period_length}"
        )
    limit = min(due_count, loan.remaining_periods, config.max_catch_up_periods)

    settlements = []
    current = loan
    for _ in range(limit):
        settlement = settle_period(current, now, config)
        settlements.append(settlement)
        current = settlement.loan
        if settlement.completes_loan:
            break
    return settlements


# ============================================================================
# TRANSACTION BUILDERS
# ============================================================================

def _moves(*candidates: Tuple[Decimal, str, str, str]) -> List[Move]:
    """Build moves from (quantity, source, dest, memo) tuples, skipping zero amounts."""
    return [Move(q, src, dst, memo) for q, src, dst, memo in candidates if q > 0]


def _require_borrower(loan: Loan, caller: str) -> None:
    if caller != loan.borrower:
        raise NotLoanBorrower(f"{caller} is not the borrower of loan {loan.id}")


def _price(amount: Decimal, duration: int, config: LendingConfig) -> Tuple[int, Decimal]:
    """Rate and installment of a loan, fixed for its lifetime."""
    rate = interest_rate_for(amount, config.rate_tiers)
    return rate, calculate_emi(amount, rate, duration, config)


def compute_request(
    loan_id: int,
    caller: str,
    reference: str,
    now: datetime,
    requested_amount: Optional[Decimal] = None,
    config: LendingConfig = DEFAULT_CONFIG,
) -> PendingTransaction:
    """Open a loan request in REQUESTED state. No funds move."""
    if requested_amount is not None:
        requested_amount = validate_principal(requested_amount, config)
    loan = Loan(
        id=loan_id,
        borrower=caller,
        reference=reference,
        status=LoanStatus.REQUESTED,
        created_at=now,
        requested_amount=requested_amount,
    )
    event = make_event(
        EVENT_LOAN_REQUESTED, loan_id, now,
        borrower=caller, reference=reference, requested_amount=requested_amount,
    )
    origin = TransactionOrigin("request_loan", caller, loan_id)
    return build_transaction(now, [], LoanStateChange(loan_id, None, loan), origin, [event])


def compute_approval(
    loan: Loan,
    caller: str,
    max_amount: Decimal,
    duration: int,
    now: datetime,
    config: LendingConfig = DEFAULT_CONFIG,
) -> PendingTransaction:
    """
    Approve a request with a principal ceiling and a term.

    Raises:
        InvalidAmount: max_amount outside the lending window
        InvalidDuration: duration outside the term window
        InvalidTransition: the loan is not REQUESTED
    """
    max_amount = validate_principal(max_amount, config)
    duration = validate_duration(duration, config)
    if loan.status is not LoanStatus.REQUESTED:
        raise InvalidTransition(f"Loan {loan.id} is {loan.status.value}, not requested")

    new_loan = replace(
        loan, status=LoanStatus.APPROVED, approved_max_amount=max_amount, duration=duration,
    )
    event = make_event(
        EVENT_LOAN_APPROVED, loan.id, now, max_amount=max_amount, duration=duration,
    )
    origin = TransactionOrigin("approve_loan_request", caller, loan.id)
    return build_transaction(now, [], LoanStateChange(loan.id, loan, new_loan), origin, [event])


def compute_confirmation(
    loan: Loan,
    caller: str,
    amount: Decimal,
    now: datetime,
    wallets: CompanyWallets,
    config: LendingConfig = DEFAULT_CONFIG,
) -> PendingTransaction:
    """
    Borrower accepts the approved terms with a final principal.

    Fixes the rate and the installment and charges the origination fee.

    Raises:
        NotLoanBorrower: caller is not the loan's borrower
        InvalidTransition: the loan is not APPROVED
        InvalidAmount: amount outside the window or above the approved ceiling
    """
    _require_borrower(loan, caller)
    if loan.status is not LoanStatus.APPROVED:
        raise InvalidTransition(f"Loan {loan.id} is {loan.status.value}, not approved")
    amount = validate_principal(amount, config)
    if amount > loan.approved_max_amount:
        raise InvalidAmount(
            f"Amount {amount} exceeds approved maximum {loan.approved_max_amount}"
        )

    rate, emi = _price(amount, loan.duration, config)
    fee = bps_of(amount, config.origination_fee_bps)
    moves = _moves((fee, loan.borrower, wallets.fee_wallet, f"origination_fee:{loan.id}"))

    new_loan = replace(
        loan, status=LoanStatus.CONFIRMED, amount=amount, interest_rate=rate, fixed_emi=emi,
    )
    events = [
        make_event(EVENT_LOAN_CONFIRMED, loan.id, now,
                   amount=amount, interest_rate=rate, fixed_emi=emi),
        make_event(EVENT_FEE_COLLECTED, loan.id, now,
                   fee_type="origination", amount=fee, wallet=wallets.fee_wallet),
    ]
    origin = TransactionOrigin("confirm_loan", caller, loan.id)
    return build_transaction(now, moves, LoanStateChange(loan.id, loan, new_loan), origin, events)


def compute_creation(
    loan_id: int,
    caller: str,
    reference: str,
    amount: Decimal,
    duration: int,
    now: datetime,
    wallets: CompanyWallets,
    config: LendingConfig = DEFAULT_CONFIG,
) -> PendingTransaction:
    """
    Create a loan directly in PENDING state, skipping the negotiation.

    Terms are fixed exactly as at confirmation, so both paths give the same
    installment for the same (amount, rate, duration).
    """
    amount = validate_principal(amount, config)
    duration = validate_duration(duration, config)
    rate, emi = _price(amount, duration, config)
    fee = bps_of(amount, config.origination_fee_bps)
    moves = _moves((fee, caller, wallets.fee_wallet, f"origination_fee:{loan_id}"))

    loan = Loan(
        id=loan_id,
        borrower=caller,
        reference=reference,
        status=LoanStatus.PENDING,
        created_at=now,
        requested_amount=amount,
        approved_max_amount=amount,
        amount=amount,
        interest_rate=rate,
        duration=duration,
        fixed_emi=emi,
    )
    events = [
        make_event(EVENT_LOAN_CREATED, loan_id, now,
                   borrower=caller, reference=reference, amount=amount,
                   interest_rate=rate, duration=duration, fixed_emi=emi),
        make_event(EVENT_FEE_COLLECTED, loan_id, now,
                   fee_type="origination", amount=fee, wallet=wallets.fee_wallet),
    ]
    origin = TransactionOrigin("create_loan", caller, loan_id)
    return build_transaction(now, moves, LoanStateChange(loan_id, None, loan), origin, events)


@with_decimal_context
def compute_funding(
    loan: Loan,
    caller: str,
    now: datetime,
    wallets: CompanyWallets,
    config: LendingConfig = DEFAULT_CONFIG,
) -> PendingTransaction:
    """
    Lender funds the loan and starts the installment clock.

    The matching fee is taken out of the principal: the borrower receives
    amount - matching fee, the lender pays amount in total.

    Raises:
        LoanNotPending: the loan is neither CONFIRMED nor PENDING
        SelfFunding: the lender is the borrower
    """
    if not loan.status.is_fundable:
        raise LoanNotPending(f"Loan {loan.id} is {loan.status.value}, not awaiting funding")
    if caller == loan.borrower:
        raise SelfFunding(f"{caller} cannot fund their own loan {loan.id}")

    matching_fee = bps_of(loan.amount, config.matching_fee_bps)
    disbursed = loan.amount - matching_fee
    moves = _moves(
        (matching_fee, caller, wallets.matching_wallet, f"matching_fee:{loan.id}"),
        (disbursed, caller, loan.borrower, f"disbursement:{loan.id}"),
    )

    new_loan = replace(
        loan,
        status=LoanStatus.ACTIVE,
        lender=caller,
        funded_at=now,
        next_payment_due=now + config.period_length,
    )
    events = [
        make_event(EVENT_LOAN_FUNDED, loan.id, now,
                   lender=caller, amount=loan.amount, disbursed=disbursed,
                   next_payment_due=new_loan.next_payment_due),
        make_event(EVENT_FEE_COLLECTED, loan.id, now,
                   fee_type="matching", amount=matching_fee, wallet=wallets.matching_wallet),
    ]
    origin = TransactionOrigin("fund_loan", caller, loan.id)
    return build_transaction(now, moves, LoanStateChange(loan.id, loan, new_loan), origin, events)


@with_decimal_context
def compute_payment(
    loan: Loan,
    caller: str,
    now: datetime,
    wallets: CompanyWallets,
    config: LendingConfig = DEFAULT_CONFIG,
) -> PendingTransaction:
    """
    Settle every payable installment in one transaction.

    Per period, the installment plus any late fee moves from the borrower to
    the escrow account (claimable by the lender), and insurance on that amount
    moves to the insurance wallet.

    Raises:
        NotLoanBorrower: caller is not the loan's borrower
        LoanNotActive: the loan is not ACTIVE
        PaymentNotDue: the next installment window has not opened
    """
    _require_borrower(loan, caller)
    settlements = plan_payment(loan, now, config)

    moves = []
    events: List[LoanEvent] = []
    for s in settlements:
        memo = f"{loan.id}:{s.period_number}"
        moves.extend(_moves(
            (s.due_amount, loan.borrower, config.escrow_wallet, f"installment:{memo}"),
            (s.insurance_fee, loan.borrower, wallets.insurance_wallet, f"insurance:{memo}"),
        ))
        if s.late_fee > 0:
            events.append(make_event(
                EVENT_LATE_FEE_APPLIED, loan.id, now,
                late_fee=s.late_fee, missed_payments=s.loan.missed_payments,
                total_debt=s.due_amount,
            ))
        events.append(make_event(
            EVENT_PAYMENT_MADE, loan.id, now,
            period=s.period_number, amount=s.due_amount, principal=s.principal,
            interest=s.interest, late_fee=s.late_fee, insurance_fee=s.insurance_fee,
        ))

    new_loan = settlements[-1].loan
    if new_loan.status is LoanStatus.COMPLETED:
        events.append(make_event(
            EVENT_LOAN_COMPLETED, loan.id, now,
            total_paid=new_loan.total_paid, total_interest_paid=new_loan.total_interest_paid,
        ))
    origin = TransactionOrigin("make_payment", caller, loan.id)
    return build_transaction(now, moves, LoanStateChange(loan.id, loan, new_loan), origin, events)


@with_decimal_context
def compute_claim(
    loan: Loan,
    caller: str,
    now: datetime,
    config: LendingConfig = DEFAULT_CONFIG,
) -> PendingTransaction:
    """
    Pay the lender everything credited to the loan since the last claim.

    Raises:
        NotLoanLender: caller is not the loan's lender
        NoInterestToClaim: nothing is available
    """
    if loan.lender is None or caller != loan.lender:
        raise NotLoanLender(f"{caller} is not the lender of loan {loan.id}")
    amount = loan.available_withdrawal
    if amount <= 0:
        raise NoInterestToClaim(f"Loan {loan.id} has nothing to claim")

    moves = _moves((amount, config.escrow_wallet, caller, f"claim:{loan.id}"))
    new_loan = replace(
        loan, available_withdrawal=ZERO, total_claimed=loan.total_claimed + amount,
    )
    event = make_event(EVENT_INTEREST_CLAIMED, loan.id, now, lender=caller, amount=amount)
    origin = TransactionOrigin("claim_interest", caller, loan.id)
    return build_transaction(now, moves, LoanStateChange(loan.id, loan, new_loan), origin, [event])
