"""
book.py - LoanBook, the stateful aggregate root of the lending ledger

The LoanBook is the only object that mutates loan records. Every public
operation follows the same path:

    1. check the pause switch and the caller's eligibility
    2. build a PendingTransaction with a pure compute_* function (loanbook.loan)
    3. execute(): validate the status transition, move funds through the
       settlement ledger as one atomic batch, commit the new loan record,
       append the audit Transaction and publish the events

If any step raises, nothing is committed: the settlement batch is validated
before it is applied, and the loan record, audit log and events are only
touched after the funds have moved.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from functools import wraps
import threading
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .admin import Administration
from .amortization import Installment, amortization_schedule, calculate_emi
from .arrears import hours_late
from .config import DEFAULT_CONFIG, LendingConfig
from .core import (
    EligibilityGate, EventSink, LoanEvent, LoanStatus, PendingTransaction, Role,
    SettlementLedger, Transaction,
    EnforcedPause, InvalidTransition, LendingError, LoanNotFound, NotWhitelisted,
)
from .fixed_point import ZERO, Numeric, decimal_context, with_decimal_context
from .loan import (
    Loan, PeriodSettlement,
    compute_approval, compute_claim, compute_confirmation, compute_creation,
    compute_funding, compute_payment, compute_request, plan_payment,
)
from .logging import get_logger
from .rates import interest_rate_for

logger = get_logger(__name__)


# ============================================================================
# VIEW RESULTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class LateFeeInfo:
    """Late fees make_payment would charge right now."""
    estimated_late_fee: Decimal
    hours_late: int
    overdue_periods: int


@dataclass(frozen=True, slots=True)
class PaymentQuote:
    """Per-period breakdown and totals of what make_payment would charge right now."""
    loan_id: int
    periods: Tuple[PeriodSettlement, ...]
    total_due: Decimal          # installments + late fees, credited to the lender
    total_late_fee: Decimal
    total_insurance: Decimal

    @property
    def total(self) -> Decimal:
        with decimal_context():
            return self.total_due + self.total_insurance


@dataclass(frozen=True, slots=True)
class LoanStats:
    total_loans: int
    total_volume: Decimal       # principal of every funded loan
    active_loans: int


def _mutating(func):
    """Reject the call while paused; log every rejected operation.

    The operation itself runs in the lending Decimal context.
    """

    @wraps(func)
    def wrapper(self, caller, *args, **kwargs):
        try:
            if self.admin.paused:
                raise EnforcedPause(f"{func.__name__} is disabled while the book is paused")
            with decimal_context():
                return func(self, caller, *args, **kwargs)
        except LendingError as e:
            loan_id = kwargs.get("loan_id")
            if loan_id is None and args and isinstance(args[0], int):
                loan_id = args[0]
            logger.warning(
                "%s rejected (loan=%s, caller=%s): %s: %s",
                func.__name__, loan_id, caller, type(e).__name__, e,
                extra={"extra": {"operation": func.__name__, "loan_id": loan_id,
                                 "caller": caller, "error": type(e).__name__}},
            )
            raise

    return wrapper


class LoanBook:
    """
    Registry of loans and executor of their lifecycle transactions.

    Collaborators are injected: the settlement ledger moves funds, the
    eligibility gate answers whitelist queries, and the administration holds
    ownership, the pause switch and the company wallets.

    Thread Safety:
        Operations on the same loan are serialized by a per-loan lock. Loan id
        allocation is serialized by a book-wide lock. Operations on different
        loans proceed independently.
        Arithmetic runs in the lending Decimal context on the calling thread.

    Time:
        A logical clock starting at initial_time and moved with advance_time(),
        or an injected clock callable.

    Example:
        book = LoanBook("main", token, admin, whitelist, initial_time=datetime(2025, 1, 1))
        loan_id = book.create_loan("alice", "LOAN001", Decimal("10000"), 12)
        book.fund_loan("bob", loan_id)
        book.advance_time(datetime(2025, 1, 31))
        book.make_payment("alice", loan_id)
        book.claim_interest("bob", loan_id)
    """

    def __init__(
        self,
        name: str,
        settlement: SettlementLedger,
        admin: Administration,
        eligibility: EligibilityGate,
        config: Optional[LendingConfig] = None,
        initial_time: Optional[datetime] = None,
        clock: Optional[Callable[[], datetime]] = None,
        event_sinks: Iterable[EventSink] = (),
    ):
        self.name = name
        self.settlement = settlement
        self.admin = admin
        self.eligibility = eligibility
        self.config = config or DEFAULT_CONFIG
        self.loans: Dict[int, Loan] = {}
        self.transaction_log: List[Transaction] = []
        self.events: List[LoanEvent] = []
        self._event_sinks: List[EventSink] = list(event_sinks)
        self._clock = clock
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self._next_loan_id = 1
        self._next_sequence = 0
        self._book_lock = threading.RLock()
        self._loan_locks: Dict[int, threading.RLock] = {}

    # ========================================================================
    # TIME
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        return self._current_time

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the logical clock. Time can only move forward.

        Raises:
            ValueError: if new_time is before the current time, or the book
                        reads an injected clock
        """
        if self._clock is not None:
            raise ValueError("Book time comes from an injected clock")
        if new_time < self._current_time:
            raise ValueError(f"Cannot move time backwards: {new_time} < {self._current_time}")
        self._current_time = new_time

    # ========================================================================
    # EVENTS
    # ========================================================================

    def subscribe(self, sink: EventSink) -> None:
        self._event_sinks.append(sink)

    def _publish(self, events: Iterable[LoanEvent]) -> None:
        for event in events:
            self.events.append(event)
            for sink in self._event_sinks:
                sink(event)

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def _lock_for(self, loan_id: int) -> threading.RLock:
        with self._book_lock:
            return self._loan_locks.setdefault(loan_id, threading.RLock())

    def _require_role(self, account: str, role: Role) -> None:
        if not self.eligibility.is_eligible(account, role):
            raise NotWhitelisted(f"{account} is not whitelisted as {role.value}")

    def _generate_exec_id(self, sequence: int, timestamp: datetime) -> str:
        """Format: exec:{book_name}:{sequence:012d}:{timestamp_micros}"""
        micros = int(timestamp.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    @with_decimal_context
    def execute(self, pending: PendingTransaction) -> Transaction:
        """
        Apply a PendingTransaction atomically.

        Raises:
            InvalidTransition: the status change is not in the lifecycle graph,
                               or the loan changed since the transaction was built
            SettlementError: the settlement ledger rejected the moves
        """
        change = pending.state_change
        if change is not None:
            old_status = change.old.status if change.old is not None else None
            LoanStatus.check_transition(old_status, change.new.status)
            current = self.loans.get(change.loan_id)
            if current != change.old:
                raise InvalidTransition(
                    f"Loan {change.loan_id} changed since the transaction was built"
                )

        self.settlement.execute(pending.moves, operator=self.config.escrow_wallet)

        if change is not None:
            self.loans[change.loan_id] = change.new

        with self._book_lock:
            sequence = self._next_sequence
            self._next_sequence += 1
            tx = Transaction(
                moves=pending.moves,
                state_change=change,
                events=pending.events,
                origin=pending.origin,
                timestamp=pending.timestamp,
                intent_id=pending.intent_id,
                exec_id=self._generate_exec_id(sequence, pending.timestamp),
                book_name=self.name,
                sequence_number=sequence,
            )
            self.transaction_log.append(tx)

        logger.info(
            "%s applied (loan=%s, caller=%s, moves=%d, total=%s)",
            pending.origin.operation, pending.origin.loan_id, pending.origin.caller,
            len(pending.moves), pending.total_moved,
            extra={"extra": {"operation": pending.origin.operation,
                             "loan_id": pending.origin.loan_id,
                             "intent_id": pending.intent_id}},
        )
        logger.debug("%r", tx)
        self._publish(pending.events)
        return tx

    # ========================================================================
    # LOAN CREATION
    # ========================================================================

    @_mutating
    def request_loan(
        self, caller: str, reference: str, requested_amount: Optional[Numeric] = None,
    ) -> int:
        """Open a loan request. Returns the new loan id."""
        self._require_role(caller, Role.BORROWER)
        with self._book_lock:
            loan_id = self._next_loan_id
            self.execute(compute_request(
                loan_id, caller, reference, self.current_time, requested_amount, self.config,
            ))
            self._next_loan_id += 1
        return loan_id

    @_mutating
    def create_loan(
        self, caller: str, reference: str, amount: Numeric, duration: int,
    ) -> int:
        """Create a loan directly in PENDING state. Returns the new loan id."""
        self._require_role(caller, Role.BORROWER)
        with self._book_lock:
            loan_id = self._next_loan_id
            self.execute(compute_creation(
                loan_id, caller, reference, amount, duration, self.current_time,
                self.admin.company_wallets, self.config,
            ))
            self._next_loan_id += 1
        return loan_id

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    @_mutating
    def approve_loan_request(
        self, caller: str, loan_id: int, max_amount: Numeric, duration: int,
    ) -> Loan:
        self.admin.require_owner(caller)
        with self._lock_for(loan_id):
            loan = self.get_loan(loan_id)
            self.execute(compute_approval(
                loan, caller, max_amount, duration, self.current_time, self.config,
            ))
            return self.loans[loan_id]

    @_mutating
    def confirm_loan(self, caller: str, loan_id: int, amount: Numeric) -> Loan:
        self._require_role(caller, Role.BORROWER)
        with self._lock_for(loan_id):
            loan = self.get_loan(loan_id)
            self.execute(compute_confirmation(
                loan, caller, amount, self.current_time, self.admin.company_wallets, self.config,
            ))
            return self.loans[loan_id]

    @_mutating
    def fund_loan(self, caller: str, loan_id: int) -> Loan:
        self._require_role(caller, Role.LENDER)
        with self._lock_for(loan_id):
            loan = self.get_loan(loan_id)
            self.execute(compute_funding(
                loan, caller, self.current_time, self.admin.company_wallets, self.config,
            ))
            return self.loans[loan_id]

    @_mutating
    def make_payment(self, caller: str, loan_id: int) -> Loan:
        """Settle every installment payable now (on time, early or catch-up)."""
        self._require_role(caller, Role.BORROWER)
        with self._lock_for(loan_id):
            loan = self.get_loan(loan_id)
            pending = compute_payment(
                loan, caller, self.current_time, self.admin.company_wallets, self.config,
            )
            self.execute(pending)
            new_loan = self.loans[loan_id]
            if new_loan.late_fee_accumulated > loan.late_fee_accumulated:
                logger.info(
                    "loan %s: late fees %s over %d missed payment(s)",
                    loan_id, new_loan.late_fee_accumulated - loan.late_fee_accumulated,
                    new_loan.missed_payments - loan.missed_payments,
                )
            return new_loan

    @_mutating
    def claim_interest(self, caller: str, loan_id: int) -> Decimal:
        """Withdraw the lender's balance on a loan. Returns the amount claimed."""
        self._require_role(caller, Role.LENDER)
        with self._lock_for(loan_id):
            loan = self.get_loan(loan_id)
            self.execute(compute_claim(loan, caller, self.current_time, self.config))
            return loan.available_withdrawal

    # ========================================================================
    # VIEWS
    # ========================================================================

    def get_loan(self, loan_id: int) -> Loan:
        try:
            return self.loans[loan_id]
        except KeyError:
            raise LoanNotFound(f"Loan {loan_id} does not exist") from None

    def get_fixed_emi(self, loan_id: int) -> Decimal:
        return self.get_loan(loan_id).fixed_emi

    def get_available_withdrawal(self, loan_id: int) -> Decimal:
        return self.get_loan(loan_id).available_withdrawal

    @with_decimal_context
    def get_late_fee_info(self, loan_id: int) -> LateFeeInfo:
        """
        Late fees make_payment would charge if called now.

        Zero for loans that are not active or not yet overdue.
        """
        loan = self.get_loan(loan_id)
        now = self.current_time
        if not loan.is_active or now <= loan.next_payment_due:
            return LateFeeInfo(ZERO, 0, 0)
        late = [s for s in plan_payment(loan, now, self.config) if s.late_fee > 0]
        return LateFeeInfo(
            estimated_late_fee=sum((s.late_fee for s in late), ZERO),
            hours_late=hours_late(loan.next_payment_due, now),
            overdue_periods=len(late),
        )

    @with_decimal_context
    def quote_payment(self, loan_id: int) -> PaymentQuote:
        """
        Raises:
            LoanNotActive: the loan is not ACTIVE
            PaymentNotDue: the next installment window has not opened
        """
        loan = self.get_loan(loan_id)
        periods = tuple(plan_payment(loan, self.current_time, self.config))
        return PaymentQuote(
            loan_id=loan_id,
            periods=periods,
            total_due=sum((s.due_amount for s in periods), ZERO),
            total_late_fee=sum((s.late_fee for s in periods), ZERO),
            total_insurance=sum((s.insurance_fee for s in periods), ZERO),
        )

    @with_decimal_context
    def get_stats(self) -> LoanStats:
        loans = list(self.loans.values())
        return LoanStats(
            total_loans=len(loans),
            total_volume=sum((l.amount for l in loans if l.is_funded), ZERO),
            active_loans=sum(1 for l in loans if l.is_active),
        )

    def get_loans_by_borrower(self, account: str) -> List[Loan]:
        return [l for _, l in sorted(self.loans.items()) if l.borrower == account]

    def get_loans_by_lender(self, account: str) -> List[Loan]:
        return [l for _, l in sorted(self.loans.items()) if l.lender == account]

    @with_decimal_context
    def get_schedule(self, loan_id: int) -> List[Installment]:
        """Amortization table of a loan; empty until its terms are fixed."""
        loan = self.get_loan(loan_id)
        if loan.fixed_emi <= 0:
            return []
        return amortization_schedule(
            loan.amount, loan.interest_rate, loan.duration, loan.fixed_emi, self.config,
        )

    def get_transactions(self, loan_id: Optional[int] = None) -> List[Transaction]:
        if loan_id is None:
            return list(self.transaction_log)
        return [tx for tx in self.transaction_log if tx.loan_id == loan_id]

    def calculate_emi(self, amount: Numeric, annual_rate_bps: int, duration: int) -> Decimal:
        return calculate_emi(amount, annual_rate_bps, duration, self.config)

    def calculate_interest_rate(self, amount: Numeric) -> int:
        return interest_rate_for(amount, self.config.rate_tiers)
