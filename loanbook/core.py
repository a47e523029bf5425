"""
Core types and pure helpers for the lending ledger.

This module provides the foundational data structures and protocols:
1. Protocols: EligibilityGate, SettlementLedger and EventSink (external collaborators)
2. Enums: LoanStatus (with its transition table) and Role
3. Exceptions: LendingError and the domain-specific error types
4. Immutable data structures: Move, LoanStateChange, LoanEvent,
   PendingTransaction, Transaction, CompanyWallets
5. Canonicalization helpers used to derive deterministic intent ids

Nothing in this module mutates ledger state.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
import hashlib
from typing import (
    Any, Callable, Dict, FrozenSet, Optional, Protocol, Sequence, Tuple,
    runtime_checkable,
)

from .fixed_point import QUANTUM, decimal_context


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved account for issuance of the settlement asset.
# It is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

# Event names (strings, not an enum: they are published to external sinks).
EVENT_LOAN_REQUESTED = "LoanRequested"
EVENT_LOAN_APPROVED = "LoanApproved"
EVENT_LOAN_CONFIRMED = "LoanConfirmed"
EVENT_LOAN_CREATED = "LoanCreated"
EVENT_LOAN_FUNDED = "LoanFunded"
EVENT_PAYMENT_MADE = "PaymentMade"
EVENT_LATE_FEE_APPLIED = "LateFeeApplied"
EVENT_LOAN_COMPLETED = "LoanCompleted"
EVENT_INTEREST_CLAIMED = "InterestClaimed"
EVENT_FEE_COLLECTED = "FeeCollected"


# ============================================================================
# ENUMS
# ============================================================================

class Role(Enum):
    """Eligibility role consulted by the gate."""
    BORROWER = "borrower"
    LENDER = "lender"


class LoanStatus(Enum):
    """
    Lifecycle status of a loan.

    Two entry points converge on funding:

        REQUESTED -> APPROVED -> CONFIRMED -> ACTIVE -> COMPLETED
        (direct creation) ---> PENDING ----> ACTIVE

    COMPLETED is terminal. ACTIVE and COMPLETED admit self-transitions
    (installments that do not finish the loan, lender claims).
    """
    REQUESTED = "requested"
    APPROVED = "approved"
    CONFIRMED = "confirmed"
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"

    @property
    def is_fundable(self) -> bool:
        return self in (LoanStatus.CONFIRMED, LoanStatus.PENDING)

    @property
    def is_terminal(self) -> bool:
        return not LOAN_TRANSITIONS[self] - {self}

    @staticmethod
    def can_transition(old: Optional['LoanStatus'], new: 'LoanStatus') -> bool:
        """Return True if old -> new is an edge of the lifecycle graph."""
        return new in LOAN_TRANSITIONS[old]

    @staticmethod
    def check_transition(old: Optional['LoanStatus'], new: 'LoanStatus') -> None:
        """
        Raise InvalidTransition unless old -> new is an edge of the lifecycle graph.

        old is None for the creation of a new loan record.
        """
        if not LoanStatus.can_transition(old, new):
            old_name = old.value if old is not None else "none"
            raise InvalidTransition(f"Loan status cannot move from {old_name} to {new.value}")


# Closed transition table; None is the "no record yet" state.
LOAN_TRANSITIONS: Dict[Optional[LoanStatus], FrozenSet[LoanStatus]] = {
    None: frozenset({LoanStatus.REQUESTED, LoanStatus.PENDING}),
    LoanStatus.REQUESTED: frozenset({LoanStatus.APPROVED}),
    LoanStatus.APPROVED: frozenset({LoanStatus.CONFIRMED}),
    LoanStatus.CONFIRMED: frozenset({LoanStatus.ACTIVE}),
    LoanStatus.PENDING: frozenset({LoanStatus.ACTIVE}),
    LoanStatus.ACTIVE: frozenset({LoanStatus.ACTIVE, LoanStatus.COMPLETED}),
    LoanStatus.COMPLETED: frozenset({LoanStatus.COMPLETED}),
}


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LendingError(Exception):
    """Base exception for all lending ledger errors."""
    pass


class NotWhitelisted(LendingError):
    """Raised when an account is not eligible for the role an operation requires."""
    pass


class NotLoanLender(NotWhitelisted):
    """Raised when someone other than the loan's recorded lender acts as its lender."""
    pass


class NotLoanBorrower(NotWhitelisted):
    """Raised when someone other than the loan's borrower acts as its borrower."""
    pass


class InvalidAmount(LendingError):
    """Raised when a principal is outside the configured window or above the approved ceiling."""
    pass


class InvalidDuration(LendingError):
    """Raised when a term is outside the configured [min, max] number of periods."""
    pass


class InvalidTransition(LendingError):
    """Raised when an operation would move a loan along an edge not in the lifecycle graph."""
    pass


class LoanNotPending(InvalidTransition):
    """Raised when funding a loan that is neither CONFIRMED nor PENDING."""
    pass


class LoanNotActive(InvalidTransition):
    """Raised when paying a loan that is not ACTIVE."""
    pass


class LoanNotFound(LendingError):
    """Raised when a loan id has never been assigned."""
    pass


class PaymentNotDue(LendingError):
    """Raised when make_payment is called before the next installment window opens."""
    pass


class NoInterestToClaim(LendingError):
    """Raised when the lender claims a loan with nothing available to withdraw."""
    pass


class EnforcedPause(LendingError):
    """Raised when a mutating operation is attempted while the book is paused."""
    pass


class Unauthorized(LendingError):
    """Raised when a caller without administrative authority attempts an owner operation."""
    pass


class SelfFunding(LendingError):
    """Raised when a borrower attempts to fund their own loan."""
    pass


class ConfigurationError(LendingError):
    """Raised when configuration is invalid or missing."""
    pass


class SettlementError(LendingError):
    """Base class for failures reported by the settlement ledger."""
    pass


class InsufficientBalance(SettlementError):
    """Raised when a transfer would take an account's balance below zero."""
    pass


class InsufficientAuthorization(SettlementError):
    """Raised when the operator's allowance over the source account does not cover a transfer."""
    pass


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of the settlement asset between two accounts.

    Attributes:
        quantity: The amount to transfer (finite, positive, 18 fractional digits).
        source: Account debited.
        dest: Account credited.
        memo: What the move is for, e.g. "origination_fee:7".
    """
    quantity: Decimal
    source: str
    dest: str
    memo: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.memo or not self.memo.strip():
            raise ValueError("Move memo cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity)}")
        if self.quantity.is_infinite() or self.quantity.is_nan():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if self.quantity < QUANTUM:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity}: {self.source}→{self.dest} [{self.memo}])"


@dataclass(frozen=True, slots=True)
class CompanyWallets:
    """Accounts that receive the platform's fees."""
    fee_wallet: str
    insurance_wallet: str
    matching_wallet: str

    def __post_init__(self):
        wallets = (self.fee_wallet, self.insurance_wallet, self.matching_wallet)
        if any(not w or not w.strip() for w in wallets):
            raise ConfigurationError("Company wallets cannot be empty")


@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of who asked for a transaction and through which operation.

    Attributes:
        operation: Public operation name (e.g. "make_payment")
        caller: Account that invoked the operation
        loan_id: Loan the operation acted on
    """
    operation: str
    caller: str
    loan_id: Optional[int] = None

    def __repr__(self) -> str:
        loan = f", loan={self.loan_id}" if self.loan_id is not None else ""
        return f"Origin({self.operation}:{self.caller}{loan})"


@dataclass(frozen=True, slots=True)
class LoanStateChange:
    """
    Before/after snapshot of a loan record.

    old is None when the transaction creates the loan.
    """
    loan_id: int
    old: Any
    new: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """
        Compute fields that differ between old and new record.

        Returns:
            Dict mapping field name to (old_value, new_value) tuples.
        """
        changes = {}
        for f in fields(self.new):
            old_val = getattr(self.old, f.name) if self.old is not None else None
            new_val = getattr(self.new, f.name)
            if old_val != new_val:
                changes[f.name] = (old_val, new_val)
        return changes


@dataclass(frozen=True, slots=True)
class LoanEvent:
    """
    Immutable notification published after a successful operation.

    Attributes:
        name: Event name (one of the EVENT_* constants)
        loan_id: Loan the event refers to
        timestamp: Logical time of the operation
        params: Event data as a frozen tuple of (key, value) pairs
    """
    name: str
    loan_id: int
    timestamp: datetime
    params: tuple = ()

    @property
    def params_dict(self) -> Dict[str, Any]:
        return dict(self.params)

    def __repr__(self) -> str:
        args = ", ".join(f"{k}={v}" for k, v in self.params)
        return f"{self.name}(loan={self.loan_id}, {args})"


def make_event(name: str, loan_id: int, timestamp: datetime, **params: Any) -> LoanEvent:
    """Build a LoanEvent with params frozen in keyword order."""
    return LoanEvent(name=name, loan_id=loan_id, timestamp=timestamp, params=tuple(params.items()))


# ============================================================================
# CANONICALIZATION
# ============================================================================

def _normalize_decimal(d: Decimal) -> str:
    """
    Normalize a Decimal to a canonical string representation.

    Decimal("1.0") and Decimal("1.00") both become "1".
    """
    with decimal_context():
        normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Independent of dict insertion order and of Decimal representation.
    Dataclass records (loans) are serialized field by field.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return f"D:{_normalize_decimal(value)}"
    if isinstance(value, int):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if isinstance(value, Enum):
        return f"E:{type(value).__name__}.{value.name}"
    if is_dataclass(value) and not isinstance(value, type):
        serialized = ",".join(
            f"{f.name}:{_canonicalize(getattr(value, f.name))}" for f in fields(value)
        )
        return f"{type(value).__name__}{{{serialized}}}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    return f"R:{repr(value)}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_change: Optional[LoanStateChange],
    origin: TransactionOrigin,
    timestamp: datetime,
) -> str:
    """
    Compute a deterministic content hash for a transaction's intent.

    Same inputs always produce the same intent_id, across processes and platforms.
    """
    content_parts = [
        f"origin:{origin.operation}:{origin.caller}:{origin.loan_id}",
        f"time:{timestamp.isoformat()}",
    ]
    for m in moves:
        content_parts.append(f"move:{_normalize_decimal(m.quantity)}|{m.source}|{m.dest}|{m.memo}")
    if state_change is not None:
        content_parts.append(
            f"state_change:{state_change.loan_id}|"
            f"{_canonicalize(state_change.old)}|{_canonicalize(state_change.new)}"
        )
    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


# ============================================================================
# TRANSACTIONS
# ============================================================================

@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A loan operation before execution - represents INTENT.

    Built by the pure compute_* functions in loanbook.loan and handed to
    LoanBook.execute(), which moves the funds, commits the new loan record
    and publishes the events, all or nothing.

    Attributes:
        moves: Settlement transfers, executed as one atomic batch
        state_change: Loan record before and after
        events: Notifications to publish once applied
        origin: Who/what created this transaction
        timestamp: Logical time at which it was built
        intent_id: Content-addressable hash (auto-computed)
    """
    moves: Tuple[Move, ...]
    state_change: Optional[LoanStateChange]
    events: Tuple[LoanEvent, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(
                self.moves, self.state_change, self.origin, self.timestamp
            )
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """Return True if there is nothing to move and nothing to change."""
        return not self.moves and self.state_change is None

    @property
    def total_moved(self) -> Decimal:
        with decimal_context():
            return sum((m.quantity for m in self.moves), Decimal(0))

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {len(self.events)} events, {self.origin})"


def build_transaction(
    timestamp: datetime,
    moves: Sequence[Move],
    state_change: Optional[LoanStateChange],
    origin: TransactionOrigin,
    events: Sequence[LoanEvent] = (),
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves, a loan state change and events.

    This is the standard way to create transactions.

    Example:
        moves = [Move(fee, borrower, wallets.fee_wallet, f"origination_fee:{loan.id}")]
        change = LoanStateChange(loan.id, old=loan, new=confirmed)
        return build_transaction(now, moves, change, origin, events)
    """
    return PendingTransaction(
        moves=tuple(moves),
        state_change=state_change,
        events=tuple(events),
        origin=origin,
        timestamp=timestamp,
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of a loan operation - represents FACT.

    Attributes:
        moves: Settlement transfers that were applied
        state_change: Loan record before and after
        events: Events that were published
        origin: Who/what created this transaction
        timestamp: Logical time of execution
        intent_id: Content hash from the PendingTransaction
        exec_id: Unique execution identifier (book + sequence)
        book_name: Name of the book that executed it
        sequence_number: Monotonic sequence within the book
    """
    moves: Tuple[Move, ...]
    state_change: Optional[LoanStateChange]
    events: Tuple[LoanEvent, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    book_name: str
    sequence_number: int

    def __post_init__(self):
        if not self.moves and self.state_change is None:
            raise ValueError("Transaction must have moves or a state change")

    @property
    def loan_id(self) -> Optional[int]:
        if self.state_change is not None:
            return self.state_change.loan_id
        return self.origin.loan_id

    def __repr__(self) -> str:
        lines = [
            f"Transaction {self.exec_id} ({self.origin}) at {self.timestamp}",
            f"  intent_id: {self.intent_id}",
        ]
        for i, move in enumerate(self.moves):
            lines.append(f"  [{i}] {move.quantity}: {move.source} → {move.dest} ({move.memo})")
        if self.state_change is not None:
            for name, (old_val, new_val) in self.state_change.changed_fields().items():
                lines.append(f"  {name}: {old_val!r} → {new_val!r}")
        for event in self.events:
            lines.append(f"  event {event!r}")
        return "\n".join(lines)


# ============================================================================
# PROTOCOLS (external collaborators)
# ============================================================================

@runtime_checkable
class EligibilityGate(Protocol):
    """
    Membership predicate consulted before every borrower/lender operation.

    The gate is mutated elsewhere (by the administrative surface); the book only reads it.
    """

    def is_eligible(self, account: str, role: Role) -> bool:
        """Return True if account may act in the given role."""
        ...


@runtime_checkable
class SettlementLedger(Protocol):
    """
    Value-transfer primitive for the settlement asset.

    Implementations must apply a batch of moves atomically: either every move
    is applied or none is, and the failure is reported as InsufficientBalance
    or InsufficientAuthorization.
    """

    def transfer(self, source: str, dest: str, amount: Decimal, operator: str) -> None:
        """Move amount from source to dest on behalf of operator."""
        ...

    def execute(self, moves: Sequence[Move], operator: str) -> None:
        """Apply all moves atomically on behalf of operator."""
        ...

    def get_balance(self, account: str) -> Decimal:
        """Return the account's balance (zero if never seen)."""
        ...


# Anything callable with a LoanEvent can receive notifications.
EventSink = Callable[[LoanEvent], None]
