"""
loanbook - Peer-to-Peer Lending Ledger

Fixed-term, fixed-installment loans between whitelisted borrowers and
lenders, settled in a single fungible asset.

Usage:
    from datetime import datetime
    from decimal import Decimal
    from loanbook import (
        Administration, CompanyWallets, LoanBook, Role, TokenLedger, Whitelist,
    )

    admin = Administration("owner", CompanyWallets("fees", "insurance", "matching"))
    whitelist = Whitelist(admin)
    whitelist.add("owner", "alice", Role.BORROWER)
    whitelist.add("owner", "bob", Role.LENDER)

    token = TokenLedger("USDT")
    token.mint("alice", Decimal("5000"))
    token.mint("bob", Decimal("20000"))
    token.approve("alice", "loanbook", Decimal("20000"))
    token.approve("bob", "loanbook", Decimal("20000"))

    book = LoanBook("main", token, admin, whitelist, initial_time=datetime(2025, 1, 1))
    loan_id = book.create_loan("alice", "LOAN001", Decimal("10000"), 12)
    book.fund_loan("bob", loan_id)

    book.advance_time(datetime(2025, 1, 31))
    book.make_payment("alice", loan_id)
    claimed = book.claim_interest("bob", loan_id)
"""

# Core types
from .core import (
    EligibilityGate,
    SettlementLedger,
    EventSink,
    LoanStatus,
    Role,
    Move,
    CompanyWallets,
    LoanEvent,
    LoanStateChange,
    TransactionOrigin,
    PendingTransaction,
    Transaction,
    build_transaction,
    SYSTEM_WALLET,
    LendingError,
    NotWhitelisted,
    NotLoanLender,
    NotLoanBorrower,
    InvalidAmount,
    InvalidDuration,
    InvalidTransition,
    LoanNotPending,
    LoanNotActive,
    LoanNotFound,
    PaymentNotDue,
    NoInterestToClaim,
    EnforcedPause,
    Unauthorized,
    SelfFunding,
    ConfigurationError,
    SettlementError,
    InsufficientBalance,
    InsufficientAuthorization,
    EVENT_LOAN_REQUESTED,
    EVENT_LOAN_APPROVED,
    EVENT_LOAN_CONFIRMED,
    EVENT_LOAN_CREATED,
    EVENT_LOAN_FUNDED,
    EVENT_PAYMENT_MADE,
    EVENT_LATE_FEE_APPLIED,
    EVENT_LOAN_COMPLETED,
    EVENT_INTEREST_CLAIMED,
    EVENT_FEE_COLLECTED,
)

# Fixed-point arithmetic
from .fixed_point import QUANTUM, decimal_context, to_amount, to_units, from_units

# Configuration
from .config import LendingConfig, DEFAULT_CONFIG

# Pure calculators
from .rates import RateTier, DEFAULT_RATE_TIERS, interest_rate_for
from .amortization import (
    Installment,
    calculate_emi,
    split_installment,
    amortization_schedule,
)
from .arrears import LateFee, calculate_late_fee, hours_late

# Loan record and step functions
from .loan import (
    Loan,
    PeriodSettlement,
    count_due_periods,
    settle_period,
    plan_payment,
)

# Collaborators
from .admin import Administration
from .eligibility import Whitelist
from .settlement import TokenLedger

# Aggregate root
from .book import LoanBook, LateFeeInfo, PaymentQuote, LoanStats

# Logging
from .logging import setup_logging, get_logger

__all__ = [
    # Core
    'EligibilityGate', 'SettlementLedger', 'EventSink',
    'LoanStatus', 'Role', 'Move', 'CompanyWallets', 'LoanEvent', 'LoanStateChange',
    'TransactionOrigin', 'PendingTransaction', 'Transaction', 'build_transaction',
    'SYSTEM_WALLET',
    # Errors
    'LendingError', 'NotWhitelisted', 'NotLoanLender', 'NotLoanBorrower',
    'InvalidAmount', 'InvalidDuration', 'InvalidTransition', 'LoanNotPending',
    'LoanNotActive', 'LoanNotFound', 'PaymentNotDue', 'NoInterestToClaim',
    'EnforcedPause', 'Unauthorized', 'SelfFunding', 'ConfigurationError',
    'SettlementError', 'InsufficientBalance', 'InsufficientAuthorization',
    # Events
    'EVENT_LOAN_REQUESTED', 'EVENT_LOAN_APPROVED', 'EVENT_LOAN_CONFIRMED',
    'EVENT_LOAN_CREATED', 'EVENT_LOAN_FUNDED', 'EVENT_PAYMENT_MADE',
    'EVENT_LATE_FEE_APPLIED', 'EVENT_LOAN_COMPLETED', 'EVENT_INTEREST_CLAIMED',
    'EVENT_FEE_COLLECTED',
    # Fixed point
    'QUANTUM', 'decimal_context', 'to_amount', 'to_units', 'from_units',
    # Config
    'LendingConfig', 'DEFAULT_CONFIG',
    # Calculators
    'RateTier', 'DEFAULT_RATE_TIERS', 'interest_rate_for',
    'Installment', 'calculate_emi', 'split_installment', 'amortization_schedule',
    'LateFee', 'calculate_late_fee', 'hours_late',
    # Loan
    'Loan', 'PeriodSettlement', 'count_due_periods', 'settle_period', 'plan_payment',
    # Collaborators
    'Administration', 'Whitelist', 'TokenLedger',
    # Book
    'LoanBook', 'LateFeeInfo', 'PaymentQuote', 'LoanStats',
    # Logging
    'setup_logging', 'get_logger',
]
