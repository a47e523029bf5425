"""
helpers.py - Constants and builders shared by the loanbook test suite
"""

from datetime import datetime, timedelta
from decimal import Decimal
import threading
from typing import Callable, Dict, List, Optional, TypeVar

from loanbook import (
    Administration, CompanyWallets, LendingConfig, Loan, LoanBook, LoanEvent,
    LoanStatus, Role, TokenLedger, Whitelist, calculate_emi,
)


START = datetime(2025, 1, 1)
PERIOD = timedelta(days=30)
HOUR = timedelta(hours=1)

OWNER = "owner"
BORROWER = "alice"
LENDER = "bob"
OTHER_LENDER = "carol"
OUTSIDER = "mallory"

FEE_WALLET = "fee_wallet"
INSURANCE_WALLET = "insurance_wallet"
MATCHING_WALLET = "matching_wallet"
ESCROW = "loanbook"

LOAN_AMOUNT = Decimal("10000")
LOAN_DURATION = 12

BORROWER_FUNDS = Decimal("50000")
LENDER_FUNDS = Decimal("200000")
UNLIMITED = Decimal("1000000000")

T = TypeVar("T")


def make_active_loan(
    amount: Decimal = LOAN_AMOUNT,
    rate_bps: int = 1200,
    duration: int = LOAN_DURATION,
    funded_at: datetime = START,
) -> Loan:
    """Build an ACTIVE loan record directly, without a book."""
    return Loan(
        id=1,
        borrower=BORROWER,
        reference="LOAN001",
        status=LoanStatus.ACTIVE,
        created_at=funded_at,
        requested_amount=amount,
        approved_max_amount=amount,
        amount=amount,
        interest_rate=rate_bps,
        duration=duration,
        fixed_emi=calculate_emi(amount, rate_bps, duration),
        lender=LENDER,
        funded_at=funded_at,
        next_payment_due=funded_at + PERIOD,
    )


def make_book(
    borrower_funds: Decimal = BORROWER_FUNDS,
    lender_funds: Decimal = LENDER_FUNDS,
    events: Optional[List[LoanEvent]] = None,
    test_mode: bool = False,
) -> LoanBook:
    """
    Build a complete book: owner-administered, company wallets configured,
    BORROWER whitelisted as borrower, LENDER and OTHER_LENDER as lenders,
    everyone funded and the escrow approved to spend on their behalf.
    """
    admin = Administration(OWNER, CompanyWallets(FEE_WALLET, INSURANCE_WALLET, MATCHING_WALLET))
    whitelist = Whitelist(admin)
    whitelist.add(OWNER, BORROWER, Role.BORROWER)
    whitelist.add(OWNER, LENDER, Role.LENDER)
    whitelist.add(OWNER, OTHER_LENDER, Role.LENDER)

    token = TokenLedger("USDT", test_mode=test_mode)
    token.mint(BORROWER, borrower_funds)
    token.mint(LENDER, lender_funds)
    token.mint(OTHER_LENDER, lender_funds)
    for account in (BORROWER, LENDER, OTHER_LENDER):
        token.approve(account, ESCROW, UNLIMITED)

    sinks = [events.append] if events is not None else []
    return LoanBook(
        "test", token, admin, whitelist,
        config=LendingConfig(),
        initial_time=START,
        event_sinks=sinks,
    )


def snapshot(book: LoanBook) -> Dict[str, object]:
    """Everything an operation could touch, for before/after comparisons."""
    token = book.settlement
    return {
        "balances": dict(token.balances),
        "allowances": dict(token.allowances),
        "loans": dict(book.loans),
        "transactions": len(book.transaction_log),
        "events": len(book.events),
        "settlement_log": len(token.transaction_log),
    }


def run_in_thread(func: Callable[[], T]) -> T:
    """Call func on a fresh worker thread; return its result or re-raise its error."""
    outcome: Dict[str, object] = {}

    def target():
        try:
            outcome["result"] = func()
        except Exception as exc:
            outcome["error"] = exc

    worker = threading.Thread(target=target)
    worker.start()
    worker.join()
    if "error" in outcome:
        raise outcome["error"]
    return outcome["result"]
