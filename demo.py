#!/usr/bin/env python3
"""
demo.py - Walkthrough: One Loan From Request to Final Claim

Runs a single loan through every stage of its life and prints the ledger
after each step.

WHAT YOU'LL SEE:
  1-3:  Setup         - Administration, whitelist, settlement asset
  4-6:  Origination   - Request, approval, confirmation (fees move)
  7:    Funding       - Lender pays principal, clock starts
  8-9:  Repayment     - On-time installment, then a late one with a fee
  10:   Catch-up      - Several overdue periods settled in one call
  11:   Withdrawal    - Lender claims everything credited so far

Run:
    python demo.py              # Plain log output
    python demo.py --json       # Structured JSON log lines
    python demo.py --verbose    # Also show settlement batches
"""

from datetime import datetime, timedelta
from decimal import Decimal
import sys

from loanbook import (
    Administration, CompanyWallets, LendingConfig, LoanBook, Role, TokenLedger, Whitelist,
    setup_logging,
)


START = datetime(2025, 1, 1, 9, 0, 0)


def step_header(number: int, title: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}\n")


def show_balances(token: TokenLedger, accounts):
    for account in accounts:
        print(f"  {account:<18} {token.get_balance(account):>14.2f} {token.symbol}")


def show_loan(book: LoanBook, loan_id: int):
    loan = book.get_loan(loan_id)
    print(f"  status:            {loan.status.value}")
    print(f"  amount / rate:     {loan.amount:.2f} @ {loan.interest_rate} bps, {loan.duration} months")
    print(f"  fixed EMI:         {loan.fixed_emi:.6f}")
    print(f"  periods paid:      {loan.periods_paid} (missed {loan.missed_payments})")
    print(f"  principal repaid:  {loan.total_paid:.6f}")
    print(f"  late fees:         {loan.late_fee_accumulated:.6f}")
    print(f"  claimable:         {loan.available_withdrawal:.6f}")
    if loan.next_payment_due is not None:
        print(f"  next payment due:  {loan.next_payment_due}")


def main(argv):
    config = LendingConfig.from_env()
    setup_logging(
        "DEBUG" if "--verbose" in argv else config.log_level,
        format_type="json" if "--json" in argv else "standard",
    )

    step_header(1, "Administration")
    wallets = CompanyWallets("fees", "insurance", "matching")
    admin = Administration("owner", wallets)
    print(f"  owner: {admin.owner}, company wallets: {wallets}")

    step_header(2, "Whitelist")
    whitelist = Whitelist(admin)
    whitelist.add("owner", "alice", Role.BORROWER)
    whitelist.add("owner", "bob", Role.LENDER)
    print(f"  borrowers: {sorted(whitelist.members(Role.BORROWER))}")
    print(f"  lenders:   {sorted(whitelist.members(Role.LENDER))}")

    step_header(3, "Settlement asset")
    token = TokenLedger("USDT")
    token.mint("alice", Decimal("5000"))
    token.mint("bob", Decimal("50000"))
    token.approve("alice", config.escrow_wallet, Decimal("1000000"))
    token.approve("bob", config.escrow_wallet, Decimal("1000000"))
    book = LoanBook("demo", token, admin, whitelist, config=config, initial_time=START)
    accounts = ["alice", "bob", config.escrow_wallet, "fees", "insurance", "matching"]
    show_balances(token, accounts)

    step_header(4, "Borrower requests a loan")
    loan_id = book.request_loan("alice", "INVOICE-2025-001", Decimal("12000"))
    show_loan(book, loan_id)

    step_header(5, "Owner approves up to 15,000 over 6 months")
    book.approve_loan_request("owner", loan_id, Decimal("15000"), 6)
    show_loan(book, loan_id)

    step_header(6, "Borrower confirms 12,000 and pays the origination fee")
    book.confirm_loan("alice", loan_id, Decimal("12000"))
    show_loan(book, loan_id)
    show_balances(token, accounts)

    step_header(7, "Lender funds the loan")
    book.fund_loan("bob", loan_id)
    show_loan(book, loan_id)
    show_balances(token, accounts)
    print("\n  Schedule:")
    for row in book.get_schedule(loan_id):
        print(f"    {row.number:>2}  pay {row.payment:>10.2f}  principal {row.principal:>10.2f}"
              f"  interest {row.interest:>8.2f}  balance {row.balance:>10.2f}")

    step_header(8, "First installment, on time")
    loan = book.get_loan(loan_id)
    book.advance_time(loan.next_payment_due)
    book.make_payment("alice", loan_id)
    show_loan(book, loan_id)

    step_header(9, "Second installment, three days late")
    loan = book.get_loan(loan_id)
    book.advance_time(loan.next_payment_due + timedelta(days=3))
    info = book.get_late_fee_info(loan_id)
    print(f"  estimated late fee: {info.estimated_late_fee:.6f} ({info.hours_late} hours late)")
    book.make_payment("alice", loan_id)
    show_loan(book, loan_id)

    step_header(10, "Borrower goes quiet, then settles two periods at once")
    loan = book.get_loan(loan_id)
    book.advance_time(loan.next_payment_due + config.period_length + timedelta(hours=6))
    quote = book.quote_payment(loan_id)
    print(f"  quote: {len(quote.periods)} periods, {quote.total:.6f} total "
          f"({quote.total_late_fee:.6f} late fees, {quote.total_insurance:.6f} insurance)")
    book.make_payment("alice", loan_id)
    show_loan(book, loan_id)

    step_header(11, "Lender claims")
    claimed = book.claim_interest("bob", loan_id)
    print(f"  claimed: {claimed:.6f}")
    show_balances(token, accounts)

    stats = book.get_stats()
    print(f"\n  {stats.total_loans} loan(s), volume {stats.total_volume:.2f}, "
          f"{stats.active_loans} active, {len(book.get_transactions())} transactions")
    print(f"  conservation holds: {token.verify_conservation(Decimal('55000'))}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
