"""
conftest.py - Shared pytest fixtures for loanbook tests

Provides common fixtures used across unit and functional tests:
- A complete loan book (administration, whitelist, funded settlement ledger)
- A book holding one funded 10,000 / 12-month loan
- Event capture
"""

import pytest
from typing import List

from loanbook import LoanEvent

from tests.helpers import BORROWER, LENDER, LOAN_AMOUNT, LOAN_DURATION, make_book


@pytest.fixture
def events() -> List[LoanEvent]:
    """Events received by the book's sink, in publication order."""
    return []


@pytest.fixture
def book(events):
    return make_book(events=events)


@pytest.fixture
def token(book):
    return book.settlement


@pytest.fixture
def admin(book):
    return book.admin


@pytest.fixture
def whitelist(book):
    return book.eligibility


@pytest.fixture
def funded_loan(book):
    """Id of a 10,000 / 12-month loan created and funded at START."""
    loan_id = book.create_loan(BORROWER, "LOAN001", LOAN_AMOUNT, LOAN_DURATION)
    book.fund_loan(LENDER, loan_id)
    return loan_id
