"""
settlement.py - In-memory settlement asset ledger

TokenLedger holds balances and spending allowances of the single fungible
asset loans are denominated in. It implements the SettlementLedger protocol
consumed by LoanBook:

    - execute(moves, operator) validates a whole batch before applying any of
      it, so a batch either lands completely or not at all
    - transfer(...) is a batch of one
    - an operator may move funds out of an account other than its own only
      within the allowance the account owner granted it

Every applied batch is appended to the ledger's log.
"""

from __future__ import annotations
from collections import defaultdict
from decimal import Decimal
import threading
from typing import Dict, List, Optional, Sequence, Tuple

from .core import (
    Move, SYSTEM_WALLET,
    InsufficientAuthorization, InsufficientBalance, SettlementError,
)
from .fixed_point import ZERO, to_amount, with_decimal_context
from .logging import get_logger

logger = get_logger(__name__)


class TokenLedger:
    """
    Balances and allowances of one settlement asset.

    Implements the SettlementLedger protocol.

    Thread Safety:
        Batch execution, minting and approvals are serialized by an internal lock.
        Balance arithmetic runs in the lending Decimal context on whichever
        thread calls in.

    Example:
        token = TokenLedger("USDT")
        token.mint("alice", Decimal("1000"))
        token.approve("alice", "loanbook", Decimal("1000"))
        token.transfer("alice", "bob", Decimal("10"), operator="loanbook")
    """

    def __init__(self, symbol: str, test_mode: bool = False):
        """
        Args:
            symbol: Asset symbol, used in log messages only
            test_mode: Enable set_balance() (default: False)
        """
        if not symbol or not symbol.strip():
            raise ValueError("symbol cannot be empty")
        self.symbol = symbol
        self.balances: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        self.allowances: Dict[Tuple[str, str], Decimal] = {}
        self.transaction_log: List[Tuple[Move, ...]] = []
        self._test_mode = test_mode
        self._lock = threading.RLock()

    # ========================================================================
    # READ-ONLY
    # ========================================================================

    def get_balance(self, account: str) -> Decimal:
        return self.balances.get(account, ZERO)

    def allowance(self, owner: str, operator: str) -> Decimal:
        return self.allowances.get((owner, operator), ZERO)

    @with_decimal_context
    def total_supply(self) -> Decimal:
        """
        Sum of all balances, system wallet included.

        Accounts are sorted before summation so accumulation order is deterministic.
        """
        return sum((self.balances[a] for a in sorted(self.balances)), ZERO)

    @with_decimal_context
    def circulating_supply(self) -> Decimal:
        """Sum of all balances outside the issuing system wallet."""
        return sum(
            (self.balances[a] for a in sorted(self.balances) if a != SYSTEM_WALLET), ZERO
        )

    @with_decimal_context
    def verify_conservation(self, expected_supply: Optional[Decimal] = None) -> bool:
        """
        Check that no value was created or destroyed.

        Issuance debits the system wallet, so the total supply is always zero.
        With expected_supply, also check the circulating supply against it.
        """
        if self.total_supply() != 0:
            return False
        if expected_supply is not None:
            return self.circulating_supply() == to_amount(expected_supply)
        return True

    # ========================================================================
    # MUTATING
    # ========================================================================

    def mint(self, account: str, amount: Decimal) -> None:
        """Issue amount to account out of the system wallet."""
        amount = to_amount(amount)
        if amount <= 0:
            raise ValueError(f"mint amount must be positive, got {amount}")
        self.execute([Move(amount, SYSTEM_WALLET, account, "mint")], operator=SYSTEM_WALLET)

    def approve(self, owner: str, operator: str, amount: Decimal) -> None:
        """Allow operator to move up to amount out of owner's account (overwrites)."""
        amount = to_amount(amount)
        if amount < 0:
            raise ValueError(f"allowance cannot be negative, got {amount}")
        with self._lock:
            self.allowances[(owner, operator)] = amount

    def set_balance(self, account: str, amount: Decimal) -> None:
        """
        Overwrite a balance directly.

        WARNING: bypasses conservation and is only available in test mode.
        """
        if not self._test_mode:
            raise SettlementError(
                "set_balance() is disabled in production mode. "
                "Use mint() and transfer() to modify balances. "
                "Set test_mode=True when creating TokenLedger for testing."
            )
        with self._lock:
            self.balances[account] = to_amount(amount)

    def transfer(self, source: str, dest: str, amount: Decimal, operator: str) -> None:
        """Move amount from source to dest on behalf of operator."""
        self.execute([Move(to_amount(amount), source, dest, "transfer")], operator)

    @with_decimal_context
    def execute(self, moves: Sequence[Move], operator: str) -> None:
        """
        Apply all moves atomically on behalf of operator.

        The batch is validated against the net balance change of every account
        and against the operator's allowances before anything is applied.

        Raises:
            InsufficientBalance: an account would go negative
            InsufficientAuthorization: an allowance does not cover the batch
        """
        moves = tuple(moves)
        if not moves:
            return
        with self._lock:
            self._validate(moves, operator)
            for move in moves:
                self.balances[move.source] -= move.quantity
                self.balances[move.dest] += move.quantity
                if move.source != operator and move.source != SYSTEM_WALLET:
                    key = (move.source, operator)
                    self.allowances[key] = self.allowances[key] - move.quantity
            self.transaction_log.append(moves)
        logger.debug("%s: applied %d moves for %s", self.symbol, len(moves), operator)

    @with_decimal_context
    def _validate(self, moves: Tuple[Move, ...], operator: str) -> None:
        net: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        spent: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for move in moves:
            net[move.source] -= move.quantity
            net[move.dest] += move.quantity
            if move.source != operator and move.source != SYSTEM_WALLET:
                spent[move.source] += move.quantity

        for account, total in spent.items():
            granted = self.allowance(account, operator)
            if total > granted:
                raise InsufficientAuthorization(
                    f"{operator} may move {granted} {self.symbol} from {account}, needs {total}"
                )

        # SYSTEM_WALLET is exempt from balance validation
        for account, delta in net.items():
            if account == SYSTEM_WALLET:
                continue
            proposed = self.get_balance(account) + delta
            if proposed < 0:
                raise InsufficientBalance(
                    f"{account} {self.symbol}: balance {self.get_balance(account)} "
                    f"cannot cover {-delta}"
                )
