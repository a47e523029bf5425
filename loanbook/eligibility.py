"""
eligibility.py - In-memory borrower/lender whitelist

Implements the EligibilityGate protocol. Membership is per role; an account
may be whitelisted as a borrower, a lender, or both. Changes are restricted
to the administrator.
"""

from __future__ import annotations
import threading
from typing import Dict, Iterable, Optional, Set

from .admin import Administration
from .core import Role
from .logging import get_logger

logger = get_logger(__name__)


def _roles(role: Optional[Role]) -> Iterable[Role]:
    return tuple(Role) if role is None else (role,)


class Whitelist:
    """
    Role-based membership registry.

    Example:
        admin = Administration(owner="owner")
        whitelist = Whitelist(admin)
        whitelist.add("owner", "alice", Role.BORROWER)
        whitelist.add("owner", "bob")              # both roles
        whitelist.is_eligible("alice", Role.LENDER)  # False
    """

    def __init__(self, admin: Administration):
        self._admin = admin
        self._members: Dict[Role, Set[str]] = {role: set() for role in Role}
        self._lock = threading.Lock()

    def is_eligible(self, account: str, role: Role) -> bool:
        return account in self._members[role]

    def members(self, role: Role) -> Set[str]:
        return set(self._members[role])

    def add(self, caller: str, account: str, role: Optional[Role] = None) -> None:
        """Whitelist account for role (both roles when role is None)."""
        self._admin.require_owner(caller)
        if not account or not account.strip():
            raise ValueError("account cannot be empty")
        with self._lock:
            for r in _roles(role):
                self._members[r].add(account)
        logger.info("whitelisted %s as %s", account, role.value if role else "borrower+lender")

    def remove(self, caller: str, account: str, role: Optional[Role] = None) -> None:
        """Remove account from role (both roles when role is None). Unknown accounts are ignored."""
        self._admin.require_owner(caller)
        with self._lock:
            for r in _roles(role):
                self._members[r].discard(account)
        logger.info("removed %s from %s", account, role.value if role else "borrower+lender")
