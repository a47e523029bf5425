"""
admin.py - Ownership, pause switch and company wallets

Administrative authority over a loan book. Every mutating method is
restricted to the current owner.
"""

from __future__ import annotations
from typing import Optional

from .core import CompanyWallets, ConfigurationError, Unauthorized
from .logging import get_logger

logger = get_logger(__name__)


class Administration:
    """Single-owner authority with a pause switch and fee wallet registry."""

    def __init__(self, owner: str, company_wallets: Optional[CompanyWallets] = None):
        if not owner or not owner.strip():
            raise ConfigurationError("owner cannot be empty")
        self._owner = owner
        self._paused = False
        self._wallets: Optional[CompanyWallets] = None
        if company_wallets is not None:
            self._set_wallets(company_wallets)

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def company_wallets(self) -> CompanyWallets:
        """
        Raises:
            ConfigurationError: if the wallets were never configured
        """
        if self._wallets is None:
            raise ConfigurationError("Company wallets are not configured")
        return self._wallets

    def is_owner(self, account: str) -> bool:
        return account == self._owner

    def require_owner(self, caller: str) -> None:
        if caller != self._owner:
            raise Unauthorized(f"{caller} is not the owner")

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self.require_owner(caller)
        if not new_owner or not new_owner.strip():
            raise ConfigurationError("new owner cannot be empty")
        logger.info("ownership transferred from %s to %s", self._owner, new_owner)
        self._owner = new_owner

    def pause(self, caller: str) -> None:
        self.require_owner(caller)
        self._paused = True
        logger.warning("paused by %s", caller)

    def unpause(self, caller: str) -> None:
        self.require_owner(caller)
        self._paused = False
        logger.info("unpaused by %s", caller)

    def update_company_wallets(
        self, caller: str, fee_wallet: str, insurance_wallet: str, matching_wallet: str,
    ) -> None:
        self.require_owner(caller)
        self._set_wallets(CompanyWallets(fee_wallet, insurance_wallet, matching_wallet))

    def _set_wallets(self, wallets: CompanyWallets) -> None:
        names = (wallets.fee_wallet, wallets.insurance_wallet, wallets.matching_wallet)
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Company wallets must be distinct, got {names}")
        self._wallets = wallets
        logger.info("company wallets set: fee=%s insurance=%s matching=%s", *names)
