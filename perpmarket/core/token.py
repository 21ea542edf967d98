"""Fungible collateral token ledger.

Balances are ints in 1e18 fixed point keyed by account name. Only accounts
holding the minter role (markets) may mint or burn. ``atomic()`` lets a caller
group several movements so that a shortfall in any of them leaves every
balance untouched.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from .errors import AuthorizationError, ErrorCode, InputValidationError, InsufficientBalanceError


class Token:
    def __init__(self, symbol: str = "OVL") -> None:
        self.symbol = symbol
        self._balances: dict[str, int] = {}
        self._total_supply = 0
        self._minters: set[str] = set()

    # -- views ---------------------------------------------------------------

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def is_minter(self, account: str) -> bool:
        return account in self._minters

    # -- roles ---------------------------------------------------------------

    def grant_minter(self, account: str) -> None:
        self._minters.add(account)

    def revoke_minter(self, account: str) -> None:
        self._minters.discard(account)

    # -- movements -----------------------------------------------------------

    def _debit(self, account: str, amount: int) -> None:
        bal = self.balance_of(account)
        if amount > bal:
            raise InsufficientBalanceError(
                ErrorCode.INSUFFICIENT_BALANCE, f"{account} has {bal}, needs {amount}"
            )
        self._balances[account] = bal - amount

    def _credit(self, account: str, amount: int) -> None:
        self._balances[account] = self.balance_of(account) + amount

    def transfer(self, sender: str, to: str, amount: int) -> None:
        if amount < 0:
            raise InputValidationError(ErrorCode.NEGATIVE_AMOUNT, f"{amount}")
        self._debit(sender, amount)
        self._credit(to, amount)

    def mint(self, caller: str, to: str, amount: int) -> None:
        if amount < 0:
            raise InputValidationError(ErrorCode.NEGATIVE_AMOUNT, f"{amount}")
        if caller not in self._minters:
            raise AuthorizationError(ErrorCode.NOT_MINTER, caller)
        self._credit(to, amount)
        self._total_supply += amount

    def burn(self, caller: str, owner: str, amount: int) -> None:
        if amount < 0:
            raise InputValidationError(ErrorCode.NEGATIVE_AMOUNT, f"{amount}")
        if caller not in self._minters:
            raise AuthorizationError(ErrorCode.NOT_MINTER, caller)
        self._debit(owner, amount)
        self._total_supply -= amount

    def faucet(self, to: str, amount: int) -> None:
        """Issue new supply outside the minter role (genesis allocation)."""
        self._credit(to, amount)
        self._total_supply += amount

    @contextmanager
    def atomic(self) -> Iterator[Token]:
        """Restore all balances if the block raises."""
        balances = dict(self._balances)
        supply = self._total_supply
        try:
            yield self
        except BaseException:
            self._balances = balances
            self._total_supply = supply
            raise
