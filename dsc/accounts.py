"""
accounts.py - Collateral and debt bookkeeping

CollateralLedger and DebtLedger record what each account has deposited and
minted. They hold no tokens themselves: the engine pairs every ledger change
with a transfer through its AssetTransferPort.

Accounts are implicit. An account exists once it holds a non-zero balance and
disappears again when every balance returns to zero.

Rollback uses a Journal: while one is attached, each mutation first records
the previous value of the entry it touches, and Journal.rollback() restores
those values newest-first.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Callable, Dict, FrozenSet, Iterator, List, Optional, Set, Tuple

from .core import CollateralBalances, ValidationError, StateUnderflow


class Journal:
    """Undo log for one engine operation."""

    def __init__(self):
        self._undo: List[Callable[[], None]] = []

    def __len__(self) -> int:
        return len(self._undo)

    def record(self, undo: Callable[[], None]) -> None:
        self._undo.append(undo)

    def rollback(self) -> None:
        """Restore every recorded entry, newest first, and clear the log."""
        while self._undo:
            self._undo.pop()()


class _JournaledLedger:
    """Shared journal attachment for the two ledgers."""

    def __init__(self):
        self._journal: Optional[Journal] = None

    @contextmanager
    def recording(self, journal: Journal) -> Iterator[Journal]:
        """Attach journal for the duration of the block."""
        if self._journal is not None:
            raise RuntimeError(f"{type(self).__name__} is already recording")
        self._journal = journal
        try:
            yield journal
        finally:
            self._journal = None


# ============================================================================
# COLLATERAL
# ============================================================================

class CollateralLedger(_JournaledLedger):
    """
    Per-account, per-asset deposited collateral.

    The supported asset set is fixed at construction; every other asset is
    rejected with ValidationError.
    """

    def __init__(self, supported_assets: Tuple[str, ...]):
        super().__init__()
        if not supported_assets:
            raise ValidationError("at least one collateral asset is required")
        if len(set(supported_assets)) != len(supported_assets):
            raise ValidationError(f"duplicate collateral assets: {list(supported_assets)}")
        self.supported_assets: Tuple[str, ...] = tuple(supported_assets)
        self._supported: FrozenSet[str] = frozenset(supported_assets)
        self._balances: Dict[str, Dict[str, int]] = {}

    def require_supported(self, asset: str) -> None:
        if asset not in self._supported:
            raise ValidationError(f"token not allowed: {asset}")

    def balance(self, account: str, asset: str) -> int:
        self.require_supported(asset)
        return self._balances.get(account, {}).get(asset, 0)

    def holdings(self, account: str) -> CollateralBalances:
        """Every supported asset mapped to the account's balance, zeros included."""
        held = self._balances.get(account, {})
        return {asset: held.get(asset, 0) for asset in self.supported_assets}

    def accounts(self) -> Set[str]:
        """Accounts with at least one non-zero balance."""
        return set(self._balances)

    def total(self, asset: str) -> int:
        """Sum of all accounts' deposits of one asset."""
        self.require_supported(asset)
        return sum(held.get(asset, 0) for held in self._balances.values())

    def deposit(self, account: str, asset: str, amount: int) -> None:
        """
        Increase account's recorded collateral.

        Raises:
            ValidationError: If amount is not positive or asset is unsupported
        """
        _require_positive(amount)
        self.require_supported(asset)
        self._set(account, asset, self.balance(account, asset) + amount)

    def withdraw(self, account: str, asset: str, amount: int) -> None:
        """
        Decrease account's recorded collateral.

        Raises:
            ValidationError: If amount is not positive or asset is unsupported
            StateUnderflow: If amount exceeds the recorded balance
        """
        _require_positive(amount)
        current = self.balance(account, asset)
        if amount > current:
            raise StateUnderflow(
                f"cannot withdraw {amount} {asset} from {account}: only {current} deposited"
            )
        self._set(account, asset, current - amount)

    def _set(self, account: str, asset: str, value: int) -> None:
        previous = self._balances.get(account, {}).get(asset, 0)
        if self._journal is not None:
            self._journal.record(lambda: self._write(account, asset, previous))
        self._write(account, asset, value)

    def _write(self, account: str, asset: str, value: int) -> None:
        held = self._balances.setdefault(account, {})
        if value:
            held[asset] = value
        else:
            held.pop(asset, None)
        if not held:
            del self._balances[account]


# ============================================================================
# DEBT
# ============================================================================

class DebtLedger(_JournaledLedger):
    """Stablecoin minted against each account."""

    def __init__(self):
        super().__init__()
        self._debts: Dict[str, int] = {}

    def debt(self, account: str) -> int:
        return self._debts.get(account, 0)

    def accounts(self) -> Set[str]:
        """Accounts with outstanding debt."""
        return set(self._debts)

    def total_debt(self) -> int:
        return sum(self._debts.values())

    def increase(self, account: str, amount: int) -> None:
        """
        Record amount of newly minted debt.

        Raises:
            ValidationError: If amount is not positive
        """
        _require_positive(amount)
        self._set(account, self.debt(account) + amount)

    def decrease(self, account: str, amount: int) -> None:
        """
        Record amount of repaid debt.

        Raises:
            ValidationError: If amount is not positive
            StateUnderflow: If amount exceeds the recorded debt
        """
        _require_positive(amount)
        current = self.debt(account)
        if amount > current:
            raise StateUnderflow(f"cannot repay {amount} for {account}: debt is {current}")
        self._set(account, current - amount)

    def _set(self, account: str, value: int) -> None:
        previous = self._debts.get(account, 0)
        if self._journal is not None:
            self._journal.record(lambda: self._write(account, previous))
        self._write(account, value)

    def _write(self, account: str, value: int) -> None:
        if value:
            self._debts[account] = value
        else:
            self._debts.pop(account, None)


def _require_positive(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"amount must be an int, got {type(amount).__name__}")
    if amount <= 0:
        raise ValidationError(f"amount must be more than zero, got {amount}")
