"""
stablecoin.py - The USD-pegged stablecoin token

The token's balances live in a TokenLedger. Creating and destroying supply
is a capability: Stablecoin.grant_capability() hands out exactly one
SupplyCapability, normally to the engine at deployment, and nothing else
can mint or burn.
"""

from __future__ import annotations
from typing import Optional

from .core import (
    Token, SYSTEM_WALLET,
    CapabilityError, ValidationError, StateUnderflow,
)
from .token_ledger import TokenLedger


class Stablecoin:
    """
    A token registered in a TokenLedger whose supply is controlled by a single holder.

    Example:
        ledger = TokenLedger("main")
        dsc = Stablecoin(ledger)
        capability = dsc.grant_capability("dsc_engine")
        capability.mint("alice", 100 * 10**18)
    """

    def __init__(
        self,
        ledger: TokenLedger,
        symbol: str = "DSC",
        name: str = "Decentralized Stable Coin",
    ):
        self.ledger = ledger
        self.token = Token(symbol, name)
        ledger.register_token(self.token)
        self._capability: Optional[SupplyCapability] = None

    @property
    def address(self) -> str:
        return self.token.symbol

    @property
    def owner(self) -> Optional[str]:
        """Holder of the supply capability, or None before it is granted."""
        return self._capability.holder if self._capability else None

    def balance_of(self, wallet_id: str) -> int:
        return self.ledger.get_balance(wallet_id, self.address)

    def total_supply(self) -> int:
        return self.ledger.circulating_supply(self.address)

    def grant_capability(self, holder: str) -> SupplyCapability:
        """
        Issue the mint/burn capability. Can only be called once.

        Raises:
            CapabilityError: If the capability was already granted
        """
        if self._capability is not None:
            raise CapabilityError(
                f"{self.address} supply capability already granted to {self._capability.holder}"
            )
        self._capability = SupplyCapability(self, holder)
        return self._capability


class SupplyCapability:
    """
    Minter and Burner for one Stablecoin, bound to the wallet that holds it.

    Burning only ever destroys tokens the holder itself owns; to retire
    somebody else's tokens, the holder first pulls them into its own wallet.
    """

    def __init__(self, stablecoin: Stablecoin, holder: str):
        self.stablecoin = stablecoin
        self.holder = holder

    @property
    def token_symbol(self) -> str:
        return self.stablecoin.address

    def mint(self, to: str, amount: int) -> bool:
        """
        Create amount new tokens in wallet `to`.

        Returns:
            False if the ledger rejects the issuance (e.g. unknown wallet)

        Raises:
            ValidationError: If amount is not positive or `to` is the system wallet
        """
        if amount <= 0:
            raise ValidationError(f"{self.stablecoin.address}: mint amount must be more than zero")
        if not to or to == SYSTEM_WALLET:
            raise ValidationError(f"{self.stablecoin.address}: cannot mint to {to!r}")
        return self.stablecoin.ledger.issue(self.stablecoin.address, to, amount)

    def burn(self, holder: str, amount: int) -> None:
        """
        Destroy amount tokens from the capability holder's own balance.

        Raises:
            ValidationError: If amount is not positive or holder is not the capability holder
            StateUnderflow: If amount exceeds the holder's balance
        """
        if holder != self.holder:
            raise ValidationError(
                f"{self.stablecoin.address}: only {self.holder} can burn its own balance"
            )
        if amount <= 0:
            raise ValidationError(f"{self.stablecoin.address}: burn amount must be more than zero")
        balance = self.stablecoin.balance_of(holder)
        if amount > balance:
            raise StateUnderflow(
                f"{self.stablecoin.address}: burn amount {amount} exceeds balance {balance}"
            )
        if not self.stablecoin.ledger.redeem(self.stablecoin.address, holder, amount):
            raise StateUnderflow(f"{self.stablecoin.address}: burn of {amount} rejected")
