"""
Core types and constants for the stablecoin engine.

This module provides the foundational data structures and protocols:
1. Constants: fixed-point scales and the default risk parameters
2. Protocols: PriceFeed, AssetTransferPort, Minter, Burner
3. Immutable data structures: Token, Move, Transaction, RiskParameters, events
4. Exceptions: DSCError and the domain-specific error kinds

All amounts are Python ints in base units. Collateral and the stablecoin use
18 decimals; price feeds report USD prices at 8 decimals.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Tuple, Union, Protocol, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and redemption.
# The system wallet is exempt from balance validation and can hold any balance,
# so minting is a move out of it and burning is a move into it.
SYSTEM_WALLET = "system"

# Fixed-point scale for USD amounts and health factors.
PRECISION = 10**18

# Price feeds report at 8 decimals; this lifts a price to the 18-decimal scale.
FEED_DECIMALS = 8
ADDITIONAL_FEED_PRECISION = 10**10

# Percentages are expressed over LIQUIDATION_PRECISION.
LIQUIDATION_THRESHOLD = 50   # 200% overcollateralized
LIQUIDATION_BONUS = 10       # 10% extra collateral for liquidators
LIQUIDATION_PRECISION = 100

# A health factor of exactly 1.0, scaled.
MIN_HEALTH_FACTOR = PRECISION

# Reported for accounts without debt. Matches the uint256 maximum.
MAX_HEALTH_FACTOR = 2**256 - 1

# Decimals of every token registered by the default deployment.
TOKEN_DECIMALS = 18


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from collateral asset symbol to deposited amount for one account.
CollateralBalances = Dict[str, int]

# Mapping from wallet ID to quantity held for a specific token.
Positions = Dict[str, int]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceFeed(Protocol):
    """
    Read interface of a USD price oracle for one asset.

    The engine treats every read as a synchronous, possibly failing call into
    untrusted code. Prices are never cached.
    """
    decimals: int

    def latest_price(self) -> Tuple[int, int]:
        """Return (answer, decimals); answer is the USD price scaled by 10**decimals."""
        ...


@runtime_checkable
class AssetTransferPort(Protocol):
    """
    Moves token balances between holders and reports success.

    Implementations return False instead of raising when a transfer cannot be
    made (insufficient balance or allowance, unknown wallet). The engine never
    assumes success.
    """

    def transfer(self, unit_symbol: str, source: str, dest: str, quantity: int) -> bool:
        """Move quantity from source (the caller's own custody) to dest."""
        ...

    def transfer_from(
        self, unit_symbol: str, spender: str, source: str, dest: str, quantity: int
    ) -> bool:
        """Move quantity from source to dest using spender's allowance."""
        ...


class Minter(Protocol):
    """Capability to create stablecoin supply."""

    def mint(self, to: str, amount: int) -> bool:
        ...


class Burner(Protocol):
    """Capability to destroy stablecoin held by the capability holder."""

    def burn(self, holder: str, amount: int) -> None:
        ...


class SupplyAuthority(Minter, Burner, Protocol):
    """
    The single mint/burn grant of a stablecoin.

    holder is the wallet the grant is bound to; token_symbol identifies the
    stablecoin in the asset transfer port.
    """
    holder: str
    token_symbol: str


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a token ledger execution attempt.

    APPLIED: All moves were validated and applied.
    REJECTED: Validation failed; no move was applied.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class DSCError(Exception):
    """Base exception for all engine and token ledger errors."""
    pass


class ValidationError(DSCError):
    """Raised for non-positive amounts, unsupported assets, or malformed configuration."""
    pass


class StateUnderflow(DSCError):
    """Raised when a withdrawal, burn or repayment exceeds the recorded balance."""
    pass


class InvariantViolation(DSCError):
    """Raised when an operation would leave an account below the minimum health factor."""

    def __init__(self, health_factor: int, account: str = "") -> None:
        self.health_factor = health_factor
        self.account = account
        who = f" for {account}" if account else ""
        super().__init__(f"health factor broken{who}: {health_factor}")


class TransferFailure(DSCError):
    """Raised when the asset transfer port reports a failed transfer."""
    pass


class MintFailure(DSCError):
    """Raised when the stablecoin mint capability reports failure."""
    pass


class LiquidationPrecondition(DSCError):
    """Raised when liquidating an account whose health factor is OK."""
    pass


class LiquidationIneffective(DSCError):
    """Raised when a liquidation does not improve the target's health factor."""

    def __init__(self, starting_health_factor: int, ending_health_factor: int) -> None:
        self.starting_health_factor = starting_health_factor
        self.ending_health_factor = ending_health_factor
        super().__init__(
            f"health factor not improved: {starting_health_factor} -> {ending_health_factor}"
        )


class ReentrancyError(DSCError):
    """Raised when an engine entry point is called while an operation is in progress."""
    pass


class OracleError(DSCError):
    """Raised when a price feed returns an unusable answer."""
    pass


class CapabilityError(DSCError):
    """Raised when the stablecoin supply capability is granted twice."""
    pass


class UnitNotRegistered(DSCError):
    """Raised when operating on a token that has not been registered with the ledger."""
    pass


class WalletNotRegistered(DSCError):
    """Raised when operating on a wallet that has not been registered with the ledger."""
    pass


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class RiskParameters:
    """
    Immutable risk terms of an engine - set at deployment, never change.

    Attributes:
        liquidation_threshold: Percent of collateral value counted toward solvency.
        liquidation_bonus: Percent of seized collateral paid to liquidators on top.
        liquidation_precision: Denominator for the two percentages above.
        min_health_factor: Scaled health factor separating solvent from liquidatable.
    """
    liquidation_threshold: int = LIQUIDATION_THRESHOLD
    liquidation_bonus: int = LIQUIDATION_BONUS
    liquidation_precision: int = LIQUIDATION_PRECISION
    min_health_factor: int = MIN_HEALTH_FACTOR

    def __post_init__(self):
        if self.liquidation_precision <= 0:
            raise ValidationError("liquidation_precision must be positive")
        if not 0 < self.liquidation_threshold <= self.liquidation_precision:
            raise ValidationError(
                f"liquidation_threshold must be in (0, {self.liquidation_precision}], "
                f"got {self.liquidation_threshold}"
            )
        if self.liquidation_bonus < 0:
            raise ValidationError("liquidation_bonus cannot be negative")
        if self.min_health_factor <= 0:
            raise ValidationError("min_health_factor must be positive")


# ============================================================================
# EVENTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class CollateralDeposited:
    """Collateral entered engine custody on behalf of account."""
    account: str
    asset: str
    amount: int

    def __repr__(self) -> str:
        return f"CollateralDeposited({self.account}: {format_units(self.amount)} {self.asset})"


@dataclass(frozen=True, slots=True)
class CollateralRedeemed:
    """Collateral left engine custody, debited from redeemed_from and paid to redeemed_to."""
    redeemed_from: str
    redeemed_to: str
    asset: str
    amount: int

    def __repr__(self) -> str:
        return (
            f"CollateralRedeemed({format_units(self.amount)} {self.asset}: "
            f"{self.redeemed_from}→{self.redeemed_to})"
        )


EngineEvent = Union[CollateralDeposited, CollateralRedeemed]


# ============================================================================
# TOKEN LEDGER DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Token:
    """
    Definition of a token registered in a TokenLedger.

    Attributes:
        symbol: Short identifier (e.g., "WETH", "DSC").
        name: Human-readable name.
        decimals: Number of decimals of the base unit.
        min_balance: Minimum allowed balance in any non-system wallet.
    """
    symbol: str
    name: str
    decimals: int = TOKEN_DECIMALS
    min_balance: int = 0


@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of a token between two wallets.

    Attributes:
        quantity: Amount in base units (must be a positive int).
        unit_symbol: Symbol of the token being transferred.
        source: Wallet debited.
        dest: Wallet credited.
        memo: Free-form tag recorded in the transaction log.

    This class is immutable (frozen=True) and memory-optimized (slots=True).
    All fields are validated in __post_init__.
    """
    quantity: int
    unit_symbol: str
    source: str
    dest: str
    memo: str = ""

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"Move quantity must be int, got {type(self.quantity)}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of token balance changes.

    Attributes:
        moves: Tuple of transfers applied together
        sequence_number: Monotonic sequence within the ledger
        exec_id: Unique execution identifier (ledger name + sequence)
    """
    moves: Tuple[Move, ...]
    sequence_number: int
    exec_id: str

    def __post_init__(self):
        if not self.moves:
            raise ValueError("Transaction must have moves")

    def __repr__(self) -> str:
        return f"Transaction({self.exec_id}, {len(self.moves)} moves)"


# ============================================================================
# FORMATTING
# ============================================================================

def format_units(value: int, decimals: int = TOKEN_DECIMALS) -> str:
    """
    Render a base-unit amount as a human-readable decimal string.

    Trailing zeros are removed: format_units(1500 * 10**15) == "1.5".
    """
    scaled = (Decimal(value) / (Decimal(10) ** decimals)).normalize()
    if scaled == scaled.to_integral_value():
        return str(int(scaled))
    return format(scaled, 'f')
