"""
dsc - Overcollateralized Stablecoin Engine

An engine that issues a USD-pegged stablecoin against deposits of exogenous
collateral, keeping every account above a minimum health factor and letting
anyone liquidate accounts that fall below it.

Usage:
    from dsc import deploy, fund

    system = deploy()                       # WETH @ $2000, WBTC @ $1000
    fund(system, "alice", "WETH", 10 * 10**18)
    system.ledger.approve("alice", system.engine.address, "WETH", 10 * 10**18)

    system.engine.deposit_collateral_and_mint_dsc(
        "alice", "WETH", 10 * 10**18, 5_000 * 10**18
    )
    system.engine.get_health_factor("alice")   # 2 * 10**18
"""

# Core types
from .core import (
    PriceFeed,
    AssetTransferPort,
    Minter,
    Burner,
    SupplyAuthority,
    ExecuteResult,
    RiskParameters,
    CollateralDeposited,
    CollateralRedeemed,
    EngineEvent,
    Token,
    Move,
    Transaction,
    DSCError,
    ValidationError,
    StateUnderflow,
    InvariantViolation,
    TransferFailure,
    MintFailure,
    LiquidationPrecondition,
    LiquidationIneffective,
    ReentrancyError,
    OracleError,
    CapabilityError,
    UnitNotRegistered,
    WalletNotRegistered,
    format_units,
    SYSTEM_WALLET,
    PRECISION,
    ADDITIONAL_FEED_PRECISION,
    FEED_DECIMALS,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_BONUS,
    LIQUIDATION_PRECISION,
    MIN_HEALTH_FACTOR,
    MAX_HEALTH_FACTOR,
)

# Collaborators
from .token_ledger import TokenLedger
from .price_feed import StaticPriceFeed
from .stablecoin import Stablecoin, SupplyCapability

# Bookkeeping and valuation
from .accounts import CollateralLedger, DebtLedger, Journal
from .valuation import (
    ValuationService,
    HealthFactorCalculator,
    calculate_usd_value,
    calculate_token_amount_from_usd,
    calculate_health_factor,
    calculate_liquidation_seizure,
)

# Engine
from .engine import DSCEngine

# Deployment
from .deploy import Deployment, deploy, fund, ENGINE_WALLET, DEFAULT_COLLATERAL
