"""
deploy.py - Local deployment of the stablecoin system

Wires a TokenLedger, the collateral tokens, their price feeds, the
stablecoin and the engine together, the way a deployment script would on a
local network.

Usage:
    deployment = deploy()
    fund(deployment, "alice", "WETH", 10 * 10**18)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .core import Token, RiskParameters, FEED_DECIMALS
from .token_ledger import TokenLedger
from .price_feed import StaticPriceFeed
from .stablecoin import Stablecoin
from .engine import DSCEngine


ENGINE_WALLET = "dsc_engine"

# Local-network defaults: asset symbol -> (name, USD price at 8 decimals)
DEFAULT_COLLATERAL: Dict[str, Tuple[str, int]] = {
    "WETH": ("Wrapped Ether", 2000 * 10**FEED_DECIMALS),
    "WBTC": ("Wrapped Bitcoin", 1000 * 10**FEED_DECIMALS),
}


@dataclass(frozen=True, slots=True)
class Deployment:
    """Handles to every component of a deployed system."""
    ledger: TokenLedger
    stablecoin: Stablecoin
    engine: DSCEngine
    feeds: Dict[str, StaticPriceFeed] = field(default_factory=dict)

    @property
    def collateral_assets(self) -> Tuple[str, ...]:
        return tuple(self.feeds)


def deploy(
    prices: Optional[Dict[str, int]] = None,
    params: RiskParameters = RiskParameters(),
    verbose: bool = False,
    ledger_name: str = "local",
) -> Deployment:
    """
    Deploy the system on a fresh TokenLedger.

    Args:
        prices: Override of the 8-decimal USD price per collateral symbol.
                Symbols outside DEFAULT_COLLATERAL are registered as new tokens.
        params: Engine risk parameters
        verbose: Verbose output for the ledger and the engine
        ledger_name: Name of the token ledger

    Returns:
        Deployment with the engine holding the stablecoin's supply authority
    """
    collateral = {symbol: price for symbol, (_, price) in DEFAULT_COLLATERAL.items()}
    if prices:
        collateral.update(prices)

    ledger = TokenLedger(ledger_name, verbose=verbose)
    feeds: Dict[str, StaticPriceFeed] = {}
    for symbol, price in collateral.items():
        name = DEFAULT_COLLATERAL.get(symbol, (symbol, price))[0]
        ledger.register_token(Token(symbol, name))
        feeds[symbol] = StaticPriceFeed(price, description=f"{symbol} / USD")

    stablecoin = Stablecoin(ledger)
    ledger.register_wallet(ENGINE_WALLET)
    authority = stablecoin.grant_capability(ENGINE_WALLET)
    engine = DSCEngine(
        list(feeds),
        list(feeds.values()),
        authority,
        ledger,
        params=params,
        verbose=verbose,
    )
    return Deployment(ledger=ledger, stablecoin=stablecoin, engine=engine, feeds=feeds)


def fund(deployment: Deployment, wallet: str, asset: str, amount: int) -> None:
    """
    Give wallet amount of a mock collateral token, registering the wallet if needed.

    Raises:
        ValueError: If the issuance is rejected
    """
    ledger = deployment.ledger
    if not ledger.is_registered(wallet):
        ledger.register_wallet(wallet)
    if not ledger.issue(asset, wallet, amount):
        raise ValueError(f"could not fund {wallet} with {amount} {asset}")
