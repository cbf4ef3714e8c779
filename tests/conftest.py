"""
conftest.py - Shared pytest fixtures for engine tests

Provides common fixtures used across unit, conformance and functional tests:
- Deployed systems (fresh, with collateral deposited, with stablecoin minted)
- A system with an undercollateralized user and a funded liquidator
- A bare token ledger in test mode
"""

import pytest

from dsc import deploy, fund, TokenLedger, Token
from tests.harness import (
    STARTING_BALANCE, COLLATERAL_AMOUNT, AMOUNT_TO_MINT, COLLATERAL_TO_COVER,
    deposit, deposit_and_mint,
)


# =============================================================================
# SYSTEM FIXTURES
# =============================================================================

@pytest.fixture
def system():
    """Fresh deployment: WETH @ $2000, WBTC @ $1000, user funded with 10 of each."""
    deployment = deploy(verbose=False)
    fund(deployment, "user", "WETH", STARTING_BALANCE)
    fund(deployment, "user", "WBTC", STARTING_BALANCE)
    return deployment


@pytest.fixture
def engine(system):
    return system.engine


@pytest.fixture
def ledger(system):
    return system.ledger


@pytest.fixture
def deposited(system):
    """User has deposited COLLATERAL_AMOUNT of WETH without minting."""
    deposit(system, "user", "WETH", COLLATERAL_AMOUNT)
    return system


@pytest.fixture
def minted(system):
    """User has deposited COLLATERAL_AMOUNT of WETH and minted AMOUNT_TO_MINT."""
    deposit_and_mint(system, "user", "WETH", COLLATERAL_AMOUNT, AMOUNT_TO_MINT)
    return system


@pytest.fixture
def liquidatable(system):
    """
    User minted at $2000 and WETH then fell to $18.

    User: 10 WETH, 100 DSC debt -> health factor 0.9 after the crash.
    Liquidator: 20 WETH deposited, 100 DSC minted and approved for burning.
    """
    deposit_and_mint(system, "user", "WETH", COLLATERAL_AMOUNT, AMOUNT_TO_MINT)
    fund(system, "liquidator", "WETH", COLLATERAL_TO_COVER)
    system.feeds["WETH"].update_answer(18 * 10**8)
    # At $18, 20 WETH ($360) backs 100 DSC at health factor 1.8
    deposit_and_mint(system, "liquidator", "WETH", COLLATERAL_TO_COVER, AMOUNT_TO_MINT)
    system.ledger.approve("liquidator", system.engine.address, "DSC", AMOUNT_TO_MINT)
    return system


@pytest.fixture
def token_ledger():
    """Token ledger with WETH and two wallets, in test mode."""
    ledger = TokenLedger("test", verbose=False, test_mode=True)
    ledger.register_token(Token("WETH", "Wrapped Ether"))
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")
    return ledger
