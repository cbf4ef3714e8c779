#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial for the DSC Stablecoin Engine

This tutorial walks through the engine step by step, from deployment to
liquidation. Each step builds on the previous one.

Run with: python demo.py
         python demo.py --quick  (skip pauses)

Learning Path:
    Phase 1: Foundation (Steps 1-3)   - Deployment, collateral, minting
    Phase 2: Safety (Steps 4-5)       - Health factor, all-or-nothing operations
    Phase 3: Stress (Steps 6-8)       - Price crash, liquidation, conservation
"""

import sys
from dataclasses import dataclass

from dsc import (
    deploy, fund, format_units,
    DSCError, InvariantViolation, LiquidationPrecondition,
    MAX_HEALTH_FACTOR, SYSTEM_WALLET,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    # Collateral (18 decimals)
    alice_weth: int = 10 * 10**18
    keeper_weth: int = 50 * 10**18

    # Debt (18 decimals, 1 DSC = $1)
    alice_mint: int = 8_000 * 10**18
    keeper_mint: int = 10_000 * 10**18

    # Crash: WETH from $2,000 to $1,500 (8-decimal feed answer)
    crash_price: int = 1_500 * 10**8


CONFIG = DemoConfig()

# Global state for interactive mode
QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def health(system, wallet: str) -> str:
    health_factor = system.engine.get_health_factor(wallet)
    if health_factor == MAX_HEALTH_FACTOR:
        return "infinite (no debt)"
    return format_units(health_factor)


def show_account(system, wallet: str):
    debt, value = system.engine.get_account_information(wallet)
    weth = system.engine.get_collateral_balance_of_user(wallet, "WETH")
    print(f"{wallet:<8} collateral: {format_units(weth):>8} WETH (${format_units(value)})")
    print(f"{'':<8} debt:       {format_units(debt):>8} DSC")
    print(f"{'':<8} health:     {health(system, wallet)}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_deploy():
    """Deploy the stablecoin system on a fresh token ledger."""
    step_header(1, "Deploying the System",
        "One ledger, two collateral tokens, two price feeds, one stablecoin, one engine.")

    print("""
    deploy() wires up a local network:

    1. A TokenLedger holding WETH, WBTC and DSC balances
    2. A price feed per collateral token (8 decimals, WETH $2000, WBTC $1000)
    3. The DSC stablecoin, whose mint/burn capability is granted ONCE
    4. The DSCEngine, which holds that capability and custody of collateral
    """)

    wait_for_enter()

    print(">>> system = deploy(verbose=True)")
    system = deploy(verbose=True)

    section_header("Deployment")
    print(f"Collateral:     {system.engine.get_collateral_tokens()}")
    print(f"Stablecoin:     {system.engine.get_dsc()}")
    print(f"Engine wallet:  {system.engine.address}")
    print(f"Capability:     held by {system.stablecoin.owner}")
    for asset in system.collateral_assets:
        print(f"Price feed:     {system.engine.get_collateral_token_price_feed(asset)}")

    section_header("Key Insight")
    print("""
    Nobody but the engine can create DSC. Every coin in circulation was
    minted against collateral the engine holds.
    """)

    return system


def step_02_deposit(system):
    """Fund alice and deposit collateral."""
    step_header(2, "Depositing Collateral",
        "The engine pulls approved collateral into custody and records it.")

    print(f"""
    Alice gets {format_units(CONFIG.alice_weth)} WETH from the faucet, approves the
    engine to move it, and deposits it.
    """)

    wait_for_enter()

    print(f'>>> fund(system, "alice", "WETH", {CONFIG.alice_weth})')
    fund(system, "alice", "WETH", CONFIG.alice_weth)
    print(f'>>> system.ledger.approve("alice", engine.address, "WETH", {CONFIG.alice_weth})')
    system.ledger.approve("alice", system.engine.address, "WETH", CONFIG.alice_weth)
    print(f'>>> engine.deposit_collateral("alice", "WETH", {CONFIG.alice_weth})')
    system.engine.deposit_collateral("alice", "WETH", CONFIG.alice_weth)

    section_header("Account")
    show_account(system, "alice")

    section_header("Key Insight")
    print("""
    With no debt the health factor is infinite. Depositing can never make
    an account less healthy, so deposits are never checked.
    """)

    return system


def step_03_mint(system):
    """Mint stablecoin against the deposit."""
    step_header(3, "Minting DSC",
        "Debt may be at most 50% of collateral value: health factor >= 1.")

    print("""
    health factor = (collateral value * 50 / 100) / debt

    Alice holds $20,000 of WETH, so she may mint up to 10,000 DSC.
    """)

    wait_for_enter()

    print(f'>>> engine.mint_dsc("alice", {CONFIG.alice_mint})')
    system.engine.mint_dsc("alice", CONFIG.alice_mint)

    section_header("Account")
    show_account(system, "alice")
    print(f"\nDSC in alice's wallet: {format_units(system.stablecoin.balance_of('alice'))}")

    return system


# ============================================================================
# PHASE 2: SAFETY (Steps 4-5)
# ============================================================================

def step_04_rejected_mint(system):
    """Try to mint past the limit."""
    step_header(4, "A Rejected Mint",
        "Operations that would leave an account below health factor 1 are refused.")

    print("""
    Alice has 2,000 DSC of headroom left. Let's ask for 5,000.
    """)

    wait_for_enter()

    debt_before = system.engine.get_total_debt()
    print('>>> engine.mint_dsc("alice", 5_000 * 10**18)')
    try:
        system.engine.mint_dsc("alice", 5_000 * 10**18)
    except InvariantViolation as e:
        print(f"\nInvariantViolation: {e}")

    section_header("State After Rejection")
    print(f"Total debt before: {format_units(debt_before)}")
    print(f"Total debt after:  {format_units(system.engine.get_total_debt())}")
    print(f"DSC supply:        {format_units(system.stablecoin.total_supply())}")

    return system


def step_05_atomicity(system):
    """Show that a composite operation is all-or-nothing."""
    step_header(5, "All or Nothing",
        "A failing half of a composite operation undoes the other half.")

    print("""
    deposit_collateral_and_mint_dsc deposits, then mints. If the mint breaks
    the health factor, the deposit is rolled back too: no collateral moves.
    """)

    wait_for_enter()

    fund(system, "bob", "WETH", 10**18)
    system.ledger.approve("bob", system.engine.address, "WETH", 10**18)
    print('>>> engine.deposit_collateral_and_mint_dsc("bob", "WETH", 10**18, 5_000 * 10**18)')
    try:
        system.engine.deposit_collateral_and_mint_dsc("bob", "WETH", 10**18, 5_000 * 10**18)
    except DSCError as e:
        print(f"\n{type(e).__name__}: {e}")

    section_header("Bob After Rejection")
    print(f"WETH in wallet:     {format_units(system.ledger.get_balance('bob', 'WETH'))}")
    print(f"WETH deposited:     {format_units(system.engine.get_collateral_balance_of_user('bob', 'WETH'))}")
    print(f"Engine events:      {len(system.engine.event_log)}")

    return system


# ============================================================================
# PHASE 3: STRESS (Steps 6-8)
# ============================================================================

def step_06_crash(system):
    """Crash the WETH price."""
    step_header(6, "Market Crash",
        "Prices move; positions that were safe can fall below the minimum.")

    wait_for_enter()

    print(f'>>> system.feeds["WETH"].update_answer({CONFIG.crash_price})')
    system.feeds["WETH"].update_answer(CONFIG.crash_price)

    section_header("Account")
    show_account(system, "alice")

    section_header("Key Insight")
    print("""
    Alice's 8,000 DSC is now backed by $15,000: 187.5% instead of 200%.
    Her health factor is below 1, so anyone may liquidate her.
    """)

    return system


def step_07_liquidation(system):
    """A keeper liquidates alice."""
    step_header(7, "Liquidation",
        "A liquidator repays debt and receives that much collateral plus a 10% bonus.")

    fund(system, "keeper", "WETH", CONFIG.keeper_weth)
    system.ledger.approve("keeper", system.engine.address, "WETH", CONFIG.keeper_weth)
    system.engine.deposit_collateral_and_mint_dsc("keeper", "WETH", CONFIG.keeper_weth, CONFIG.keeper_mint)

    print("""
    The keeper has minted DSC of its own. Liquidating a healthy account
    fails; liquidating alice succeeds.
    """)

    wait_for_enter()

    print('>>> engine.liquidate("keeper", "WETH", "keeper", 10**18)')
    try:
        system.engine.liquidate("keeper", "WETH", "keeper", 10**18)
    except LiquidationPrecondition as e:
        print(f"\nLiquidationPrecondition: {e}")

    system.ledger.approve("keeper", system.engine.address, "DSC", CONFIG.alice_mint)
    print(f'\n>>> engine.liquidate("keeper", "WETH", "alice", {CONFIG.alice_mint})')
    system.engine.liquidate("keeper", "WETH", "alice", CONFIG.alice_mint)

    section_header("After Liquidation")
    show_account(system, "alice")
    print(f"\nKeeper received: {format_units(system.ledger.get_balance('keeper', 'WETH'))} WETH")
    print(f"Alice still holds: {format_units(system.stablecoin.balance_of('alice'))} DSC")

    return system


def step_08_conservation(system):
    """Check the books."""
    step_header(8, "Conservation",
        "Custody matches records, supply matches debt, every token sums to zero.")

    wait_for_enter()

    engine = system.engine
    section_header("Custody")
    for asset in engine.get_collateral_tokens():
        held = system.ledger.get_balance(engine.address, asset)
        recorded = sum(engine.get_collateral_balance_of_user(a, asset) for a in engine.get_accounts())
        print(f"{asset}: held {format_units(held)}, recorded {format_units(recorded)}")

    section_header("Supply")
    print(f"DSC supply:  {format_units(system.stablecoin.total_supply())}")
    print(f"Total debt:  {format_units(engine.get_total_debt())}")

    section_header("Double Entry")
    for token in system.ledger.list_tokens():
        print(f"{token}: {SYSTEM_WALLET} {format_units(system.ledger.get_balance(SYSTEM_WALLET, token))}, "
              f"sum over wallets {system.ledger.total_supply(token)}")
    print(f"\nverify_double_entry: {system.ledger.verify_double_entry()}")

    return system


# ============================================================================
# MAIN
# ============================================================================

def main():
    print("""
    ╔══════════════════════════════════════════════════════════════════╗
    ║                  DSC STABLECOIN ENGINE TUTORIAL                  ║
    ╚══════════════════════════════════════════════════════════════════╝
    """)
    if QUICK_MODE:
        print("    Running in quick mode (no pauses)\n")

    system = step_01_deploy()
    step_02_deposit(system)
    step_03_mint(system)
    step_04_rejected_mint(system)
    step_05_atomicity(system)
    step_06_crash(system)
    step_07_liquidation(system)
    step_08_conservation(system)

    print(f"\n{'='*70}")
    print("TUTORIAL COMPLETE")
    print(f"{'='*70}")
    print("""
    FOUNDATION
      - Collateral enters engine custody; DSC is minted against it
      - Only the engine holds the stablecoin's supply capability

    SAFETY
      - Health factor >= 1 after every mint, redeem and burn
      - Operations are all-or-nothing

    STRESS
      - Price drops push accounts below the minimum
      - Liquidators repay debt for collateral plus a 10% bonus

    Next steps:
      - See dsc/engine.py for the operations
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
