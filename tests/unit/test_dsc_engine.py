"""
test_dsc_engine.py - Unit tests for DSCEngine

Tests:
- Construction and configuration getters
- deposit_collateral, mint_dsc and their combination
- redeem_collateral, burn_dsc and their combination
- All-or-nothing rollback when a collaborator fails
- Event publication on commit only
- Queries on unknown accounts
"""

import pytest

from dsc import (
    DSCEngine, StaticPriceFeed, CollateralDeposited, CollateralRedeemed, RiskParameters,
    ValidationError, StateUnderflow, InvariantViolation, TransferFailure, MintFailure,
    deploy, fund,
    PRECISION, ADDITIONAL_FEED_PRECISION, MAX_HEALTH_FACTOR, MIN_HEALTH_FACTOR,
    LIQUIDATION_THRESHOLD, LIQUIDATION_BONUS, LIQUIDATION_PRECISION,
)
from tests.harness import (
    ETHER, STARTING_BALANCE, COLLATERAL_AMOUNT, AMOUNT_TO_MINT,
    approve_engine, deposit, deposit_and_mint, snapshot,
    build_system, FlakyPort, FailingAuthority,
)


# =============================================================================
# CONSTRUCTION
# =============================================================================

class TestConstructor:

    def test_reverts_if_token_length_doesnt_match_price_feeds(self, system):
        authority = object()
        with pytest.raises(ValidationError, match="must be the same length"):
            DSCEngine(["WETH"], [StaticPriceFeed(1), StaticPriceFeed(2)], authority, system.ledger)

    def test_reverts_on_feed_with_wrong_decimals(self):
        system = deploy()
        feed = StaticPriceFeed(2000 * 10**18, decimals=18)
        capability = type("Cap", (), {"holder": "x", "token_symbol": "DSC"})()
        with pytest.raises(ValidationError, match="expected 8"):
            DSCEngine(["WETH"], [feed], capability, system.ledger)

    def test_reverts_on_duplicate_assets(self):
        system = deploy()
        feed = StaticPriceFeed(1)
        capability = type("Cap", (), {"holder": "x", "token_symbol": "DSC"})()
        with pytest.raises(ValidationError, match="duplicate"):
            DSCEngine(["WETH", "WETH"], [feed, feed], capability, system.ledger)

    def test_reverts_on_empty_assets(self, system):
        capability = type("Cap", (), {"holder": "x", "token_symbol": "DSC"})()
        with pytest.raises(ValidationError, match="at least one"):
            DSCEngine([], [], capability, system.ledger)

    def test_engine_wallet_is_authority_holder(self, system):
        assert system.engine.address == system.stablecoin.owner

    def test_configuration_getters(self, engine, system):
        assert engine.get_collateral_tokens() == ["WETH", "WBTC"]
        assert engine.get_dsc() == "DSC"
        assert engine.get_collateral_token_price_feed("WETH") is system.feeds["WETH"]
        assert engine.get_precision() == PRECISION
        assert engine.get_additional_feed_precision() == ADDITIONAL_FEED_PRECISION
        assert engine.get_liquidation_threshold() == LIQUIDATION_THRESHOLD
        assert engine.get_liquidation_bonus() == LIQUIDATION_BONUS
        assert engine.get_liquidation_precision() == LIQUIDATION_PRECISION
        assert engine.get_min_health_factor() == MIN_HEALTH_FACTOR

    def test_custom_parameters(self):
        system = deploy(params=RiskParameters(liquidation_threshold=80, liquidation_bonus=5))
        assert system.engine.get_liquidation_threshold() == 80
        assert system.engine.get_liquidation_bonus() == 5

    def test_price_feed_of_unknown_asset(self, engine):
        with pytest.raises(ValidationError, match="token not allowed"):
            engine.get_collateral_token_price_feed("DOGE")


# =============================================================================
# PRICE QUERIES
# =============================================================================

class TestPriceQueries:

    def test_get_usd_value(self, engine):
        assert engine.get_usd_value("WETH", 15 * ETHER) == 30_000 * ETHER

    def test_get_token_amount_from_usd(self, engine):
        assert engine.get_token_amount_from_usd("WETH", 100 * ETHER) == ETHER // 20

    def test_unsupported_asset(self, engine):
        with pytest.raises(ValidationError):
            engine.get_usd_value("DOGE", ETHER)

    def test_calculate_health_factor(self, engine):
        assert engine.calculate_health_factor(0, 0) == MAX_HEALTH_FACTOR
        assert engine.calculate_health_factor(100 * ETHER, 20_000 * ETHER) == 100 * PRECISION


# =============================================================================
# DEPOSIT
# =============================================================================

class TestDepositCollateral:

    def test_reverts_if_collateral_zero(self, system):
        approve_engine(system, "user", "WETH", COLLATERAL_AMOUNT)
        with pytest.raises(ValidationError, match="more than zero"):
            system.engine.deposit_collateral("user", "WETH", 0)

    def test_reverts_with_unapproved_collateral(self, system):
        """An unsupported asset leaves every balance unchanged."""
        before = snapshot(system)
        with pytest.raises(ValidationError, match="token not allowed: DSC"):
            system.engine.deposit_collateral("user", "DSC", COLLATERAL_AMOUNT)
        assert snapshot(system) == before

    def test_reverts_without_allowance(self, system):
        before = snapshot(system)
        with pytest.raises(TransferFailure):
            system.engine.deposit_collateral("user", "WETH", COLLATERAL_AMOUNT)
        assert snapshot(system) == before

    def test_can_deposit_collateral_and_get_account_info(self, deposited):
        engine = deposited.engine
        total_minted, collateral_value = engine.get_account_information("user")
        assert total_minted == 0
        assert engine.get_token_amount_from_usd("WETH", collateral_value) == COLLATERAL_AMOUNT

    def test_collateral_moves_into_custody(self, deposited):
        ledger = deposited.ledger
        engine = deposited.engine
        assert ledger.get_balance("user", "WETH") == STARTING_BALANCE - COLLATERAL_AMOUNT
        assert ledger.get_balance(engine.address, "WETH") == COLLATERAL_AMOUNT
        assert engine.get_collateral_balance_of_user("user", "WETH") == COLLATERAL_AMOUNT

    def test_emits_deposited_event(self, deposited):
        assert deposited.engine.event_log == [CollateralDeposited("user", "WETH", COLLATERAL_AMOUNT)]

    def test_multiple_assets(self, deposited):
        deposit(deposited, "user", "WBTC", 2 * ETHER)
        engine = deposited.engine
        assert engine.get_account_collateral_value("user") == 22_000 * ETHER
        assert engine.get_accounts() == ["user"]


# =============================================================================
# MINT
# =============================================================================

class TestMintDsc:

    def test_can_mint_dsc(self, deposited):
        deposited.engine.mint_dsc("user", AMOUNT_TO_MINT)
        assert deposited.stablecoin.balance_of("user") == AMOUNT_TO_MINT
        assert deposited.engine.get_account_information("user")[0] == AMOUNT_TO_MINT
        assert deposited.engine.get_total_debt() == AMOUNT_TO_MINT

    def test_reverts_if_mint_amount_is_zero(self, deposited):
        with pytest.raises(ValidationError, match="more than zero"):
            deposited.engine.mint_dsc("user", 0)

    def test_reverts_if_mint_breaks_health_factor(self, deposited):
        before = snapshot(deposited)
        with pytest.raises(InvariantViolation) as exc_info:
            deposited.engine.mint_dsc("user", 100_000 * ETHER)
        assert exc_info.value.health_factor == 10**17
        assert exc_info.value.account == "user"
        assert snapshot(deposited) == before

    def test_reverts_without_collateral(self, system):
        with pytest.raises(InvariantViolation) as exc_info:
            system.engine.mint_dsc("user", 1)
        assert exc_info.value.health_factor == 0

    def test_mint_to_exact_minimum(self, deposited):
        # $20,000 of WETH supports exactly $10,000 of debt
        deposited.engine.mint_dsc("user", 10_000 * ETHER)
        assert deposited.engine.get_health_factor("user") == MIN_HEALTH_FACTOR

    def test_health_factor_of_small_mint(self, deposited):
        deposited.engine.mint_dsc("user", 5 * ETHER)
        assert deposited.engine.get_health_factor("user") == 2000 * PRECISION


class TestDepositAndMint:

    def test_can_mint_with_deposited_collateral(self, minted):
        assert minted.stablecoin.balance_of("user") == AMOUNT_TO_MINT
        assert minted.engine.get_health_factor("user") == 100 * PRECISION

    def test_reverts_if_minted_dsc_breaks_health_factor(self, system):
        before = snapshot(system)
        approve_engine(system, "user", "WETH", COLLATERAL_AMOUNT)
        with pytest.raises(InvariantViolation):
            system.engine.deposit_collateral_and_mint_dsc(
                "user", "WETH", COLLATERAL_AMOUNT, 20_000 * ETHER + 1
            )
        assert snapshot(system) == before


# =============================================================================
# REDEEM
# =============================================================================

class TestRedeemCollateral:

    def test_can_redeem_collateral(self, deposited):
        deposited.engine.redeem_collateral("user", "WETH", COLLATERAL_AMOUNT)
        assert deposited.ledger.get_balance("user", "WETH") == STARTING_BALANCE
        assert deposited.engine.get_collateral_balance_of_user("user", "WETH") == 0
        assert deposited.engine.get_accounts() == []

    def test_emits_redeemed_event(self, deposited):
        deposited.engine.redeem_collateral("user", "WETH", COLLATERAL_AMOUNT)
        assert deposited.engine.event_log[-1] == CollateralRedeemed("user", "user", "WETH", COLLATERAL_AMOUNT)

    def test_reverts_if_redeem_amount_is_zero(self, deposited):
        with pytest.raises(ValidationError, match="more than zero"):
            deposited.engine.redeem_collateral("user", "WETH", 0)

    def test_reverts_if_redeeming_more_than_deposited(self, deposited):
        before = snapshot(deposited)
        with pytest.raises(StateUnderflow):
            deposited.engine.redeem_collateral("user", "WETH", COLLATERAL_AMOUNT + 1)
        assert snapshot(deposited) == before

    def test_reverts_if_redeem_breaks_health_factor(self, minted):
        before = snapshot(minted)
        with pytest.raises(InvariantViolation) as exc_info:
            minted.engine.redeem_collateral("user", "WETH", COLLATERAL_AMOUNT)
        assert exc_info.value.health_factor == 0
        assert snapshot(minted) == before

    def test_partial_redeem_keeps_position_healthy(self, minted):
        minted.engine.redeem_collateral("user", "WETH", 9 * ETHER)
        assert minted.engine.get_health_factor("user") == 10 * PRECISION


# =============================================================================
# BURN
# =============================================================================

class TestBurnDsc:

    def test_can_burn_dsc(self, minted):
        approve_engine(minted, "user", "DSC", AMOUNT_TO_MINT)
        minted.engine.burn_dsc("user", AMOUNT_TO_MINT)
        assert minted.stablecoin.balance_of("user") == 0
        assert minted.stablecoin.total_supply() == 0
        assert minted.ledger.get_balance(minted.engine.address, "DSC") == 0
        assert minted.engine.get_health_factor("user") == MAX_HEALTH_FACTOR

    def test_reverts_if_burn_amount_is_zero(self, minted):
        with pytest.raises(ValidationError, match="more than zero"):
            minted.engine.burn_dsc("user", 0)

    def test_cant_burn_more_than_user_has(self, deposited):
        with pytest.raises(StateUnderflow):
            deposited.engine.burn_dsc("user", 1)

    def test_reverts_without_allowance(self, minted):
        before = snapshot(minted)
        with pytest.raises(TransferFailure):
            minted.engine.burn_dsc("user", AMOUNT_TO_MINT)
        assert snapshot(minted) == before


class TestRedeemCollateralForDsc:

    def test_can_redeem_deposited_collateral(self, minted):
        approve_engine(minted, "user", "DSC", AMOUNT_TO_MINT)
        minted.engine.redeem_collateral_for_dsc("user", "WETH", COLLATERAL_AMOUNT, AMOUNT_TO_MINT)
        assert minted.ledger.get_balance("user", "WETH") == STARTING_BALANCE
        assert minted.stablecoin.total_supply() == 0
        assert minted.engine.get_accounts() == []

    def test_reverts_if_redeem_outweighs_burn(self, minted):
        """The burned stablecoin is restored when the redemption is refused."""
        approve_engine(minted, "user", "DSC", AMOUNT_TO_MINT)
        before = snapshot(minted)
        with pytest.raises(InvariantViolation):
            minted.engine.redeem_collateral_for_dsc("user", "WETH", COLLATERAL_AMOUNT, ETHER)
        assert snapshot(minted) == before
        assert minted.stablecoin.total_supply() == AMOUNT_TO_MINT


# =============================================================================
# ROLLBACK ON COLLABORATOR FAILURE
# =============================================================================

class TestCollaboratorFailures:

    def test_mint_failure_returns_deposited_collateral(self):
        system, _, authority = build_system(authority_factory=FailingAuthority)
        authority.failing = True
        before = snapshot(system)
        with pytest.raises(MintFailure):
            deposit_and_mint(system, "user", "WETH", COLLATERAL_AMOUNT, AMOUNT_TO_MINT)
        assert snapshot(system) == before
        assert system.ledger.verify_double_entry()['valid']

    def test_failed_payout_restores_deposit(self):
        system, port, _ = build_system(port_factory=FlakyPort)
        deposit(system, "user", "WETH", COLLATERAL_AMOUNT)
        port.fail_transfer.add("WETH")
        before = snapshot(system)
        with pytest.raises(TransferFailure, match="to user failed"):
            system.engine.redeem_collateral("user", "WETH", ETHER)
        assert snapshot(system) == before

    def test_failed_pull_on_burn_restores_debt(self):
        system, port, _ = build_system(port_factory=FlakyPort)
        deposit_and_mint(system, "user", "WETH", COLLATERAL_AMOUNT, AMOUNT_TO_MINT)
        approve_engine(system, "user", "DSC", AMOUNT_TO_MINT)
        port.fail_transfer_from.add("DSC")
        before = snapshot(system)
        with pytest.raises(TransferFailure):
            system.engine.burn_dsc("user", AMOUNT_TO_MINT)
        assert snapshot(system) == before

    def test_failed_payout_after_burn_restores_stablecoin(self):
        system, port, _ = build_system(port_factory=FlakyPort)
        deposit_and_mint(system, "user", "WETH", COLLATERAL_AMOUNT, AMOUNT_TO_MINT)
        approve_engine(system, "user", "DSC", AMOUNT_TO_MINT)
        port.fail_transfer.add("WETH")
        before = snapshot(system)
        with pytest.raises(TransferFailure):
            system.engine.redeem_collateral_for_dsc("user", "WETH", ETHER, AMOUNT_TO_MINT)
        assert snapshot(system) == before
        assert system.stablecoin.total_supply() == AMOUNT_TO_MINT
        assert system.ledger.verify_double_entry()['valid']

    def test_no_events_on_rollback(self):
        system, _, authority = build_system(authority_factory=FailingAuthority)
        authority.failing = True
        with pytest.raises(MintFailure):
            deposit_and_mint(system, "user", "WETH", COLLATERAL_AMOUNT, AMOUNT_TO_MINT)
        assert system.engine.event_log == []


# =============================================================================
# QUERIES
# =============================================================================

class TestQueries:

    def test_unknown_account(self, engine):
        assert engine.get_health_factor("nobody") == MAX_HEALTH_FACTOR
        assert engine.get_account_information("nobody") == (0, 0)
        assert engine.get_account_collateral_value("nobody") == 0
        assert engine.get_collateral_balance_of_user("nobody", "WBTC") == 0

    def test_accounts_are_sorted(self, minted):
        fund(minted, "other", "WBTC", ETHER)
        deposit(minted, "other", "WBTC", ETHER)
        assert minted.engine.get_accounts() == ["other", "user"]

    def test_queries_do_not_mutate(self, minted):
        before = snapshot(minted)
        minted.engine.get_health_factor("user")
        minted.engine.get_usd_value("WETH", ETHER)
        minted.engine.get_account_information("user")
        assert snapshot(minted) == before


# =============================================================================
# VERBOSE OUTPUT
# =============================================================================

class TestVerboseOutput:

    def test_prints_applied_and_rejected(self, capsys):
        system = deploy(verbose=False)
        system.engine.verbose = True
        fund(system, "user", "WETH", COLLATERAL_AMOUNT)
        deposit(system, "user", "WETH", COLLATERAL_AMOUNT)
        with pytest.raises(InvariantViolation):
            system.engine.mint_dsc("user", 100_000 * ETHER)
        out = capsys.readouterr().out
        assert "✓ APPLIED deposit_collateral(user, 10 WETH)" in out
        assert "✗ REJECTED mint_dsc(user, 100000): InvariantViolation" in out
