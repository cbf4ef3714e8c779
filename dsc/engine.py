"""
engine.py - The stablecoin engine

DSCEngine keeps the stablecoin overcollateralized. Users deposit supported
collateral, mint stablecoin against it, and get it back by burning; accounts
that fall below the minimum health factor can be liquidated by anyone
holding stablecoin, who is paid in the account's collateral plus a bonus.

Execution of every public operation:
    1. Acquire the engine guard (re-entrant calls raise ReentrancyError)
    2. Mutate the collateral and debt ledgers under a Journal
    3. Validate health factors against fresh prices
    4. Settle external calls: pull tokens in, burn, then pay out
    5. Commit: publish events to event_log

Any exception in steps 2-4 undoes the journal and compensates the external
calls already settled, so a failed operation leaves no trace. If a compensation
fails in turn, the others still run and the journal is still rolled back;
the failure becomes the __cause__ of the original error.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple
import threading

from .core import (
    # Types
    PriceFeed, AssetTransferPort, SupplyAuthority, RiskParameters,
    CollateralDeposited, CollateralRedeemed, EngineEvent,
    # Constants
    PRECISION, ADDITIONAL_FEED_PRECISION, FEED_DECIMALS,
    # Exceptions
    ValidationError, InvariantViolation, TransferFailure, MintFailure,
    LiquidationPrecondition, LiquidationIneffective, ReentrancyError,
    # Helpers
    format_units,
)
from .accounts import CollateralLedger, DebtLedger, Journal
from .valuation import (
    ValuationService, HealthFactorCalculator,
    calculate_health_factor, calculate_liquidation_seizure,
)


class _Guard:
    """
    Non-reentrant lock around engine entry points.

    A second entry from the thread already inside the engine is rejected;
    entries from other threads wait, so operations never interleave.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._owner: Optional[int] = None

    @contextmanager
    def held(self, entry_point: str) -> Iterator[None]:
        me = threading.get_ident()
        if self._owner == me:
            raise ReentrancyError(f"re-entrant call to {entry_point}")
        with self._lock:
            self._owner = me
            try:
                yield
            finally:
                self._owner = None


class _Operation:
    """
    Unit of work for one engine operation.

    External calls are queued while the ledgers are being mutated and run in
    settle(). Calls registered with interact() run first and may carry a
    compensation; payouts run last and have none, so an operation makes at
    most one payout.
    """

    def __init__(self, description: str):
        self.description = description
        self.journal = Journal()
        self.events: List[EngineEvent] = []
        self._interactions: List[Tuple[Callable[[], None], Optional[Callable[[], None]]]] = []
        self._payouts: List[Callable[[], None]] = []
        self._compensations: List[Callable[[], None]] = []

    def emit(self, event: EngineEvent) -> None:
        self.events.append(event)

    def interact(self, call: Callable[[], None], compensate: Optional[Callable[[], None]] = None) -> None:
        self._interactions.append((call, compensate))

    def payout(self, call: Callable[[], None]) -> None:
        self._payouts.append(call)

    def settle(self) -> None:
        for call, compensate in self._interactions:
            call()
            if compensate is not None:
                self._compensations.append(compensate)
        for call in self._payouts:
            call()

    def unwind(self) -> Optional[Exception]:
        """
        Compensate settled calls newest-first, then restore the ledgers.

        Every compensation is attempted even if an earlier one fails, and the
        journal is always rolled back.

        Returns:
            The first exception raised by a compensation, or None
        """
        failure: Optional[Exception] = None
        try:
            while self._compensations:
                try:
                    self._compensations.pop()()
                except Exception as exc:
                    if failure is None:
                        failure = exc
        finally:
            self.journal.rollback()
        return failure


class DSCEngine:
    """
    Collateralized-debt engine for a USD-pegged stablecoin.

    The engine holds the only supply authority of its stablecoin and custody
    of all deposited collateral (in the wallet named by the authority's
    holder). Collateral and debt bookkeeping lives in ledgers the engine
    owns exclusively.

    Example:
        engine = DSCEngine(["WETH", "WBTC"], [eth_feed, btc_feed], authority, ledger)
        ledger.approve("alice", engine.address, "WETH", 10 * 10**18)
        engine.deposit_collateral_and_mint_dsc("alice", "WETH", 10 * 10**18, 100 * 10**18)
    """

    def __init__(
        self,
        collateral_assets: Sequence[str],
        price_feeds: Sequence[PriceFeed],
        authority: SupplyAuthority,
        transfer_port: AssetTransferPort,
        params: RiskParameters = RiskParameters(),
        verbose: bool = True,
    ):
        """
        Create an engine.

        Args:
            collateral_assets: Supported collateral token symbols
            price_feeds: One 8-decimal USD price feed per asset, same order
            authority: Stablecoin mint/burn grant; its holder is the engine's wallet
            transfer_port: Moves collateral and stablecoin between wallets
            params: Risk parameters
            verbose: Print one line per applied or rejected operation

        Raises:
            ValidationError: On mismatched, empty or duplicate assets, or a feed
                that does not report at 8 decimals
        """
        collateral_assets = tuple(collateral_assets)
        price_feeds = tuple(price_feeds)
        if len(collateral_assets) != len(price_feeds):
            raise ValidationError(
                "token addresses and price feed addresses must be the same length: "
                f"{len(collateral_assets)} != {len(price_feeds)}"
            )
        for asset, feed in zip(collateral_assets, price_feeds):
            if feed.decimals != FEED_DECIMALS:
                raise ValidationError(
                    f"price feed for {asset} reports {feed.decimals} decimals, expected {FEED_DECIMALS}"
                )

        self.params = params
        self.verbose = verbose
        self.address = authority.holder
        self.event_log: List[EngineEvent] = []
        self._authority = authority
        self._port = transfer_port
        self._dsc = authority.token_symbol
        self._collateral = CollateralLedger(collateral_assets)
        self._debts = DebtLedger()
        self._feeds: Dict[str, PriceFeed] = dict(zip(collateral_assets, price_feeds))
        self._valuation = ValuationService(self._feeds, self._collateral)
        self._health = HealthFactorCalculator(self._valuation, self._debts, params)
        self._guard = _Guard()

    # ========================================================================
    # MUTATING ENTRY POINTS
    # ========================================================================

    def deposit_collateral(self, caller: str, asset: str, amount: int) -> None:
        """
        Deposit collateral into engine custody.

        The caller must have approved the engine to move amount of asset.

        Raises:
            ValidationError: amount not positive or asset unsupported
            TransferFailure: the transfer into custody was rejected
        """
        with self._operation(f"deposit_collateral({caller}, {format_units(amount)} {asset})") as op:
            self._deposit(op, caller, asset, amount)

    def mint_dsc(self, caller: str, amount: int) -> None:
        """
        Mint stablecoin against the caller's collateral.

        Raises:
            ValidationError: amount not positive
            InvariantViolation: the new debt would break the caller's health factor
            MintFailure: the stablecoin refused to mint
        """
        with self._operation(f"mint_dsc({caller}, {format_units(amount)})") as op:
            self._mint(op, caller, amount)

    def deposit_collateral_and_mint_dsc(
        self, caller: str, asset: str, amount: int, mint_amount: int
    ) -> None:
        """Deposit collateral and mint stablecoin in one operation."""
        description = (
            f"deposit_collateral_and_mint_dsc({caller}, {format_units(amount)} {asset}, "
            f"{format_units(mint_amount)})"
        )
        with self._operation(description) as op:
            self._deposit(op, caller, asset, amount)
            self._mint(op, caller, mint_amount)

    def redeem_collateral(self, caller: str, asset: str, amount: int) -> None:
        """
        Withdraw collateral back to the caller.

        Raises:
            ValidationError: amount not positive or asset unsupported
            StateUnderflow: amount exceeds the caller's deposit
            InvariantViolation: the withdrawal would break the caller's health factor
            TransferFailure: the payout was rejected
        """
        with self._operation(f"redeem_collateral({caller}, {format_units(amount)} {asset})") as op:
            self._redeem(op, asset, amount, caller, caller)
            self._revert_if_health_factor_is_broken(caller)

    def burn_dsc(self, caller: str, amount: int) -> None:
        """
        Repay debt by burning the caller's stablecoin.

        The caller must have approved the engine to move amount of stablecoin.

        Raises:
            ValidationError: amount not positive
            StateUnderflow: amount exceeds the caller's debt
            TransferFailure: the stablecoin could not be pulled from the caller
        """
        with self._operation(f"burn_dsc({caller}, {format_units(amount)})") as op:
            self._burn(op, amount, caller, caller)
            self._revert_if_health_factor_is_broken(caller)

    def redeem_collateral_for_dsc(
        self, caller: str, asset: str, amount: int, burn_amount: int
    ) -> None:
        """Burn stablecoin and redeem collateral in one operation."""
        description = (
            f"redeem_collateral_for_dsc({caller}, {format_units(amount)} {asset}, "
            f"{format_units(burn_amount)})"
        )
        with self._operation(description) as op:
            self._burn(op, burn_amount, caller, caller)
            self._redeem(op, asset, amount, caller, caller)
            self._revert_if_health_factor_is_broken(caller)

    def liquidate(self, liquidator: str, asset: str, account: str, debt_to_cover: int) -> None:
        """
        Repay part of an undercollateralized account's debt in exchange for its collateral.

        The liquidator burns debt_to_cover of its own stablecoin and receives
        the same USD value of asset plus the liquidation bonus.

        Raises:
            ValidationError: debt_to_cover not positive or too small to seize any
                collateral, or asset unsupported
            LiquidationPrecondition: the account's health factor is OK
            StateUnderflow: the account lacks the collateral or debt to cover
            LiquidationIneffective: the account's health factor did not improve
            InvariantViolation: the liquidator's own health factor would be broken
            TransferFailure: the liquidator's stablecoin could not be pulled
        """
        description = f"liquidate({liquidator}, {account}, {format_units(debt_to_cover)} via {asset})"
        with self._operation(description) as op:
            if debt_to_cover <= 0:
                raise ValidationError(f"debt_to_cover must be more than zero, got {debt_to_cover}")
            self._collateral.require_supported(asset)

            starting_health_factor = self._health.health_factor(account)
            if starting_health_factor >= self.params.min_health_factor:
                raise LiquidationPrecondition(
                    f"health factor is OK for {account}: {starting_health_factor}"
                )

            total_seized = calculate_liquidation_seizure(
                self._valuation.price(asset), debt_to_cover, self.params
            )
            if total_seized == 0:
                raise ValidationError(f"debt_to_cover {debt_to_cover} is too small to seize any {asset}")
            self._redeem(op, asset, total_seized, account, liquidator)
            self._burn(op, debt_to_cover, account, liquidator)

            ending_health_factor = self._health.health_factor(account)
            if ending_health_factor <= starting_health_factor:
                raise LiquidationIneffective(starting_health_factor, ending_health_factor)
            self._revert_if_health_factor_is_broken(liquidator)

    # ========================================================================
    # QUERIES (never mutate)
    # ========================================================================

    def get_usd_value(self, asset: str, amount: int) -> int:
        with self._guard.held("get_usd_value"):
            return self._valuation.usd_value(asset, amount)

    def get_token_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        with self._guard.held("get_token_amount_from_usd"):
            return self._valuation.token_amount_from_usd(asset, usd_amount)

    def get_account_collateral_value(self, account: str) -> int:
        with self._guard.held("get_account_collateral_value"):
            return self._valuation.account_collateral_value(account)

    def get_account_information(self, account: str) -> Tuple[int, int]:
        """Return (total_dsc_minted, collateral_value_in_usd)."""
        with self._guard.held("get_account_information"):
            return self._health.account_information(account)

    def get_health_factor(self, account: str) -> int:
        with self._guard.held("get_health_factor"):
            return self._health.health_factor(account)

    def calculate_health_factor(self, total_dsc_minted: int, collateral_value_usd: int) -> int:
        return calculate_health_factor(total_dsc_minted, collateral_value_usd, self.params)

    def get_collateral_balance_of_user(self, account: str, asset: str) -> int:
        with self._guard.held("get_collateral_balance_of_user"):
            return self._collateral.balance(account, asset)

    def get_collateral_tokens(self) -> List[str]:
        return list(self._collateral.supported_assets)

    def get_collateral_token_price_feed(self, asset: str) -> PriceFeed:
        return self._valuation.price_feed(asset)

    def get_dsc(self) -> str:
        return self._dsc

    def get_total_debt(self) -> int:
        with self._guard.held("get_total_debt"):
            return self._debts.total_debt()

    def get_accounts(self) -> List[str]:
        """Every account holding collateral or debt."""
        with self._guard.held("get_accounts"):
            return sorted(self._collateral.accounts() | self._debts.accounts())

    def get_precision(self) -> int:
        return PRECISION

    def get_additional_feed_precision(self) -> int:
        return ADDITIONAL_FEED_PRECISION

    def get_liquidation_threshold(self) -> int:
        return self.params.liquidation_threshold

    def get_liquidation_bonus(self) -> int:
        return self.params.liquidation_bonus

    def get_liquidation_precision(self) -> int:
        return self.params.liquidation_precision

    def get_min_health_factor(self) -> int:
        return self.params.min_health_factor

    # ========================================================================
    # INTERNAL STEPS
    # ========================================================================

    @contextmanager
    def _operation(self, description: str) -> Iterator[_Operation]:
        """Run one all-or-nothing operation under the guard."""
        with self._guard.held(description):
            op = _Operation(description)
            try:
                with self._collateral.recording(op.journal), self._debts.recording(op.journal):
                    yield op
                op.settle()
            except Exception as exc:
                compensation_failure = op.unwind()
                if self.verbose:
                    print(f"✗ REJECTED {description}: {type(exc).__name__}: {exc}")
                if compensation_failure is not None:
                    raise exc from compensation_failure
                raise
            self.event_log.extend(op.events)
            if self.verbose:
                print(f"✓ APPLIED {description}")

    def _deposit(self, op: _Operation, caller: str, asset: str, amount: int) -> None:
        self._collateral.deposit(caller, asset, amount)
        op.emit(CollateralDeposited(caller, asset, amount))
        op.interact(
            lambda: self._pull(asset, caller, amount),
            lambda: self._push(asset, caller, amount),
        )

    def _mint(self, op: _Operation, caller: str, amount: int) -> None:
        self._debts.increase(caller, amount)
        self._revert_if_health_factor_is_broken(caller)
        op.payout(lambda: self._issue(caller, amount))

    def _redeem(self, op: _Operation, asset: str, amount: int, redeemed_from: str, redeemed_to: str) -> None:
        self._collateral.withdraw(redeemed_from, asset, amount)
        op.emit(CollateralRedeemed(redeemed_from, redeemed_to, asset, amount))
        op.payout(lambda: self._push(asset, redeemed_to, amount))

    def _burn(self, op: _Operation, amount: int, on_behalf_of: str, dsc_from: str) -> None:
        """Retire on_behalf_of's debt with stablecoin pulled from dsc_from."""
        self._debts.decrease(on_behalf_of, amount)
        op.interact(
            lambda: self._pull(self._dsc, dsc_from, amount),
            lambda: self._push(self._dsc, dsc_from, amount),
        )
        op.interact(
            lambda: self._authority.burn(self.address, amount),
            lambda: self._issue(self.address, amount),
        )

    def _revert_if_health_factor_is_broken(self, account: str) -> None:
        health_factor = self._health.health_factor(account)
        if health_factor < self.params.min_health_factor:
            raise InvariantViolation(health_factor, account)

    def _pull(self, asset: str, source: str, amount: int) -> None:
        if not self._port.transfer_from(asset, self.address, source, self.address, amount):
            raise TransferFailure(f"transfer of {amount} {asset} from {source} failed")

    def _push(self, asset: str, dest: str, amount: int) -> None:
        if not self._port.transfer(asset, self.address, dest, amount):
            raise TransferFailure(f"transfer of {amount} {asset} to {dest} failed")

    def _issue(self, to: str, amount: int) -> None:
        if not self._authority.mint(to, amount):
            raise MintFailure(f"mint of {amount} {self._dsc} to {to} failed")
