"""
token_ledger.py - Stateful Double-Entry Token Ledger

The TokenLedger holds the token balances the engine moves around: collateral
tokens and the stablecoin. It is the reference AssetTransferPort.

Key responsibilities:
    - Executes batches of moves atomically (all moves succeed or all fail)
    - Maintains wallet balances, token definitions and spending allowances
    - Issues and redeems supply through SYSTEM_WALLET
    - Always validates and always logs - no exceptions
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, List, Set, Tuple, Any, Iterable

from .core import (
    # Types
    Move, Transaction, Token, ExecuteResult, Positions,
    # Constants
    SYSTEM_WALLET,
    # Exceptions
    DSCError, UnitNotRegistered, WalletNotRegistered,
    # Helpers
    format_units,
)


class TokenLedger:
    """
    Double-entry token ledger with full validation and audit trail.

    Implements the AssetTransferPort protocol: transfer() and transfer_from()
    report success as a bool and never raise for insufficient balance or
    allowance.

    Design Principles:
        - Always validates: every batch is checked against registration and
          balance constraints before any move is applied.
        - Always logs: every applied batch is recorded in the transaction log.
        - Conservation: supply enters and leaves through SYSTEM_WALLET, so
          total_supply() of every token is always zero.

    Thread Safety:
        Not thread-safe. The engine serializes its own calls.

    Example:
        ledger = TokenLedger("main")
        ledger.register_token(Token("WETH", "Wrapped Ether"))
        ledger.register_wallet("alice")
        ledger.register_wallet("bob")
        ledger.issue("WETH", "alice", 10**18)
        ledger.transfer("WETH", "alice", "bob", 10**17)
    """

    def __init__(self, name: str, verbose: bool = True, test_mode: bool = False):
        """
        Create a token ledger.

        Args:
            name: Ledger identifier
            verbose: Enable debug output (default: True)
            test_mode: Enable test mode to allow set_balance() calls (default: False)
        """
        self.name = name
        self.balances: Dict[str, Dict[str, int]] = {}
        self.tokens: Dict[str, Token] = {}
        self.registered_wallets: Set[str] = set()
        self.allowances: Dict[Tuple[str, str, str], int] = {}
        self.transaction_log: List[Transaction] = []
        self.verbose = verbose
        self._test_mode = test_mode
        self._next_sequence: int = 0
        # Inverted index mapping token -> {wallet -> quantity} for O(1) position lookups
        self._positions_by_unit: Dict[str, Dict[str, int]] = defaultdict(dict)

        # Auto-register the system wallet (used for issuance/redemption)
        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(int)

    # ========================================================================
    # READ-ONLY METHODS
    # ========================================================================

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """
        Get the balance of a token in a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
            UnitNotRegistered: If token is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.tokens:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self.balances[wallet_id].get(unit_symbol, 0)

    def get_positions(self, unit_symbol: str) -> Positions:
        """Get all non-zero positions for a token across all wallets, SYSTEM_WALLET included."""
        return dict(self._positions_by_unit.get(unit_symbol, {}))

    def get_token(self, symbol: str) -> Token:
        """Return the Token definition for a given symbol."""
        if symbol not in self.tokens:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        return self.tokens[symbol]

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def list_tokens(self) -> List[str]:
        """List all registered token symbols."""
        return sorted(self.tokens.keys())

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    def allowance(self, owner: str, spender: str, unit_symbol: str) -> int:
        """Remaining amount spender may move out of owner's wallet."""
        return self.allowances.get((owner, spender, unit_symbol), 0)

    def total_supply(self, unit_symbol: str) -> int:
        """
        Sum of a token's balances across all wallets, SYSTEM_WALLET included.

        Issuance debits SYSTEM_WALLET, so this is zero whenever the
        double-entry invariant holds.

        Raises:
            UnitNotRegistered: If token is not registered
        """
        if unit_symbol not in self.tokens:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return sum(self.balances[w].get(unit_symbol, 0) for w in sorted(self.registered_wallets))

    def circulating_supply(self, unit_symbol: str) -> int:
        """Amount of a token held outside SYSTEM_WALLET."""
        return -self.get_balance(SYSTEM_WALLET, unit_symbol)

    def verify_double_entry(self) -> Dict[str, Any]:
        """
        Verify that conservation holds for all tokens.

        Returns:
            Dict with keys:
            - 'valid': bool - True if every token sums to zero
            - 'supplies': Dict[str, int] - Circulating supply of each token
            - 'discrepancies': List[Dict] - unit and total of each violation

        Example:
            result = ledger.verify_double_entry()
            assert result['valid'], f"Conservation violated: {result['discrepancies']}"
        """
        supplies = {}
        discrepancies = []
        for unit_symbol in self.tokens:
            supplies[unit_symbol] = self.circulating_supply(unit_symbol)
            total = self.total_supply(unit_symbol)
            if total != 0:
                discrepancies.append({'unit': unit_symbol, 'total': total})
        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Register a new wallet in the ledger.

        Raises:
            ValueError: If wallet is already registered
        """
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(int)
        return wallet_id

    def register_token(self, token: Token) -> None:
        """
        Register a new token.

        If verbose mode is enabled, prints registration confirmation.

        Raises:
            ValueError: If token symbol is already registered
        """
        if token.symbol in self.tokens:
            raise ValueError(f"Unit {token.symbol} already registered")
        self.tokens[token.symbol] = token
        if self.verbose:
            print(f"📝 Registered: {token.symbol} ({token.name}) [{token.decimals} decimals]")

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: int) -> None:
        """
        Set a wallet's balance directly.

        WARNING: This bypasses double-entry accounting and is only available in
        test mode. Use issue() or execute() in production.

        Raises:
            DSCError: If called when test_mode is False
        """
        if not self._test_mode:
            raise DSCError(
                "set_balance() is disabled in production mode. "
                "Use issue() or execute() to modify balances. "
                "Set test_mode=True when creating TokenLedger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.tokens:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        self.balances[wallet_id][unit_symbol] = quantity
        self._update_position_index(wallet_id, unit_symbol, quantity)

    def approve(self, owner: str, spender: str, unit_symbol: str, quantity: int) -> None:
        """
        Allow spender to move up to quantity of owner's tokens via transfer_from().

        Overwrites any previous allowance.

        Raises:
            WalletNotRegistered: If owner is not registered
            UnitNotRegistered: If token is not registered
            ValueError: If quantity is negative
        """
        if owner not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {owner} not registered")
        if unit_symbol not in self.tokens:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        if quantity < 0:
            raise ValueError(f"Allowance cannot be negative, got {quantity}")
        self.allowances[(owner, spender, unit_symbol)] = quantity

    # ========================================================================
    # TRANSFERS (AssetTransferPort)
    # ========================================================================

    def transfer(self, unit_symbol: str, source: str, dest: str, quantity: int) -> bool:
        """Move quantity from source to dest. Returns False if rejected."""
        try:
            move = Move(quantity, unit_symbol, source, dest, "transfer")
        except ValueError:
            return False
        return self.execute([move]) == ExecuteResult.APPLIED

    def transfer_from(
        self, unit_symbol: str, spender: str, source: str, dest: str, quantity: int
    ) -> bool:
        """
        Move quantity from source to dest on behalf of spender.

        Consumes spender's allowance on source only if the move is applied.
        """
        allowed = self.allowance(source, spender, unit_symbol)
        if quantity > allowed:
            if self.verbose:
                print(f"✗ REJECTED: {spender} allowance {allowed} < {quantity} {unit_symbol} from {source}")
            return False
        if not self.transfer(unit_symbol, source, dest, quantity):
            return False
        self.allowances[(source, spender, unit_symbol)] = allowed - quantity
        return True

    def issue(self, unit_symbol: str, dest: str, quantity: int) -> bool:
        """Create supply by moving it out of SYSTEM_WALLET."""
        return self.transfer(unit_symbol, SYSTEM_WALLET, dest, quantity)

    def redeem(self, unit_symbol: str, source: str, quantity: int) -> bool:
        """Destroy supply by moving it back into SYSTEM_WALLET."""
        return self.transfer(unit_symbol, source, SYSTEM_WALLET, quantity)

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def execute(self, moves: Iterable[Move]) -> ExecuteResult:
        """
        Execute a batch of moves atomically.

        All moves are validated against registration and balance constraints
        before any of them is applied.

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.REJECTED if validation failed (nothing applied)
        """
        moves = tuple(moves)
        if not moves:
            return ExecuteResult.APPLIED

        valid, reason = self._validate_moves(moves)
        if not valid:
            if self.verbose:
                print(f"✗ REJECTED: {reason}")
            return ExecuteResult.REJECTED

        sequence = self._next_sequence
        self._next_sequence += 1
        tx = Transaction(
            moves=moves,
            sequence_number=sequence,
            exec_id=f"exec:{self.name}:{sequence:012d}",
        )
        self._execute_moves(tx.moves)
        self.transaction_log.append(tx)

        if self.verbose:
            for move in tx.moves:
                decimals = self.tokens[move.unit_symbol].decimals
                print(f"✓ {tx.exec_id} {format_units(move.quantity, decimals)} "
                      f"{move.unit_symbol}: {move.source} → {move.dest}")
        return ExecuteResult.APPLIED

    def _validate_moves(self, moves: Tuple[Move, ...]) -> Tuple[bool, str]:
        """
        Validate moves against all constraints.

        Checks performed:
        1. Token and wallet registration
        2. Balance constraints on the net change per (wallet, token)

        Returns:
            Tuple of (success, reason); reason is empty on success
        """
        for move in moves:
            if move.unit_symbol not in self.tokens:
                return False, f"unit not registered: {move.unit_symbol}"
            if not self.is_registered(move.source):
                return False, f"wallet not registered: {move.source}"
            if not self.is_registered(move.dest):
                return False, f"wallet not registered: {move.dest}"

        net: Dict[Tuple[str, str], int] = defaultdict(int)
        for move in moves:
            net[(move.source, move.unit_symbol)] -= move.quantity
            net[(move.dest, move.unit_symbol)] += move.quantity

        # SYSTEM_WALLET is exempt from balance validation
        for (wallet, unit_sym), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            proposed = self.balances[wallet][unit_sym] + delta
            minimum = self.tokens[unit_sym].min_balance
            if proposed < minimum:
                return False, f"{wallet} {unit_sym}: {proposed} < min {minimum}"

        return True, ""

    def _update_position_index(self, wallet_id: str, unit_symbol: str, quantity: int) -> None:
        """Keep the token -> wallet index in sync; zero balances are dropped."""
        if quantity != 0:
            self._positions_by_unit[unit_symbol][wallet_id] = quantity
        else:
            self._positions_by_unit[unit_symbol].pop(wallet_id, None)

    def _execute_moves(self, moves: Tuple[Move, ...]) -> None:
        """Apply moves to wallet balances and update the position index."""
        for move in moves:
            new_src_balance = self.balances[move.source][move.unit_symbol] - move.quantity
            self.balances[move.source][move.unit_symbol] = new_src_balance
            self._update_position_index(move.source, move.unit_symbol, new_src_balance)
            new_dst_balance = self.balances[move.dest][move.unit_symbol] + move.quantity
            self.balances[move.dest][move.unit_symbol] = new_dst_balance
            self._update_position_index(move.dest, move.unit_symbol, new_dst_balance)
