"""
ledger.py - Stateful Store for Balances, Records and the Audit Trail

The Ledger class is the central state manager of the bonding system.
It is the only module that mutates state, ensuring controlled and auditable changes.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by pure functions
    - Executes transactions atomically (all moves and record changes, or none)
    - Maintains wallet balances, asset definitions and keyed records
      (collateral entries, bond positions, epoch counters, aggregate totals)
    - Rejects record changes whose old_state no longer matches the store
    - Provides savepoints (atomic()) so multi-step operations can be unwound
    - Always validates and always logs - no exceptions
"""

from __future__ import annotations
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Set, Optional, Tuple, Any, Callable, Iterator
import copy
from decimal import Decimal

from .core import (
    # Types
    Move, Transaction, Asset,
    PendingTransaction,
    ExecuteResult,
    Positions, RecordState, BalanceMap,
    # Constants
    QUANTITY_EPSILON, SYSTEM_WALLET,
    # Exceptions
    LedgerError, InsufficientFunds, StaleState,
    AssetNotRegistered, WalletNotRegistered,
)


# Subscriber callback: receives every applied Transaction.
Subscriber = Callable[[Transaction], None]


class Ledger:
    """
    Double-entry store with full validation and audit trail.

    Implements the LedgerView protocol, allowing the ledger to be passed to pure
    functions that access only read-only methods.

    Design Principles:
        - Always validates: every transaction is checked against registration,
          balance limits, timestamps and the current value of every record it
          touches.
        - Always logs: every transaction is recorded in the audit trail, which
          drives savepoint rollback and clone_at().

    Thread Safety:
        Not thread-safe on its own. The BondingEngine serializes writers.

    Example:
        ledger = Ledger("main")
        ledger.register_asset(token("USDC", "USD Coin", decimals=6))
        ledger.register_wallet("alice")

        tx = build_transaction(ledger, [
            Move(Decimal("100"), "USDC", SYSTEM_WALLET, "alice", "faucet")
        ])
        result = ledger.execute(tx)
    """

    POSITION_EPSILON = QUANTITY_EPSILON

    def __init__(
        self,
        name: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_time: Starting time for the ledger (default: 1970-01-01)
            verbose: Print registrations and transaction results (default: True)
            test_mode: Allow set_balance() calls (default: False)
        """
        self.name = name
        self.balances: Dict[str, Dict[str, Decimal]] = {}
        self.assets: Dict[str, Asset] = {}
        self.records: Dict[str, RecordState] = {}
        self.registered_wallets: Set[str] = set()
        self.seen_intent_ids: Set[str] = set()
        self.transaction_log: List[Transaction] = []
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.verbose = verbose
        self._test_mode = test_mode
        self._next_sequence: int = 0
        self._subscribers: List[Subscriber] = []
        # Applied inside an open savepoint, published when the outermost one commits
        self._atomic_depth: int = 0
        self._unpublished: List[Transaction] = []
        # Inverted index mapping asset -> {wallet -> quantity}
        self._positions_by_asset: Dict[str, Dict[str, Decimal]] = defaultdict(dict)

        # Auto-register the system wallet (used for issuance/redemption)
        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(lambda: Decimal("0"))

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    def get_balance(self, wallet_id: str, asset: str) -> Decimal:
        """
        Get the balance of an asset in a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
            AssetNotRegistered: If asset is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if asset not in self.assets:
            raise AssetNotRegistered(f"Asset {asset} not registered")
        return self.balances[wallet_id].get(asset, Decimal("0"))

    @property
    def next_sequence(self) -> int:
        """Sequence number the next applied transaction will receive."""
        return self._next_sequence

    def get_record(self, key: str) -> Optional[RecordState]:
        """Deep copy of a stored record, or None if the key is unknown."""
        record = self.records.get(key)
        if record is None:
            return None
        return copy.deepcopy(record)

    def list_records(self, prefix: str = "") -> List[str]:
        """Sorted record keys starting with prefix."""
        return sorted(k for k in self.records if k.startswith(prefix))

    def get_asset(self, symbol: str) -> Asset:
        """Return the Asset definition for a given symbol."""
        if symbol not in self.assets:
            raise AssetNotRegistered(f"Asset {symbol} not registered")
        return self.assets[symbol]

    def get_positions(self, asset: str) -> Positions:
        """All non-zero holdings of an asset across wallets."""
        return dict(self._positions_by_asset.get(asset, {}))

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def get_wallet_balances(self, wallet_id: str) -> BalanceMap:
        """Get all balances for a wallet."""
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        return dict(self.balances[wallet_id])

    def total_supply(self, asset: str) -> Decimal:
        """
        Sum of an asset's balances across all wallets, system wallet included.

        Wallets are summed in sorted order for deterministic accumulation.
        """
        if asset not in self.assets:
            raise AssetNotRegistered(f"Asset {asset} not registered")
        return sum(
            (self.balances[w].get(asset, Decimal("0")) for w in sorted(self.registered_wallets)),
            Decimal("0"),
        )

    def verify_double_entry(
        self,
        expected_supplies: Dict[str, Decimal] = None,
        tolerance: Decimal = QUANTITY_EPSILON
    ) -> Dict[str, Any]:
        """
        Verify that conservation laws hold for all assets.

        Every move debits one wallet and credits another, so each asset's
        total across wallets (system wallet included) stays at zero unless
        set_balance() was used in test mode.

        Returns:
            Dict with 'valid', 'supplies' and 'discrepancies' keys.
        """
        supplies = {}
        discrepancies = []

        for asset in self.assets:
            current_supply = self.total_supply(asset)
            supplies[asset] = current_supply

            if expected_supplies and asset in expected_supplies:
                expected = expected_supplies[asset]
                difference = abs(current_supply - expected)
                if difference > tolerance:
                    discrepancies.append({
                        'asset': asset,
                        'expected': expected,
                        'actual': current_supply,
                        'difference': difference,
                    })

        if expected_supplies:
            for asset, expected in expected_supplies.items():
                if asset not in supplies:
                    discrepancies.append({
                        'asset': asset,
                        'expected': expected,
                        'actual': Decimal("0"),
                        'difference': abs(expected),
                        'error': 'asset not registered',
                    })

        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock. Time can only move forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

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
        self.balances[wallet_id] = defaultdict(lambda: Decimal("0"))
        return wallet_id

    def ensure_wallet(self, wallet_id: str) -> str:
        """Register a wallet if it is not registered yet."""
        if wallet_id not in self.registered_wallets:
            self.register_wallet(wallet_id)
        return wallet_id

    def register_asset(self, asset: Asset) -> None:
        """
        Register a new asset.

        Raises:
            ValueError: If asset symbol is already registered
        """
        if asset.symbol in self.assets:
            raise ValueError(f"Asset {asset.symbol} already registered")
        self.assets[asset.symbol] = asset
        if self.verbose:
            print(f"📝 Registered: {asset.symbol} ({asset.name}) [decimals={asset.decimals}]")

    def set_balance(self, wallet_id: str, asset: str, quantity: Decimal) -> None:
        """
        Set a wallet's balance directly.

        WARNING: bypasses double-entry accounting; only available in test mode.

        Raises:
            LedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode. "
                "Use build_transaction() and execute() to modify balances. "
                "Set test_mode=True when creating Ledger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if asset not in self.assets:
            raise AssetNotRegistered(f"Asset {asset} not registered")
        if not isinstance(quantity, Decimal):
            quantity = Decimal(str(quantity))
        self.balances[wallet_id][asset] = quantity
        self._update_position_index(wallet_id, asset, quantity)

    def subscribe(self, callback: Subscriber) -> None:
        """
        Register a callback invoked with every applied Transaction.

        Transactions applied inside atomic() are delivered only after the
        outermost savepoint exits cleanly; rolled-back ones are never delivered.
        """
        self._subscribers.append(callback)

    def _publish(self, transactions: List[Transaction]) -> None:
        for tx in transactions:
            for callback in self._subscribers:
                callback(tx)

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """
        Generate a unique execution ID.

        Format: exec:{ledger_name}:{sequence:012d}:{timestamp_micros}
        """
        micros = int(self._current_time.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    def execute(self, pending: PendingTransaction, strict: bool = False) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        All moves and record changes succeed together or all fail together.
        Execution is idempotent: a pending transaction with the same intent_id
        will not be applied twice.

        Args:
            pending: PendingTransaction to execute
            strict: Raise the typed LedgerError instead of returning REJECTED

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.ALREADY_APPLIED if transaction was already executed
            ExecuteResult.REJECTED if validation failed (non-strict only)
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED

        if pending.intent_id in self.seen_intent_ids:
            if self.verbose:
                print(f"⚠️  ALREADY_APPLIED: intent_id={pending.intent_id}")
            return ExecuteResult.ALREADY_APPLIED

        error = self._validate_pending(pending)
        if error is not None:
            if self.verbose:
                print(f"✗ REJECTED: {error}")
            if strict:
                raise error
            return ExecuteResult.REJECTED

        sequence = self._next_sequence
        self._next_sequence += 1
        exec_id = self._generate_exec_id(sequence)

        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=exec_id,
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
        )

        self._execute_moves(tx.moves)
        for sc in tx.state_changes:
            self._write_record(sc.key, sc.new_state)

        # Log transaction (always - audit trail is mandatory)
        self.transaction_log.append(tx)
        self.seen_intent_ids.add(pending.intent_id)

        if self.verbose:
            self._print_tx_result(tx, "APPLIED", "✓")
        if self._atomic_depth:
            self._unpublished.append(tx)
        else:
            self._publish([tx])
        return ExecuteResult.APPLIED

    def _print_tx_result(self, tx: Transaction, result: str, icon: str) -> None:
        """Print transaction details followed by a result line."""
        lines = repr(tx).split('\n')
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines[-1] = f"├{bar}┤"
        lines.append(f"│{pad(' ' + icon + ' ' + result)}│")
        lines.append(f"└{bar}┘")
        print("\n".join(lines))

    def _validate_pending(self, pending: PendingTransaction) -> Optional[LedgerError]:
        """
        Validate a pending transaction against all constraints.

        Checks performed:
        1. Timestamp validation (transaction must not be from the future)
        2. Asset and wallet registration
        3. Balance constraints (min balance, system wallet exempt)
        4. Record freshness: each change's old_state must equal the record
           as it stands at that point of the transaction

        Returns:
            None if valid, otherwise the LedgerError describing the failure.
        """
        if pending.timestamp > self._current_time:
            return LedgerError(
                f"future timestamp: {pending.timestamp} > {self._current_time}"
            )

        for move in pending.moves:
            if move.asset not in self.assets:
                return AssetNotRegistered(f"asset not registered: {move.asset}")
            if not self.is_registered(move.source):
                return WalletNotRegistered(f"wallet not registered: {move.source}")
            if not self.is_registered(move.dest):
                return WalletNotRegistered(f"wallet not registered: {move.dest}")

        net: Dict[Tuple[str, str], Decimal] = {}
        for move in pending.moves:
            asset = self.assets[move.asset]
            key_src = (move.source, move.asset)
            key_dst = (move.dest, move.asset)
            net[key_src] = asset.round(net.get(key_src, Decimal("0")) - move.quantity)
            net[key_dst] = asset.round(net.get(key_dst, Decimal("0")) + move.quantity)

        for (wallet, asset_sym), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            current = self.balances[wallet][asset_sym]
            asset = self.assets[asset_sym]
            proposed = asset.round(current + delta)
            if proposed < asset.min_balance:
                return InsufficientFunds(
                    f"{wallet} {asset_sym}: balance {current} cannot cover {-delta}"
                )

        working: Dict[str, Optional[RecordState]] = {}
        for sc in pending.state_changes:
            current = working[sc.key] if sc.key in working else self.records.get(sc.key)
            if sc.old_state != current:
                return StaleState(
                    f"record {sc.key} changed since the transaction was built"
                )
            working[sc.key] = sc.new_state

        return None

    def _write_record(self, key: str, state: Optional[RecordState]) -> None:
        if state is None:
            self.records.pop(key, None)
        else:
            self.records[key] = copy.deepcopy(state)

    def _update_position_index(self, wallet_id: str, asset: str, quantity: Decimal) -> None:
        """Keep the asset -> {wallet -> quantity} index in sync; dust is dropped."""
        if abs(quantity) > self.POSITION_EPSILON:
            self._positions_by_asset[asset][wallet_id] = quantity
        else:
            self._positions_by_asset[asset].pop(wallet_id, None)

    def _execute_moves(self, moves) -> None:
        """Apply moves to wallet balances with asset rounding."""
        for move in moves:
            asset = self.assets[move.asset]
            new_src_balance = asset.round(
                self.balances[move.source][move.asset] - move.quantity
            )
            self.balances[move.source][move.asset] = new_src_balance
            self._update_position_index(move.source, move.asset, new_src_balance)
            new_dst_balance = asset.round(
                self.balances[move.dest][move.asset] + move.quantity
            )
            self.balances[move.dest][move.asset] = new_dst_balance
            self._update_position_index(move.dest, move.asset, new_dst_balance)

    # ========================================================================
    # SAVEPOINTS
    # ========================================================================

    def _unwind(self, tx: Transaction) -> None:
        """Reverse one logged transaction's moves and record changes."""
        for move in reversed(tx.moves):
            asset = self.assets.get(move.asset)
            if asset is None:
                raise LedgerError(f"Cannot unwind: asset {move.asset} not found")
            new_src = asset.round(self.balances[move.source][move.asset] + move.quantity)
            new_dst = asset.round(self.balances[move.dest][move.asset] - move.quantity)
            self.balances[move.source][move.asset] = new_src
            self.balances[move.dest][move.asset] = new_dst
            self._update_position_index(move.source, move.asset, new_src)
            self._update_position_index(move.dest, move.asset, new_dst)

        for sc in reversed(tx.state_changes):
            self._write_record(sc.key, sc.old_state)

    def rollback_to(self, sequence: int) -> List[Transaction]:
        """
        Unwind every transaction with sequence_number >= sequence.

        Returns:
            The unwound transactions, most recent first.
        """
        unwound = []
        while self.transaction_log and self.transaction_log[-1].sequence_number >= sequence:
            tx = self.transaction_log.pop()
            self._unwind(tx)
            self.seen_intent_ids.discard(tx.intent_id)
            unwound.append(tx)
        self._next_sequence = sequence
        self._unpublished = [tx for tx in self._unpublished if tx.sequence_number < sequence]
        if self.verbose and unwound:
            print(f"↺ ROLLED BACK {len(unwound)} transaction(s) to sequence {sequence}")
        return unwound

    @contextmanager
    def atomic(self) -> Iterator[int]:
        """
        Savepoint scope: if the block raises, every transaction executed
        inside it is unwound before the exception propagates.

        Example:
            with ledger.atomic():
                ledger.execute(pull, strict=True)
                router.swap_exact_in(...)
                ledger.execute(commit, strict=True)
        """
        savepoint = self._next_sequence
        self._atomic_depth += 1
        try:
            yield savepoint
        except BaseException:
            self.rollback_to(savepoint)
            raise
        finally:
            self._atomic_depth -= 1
        if self._atomic_depth == 0:
            committed, self._unpublished = self._unpublished, []
            self._publish(committed)

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create a deep copy of this ledger.

        Subscribers are not carried over to the clone.
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned._current_time = self._current_time
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned._subscribers = []
        cloned._atomic_depth = 0
        cloned._unpublished = []

        cloned.assets = dict(self.assets)
        cloned.records = copy.deepcopy(self.records)
        cloned.registered_wallets = self.registered_wallets.copy()
        cloned.seen_intent_ids = self.seen_intent_ids.copy()
        cloned.transaction_log = list(self.transaction_log)
        cloned._next_sequence = self._next_sequence

        cloned.balances = {}
        for wallet, bals in self.balances.items():
            cloned.balances[wallet] = defaultdict(lambda: Decimal("0"), bals)

        cloned._positions_by_asset = defaultdict(dict)
        for asset, positions in self._positions_by_asset.items():
            cloned._positions_by_asset[asset] = dict(positions)

        return cloned

    def clone_at(self, target_time: datetime) -> Ledger:
        """
        Reconstruct the ledger as it existed at a past time.

        Clones the current state, then walks backward through transactions
        executed after target_time, restoring balances and old record states.

        Raises:
            ValueError: If target_time is in the future
        """
        if target_time > self._current_time:
            raise ValueError(f"Target time {target_time} is in the future")

        cloned = self.clone()
        cloned.verbose = False
        cloned._current_time = target_time

        for tx in reversed(self.transaction_log):
            if tx.execution_time <= target_time:
                break
            cloned._unwind(tx)

        cloned.transaction_log = [
            tx for tx in self.transaction_log
            if tx.execution_time <= target_time
        ]
        cloned.seen_intent_ids = {tx.intent_id for tx in cloned.transaction_log}
        cloned._next_sequence = len(cloned.transaction_log)
        cloned.verbose = self.verbose
        return cloned
