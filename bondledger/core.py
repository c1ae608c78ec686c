"""
Core types and pure functions for the bonding ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access
2. Immutable data structures: Move, StateChange, PendingTransaction, Transaction, Asset
3. Exceptions: BondingError and the policy / upstream / ledger error families
4. Type aliases: Positions, BalanceMap, RecordState
5. Asset factories: Functions to create standard asset definitions

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_EVEN, getcontext
from enum import Enum
import copy
import hashlib
from typing import (
    Dict, List, Optional, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable,
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Valuation and discount arithmetic must be deterministic. The global context
# is configured once at import time.
#
# PRECONDITION: No other code should modify the global Decimal context.
# If thread-local contexts are needed, use decimal.localcontext().
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 78
_LEDGER_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and redemption.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

# 10,000 bps = 100%
BPS_DENOMINATOR = 10_000

# Common fixed-point scale for prices, reserves and intermediate values.
WAD = 10 ** 18
WAD_DECIMALS = 18

# Upper bound on positions touched by a single claim call.
MAX_POSITIONS_PER_CLAIM = 50

# Quantities with absolute value below this threshold are treated as zero.
QUANTITY_EPSILON = Decimal("1e-18")

# Default decimal precision for fungible token amounts.
DEFAULT_TOKEN_DECIMALS = 18

# Record key prefixes (records are stored as state dicts inside the ledger)
RECORD_CONFIG = "config"
RECORD_TIERS = "tiers"
RECORD_EPOCH = "epoch"
RECORD_TOTALS = "totals"
COLLATERAL_PREFIX = "collateral:"
POSITION_PREFIX = "position:"
ACCOUNT_PREFIX = "account:"
EPOCH_ACCOUNT_PREFIX = "epoch_account:"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific asset.
Positions = Dict[str, Decimal]

# Mapping from asset symbol to quantity held in a single wallet.
BalanceMap = Dict[str, Decimal]

# Stored state of a ledger record (collateral entry, position, epoch, ...).
RecordState = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Registry, valuation, vesting and epoch functions accept a LedgerView to
    declare their read-only intent. The Ledger class implements this protocol
    but also provides mutation methods. For testing, FakeView provides a truly
    immutable implementation.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def get_balance(self, wallet_id: str, asset: str) -> Decimal:
        """Return the balance of a specific asset in a wallet."""
        ...

    def get_record(self, key: str) -> Optional[RecordState]:
        """
        Return a copy of a stored record, or None if the key is unknown.

        The returned dictionary can be mutated freely by the caller.
        """
        ...

    def get_asset(self, symbol: str) -> 'Asset':
        """Return the Asset definition for a given symbol."""
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was validated and applied to the ledger.
    ALREADY_APPLIED: Transaction ID was previously processed (idempotent behavior).
    REJECTED: Transaction failed validation.
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"           # Caller-initiated bond / claim
    ADMIN = "admin"                       # Owner-gated registry change
    ENGINE = "engine"                     # Bonding engine bookkeeping
    SYSTEM = "system"                     # Issuance, initial setup
    EXTERNAL = "external"                 # Swap router, mint authority


# ============================================================================
# EXCEPTIONS
# ============================================================================

class BondingError(Exception):
    """Base exception for all bonding ledger errors."""
    pass


class PolicyViolation(BondingError):
    """A request violated a registry, capacity or rate-limit policy."""
    pass


class NotWhitelisted(PolicyViolation):
    """Raised when the collateral asset is not on the whitelist."""
    pass


class CapacityExceeded(PolicyViolation):
    """Raised when a bond would push total_bonded above max_capacity."""
    pass


class ExceedsMaxBond(PolicyViolation):
    """Raised when a bond would exceed the account's per-epoch cap."""
    pass


class BondTooSmall(PolicyViolation):
    """Raised when the collateral value is below the minimum bond threshold."""
    pass


class SlippageExceeded(PolicyViolation):
    """Raised when the native amount out is below the caller's minimum."""
    pass


class TooManyPositions(PolicyViolation):
    """Raised when a claim would touch more positions than allowed per call."""
    pass


class Unauthorized(PolicyViolation):
    """Raised when a non-owner attempts an owner-gated operation."""
    pass


class UnknownPosition(PolicyViolation):
    """Raised when a position id does not belong to the account."""
    pass


class ReentrantCall(PolicyViolation):
    """Raised when an engine operation is entered while another is in flight on the same thread."""
    pass


class UpstreamDataError(BondingError):
    """An external collaborator returned unusable data."""
    pass


class InvalidPrice(UpstreamDataError):
    """Raised when a price feed reports a non-positive or invalid price."""
    pass


class StalePrice(InvalidPrice):
    """Raised when a price reading is older than the configured max age."""
    pass


class MissingPriceFeed(InvalidPrice):
    """Raised when an asset has no feed and is not configured as base-pegged."""
    pass


class InvalidPoolState(UpstreamDataError):
    """Raised when pool reserves or share supply cannot be valued."""
    pass


class SwapFailed(UpstreamDataError):
    """Raised when the swap router cannot complete a conversion."""
    pass


class NothingToClaim(BondingError):
    """Raised when a claim finds nothing vested and unclaimed."""
    pass


class LedgerError(BondingError):
    """Base exception for storage and transfer errors."""
    pass


class InsufficientFunds(LedgerError):
    """Raised when a move would cause a wallet balance to fall below the asset's minimum."""
    pass


class TransferError(LedgerError):
    """Raised when an asset transfer cannot be applied."""
    pass


class MintFailed(TransferError):
    """Raised when the minting authority refuses to issue native units."""
    pass


class StaleState(LedgerError):
    """Raised when a record changed between validation and commit."""
    pass


class AssetNotRegistered(LedgerError):
    """Raised when operating on an asset that has not been registered with the ledger."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when operating on a wallet that has not been registered with the ledger."""
    pass


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Identifier of the specific source (account, owner, component)
        asset: Asset the transaction concerns (if applicable)
        event_type: Specific event (e.g. "BOND", "CLAIM", "COLLATERAL_ADDED")
        request_id: Caller-assigned key; two requests with identical content
            but different request ids are distinct intents
    """
    origin_type: OriginType
    source_id: str
    asset: Optional[str] = None
    event_type: Optional[str] = None
    request_id: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.asset:
            parts.append(f"asset={self.asset}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        if self.request_id:
            parts.append(f"request={self.request_id}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class StateChange:
    """
    Record of a ledger record change, stored with full before/after snapshots.

    old_state is None when the record is being created; new_state is None
    when the record is being removed.

    Attributes:
        key: Record key (e.g. "collateral:USDC", "position:alice:0")
        old_state: Complete record before the change (dict or None)
        new_state: Complete record after the change (dict or None)
    """
    key: str
    old_state: Optional[RecordState]
    new_state: Optional[RecordState]

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Fields that differ between old and new state as (old, new) pairs."""
        old = self.old_state if isinstance(self.old_state, dict) else {}
        new = self.new_state if isinstance(self.new_state, dict) else {}
        changes = {}
        for key in set(old.keys()) | set(new.keys()):
            old_val = old.get(key)
            new_val = new.get(key)
            if old_val != new_val:
                changes[key] = (old_val, new_val)
        return changes


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of an asset between two wallets.

    Attributes:
        quantity: The amount to transfer (must be finite and positive).
        asset: The symbol of the asset being transferred.
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        reference: Identifier of the operation generating this move.
    """
    quantity: Decimal
    asset: str
    source: str
    dest: str
    reference: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.asset or not self.asset.strip():
            raise ValueError("Move asset cannot be empty")
        if not self.reference or not self.reference.strip():
            raise ValueError("Move reference cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity)}")
        if self.quantity.is_infinite() or self.quantity.is_nan():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.asset}: {self.source}→{self.dest})"


def _normalize_decimal(d: Decimal) -> str:
    """
    Normalize a Decimal to a canonical string representation.

    Decimal("1.0") and Decimal("1.00") both become "1".
    """
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Independent of dict insertion order and Decimal representation.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return f"E:{value.value}"
    if isinstance(value, Decimal):
        return f"D:{_normalize_decimal(value)}"
    if isinstance(value, (int, float)):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    if isinstance(value, set):
        serialized = ",".join(_canonicalize(item) for item in sorted(value, key=str))
        return f"<{serialized}>"
    return f"R:{repr(value)}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[StateChange, ...],
    origin: TransactionOrigin,
) -> str:
    """
    Compute a deterministic content hash for a transaction's intent.

    Same inputs always produce the same intent_id. Used for idempotency.
    """
    sorted_moves = tuple(sorted(
        moves,
        key=lambda m: (_normalize_decimal(m.quantity), m.asset, m.source, m.dest, m.reference)
    ))

    content_parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    if origin.asset:
        content_parts.append(f"asset:{origin.asset}")
    if origin.event_type:
        content_parts.append(f"event:{origin.event_type}")
    if origin.request_id:
        content_parts.append(f"request:{origin.request_id}")

    for m in sorted_moves:
        qty = _normalize_decimal(m.quantity)
        content_parts.append(f"move:{qty}|{m.asset}|{m.source}|{m.dest}|{m.reference}")

    # Order of state changes within a transaction is significant for records
    # that appear more than once, so they are hashed in submission order.
    for sc in state_changes:
        content_parts.append(
            f"state_change:{sc.key}|{_canonicalize(sc.old_state)}|{_canonicalize(sc.new_state)}"
        )

    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction before execution - represents INTENT.

    Created by registry, vesting and engine functions and submitted to the
    ledger for execution.

    Attributes:
        moves: Tuple of asset transfers between wallets
        state_changes: Tuple of record changes (with old_state and new_state)
        origin: Who/what created this transaction and why
        timestamp: When this pending transaction was created
        intent_id: Content-addressable hash of the transaction intent (auto-computed)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[StateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(self.moves, self.state_changes, self.origin)
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """Return True if this pending transaction has no moves and no state changes."""
        return not self.moves and not self.state_changes

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} changes, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[StateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves and record changes.

    State snapshots are deep-copied so later mutation of the caller's dicts
    cannot leak into the transaction.

    Example:
        old = view.get_record("totals")
        new = {**old, "total_native_owed": old["total_native_owed"] + owed}
        tx = build_transaction(view, [], [StateChange("totals", old, new)])
    """
    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.ENGINE,
            source_id="engine",
        )

    copied_changes: Tuple[StateChange, ...] = ()
    if state_changes:
        copied_changes = tuple(
            StateChange(
                key=sc.key,
                old_state=copy.deepcopy(sc.old_state),
                new_state=copy.deepcopy(sc.new_state),
            )
            for sc in state_changes
        )

    return PendingTransaction(
        moves=tuple(moves),
        state_changes=copied_changes,
        origin=origin,
        timestamp=view.current_time,
    )


def with_request_id(pending: PendingTransaction, request_id: str) -> PendingTransaction:
    """Copy of pending stamped with a request id (intent_id is recomputed)."""
    origin = replace(pending.origin, request_id=request_id)
    return replace(pending, origin=origin, intent_id="")


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger changes - represents FACT.

    Attributes:
        moves: Tuple of asset transfers between wallets
        state_changes: Tuple of record changes (with old_state and new_state)
        origin: Who/what created this transaction and why
        timestamp: When the PendingTransaction was created
        intent_id: Content hash from PendingTransaction (for idempotency)
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: When this was executed and logged
        sequence_number: Monotonic sequence within the ledger (for ordering)
        references: Set of move references (auto-populated)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[StateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    references: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.state_changes:
            raise ValueError("Transaction must have moves or state_changes")
        if self.references is None:
            object.__setattr__(
                self, 'references',
                frozenset(m.reference for m in self.moves)
            )

    def __repr__(self) -> str:
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            """Pad or truncate text to exactly w characters."""
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Transaction: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   intent_id      : ' + self.intent_id)}│",
            f"│{pad('   timestamp      : ' + str(self.timestamp))}│",
            f"│{pad('   ledger_name    : ' + self.ledger_name)}│",
            f"│{pad('   sequence       : ' + str(self.sequence_number))}│",
            f"│{pad('   origin         : ' + str(self.origin))}│",
        ]
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' Moves (' + str(len(self.moves)) + '):')}│")
        for i, move in enumerate(self.moves):
            move_str = f"   [{i}] {move.quantity} {move.asset}: {move.source} → {move.dest}"
            lines.append(f"│{pad(move_str)}│")
        if self.state_changes:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' State Changes (' + str(len(self.state_changes)) + '):')}│")
            for sc in self.state_changes:
                lines.append(f"│{pad('   [' + sc.key + ']')}│")
                for field_name, (old_val, new_val) in sc.changed_fields().items():
                    lines.append(f"│{pad(f'      {field_name}: {old_val!r} → {new_val!r}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


# ============================================================================
# ASSETS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Asset:
    """
    Definition of a fungible asset held in the ledger.

    Attributes:
        symbol: Short identifier for the asset (e.g., "USDC", "NATIVE").
        name: Human-readable name for the asset.
        decimals: Number of decimal places amounts are quantized to.
        min_balance: Minimum allowed balance in any non-system wallet.
    """
    symbol: str
    name: str
    decimals: int = DEFAULT_TOKEN_DECIMALS
    min_balance: Decimal = Decimal("0")

    def __post_init__(self):
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Asset symbol cannot be empty")
        if self.decimals < 0 or self.decimals > 36:
            raise ValueError(f"Asset decimals must be in [0, 36], got {self.decimals}")

    @property
    def quantum(self) -> Decimal:
        """Smallest representable amount of this asset."""
        return Decimal(1).scaleb(-self.decimals)

    def round(self, value: Decimal) -> Decimal:
        """Quantize a value to this asset's precision, rounding toward zero."""
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return value.quantize(self.quantum, rounding=ROUND_DOWN)


def token(symbol: str, name: str, decimals: int = DEFAULT_TOKEN_DECIMALS) -> Asset:
    """
    Create a fungible token asset.

    Args:
        symbol: Token symbol (e.g., "USDC").
        name: Full name of the token.
        decimals: Number of decimal places (default: 18).

    Returns:
        An Asset that cannot be overdrawn.
    """
    return Asset(symbol=symbol, name=name, decimals=decimals)


def to_decimal(value: Any) -> Decimal:
    """Convert int/str/float/Decimal to Decimal without binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Boolean is not a valid amount")
    return Decimal(str(value))
