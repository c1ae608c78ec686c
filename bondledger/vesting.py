"""
vesting.py - Vesting Ledger

Per-account record of bond positions: how much native is owed, how much has
been claimed and the linear window over which it unlocks.

ARCHITECTURE (Pure Function Pattern):

1. FROZEN DATACLASSES: BondPosition, AccountIndex, ClaimPlan
2. ADAPTERS: load_position(), load_account_index(), load_totals()
3. PURE CALCULATIONS: calculate_vested(), calculate_claimable(),
   calculate_claim()
4. COMPUTE (StateChange producers): compute_open_position(), compute_claim()

Positions live in an arena indexed by account: position:<account>:<n>, with
account:<account> holding the next index and the ordered list of open
positions. Claims walk an explicit list of position ids, never the whole
history of an account.

Key Formulas:
    elapsed = min(now, vesting_end) - vesting_start
    vested  = amount_owed                                 if elapsed >= duration
            = floor(amount_owed * elapsed / duration)     otherwise (native precision)
    claimable = vested - amount_claimed

Positions are never deleted. Once amount_claimed == amount_owed a position
is marked closed and leaves the account's open list.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_DOWN
from typing import Dict, List, Optional, Any, Tuple, Iterable

from .core import (
    LedgerView, StateChange, NothingToClaim, UnknownPosition,
    RECORD_TOTALS, POSITION_PREFIX, ACCOUNT_PREFIX, DEFAULT_TOKEN_DECIMALS,
    to_decimal,
)


def position_key(account: str, position_id: int) -> str:
    return f"{POSITION_PREFIX}{account}:{position_id}"


def account_key(account: str) -> str:
    return f"{ACCOUNT_PREFIX}{account}"


def _micros(delta: timedelta) -> int:
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


def _round_down(value: Decimal, decimals: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_DOWN)


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class BondPosition:
    """
    One bonding event.

    Attributes:
        position_id: Index of the position within its owner's arena
        owner: Account that bonded and receives the native on claim
        collateral_asset: Asset the owner paid with
        collateral_amount: Amount the owner paid
        amount_owed: Native owed at the end of vesting
        amount_claimed: Native already claimed
        vesting_start: Start of the linear unlock
        vesting_end: End of the linear unlock
        price_at_purchase: Native price in base units when the bond was made
        closed: Fully claimed
    """
    position_id: int
    owner: str
    collateral_asset: str
    collateral_amount: Decimal
    amount_owed: Decimal
    amount_claimed: Decimal
    vesting_start: datetime
    vesting_end: datetime
    price_at_purchase: Decimal
    closed: bool = False

    def __post_init__(self):
        for name in ('collateral_amount', 'amount_owed', 'amount_claimed', 'price_at_purchase'):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                object.__setattr__(self, name, to_decimal(value))

        if self.position_id < 0:
            raise ValueError(f"position_id must be non-negative, got {self.position_id}")
        if self.amount_owed < 0:
            raise ValueError(f"amount_owed must be non-negative, got {self.amount_owed}")
        if self.amount_claimed < 0 or self.amount_claimed > self.amount_owed:
            raise ValueError(
                f"amount_claimed {self.amount_claimed} must be in [0, {self.amount_owed}]"
            )
        if self.vesting_end < self.vesting_start:
            raise ValueError(f"vesting_end {self.vesting_end} is before vesting_start {self.vesting_start}")

    @property
    def key(self) -> str:
        return position_key(self.owner, self.position_id)

    @property
    def remaining(self) -> Decimal:
        return self.amount_owed - self.amount_claimed

    def to_state_dict(self) -> Dict[str, Any]:
        return {
            'position_id': self.position_id,
            'owner': self.owner,
            'collateral_asset': self.collateral_asset,
            'collateral_amount': self.collateral_amount,
            'amount_owed': self.amount_owed,
            'amount_claimed': self.amount_claimed,
            'vesting_start': self.vesting_start,
            'vesting_end': self.vesting_end,
            'price_at_purchase': self.price_at_purchase,
            'closed': self.closed,
        }


@dataclass(frozen=True, slots=True)
class AccountIndex:
    next_index: int = 0
    open_positions: Tuple[int, ...] = ()

    def to_state_dict(self) -> Dict[str, Any]:
        return {'next_index': self.next_index, 'open_positions': list(self.open_positions)}


@dataclass(frozen=True, slots=True)
class ClaimPlan:
    """
    Result of compute_claim(): record changes plus the native to mint.

    claims holds (position_id, amount) for every position that paid out.
    """
    account: str
    state_changes: Tuple[StateChange, ...]
    total: Decimal
    claims: Tuple[Tuple[int, Decimal], ...]


# ============================================================================
# ADAPTERS
# ============================================================================

def load_position(view: LedgerView, account: str, position_id: int) -> Optional[BondPosition]:
    raw = view.get_record(position_key(account, position_id))
    if raw is None:
        return None
    return BondPosition(**raw)


def load_account_index(view: LedgerView, account: str) -> AccountIndex:
    raw = view.get_record(account_key(account))
    if raw is None:
        return AccountIndex()
    return AccountIndex(int(raw['next_index']), tuple(raw['open_positions']))


def load_totals(view: LedgerView) -> Tuple[Decimal, Decimal]:
    """(total_native_owed, total_native_claimed)"""
    raw = view.get_record(RECORD_TOTALS)
    if raw is None:
        return Decimal("0"), Decimal("0")
    return to_decimal(raw['total_native_owed']), to_decimal(raw['total_native_claimed'])


def load_positions(view: LedgerView, account: str) -> List[BondPosition]:
    """Every position the account ever opened, open and closed, in index order."""
    index = load_account_index(view, account)
    positions = []
    for position_id in range(index.next_index):
        position = load_position(view, account, position_id)
        if position is not None:
            positions.append(position)
    return positions


def _totals_change(view: LedgerView, owed_delta: Decimal, claimed_delta: Decimal) -> StateChange:
    old = view.get_record(RECORD_TOTALS)
    owed, claimed = load_totals(view)
    new = {
        'total_native_owed': owed + owed_delta,
        'total_native_claimed': claimed + claimed_delta,
    }
    if new['total_native_claimed'] > new['total_native_owed']:
        raise ValueError(
            f"total_native_claimed {new['total_native_claimed']} would exceed "
            f"total_native_owed {new['total_native_owed']}"
        )
    return StateChange(RECORD_TOTALS, old, new)


# ============================================================================
# PURE CALCULATIONS
# ============================================================================

def calculate_vested(position: BondPosition, now: datetime, decimals: int = DEFAULT_TOKEN_DECIMALS) -> Decimal:
    """
    Cumulative native unlocked at `now`.

    Exactly amount_owed once vesting_end is reached; before that the linear
    share is rounded down to `decimals`.
    """
    if position.amount_owed == 0:
        return Decimal("0")
    if now >= position.vesting_end:
        return position.amount_owed
    if now <= position.vesting_start:
        return Decimal("0")
    elapsed = _micros(now - position.vesting_start)
    duration = _micros(position.vesting_end - position.vesting_start)
    return _round_down(position.amount_owed * elapsed / duration, decimals)


def calculate_claimable(position: BondPosition, now: datetime, decimals: int = DEFAULT_TOKEN_DECIMALS) -> Decimal:
    """
    Native the owner could claim at `now`.

    PURE FUNCTION - no side effects.
    """
    if position.amount_owed == 0 or position.closed:
        return Decimal("0")
    return max(calculate_vested(position, now, decimals) - position.amount_claimed, Decimal("0"))


def calculate_claim(position: BondPosition, now: datetime,
                    decimals: int = DEFAULT_TOKEN_DECIMALS) -> Tuple[BondPosition, Decimal]:
    """
    Position after claiming everything vested at `now`, and the amount claimed.

    Returns the position unchanged with 0 when nothing is claimable.
    """
    amount = calculate_claimable(position, now, decimals)
    if amount == 0:
        return position, Decimal("0")
    claimed = position.amount_claimed + amount
    return replace(position, amount_claimed=claimed, closed=claimed == position.amount_owed), amount


def calculate_account_claimable(positions: Iterable[BondPosition], now: datetime,
                                decimals: int = DEFAULT_TOKEN_DECIMALS) -> Decimal:
    return sum((calculate_claimable(p, now, decimals) for p in positions), Decimal("0"))


# ============================================================================
# QUERIES
# ============================================================================

def get_open_positions(view: LedgerView, account: str) -> List[BondPosition]:
    index = load_account_index(view, account)
    return [p for p in (load_position(view, account, i) for i in index.open_positions) if p is not None]


def get_claimable(view: LedgerView, account: str, decimals: int = DEFAULT_TOKEN_DECIMALS) -> Decimal:
    """Native claimable by account right now, summed over its open positions."""
    return calculate_account_claimable(get_open_positions(view, account), view.current_time, decimals)


# ============================================================================
# COMPUTE FUNCTIONS
# ============================================================================

def compute_initialize_totals(view: LedgerView) -> Optional[StateChange]:
    """Zeroed aggregate counters. None if they already exist."""
    if view.get_record(RECORD_TOTALS) is not None:
        return None
    return StateChange(RECORD_TOTALS, None, {
        'total_native_owed': Decimal("0"),
        'total_native_claimed': Decimal("0"),
    })


def compute_open_position(
    view: LedgerView,
    account: str,
    collateral_asset: str,
    collateral_amount: Decimal,
    amount_owed: Decimal,
    price_at_purchase: Decimal,
    vesting_period: timedelta,
) -> Tuple[BondPosition, List[StateChange]]:
    """
    Record changes that open a new position starting now.

    Returns:
        (position, [position create, account index update, totals update])
    """
    if vesting_period < timedelta(0):
        raise ValueError(f"vesting_period must be non-negative, got {vesting_period}")
    amount_owed = to_decimal(amount_owed)
    if amount_owed <= 0:
        raise ValueError(f"amount_owed must be positive, got {amount_owed}")

    index = load_account_index(view, account)
    now = view.current_time
    position = BondPosition(
        position_id=index.next_index,
        owner=account,
        collateral_asset=collateral_asset,
        collateral_amount=to_decimal(collateral_amount),
        amount_owed=amount_owed,
        amount_claimed=Decimal("0"),
        vesting_start=now,
        vesting_end=now + vesting_period,
        price_at_purchase=to_decimal(price_at_purchase),
    )
    new_index = AccountIndex(index.next_index + 1, index.open_positions + (position.position_id,))

    changes = [
        StateChange(position.key, None, position.to_state_dict()),
        StateChange(account_key(account), view.get_record(account_key(account)), new_index.to_state_dict()),
        _totals_change(view, amount_owed, Decimal("0")),
    ]
    return position, changes


def compute_claim(
    view: LedgerView,
    account: str,
    position_ids: Iterable[int],
    decimals: int = DEFAULT_TOKEN_DECIMALS,
) -> ClaimPlan:
    """
    Claim everything vested on the given positions at view.current_time.

    Positions with nothing vested are skipped; fully claimed positions are
    closed and dropped from the account's open list.

    Raises:
        UnknownPosition: If an id does not belong to the account
        NothingToClaim: If the total across all positions is zero
    """
    now = view.current_time
    ids = list(dict.fromkeys(position_ids))
    changes: List[StateChange] = []
    claims: List[Tuple[int, Decimal]] = []
    closed: List[int] = []
    total = Decimal("0")

    for position_id in ids:
        position = load_position(view, account, position_id)
        if position is None:
            raise UnknownPosition(f"{account} has no position {position_id}")
        updated, amount = calculate_claim(position, now, decimals)
        if amount == 0:
            continue
        changes.append(StateChange(position.key, position.to_state_dict(), updated.to_state_dict()))
        claims.append((position_id, amount))
        total += amount
        if updated.closed:
            closed.append(position_id)

    if total == 0:
        raise NothingToClaim(f"{account} has nothing vested and unclaimed on positions {ids}")

    if closed:
        index = load_account_index(view, account)
        remaining = tuple(i for i in index.open_positions if i not in closed)
        changes.append(StateChange(
            account_key(account),
            view.get_record(account_key(account)),
            AccountIndex(index.next_index, remaining).to_state_dict(),
        ))
    changes.append(_totals_change(view, Decimal("0"), total))

    return ClaimPlan(account=account, state_changes=tuple(changes), total=total, claims=tuple(claims))
