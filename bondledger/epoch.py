"""
epoch.py - Epoch Rate Limiter

Tracks how much each account has bonded in the current epoch, a fixed-length
window that rolls over on a configured cadence.

ARCHITECTURE (Pure Function Pattern):

1. FROZEN DATACLASS: EpochState (current_epoch_id, epoch_start_time)
2. PURE CALCULATIONS: calculate_advance(), calculate_record()
3. ADAPTERS: load_epoch_state(), load_account_counters()
4. COMPUTE (StateChange producers): compute_advance_if_needed(),
   compute_record_and_check()

Rollover rule:
    if now >= epoch_start_time + epoch_duration:
        epoch_start_time = now
        current_epoch_id += 1

The rule is a function of the clock alone, so evaluating it twice at the same
time is a no-op. Counters are keyed by epoch id; a new id starts from zero and
older entries are simply never read again.

The limiter never fails. The caller compares the returned total against its
per-epoch cap.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Optional, Tuple

from .core import (
    LedgerView, StateChange, RECORD_EPOCH, EPOCH_ACCOUNT_PREFIX, to_decimal,
)


def epoch_account_key(account: str) -> str:
    return f"{EPOCH_ACCOUNT_PREFIX}{account}"


@dataclass(frozen=True, slots=True)
class EpochState:
    current_epoch_id: int
    epoch_start_time: datetime

    def __post_init__(self):
        if self.current_epoch_id < 0:
            raise ValueError(f"current_epoch_id must be non-negative, got {self.current_epoch_id}")

    def to_state_dict(self) -> Dict[str, object]:
        return {
            'current_epoch_id': self.current_epoch_id,
            'epoch_start_time': self.epoch_start_time,
        }


# ============================================================================
# PURE CALCULATIONS
# ============================================================================

def calculate_advance(state: EpochState, now: datetime, epoch_duration: timedelta) -> EpochState:
    """
    Roll the epoch over if its window has elapsed at `now`.

    Returns the same state object when nothing changes.
    """
    if epoch_duration <= timedelta(0):
        raise ValueError(f"epoch_duration must be positive, got {epoch_duration}")
    if now >= state.epoch_start_time + epoch_duration:
        return EpochState(state.current_epoch_id + 1, now)
    return state


def calculate_record(
    counters: Dict[int, Decimal],
    epoch_id: int,
    amount: Decimal,
) -> Tuple[Dict[int, Decimal], Decimal]:
    """
    Add amount to the counter of epoch_id.

    Counters of earlier epochs are dropped from the returned mapping since they
    are never consulted again.

    Returns:
        (new_counters, new_total_for_epoch)
    """
    amount = to_decimal(amount)
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")
    total = counters.get(epoch_id, Decimal("0")) + amount
    return {epoch_id: total}, total


# ============================================================================
# ADAPTERS
# ============================================================================

def load_epoch_state(view: LedgerView) -> Optional[EpochState]:
    raw = view.get_record(RECORD_EPOCH)
    if raw is None:
        return None
    return EpochState(int(raw['current_epoch_id']), raw['epoch_start_time'])


def load_account_counters(view: LedgerView, account: str) -> Dict[int, Decimal]:
    raw = view.get_record(epoch_account_key(account))
    if raw is None:
        return {}
    return {int(epoch_id): to_decimal(amount) for epoch_id, amount in raw.items()}


def get_epoch_total(view: LedgerView, account: str) -> Decimal:
    """Amount the account has bonded in the current epoch."""
    state = load_epoch_state(view)
    epoch_id = state.current_epoch_id if state else 0
    return load_account_counters(view, account).get(epoch_id, Decimal("0"))


# ============================================================================
# COMPUTE FUNCTIONS
# ============================================================================

def compute_initialize_epoch(view: LedgerView) -> Optional[StateChange]:
    """Create epoch 0 starting now. None if the epoch record already exists."""
    if view.get_record(RECORD_EPOCH) is not None:
        return None
    return StateChange(RECORD_EPOCH, None, EpochState(0, view.current_time).to_state_dict())


def compute_advance_if_needed(view: LedgerView, epoch_duration: timedelta) -> Optional[StateChange]:
    """
    Epoch rollover at view.current_time, or None if the window is still open.

    A missing epoch record is created as epoch 0 starting now.
    """
    state = load_epoch_state(view)
    if state is None:
        return compute_initialize_epoch(view)
    advanced = calculate_advance(state, view.current_time, epoch_duration)
    if advanced is state:
        return None
    return StateChange(RECORD_EPOCH, state.to_state_dict(), advanced.to_state_dict())


def compute_record_and_check(view: LedgerView, account: str, amount: Decimal) -> Tuple[StateChange, Decimal]:
    """
    Counter update for account under the current epoch.

    Returns:
        (state_change, new_total) - the caller enforces its cap on new_total
        and commits the change only if the cap holds.
    """
    state = load_epoch_state(view)
    epoch_id = state.current_epoch_id if state else 0
    key = epoch_account_key(account)
    old = view.get_record(key)
    counters, total = calculate_record(load_account_counters(view, account), epoch_id, amount)
    return StateChange(key, old, dict(counters)), total
