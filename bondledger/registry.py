"""
registry.py - Collateral Registry

Authoritative whitelist of accepted collateral. Each entry carries a risk tier,
a tier-independent discount bonus, an optional capacity cap, pricing
configuration and an optional conversion target.

ARCHITECTURE (Pure Function Pattern):

1. FROZEN DATACLASSES: CollateralEntry (one per asset), Tier
2. ADAPTERS: load_collateral(), load_tier_table(), to_state_dict()
   - the only functions that read registry records from a LedgerView
3. PURE CALCULATIONS: calculate_discount(), calculate_available_capacity(),
   calculate_record_bond()
4. QUERIES: is_whitelisted(), get_discount(), get_available_capacity()
5. OWNER-GATED ADMIN (compute_*): return PendingTransactions; nothing is
   applied until the ledger executes them. Every admin transaction carries
   an ADMIN origin with an event_type, which is the registry's change
   notification in the audit log.

Key Formulas:
    discount = tier_base_discount[tier] + discount_bonus   (0 if not whitelisted)
    available_capacity = max_capacity - total_bonded       (None = unbounded)
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Dict, Any, Optional, Mapping

from .core import (
    LedgerView, PendingTransaction, StateChange, TransactionOrigin, OriginType,
    NotWhitelisted, CapacityExceeded, Unauthorized,
    BPS_DENOMINATOR, RECORD_CONFIG, RECORD_TIERS, COLLATERAL_PREFIX,
    build_transaction, to_decimal,
)


# Sentinel returned by get_available_capacity() for uncapped collateral.
UNBOUNDED = None


class Tier(Enum):
    """Risk classification of a collateral asset."""
    TIER_1 = "TIER_1"
    TIER_2 = "TIER_2"
    TIER_3 = "TIER_3"
    TIER_4 = "TIER_4"


DEFAULT_TIER_DISCOUNTS: Dict[Tier, int] = {
    Tier.TIER_1: 500,
    Tier.TIER_2: 2000,
    Tier.TIER_3: 3000,
    Tier.TIER_4: 4000,
}


def collateral_key(asset: str) -> str:
    return f"{COLLATERAL_PREFIX}{asset}"


# ============================================================================
# FROZEN DATACLASS
# ============================================================================

@dataclass(frozen=True, slots=True)
class CollateralEntry:
    """
    Registry entry for one collateral asset.

    total_bonded only ever increases (record_bond); everything else is owner
    configuration.
    """
    asset: str
    tier: Tier
    whitelisted: bool = True
    discount_bonus: int = 0                   # bps on top of the tier discount
    max_capacity: Optional[Decimal] = None    # None = unlimited
    total_bonded: Decimal = Decimal("0")
    price_feed: Optional[str] = None
    pegged_to_base: bool = False              # explicit 1:1 valuation without a feed
    is_pooled_liquidity: bool = False
    requires_conversion: bool = False
    conversion_target: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.tier, Tier):
            object.__setattr__(self, 'tier', Tier(self.tier))
        if not isinstance(self.total_bonded, Decimal):
            object.__setattr__(self, 'total_bonded', to_decimal(self.total_bonded))
        if self.max_capacity is not None and not isinstance(self.max_capacity, Decimal):
            object.__setattr__(self, 'max_capacity', to_decimal(self.max_capacity))

        if not self.asset or not self.asset.strip():
            raise ValueError("asset cannot be empty")
        if self.discount_bonus < 0 or self.discount_bonus > BPS_DENOMINATOR:
            raise ValueError(
                f"discount_bonus must be in [0, {BPS_DENOMINATOR}], got {self.discount_bonus}"
            )
        if self.max_capacity is not None and self.max_capacity < 0:
            raise ValueError(f"max_capacity must be non-negative, got {self.max_capacity}")
        if self.total_bonded < 0:
            raise ValueError(f"total_bonded must be non-negative, got {self.total_bonded}")
        if self.requires_conversion and not self.conversion_target:
            raise ValueError(f"{self.asset}: requires_conversion needs a conversion_target")
        if self.conversion_target == self.asset:
            raise ValueError(f"{self.asset}: conversion_target cannot be the asset itself")
        if self.price_feed and self.pegged_to_base:
            raise ValueError(f"{self.asset}: choose either a price_feed or pegged_to_base")

    @property
    def is_bounded(self) -> bool:
        return self.max_capacity is not None


# ============================================================================
# ADAPTERS
# ============================================================================

def to_state_dict(entry: CollateralEntry) -> Dict[str, Any]:
    """Inverse of load_collateral(): the record stored in the ledger."""
    return {
        'asset': entry.asset,
        'whitelisted': entry.whitelisted,
        'tier': entry.tier.value,
        'discount_bonus': entry.discount_bonus,
        'max_capacity': entry.max_capacity,
        'total_bonded': entry.total_bonded,
        'price_feed': entry.price_feed,
        'pegged_to_base': entry.pegged_to_base,
        'is_pooled_liquidity': entry.is_pooled_liquidity,
        'requires_conversion': entry.requires_conversion,
        'conversion_target': entry.conversion_target,
    }


def load_collateral(view: LedgerView, asset: str) -> Optional[CollateralEntry]:
    """
    Load a registry entry as a frozen dataclass.

    Returns None if the asset was never added. Removed assets are returned
    with whitelisted=False so their bonding history stays readable.
    """
    raw = view.get_record(collateral_key(asset))
    if raw is None:
        return None
    return CollateralEntry(
        asset=raw['asset'],
        tier=Tier(raw['tier']),
        whitelisted=raw.get('whitelisted', False),
        discount_bonus=raw.get('discount_bonus', 0),
        max_capacity=raw.get('max_capacity'),
        total_bonded=raw.get('total_bonded', Decimal("0")),
        price_feed=raw.get('price_feed'),
        pegged_to_base=raw.get('pegged_to_base', False),
        is_pooled_liquidity=raw.get('is_pooled_liquidity', False),
        requires_conversion=raw.get('requires_conversion', False),
        conversion_target=raw.get('conversion_target'),
    )


def load_tier_table(view: LedgerView) -> Dict[Tier, int]:
    """Tier -> base discount bps. Falls back to DEFAULT_TIER_DISCOUNTS if unset."""
    raw = view.get_record(RECORD_TIERS)
    if raw is None:
        return dict(DEFAULT_TIER_DISCOUNTS)
    return {Tier(name): int(bps) for name, bps in raw.items()}


def get_owner(view: LedgerView) -> Optional[str]:
    raw = view.get_record(RECORD_CONFIG)
    return raw.get('owner') if raw else None


def require_owner(view: LedgerView, caller: str) -> None:
    """
    Raises:
        Unauthorized: If caller is not the registry owner
    """
    owner = get_owner(view)
    if owner is None or caller != owner:
        raise Unauthorized(f"{caller} is not the registry owner")


# ============================================================================
# PURE CALCULATIONS
# ============================================================================

def calculate_discount(entry: Optional[CollateralEntry], tier_table: Mapping[Tier, int]) -> int:
    """tier base discount + bonus in bps; 0 for missing or delisted entries."""
    if entry is None or not entry.whitelisted:
        return 0
    return tier_table.get(entry.tier, 0) + entry.discount_bonus


def calculate_available_capacity(entry: CollateralEntry) -> Optional[Decimal]:
    """Remaining capacity, or UNBOUNDED (None) when the entry has no cap."""
    if entry.max_capacity is None:
        return UNBOUNDED
    return max(entry.max_capacity - entry.total_bonded, Decimal("0"))


def calculate_record_bond(entry: Optional[CollateralEntry], asset: str, amount: Decimal) -> CollateralEntry:
    """
    New entry with amount added to total_bonded.

    Raises:
        NotWhitelisted: If the entry is missing or delisted
        CapacityExceeded: If amount is above the available capacity
    """
    if entry is None or not entry.whitelisted:
        raise NotWhitelisted(f"{asset} is not a whitelisted collateral")
    if amount <= 0:
        raise ValueError(f"bond amount must be positive, got {amount}")
    available = calculate_available_capacity(entry)
    if available is not UNBOUNDED and amount > available:
        raise CapacityExceeded(
            f"{asset}: bond of {amount} exceeds available capacity {available} "
            f"(bonded {entry.total_bonded} of {entry.max_capacity})"
        )
    return replace(entry, total_bonded=entry.total_bonded + amount)


# ============================================================================
# QUERIES
# ============================================================================

def is_whitelisted(view: LedgerView, asset: str) -> bool:
    entry = load_collateral(view, asset)
    return entry is not None and entry.whitelisted


def get_discount(view: LedgerView, asset: str) -> int:
    """Discount in bps applied to bonds in this asset (0 if not whitelisted)."""
    return calculate_discount(load_collateral(view, asset), load_tier_table(view))


def get_available_capacity(view: LedgerView, asset: str) -> Optional[Decimal]:
    """
    Raises:
        NotWhitelisted: If the asset is not whitelisted
    """
    entry = load_collateral(view, asset)
    if entry is None or not entry.whitelisted:
        raise NotWhitelisted(f"{asset} is not a whitelisted collateral")
    return calculate_available_capacity(entry)


def compute_record_bond(view: LedgerView, asset: str, amount: Decimal) -> StateChange:
    """
    Record change adding amount to an entry's total_bonded.

    Returned as a StateChange so the engine can commit it in the same
    transaction as the bond itself.
    """
    entry = load_collateral(view, asset)
    updated = calculate_record_bond(entry, asset, to_decimal(amount))
    return StateChange(
        key=collateral_key(asset),
        old_state=to_state_dict(entry),
        new_state=to_state_dict(updated),
    )


# ============================================================================
# OWNER-GATED ADMINISTRATION
# ============================================================================

def _admin_origin(caller: str, event_type: str, asset: Optional[str] = None) -> TransactionOrigin:
    return TransactionOrigin(OriginType.ADMIN, caller, asset=asset, event_type=event_type)


def _require_entry(view: LedgerView, asset: str) -> CollateralEntry:
    entry = load_collateral(view, asset)
    if entry is None or not entry.whitelisted:
        raise NotWhitelisted(f"{asset} is not a whitelisted collateral")
    return entry


def _entry_update(view: LedgerView, caller: str, old: CollateralEntry,
                  new: CollateralEntry, event_type: str) -> PendingTransaction:
    change = StateChange(
        key=collateral_key(old.asset),
        old_state=to_state_dict(old),
        new_state=to_state_dict(new),
    )
    return build_transaction(view, [], [change], origin=_admin_origin(caller, event_type, old.asset))


def compute_initialize_registry(
    view: LedgerView,
    owner: str,
    tier_discounts: Optional[Mapping[Tier, int]] = None,
) -> PendingTransaction:
    """
    Create the config and tier-table records.

    Raises:
        ValueError: If the registry is already initialized or a discount is out of range
    """
    if view.get_record(RECORD_CONFIG) is not None:
        raise ValueError("registry already initialized")
    table = dict(DEFAULT_TIER_DISCOUNTS)
    if tier_discounts:
        table.update(tier_discounts)
    for tier, bps in table.items():
        _validate_bps(bps, f"{tier.value} discount")
    changes = [
        StateChange(RECORD_CONFIG, None, {'owner': owner}),
        StateChange(RECORD_TIERS, None, {tier.value: bps for tier, bps in table.items()}),
    ]
    return build_transaction(view, [], changes, origin=_admin_origin(owner, "REGISTRY_INITIALIZED"))


def compute_add_collateral(
    view: LedgerView,
    caller: str,
    asset: str,
    tier: Tier,
    discount_bonus: int = 0,
    max_capacity: Optional[Decimal] = None,
    price_feed: Optional[str] = None,
    pegged_to_base: bool = False,
    is_pooled_liquidity: bool = False,
    conversion_target: Optional[str] = None,
) -> PendingTransaction:
    """
    Whitelist an asset.

    Re-adding a previously removed asset keeps its total_bonded history.

    Raises:
        Unauthorized: If caller is not the owner
        ValueError: If the asset is already whitelisted or parameters are invalid
        NotWhitelisted: If conversion_target is not itself whitelisted
    """
    require_owner(view, caller)
    existing = load_collateral(view, asset)
    if existing is not None and existing.whitelisted:
        raise ValueError(f"{asset} is already whitelisted")
    if conversion_target is not None:
        _require_entry(view, conversion_target)

    entry = CollateralEntry(
        asset=asset,
        tier=tier,
        whitelisted=True,
        discount_bonus=discount_bonus,
        max_capacity=max_capacity,
        total_bonded=existing.total_bonded if existing else Decimal("0"),
        price_feed=price_feed,
        pegged_to_base=pegged_to_base,
        is_pooled_liquidity=is_pooled_liquidity,
        requires_conversion=conversion_target is not None,
        conversion_target=conversion_target,
    )
    if entry.is_bounded and entry.total_bonded > entry.max_capacity:
        raise CapacityExceeded(
            f"{asset}: max_capacity {entry.max_capacity} is below total_bonded {entry.total_bonded}"
        )
    change = StateChange(
        key=collateral_key(asset),
        old_state=to_state_dict(existing) if existing else None,
        new_state=to_state_dict(entry),
    )
    return build_transaction(view, [], [change], origin=_admin_origin(caller, "COLLATERAL_ADDED", asset))


def compute_remove_collateral(view: LedgerView, caller: str, asset: str) -> PendingTransaction:
    """Delist an asset. Its record and total_bonded stay for auditability."""
    require_owner(view, caller)
    entry = _require_entry(view, asset)
    return _entry_update(view, caller, entry, replace(entry, whitelisted=False), "COLLATERAL_REMOVED")


def compute_update_tier_discount(view: LedgerView, caller: str, tier: Tier, bps: int) -> PendingTransaction:
    """Set the base discount for a tier."""
    require_owner(view, caller)
    _validate_bps(bps, f"{tier.value} discount")
    old = view.get_record(RECORD_TIERS)
    table = load_tier_table(view)
    table[tier] = bps
    change = StateChange(RECORD_TIERS, old, {t.value: b for t, b in table.items()})
    return build_transaction(view, [], [change], origin=_admin_origin(caller, "TIER_DISCOUNT_UPDATED"))


def compute_set_capacity(view: LedgerView, caller: str, asset: str,
                         max_capacity: Optional[Decimal]) -> PendingTransaction:
    """
    Set or clear (None) an asset's capacity cap.

    Raises:
        CapacityExceeded: If the new cap is below what is already bonded
    """
    require_owner(view, caller)
    entry = _require_entry(view, asset)
    if max_capacity is not None:
        max_capacity = to_decimal(max_capacity)
        if max_capacity < entry.total_bonded:
            raise CapacityExceeded(
                f"{asset}: max_capacity {max_capacity} is below total_bonded {entry.total_bonded}"
            )
    return _entry_update(view, caller, entry, replace(entry, max_capacity=max_capacity), "CAPACITY_SET")


def compute_set_conversion_target(view: LedgerView, caller: str, asset: str,
                                  target: Optional[str]) -> PendingTransaction:
    """
    Route bonds in asset through the swap router into target (None disables).

    Raises:
        NotWhitelisted: If the target is not whitelisted
    """
    require_owner(view, caller)
    entry = _require_entry(view, asset)
    if target is not None:
        _require_entry(view, target)
    updated = replace(entry, requires_conversion=target is not None, conversion_target=target)
    return _entry_update(view, caller, entry, updated, "CONVERSION_TARGET_SET")


def compute_set_discount_bonus(view: LedgerView, caller: str, asset: str, bonus: int) -> PendingTransaction:
    require_owner(view, caller)
    entry = _require_entry(view, asset)
    return _entry_update(view, caller, entry, replace(entry, discount_bonus=bonus), "DISCOUNT_BONUS_SET")


def compute_set_price_feed(view: LedgerView, caller: str, asset: str,
                           price_feed: Optional[str], pegged_to_base: bool = False) -> PendingTransaction:
    """Point an asset at a feed, or mark it as explicitly pegged 1:1 to the base unit."""
    require_owner(view, caller)
    entry = _require_entry(view, asset)
    updated = replace(entry, price_feed=price_feed, pegged_to_base=pegged_to_base)
    return _entry_update(view, caller, entry, updated, "PRICE_FEED_SET")


def compute_transfer_ownership(view: LedgerView, caller: str, new_owner: str) -> PendingTransaction:
    require_owner(view, caller)
    if not new_owner or not new_owner.strip():
        raise ValueError("new_owner cannot be empty")
    old = view.get_record(RECORD_CONFIG)
    change = StateChange(RECORD_CONFIG, old, {**old, 'owner': new_owner})
    return build_transaction(view, [], [change], origin=_admin_origin(caller, "OWNERSHIP_TRANSFERRED"))


def _validate_bps(bps: int, label: str) -> None:
    if not isinstance(bps, int) or bps < 0 or bps > BPS_DENOMINATOR:
        raise ValueError(f"{label} must be an int in [0, {BPS_DENOMINATOR}], got {bps}")
