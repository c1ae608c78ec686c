"""
engine.py - Bonding Engine

Orchestrates a bond from request to open vesting position, and claims from
position to minted native.

bond(account, collateral_asset, amount, min_native_out):
    1. Advance the epoch if its window has elapsed (committed on its own)
    2. NotWhitelisted if the collateral is not whitelisted
    3. Conversion: pull amount into custody, swap into the conversion target
       with no output floor (min_native_out protects the caller)
    4. Value (final_asset, final_amount) in base units (fair LP for pool shares)
    5. BondTooSmall below the minimum bond value
    6. ExceedsMaxBond if the account's epoch total would pass the cap
    7. discount = tier discount + bonus of the bonded collateral (before conversion)
    8. native = value * (BPS + discount) / (native_price * BPS), rounded down
    9. SlippageExceeded if native < min_native_out
   10. Collateral to the treasury
   11. record_bond(final_asset, final_amount) (may raise CapacityExceeded)
   12. Open a position vesting from now to now + vesting_period
   13. total_native_owed += native

Steps 2-13 run inside a ledger savepoint: a failure anywhere unwinds the
pull, the swap and everything else before the exception reaches the caller.
Every external call (oracle, router) happens before the final commit, and
the commit itself is validated against the records as they stand at that
moment.

Concurrency:
    One non-reentrant lock serializes bond, claim, quote and admin calls, so
    at most one operation is in flight per engine. Other threads wait for it;
    a collaborator that calls back into the engine from inside an operation
    gets ReentrantCall.
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, ROUND_DOWN
import threading
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from .core import (
    Move, PendingTransaction, TransactionOrigin, OriginType,
    NotWhitelisted, BondTooSmall, ExceedsMaxBond,
    SlippageExceeded, TooManyPositions, ReentrantCall, InvalidPoolState, SwapFailed,
    BPS_DENOMINATOR, MAX_POSITIONS_PER_CLAIM, COLLATERAL_PREFIX, POSITION_PREFIX, ACCOUNT_PREFIX,
    build_transaction, with_request_id, to_decimal,
)
from .ledger import Ledger
from .oracle import PriceOracle
from .collaborators import PoolReader, SwapRouter, MintAuthority
from . import registry
from .registry import CollateralEntry, Tier, load_collateral
from .valuation import value_in_base_units, price_in_base_units
from .fair_lp import value_lp_position
from .epoch import compute_advance_if_needed, compute_initialize_epoch, compute_record_and_check, get_epoch_total
from .vesting import (
    BondPosition, ClaimPlan,
    compute_open_position, compute_claim, compute_initialize_totals,
    load_account_index, load_positions, load_totals, get_claimable,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class BondingConfig:
    """
    Static parameters of a bonding engine.

    Attributes:
        native_asset: Asset issued on claim
        base_asset: Unit of account all collateral is valued in
        treasury_wallet: Receives bonded collateral
        custody_wallet: Holds collateral while it is being converted
        vesting_period: Length of the linear unlock of every position
        epoch_duration: Length of the per-account rate-limit window
        min_bond_value: Smallest accepted bond, in base units
        max_bond_per_epoch: Per-account cap per epoch in base units (None = no cap)
        max_price_age: Oldest acceptable oracle reading (None = no staleness check)
        swap_deadline: How long a conversion swap may take
        max_positions_per_claim: Upper bound on positions per claim call
        native_price_feed: Feed pricing the native asset (default: its symbol)
        base_price_feed: Feed pricing the base asset (None = the base is the quote currency)
    """
    native_asset: str
    base_asset: str
    treasury_wallet: str
    custody_wallet: str = "bond_custody"
    vesting_period: timedelta = timedelta(days=7)
    epoch_duration: timedelta = timedelta(days=1)
    min_bond_value: Decimal = Decimal("0")
    max_bond_per_epoch: Optional[Decimal] = None
    max_price_age: Optional[timedelta] = None
    swap_deadline: timedelta = timedelta(minutes=5)
    max_positions_per_claim: int = MAX_POSITIONS_PER_CLAIM
    native_price_feed: Optional[str] = None
    base_price_feed: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.min_bond_value, Decimal):
            object.__setattr__(self, 'min_bond_value', to_decimal(self.min_bond_value))
        if self.max_bond_per_epoch is not None and not isinstance(self.max_bond_per_epoch, Decimal):
            object.__setattr__(self, 'max_bond_per_epoch', to_decimal(self.max_bond_per_epoch))

        for name in ('native_asset', 'base_asset', 'treasury_wallet', 'custody_wallet'):
            value = getattr(self, name)
            if not value or not value.strip():
                raise ValueError(f"{name} cannot be empty")
        if self.treasury_wallet == self.custody_wallet:
            raise ValueError("treasury_wallet and custody_wallet must be different")
        if self.vesting_period < timedelta(0):
            raise ValueError(f"vesting_period must be non-negative, got {self.vesting_period}")
        if self.epoch_duration <= timedelta(0):
            raise ValueError(f"epoch_duration must be positive, got {self.epoch_duration}")
        if self.min_bond_value < 0:
            raise ValueError(f"min_bond_value must be non-negative, got {self.min_bond_value}")
        if self.max_bond_per_epoch is not None and self.max_bond_per_epoch <= 0:
            raise ValueError(f"max_bond_per_epoch must be positive, got {self.max_bond_per_epoch}")
        if self.max_price_age is not None and self.max_price_age <= timedelta(0):
            raise ValueError(f"max_price_age must be positive, got {self.max_price_age}")
        if self.swap_deadline <= timedelta(0):
            raise ValueError(f"swap_deadline must be positive, got {self.swap_deadline}")
        if not 0 < self.max_positions_per_claim <= MAX_POSITIONS_PER_CLAIM:
            raise ValueError(
                f"max_positions_per_claim must be in [1, {MAX_POSITIONS_PER_CLAIM}], "
                f"got {self.max_positions_per_claim}"
            )

    @property
    def native_feed(self) -> str:
        return self.native_price_feed or self.native_asset


@dataclass(frozen=True, slots=True)
class BondQuote:
    native_out: Decimal
    discount: int
    value_in_base_units: Decimal


# ============================================================================
# PURE CALCULATIONS
# ============================================================================

def calculate_native_out(value: Decimal, discount_bps: int, native_price: Decimal, decimals: int) -> Decimal:
    """
    Native owed for `value` base units at a discount.

        native = value * (BPS + discount) / (native_price * BPS)

    Rounded down to the native asset's precision.
    """
    if native_price <= 0:
        raise ValueError(f"native_price must be positive, got {native_price}")
    native = value * (BPS_DENOMINATOR + discount_bps) / (native_price * BPS_DENOMINATOR)
    return native.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_DOWN)


# ============================================================================
# ENGINE
# ============================================================================

class BondingEngine:
    """
    Sells the native asset at a discount against whitelisted collateral.

    All state lives in the ledger; the engine holds only configuration and
    collaborators.

    Example:
        engine = BondingEngine(ledger, config, oracle, mint_authority)
        engine.initialize(owner="dao")
        engine.add_collateral("dao", "USDC", Tier.TIER_1, pegged_to_base=True)
        native = engine.bond("alice", "USDC", Decimal("1000"))
        ...
        engine.claim_all("alice")
    """

    def __init__(
        self,
        ledger: Ledger,
        config: BondingConfig,
        oracle: PriceOracle,
        mint_authority: MintAuthority,
        swap_router: Optional[SwapRouter] = None,
        pool_readers: Optional[Mapping[str, PoolReader]] = None,
        underlying_feeds: Optional[Mapping[str, str]] = None,
    ):
        """
        Args:
            ledger: Store holding balances and bonding records
            config: Engine parameters
            oracle: Price source for collateral, underlying and native prices
            mint_authority: Issues native on claim
            swap_router: Converts collateral that requires conversion
            pool_readers: Pool share asset -> reader, for pooled-liquidity collateral
            underlying_feeds: Underlying asset -> feed, for fair LP valuation
        """
        self.ledger = ledger
        self.config = config
        self.oracle = oracle
        self.mint_authority = mint_authority
        self.swap_router = swap_router
        self.pool_readers: Dict[str, PoolReader] = dict(pool_readers or {})
        self.underlying_feeds: Dict[str, str] = dict(underlying_feeds or {})
        self.verbose = ledger.verbose
        self._lock = threading.Lock()
        self._owner_thread: Optional[int] = None

        self.native_decimals = ledger.get_asset(config.native_asset).decimals
        ledger.ensure_wallet(config.treasury_wallet)
        ledger.ensure_wallet(config.custody_wallet)

    # ========================================================================
    # SETUP
    # ========================================================================

    def initialize(self, owner: str, tier_discounts: Optional[Mapping[Tier, int]] = None) -> None:
        """Create the registry config, tier table, epoch 0 and zeroed totals."""
        with self._exclusive():
            pending = registry.compute_initialize_registry(self.ledger, owner, tier_discounts)
            changes = list(pending.state_changes)
            epoch_change = compute_initialize_epoch(self.ledger)
            if epoch_change is not None:
                changes.append(epoch_change)
            totals_change = compute_initialize_totals(self.ledger)
            if totals_change is not None:
                changes.append(totals_change)
            self._execute(build_transaction(self.ledger, [], changes, origin=pending.origin), "init")

    def register_pool(self, share_asset: str, reader: PoolReader) -> None:
        with self._exclusive():
            self.pool_readers[share_asset] = reader

    # ========================================================================
    # INTERNALS
    # ========================================================================

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """Hold the engine lock for one operation; re-entry from the same thread is refused."""
        if self._owner_thread == threading.get_ident():
            raise ReentrantCall("engine operation already in flight on this thread")
        with self._lock:
            self._owner_thread = threading.get_ident()
            try:
                yield
            finally:
                self._owner_thread = None

    def _execute(self, pending: PendingTransaction, operation: str) -> None:
        """Apply strictly, with a request id that makes every call a distinct intent."""
        stamped = with_request_id(pending, f"{operation}:{self.ledger.next_sequence}")
        self.ledger.execute(stamped, strict=True)

    def _advance_epoch(self) -> None:
        change = compute_advance_if_needed(self.ledger, self.config.epoch_duration)
        if change is None:
            return
        origin = TransactionOrigin(OriginType.ENGINE, "epoch", event_type="EPOCH_ADVANCED")
        self._execute(build_transaction(self.ledger, [], [change], origin=origin), "epoch")
        if self.verbose:
            print(f"[EPOCH] advanced to {change.new_state['current_epoch_id']}")

    def _whitelisted_entry(self, asset: str) -> CollateralEntry:
        entry = load_collateral(self.ledger, asset)
        if entry is None or not entry.whitelisted:
            raise NotWhitelisted(f"{asset} is not a whitelisted collateral")
        return entry

    def _convert(self, account: str, entry: CollateralEntry, amount: Decimal) -> Tuple[str, Decimal]:
        """Pull collateral into custody and swap it into the conversion target."""
        if self.swap_router is None:
            raise SwapFailed(f"{entry.asset} requires conversion but no swap router is configured")
        pull = build_transaction(
            self.ledger,
            [Move(amount, entry.asset, account, self.config.custody_wallet, f"bond:{account}")],
            origin=TransactionOrigin(OriginType.USER_ACTION, account, asset=entry.asset,
                                     event_type="COLLATERAL_PULLED"),
        )
        self._execute(pull, "pull")
        deadline = self.ledger.current_time + self.config.swap_deadline
        received = self.swap_router.swap_exact_in(
            entry.asset, amount, entry.conversion_target, Decimal("0"), deadline,
        )
        if received <= 0:
            raise SwapFailed(f"conversion of {amount} {entry.asset} returned {received}")
        return entry.conversion_target, to_decimal(received)

    def _value(self, entry: CollateralEntry, amount: Decimal) -> Decimal:
        now = self.ledger.current_time
        if entry.is_pooled_liquidity:
            pool = self.pool_readers.get(entry.asset)
            if pool is None:
                raise InvalidPoolState(f"no pool reader registered for {entry.asset}")
            return value_lp_position(
                pool, self.oracle, amount, now,
                feeds=self.underlying_feeds,
                base_feed=self.config.base_price_feed,
                max_price_age=self.config.max_price_age,
            )
        return value_in_base_units(
            self.oracle, entry, amount, now,
            base_feed=self.config.base_price_feed,
            max_price_age=self.config.max_price_age,
        )

    def _native_price(self) -> Decimal:
        return price_in_base_units(
            self.oracle, self.config.native_feed, self.ledger.current_time,
            base_feed=self.config.base_price_feed,
            max_price_age=self.config.max_price_age,
        )

    def _price_bond(self, collateral_asset: str, value: Decimal) -> Tuple[int, Decimal, Decimal]:
        """(discount, native_price, native_out) for a bond worth `value`."""
        discount = registry.get_discount(self.ledger, collateral_asset)
        native_price = self._native_price()
        native_out = calculate_native_out(value, discount, native_price, self.native_decimals)
        return discount, native_price, native_out

    # ========================================================================
    # BONDING
    # ========================================================================

    def bond(
        self,
        account: str,
        collateral_asset: str,
        amount: Decimal,
        min_native_out: Decimal = Decimal("0"),
    ) -> Decimal:
        """
        Exchange collateral for a vesting position in the native asset.

        Returns:
            Native owed on the new position

        Raises:
            NotWhitelisted, BondTooSmall, ExceedsMaxBond, SlippageExceeded,
            CapacityExceeded: Policy violations
            InvalidPrice, StalePrice, MissingPriceFeed, InvalidPoolState,
            SwapFailed: Unusable upstream data
            InsufficientFunds: The account cannot cover the collateral
        """
        amount = to_decimal(amount)
        min_native_out = to_decimal(min_native_out)
        if amount <= 0:
            raise ValueError(f"bond amount must be positive, got {amount}")

        with self._exclusive():
            self._advance_epoch()

            with self.ledger.atomic():
                entry = self._whitelisted_entry(collateral_asset)

                final_asset, final_amount, final_entry = collateral_asset, amount, entry
                if entry.requires_conversion:
                    final_asset, final_amount = self._convert(account, entry, amount)
                    final_entry = self._whitelisted_entry(final_asset)

                value = self._value(final_entry, final_amount)
                if value < self.config.min_bond_value:
                    raise BondTooSmall(
                        f"bond value {value} {self.config.base_asset} is below the minimum "
                        f"{self.config.min_bond_value}"
                    )

                epoch_change, epoch_total = compute_record_and_check(self.ledger, account, value)
                cap = self.config.max_bond_per_epoch
                if cap is not None and epoch_total > cap:
                    raise ExceedsMaxBond(
                        f"{account}: epoch total {epoch_total} {self.config.base_asset} would exceed "
                        f"the per-epoch cap {cap}"
                    )

                discount, native_price, native_out = self._price_bond(collateral_asset, value)
                if native_out < min_native_out:
                    raise SlippageExceeded(
                        f"native out {native_out} is below the requested minimum {min_native_out}"
                    )
                if native_out <= 0:
                    raise BondTooSmall(f"bond value {value} buys no {self.config.native_asset}")

                if entry.requires_conversion:
                    source = self.config.custody_wallet
                else:
                    source = account
                moves = [Move(final_amount, final_asset, source, self.config.treasury_wallet,
                              f"bond:{account}")]

                record_change = registry.compute_record_bond(self.ledger, final_asset, final_amount)
                position, position_changes = compute_open_position(
                    self.ledger, account, collateral_asset, amount,
                    native_out, native_price, self.config.vesting_period,
                )
                pending = build_transaction(
                    self.ledger, moves,
                    [epoch_change, record_change, *position_changes],
                    origin=TransactionOrigin(OriginType.USER_ACTION, account,
                                             asset=collateral_asset, event_type="BOND"),
                )
                self._execute(pending, "bond")

        if self.verbose:
            print(f"[BOND] {account}: {amount} {collateral_asset} -> {native_out} "
                  f"{self.config.native_asset} (discount {discount} bps, position {position.position_id})")
        return native_out

    def get_bond_quote(self, collateral_asset: str, amount: Decimal) -> BondQuote:
        """
        What bond() would issue right now, without touching state.

        Epoch caps and the minimum bond value are not applied; the conversion
        leg uses the router's quote.
        """
        amount = to_decimal(amount)
        with self._exclusive():
            entry = self._whitelisted_entry(collateral_asset)
            final_entry, final_amount = entry, amount
            if entry.requires_conversion:
                if self.swap_router is None:
                    raise SwapFailed(f"{collateral_asset} requires conversion but no swap router is configured")
                final_amount = to_decimal(
                    self.swap_router.quote(collateral_asset, amount, entry.conversion_target)
                )
                final_entry = self._whitelisted_entry(entry.conversion_target)
            value = self._value(final_entry, final_amount)
            discount, _, native_out = self._price_bond(collateral_asset, value)
        return BondQuote(native_out=native_out, discount=discount, value_in_base_units=value)

    # ========================================================================
    # CLAIMING
    # ========================================================================

    def _settle(self, plan: ClaimPlan) -> Decimal:
        """Commit the claim, then mint; a failed mint unwinds the commit."""
        with self.ledger.atomic():
            pending = build_transaction(
                self.ledger, [], list(plan.state_changes),
                origin=TransactionOrigin(OriginType.USER_ACTION, plan.account,
                                         asset=self.config.native_asset, event_type="CLAIM"),
            )
            self._execute(pending, "claim")
            self.mint_authority.mint(plan.account, plan.total)
        if self.verbose:
            print(f"[CLAIM] {plan.account}: {plan.total} {self.config.native_asset} "
                  f"from {len(plan.claims)} position(s)")
        return plan.total

    def claim(self, account: str, position_id: int) -> Decimal:
        """
        Claim everything vested on one position.

        Raises:
            UnknownPosition: If the account has no such position
            NothingToClaim: If nothing is vested and unclaimed
        """
        with self._exclusive():
            plan = compute_claim(self.ledger, account, [position_id], self.native_decimals)
            return self._settle(plan)

    def claim_all(self, account: str) -> Decimal:
        """
        Claim across every open position with a single mint.

        Raises:
            TooManyPositions: If the account has more open positions than one
                call may touch; use claim_batch() instead
            NothingToClaim: If nothing is vested and unclaimed
        """
        with self._exclusive():
            open_positions = load_account_index(self.ledger, account).open_positions
            limit = self.config.max_positions_per_claim
            if len(open_positions) > limit:
                raise TooManyPositions(
                    f"{account} has {len(open_positions)} open positions, more than {limit} per claim; "
                    f"use claim_batch"
                )
            plan = compute_claim(self.ledger, account, open_positions, self.native_decimals)
            return self._settle(plan)

    def claim_batch(self, account: str, start: int, count: int) -> Decimal:
        """
        Claim across positions [start, start + count) of the account's arena.

        Closed positions in the window are skipped; ids past the last opened
        position are ignored.

        Raises:
            TooManyPositions: If count exceeds the per-call bound
            NothingToClaim: If nothing in the window is vested and unclaimed
        """
        limit = self.config.max_positions_per_claim
        if count > limit:
            raise TooManyPositions(f"batch of {count} positions exceeds the per-claim bound {limit}")
        if start < 0 or count <= 0:
            raise ValueError(f"invalid batch window start={start} count={count}")
        with self._exclusive():
            index = load_account_index(self.ledger, account)
            window = range(start, min(start + count, index.next_index))
            plan = compute_claim(self.ledger, account, window, self.native_decimals)
            return self._settle(plan)

    # ========================================================================
    # QUERIES AND REPORTS
    # ========================================================================

    def get_claimable(self, account: str) -> Decimal:
        return get_claimable(self.ledger, account, self.native_decimals)

    def get_positions(self, account: str) -> List[BondPosition]:
        return load_positions(self.ledger, account)

    def get_epoch_total(self, account: str) -> Decimal:
        return get_epoch_total(self.ledger, account)

    def is_whitelisted(self, asset: str) -> bool:
        return registry.is_whitelisted(self.ledger, asset)

    def get_discount(self, asset: str) -> int:
        return registry.get_discount(self.ledger, asset)

    def get_available_capacity(self, asset: str) -> Optional[Decimal]:
        return registry.get_available_capacity(self.ledger, asset)

    def get_supply_pressure(self) -> Dict[str, Decimal]:
        """
        Native obligations of the engine.

        outstanding is owed but not yet claimed; vested_unclaimed is the
        part of it that could be claimed right now.
        """
        owed, claimed = load_totals(self.ledger)
        vested_unclaimed = Decimal("0")
        for key in self.ledger.list_records(ACCOUNT_PREFIX):
            vested_unclaimed += get_claimable(self.ledger, key[len(ACCOUNT_PREFIX):], self.native_decimals)
        return {
            'total_native_owed': owed,
            'total_native_claimed': claimed,
            'outstanding': owed - claimed,
            'vested_unclaimed': vested_unclaimed,
        }

    def verify_invariants(self) -> Dict[str, Any]:
        """
        Check the bookkeeping invariants against the records.

        - totals: claimed <= owed, and both equal the sums over positions
        - capacity: total_bonded <= max_capacity for bounded entries
        - positions: 0 <= amount_claimed <= amount_owed
        - double entry: every asset still nets to zero across wallets

        Returns:
            Dict with 'valid' and 'violations' keys.
        """
        violations: List[str] = []

        owed, claimed = load_totals(self.ledger)
        if claimed > owed:
            violations.append(f"total_native_claimed {claimed} exceeds total_native_owed {owed}")

        position_owed = Decimal("0")
        position_claimed = Decimal("0")
        for key in self.ledger.list_records(POSITION_PREFIX):
            raw = self.ledger.get_record(key)
            try:
                position = BondPosition(**raw)
            except ValueError as e:
                violations.append(f"{key}: {e}")
                continue
            position_owed += position.amount_owed
            position_claimed += position.amount_claimed
        if position_owed != owed:
            violations.append(f"positions owe {position_owed}, totals record {owed}")
        if position_claimed != claimed:
            violations.append(f"positions claimed {position_claimed}, totals record {claimed}")

        for key in self.ledger.list_records(COLLATERAL_PREFIX):
            entry = load_collateral(self.ledger, key[len(COLLATERAL_PREFIX):])
            if entry.is_bounded and entry.total_bonded > entry.max_capacity:
                violations.append(
                    f"{entry.asset}: total_bonded {entry.total_bonded} exceeds max_capacity {entry.max_capacity}"
                )

        double_entry = self.ledger.verify_double_entry()
        if not double_entry['valid']:
            violations.extend(str(d) for d in double_entry['discrepancies'])

        return {'valid': not violations, 'violations': violations}

    # ========================================================================
    # REGISTRY ADMINISTRATION (owner-gated)
    # ========================================================================

    def add_collateral(
        self,
        caller: str,
        asset: str,
        tier: Tier,
        discount_bonus: int = 0,
        max_capacity: Optional[Decimal] = None,
        price_feed: Optional[str] = None,
        pegged_to_base: bool = False,
        is_pooled_liquidity: bool = False,
        conversion_target: Optional[str] = None,
    ) -> None:
        with self._exclusive():
            self._execute(registry.compute_add_collateral(
                self.ledger, caller, asset, tier,
                discount_bonus=discount_bonus,
                max_capacity=max_capacity,
                price_feed=price_feed,
                pegged_to_base=pegged_to_base,
                is_pooled_liquidity=is_pooled_liquidity,
                conversion_target=conversion_target,
            ), "admin")

    def remove_collateral(self, caller: str, asset: str) -> None:
        with self._exclusive():
            self._execute(registry.compute_remove_collateral(self.ledger, caller, asset), "admin")

    def update_tier_discount(self, caller: str, tier: Tier, bps: int) -> None:
        with self._exclusive():
            self._execute(registry.compute_update_tier_discount(self.ledger, caller, tier, bps), "admin")

    def set_capacity(self, caller: str, asset: str, max_capacity: Optional[Decimal]) -> None:
        with self._exclusive():
            self._execute(registry.compute_set_capacity(self.ledger, caller, asset, max_capacity), "admin")

    def set_conversion_target(self, caller: str, asset: str, target: Optional[str]) -> None:
        with self._exclusive():
            self._execute(registry.compute_set_conversion_target(self.ledger, caller, asset, target), "admin")

    def set_discount_bonus(self, caller: str, asset: str, bonus: int) -> None:
        with self._exclusive():
            self._execute(registry.compute_set_discount_bonus(self.ledger, caller, asset, bonus), "admin")

    def set_price_feed(self, caller: str, asset: str, price_feed: Optional[str],
                       pegged_to_base: bool = False) -> None:
        with self._exclusive():
            self._execute(
                registry.compute_set_price_feed(self.ledger, caller, asset, price_feed, pegged_to_base),
                "admin",
            )

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        with self._exclusive():
            self._execute(registry.compute_transfer_ownership(self.ledger, caller, new_owner), "admin")
