"""
fair_lp.py - Fair Valuation of Pooled-Liquidity Shares

Instantaneous pool reserves can be pushed around inside one transaction (a
large swap right before valuation), so a share of a constant-product pool is
not valued from the reserve ratio. Instead the pool is priced from its
invariant k = r0 * r1 and two externally sourced prices:

    fair_pool_value = 2 * sqrt(r0 * r1) * sqrt(p0 * p1)
    share_value     = fair_pool_value * L / S

A trade that moves along the curve leaves r0 * r1 unchanged, so it leaves the
fair value unchanged as well (fees ignored).

All intermediate values are WAD-scaled integers and every multiply-divide
goes through mul_div on the full-width product.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Optional

from .core import WAD, InvalidPoolState, InvalidPrice, to_decimal
from .fixed_point import mul_div, sqrt, to_wad, from_wad
from .oracle import PriceOracle
from .collaborators import PoolReader
from .valuation import price_in_base_units


def calculate_fair_pool_value_wad(reserve0: int, reserve1: int, price0: int, price1: int) -> int:
    """
    Fair value of the whole pool, WAD-scaled.

    PURE FUNCTION - all four inputs are WAD-scaled integers.

    Raises:
        InvalidPoolState: If either reserve is zero or negative
        InvalidPrice: If either price is zero or negative
    """
    if reserve0 <= 0 or reserve1 <= 0:
        raise InvalidPoolState(f"pool reserves must be positive, got ({reserve0}, {reserve1})")
    if price0 <= 0 or price1 <= 0:
        raise InvalidPrice(f"underlying prices must be positive, got ({price0}, {price1})")
    # sqrt(WAD * WAD) = WAD, so each root stays WAD-scaled and one division rescales the product
    root_k = sqrt(reserve0 * reserve1)
    root_p = sqrt(price0 * price1)
    return 2 * mul_div(root_k, root_p, WAD)


def calculate_share_value_wad(pool_value: int, shares: int, total_shares: int) -> int:
    """
    Raises:
        InvalidPoolState: On zero share supply or shares above the supply
    """
    if total_shares <= 0:
        raise InvalidPoolState("pool has no outstanding shares")
    if shares < 0 or shares > total_shares:
        raise InvalidPoolState(f"share amount {shares} outside [0, {total_shares}]")
    return mul_div(pool_value, shares, total_shares)


def calculate_fair_share_value(
    reserve0: Decimal,
    reserve1: Decimal,
    price0: Decimal,
    price1: Decimal,
    shares: Decimal,
    total_shares: Decimal,
) -> Decimal:
    """Decimal wrapper: value of `shares` pool shares in the unit of price0/price1."""
    pool_value = calculate_fair_pool_value_wad(
        to_wad(to_decimal(reserve0)), to_wad(to_decimal(reserve1)),
        to_wad(to_decimal(price0)), to_wad(to_decimal(price1)),
    )
    return from_wad(calculate_share_value_wad(
        pool_value, to_wad(to_decimal(shares)), to_wad(to_decimal(total_shares)),
    ))


def value_lp_position(
    pool: PoolReader,
    oracle: PriceOracle,
    shares: Decimal,
    now: datetime,
    feeds: Optional[Dict[str, str]] = None,
    base_feed: Optional[str] = None,
    max_price_age: Optional[timedelta] = None,
) -> Decimal:
    """
    Value `shares` of a pool in base units.

    Underlying prices come from the oracle through the valuation module
    (each in base units, with the same staleness guard). feeds maps an
    underlying asset to its feed name; assets missing from it use their own
    symbol as the feed.

    Raises:
        InvalidPoolState: Empty reserves or share supply
        InvalidPrice / StalePrice / MissingPriceFeed: Unusable underlying price
    """
    feeds = feeds or {}
    asset0, asset1 = pool.underlying_assets()
    reserve0, reserve1, _ = pool.get_reserves()
    price0 = price_in_base_units(oracle, feeds.get(asset0, asset0), now, base_feed, max_price_age)
    price1 = price_in_base_units(oracle, feeds.get(asset1, asset1), now, base_feed, max_price_age)
    return calculate_fair_share_value(reserve0, reserve1, price0, price1, shares, pool.total_shares())
