"""
valuation.py - Collateral valuation in base units

Converts an amount of collateral into the common unit of account.

Policy:
    - No price feed: the entry must be explicitly marked pegged_to_base, in
      which case the amount is taken 1:1. An unpegged entry without a feed is
      rejected (MissingPriceFeed) rather than silently valued at par.
    - Otherwise two independent readings are taken (asset feed and base feed),
      both normalized to 18 decimals, and

          value = amount * asset_price / base_price

      computed with mul_div on WAD integers.
    - Readings that are invalid or non-positive raise InvalidPrice; readings
      older than max_price_age raise StalePrice. There is no fallback price.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from .core import (
    LedgerView, WAD, WAD_DECIMALS,
    InvalidPrice, StalePrice, MissingPriceFeed, NotWhitelisted,
    to_decimal,
)
from .fixed_point import mul_div, rescale, to_wad, from_wad
from .oracle import PriceOracle, PriceReading
from .registry import CollateralEntry, load_collateral


def validate_reading(
    feed: str,
    reading: Optional[PriceReading],
    now: datetime,
    max_price_age: Optional[timedelta] = None,
) -> PriceReading:
    """
    Raises:
        MissingPriceFeed: If the feed returned nothing
        InvalidPrice: If the reading is flagged invalid or non-positive
        StalePrice: If the reading is older than max_price_age
    """
    if reading is None:
        raise MissingPriceFeed(f"feed {feed} has no price")
    if not reading.is_valid:
        raise InvalidPrice(f"feed {feed} reported an invalid round")
    if reading.answer <= 0:
        raise InvalidPrice(f"feed {feed} reported non-positive price {reading.answer}")
    if max_price_age is not None and reading.updated_at is not None:
        age = now - reading.updated_at
        if age > max_price_age:
            raise StalePrice(f"feed {feed} is stale: age {age} exceeds {max_price_age}")
    return reading


def read_price_wad(
    oracle: PriceOracle,
    feed: Optional[str],
    now: datetime,
    max_price_age: Optional[timedelta] = None,
) -> int:
    """
    Fetch and validate a reading, normalized to WAD.

    feed=None denotes the base unit itself and prices at exactly 1.
    """
    if feed is None:
        return WAD
    reading = validate_reading(feed, oracle.get_price(feed, now), now, max_price_age)
    return rescale(reading.answer, reading.decimals, WAD_DECIMALS)


def calculate_value_in_base_units(amount: Decimal, asset_price_wad: int, base_price_wad: int) -> Decimal:
    """
    amount * asset_price / base_price on WAD integers.

    PURE FUNCTION - prices are already normalized to 18 decimals.
    """
    if asset_price_wad <= 0 or base_price_wad <= 0:
        raise InvalidPrice(
            f"prices must be positive, got asset={asset_price_wad} base={base_price_wad}"
        )
    return from_wad(mul_div(to_wad(to_decimal(amount)), asset_price_wad, base_price_wad))


def price_in_base_units(
    oracle: PriceOracle,
    feed: str,
    now: datetime,
    base_feed: Optional[str] = None,
    max_price_age: Optional[timedelta] = None,
) -> Decimal:
    """Price of one whole unit behind feed, in base units."""
    asset_price = read_price_wad(oracle, feed, now, max_price_age)
    base_price = read_price_wad(oracle, base_feed, now, max_price_age)
    return from_wad(mul_div(WAD, asset_price, base_price))


def value_in_base_units(
    oracle: PriceOracle,
    entry: CollateralEntry,
    amount: Decimal,
    now: datetime,
    base_feed: Optional[str] = None,
    max_price_age: Optional[timedelta] = None,
) -> Decimal:
    """
    Value of amount of the entry's asset in base units.

    Raises:
        MissingPriceFeed: If the entry has no feed and is not pegged_to_base
        InvalidPrice / StalePrice: If either reading is unusable
    """
    amount = to_decimal(amount)
    if entry.price_feed is None:
        if entry.pegged_to_base:
            return amount
        raise MissingPriceFeed(
            f"{entry.asset} has no price feed and is not configured as pegged to the base unit"
        )
    asset_price = read_price_wad(oracle, entry.price_feed, now, max_price_age)
    base_price = read_price_wad(oracle, base_feed, now, max_price_age)
    return calculate_value_in_base_units(amount, asset_price, base_price)


def compute_value_in_base_units(
    view: LedgerView,
    oracle: PriceOracle,
    asset: str,
    amount: Decimal,
    base_feed: Optional[str] = None,
    max_price_age: Optional[timedelta] = None,
) -> Decimal:
    """
    Convenience wrapper: load the registry entry, then value at view.current_time.

    Raises:
        NotWhitelisted: If the asset has no registry entry
    """
    entry = load_collateral(view, asset)
    if entry is None:
        raise NotWhitelisted(f"{asset} is not a registered collateral")
    return value_in_base_units(oracle, entry, amount, view.current_time, base_feed, max_price_age)
