"""
oracle.py - Price feed infrastructure for collateral valuation

Provides the price oracle interface consumed by the valuation module.

Classes:
- PriceReading: One feed answer (integer price, decimals, validity, update time)
- PriceOracle: Protocol defining the feed interface
- StaticPriceOracle: Time-independent prices (deterministic test double)
- TimeSeriesPriceOracle: Recorded feed history with point-in-time lookup

Prices are quoted per whole unit of the asset in a common quote currency;
the valuation module divides two readings to express an asset in base units.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional, List, Tuple, Protocol, runtime_checkable
from bisect import bisect_right

from .core import to_decimal


DEFAULT_FEED_DECIMALS = 8


@dataclass(frozen=True, slots=True)
class PriceReading:
    """
    A single oracle answer.

    Attributes:
        answer: Integer price scaled by 10**decimals
        decimals: Feed precision
        is_valid: False when the feed flags the round as unusable
        updated_at: When the feed last updated this answer
    """
    answer: int
    decimals: int
    is_valid: bool = True
    updated_at: Optional[datetime] = None

    @property
    def price(self) -> Decimal:
        """The answer as a Decimal price."""
        return Decimal(self.answer).scaleb(-self.decimals)


def _to_answer(price: Decimal, decimals: int) -> int:
    return int(to_decimal(price).scaleb(decimals).to_integral_value())


@runtime_checkable
class PriceOracle(Protocol):
    """
    Protocol for price feeds.

    get_price() returns None when the feed has no answer for the asset.
    """

    def get_price(self, feed: str, timestamp: datetime) -> Optional[PriceReading]:
        """Get the latest reading for a feed at or before timestamp."""
        ...


class StaticPriceOracle:
    """
    Oracle with static prices (time-independent).

    Readings are always valid and always fresh (updated_at == request time)
    unless marked otherwise with invalidate().
    """

    def __init__(self, prices: Dict[str, Decimal], decimals: int = DEFAULT_FEED_DECIMALS):
        """
        Args:
            prices: Dictionary mapping feed ids to prices
            decimals: Precision used for the integer answers
        """
        self.decimals = decimals
        self.prices = {feed: to_decimal(p) for feed, p in prices.items()}
        self._invalid: set = set()

    def get_price(self, feed: str, timestamp: datetime) -> Optional[PriceReading]:
        """Get static price (timestamp only stamps the reading)."""
        if feed not in self.prices:
            return None
        return PriceReading(
            answer=_to_answer(self.prices[feed], self.decimals),
            decimals=self.decimals,
            is_valid=feed not in self._invalid,
            updated_at=timestamp,
        )

    def update_price(self, feed: str, price: Decimal):
        """Update the price of a feed."""
        self.prices[feed] = to_decimal(price)
        self._invalid.discard(feed)

    def update_prices(self, prices: Dict[str, Decimal]):
        """Update multiple prices at once."""
        for feed, price in prices.items():
            self.update_price(feed, price)

    def invalidate(self, feed: str):
        """Flag a feed's answers as invalid."""
        self._invalid.add(feed)

    def __repr__(self):
        return f"StaticPriceOracle({len(self.prices)} feeds, decimals={self.decimals})"


class TimeSeriesPriceOracle:
    """
    Oracle backed by recorded feed history.

    Uses the most recent observation at or before the requested timestamp;
    the reading's updated_at is the observation time, so staleness checks
    see the true age of the data.

    Supports two initialization patterns:
    - Empty initialization for incremental observations via add_price()
    - Batch initialization with complete price paths
    """

    def __init__(
        self,
        price_paths: Optional[Dict[str, List[Tuple[datetime, Decimal]]]] = None,
        decimals: int = DEFAULT_FEED_DECIMALS,
    ):
        """
        Args:
            price_paths: Optional dict mapping feed ids to (timestamp, price) lists.
            decimals: Precision used for the integer answers

        Examples:
            oracle = TimeSeriesPriceOracle({
                'ETH/USD': [(t0, 3000), (t1, 3050)],
                'USDC/USD': [(t0, 1)],
            })
        """
        self.decimals = decimals
        self.price_history: Dict[str, List[Tuple[datetime, Decimal]]] = {}

        if price_paths:
            for feed, path in price_paths.items():
                if not path:
                    continue
                self.price_history[feed] = sorted(
                    ((ts, to_decimal(p)) for ts, p in path), key=lambda x: x[0]
                )

    def add_price(self, feed: str, timestamp: datetime, price: Decimal):
        """Add a price observation for a feed at a specific time."""
        if feed not in self.price_history:
            self.price_history[feed] = []
        self.price_history[feed].append((timestamp, to_decimal(price)))
        self.price_history[feed].sort(key=lambda x: x[0])

    def add_prices(self, prices: Dict[str, Decimal], timestamp: datetime):
        """Add multiple observations at the same timestamp."""
        for feed, price in prices.items():
            self.add_price(feed, timestamp, price)

    def get_price(self, feed: str, timestamp: datetime) -> Optional[PriceReading]:
        """
        Reading at or before the specified timestamp, or None.

        Uses binary search for O(log n) lookup.
        """
        history = self.price_history.get(feed)
        if not history:
            return None

        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, timestamp)
        if idx == 0:
            return None

        observed_at, price = history[idx - 1]
        return PriceReading(
            answer=_to_answer(price, self.decimals),
            decimals=self.decimals,
            is_valid=True,
            updated_at=observed_at,
        )

    def get_all_timestamps(self, feed: Optional[str] = None) -> List[datetime]:
        """Sorted observation timestamps for one feed, or the union across feeds."""
        if feed:
            return [ts for ts, _ in self.price_history.get(feed, [])]

        all_times = set()
        for path in self.price_history.values():
            all_times.update(ts for ts, _ in path)
        return sorted(all_times)

    def __repr__(self):
        total_observations = sum(len(history) for history in self.price_history.values())
        return f"TimeSeriesPriceOracle({len(self.price_history)} feeds, {total_observations} observations)"
