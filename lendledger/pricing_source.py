"""
pricing_source.py - Price feeds and the oracle adapter

Provides the collateral price to the lending ledger.

Classes:
- PriceQuote: A validated WAD price with its observation time
- PricingSource: Protocol defining the price feed interface
- StaticPricingSource: Prices that only change when explicitly updated
- TimeSeriesPricingSource: Time-varying prices with historical data
- PriceOracleAdapter: Wraps a source for one symbol and enforces freshness

All prices are quoted in the pool's base asset.
"""

from __future__ import annotations
from bisect import bisect_right
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple, Protocol, runtime_checkable

from .core import EPOCH, StalePrice
from .fixed_point import WAD, Numeric, to_wad


@dataclass(frozen=True, slots=True)
class PriceQuote:
    """
    A price observation.

    Attributes:
        price: Base units per unit of the quoted asset (WAD)
        observed_at: When the price was observed
    """
    price: int
    observed_at: datetime


@runtime_checkable
class PricingSource(Protocol):
    """
    Protocol for price feeds.

    A pricing source returns the latest observation for a unit at or before
    a timestamp, denominated in a base currency.
    """
    base_currency: str

    def get_quote(self, unit_symbol: str, timestamp: datetime) -> Optional[PriceQuote]:
        """Return the latest quote at or before timestamp, or None if there is none."""
        ...


class StaticPricingSource:
    """
    Pricing source with prices that only change through update_price().

    A price updated without an observation time is treated as observed at
    whatever time it is requested. The base currency always prices at 1.0.
    """

    def __init__(self, prices: Dict[str, Numeric], base_currency: str = "USD"):
        """
        Initialize with a static price map.

        Args:
            prices: Dictionary mapping unit symbols to prices in base currency
            base_currency: The currency in which prices are quoted
        """
        self.base_currency = base_currency
        self.prices: Dict[str, int] = {}
        self.observed_at: Dict[str, Optional[datetime]] = {}
        for unit, price in prices.items():
            self.update_price(unit, price)

    def get_quote(self, unit_symbol: str, timestamp: datetime) -> Optional[PriceQuote]:
        if unit_symbol == self.base_currency:
            return PriceQuote(WAD, timestamp)
        if unit_symbol not in self.prices:
            return None
        observed_at = self.observed_at.get(unit_symbol) or timestamp
        return PriceQuote(self.prices[unit_symbol], observed_at)

    def update_price(self, unit_symbol: str, price: Numeric, observed_at: Optional[datetime] = None):
        """Update the price of a unit, optionally pinning its observation time."""
        self.prices[unit_symbol] = to_wad(price)
        self.observed_at[unit_symbol] = observed_at

    def __repr__(self):
        return f"StaticPricingSource({len(self.prices)} prices, base={self.base_currency})"


class TimeSeriesPricingSource:
    """
    Pricing source with time-varying prices.

    Stores historical price data and returns the most recent observation at
    or before the requested timestamp, with that observation's own time.
    """

    def __init__(
        self,
        price_paths: Optional[Dict[str, List[Tuple[datetime, Numeric]]]] = None,
        base_currency: str = "USD"
    ):
        """
        Initialize pricing source.

        Args:
            price_paths: Optional dict mapping unit symbols to list of (timestamp, price) tuples.
            base_currency: Base currency for prices

        Example:
            pricer = TimeSeriesPricingSource({
                'ETH': [(t0, "2000"), (t1, "1850"), (t2, "1900")],
            })
        """
        self.base_currency = base_currency
        self.price_history: Dict[str, List[Tuple[datetime, int]]] = {}

        if price_paths:
            for unit, path in price_paths.items():
                for timestamp, price in path:
                    self.add_price(unit, timestamp, price)

    def add_price(self, unit_symbol: str, timestamp: datetime, price: Numeric):
        """Add a price observation for a unit at a specific time."""
        history = self.price_history.setdefault(unit_symbol, [])
        history.append((timestamp, to_wad(price)))
        history.sort(key=lambda x: x[0])

    def get_quote(self, unit_symbol: str, timestamp: datetime) -> Optional[PriceQuote]:
        """
        Get the latest observation at or before timestamp.

        Uses binary search for O(log n) lookup.
        """
        if unit_symbol == self.base_currency:
            return PriceQuote(WAD, timestamp)

        history = self.price_history.get(unit_symbol)
        if not history:
            return None

        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, timestamp)
        if idx == 0:
            return None

        observed_at, price = history[idx - 1]
        return PriceQuote(price, observed_at)

    def __repr__(self):
        total_observations = sum(len(history) for history in self.price_history.values())
        return f"TimeSeriesPricingSource({len(self.price_history)} units, {total_observations} observations, base={self.base_currency})"


class PriceOracleAdapter:
    """
    Freshness-checked access to one symbol of a pricing source.

    fetch_price() is a pure read: it never mutates ledger state. It raises
    StalePrice rather than returning an unusable quote.
    """

    def __init__(self, source: PricingSource, unit_symbol: str, max_staleness: timedelta):
        """
        Args:
            source: Underlying price feed
            unit_symbol: Symbol to quote (the collateral asset)
            max_staleness: Oldest acceptable observation age
        """
        if max_staleness < timedelta(0):
            raise ValueError(f"max_staleness cannot be negative, got {max_staleness}")
        self.source = source
        self.unit_symbol = unit_symbol
        self.max_staleness = max_staleness

    def fetch_price(self, now: datetime) -> PriceQuote:
        """
        Fetch a fresh price for the adapter's symbol.

        Args:
            now: Current ledger time

        Returns:
            PriceQuote with a strictly positive WAD price.

        Raises:
            StalePrice: If there is no observation, the observation time is
                        not after the epoch or lies in the future, the
                        observation is older than max_staleness, or the
                        price is not positive.
        """
        quote = self.source.get_quote(self.unit_symbol, now)
        if quote is None:
            raise StalePrice(f"No price available for {self.unit_symbol} at {now}")
        if quote.observed_at is None or quote.observed_at <= EPOCH:
            raise StalePrice(f"{self.unit_symbol} price has no valid observation time")
        if quote.observed_at > now:
            raise StalePrice(
                f"{self.unit_symbol} price observed in the future: {quote.observed_at} > {now}"
            )
        age = now - quote.observed_at
        if age > self.max_staleness:
            raise StalePrice(
                f"{self.unit_symbol} price is stale: observed {quote.observed_at}, "
                f"age {age} > {self.max_staleness}"
            )
        if quote.price <= 0:
            raise StalePrice(f"{self.unit_symbol} price must be positive, got {quote.price}")
        return quote

    def __repr__(self):
        return f"PriceOracleAdapter({self.unit_symbol}, max_staleness={self.max_staleness}, source={self.source!r})"
