"""
pricing_source.py - Market price inputs for the simulator

The live BTC feed is an external collaborator. The core only needs its
current price (possibly unavailable) at the moment of a trade, plus the
historical series for valuation and charts. This module defines that
contract and two simple implementations.

Classes:
- PricePoint: One OHLCV sample
- PriceSource: Protocol defining the pricing interface
- StaticPriceSource: Fixed, manually updated price
- TimeSeriesPriceSource: Historical samples; current price read at the clock
"""

from datetime import datetime
from decimal import Decimal
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, runtime_checkable
from bisect import bisect_right

from .core import Clock, ensure_utc, to_decimal, utc_now


@dataclass(frozen=True, slots=True)
class PricePoint:
    """
    A single price sample.

    price is the close; open/high/low/volume are optional. is_live marks
    real-time ticks appended after the historical load.
    """
    timestamp: datetime
    price: Decimal
    open: Optional[Decimal] = None
    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    volume: Optional[Decimal] = None
    is_live: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'timestamp', ensure_utc(self.timestamp))
        if not isinstance(self.price, Decimal):
            object.__setattr__(self, 'price', to_decimal(self.price))
        for name in ('open', 'high', 'low', 'volume'):
            value = getattr(self, name)
            if value is not None and not isinstance(value, Decimal):
                object.__setattr__(self, name, to_decimal(value))


@runtime_checkable
class PriceSource(Protocol):
    """
    Protocol for price sources.

    current_price() returns None while the price is unavailable (feed not
    yet connected, reconnecting); trades must then be rejected.
    """
    symbol: str

    def current_price(self) -> Optional[Decimal]:
        """Latest known price, or None if unavailable."""
        ...

    def historical_data(self) -> List[PricePoint]:
        """Samples in chronological order."""
        ...


class StaticPriceSource:
    """
    Price source with a single, manually updated price.

    Useful for scripted sessions and tests.
    """

    def __init__(self, price: Optional[Decimal] = None, symbol: str = "BTCUSDT"):
        self.symbol = symbol
        self._price = to_decimal(price) if price is not None else None

    def current_price(self) -> Optional[Decimal]:
        return self._price

    def update_price(self, price: Optional[Decimal]) -> None:
        """Set a new price; None marks the price as unavailable."""
        self._price = to_decimal(price) if price is not None else None

    def historical_data(self) -> List[PricePoint]:
        return []

    def __repr__(self):
        return f"StaticPriceSource({self.symbol}={self._price})"


class TimeSeriesPriceSource:
    """
    Price source backed by timestamped samples.

    current_price() returns the most recent sample at or before the clock's
    current time; None before the first sample.
    """

    def __init__(
        self,
        points: Optional[Iterable[PricePoint]] = None,
        clock: Optional[Clock] = None,
        symbol: str = "BTCUSDT",
    ):
        self.symbol = symbol
        self._clock: Clock = clock or utc_now
        self._points: List[PricePoint] = sorted(points or [], key=lambda p: p.timestamp)
        self._times: List[datetime] = [p.timestamp for p in self._points]

    def add_price(self, timestamp: datetime, price: Decimal, is_live: bool = True) -> PricePoint:
        """Insert a sample, keeping chronological order."""
        point = PricePoint(timestamp=timestamp, price=price, is_live=is_live)
        idx = bisect_right(self._times, point.timestamp)
        self._points.insert(idx, point)
        self._times.insert(idx, point.timestamp)
        return point

    def price_at(self, timestamp: datetime) -> Optional[Decimal]:
        """Most recent price at or before timestamp."""
        idx = bisect_right(self._times, ensure_utc(timestamp))
        if idx == 0:
            return None
        return self._points[idx - 1].price

    def current_price(self) -> Optional[Decimal]:
        return self.price_at(self._clock())

    def historical_data(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[PricePoint]:
        """Samples in [start, end], chronological."""
        return [
            p for p in self._points
            if (start is None or p.timestamp >= ensure_utc(start))
            and (end is None or p.timestamp <= ensure_utc(end))
        ]

    def __repr__(self):
        return f"TimeSeriesPriceSource({self.symbol}, {len(self._points)} points)"
