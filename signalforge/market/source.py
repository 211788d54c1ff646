"""Data-source contract and the TTL-caching wrapper around it."""

from __future__ import annotations

import logging
from typing import Optional, Protocol, runtime_checkable

from signalforge.market.context import (
    CANDLE_TTL_SECONDS,
    PRICE_TTL_SECONDS,
    MarketDataContext,
)
from signalforge.market.models import Candle

logger = logging.getLogger("signalforge.market.source")


@runtime_checkable
class DataSource(Protocol):
    """Anything that can supply candles and prices.

    ``None`` means "temporarily unavailable", never a hard error.
    """

    async def fetch_candles(
        self, symbol: str, timeframe: str, limit: int = 200
    ) -> Optional[list[Candle]]:
        ...

    async def fetch_price(self, symbol: str) -> Optional[float]:
        ...


class CachedDataSource:
    """Wraps a ``DataSource`` with the context's short-lived cache.

    Prices live for 1s and candles for 30s; an expired entry triggers a fresh
    fetch.  ``None`` results are not cached.
    """

    def __init__(
        self,
        source: DataSource,
        context: MarketDataContext,
        price_ttl: float = PRICE_TTL_SECONDS,
        candle_ttl: float = CANDLE_TTL_SECONDS,
    ) -> None:
        self._source = source
        self._context = context
        self._price_ttl = price_ttl
        self._candle_ttl = candle_ttl

    async def fetch_candles(
        self, symbol: str, timeframe: str, limit: int = 200
    ) -> Optional[list[Candle]]:
        key = f"candles_{symbol}_{timeframe}_{limit}"
        cached = self._context.cache_get(key, self._candle_ttl)
        if cached is not None:
            return cached

        candles = await self._source.fetch_candles(symbol, timeframe, limit)
        if candles:
            self._context.cache_put(key, candles)
        return candles

    async def fetch_price(self, symbol: str) -> Optional[float]:
        key = f"price_{symbol}"
        cached = self._context.cache_get(key, self._price_ttl)
        if cached is not None:
            return cached

        price = await self._source.fetch_price(symbol)
        if price is not None:
            self._context.cache_put(key, price)
        return price
