from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

import yfinance as yf

logger = logging.getLogger(__name__)


def _to_decimal(value: Any) -> Decimal | None:
    """Safely convert a value to Decimal."""
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None


class QuoteProvider:
    """Last-trade prices from yfinance with a short in-memory cache.

    Best effort: a symbol that cannot be priced is simply missing from the
    result, and callers keep whatever price they already had.
    """

    def __init__(self, cache_seconds: int = 60, enabled: bool = True) -> None:
        self._cache: dict[str, tuple[Decimal, datetime]] = {}
        self._cache_ttl = timedelta(seconds=cache_seconds)
        self._enabled = enabled

    def _get_cached(self, symbol: str) -> Decimal | None:
        entry = self._cache.get(symbol)
        if entry is None:
            return None
        price, fetched_at = entry
        if datetime.now() - fetched_at > self._cache_ttl:
            del self._cache[symbol]
            return None
        return price

    def _prune(self) -> None:
        cutoff = datetime.now() - self._cache_ttl
        for symbol in [s for s, (_, fetched_at) in self._cache.items() if fetched_at < cutoff]:
            del self._cache[symbol]

    def _fetch(self, symbol: str) -> Decimal | None:
        try:
            info = yf.Ticker(symbol).fast_info
            price = _to_decimal(getattr(info, "last_price", None))
        except Exception:
            logger.warning("Quote fetch failed for %s", symbol, exc_info=True)
            return None
        if price is None or not price.is_finite() or price <= 0:
            logger.debug("No usable quote for %s", symbol)
            return None
        return price

    def get_price(self, symbol: str) -> Decimal | None:
        symbol = symbol.strip().upper()
        cached = self._get_cached(symbol)
        if cached is not None:
            return cached
        if not self._enabled:
            return None
        price = self._fetch(symbol)
        if price is not None:
            self._cache[symbol] = (price, datetime.now())
        return price

    def get_prices(self, symbols: Iterable[str]) -> dict[str, Decimal]:
        """Quotes for every symbol that could be priced, keyed by symbol."""
        self._prune()
        result: dict[str, Decimal] = {}
        for symbol in sorted({s.strip().upper() for s in symbols if s}):
            price = self.get_price(symbol)
            if price is not None:
                result[symbol] = price
        logger.debug("Priced %d symbols", len(result))
        return result

    def clear_cache(self) -> None:
        self._cache.clear()
