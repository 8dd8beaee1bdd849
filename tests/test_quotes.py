from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

from tradejournal.data.quotes import QuoteProvider, _to_decimal


def _ticker(price: object) -> MagicMock:
    ticker = MagicMock()
    ticker.fast_info.last_price = price
    return ticker


class TestToDecimal:
    def test_values(self) -> None:
        assert _to_decimal(3850.5) == Decimal("3850.5")
        assert _to_decimal(None) is None
        assert _to_decimal("n/a") is None


class TestQuoteProvider:
    @patch("tradejournal.data.quotes.yf")
    def test_price_is_cached(self, mock_yf: MagicMock) -> None:
        mock_yf.Ticker.return_value = _ticker(3850.5)
        quotes = QuoteProvider(cache_seconds=60)
        assert quotes.get_price("tcs") == Decimal("3850.5")
        assert quotes.get_price("TCS") == Decimal("3850.5")
        mock_yf.Ticker.assert_called_once_with("TCS")

    @patch("tradejournal.data.quotes.yf")
    def test_expired_cache_refetches(self, mock_yf: MagicMock) -> None:
        mock_yf.Ticker.return_value = _ticker(100)
        quotes = QuoteProvider(cache_seconds=60)
        quotes.get_price("INFY")
        quotes._cache["INFY"] = (Decimal("100"), datetime.now() - timedelta(minutes=5))
        quotes.get_price("INFY")
        assert mock_yf.Ticker.call_count == 2

    @patch("tradejournal.data.quotes.yf")
    def test_batch_lookup_prunes_expired_entries(self, mock_yf: MagicMock) -> None:
        mock_yf.Ticker.return_value = _ticker(100)
        quotes = QuoteProvider(cache_seconds=60)
        stale = datetime.now() - timedelta(minutes=5)
        quotes._cache["OLD1"] = (Decimal("1"), stale)
        quotes._cache["OLD2"] = (Decimal("2"), stale)
        quotes.get_prices(["TCS"])
        assert set(quotes._cache) == {"TCS"}

    @patch("tradejournal.data.quotes.yf")
    def test_failures_are_missing(self, mock_yf: MagicMock) -> None:
        mock_yf.Ticker.side_effect = RuntimeError("rate limited")
        assert QuoteProvider().get_price("TCS") is None

    @patch("tradejournal.data.quotes.yf")
    def test_unusable_prices_are_missing(self, mock_yf: MagicMock) -> None:
        quotes = QuoteProvider()
        for bad in (None, 0, -3, float("nan")):
            mock_yf.Ticker.return_value = _ticker(bad)
            quotes.clear_cache()
            assert quotes.get_price("TCS") is None

    @patch("tradejournal.data.quotes.yf")
    def test_disabled_never_fetches(self, mock_yf: MagicMock) -> None:
        assert QuoteProvider(enabled=False).get_price("TCS") is None
        mock_yf.Ticker.assert_not_called()

    @patch("tradejournal.data.quotes.yf")
    def test_get_prices_dedupes_and_skips(self, mock_yf: MagicMock) -> None:
        prices = {"TCS": 3850, "INFY": None}
        mock_yf.Ticker.side_effect = lambda symbol: _ticker(prices[symbol])
        result = QuoteProvider().get_prices(["tcs", "TCS", "INFY", ""])
        assert result == {"TCS": Decimal("3850")}
        assert mock_yf.Ticker.call_count == 2
