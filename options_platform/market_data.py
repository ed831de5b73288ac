import logging
from typing import Any, Dict, List, Optional

import requests

from options_platform.config import Settings
from options_platform.errors import ConfigurationError, MarketDataError, ValidationError

logger = logging.getLogger(__name__)


class PolygonClient:
    """Aggregate bars from Polygon.io."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def _aggregates(self, symbol: str, multiplier: int, timespan: str,
                    start_date: str, end_date: str) -> List[Dict[str, Any]]:
        url = (
            f"{self.settings.polygon_api_base}/v2/aggs/ticker/{symbol}/range/"
            f"{multiplier}/{timespan}/{start_date}/{end_date}"
        )
        response = requests.get(
            url,
            params={"adjusted": "true", "sort": "asc", "apiKey": self.settings.polygon_api_key},
            timeout=20,
        )
        if not response.ok:
            logger.error("Polygon request for %s failed: %s", symbol, response.text[:500])
            raise MarketDataError(f"HTTP error {response.status_code}", status_code=response.status_code)

        data = response.json()
        if data.get("status") not in ("OK", "DELAYED") or not data.get("results"):
            raise MarketDataError(data.get("error") or f"No data for {symbol}")
        return data["results"]

    def fetch_market_data(self, symbols: List[str], start_date: str, end_date: str) -> List[Dict[str, Any]]:
        """Daily bars for several symbols, each bar tagged with its ticker."""
        self._require_key()
        results = []
        for symbol in symbols:
            bars = self._aggregates(symbol, 1, "day", start_date, end_date)
            results.extend({**bar, "ticker": symbol} for bar in bars)
        logger.info(f"Fetched {len(results)} bars for {len(symbols)} symbols")
        return results

    def fetch_chart_data(self, symbol: str, timeframe: Dict[str, Any],
                         start_date: str, end_date: str) -> List[Dict[str, Any]]:
        self._require_key()
        multiplier = timeframe.get("multiplier")
        timespan = timeframe.get("timespan")
        if not multiplier or not timespan:
            raise ValidationError("timeframe requires multiplier and timespan")
        return self._aggregates(symbol, int(multiplier), timespan, start_date, end_date)

    def fetch(self, symbols: Optional[List[str]] = None, symbol: Optional[str] = None,
              timeframe: Optional[Dict[str, Any]] = None, start_date: str = "", end_date: str = ""):
        if symbols:
            return self.fetch_market_data(symbols, start_date, end_date)
        if symbol and timeframe:
            return self.fetch_chart_data(symbol, timeframe, start_date, end_date)
        raise ValidationError("Invalid request parameters")

    def _require_key(self) -> None:
        if not self.settings.polygon_configured():
            raise ConfigurationError("Polygon.io API key is missing")
