"""CoinDesk fetcher.

Endpoint: https://api.coindesk.com/v1/bpi/currentprice/{QUOTE}.json
Rate Limit: Unpublished (no key required)
"""

import logging

from .base import BaseFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class CoinDeskFetcher(BaseFetcher):
    """Fetcher for the CoinDesk Bitcoin Price Index. Bitcoin only."""

    name = "coindesk"
    BASE_URL = "https://api.coindesk.com/v1/bpi"

    async def fetch(self, base: str, quote: str) -> float | None:
        """Fetch the BPI rate.

        :param base: Base currency; only "btc" is supported.
        :param quote: Quote currency (e.g., "usd").
        :returns: Current price or None on failure.
        """
        if base.lower() != "btc":
            return None

        symbol = quote.upper()
        try:
            response = await self._get(f"{self.BASE_URL}/currentprice/{symbol}.json")
            entry = response.json()["bpi"][symbol]
            if "rate_float" in entry:
                return float(entry["rate_float"])
            # "rate" is formatted with thousands separators, e.g. "61,000.1234"
            return float(str(entry["rate"]).replace(",", ""))

        except FetcherError as e:
            logger.warning(f"[coindesk] Failed to fetch BTC/{symbol}: {e}")
            return None
        except (AttributeError, KeyError, ValueError, TypeError) as e:
            logger.warning(f"[coindesk] Failed to parse response: {e}")
            return None
