"""Kraken fetcher.

Endpoint: https://api.kraken.com/0/public/Ticker?pair={BASE}{QUOTE}
Rate Limit: High (no key required)
"""

import logging

from .base import BaseFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class KrakenFetcher(BaseFetcher):
    """Fetcher for the Kraken public ticker."""

    name = "kraken"
    BASE_URL = "https://api.kraken.com/0/public"

    # Kraken lists bitcoin as XBT
    SYMBOL_MAP = {"btc": "XBT"}

    async def fetch(self, base: str, quote: str) -> float | None:
        """Fetch the last trade price from Kraken.

        :param base: Base currency (e.g., "btc").
        :param quote: Quote currency (e.g., "usd").
        :returns: Current price or None on failure.
        """
        pair = f"{self.SYMBOL_MAP.get(base.lower(), base.upper())}{quote.upper()}"
        try:
            response = await self._get(f"{self.BASE_URL}/Ticker", params={"pair": pair})
            data = response.json()

            if data.get("error"):
                logger.warning(f"[kraken] API error for {pair}: {data['error']}")
                return None

            result = data.get("result") or {}
            if not result:
                logger.warning(f"[kraken] No result for {pair}")
                return None

            # Result keys vary (XBTUSD vs XXBTZUSD); 'c' is [last price, lot volume]
            ticker = next(iter(result.values()))
            return float(ticker["c"][0])

        except FetcherError as e:
            logger.warning(f"[kraken] Failed to fetch {pair}: {e}")
            return None
        except (AttributeError, KeyError, ValueError, TypeError, IndexError) as e:
            logger.warning(f"[kraken] Failed to parse response for {pair}: {e}")
            return None
