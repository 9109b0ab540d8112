"""Coinbase fetcher.

Endpoint: https://api.coinbase.com/v2/exchange-rates?currency={BASE}
Rate Limit: High (no key required)
"""

import logging

from .base import BaseFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class CoinbaseFetcher(BaseFetcher):
    """Fetcher for the public Coinbase exchange-rates API.

    One request returns the rate of ``base`` against every fiat currency;
    the ``quote`` rate is picked out of it.
    """

    name = "coinbase"
    BASE_URL = "https://api.coinbase.com/v2"

    async def fetch(self, base: str, quote: str) -> float | None:
        """Fetch price from Coinbase.

        :param base: Base currency (e.g., "btc").
        :param quote: Quote currency (e.g., "usd").
        :returns: Current price or None on failure.
        """
        symbol = base.upper()
        try:
            response = await self._get(
                f"{self.BASE_URL}/exchange-rates", params={"currency": symbol}
            )
            rates = response.json()["data"]["rates"]
            if quote.upper() not in rates:
                logger.warning(f"[coinbase] No {quote.upper()} rate for {symbol}")
                return None
            return float(rates[quote.upper()])

        except FetcherError as e:
            logger.warning(f"[coinbase] Failed to fetch {symbol}: {e}")
            return None
        except (AttributeError, KeyError, ValueError, TypeError) as e:
            logger.warning(f"[coinbase] Failed to parse response for {symbol}: {e}")
            return None
