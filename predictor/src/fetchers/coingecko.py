"""CoinGecko fetcher.

Endpoint: https://api.coingecko.com/api/v3/simple/price?ids={id}&vs_currencies={quote}
Rate Limit: 30 calls/min (free), higher with API key
"""

import logging

from .base import BaseFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class CoinGeckoFetcher(BaseFetcher):
    """Fetcher for the CoinGecko simple price API.

    A "demo:" prefixed key is sent as a demo key against the free host;
    any other key is treated as a pro key.
    """

    name = "coingecko"
    BASE_URL_FREE = "https://api.coingecko.com/api/v3"
    BASE_URL_PRO = "https://pro-api.coingecko.com/api/v3"

    COIN_IDS = {
        "btc": "bitcoin",
        "eth": "ethereum",
        "usdt": "tether",
    }

    def __init__(self, api_key: str | None = None, timeout: float | None = None):
        self._is_demo = bool(api_key) and api_key.lower().startswith("demo:")
        if self._is_demo:
            api_key = api_key[5:]
        super().__init__(api_key=api_key, timeout=timeout)

    @property
    def base_url(self) -> str:
        if self.has_api_key and not self._is_demo:
            return self.BASE_URL_PRO
        return self.BASE_URL_FREE

    def _headers(self) -> dict | None:
        if not self.has_api_key:
            return None
        header = "x-cg-demo-api-key" if self._is_demo else "x-cg-pro-api-key"
        return {header: self.api_key}

    async def fetch(self, base: str, quote: str) -> float | None:
        """Fetch price from CoinGecko.

        :param base: Base currency (e.g., "btc").
        :param quote: Quote currency (e.g., "usd").
        :returns: Current price or None on failure.
        """
        coin_id = self.COIN_IDS.get(base.lower())
        if not coin_id:
            logger.warning(f"[coingecko] Unknown coin: {base}")
            return None

        quote_lower = quote.lower()
        try:
            response = await self._get(
                f"{self.base_url}/simple/price",
                params={"ids": coin_id, "vs_currencies": quote_lower},
                headers=self._headers(),
            )
            return float(response.json()[coin_id][quote_lower])

        except FetcherError as e:
            logger.warning(f"[coingecko] Failed to fetch {base}/{quote}: {e}")
            return None
        except (AttributeError, KeyError, ValueError, TypeError) as e:
            logger.warning(f"[coingecko] Failed to parse response: {e}")
            return None
