"""
Fallback price fetchers for independent HTTP price sources.

Usage:
    from predictor.src.fetchers import get_fetcher, get_available_fetchers

    available = get_available_fetchers()
    # ['coinbase', 'coindesk', 'coingecko', 'kraken']

    fetcher = get_fetcher("coinbase", timeout=5.0)
    price = await fetcher.fetch("btc", "usd")
"""

from .base import (
    FETCHER_REGISTRY,
    BaseFetcher,
    FetcherError,
    FetcherHTTPError,
    get_available_fetchers,
    get_fetcher,
    register_fetcher,
)

# Import all fetcher implementations to trigger registration
from .coinbase import CoinbaseFetcher
from .coindesk import CoinDeskFetcher
from .coingecko import CoinGeckoFetcher
from .kraken import KrakenFetcher

__all__ = [
    "BaseFetcher",
    "FetcherError",
    "FetcherHTTPError",
    "register_fetcher",
    "get_fetcher",
    "get_available_fetchers",
    "FETCHER_REGISTRY",
    "CoinbaseFetcher",
    "CoinDeskFetcher",
    "CoinGeckoFetcher",
    "KrakenFetcher",
]
