"""Base fetcher interface and shared HTTP client management.

Fetchers are the independent HTTP price sources the game falls back to when
the on-chain oracle cannot be used for display. Each fetcher returns a
price as a float, or ``None`` when its API could not provide one; network
and HTTP errors never escape ``fetch()``.

A single ``httpx.AsyncClient`` is shared by all fetchers.

.. code-block:: python

    @register_fetcher
    class MyFetcher(BaseFetcher):
        name = "myfetcher"

        async def fetch(self, base: str, quote: str) -> float | None:
            response = await self._get(f"https://api.example.com/{base}-{quote}")
            return float(response.json()["price"])
"""

import logging
from abc import ABC, abstractmethod
from typing import ClassVar

import httpx

logger = logging.getLogger(__name__)


class FetcherError(Exception):
    """Base exception for fetcher errors."""

    pass


class FetcherHTTPError(FetcherError):
    """Raised when an HTTP request returns a non-2xx status.

    :ivar status_code: HTTP status code of the failed request.
    """

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class BaseFetcher(ABC):
    """Abstract base class for HTTP price sources.

    :cvar name: Unique identifier of the source (e.g. "coinbase").
    :cvar DEFAULT_TIMEOUT: Per-request timeout in seconds.
    :ivar api_key: Optional API key.
    :ivar timeout: Per-request timeout in seconds.
    """

    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    name: ClassVar[str] = ""

    # Fallback sources are tried in sequence, so keep each attempt short.
    DEFAULT_TIMEOUT = 5.0

    def __init__(self, api_key: str | None = None, timeout: float | None = None):
        """Initialize the fetcher.

        :param api_key: Optional API key.
        :param timeout: Per-request timeout in seconds (default: 5).
        """
        self.api_key = api_key
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    @property
    def has_api_key(self) -> bool:
        """Check if an API key is configured."""
        return bool(self.api_key)

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        :returns: Shared httpx.AsyncClient.
        """
        if BaseFetcher._shared_client is None or BaseFetcher._shared_client.is_closed:
            BaseFetcher._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(10.0, connect=5.0),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                follow_redirects=True,
            )
        return BaseFetcher._shared_client

    @classmethod
    def set_shared_client(cls, client: httpx.AsyncClient | None) -> None:
        """Replace the shared HTTP client (e.g. with a mock transport)."""
        BaseFetcher._shared_client = client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        client = BaseFetcher._shared_client
        if client is not None and not client.is_closed:
            await client.aclose()
        BaseFetcher._shared_client = None

    @abstractmethod
    async def fetch(self, base: str, quote: str) -> float | None:
        """Fetch the current price of ``base`` in ``quote``.

        :param base: Base currency symbol (e.g. "btc").
        :param quote: Quote currency symbol (e.g. "usd").
        :returns: Price, or None if the source could not provide one.
        """
        pass

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make a GET request with the shared client.

        :raises FetcherHTTPError: On a non-2xx response.
        :raises FetcherError: On network errors and timeouts.
        """
        client = self.get_shared_client()
        try:
            response = await client.get(
                url, params=params, headers=headers, timeout=self.timeout
            )
        except httpx.TimeoutException as e:
            raise FetcherError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise FetcherError(f"Request failed: {e}") from e

        if not response.is_success:
            logger.debug(
                "HTTP GET %s failed with status %s: %s",
                url,
                response.status_code,
                response.text[:200],
            )
            raise FetcherHTTPError(response.status_code, response.text[:200])
        return response


# Populated by the @register_fetcher decorator on import.
FETCHER_REGISTRY: dict[str, type[BaseFetcher]] = {}


def register_fetcher(cls: type[BaseFetcher]) -> type[BaseFetcher]:
    """Class decorator adding a fetcher to :data:`FETCHER_REGISTRY`.

    :raises ValueError: If the class defines no name.
    """
    if not cls.name:
        raise ValueError(f"Fetcher {cls.__name__} must define a 'name' class variable")
    FETCHER_REGISTRY[cls.name] = cls
    return cls


def get_fetcher(
    name: str, api_key: str | None = None, timeout: float | None = None
) -> BaseFetcher:
    """Instantiate a registered fetcher.

    :param name: Fetcher name (e.g. "coinbase").
    :param api_key: Optional API key.
    :param timeout: Optional per-request timeout.
    :raises ValueError: If the name is not registered.
    """
    if name not in FETCHER_REGISTRY:
        available = ", ".join(sorted(FETCHER_REGISTRY))
        raise ValueError(f"Unknown fetcher '{name}'. Available: {available}")
    return FETCHER_REGISTRY[name](api_key=api_key, timeout=timeout)


def get_available_fetchers() -> list[str]:
    """Sorted names of all registered fetchers."""
    return sorted(FETCHER_REGISTRY)
