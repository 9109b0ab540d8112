"""Unit tests for the fallback HTTP fetchers, using httpx.MockTransport."""

import httpx
import pytest

from predictor.src.fetchers import (
    BaseFetcher,
    CoinbaseFetcher,
    CoinDeskFetcher,
    CoinGeckoFetcher,
    KrakenFetcher,
    get_available_fetchers,
    get_fetcher,
)


@pytest.fixture
def mock_http():
    """Route the shared client through a handler set by the test."""
    state: dict = {"handler": None, "requests": []}

    def dispatch(request: httpx.Request) -> httpx.Response:
        state["requests"].append(request)
        return state["handler"](request)

    BaseFetcher.set_shared_client(httpx.AsyncClient(transport=httpx.MockTransport(dispatch)))
    yield state
    BaseFetcher.set_shared_client(None)


class TestRegistry:
    """Test the fetcher registry."""

    def test_available(self) -> None:
        """All four sources register on import."""
        assert get_available_fetchers() == ["coinbase", "coindesk", "coingecko", "kraken"]

    def test_get_fetcher(self) -> None:
        """Fetchers are built with key and timeout."""
        fetcher = get_fetcher("kraken", timeout=2.5)
        assert isinstance(fetcher, KrakenFetcher)
        assert fetcher.timeout == 2.5
        assert not fetcher.has_api_key

    def test_default_timeout(self) -> None:
        """Fallback requests default to five seconds."""
        assert get_fetcher("coinbase").timeout == 5.0

    def test_unknown(self) -> None:
        """Unknown names are rejected."""
        with pytest.raises(ValueError):
            get_fetcher("binance")


class TestCoinbase:
    """Test CoinbaseFetcher."""

    @pytest.mark.asyncio
    async def test_fetch(self, mock_http) -> None:
        """USD rate is read from the exchange-rates payload."""
        mock_http["handler"] = lambda request: httpx.Response(
            200, json={"data": {"currency": "BTC", "rates": {"USD": "61000.25", "EUR": "56000"}}}
        )
        assert await CoinbaseFetcher().fetch("btc", "usd") == 61000.25
        assert mock_http["requests"][0].url.params["currency"] == "BTC"

    @pytest.mark.asyncio
    async def test_missing_quote(self, mock_http) -> None:
        """Missing quote currency yields None."""
        mock_http["handler"] = lambda request: httpx.Response(200, json={"data": {"rates": {}}})
        assert await CoinbaseFetcher().fetch("btc", "usd") is None

    @pytest.mark.asyncio
    async def test_http_error(self, mock_http) -> None:
        """HTTP errors yield None instead of raising."""
        mock_http["handler"] = lambda request: httpx.Response(503, text="unavailable")
        assert await CoinbaseFetcher().fetch("btc", "usd") is None

    @pytest.mark.asyncio
    async def test_network_error(self, mock_http) -> None:
        """Connection failures yield None instead of raising."""

        def fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        mock_http["handler"] = fail
        assert await CoinbaseFetcher().fetch("btc", "usd") is None


class TestCoinGecko:
    """Test CoinGeckoFetcher."""

    @pytest.mark.asyncio
    async def test_fetch_free(self, mock_http) -> None:
        """Without a key the free host is used."""
        mock_http["handler"] = lambda request: httpx.Response(200, json={"bitcoin": {"usd": 61000}})
        assert await CoinGeckoFetcher().fetch("btc", "usd") == 61000.0

        request = mock_http["requests"][0]
        assert request.url.host == "api.coingecko.com"
        assert request.url.params["ids"] == "bitcoin"

    @pytest.mark.asyncio
    async def test_demo_key(self, mock_http) -> None:
        """demo: keys are sent as demo headers to the free host."""
        mock_http["handler"] = lambda request: httpx.Response(200, json={"bitcoin": {"usd": 1}})
        await CoinGeckoFetcher(api_key="demo:abc").fetch("btc", "usd")

        request = mock_http["requests"][0]
        assert request.url.host == "api.coingecko.com"
        assert request.headers["x-cg-demo-api-key"] == "abc"

    @pytest.mark.asyncio
    async def test_pro_key(self, mock_http) -> None:
        """Other keys go to the pro host."""
        mock_http["handler"] = lambda request: httpx.Response(200, json={"bitcoin": {"usd": 1}})
        await CoinGeckoFetcher(api_key="xyz").fetch("btc", "usd")

        request = mock_http["requests"][0]
        assert request.url.host == "pro-api.coingecko.com"
        assert request.headers["x-cg-pro-api-key"] == "xyz"

    @pytest.mark.asyncio
    async def test_unknown_coin(self, mock_http) -> None:
        """Unknown coins are not requested."""
        assert await CoinGeckoFetcher().fetch("doge", "usd") is None
        assert mock_http["requests"] == []


class TestKraken:
    """Test KrakenFetcher."""

    @pytest.mark.asyncio
    async def test_fetch(self, mock_http) -> None:
        """Last trade price is read from the first result."""
        mock_http["handler"] = lambda request: httpx.Response(
            200, json={"error": [], "result": {"XXBTZUSD": {"c": ["60999.9", "0.01"]}}}
        )
        assert await KrakenFetcher().fetch("btc", "usd") == 60999.9
        assert mock_http["requests"][0].url.params["pair"] == "XBTUSD"

    @pytest.mark.asyncio
    async def test_api_error(self, mock_http) -> None:
        """Kraken error lists yield None."""
        mock_http["handler"] = lambda request: httpx.Response(
            200, json={"error": ["EQuery:Unknown asset pair"], "result": {}}
        )
        assert await KrakenFetcher().fetch("btc", "usd") is None

    @pytest.mark.asyncio
    async def test_unexpected_shape(self, mock_http) -> None:
        """A JSON list instead of an object yields None."""
        mock_http["handler"] = lambda request: httpx.Response(200, json=["maintenance"])
        assert await KrakenFetcher().fetch("btc", "usd") is None


class TestCoinDesk:
    """Test CoinDeskFetcher."""

    @pytest.mark.asyncio
    async def test_rate_float(self, mock_http) -> None:
        """rate_float is preferred."""
        mock_http["handler"] = lambda request: httpx.Response(
            200, json={"bpi": {"USD": {"rate": "61,000.1234", "rate_float": 61000.1234}}}
        )
        assert await CoinDeskFetcher().fetch("btc", "usd") == 61000.1234

    @pytest.mark.asyncio
    async def test_formatted_rate(self, mock_http) -> None:
        """Formatted rates have their separators stripped."""
        mock_http["handler"] = lambda request: httpx.Response(
            200, json={"bpi": {"USD": {"rate": "61,000.50"}}}
        )
        assert await CoinDeskFetcher().fetch("btc", "usd") == 61000.5

    @pytest.mark.asyncio
    async def test_bitcoin_only(self, mock_http) -> None:
        """Other assets are not supported."""
        assert await CoinDeskFetcher().fetch("eth", "usd") is None
        assert mock_http["requests"] == []
