#!/usr/bin/env python3
"""BTC Price Prediction keeper.

Polls the prediction game, logs the state of the current round and
triggers the transition to the next round once the current one expires.

Modes:
  keeper    drive the deployed BitcoinPricePrediction contract
  simulate  run the game in-process, fed by the fallback HTTP sources
"""

import argparse
import asyncio
import logging
import os
import sys

from .src.ContractGame import ContractGame
from .src.ContractUtility import DEFAULT_GAME_ADDRESS, DEFAULT_PRICE_FEED_ADDRESS, NETWORKS, ContractUtility
from .src.PredictionGame import PredictionGame
from .src.PriceSource import ContractPriceFeed, ObservedPriceFeed, PriceSource
from .src.RetryPolicy import RetryPolicy
from .src.RoundKeeper import RoundKeeper
from .src.Wallet import LocalWallet
from .src.fetchers import BaseFetcher, get_available_fetchers, get_fetcher

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

SIMULATED_POOL_OWNER = "simulator"


def parse_api_keys(api_key_str: str | None) -> dict[str, str]:
    """Parse comma-separated API key string into a dictionary.

    Format: source1=key1,source2=key2
    Example: coingecko=demo:abc123

    :param api_key_str: Comma-separated API key string.
    :returns: Dict mapping source names to API keys.
    """
    if not api_key_str:
        return {}

    api_keys = {}
    for item in api_key_str.split(","):
        item = item.strip()
        if "=" in item:
            source, key = item.split("=", 1)
            api_keys[source.strip().lower()] = key.strip()
    return api_keys


def parse_env_api_keys() -> dict[str, str]:
    """Collect API keys from ``API_KEY_<SOURCE>`` environment variables."""
    prefix = "API_KEY_"
    return {
        key[len(prefix):].lower(): value
        for key, value in os.environ.items()
        if key.startswith(prefix) and value
    }


def build_parser() -> argparse.ArgumentParser:
    available_sources = get_available_fetchers()

    parser = argparse.ArgumentParser(
        description="BTC Price Prediction: round keeper and simulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available fallback price sources:
  {', '.join(available_sources)}

Examples:
  # Keep rounds moving on Citrea testnet
  PRIVATE_KEY=0x... python -m predictor.main --network citrea-testnet

  # Run the game in-process with 2-minute rounds
  python -m predictor.main --mode simulate --round-duration 120 --poll-interval 30

Environment variables (CLI args take precedence):
  MODE, NETWORK, CONTRACT_ADDRESS, PRICE_FEED_ADDRESS, ROUND_DURATION,
  MAX_PRICE_AGE, POLL_INTERVAL, MIN_POLL_INTERVAL, TRANSITION_DELAY,
  STALE_RETRY_DELAY, STALE_RETRY_ATTEMPTS, SOURCES, FETCH_TIMEOUT, API_KEYS,
  API_KEY_COINGECKO, etc. RPC_URL overrides the network endpoint and
  PRIVATE_KEY provides the signing key.
""",
    )

    parser.add_argument(
        "--mode",
        choices=["keeper", "simulate"],
        help="keeper drives the deployed contract, simulate runs in-process (default: keeper)",
        default=os.environ.get("MODE") or "keeper",
    )

    parser.add_argument(
        "--network",
        type=str,
        help=f"Network to connect to ({', '.join(NETWORKS)})",
        default=os.environ.get("NETWORK") or "citrea-testnet",
    )

    parser.add_argument(
        "--contract-address",
        dest="contract_address",
        type=str,
        help="Address of the BitcoinPricePrediction contract (default: per network)",
        default=os.environ.get("CONTRACT_ADDRESS"),
    )

    parser.add_argument(
        "--price-feed-address",
        dest="price_feed_address",
        type=str,
        help="Address of the BTC/USDT aggregator feed (default: per network)",
        default=os.environ.get("PRICE_FEED_ADDRESS"),
    )

    parser.add_argument(
        "--round-duration",
        dest="round_duration",
        type=int,
        help="Round length in seconds, simulate mode only (default: 900)",
        default=int(os.environ.get("ROUND_DURATION") or "900"),
    )

    parser.add_argument(
        "--max-price-age",
        dest="max_price_age",
        type=int,
        help="Maximum oracle price age in seconds (default: 1800)",
        default=int(os.environ.get("MAX_PRICE_AGE") or "1800"),
    )

    parser.add_argument(
        "--poll-interval",
        dest="poll_interval",
        type=int,
        help="Seconds between round checks (default: 60)",
        default=int(os.environ.get("POLL_INTERVAL") or "60"),
    )

    parser.add_argument(
        "--min-poll-interval",
        dest="min_poll_interval",
        type=int,
        help="Lower bound for any poll delay in seconds (default: 30)",
        default=int(os.environ.get("MIN_POLL_INTERVAL") or "30"),
    )

    parser.add_argument(
        "--transition-delay",
        dest="transition_delay",
        type=int,
        help="Seconds to wait after expiry before triggering (default: 5)",
        default=int(os.environ.get("TRANSITION_DELAY") or "5"),
    )

    parser.add_argument(
        "--stale-retry-delay",
        dest="stale_retry_delay",
        type=int,
        help="Seconds between retries when the price is stale (default: 120)",
        default=int(os.environ.get("STALE_RETRY_DELAY") or "120"),
    )

    parser.add_argument(
        "--stale-retry-attempts",
        dest="stale_retry_attempts",
        type=int,
        help="Retries per expired round when the price is stale (default: 3)",
        default=int(os.environ.get("STALE_RETRY_ATTEMPTS") or "3"),
    )

    parser.add_argument(
        "--sources",
        type=str,
        help=f"Comma-separated fallback price sources. Available: {', '.join(available_sources)}",
        default=os.environ.get("SOURCES") or "coinbase,coingecko,kraken,coindesk",
    )

    parser.add_argument(
        "--api-keys",
        dest="api_keys",
        type=str,
        help="Comma-separated API keys (e.g., coingecko=demo:abc)",
        default=os.environ.get("API_KEYS"),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for each fallback request in seconds (default: 5.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "5.0"),
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    return parser


def build_keeper(args: argparse.Namespace, fallbacks: dict) -> tuple[RoundKeeper, PredictionGame | None]:
    """Wire the game backend, price source and keeper for the selected mode.

    :returns: The keeper, and the in-process game in simulate mode.
    """
    keeper_options = dict(
        poll_interval=args.poll_interval,
        min_poll_interval=args.min_poll_interval,
        transition_delay=args.transition_delay,
        stale_retry=RetryPolicy.fixed(args.stale_retry_delay, max_attempts=args.stale_retry_attempts),
    )

    if args.mode == "simulate":
        observed = ObservedPriceFeed()
        price_source = PriceSource(
            observed,
            fallbacks=fallbacks,
            max_price_age=args.max_price_age,
            fetch_timeout=args.fetch_timeout,
        )
        game = PredictionGame.create(
            price_source,
            round_duration=args.round_duration,
            pool_owner=SIMULATED_POOL_OWNER,
        )
        keeper = RoundKeeper(game, price_source, observed_feed=observed, **keeper_options)
        return keeper, game

    contract_utility = ContractUtility(args.network)
    wallet = LocalWallet.from_env(contract_utility.w3, args.network)
    game_contract = contract_utility.contract("BitcoinPricePrediction", args.contract_address)

    # Without an aggregator the display price comes from the fallbacks only.
    if args.price_feed_address:
        feed = ContractPriceFeed(
            contract_utility.contract("AggregatorV3Interface", args.price_feed_address)
        )
    else:
        feed = ObservedPriceFeed()
    price_source = PriceSource(
        feed,
        fallbacks=fallbacks,
        max_price_age=args.max_price_age,
        fetch_timeout=args.fetch_timeout,
    )
    logger.info(f"Keeper address:    {wallet.address}")
    game = ContractGame(contract_utility.w3, game_contract, wallet)
    return RoundKeeper(game, price_source, **keeper_options), None


async def run(keeper: RoundKeeper, game: PredictionGame | None) -> None:
    """Run the keeper until interrupted, closing HTTP connections on exit."""
    try:
        if game is not None:
            await keeper.refresh_observation()
            game.start_new_round()
        await keeper.run()
    finally:
        await BaseFetcher.close_shared_client()


def main() -> None:
    """Main entry point for the prediction keeper CLI."""
    available_sources = get_available_fetchers()
    parser = build_parser()
    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate arguments
    if args.round_duration < 1:
        parser.error("--round-duration must be at least 1 second")

    if args.max_price_age < 1:
        parser.error("--max-price-age must be at least 1 second")

    if args.min_poll_interval < 1:
        parser.error("--min-poll-interval must be at least 1 second")

    if args.poll_interval < args.min_poll_interval:
        parser.error(
            f"--poll-interval must be at least --min-poll-interval ({args.min_poll_interval}s)"
        )

    if args.stale_retry_attempts < 0:
        parser.error("--stale-retry-attempts must not be negative")

    sources = [s.strip().lower() for s in args.sources.split(",") if s.strip()]
    invalid_sources = [s for s in sources if s not in available_sources]
    if invalid_sources:
        parser.error(
            f"Unknown sources: {invalid_sources}. "
            f"Available: {', '.join(available_sources)}"
        )

    if args.mode == "simulate" and not sources:
        parser.error("Simulate mode needs at least one source")

    if args.mode == "keeper":
        if args.network not in NETWORKS and not os.environ.get("RPC_URL"):
            parser.error(f"Unknown network {args.network}. Available: {', '.join(NETWORKS)}")
        args.contract_address = args.contract_address or DEFAULT_GAME_ADDRESS.get(args.network)
        if not args.contract_address:
            parser.error(f"No contract address configured for network {args.network}")
        args.price_feed_address = args.price_feed_address or DEFAULT_PRICE_FEED_ADDRESS.get(args.network)

    # Parse API keys (CLI + environment)
    api_keys = parse_env_api_keys()
    api_keys.update(parse_api_keys(args.api_keys))

    fallbacks = {
        source: get_fetcher(source, api_key=api_keys.get(source), timeout=args.fetch_timeout)
        for source in sources
    }

    # Log configuration
    logger.info("=" * 60)
    logger.info("BTC Price Prediction - Round Keeper")
    logger.info("=" * 60)
    logger.info(f"Mode:              {args.mode}")
    if args.mode == "keeper":
        logger.info(f"Network:           {args.network}")
        logger.info(f"Contract:          {args.contract_address}")
        logger.info(f"Price Feed:        {args.price_feed_address or 'none (fallbacks only)'}")
    else:
        logger.info(f"Round Duration:    {args.round_duration}s")
    logger.info(f"Max Price Age:     {args.max_price_age}s")
    logger.info(f"Poll Interval:     {args.poll_interval}s (min {args.min_poll_interval}s)")
    logger.info(f"Stale Retries:     {args.stale_retry_attempts} x {args.stale_retry_delay}s")
    logger.info(f"Sources:           {', '.join(sources) or 'none'}")
    logger.info(f"Fetch Timeout:     {args.fetch_timeout}s")
    if api_keys:
        logger.info(f"API Keys:          {', '.join(api_keys.keys())}")
    logger.info("=" * 60)

    try:
        keeper, game = build_keeper(args, fallbacks)
        asyncio.run(run(keeper, game))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
