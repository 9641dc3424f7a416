"""
NFT Monitor - watch ERC-721 transfers in real time

Usage:
    python -m nft_monitor                                   # All NFT contracts
    python -m nft_monitor --token 0xbc4c...f13d             # One contract
    python -m nft_monitor --tokens 0xbc4c...f13d,0x60e4...a7c6
    python -m nft_monitor 0xbc4c...f13d                     # Bare address
    python -m nft_monitor --wallet 0xabc...                 # Also watch a wallet
    python -m nft_monitor --metadata --json                 # Enrich, JSON lines

Environment:
    RPC_URL          WebSocket RPC endpoint (falls back to WEB3_WEBSOCKET_URL)
    TOKEN_ADDRESSES  Contracts to watch when none are given on the command line
    WALLET_ADDRESS   Wallet to watch
    FETCH_METADATA   1 to look up tokenURI / name / symbol per transfer
    REPORT_JSON      1 to print one JSON object per transfer
    MONITOR_DEBUG    1 to write verbose logs to monitor_debug.log
"""

import argparse
import asyncio
import logging
import signal
from typing import List, Optional

from .config.monitor_config import HEALTH_CHECK_INTERVAL, MonitorSettings, load_settings, split_addresses
from .logging_config import setup_logging
from .services.connection import LogConnection, mask_url
from .services.exceptions import InvalidAddress, SubscriptionError
from .services.filters import build_global_filter, build_wallet_filters, normalize_address
from .services.metadata_service import TokenMetadataFetcher
from .services.reporter import LoggingReporter
from .services.subscription_manager import SubscriptionManager

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONNECTION = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='nft-monitor',
        description='Monitor ERC-721 Transfer events (mints, burns and transfers) in real time',
    )
    parser.add_argument('addresses', nargs='*', metavar='ADDRESS',
                        help='Contract addresses to monitor (0x + 40 hex characters)')
    parser.add_argument('-t', '--token', action='append', default=[], metavar='ADDRESS',
                        help='Monitor a single NFT contract (repeatable)')
    parser.add_argument('-ts', '--tokens', action='append', default=[], metavar='ADDRESSES',
                        help='Monitor several NFT contracts (comma-separated)')
    parser.add_argument('-w', '--wallet', help='Also monitor NFTs sent and received by this wallet')
    parser.add_argument('--rpc-url', help='WebSocket RPC URL (default: $RPC_URL)')
    parser.add_argument('--metadata', action='store_true', help='Fetch tokenURI, name and symbol per transfer')
    parser.add_argument('--json', action='store_true', help='Report one JSON object per transfer')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    return parser


def collect_contract_addresses(args: argparse.Namespace) -> List[str]:
    """
    Contract addresses from the command line, in the order given.

    --token / --tokens values are taken as-is and validated later. Bare
    positionals are only taken when they look like an address; anything
    else is ignored with a warning.
    """
    addresses = list(args.token)
    for value in args.tokens:
        addresses.extend(split_addresses(value))
    for value in args.addresses:
        try:
            addresses.append(normalize_address(value))
        except InvalidAddress:
            logger.warning(f"Ignoring argument that is not a contract address: {value}")
    return addresses


def resolve_settings(args: argparse.Namespace, env=None) -> MonitorSettings:
    """Merge command line arguments over environment settings."""
    settings = load_settings(env)
    contracts = collect_contract_addresses(args)
    if contracts:
        settings.contract_addresses = contracts
    if args.wallet:
        settings.wallet_address = args.wallet
    if args.rpc_url:
        settings.rpc_url = args.rpc_url
    settings.fetch_metadata = settings.fetch_metadata or args.metadata
    settings.report_json = settings.report_json or args.json
    return settings


def log_banner(settings: MonitorSettings) -> None:
    logger.info("Configuration:")
    logger.info(f"  RPC URL: {mask_url(settings.rpc_url)}")
    if settings.contract_addresses:
        logger.info(f"  Monitoring {len(settings.contract_addresses)} contract(s):")
        for index, address in enumerate(settings.contract_addresses, start=1):
            logger.info(f"    {index}. {address}")
    else:
        logger.info("  Monitoring all NFT contracts")
    if settings.wallet_address:
        logger.info(f"  Wallet: {settings.wallet_address}")
    logger.info("-" * 50)


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, stop_event: asyncio.Event) -> List[int]:
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no add_signal_handler
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))
    return installed


async def run_monitor(
    settings: MonitorSettings,
    stop_event: Optional[asyncio.Event] = None,
    connection=None,
    reporter=None,
) -> int:
    """
    Run the monitor until stop_event is set or the connection is lost for good.

    Listeners are always removed before the connection is closed. The wallet
    address is validated by add_wallet_watch() before anything is registered
    for it.
    """
    global_filter = build_global_filter(settings.contract_addresses)

    connection = connection or LogConnection(settings.rpc_url)
    reporter = reporter or LoggingReporter(as_json=settings.report_json)
    fetcher = TokenMetadataFetcher(connection.w3) if settings.fetch_metadata else None
    manager = SubscriptionManager(connection, reporter, metadata_fetcher=fetcher)

    loop = asyncio.get_running_loop()
    stop_event = stop_event or asyncio.Event()
    installed = _install_signal_handlers(loop, stop_event)

    try:
        await manager.start([global_filter])
        if settings.wallet_address:
            await manager.add_wallet_watch(settings.wallet_address)

        while not stop_event.is_set():
            if not manager.is_running:
                return EXIT_CONNECTION
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=HEALTH_CHECK_INTERVAL)
            except asyncio.TimeoutError:
                logger.debug(f"Subscription stats: {manager.stats()}")

        logger.info("Received exit signal, shutting down...")
        return EXIT_OK
    except SubscriptionError as e:
        logger.error(f"Failed to start monitoring: {e}")
        return EXIT_CONNECTION
    finally:
        await manager.stop()
        await connection.disconnect()
        for sig in installed:
            loop.remove_signal_handler(sig)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    settings = resolve_settings(args)
    try:
        build_global_filter(settings.contract_addresses)
        if settings.wallet_address:
            build_wallet_filters(settings.wallet_address)
    except InvalidAddress as e:
        logger.error(str(e))
        return EXIT_USAGE

    log_banner(settings)
    try:
        return asyncio.run(run_monitor(settings))
    except KeyboardInterrupt:
        return EXIT_OK
