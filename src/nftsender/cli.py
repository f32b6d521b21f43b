"""
Command-line interface for the NFT Sender.

Provides commands for listing owned NFTs, previewing the protocol fee and
sending NFTs to one or many destinations.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import structlog

from nftsender import __version__
from nftsender.config import NetworkType, SenderConfig, set_config
from nftsender.core.request import parse_address_list
from nftsender.core.result import BatchResult
from nftsender.core.sender import NFTSender
from nftsender.errors import NFTSenderError
from nftsender.node.interface import NodeConnectionError


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_format
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Logs go to stderr; stdout carries the JSON output of each command
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
        stream=sys.stderr,
    )


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--network",
        choices=[n.value for n in NetworkType],
        help="Solana cluster (default: from environment, else mainnet-beta)",
    )
    parser.add_argument(
        "--rpc-url",
        help="RPC endpoint serving the DAS API",
    )
    parser.add_argument(
        "--keypair",
        help="Path to a JSON keypair file",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs in JSON format",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="nftsender",
        description="Batch sender for standard and compressed Solana NFTs",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # List command
    list_parser = subparsers.add_parser("list", help="List NFTs owned by the wallet")
    list_parser.add_argument(
        "--owner",
        help="Owner address (default: the keypair's address)",
    )
    list_parser.add_argument(
        "--hide-compressed",
        action="store_true",
        help="Leave compressed NFTs out of the listing",
    )
    _add_common_arguments(list_parser)

    # Fee command
    fee_parser = subparsers.add_parser("fee", help="Preview the protocol fee")
    fee_parser.add_argument(
        "count",
        type=int,
        help="Number of NFTs to send",
    )
    _add_common_arguments(fee_parser)

    # Send command (every NFT to one address)
    send_parser = subparsers.add_parser("send", help="Send NFTs to one address")
    send_parser.add_argument(
        "--to",
        required=True,
        dest="destination",
        help="Destination address",
    )
    send_parser.add_argument(
        "asset_ids",
        nargs="+",
        help="Asset ids to send",
    )
    _add_common_arguments(send_parser)

    # Multisend command (one address per NFT)
    multisend_parser = subparsers.add_parser("multisend", help="Send NFTs to many addresses")
    multisend_parser.add_argument(
        "--addresses",
        required=True,
        help="File with one destination address per line, paired with the asset ids in order",
    )
    multisend_parser.add_argument(
        "asset_ids",
        nargs="+",
        help="Asset ids to send",
    )
    _add_common_arguments(multisend_parser)

    return parser


def build_config(args: argparse.Namespace) -> SenderConfig:
    """Create configuration, letting command-line flags override the environment."""
    overrides = {
        "network": getattr(args, "network", None),
        "rpc_url": getattr(args, "rpc_url", None),
        "keypair_path": getattr(args, "keypair", None),
        "log_level": getattr(args, "log_level", None),
    }
    if getattr(args, "log_json", False):
        overrides["log_json"] = True

    config = SenderConfig(**{k: v for k, v in overrides.items() if v is not None})
    set_config(config)
    return config


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2))


async def list_assets(args: argparse.Namespace, config: SenderConfig) -> int:
    """List owned NFTs."""
    sender = NFTSender(config=config)
    try:
        await sender.initialize()
        assets = await sender.list_assets(
            owner=args.owner,
            include_compressed=not args.hide_compressed,
        )
    finally:
        await sender.shutdown()

    _print_json([asset.to_dict() for asset in assets])
    return 0


def show_fee(args: argparse.Namespace, config: SenderConfig) -> int:
    """Preview the protocol fee for a number of NFTs."""
    quote = NFTSender(config=config).quote_fee(args.count)
    _print_json(quote.to_dict())
    return 0


async def run_transfer(args: argparse.Namespace, config: SenderConfig) -> int:
    """Run a send or multisend command."""
    sender = NFTSender(config=config)
    cancel_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, cancel_event.set)
    except NotImplementedError:
        pass  # Signals not available on Windows

    try:
        await sender.initialize()
        if args.command == "send":
            result = await sender.transfer_to_one(args.asset_ids, args.destination, cancel_event)
        else:
            text = Path(args.addresses).read_text()
            paired = parse_address_list(text, args.asset_ids)
            # Unpaired assets are reported as missing a destination
            destinations = {asset_id: paired.get(asset_id, "") for asset_id in args.asset_ids}
            result = await sender.transfer_to_many(destinations, cancel_event)
    finally:
        await sender.shutdown()

    return _report(result)


def _report(result: BatchResult) -> int:
    _print_json(result.to_dict())
    return 0 if result.succeeded else 1


def main(argv: Optional[list] = None) -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        config = build_config(args)
        setup_logging(config.log_level, config.log_json)

        if args.command == "list":
            code = asyncio.run(list_assets(args, config))
        elif args.command == "fee":
            code = show_fee(args, config)
        else:
            code = asyncio.run(run_transfer(args, config))
    except (NFTSenderError, NodeConnectionError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    sys.exit(code)


if __name__ == "__main__":
    main()
