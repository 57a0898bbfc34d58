"""CLI entry point for ccdeploy."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import sys
import time
from pathlib import Path

import aiohttp
import msgspec

from .config import Config, get_config
from .errors import DeploymentError, TimedOut
from .keys import generate_account_key_pair
from .pipeline import deploy_credential, prepare_transaction
from .wallet_proxy import fetch_key_accounts

logger = logging.getLogger(__name__)

EXIT_PENDING = 2


def setup_logging(log_level: str) -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def read_seed_phrase(path: str | None) -> str:
    """Read the seed phrase from a file, the terminal, or piped stdin.

    The phrase is never accepted as a command line argument.
    """
    if path is not None:
        return Path(path).read_text().strip()
    if sys.stdin.isatty():
        return getpass.getpass("Seed phrase: ")
    return sys.stdin.read().strip()


def _print_json(obj: object) -> None:
    print(msgspec.json.format(msgspec.json.encode(obj), indent=2).decode())


def run_deploy(config: Config, args: argparse.Namespace) -> int:
    payload = Path(args.payload).read_bytes()
    seed_phrase = read_seed_phrase(args.seed_phrase_file)

    if args.dry_run:
        prepared = prepare_transaction(payload, seed_phrase, config, now=time.time())
        _print_json(
            {
                "transactionHash": prepared.transaction_hash,
                "expiry": prepared.envelope.expiry,
                "transaction": prepared.serialized.hex(),
            }
        )
        return 0

    try:
        result = asyncio.run(deploy_credential(payload, seed_phrase, config))
    except TimedOut as e:
        print(
            f"Not finalized yet: transaction {e.transaction_hash} may still succeed",
            file=sys.stderr,
        )
        return EXIT_PENDING

    _print_json(result)
    return 0


async def _lookup_accounts(config: Config, public_key: str) -> list[str]:
    async with aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=config.connect_timeout)
    ) as session:
        accounts = await fetch_key_accounts(session, public_key, config.network_configuration)
    return [account.address for account in accounts]


def run_keys(config: Config, args: argparse.Namespace) -> int:
    seed_phrase = read_seed_phrase(args.seed_phrase_file)
    keys = generate_account_key_pair(seed_phrase, config.network, args.account_index)

    output: dict[str, object] = msgspec.to_builtins(keys)
    if args.lookup:
        output["accounts"] = asyncio.run(_lookup_accounts(config, keys.public_key))
    _print_json(output)
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    try:
        config, args = get_config(argv)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.normalized_log_level)

    if args.command == "serve":
        from .server import run_server

        try:
            asyncio.run(run_server(config))
        except KeyboardInterrupt:
            print("\nShutting down...")
            sys.exit(0)
        except Exception:
            logger.exception("Server error")
            sys.exit(1)
        return

    commands = {"deploy": run_deploy, "keys": run_keys}
    try:
        sys.exit(commands[args.command](config, args))
    except DeploymentError as e:
        print(f"Error ({e.error_type}): {e.diagnostic}", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
