"""Wallet proxy lookups."""

from __future__ import annotations

import logging
from urllib.parse import quote

import aiohttp
import msgspec

from .config import NetworkConfiguration
from .errors import ConnectionFailure, SchemaViolation

logger = logging.getLogger(__name__)


class KeyAccountPublicKey(msgspec.Struct, frozen=True, rename="camel"):
    scheme_id: str
    verify_key: str


class KeyAccount(msgspec.Struct, frozen=True, rename="camel"):
    """An account holding a given public key."""

    address: str
    credential_index: int
    is_simple_account: bool
    key_index: int
    public_key: KeyAccountPublicKey


_key_accounts_decoder = msgspec.json.Decoder(list[KeyAccount])


async def fetch_key_accounts(
    session: aiohttp.ClientSession,
    public_key: str,
    network_config: NetworkConfiguration,
) -> list[KeyAccount]:
    """Fetch all accounts that contain ``public_key``.

    Raises:
        ConnectionFailure: If the proxy is unreachable or answers with a non-2xx status
        SchemaViolation: If the response body is not a list of key accounts

    """
    base_url = network_config.wallet_proxy_url.rstrip("/")
    url = f"{base_url}/v0/keyAccounts/{quote(public_key, safe='')}"

    try:
        async with session.get(url) as resp:
            body = await resp.read()
            status = resp.status
    except aiohttp.ClientError as e:
        raise ConnectionFailure(f"Wallet proxy request failed: {e}") from e

    if not 200 <= status < 300:
        raise ConnectionFailure(f"wallet proxy responded with status {status}")

    try:
        accounts = _key_accounts_decoder.decode(body)
    except msgspec.DecodeError as e:
        raise SchemaViolation(f"Invalid key accounts response: {e}") from e

    logger.debug(f"Found {len(accounts)} account(s) for key {public_key[:16]}...")
    return accounts
