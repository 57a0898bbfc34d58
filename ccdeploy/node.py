"""Node collaborator: submit serialized transactions and read their status.

``WalletProxyNodeClient`` talks to a wallet-proxy style gateway:

- ``GET /v0/global`` returns the cryptographic parameters
- ``PUT /v0/submitCredential`` with ``{"v": 0, "value": <hex>}`` returns ``{"submissionId": ...}``
- ``GET /v0/submissionStatus/{id}`` returns ``{"status": ..., "outcome": ..., "blockHashes": [...]}``
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import aiohttp
import msgspec

from . import hexcodec
from .config import NodeEndpoint
from .errors import ConnectionFailure, RejectedByNode

logger = logging.getLogger(__name__)

LAST_FINAL = "lastFinal"

STATUS_RECEIVED = "received"
STATUS_COMMITTED = "committed"
STATUS_FINALIZED = "finalized"
STATUS_ABSENT = "absent"
KNOWN_STATUSES = frozenset({STATUS_RECEIVED, STATUS_COMMITTED, STATUS_FINALIZED, STATUS_ABSENT})


class TxRef(msgspec.Struct, frozen=True):
    """Reference to a submitted transaction."""

    hash: str


class TransactionStatus(msgspec.Struct, frozen=True):
    """Status of a submitted transaction as reported by the node."""

    status: str
    outcome: str | None = None
    block_hash: str | None = None
    summary: dict[str, Any] = {}

    @property
    def is_finalized(self) -> bool:
        return self.status == STATUS_FINALIZED


class NodeClient(Protocol):
    """Operations the pipeline needs from a node."""

    async def cryptographic_parameters(self, block: str = LAST_FINAL) -> dict[str, Any]: ...

    async def send(self, serialized: bytes) -> TxRef: ...

    async def status(self, tx_ref: TxRef) -> TransactionStatus: ...


class NodeChannel(Protocol):
    """An open connection to a node. ``close`` releases every network resource."""

    client: NodeClient

    async def close(self) -> None: ...


NodeConnector = Callable[[NodeEndpoint, float], Awaitable[NodeChannel]]
"""Opens a channel to an endpoint with a connect timeout in seconds."""


class _WireSubmission(msgspec.Struct, rename="camel"):
    submission_id: str


class _WireStatus(msgspec.Struct, rename="camel"):
    status: str
    outcome: str | None = None
    block_hashes: list[str] = []
    block_hash: str | None = None


def parse_status(body: bytes) -> TransactionStatus:
    """Parse a submission status response body."""
    try:
        wire = msgspec.json.decode(body, type=_WireStatus)
        summary = msgspec.json.decode(body)
    except msgspec.DecodeError as e:
        raise ConnectionFailure(f"Invalid status response: {e}") from e

    if wire.status not in KNOWN_STATUSES:
        raise ConnectionFailure(f"Unknown transaction status {wire.status!r}")

    block_hash = wire.block_hash or (wire.block_hashes[0] if wire.block_hashes else None)
    return TransactionStatus(
        status=wire.status,
        outcome=wire.outcome,
        block_hash=block_hash,
        summary=summary if isinstance(summary, dict) else {},
    )


def _error_message(body: bytes) -> str:
    try:
        data = msgspec.json.decode(body)
    except msgspec.DecodeError:
        return body.decode("utf-8", errors="replace")[:200]
    if isinstance(data, dict):
        return str(data.get("errorMessage") or data.get("error") or data)
    return str(data)


class WalletProxyNodeClient:
    """NodeClient over a wallet-proxy HTTP gateway."""

    def __init__(self, session: aiohttp.ClientSession, base_url: str) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")

    async def _request(self, method: str, path: str, **kwargs: Any) -> tuple[int, bytes]:
        url = f"{self._base_url}{path}"
        try:
            async with self._session.request(method, url, **kwargs) as resp:
                return resp.status, await resp.read()
        except aiohttp.ClientError as e:
            raise ConnectionFailure(f"{method} {path} failed: {e}") from e

    async def cryptographic_parameters(self, block: str = LAST_FINAL) -> dict[str, Any]:
        """Fetch the global cryptographic parameters (always of the last final block)."""
        if block != LAST_FINAL:
            logger.debug(f"Gateway only serves {LAST_FINAL} parameters, ignoring block {block}")
        status, body = await self._request("GET", "/v0/global")
        if status != 200:
            raise ConnectionFailure(
                f"Cryptographic parameters unavailable ({status}): {_error_message(body)}"
            )
        try:
            data = msgspec.json.decode(body)
        except msgspec.DecodeError as e:
            raise ConnectionFailure(f"Invalid cryptographic parameters: {e}") from e
        if not isinstance(data, dict):
            raise ConnectionFailure("Cryptographic parameters are not a JSON object")
        value = data.get("value", data)
        return value if isinstance(value, dict) else data

    async def send(self, serialized: bytes) -> TxRef:
        """Submit a serialized credential deployment."""
        payload = {"v": 0, "value": hexcodec.encode(serialized)}
        status, body = await self._request(
            "PUT",
            "/v0/submitCredential",
            data=msgspec.json.encode(payload),
            headers={"Content-Type": "application/json"},
        )
        if 400 <= status < 500:
            raise RejectedByNode(f"Node rejected transaction ({status}): {_error_message(body)}")
        if status != 200:
            raise ConnectionFailure(f"Submission failed ({status}): {_error_message(body)}")
        try:
            submission = msgspec.json.decode(body, type=_WireSubmission)
        except msgspec.DecodeError as e:
            raise ConnectionFailure(f"Invalid submission response: {e}") from e
        return TxRef(hash=submission.submission_id.lower())

    async def status(self, tx_ref: TxRef) -> TransactionStatus:
        """Read the current status of a submitted transaction."""
        status, body = await self._request("GET", f"/v0/submissionStatus/{tx_ref.hash}")
        if status == 404:
            return TransactionStatus(status=STATUS_ABSENT)
        if status != 200:
            raise ConnectionFailure(f"Status query failed ({status}): {_error_message(body)}")
        return parse_status(body)


class WalletProxyChannel:
    """Owns the aiohttp session behind a WalletProxyNodeClient."""

    def __init__(self, session: aiohttp.ClientSession, endpoint: NodeEndpoint) -> None:
        self._session = session
        self.endpoint = endpoint
        self.client: NodeClient = WalletProxyNodeClient(session, endpoint.base_url)

    @property
    def closed(self) -> bool:
        return self._session.closed

    async def close(self) -> None:
        await self._session.close()


async def open_wallet_proxy_channel(
    endpoint: NodeEndpoint, connect_timeout: float
) -> WalletProxyChannel:
    """Open a channel to a wallet-proxy gateway (TLS when ``endpoint.secure``)."""
    timeout = aiohttp.ClientTimeout(total=None, sock_connect=connect_timeout)
    session = aiohttp.ClientSession(timeout=timeout)
    logger.debug(f"Opened node channel to {endpoint.base_url}")
    return WalletProxyChannel(session, endpoint)
