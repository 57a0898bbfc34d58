"""Submission and finalization controller.

One controller drives one submission through::

    IDLE -> CONNECTED -> SUBMITTED -> FINALIZED | TIMED_OUT | FAILED

The channel is closed on every exit path before the controller returns or
raises. A failure while closing is logged and never replaces the outcome.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Protocol

import aiohttp
import msgspec

from .config import NodeEndpoint
from .errors import (
    ConnectionFailure,
    DeploymentError,
    RejectedByNode,
    TimedOut,
    UnexpectedFault,
    classify,
)
from .metrics import FINALIZATION_POLLS_TOTAL
from .node import (
    LAST_FINAL,
    STATUS_ABSENT,
    NodeChannel,
    NodeClient,
    NodeConnector,
    TxRef,
    open_wallet_proxy_channel,
)

logger = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    IDLE = "idle"
    CONNECTED = "connected"
    SUBMITTED = "submitted"
    FINALIZED = "finalized"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class Clock(Protocol):
    """Time source; injected so tests can simulate elapsed time."""

    def time(self) -> float: ...

    def monotonic(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Wall clock and asyncio sleep."""

    def time(self) -> float:
        return time.time()

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class FinalizationResult(msgspec.Struct, frozen=True):
    """Terminal outcome of a finalized transaction.

    ``outcome`` is the on-chain effect (``success`` or ``reject``), which is
    independent of the node having accepted the submission.
    """

    transaction_hash: str
    block_hash: str
    outcome: str
    summary: dict[str, Any] = {}

    @property
    def succeeded(self) -> bool:
        return self.outcome == "success"


class SubmissionController:
    """Connects, submits, and polls for finality on a single channel."""

    def __init__(
        self,
        endpoint: NodeEndpoint,
        connector: NodeConnector | None = None,
        clock: Clock | None = None,
        connect_timeout: float = 15.0,
    ) -> None:
        self._endpoint = endpoint
        self._connector = connector or open_wallet_proxy_channel
        self._clock = clock or SystemClock()
        self._connect_timeout = connect_timeout
        self.state = SubmissionState.IDLE
        self.transaction_hash: str | None = None

    async def submit_and_wait(
        self,
        serialized: bytes,
        timeout: float,
        poll_interval: float = 1.0,
    ) -> FinalizationResult:
        """Submit ``serialized`` and wait up to ``timeout`` seconds for finality.

        Raises:
            ConnectionFailure: If the node cannot be reached before submission
            RejectedByNode: If the node refuses or loses the transaction
            TimedOut: If finality was not observed in time, including when status
                queries keep failing after submission (inconclusive)

        """
        if self.state is not SubmissionState.IDLE:
            raise UnexpectedFault(f"Controller already used (state {self.state.value})")
        if timeout <= 0:
            raise UnexpectedFault(f"Finalization timeout must be positive, got {timeout}")

        channel = await self._open()
        try:
            await self._probe(channel.client)
            self.state = SubmissionState.CONNECTED

            tx_ref = await channel.client.send(serialized)
            self.transaction_hash = tx_ref.hash
            self.state = SubmissionState.SUBMITTED
            logger.info(f"Transaction {tx_ref.hash[:16]}... submitted, waiting for finalization")

            result = await self._await_finalization(channel.client, tx_ref, timeout, poll_interval)
            self.state = SubmissionState.FINALIZED
            return result
        except DeploymentError:
            if self.state is not SubmissionState.TIMED_OUT:
                self.state = SubmissionState.FAILED
            raise
        except Exception as e:
            self.state = SubmissionState.FAILED
            raise classify(e) from e
        finally:
            await self._teardown(channel)

    async def _open(self) -> NodeChannel:
        try:
            return await self._connector(self._endpoint, self._connect_timeout)
        except Exception as e:
            self.state = SubmissionState.FAILED
            raise ConnectionFailure(
                f"Cannot open channel to {self._endpoint.base_url}: {e}"
            ) from e

    async def _probe(self, client: NodeClient) -> None:
        try:
            await asyncio.wait_for(
                client.cryptographic_parameters(LAST_FINAL), timeout=self._connect_timeout
            )
        except DeploymentError:
            raise
        except Exception as e:
            raise ConnectionFailure(
                f"Node at {self._endpoint.base_url} is not reachable: {e}"
            ) from e

    async def _await_finalization(
        self,
        client: NodeClient,
        tx_ref: TxRef,
        timeout: float,
        poll_interval: float,
    ) -> FinalizationResult:
        deadline = self._clock.monotonic() + timeout
        last_error: Exception | None = None

        while True:
            remaining = deadline - self._clock.monotonic()
            if remaining <= 0:
                self.state = SubmissionState.TIMED_OUT
                detail = f" (last status error: {last_error})" if last_error else ""
                raise TimedOut(
                    f"Transaction {tx_ref.hash} not finalized within {timeout}s{detail}",
                    transaction_hash=tx_ref.hash,
                )

            try:
                status = await asyncio.wait_for(client.status(tx_ref), timeout=remaining)
            except asyncio.TimeoutError as e:
                self.state = SubmissionState.TIMED_OUT
                raise TimedOut(
                    f"Status query for {tx_ref.hash} exceeded the finalization timeout",
                    transaction_hash=tx_ref.hash,
                ) from e
            except (ConnectionFailure, aiohttp.ClientError) as e:
                # The transaction is already with the node; only finality is unknown
                FINALIZATION_POLLS_TOTAL.inc()
                last_error = e
                logger.warning(f"Status query for {tx_ref.hash[:16]}... failed, retrying: {e}")
                await self._wait_before_next_poll(deadline, poll_interval)
                continue
            FINALIZATION_POLLS_TOTAL.inc()

            if status.is_finalized:
                if status.block_hash is None:
                    raise UnexpectedFault(f"Finalized transaction {tx_ref.hash} has no block hash")
                logger.info(
                    f"Transaction {tx_ref.hash[:16]}... finalized in block "
                    f"{status.block_hash[:16]}... with outcome {status.outcome}"
                )
                return FinalizationResult(
                    transaction_hash=tx_ref.hash,
                    block_hash=status.block_hash,
                    outcome=status.outcome or "unknown",
                    summary=status.summary,
                )
            if status.status == STATUS_ABSENT:
                raise RejectedByNode(f"Transaction {tx_ref.hash} is absent from the node")

            logger.debug(f"Transaction {tx_ref.hash[:16]}... is {status.status}")
            await self._wait_before_next_poll(deadline, poll_interval)

    async def _wait_before_next_poll(self, deadline: float, poll_interval: float) -> None:
        remaining = deadline - self._clock.monotonic()
        if remaining > 0:
            await self._clock.sleep(min(poll_interval, remaining))

    async def _teardown(self, channel: NodeChannel) -> None:
        try:
            await channel.close()
        except Exception as e:
            logger.warning(f"Error closing node channel: {e!r}")
        else:
            logger.debug(f"Closed node channel to {self._endpoint.base_url}")
