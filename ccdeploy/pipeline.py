"""Credential deployment pipeline: decode, derive, sign, submit, await finality.

Every invocation owns its seed material, keys and node channel; nothing is
shared between concurrent deployments. Only errors from ``ccdeploy.errors``
leave this module.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import msgspec

from .config import Config
from .errors import DeploymentError, classified
from .keys import derive_seed, derive_signing_key
from .messages import decode_deployment_details
from .metrics import (
    DEPLOYMENT_DURATION_SECONDS,
    DEPLOYMENT_ERRORS_TOTAL,
    DEPLOYMENT_REQUESTS_TOTAL,
)
from .node import NodeConnector
from .submission import Clock, SubmissionController, SystemClock
from .transaction import (
    SignedTransactionEnvelope,
    assemble_and_sign,
    compute_expiry,
    ensure_not_expired,
    serialize,
    transaction_hash,
)

logger = logging.getLogger(__name__)


class PreparedTransaction(msgspec.Struct, frozen=True):
    """A signed transaction ready for submission."""

    envelope: SignedTransactionEnvelope
    serialized: bytes
    transaction_hash: str


class DeploymentResult(msgspec.Struct, frozen=True, rename="camel"):
    """Outcome of a finalized credential deployment."""

    transaction_hash: str
    block_hash: str
    outcome: str
    summary: dict[str, Any] = {}


def prepare_transaction(
    details_json: str | bytes | dict[str, Any],
    seed_phrase: str,
    config: Config,
    now: float,
) -> PreparedTransaction:
    """Decode, derive and sign without touching the network.

    When the payload carries no expiry, the expiry is ``now`` plus the
    configured number of minutes.
    """
    with classified():
        details = decode_deployment_details(details_json)

        seed = derive_seed(seed_phrase)
        keys = derive_signing_key(
            seed,
            config.network,
            config.identity_provider_index,
            config.identity_index,
            config.credential_counter,
        )
        del seed

        expiry = details.expiry
        if expiry is None:
            expiry = compute_expiry(now, config.transaction_expiry_minutes)

        envelope = assemble_and_sign(details.credential, expiry, keys)
        serialized = serialize(envelope)
        tx_hash = transaction_hash(envelope)

    logger.info(f"Prepared credential deployment {tx_hash[:16]}... expiring at {expiry}")
    return PreparedTransaction(envelope=envelope, serialized=serialized, transaction_hash=tx_hash)


async def deploy_credential(
    details_json: str | bytes | dict[str, Any],
    seed_phrase: str,
    config: Config,
    connector: NodeConnector | None = None,
    clock: Clock | None = None,
) -> DeploymentResult:
    """Sign a credential deployment and submit it, waiting for finalization.

    Args:
        details_json: The ID app's deployment payload
        seed_phrase: BIP-39 recovery phrase of the account owner
        config: Network, node endpoint, timeouts and key indexes
        connector: Opens the node channel; wallet-proxy HTTP by default
        clock: Time source; the system clock by default

    Returns:
        Transaction hash, block hash and on-chain outcome

    Raises:
        DeploymentError: One of the taxonomy subclasses. ``TimedOut`` means
            the outcome is unknown, not that the deployment failed.

    """
    clock = clock or SystemClock()
    network = config.network.value
    DEPLOYMENT_REQUESTS_TOTAL.labels(network=network).inc()
    start_time = time.perf_counter()

    try:
        # PBKDF2 and signing are CPU bound; keep them off the event loop
        prepared = await asyncio.to_thread(
            prepare_transaction, details_json, seed_phrase, config, clock.time()
        )

        # Re-check right before submission; an expired transaction never leaves the process
        ensure_not_expired(prepared.envelope.expiry, clock.time())

        controller = SubmissionController(
            config.node_endpoint,
            connector=connector,
            clock=clock,
            connect_timeout=config.connect_timeout,
        )
        with classified():
            result = await controller.submit_and_wait(
                prepared.serialized,
                timeout=config.finalization_timeout,
                poll_interval=config.poll_interval,
            )
    except DeploymentError as e:
        DEPLOYMENT_ERRORS_TOTAL.labels(error_type=e.error_type).inc()
        logger.warning(f"Credential deployment failed ({e.error_type}): {e.diagnostic}")
        raise
    finally:
        DEPLOYMENT_DURATION_SECONDS.labels(network=network).observe(
            time.perf_counter() - start_time
        )

    return DeploymentResult(
        transaction_hash=result.transaction_hash,
        block_hash=result.block_hash,
        outcome=result.outcome,
        summary=result.summary,
    )
