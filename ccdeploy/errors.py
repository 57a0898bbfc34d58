"""Error taxonomy for the credential deployment pipeline.

Every failure that leaves the pipeline is one of the classes below. Each
carries the original low-level diagnostic text so callers can log it, and an
``error_type`` label used for metrics and HTTP responses.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager

import aiohttp
import msgspec

logger = logging.getLogger(__name__)


class DeploymentError(Exception):
    """Base class of the closed error taxonomy."""

    error_type = "unexpected_fault"

    def __init__(self, diagnostic: str) -> None:
        super().__init__(diagnostic)
        self.diagnostic = diagnostic


class MalformedHex(DeploymentError):
    """Hex text has odd length or a non-hex digit."""

    error_type = "malformed_hex"


class SchemaViolation(DeploymentError):
    """A required field is missing or has the wrong shape."""

    error_type = "schema_violation"


class InvalidAuthorityKey(DeploymentError):
    """An authority map key is not a non-negative base-10 integer."""

    error_type = "invalid_authority_key"


class InvalidMnemonic(DeploymentError):
    """Seed phrase failed word list or checksum validation."""

    error_type = "invalid_mnemonic"


class SigningFailure(DeploymentError):
    """The credential could not be serialized or signed."""

    error_type = "signing_failure"


class ExpiredTransaction(DeploymentError):
    """Expiry is not strictly in the future at submission time."""

    error_type = "expired_transaction"


class ConnectionFailure(DeploymentError):
    """The node channel could not be opened or broke mid-operation."""

    error_type = "connection_failure"


class RejectedByNode(DeploymentError):
    """The node refused the transaction."""

    error_type = "rejected_by_node"


class TimedOut(DeploymentError):
    """Finality was not observed within the wait budget.

    This is inconclusive: the transaction may still finalize later.
    """

    error_type = "timed_out"

    def __init__(self, diagnostic: str, transaction_hash: str | None = None) -> None:
        super().__init__(diagnostic)
        self.transaction_hash = transaction_hash


class UnexpectedFault(DeploymentError):
    """Collaborator fault not covered by any other class."""

    error_type = "unexpected_fault"


# Errors caused by the caller's input; never worth retrying
INPUT_ERRORS: tuple[type[DeploymentError], ...] = (
    MalformedHex,
    SchemaViolation,
    InvalidAuthorityKey,
    InvalidMnemonic,
    SigningFailure,
    ExpiredTransaction,
)


def classify(exc: BaseException) -> DeploymentError:
    """Map any exception onto the taxonomy.

    Taxonomy errors are returned unchanged. Everything else is wrapped with the
    original message as diagnostic and the original exception as ``__cause__``.
    """
    if isinstance(exc, DeploymentError):
        return exc

    diagnostic = str(exc) or type(exc).__name__
    error: DeploymentError
    if isinstance(exc, (msgspec.ValidationError, msgspec.DecodeError)):
        error = SchemaViolation(diagnostic)
    elif isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        error = TimedOut(diagnostic)
    elif isinstance(exc, (aiohttp.ClientError, OSError)):
        error = ConnectionFailure(diagnostic)
    else:
        error = UnexpectedFault(f"{type(exc).__name__}: {diagnostic}")
    error.__cause__ = exc
    return error


@contextmanager
def classified() -> Iterator[None]:
    """Re-raise any exception escaping the block as its classification."""
    try:
        yield
    except DeploymentError:
        raise
    except Exception as e:
        error = classify(e)
        logger.debug(f"Classified {type(e).__name__} as {error.error_type}")
        raise error from e
