"""Base types, structs and validation helpers for handlers."""

import logging
from typing import Any, TypeVar

import msgspec
from litestar import Request, Response
from litestar.exceptions import ValidationException
from litestar.status_codes import (
    HTTP_400_BAD_REQUEST,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
)

from ccdeploy.errors import (
    INPUT_ERRORS,
    ConnectionFailure,
    DeploymentError,
    RejectedByNode,
)
from ccdeploy.messages import WalletConnectMethod

logger = logging.getLogger(__name__)

T = TypeVar("T")


# Request/Response structs


class DeploymentRequest(msgspec.Struct, rename="camel"):
    """Request struct for a credential deployment."""

    seed_phrase: str
    payload: dict[str, Any] | str

    def __post_init__(self) -> None:
        if not self.seed_phrase.strip():
            raise ValueError("seedPhrase must not be empty")


class AccountKeysRequest(msgspec.Struct, rename="camel"):
    """Request struct for deriving an account key pair."""

    seed_phrase: str
    account_index: int = 0

    def __post_init__(self) -> None:
        if self.account_index < 0:
            raise ValueError("accountIndex must not be negative")


class SessionRequestBody(msgspec.Struct, rename="camel"):
    """Request struct for building an ID app session request."""

    method: WalletConnectMethod
    seed_phrase: str
    topic: str | None = None
    account_index: int = 0
    note: str = ""

    def __post_init__(self) -> None:
        if self.account_index < 0:
            raise ValueError("accountIndex must not be negative")


class PendingDeploymentResponse(msgspec.Struct, rename="camel"):
    """Submitted but not finalized within the wait budget."""

    transaction_hash: str | None
    status: str = "pending"
    message: str = ""


class ErrorResponse(msgspec.Struct):
    """Classified pipeline error."""

    error_type: str
    message: str


class HealthResponse(msgspec.Struct):
    """Health check response."""

    status: str
    network: str


class ProbeResponse(msgspec.Struct):
    """Liveness probe response."""

    status: str
    outcome: str


# Validation helpers


async def parse_body(request: Request, type_: type[T]) -> T:
    """Parse and validate a JSON request body.

    Raises:
        ValidationException: If parsing fails

    """
    body_bytes = await request.body()
    try:
        return msgspec.json.decode(body_bytes, type=type_)
    except (msgspec.ValidationError, msgspec.DecodeError) as e:
        raise ValidationException(detail=f"Validation error: {e}") from e
    except ValueError as e:
        raise ValidationException(detail=str(e)) from e


def status_code_for(error: DeploymentError) -> int:
    """HTTP status for a classified error."""
    if isinstance(error, INPUT_ERRORS):
        return HTTP_400_BAD_REQUEST
    if isinstance(error, (ConnectionFailure, RejectedByNode)):
        return HTTP_502_BAD_GATEWAY
    return HTTP_500_INTERNAL_SERVER_ERROR


def error_response(error: DeploymentError) -> Response[ErrorResponse]:
    """Build the JSON response for a classified error."""
    status_code = status_code_for(error)
    if status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(f"Deployment error ({error.error_type}): {error.diagnostic}")
    return Response(
        content=ErrorResponse(error_type=error.error_type, message=error.diagnostic),
        status_code=status_code,
    )
