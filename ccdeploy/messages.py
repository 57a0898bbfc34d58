"""ID app payloads and wallet-connect messages.

The ID app hands over a credential deployment as::

    {"expiry": 1761728783, "unsignedCdiStr": "{\\"arData\\": ...}", "randomness": {...}}

where ``unsignedCdiStr`` is the credential JSON embedded as a string. An
inline ``unsignedCdi`` object is accepted as well.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any

import msgspec

from .credential import UnsignedCredential, decode_credential
from .errors import SchemaViolation

logger = logging.getLogger(__name__)

# Sent in place of a session topic when the configuration does not require one
PLACEHOLDER_TOPIC = "no-topic"


class IDAppErrorCode(IntEnum):
    """Error codes reported by the ID app."""

    ACCOUNT_NOT_FOUND = 1
    ACCOUNT_CREATION_FAILED = 2
    NETWORK_ERROR = 3
    INVALID_INPUT = 4
    UNAUTHORIZED = 5
    TIMEOUT = 6
    DUPLICATE_ACCOUNT_CREATION_REQUEST = 7
    REQUEST_REJECTED = 8
    UNKNOWN_ERROR = 99


class Status(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class WalletConnectMethod(str, Enum):
    CREATE_ACCOUNT = "create_account"
    RECOVER_ACCOUNT = "recover_account"


class IDAppError(msgspec.Struct, frozen=True):
    """Error reported by the ID app."""

    code: IDAppErrorCode
    details: str | None = None


class SerializedCredentialDeploymentDetails(msgspec.Struct, frozen=True, rename="camel"):
    """Credential deployment as handed over by the ID app."""

    expiry: int | None = None
    unsigned_cdi_str: str | None = None
    unsigned_cdi: dict[str, Any] | None = None
    randomness: dict[str, Any] | str | None = None


class CredentialDeploymentDetails(msgspec.Struct, frozen=True):
    """Decoded deployment input: the credential and the issuer's expiry."""

    credential: UnsignedCredential
    # None when the expiry is chosen at submission time
    expiry: int | None = None
    # Commitment randomness; informational only, never signed
    randomness: dict[str, Any] | str | None = None


class CreateAccountResult(msgspec.Struct, frozen=True, rename="camel"):
    serialized_credential_deployment_transaction: SerializedCredentialDeploymentDetails
    account_address: str


class RecoverAccountResult(msgspec.Struct, frozen=True, rename="camel"):
    account_address: str


class _WireResponse(msgspec.Struct):
    status: Status
    message: dict[str, Any]


@dataclass(frozen=True, slots=True)
class AccountResponse:
    """Outcome of a create or recover request: either a result or an error."""

    status: Status
    result: CreateAccountResult | RecoverAccountResult | None = None
    error: IDAppError | None = None

    @property
    def ok(self) -> bool:
        return self.status is Status.SUCCESS and self.result is not None


class CreateAccountRequest(msgspec.Struct, frozen=True, rename="camel"):
    public_key: str
    reason: str


class RecoverAccountRequest(msgspec.Struct, frozen=True, rename="camel"):
    public_key: str
    description: str


@dataclass(frozen=True, slots=True)
class SessionRequest:
    """A wallet-connect request addressed to a session topic."""

    topic: str
    method: WalletConnectMethod
    params: CreateAccountRequest | RecoverAccountRequest


def _convert(data: str | bytes | dict[str, Any], type_: type[Any]) -> Any:
    try:
        if isinstance(data, dict):
            return msgspec.convert(data, type_)
        return msgspec.json.decode(data, type=type_)
    except msgspec.ValidationError as e:
        raise SchemaViolation(f"Invalid {type_.__name__}: {e}") from e
    except msgspec.DecodeError as e:
        raise SchemaViolation(f"Invalid JSON: {e}") from e


def decode_deployment_details(data: str | bytes | dict[str, Any]) -> CredentialDeploymentDetails:
    """Decode the ID app's credential deployment payload.

    Raises:
        SchemaViolation: If the payload shape is wrong, or both or neither of
            ``unsignedCdiStr`` and ``unsignedCdi`` are present
        MalformedHex: If a cryptographic field of the credential is not hex
        InvalidAuthorityKey: If an authority map key is not an integer

    """
    details: SerializedCredentialDeploymentDetails = _convert(
        data, SerializedCredentialDeploymentDetails
    )

    if (details.unsigned_cdi_str is None) == (details.unsigned_cdi is None):
        raise SchemaViolation("Exactly one of unsignedCdiStr and unsignedCdi is required")
    if details.expiry is not None and details.expiry < 0:
        raise SchemaViolation(f"expiry must be non-negative, got {details.expiry}")

    source = details.unsigned_cdi_str if details.unsigned_cdi_str is not None else details.unsigned_cdi
    credential = decode_credential(source)  # type: ignore[arg-type]

    return CredentialDeploymentDetails(
        credential=credential,
        expiry=details.expiry,
        randomness=details.randomness,
    )


def _decode_account_response(
    data: str | bytes | dict[str, Any],
    result_type: type[CreateAccountResult] | type[RecoverAccountResult],
) -> AccountResponse:
    wire: _WireResponse = _convert(data, _WireResponse)

    if wire.status is Status.SUCCESS:
        try:
            result = msgspec.convert(wire.message, result_type)
        except msgspec.ValidationError:
            # A success status may still carry an error body
            logger.debug("Success response without a result body, trying error shape")
        else:
            return AccountResponse(status=wire.status, result=result)

    error: IDAppError = _convert(wire.message, IDAppError)
    return AccountResponse(status=wire.status, error=error)


def decode_create_account_response(data: str | bytes | dict[str, Any]) -> AccountResponse:
    """Decode the ID app's answer to a create account request."""
    return _decode_account_response(data, CreateAccountResult)


def decode_recover_account_response(data: str | bytes | dict[str, Any]) -> AccountResponse:
    """Decode the ID app's answer to a recover account request."""
    return _decode_account_response(data, RecoverAccountResult)


def build_session_request(
    method: WalletConnectMethod,
    params: CreateAccountRequest | RecoverAccountRequest,
    topic: str | None,
    require_topic: bool,
) -> SessionRequest:
    """Address a request to a session topic.

    Raises:
        SchemaViolation: If ``require_topic`` is set and no topic was given

    """
    if not topic:
        if require_topic:
            raise SchemaViolation(f"A session topic is required for {method.value}")
        topic = PLACEHOLDER_TOPIC
    return SessionRequest(topic=topic, method=method, params=params)
