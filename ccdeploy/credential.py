"""Unsigned credential decoding.

The issuer hands out the credential as JSON where every cryptographic field is
a hex string and the authority maps are keyed by decimal strings, e.g.::

    {
        "arData": {"1": {"encIdCredPubShare": "94da..."}},
        "credId": "a9a8...",
        "credentialPublicKeys": {
            "keys": {"0": {"schemeId": "Ed25519", "verifyKey": "51d0..."}},
            "threshold": 1
        },
        "ipIdentity": 0,
        "policy": {"createdAt": "202509", "validTo": "202609", "revealedAttributes": {}},
        "proofs": {"challenge": "...", "proofIdCredPub": {"1": "..."}, "sig": "...", ...},
        "revocationThreshold": 2
    }

Decoding happens in two passes: msgspec validates the shape into wire structs
holding strings, then every hex field and map key is converted eagerly into
the immutable domain structs below.
"""

from __future__ import annotations

import logging
from typing import Any

import msgspec

from . import hexcodec
from .errors import InvalidAuthorityKey, MalformedHex, SchemaViolation

logger = logging.getLogger(__name__)

MAX_U8 = 0xFF
MAX_U32 = 0xFFFFFFFF


# Wire structs (shape only, crypto fields still hex)


class _WireArData(msgspec.Struct, rename="camel"):
    enc_id_cred_pub_share: str


class _WireVerifyKey(msgspec.Struct, rename="camel"):
    scheme_id: str
    verify_key: str


class _WirePublicKeys(msgspec.Struct):
    keys: dict[str, _WireVerifyKey]
    threshold: int


class _WirePolicy(msgspec.Struct, rename="camel"):
    created_at: str
    valid_to: str
    revealed_attributes: dict[str, str] = {}


class _WireProofs(msgspec.Struct, rename="camel"):
    challenge: str
    commitments: str
    cred_counter_less_than_max_accounts: str
    proof_id_cred_pub: dict[str, str]
    proof_ip_sig: str
    proof_reg_id: str
    signature: str = msgspec.field(name="sig")


class _WireCredential(msgspec.Struct, rename="camel"):
    ar_data: dict[str, _WireArData]
    cred_id: str
    credential_public_keys: _WirePublicKeys
    ip_identity: int
    policy: _WirePolicy
    proofs: _WireProofs
    revocation_threshold: int


# Domain structs


class ChainArData(msgspec.Struct, frozen=True):
    """Encrypted share of the credential holder's identity for one authority."""

    enc_id_cred_pub_share: bytes


class VerifyKey(msgspec.Struct, frozen=True):
    """Account verification key."""

    scheme_id: str
    verify_key: bytes


class CredentialPublicKeys(msgspec.Struct, frozen=True):
    """Public keys of the new account and how many must sign."""

    keys: dict[int, VerifyKey]
    threshold: int


class Policy(msgspec.Struct, frozen=True):
    """Validity window and revealed attributes of the credential."""

    created_at: str
    valid_to: str
    revealed_attributes: dict[str, str]


class Proofs(msgspec.Struct, frozen=True):
    """Proof bundle attached to the credential by the identity provider."""

    challenge: bytes
    commitments: bytes
    cred_counter_less_than_max_accounts: bytes
    proof_id_cred_pub: dict[int, bytes]
    proof_ip_sig: bytes
    proof_reg_id: bytes
    signature: bytes


class UnsignedCredential(msgspec.Struct, frozen=True):
    """Account credential as issued, before the account keys sign it."""

    ar_data: dict[int, ChainArData]
    cred_id: bytes
    credential_public_keys: CredentialPublicKeys
    ip_identity: int
    policy: Policy
    proofs: Proofs
    revocation_threshold: int


def parse_authority_key(key: str, field: str) -> int:
    """Parse a decimal-string map key into an unsigned 32-bit integer.

    Raises:
        InvalidAuthorityKey: If the key is not made of ASCII digits or overflows u32

    """
    if not (key.isascii() and key.isdigit()):
        raise InvalidAuthorityKey(f"{field} key {key!r} is not a valid unsigned integer")
    value = int(key, 10)
    if value > MAX_U32:
        raise InvalidAuthorityKey(f"{field} key {key!r} exceeds 32 bits")
    return value


def _hex(value: str, path: str) -> bytes:
    try:
        return hexcodec.decode(value)
    except MalformedHex as e:
        raise MalformedHex(f"{path}: {e.diagnostic}") from e


def _decode_ar_data(wire: dict[str, _WireArData]) -> dict[int, ChainArData]:
    ar_data: dict[int, ChainArData] = {}
    for key, value in wire.items():
        identity = parse_authority_key(key, "arData")
        ar_data[identity] = ChainArData(
            enc_id_cred_pub_share=_hex(
                value.enc_id_cred_pub_share, f"arData.{key}.encIdCredPubShare"
            ),
        )
    return ar_data


def _decode_public_keys(wire: _WirePublicKeys) -> CredentialPublicKeys:
    keys: dict[int, VerifyKey] = {}
    for key, value in wire.keys.items():
        index = parse_authority_key(key, "credentialPublicKeys.keys")
        if index > MAX_U8:
            raise SchemaViolation(f"credentialPublicKeys.keys index {index} exceeds 255")
        keys[index] = VerifyKey(
            scheme_id=value.scheme_id,
            verify_key=_hex(value.verify_key, f"credentialPublicKeys.keys.{key}.verifyKey"),
        )

    if not keys:
        raise SchemaViolation("credentialPublicKeys.keys must not be empty")
    if not 1 <= wire.threshold <= len(keys):
        raise SchemaViolation(
            f"credentialPublicKeys.threshold {wire.threshold} must be between 1 and {len(keys)}"
        )
    return CredentialPublicKeys(keys=keys, threshold=wire.threshold)


def _decode_proofs(wire: _WireProofs) -> Proofs:
    # Decoded independently of arData; the authority subsets may differ
    proof_id_cred_pub = {
        parse_authority_key(key, "proofs.proofIdCredPub"): _hex(
            value, f"proofs.proofIdCredPub.{key}"
        )
        for key, value in wire.proof_id_cred_pub.items()
    }
    return Proofs(
        challenge=_hex(wire.challenge, "proofs.challenge"),
        commitments=_hex(wire.commitments, "proofs.commitments"),
        cred_counter_less_than_max_accounts=_hex(
            wire.cred_counter_less_than_max_accounts,
            "proofs.credCounterLessThanMaxAccounts",
        ),
        proof_id_cred_pub=proof_id_cred_pub,
        proof_ip_sig=_hex(wire.proof_ip_sig, "proofs.proofIpSig"),
        proof_reg_id=_hex(wire.proof_reg_id, "proofs.proofRegId"),
        signature=_hex(wire.signature, "proofs.sig"),
    )


def _parse_wire(data: str | bytes | dict[str, Any]) -> _WireCredential:
    try:
        if isinstance(data, dict):
            return msgspec.convert(data, _WireCredential)
        return msgspec.json.decode(data, type=_WireCredential)
    except msgspec.ValidationError as e:
        raise SchemaViolation(f"Invalid credential: {e}") from e
    except msgspec.DecodeError as e:
        raise SchemaViolation(f"Invalid credential JSON: {e}") from e
    except TypeError as e:
        raise SchemaViolation(f"Unsupported credential input: {e}") from e


def decode_credential(data: str | bytes | dict[str, Any]) -> UnsignedCredential:
    """Decode an unsigned credential from JSON text or an already parsed object.

    Args:
        data: JSON text/bytes, or the parsed JSON object

    Returns:
        The decoded credential

    Raises:
        SchemaViolation: If a field is missing, mistyped, or out of range
        MalformedHex: If any cryptographic field is not valid hex
        InvalidAuthorityKey: If an authority map key is not a non-negative integer

    """
    wire = _parse_wire(data)

    ar_data = _decode_ar_data(wire.ar_data)
    cred_id = _hex(wire.cred_id, "credId")
    public_keys = _decode_public_keys(wire.credential_public_keys)
    proofs = _decode_proofs(wire.proofs)

    if not 0 <= wire.ip_identity <= MAX_U32:
        raise SchemaViolation(f"ipIdentity {wire.ip_identity} is not a u32")
    if not 1 <= wire.revocation_threshold <= min(len(ar_data), MAX_U8):
        raise SchemaViolation(
            f"revocationThreshold {wire.revocation_threshold} must be between 1 "
            f"and the number of arData entries ({len(ar_data)})"
        )

    credential = UnsignedCredential(
        ar_data=ar_data,
        cred_id=cred_id,
        credential_public_keys=public_keys,
        ip_identity=wire.ip_identity,
        policy=Policy(
            created_at=wire.policy.created_at,
            valid_to=wire.policy.valid_to,
            revealed_attributes=dict(wire.policy.revealed_attributes),
        ),
        proofs=proofs,
        revocation_threshold=wire.revocation_threshold,
    )
    logger.debug(
        f"Decoded credential {hexcodec.encode(cred_id)[:20]}... "
        f"with {len(ar_data)} authorities"
    )
    return credential


def encode_credential(credential: UnsignedCredential) -> dict[str, Any]:
    """Return the JSON view of a credential (hex strings, decimal-string keys)."""
    proofs = credential.proofs
    return {
        "arData": {
            str(k): {"encIdCredPubShare": hexcodec.encode(v.enc_id_cred_pub_share)}
            for k, v in sorted(credential.ar_data.items())
        },
        "credId": hexcodec.encode(credential.cred_id),
        "credentialPublicKeys": {
            "keys": {
                str(k): {"schemeId": v.scheme_id, "verifyKey": hexcodec.encode(v.verify_key)}
                for k, v in sorted(credential.credential_public_keys.keys.items())
            },
            "threshold": credential.credential_public_keys.threshold,
        },
        "ipIdentity": credential.ip_identity,
        "policy": {
            "createdAt": credential.policy.created_at,
            "validTo": credential.policy.valid_to,
            "revealedAttributes": dict(sorted(credential.policy.revealed_attributes.items())),
        },
        "proofs": {
            "challenge": hexcodec.encode(proofs.challenge),
            "commitments": hexcodec.encode(proofs.commitments),
            "credCounterLessThanMaxAccounts": hexcodec.encode(
                proofs.cred_counter_less_than_max_accounts
            ),
            "proofIdCredPub": {
                str(k): hexcodec.encode(v) for k, v in sorted(proofs.proof_id_cred_pub.items())
            },
            "proofIpSig": hexcodec.encode(proofs.proof_ip_sig),
            "proofRegId": hexcodec.encode(proofs.proof_reg_id),
            "sig": hexcodec.encode(proofs.signature),
        },
        "revocationThreshold": credential.revocation_threshold,
    }
