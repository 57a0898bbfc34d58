"""Credential deployment transaction assembly, signing and SSZ serialization.

The wire format is SSZ. Maps are written as lists of entries sorted by key and
strings as UTF-8 byte lists, so the same envelope always serializes to the
same bytes. The account keys sign the SHA-256 digest of the serialized
``DeploymentPayload`` (expiry + credential), and the transmitted
``SignedDeployment`` embeds that exact payload.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable

import msgspec
import ssz
from ssz.sedes import ByteVector, List, Serializable, uint8, uint32, uint64

from . import wallet
from .credential import (
    ChainArData,
    CredentialPublicKeys,
    Policy,
    Proofs,
    UnsignedCredential,
    VerifyKey,
)
from .errors import ExpiredTransaction, SigningFailure
from .keys import AccountKeyPair

logger = logging.getLogger(__name__)

MAX_FIELD_BYTES = 2**16
MAX_TEXT_BYTES = 256
MAX_ENTRIES = 256
MAX_U64 = 2**64 - 1
SIGNATURE_LENGTH = 64

Signer = Callable[[str, bytes], bytes]
"""Signs a message with a hex-encoded private key."""

# Variable-length bytes are uint8 lists; same encoding as a byte list
_field_bytes = List(uint8, MAX_FIELD_BYTES)
_text = List(uint8, MAX_TEXT_BYTES)


# SSZ containers


class ArShareEntry(Serializable):  # type: ignore[misc]
    fields = [
        ("ar_identity", uint32),
        ("enc_id_cred_pub_share", _field_bytes),
    ]


class IdCredPubProofEntry(Serializable):  # type: ignore[misc]
    fields = [
        ("ar_identity", uint32),
        ("proof", _field_bytes),
    ]


class VerifyKeyEntry(Serializable):  # type: ignore[misc]
    fields = [
        ("key_index", uint8),
        ("scheme_id", _text),
        ("verify_key", _field_bytes),
    ]


class RevealedAttributeEntry(Serializable):  # type: ignore[misc]
    fields = [
        ("tag", _text),
        ("value", _text),
    ]


class PolicyFields(Serializable):  # type: ignore[misc]
    fields = [
        ("created_at", _text),
        ("valid_to", _text),
        ("revealed_attributes", List(RevealedAttributeEntry, MAX_ENTRIES)),
    ]


class ProofFields(Serializable):  # type: ignore[misc]
    fields = [
        ("challenge", _field_bytes),
        ("commitments", _field_bytes),
        ("cred_counter_less_than_max_accounts", _field_bytes),
        ("proof_id_cred_pub", List(IdCredPubProofEntry, MAX_ENTRIES)),
        ("proof_ip_sig", _field_bytes),
        ("proof_reg_id", _field_bytes),
        ("signature", _field_bytes),
    ]


class CredentialFields(Serializable):  # type: ignore[misc]
    fields = [
        ("ar_data", List(ArShareEntry, MAX_ENTRIES)),
        ("cred_id", _field_bytes),
        ("public_keys", List(VerifyKeyEntry, MAX_ENTRIES)),
        ("threshold", uint8),
        ("ip_identity", uint32),
        ("policy", PolicyFields),
        ("proofs", ProofFields),
        ("revocation_threshold", uint8),
    ]


class DeploymentPayload(Serializable):  # type: ignore[misc]
    fields = [
        ("expiry", uint64),
        ("credential", CredentialFields),
    ]


class KeySignature(Serializable):  # type: ignore[misc]
    fields = [
        ("key_index", uint8),
        ("signature", ByteVector(SIGNATURE_LENGTH)),
    ]


class SignedDeployment(Serializable):  # type: ignore[misc]
    fields = [
        ("payload", DeploymentPayload),
        ("signatures", List(KeySignature, MAX_ENTRIES)),
    ]


class SignedTransactionEnvelope(msgspec.Struct, frozen=True):
    """A credential, its expiry, and the account key signatures over both."""

    credential: UnsignedCredential
    expiry: int
    signatures: dict[int, bytes]


# Conversion between domain structs and SSZ containers


def _credential_fields(credential: UnsignedCredential) -> CredentialFields:
    proofs = credential.proofs
    policy = credential.policy
    return CredentialFields(
        ar_data=tuple(
            ArShareEntry(ar_identity=k, enc_id_cred_pub_share=v.enc_id_cred_pub_share)
            for k, v in sorted(credential.ar_data.items())
        ),
        cred_id=credential.cred_id,
        public_keys=tuple(
            VerifyKeyEntry(
                key_index=k,
                scheme_id=v.scheme_id.encode("utf-8"),
                verify_key=v.verify_key,
            )
            for k, v in sorted(credential.credential_public_keys.keys.items())
        ),
        threshold=credential.credential_public_keys.threshold,
        ip_identity=credential.ip_identity,
        policy=PolicyFields(
            created_at=policy.created_at.encode("utf-8"),
            valid_to=policy.valid_to.encode("utf-8"),
            revealed_attributes=tuple(
                RevealedAttributeEntry(tag=k.encode("utf-8"), value=v.encode("utf-8"))
                for k, v in sorted(policy.revealed_attributes.items())
            ),
        ),
        proofs=ProofFields(
            challenge=proofs.challenge,
            commitments=proofs.commitments,
            cred_counter_less_than_max_accounts=proofs.cred_counter_less_than_max_accounts,
            proof_id_cred_pub=tuple(
                IdCredPubProofEntry(ar_identity=k, proof=v)
                for k, v in sorted(proofs.proof_id_cred_pub.items())
            ),
            proof_ip_sig=proofs.proof_ip_sig,
            proof_reg_id=proofs.proof_reg_id,
            signature=proofs.signature,
        ),
        revocation_threshold=credential.revocation_threshold,
    )


def _credential_from_fields(fields: CredentialFields) -> UnsignedCredential:
    proofs = fields.proofs
    policy = fields.policy
    return UnsignedCredential(
        ar_data={
            entry.ar_identity: ChainArData(enc_id_cred_pub_share=bytes(entry.enc_id_cred_pub_share))
            for entry in fields.ar_data
        },
        cred_id=bytes(fields.cred_id),
        credential_public_keys=CredentialPublicKeys(
            keys={
                entry.key_index: VerifyKey(
                    scheme_id=bytes(entry.scheme_id).decode("utf-8"),
                    verify_key=bytes(entry.verify_key),
                )
                for entry in fields.public_keys
            },
            threshold=fields.threshold,
        ),
        ip_identity=fields.ip_identity,
        policy=Policy(
            created_at=bytes(policy.created_at).decode("utf-8"),
            valid_to=bytes(policy.valid_to).decode("utf-8"),
            revealed_attributes={
                bytes(entry.tag).decode("utf-8"): bytes(entry.value).decode("utf-8")
                for entry in policy.revealed_attributes
            },
        ),
        proofs=Proofs(
            challenge=bytes(proofs.challenge),
            commitments=bytes(proofs.commitments),
            cred_counter_less_than_max_accounts=bytes(proofs.cred_counter_less_than_max_accounts),
            proof_id_cred_pub={entry.ar_identity: bytes(entry.proof) for entry in proofs.proof_id_cred_pub},
            proof_ip_sig=bytes(proofs.proof_ip_sig),
            proof_reg_id=bytes(proofs.proof_reg_id),
            signature=bytes(proofs.signature),
        ),
        revocation_threshold=fields.revocation_threshold,
    )


def _payload_bytes(credential: UnsignedCredential, expiry: int) -> bytes:
    payload = DeploymentPayload(expiry=expiry, credential=_credential_fields(credential))
    return ssz.encode(payload)  # type: ignore[no-any-return]


# Public API


def compute_expiry(now: float, minutes: int) -> int:
    """Expiry timestamp ``minutes`` after ``now`` (seconds since epoch)."""
    return int(now) + minutes * 60


def ensure_not_expired(expiry: int, now: float) -> None:
    """Reject an expiry that is not strictly after ``now``.

    Raises:
        ExpiredTransaction: If ``expiry <= now``

    """
    if expiry <= now:
        raise ExpiredTransaction(
            f"Transaction expiry {expiry} is not after the current time {int(now)}"
        )


def signing_digest(credential: UnsignedCredential, expiry: int) -> bytes:
    """SHA-256 of the serialized payload; the message the account keys sign.

    Raises:
        SigningFailure: If the credential or expiry cannot be serialized

    """
    if isinstance(expiry, bool) or not isinstance(expiry, int) or not 0 <= expiry <= MAX_U64:
        raise SigningFailure(f"Expiry {expiry!r} is not a u64 timestamp")
    try:
        payload = _payload_bytes(credential, expiry)
    except Exception as e:
        raise SigningFailure(f"Cannot serialize credential: {e}") from e
    return hashlib.sha256(payload).digest()


def find_key_index(credential: UnsignedCredential, public_key_hex: str) -> int:
    """Return the credential key index whose verify key is ``public_key_hex``.

    Raises:
        SigningFailure: If the key is not one of the credential's public keys

    """
    try:
        public_key = bytes.fromhex(public_key_hex)
    except ValueError as e:
        raise SigningFailure(f"Public key is not valid hex: {e}") from e

    for index, verify_key in sorted(credential.credential_public_keys.keys.items()):
        if verify_key.verify_key == public_key:
            return index
    raise SigningFailure(
        f"Derived public key {public_key_hex[:16]}... is not among the credential public keys"
    )


def assemble_and_sign(
    credential: UnsignedCredential,
    expiry: int,
    keys: AccountKeyPair,
    signer: Signer = wallet.sign,
) -> SignedTransactionEnvelope:
    """Bind a credential and expiry, and sign them with the account key.

    Args:
        credential: The decoded unsigned credential
        expiry: Expiry, seconds since epoch
        keys: The account key pair matching one of the credential public keys
        signer: Signing collaborator, Ed25519 by default

    Returns:
        The signed envelope

    Raises:
        SigningFailure: If the credential cannot be serialized, the key does not
            belong to the credential, or the signer rejects the input

    """
    key_index = find_key_index(credential, keys.public_key)
    digest = signing_digest(credential, expiry)

    try:
        signature = signer(keys.signing_key, digest)
    except Exception as e:
        raise SigningFailure(f"Signing failed: {e}") from e

    if len(signature) != SIGNATURE_LENGTH:
        raise SigningFailure(
            f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(signature)}"
        )

    logger.debug(f"Signed credential deployment with key index {key_index}, expiry {expiry}")
    return SignedTransactionEnvelope(
        credential=credential,
        expiry=expiry,
        signatures={key_index: bytes(signature)},
    )


def serialize(envelope: SignedTransactionEnvelope) -> bytes:
    """Serialize an envelope for the wire. Byte-stable for equal envelopes."""
    try:
        signed = SignedDeployment(
            payload=DeploymentPayload(
                expiry=envelope.expiry,
                credential=_credential_fields(envelope.credential),
            ),
            signatures=tuple(
                KeySignature(key_index=k, signature=v)
                for k, v in sorted(envelope.signatures.items())
            ),
        )
        return ssz.encode(signed)  # type: ignore[no-any-return]
    except Exception as e:
        raise SigningFailure(f"Cannot serialize transaction: {e}") from e


def deserialize(data: bytes) -> SignedTransactionEnvelope:
    """Parse bytes produced by :func:`serialize`."""
    try:
        signed = ssz.decode(data, SignedDeployment)
    except Exception as e:
        raise SigningFailure(f"Cannot parse transaction: {e}") from e
    return SignedTransactionEnvelope(
        credential=_credential_from_fields(signed.payload.credential),
        expiry=signed.payload.expiry,
        signatures={entry.key_index: bytes(entry.signature) for entry in signed.signatures},
    )


def transaction_hash(envelope: SignedTransactionEnvelope) -> str:
    """Lower-case hex SHA-256 of the serialized envelope."""
    return hashlib.sha256(serialize(envelope)).hexdigest()


def verify_signatures(envelope: SignedTransactionEnvelope) -> bool:
    """Check every signature against the credential's verify keys and threshold."""
    keys = envelope.credential.credential_public_keys
    digest = signing_digest(envelope.credential, envelope.expiry)

    valid = 0
    for index, signature in envelope.signatures.items():
        verify_key = keys.keys.get(index)
        if verify_key is None:
            return False
        if not wallet.verify(verify_key.verify_key.hex(), digest, signature):
            return False
        valid += 1
    return valid >= keys.threshold
