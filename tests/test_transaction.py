"""Tests for transaction assembly, signing and serialization."""

import copy
import hashlib
from typing import Any

import pytest

from ccdeploy import wallet
from ccdeploy.credential import UnsignedCredential, decode_credential
from ccdeploy.errors import ExpiredTransaction, SigningFailure
from ccdeploy.keys import AccountKeyPair
from ccdeploy.transaction import (
    assemble_and_sign,
    compute_expiry,
    deserialize,
    ensure_not_expired,
    find_key_index,
    serialize,
    signing_digest,
    transaction_hash,
    verify_signatures,
)


@pytest.fixture
def credential(credential_json: dict[str, Any]) -> UnsignedCredential:
    return decode_credential(credential_json)


@pytest.fixture
def keys(expected: dict[str, Any]) -> AccountKeyPair:
    return AccountKeyPair(public_key=expected["publicKey"], signing_key=expected["signingKey"])


class TestGolden:
    """Bytes computed independently of this package for the fixture payload."""

    def test_signing_digest(self, credential: UnsignedCredential, expected: dict[str, Any]) -> None:
        digest = signing_digest(credential, expected["expiry"])
        assert digest.hex() == expected["signingDigest"]

    def test_signature(
        self,
        credential: UnsignedCredential,
        keys: AccountKeyPair,
        expected: dict[str, Any],
    ) -> None:
        envelope = assemble_and_sign(credential, expected["expiry"], keys)
        assert envelope.signatures == {0: bytes.fromhex(expected["signature"])}
        assert envelope.expiry == expected["expiry"]

    def test_serialized_bytes(
        self,
        credential: UnsignedCredential,
        keys: AccountKeyPair,
        expected: dict[str, Any],
        golden_transaction: bytes,
    ) -> None:
        envelope = assemble_and_sign(credential, expected["expiry"], keys)
        serialized = serialize(envelope)
        assert serialized == golden_transaction
        assert transaction_hash(envelope) == expected["transactionHash"]
        assert hashlib.sha256(serialized).hexdigest() == expected["transactionHash"]

    def test_deserialize(
        self,
        credential: UnsignedCredential,
        expected: dict[str, Any],
        golden_transaction: bytes,
    ) -> None:
        envelope = deserialize(golden_transaction)
        assert envelope.credential == credential
        assert envelope.expiry == expected["expiry"]
        assert verify_signatures(envelope)


class TestAssembleAndSign:
    def test_serialization_is_stable(
        self, credential: UnsignedCredential, keys: AccountKeyPair
    ) -> None:
        envelope = assemble_and_sign(credential, 1_800_000_000, keys)
        assert serialize(envelope) == serialize(envelope)
        assert serialize(assemble_and_sign(credential, 1_800_000_000, keys)) == serialize(envelope)

    def test_map_order_does_not_matter(
        self, credential_json: dict[str, Any], keys: AccountKeyPair
    ) -> None:
        reordered = copy.deepcopy(credential_json)
        reordered["arData"] = dict(reversed(list(reordered["arData"].items())))
        reordered["proofs"]["proofIdCredPub"] = dict(
            reversed(list(reordered["proofs"]["proofIdCredPub"].items()))
        )
        original = assemble_and_sign(decode_credential(credential_json), 1_800_000_000, keys)
        shuffled = assemble_and_sign(decode_credential(reordered), 1_800_000_000, keys)
        assert serialize(original) == serialize(shuffled)

    def test_expiry_is_bound_into_signature(
        self, credential: UnsignedCredential, keys: AccountKeyPair
    ) -> None:
        first = assemble_and_sign(credential, 1_800_000_000, keys)
        second = assemble_and_sign(credential, 1_800_000_001, keys)
        assert first.signatures != second.signatures
        assert transaction_hash(first) != transaction_hash(second)

    def test_tampered_expiry_fails_verification(
        self, credential: UnsignedCredential, keys: AccountKeyPair
    ) -> None:
        envelope = assemble_and_sign(credential, 1_800_000_000, keys)
        tampered = type(envelope)(
            credential=envelope.credential,
            expiry=envelope.expiry + 60,
            signatures=envelope.signatures,
        )
        assert verify_signatures(envelope)
        assert not verify_signatures(tampered)

    def test_foreign_key_rejected(self, credential: UnsignedCredential) -> None:
        private_key = wallet.derive_path(b"\x01" * 32, [44, 1, 0, 0, 0, 0])
        foreign = AccountKeyPair(
            public_key=wallet.public_key_bytes(private_key).hex(),
            signing_key=private_key.hex(),
        )
        with pytest.raises(SigningFailure, match="not among the credential public keys"):
            assemble_and_sign(credential, 1_800_000_000, foreign)

    def test_signer_failure_is_classified(
        self, credential: UnsignedCredential, keys: AccountKeyPair
    ) -> None:
        def broken_signer(private_key_hex: str, message: bytes) -> bytes:
            raise RuntimeError("hardware wallet unplugged")

        with pytest.raises(SigningFailure, match="hardware wallet unplugged"):
            assemble_and_sign(credential, 1_800_000_000, keys, signer=broken_signer)

    def test_short_signature_rejected(
        self, credential: UnsignedCredential, keys: AccountKeyPair
    ) -> None:
        with pytest.raises(SigningFailure, match="64 bytes"):
            assemble_and_sign(credential, 1_800_000_000, keys, signer=lambda k, m: b"\x00" * 32)

    @pytest.mark.parametrize("expiry", [-1, 2**64, 1.5])
    def test_invalid_expiry(
        self, credential: UnsignedCredential, keys: AccountKeyPair, expiry: Any
    ) -> None:
        with pytest.raises(SigningFailure, match="u64"):
            assemble_and_sign(credential, expiry, keys)

    def test_signer_receives_digest(
        self, credential: UnsignedCredential, keys: AccountKeyPair
    ) -> None:
        messages: list[bytes] = []

        def recording_signer(private_key_hex: str, message: bytes) -> bytes:
            messages.append(message)
            return wallet.sign(private_key_hex, message)

        assemble_and_sign(credential, 1_800_000_000, keys, signer=recording_signer)
        assert messages == [signing_digest(credential, 1_800_000_000)]


def test_find_key_index(credential: UnsignedCredential, keys: AccountKeyPair) -> None:
    assert find_key_index(credential, keys.public_key) == 0
    with pytest.raises(SigningFailure):
        find_key_index(credential, "not hex")


def test_deserialize_garbage() -> None:
    with pytest.raises(SigningFailure):
        deserialize(b"\x01\x02\x03")


class TestExpiry:
    def test_compute_expiry(self) -> None:
        assert compute_expiry(1_700_000_000.7, 16) == 1_700_000_000 + 16 * 60

    def test_future_expiry_accepted(self) -> None:
        ensure_not_expired(1_700_000_001, 1_700_000_000.0)

    @pytest.mark.parametrize("now", [1_700_000_000.0, 1_700_000_000.5, 1_800_000_000.0])
    def test_expiry_not_after_now(self, now: float) -> None:
        with pytest.raises(ExpiredTransaction):
            ensure_not_expired(1_700_000_000, now)
