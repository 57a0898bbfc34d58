"""Tests for unsigned credential decoding."""

import copy
import json
from typing import Any

import pytest

from ccdeploy.credential import (
    UnsignedCredential,
    decode_credential,
    encode_credential,
    parse_authority_key,
)
from ccdeploy.errors import InvalidAuthorityKey, MalformedHex, SchemaViolation


def test_decode_sample_credential(credential_json: dict[str, Any]) -> None:
    credential = decode_credential(credential_json)

    assert isinstance(credential, UnsignedCredential)
    assert sorted(credential.ar_data) == [1, 2, 3]
    assert credential.ar_data[1].enc_id_cred_pub_share == bytes.fromhex(
        credential_json["arData"]["1"]["encIdCredPubShare"]
    )
    assert credential.cred_id == bytes.fromhex(credential_json["credId"])
    assert credential.ip_identity == 0
    assert credential.revocation_threshold == 2

    keys = credential.credential_public_keys
    assert keys.threshold == 1
    assert keys.keys[0].scheme_id == "Ed25519"
    assert len(keys.keys[0].verify_key) == 32

    assert credential.policy.created_at == "202509"
    assert credential.policy.valid_to == "202609"
    assert credential.policy.revealed_attributes == {}

    proofs = credential.proofs
    assert len(proofs.challenge) == 32
    assert sorted(proofs.proof_id_cred_pub) == [1, 2, 3]
    assert proofs.signature == bytes.fromhex(credential_json["proofs"]["sig"])


def test_decode_from_text_and_object_agree(credential_json: dict[str, Any]) -> None:
    text = json.dumps(credential_json)
    assert decode_credential(text) == decode_credential(credential_json)
    assert decode_credential(text.encode()) == decode_credential(credential_json)


def test_encode_restores_json_view(credential_json: dict[str, Any]) -> None:
    assert encode_credential(decode_credential(credential_json)) == credential_json


class TestAuthorityKeys:
    @pytest.mark.parametrize(("key", "value"), [("0", 0), ("7", 7), ("4294967295", 4294967295)])
    def test_valid(self, key: str, value: int) -> None:
        assert parse_authority_key(key, "arData") == value

    @pytest.mark.parametrize("key", ["", "-1", "a", "1.5", " 1", "0x1", "4294967296", "²"])
    def test_invalid(self, key: str) -> None:
        with pytest.raises(InvalidAuthorityKey):
            parse_authority_key(key, "arData")

    def test_ar_data_key_rejected_before_use(self, credential_json: dict[str, Any]) -> None:
        data = copy.deepcopy(credential_json)
        data["arData"]["x"] = data["arData"].pop("1")
        with pytest.raises(InvalidAuthorityKey, match="arData"):
            decode_credential(data)

    def test_proof_key_rejected(self, credential_json: dict[str, Any]) -> None:
        data = copy.deepcopy(credential_json)
        data["proofs"]["proofIdCredPub"]["-2"] = data["proofs"]["proofIdCredPub"].pop("2")
        with pytest.raises(InvalidAuthorityKey, match="proofIdCredPub"):
            decode_credential(data)

    def test_proof_keys_independent_of_ar_data(self, credential_json: dict[str, Any]) -> None:
        data = copy.deepcopy(credential_json)
        del data["proofs"]["proofIdCredPub"]["3"]
        credential = decode_credential(data)
        assert sorted(credential.ar_data) == [1, 2, 3]
        assert sorted(credential.proofs.proof_id_cred_pub) == [1, 2]


class TestMalformedFields:
    @pytest.mark.parametrize(
        ("path", "field"),
        [
            (("credId",), "credId"),
            (("arData", "2", "encIdCredPubShare"), "arData.2.encIdCredPubShare"),
            (("proofs", "challenge"), "proofs.challenge"),
            (("proofs", "sig"), "proofs.sig"),
            (("proofs", "proofIdCredPub", "1"), "proofs.proofIdCredPub.1"),
            (
                ("credentialPublicKeys", "keys", "0", "verifyKey"),
                "credentialPublicKeys.keys.0.verifyKey",
            ),
        ],
    )
    def test_bad_hex_names_the_field(
        self, credential_json: dict[str, Any], path: tuple[str, ...], field: str
    ) -> None:
        data = copy.deepcopy(credential_json)
        target = data
        for key in path[:-1]:
            target = target[key]
        target[path[-1]] = "zz" + target[path[-1]][2:]

        with pytest.raises(MalformedHex, match=field):
            decode_credential(data)

    def test_odd_length_hex(self, credential_json: dict[str, Any]) -> None:
        data = copy.deepcopy(credential_json)
        data["proofs"]["proofRegId"] = data["proofs"]["proofRegId"][:-1]
        with pytest.raises(MalformedHex, match="odd length"):
            decode_credential(data)


class TestSchema:
    @pytest.mark.parametrize(
        "field", ["arData", "credId", "credentialPublicKeys", "policy", "proofs", "ipIdentity"]
    )
    def test_missing_field(self, credential_json: dict[str, Any], field: str) -> None:
        data = copy.deepcopy(credential_json)
        del data[field]
        with pytest.raises(SchemaViolation):
            decode_credential(data)

    @pytest.mark.parametrize(
        "field",
        [
            "challenge",
            "commitments",
            "credCounterLessThanMaxAccounts",
            "proofIdCredPub",
            "proofIpSig",
            "proofRegId",
            "sig",
        ],
    )
    def test_partial_proofs_rejected(self, credential_json: dict[str, Any], field: str) -> None:
        data = copy.deepcopy(credential_json)
        del data["proofs"][field]
        with pytest.raises(SchemaViolation):
            decode_credential(data)

    def test_wrong_type(self, credential_json: dict[str, Any]) -> None:
        data = copy.deepcopy(credential_json)
        data["ipIdentity"] = "zero"
        with pytest.raises(SchemaViolation):
            decode_credential(data)

    def test_invalid_json_text(self) -> None:
        with pytest.raises(SchemaViolation):
            decode_credential('{"arData": ')

    def test_empty_public_keys(self, credential_json: dict[str, Any]) -> None:
        data = copy.deepcopy(credential_json)
        data["credentialPublicKeys"]["keys"] = {}
        with pytest.raises(SchemaViolation, match="must not be empty"):
            decode_credential(data)

    @pytest.mark.parametrize("threshold", [0, 2])
    def test_key_threshold_out_of_range(
        self, credential_json: dict[str, Any], threshold: int
    ) -> None:
        data = copy.deepcopy(credential_json)
        data["credentialPublicKeys"]["threshold"] = threshold
        with pytest.raises(SchemaViolation, match="threshold"):
            decode_credential(data)

    def test_key_index_above_255(self, credential_json: dict[str, Any]) -> None:
        data = copy.deepcopy(credential_json)
        keys = data["credentialPublicKeys"]["keys"]
        keys["256"] = keys.pop("0")
        with pytest.raises(SchemaViolation, match="exceeds 255"):
            decode_credential(data)

    @pytest.mark.parametrize("threshold", [0, 4])
    def test_revocation_threshold_out_of_range(
        self, credential_json: dict[str, Any], threshold: int
    ) -> None:
        data = copy.deepcopy(credential_json)
        data["revocationThreshold"] = threshold
        with pytest.raises(SchemaViolation, match="revocationThreshold"):
            decode_credential(data)
