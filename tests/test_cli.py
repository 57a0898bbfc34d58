"""Tests for the command line interface."""

import json
from pathlib import Path
from typing import Any

import pytest

from ccdeploy.cli import main


@pytest.fixture
def payload_file(tmp_path: Path, payload_json: str) -> Path:
    path = tmp_path / "payload.json"
    path.write_text(payload_json)
    return path


@pytest.fixture
def seed_phrase_file(tmp_path: Path, seed_phrase: str) -> Path:
    path = tmp_path / "seed.txt"
    path.write_text(seed_phrase + "\n")
    return path


def test_keys(
    seed_phrase_file: Path, account_keys: dict[str, Any], capsys: pytest.CaptureFixture[str]
) -> None:
    with pytest.raises(SystemExit) as exc_info:
        main(["keys", "--seed-phrase-file", str(seed_phrase_file)])
    assert exc_info.value.code == 0
    assert json.loads(capsys.readouterr().out) == account_keys["testnet"]


def test_dry_run(
    payload_file: Path,
    seed_phrase_file: Path,
    expected: dict[str, Any],
    golden_transaction: bytes,
    capsys: pytest.CaptureFixture[str],
) -> None:
    with pytest.raises(SystemExit) as exc_info:
        main(
            [
                "deploy",
                "--payload",
                str(payload_file),
                "--seed-phrase-file",
                str(seed_phrase_file),
                "--dry-run",
            ]
        )
    assert exc_info.value.code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["transactionHash"] == expected["transactionHash"]
    assert output["transaction"] == golden_transaction.hex()


def test_invalid_mnemonic(
    payload_file: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    bad_seed = tmp_path / "bad.txt"
    bad_seed.write_text("abandon abandon abandon")
    with pytest.raises(SystemExit) as exc_info:
        main(
            [
                "deploy",
                "--payload",
                str(payload_file),
                "--seed-phrase-file",
                str(bad_seed),
                "--dry-run",
            ]
        )
    assert exc_info.value.code == 1
    assert "invalid_mnemonic" in capsys.readouterr().err


def test_missing_payload_file(
    tmp_path: Path, seed_phrase_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    with pytest.raises(SystemExit) as exc_info:
        main(
            [
                "deploy",
                "--payload",
                str(tmp_path / "missing.json"),
                "--seed-phrase-file",
                str(seed_phrase_file),
            ]
        )
    assert exc_info.value.code == 1
    assert "missing.json" in capsys.readouterr().err


def test_invalid_configuration(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        main(["--expiry-minutes", "0", "keys"])
    assert exc_info.value.code == 1
    assert "transaction_expiry_minutes" in capsys.readouterr().err
