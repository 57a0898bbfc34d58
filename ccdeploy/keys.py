"""Seed phrase to account signing keys."""

from __future__ import annotations

import logging

import msgspec
from mnemonic import Mnemonic

from . import wallet
from .config import Network
from .errors import InvalidMnemonic, SchemaViolation
from .metrics import KEY_DERIVATIONS_TOTAL

logger = logging.getLogger(__name__)

_MNEMONIC = Mnemonic("english")

# Every path segment is hardened
MAX_INDEX = 2**31 - 1


class SeedMaterial:
    """BIP-39 seed derived from a recovery phrase.

    Owned by one signing operation; the seed is kept out of ``repr``.
    """

    __slots__ = ("_seed_hex",)

    def __init__(self, seed_hex: str) -> None:
        self._seed_hex = seed_hex

    @property
    def seed_hex(self) -> str:
        return self._seed_hex

    def __repr__(self) -> str:
        return "SeedMaterial(<redacted>)"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SeedMaterial):
            return NotImplemented
        return self._seed_hex == other._seed_hex

    __hash__ = None  # type: ignore[assignment]


class AccountKeyPair(msgspec.Struct, frozen=True, rename="camel"):
    """Hex-encoded account key pair."""

    public_key: str
    signing_key: str

    def __repr__(self) -> str:
        return f"AccountKeyPair(public_key={self.public_key!r})"


def normalize_phrase(phrase: str) -> str:
    """Lower-case the phrase and collapse whitespace between words."""
    return " ".join(phrase.lower().split())


def derive_seed(phrase: str) -> SeedMaterial:
    """Validate a BIP-39 phrase and derive its seed (empty passphrase).

    Raises:
        InvalidMnemonic: If the phrase fails word list or checksum validation

    """
    if not isinstance(phrase, str):
        raise InvalidMnemonic("Seed phrase must be a string")

    normalized = normalize_phrase(phrase)
    if not normalized:
        raise InvalidMnemonic("Seed phrase is empty")

    try:
        valid = _MNEMONIC.check(normalized)
    except (ValueError, LookupError) as e:
        raise InvalidMnemonic(f"Seed phrase rejected: {e}") from e
    if not valid:
        word_count = len(normalized.split())
        raise InvalidMnemonic(
            f"Seed phrase with {word_count} words failed word list or checksum validation"
        )

    return SeedMaterial(Mnemonic.to_seed(normalized, passphrase="").hex())


def _check_index(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_INDEX:
        raise SchemaViolation(f"{name} must be an integer between 0 and {MAX_INDEX}, got {value!r}")


def derive_signing_key(
    seed: SeedMaterial,
    network: Network,
    provider_id: int,
    identity_index: int,
    credential_counter: int,
) -> AccountKeyPair:
    """Derive the signing key pair for one account credential.

    Deterministic and free of I/O: the same seed, network and indexes always
    yield the same key pair.
    """
    _check_index("provider_id", provider_id)
    _check_index("identity_index", identity_index)
    _check_index("credential_counter", credential_counter)

    wallet_seed = wallet.derive(seed.seed_hex, network)
    private_hex, public_hex = wallet_seed.signing_key(
        provider_id, identity_index, credential_counter
    )
    KEY_DERIVATIONS_TOTAL.labels(network=network.value).inc()
    logger.debug(
        f"Derived {network.value} signing key {public_hex[:16]}... "
        f"(provider={provider_id}, identity={identity_index}, counter={credential_counter})"
    )
    return AccountKeyPair(public_key=public_hex, signing_key=private_hex)


def generate_account_key_pair(
    phrase: str,
    network: Network,
    account_index: int = 0,
) -> AccountKeyPair:
    """Derive the key pair of account ``account_index`` under identity provider 0."""
    seed = derive_seed(phrase)
    return derive_signing_key(
        seed,
        network,
        provider_id=0,
        identity_index=account_index,
        credential_counter=0,
    )
