"""Wallet key material: SLIP-0010 Ed25519 derivation (bip_utils) and signing.

Account signing keys live on the hardened path
``m/44'/<coin>'/<identity provider>'/<identity>'/0'/<credential counter>'``
where the coin type is 919 on mainnet and 1 on testnet.
"""

from __future__ import annotations

from bip_utils import Bip32KeyError, Bip32PathError, Bip32Slip10Ed25519
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from .config import Network

PURPOSE = 44
HARDENED_OFFSET = 0x80000000
ACCOUNT_SIGNING_KEY_BRANCH = 0


class WalletError(Exception):
    """Invalid input to the wallet collaborator."""


def _harden(index: int) -> int:
    if index < 0 or index >= HARDENED_OFFSET:
        raise WalletError(f"Derivation index {index} out of range")
    return index | HARDENED_OFFSET


def derive_path(seed: bytes, path: list[int]) -> bytes:
    """Derive the Ed25519 private key at a fully hardened ``path``."""
    hardened = [_harden(index) for index in path]
    try:
        context = Bip32Slip10Ed25519.FromSeed(seed)
        for index in hardened:
            context = context.ChildKey(index)
    except (Bip32KeyError, Bip32PathError, ValueError) as e:
        raise WalletError(f"Key derivation failed: {e}") from e
    return bytes(context.PrivateKey().Raw().ToBytes())


def public_key_bytes(private_key: bytes) -> bytes:
    """Return the raw 32-byte Ed25519 public key of ``private_key``."""
    public_key = Ed25519PrivateKey.from_private_bytes(private_key).public_key()
    return public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def sign(private_key_hex: str, message: bytes) -> bytes:
    """Sign ``message`` with a hex-encoded Ed25519 private key."""
    try:
        private_key = Ed25519PrivateKey.from_private_bytes(bytes.fromhex(private_key_hex))
    except ValueError as e:
        raise WalletError(f"Invalid signing key: {e}") from e
    return private_key.sign(message)


def verify(public_key_hex: str, message: bytes, signature: bytes) -> bool:
    """Check an Ed25519 signature."""
    try:
        public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
        public_key.verify(signature, message)
    except (InvalidSignature, ValueError):
        return False
    return True


class WalletSeed:
    """A seed bound to a network. Never logged or printed."""

    __slots__ = ("_seed", "network")

    def __init__(self, seed: bytes, network: Network) -> None:
        if len(seed) < 16 or len(seed) > 64:
            raise WalletError(f"Seed must be 16 to 64 bytes, got {len(seed)}")
        self._seed = seed
        self.network = network

    def __repr__(self) -> str:
        return f"WalletSeed(network={self.network.value})"

    def signing_key_path(
        self, provider_id: int, identity_index: int, credential_counter: int
    ) -> list[int]:
        return [
            PURPOSE,
            self.network.coin_type,
            provider_id,
            identity_index,
            ACCOUNT_SIGNING_KEY_BRANCH,
            credential_counter,
        ]

    def signing_key(
        self, provider_id: int, identity_index: int, credential_counter: int
    ) -> tuple[str, str]:
        """Return ``(private_key_hex, public_key_hex)`` of an account signing key."""
        path = self.signing_key_path(provider_id, identity_index, credential_counter)
        private_key = derive_path(self._seed, path)
        return private_key.hex(), public_key_bytes(private_key).hex()


def derive(seed_hex: str, network: Network) -> WalletSeed:
    """Bind a hex-encoded seed to ``network``."""
    try:
        seed = bytes.fromhex(seed_hex)
    except ValueError as e:
        raise WalletError(f"Seed is not valid hex: {e}") from e
    return WalletSeed(seed, network)
