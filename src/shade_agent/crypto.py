# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_enclave

"""
NEAR key material.

Expands 32 bytes of entropy into an ed25519 keypair the same way NEAR seed phrases do:
BIP-39 mnemonic -> BIP-39 seed -> SLIP-0010 derivation along m/44'/397'/0' -> ed25519.
Keys are rendered in NEAR's ``ed25519:<base58>`` string format.
"""

from typing import NamedTuple

import base58
from bip_utils import Bip32Slip10Ed25519, Bip39MnemonicGenerator, Bip39SeedGenerator
from nacl.signing import SigningKey

ED25519_PREFIX = "ed25519:"
KEY_DERIVATION_PATH = "m/44'/397'/0'"


class KeyPair(NamedTuple):
    secret_key: str
    public_key: str
    public_key_bytes: bytes


def seed_phrase_from_entropy(entropy: bytes) -> str:
    return str(Bip39MnemonicGenerator().FromEntropy(entropy))


def keypair_from_seed_phrase(seed_phrase: str) -> KeyPair:
    normalized = " ".join(seed_phrase.strip().lower().split())
    seed = Bip39SeedGenerator(normalized).Generate("")
    node = Bip32Slip10Ed25519.FromSeed(seed).DerivePath(KEY_DERIVATION_PATH)
    signing_key = SigningKey(node.PrivateKey().Raw().ToBytes())
    public_bytes = signing_key.verify_key.encode()
    secret_bytes = signing_key.encode() + public_bytes
    return KeyPair(
        secret_key=ED25519_PREFIX + base58.b58encode(secret_bytes).decode("ascii"),
        public_key=ED25519_PREFIX + base58.b58encode(public_bytes).decode("ascii"),
        public_key_bytes=public_bytes,
    )


def keypair_from_entropy(entropy: bytes) -> KeyPair:
    """Seed-phrase expansion of 32 bytes of entropy into a NEAR ed25519 keypair."""
    return keypair_from_seed_phrase(seed_phrase_from_entropy(entropy))


def _decode_secret(secret_key: str) -> bytes:
    if not secret_key.startswith(ED25519_PREFIX):
        raise ValueError("Only ed25519 keys are supported")
    raw = base58.b58decode(secret_key[len(ED25519_PREFIX) :])
    if len(raw) not in (32, 64):
        raise ValueError("Invalid ed25519 key length")
    return raw


def signing_key_from_secret(secret_key: str) -> SigningKey:
    return SigningKey(_decode_secret(secret_key)[:32])


def public_key_bytes_from_secret(secret_key: str) -> bytes:
    return bytes(signing_key_from_secret(secret_key).verify_key.encode())


def public_key_from_secret(secret_key: str) -> str:
    return ED25519_PREFIX + base58.b58encode(public_key_bytes_from_secret(secret_key)).decode("ascii")


def public_key_bytes(public_key: str) -> bytes:
    if not public_key.startswith(ED25519_PREFIX):
        raise ValueError("Only ed25519 keys are supported")
    raw = base58.b58decode(public_key[len(ED25519_PREFIX) :])
    if len(raw) != 32:
        raise ValueError("Invalid ed25519 public key length")
    return raw


def sign(secret_key: str, message: bytes) -> bytes:
    return bytes(signing_key_from_secret(secret_key).sign(message).signature)
