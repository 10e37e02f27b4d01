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
Identity Derivation.

One derivation function serves both the primary key and the additional keys, branching
on the presence of the hardware capability and of a deterministic derivation path.
"""

import hashlib
import secrets
from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional

import anyio

from shade_agent.crypto import KeyPair, keypair_from_entropy
from shade_agent.exceptions import AgentCreationError
from shade_agent.hardware.interfaces import HardwareCapability
from shade_agent.utils.logger import logger


class DerivedSeed(NamedTuple):
    seed: bytes
    used_hardware: bool


class DerivedKey(NamedTuple):
    keypair: KeyPair
    used_hardware: bool


@dataclass
class IdentityMaterial:
    """
    Signing identity of one agent instance.

    Attributes:
        account_id (str): Lower-case hex of the primary public key.
        private_keys (List[str]): Secret keys; index 0 is the primary key.
        current_key_index (int): Round-robin cursor into private_keys.
        derived_with_hardware (bool): True only if every key used hardware entropy.
    """

    account_id: str
    private_keys: List[str] = field(default_factory=list)
    current_key_index: int = 0
    derived_with_hardware: bool = False


def _seed_from_path(derivation_path: str) -> bytes:
    return hashlib.sha256(derivation_path.encode("utf-8")).digest()


def _seed_from_random() -> bytes:
    return hashlib.sha256(secrets.token_hex(32).encode("ascii")).digest()


async def _seed_from_hardware(capability: HardwareCapability) -> bytes:
    local_random = secrets.token_bytes(32)
    material = local_random.hex()
    hardware_key = await capability.derive_key(material)
    if len(hardware_key) < 32:
        raise ValueError("Hardware returned too little key material")
    return hashlib.sha256(local_random + hardware_key[:32]).digest()


async def derive_seed(capability: Optional[HardwareCapability], derivation_path: Optional[str]) -> DerivedSeed:
    """
    Produce a 32-byte seed.

    - In a TEE: local randomness mixed with hardware entropy. The derivation path is
      ignored so keys can never be reproduced outside the enclave.
    - Outside a TEE with a path: sha256(path). Equal paths give equal seeds everywhere,
      so the path must be a unique secret string.
    - Outside a TEE without a path: sha256 of local randomness.
    """
    if capability is not None:
        return DerivedSeed(await _seed_from_hardware(capability), True)
    if derivation_path:
        return DerivedSeed(_seed_from_path(derivation_path), False)
    return DerivedSeed(_seed_from_random(), False)


async def derive_key(capability: Optional[HardwareCapability], derivation_path: Optional[str]) -> DerivedKey:
    derived = await derive_seed(capability, derivation_path)
    # BIP-39 seed stretching is PBKDF2 (CPU bound), keep it off the event loop
    keypair = await anyio.to_thread.run_sync(keypair_from_entropy, derived.seed)
    return DerivedKey(keypair, derived.used_hardware)


def account_id_from_keypair(keypair: KeyPair) -> str:
    return keypair.public_key_bytes.hex().lower()


async def generate_identity(
    capability: Optional[HardwareCapability], derivation_path: Optional[str]
) -> IdentityMaterial:
    """
    Derive the primary key and the account id of a new agent.

    Raises:
        AgentCreationError: On any failure, with the cause dropped since it
            may carry the seed.
    """
    try:
        derived = await derive_key(capability, derivation_path)
    except Exception:
        logger.error("Agent identity derivation failed.")
        raise AgentCreationError("Failed to create agent") from None

    identity = IdentityMaterial(
        account_id=account_id_from_keypair(derived.keypair),
        private_keys=[derived.keypair.secret_key],
        derived_with_hardware=derived.used_hardware,
    )
    logger.info(f"Agent identity derived (hardware entropy: {derived.used_hardware}).")
    return identity


def additional_key_path(derivation_path: Optional[str], index: int) -> Optional[str]:
    """Derivation path of the 1-based additional key ``index``."""
    return f"{derivation_path}-{index}" if derivation_path else None


async def derive_additional_keys(
    count: int, capability: Optional[HardwareCapability], derivation_path: Optional[str]
) -> List[DerivedKey]:
    """
    Derive ``count`` additional keys concurrently, preserving index order.
    """
    results: List[Optional[DerivedKey]] = [None] * count

    async def _derive(position: int) -> None:
        results[position] = await derive_key(capability, additional_key_path(derivation_path, position + 1))

    async with anyio.create_task_group() as tg:
        for position in range(count):
            tg.start_soon(_derive, position)

    return [r for r in results if r is not None]
