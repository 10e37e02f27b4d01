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
Key Lifecycle Manager.

Keeps the agent's pool of signing keys consistent with the access keys on its account
and rotates the signer across the pool.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import anyio

from shade_agent.crypto import public_key_from_secret
from shade_agent.exceptions import KeyDerivationError
from shade_agent.hardware.interfaces import HardwareCapability
from shade_agent.identity import DerivedKey, IdentityMaterial, derive_additional_keys
from shade_agent.ledger import operations
from shade_agent.ledger.interfaces import LedgerProvider
from shade_agent.utils.logger import logger


@dataclass
class ReconciliationPlan:
    """Secret keys to add and public keys to remove in one reconciliation pass."""

    to_add: List[str] = field(default_factory=list)
    to_remove: List[str] = field(default_factory=list)


def plan_reconciliation(derived_secrets: List[str], existing_additional: int, desired_additional: int) -> ReconciliationPlan:
    """
    Compute the reconciliation plan.

    ``derived_secrets`` are the additional keys in index order (key 1 at position 0); it
    must hold at least ``max(existing_additional, desired_additional)`` entries.
    """
    plan = ReconciliationPlan()
    if existing_additional < desired_additional:
        plan.to_add = derived_secrets[existing_additional:desired_additional]
    elif existing_additional > desired_additional:
        plan.to_remove = [public_key_from_secret(s) for s in derived_secrets[desired_additional:existing_additional]]
    return plan


class KeyLifecycleManager:
    """
    Reconciles and rotates the keys of one agent identity.

    Reconciliation runs at most once per manager; concurrent first calls wait on the
    same lock and see the finished result.
    """

    def __init__(
        self,
        identity: IdentityMaterial,
        provider: LedgerProvider,
        capability: Optional[HardwareCapability],
        num_keys: int,
        derivation_path: Optional[str] = None,
    ) -> None:
        self.identity = identity
        self.provider = provider
        self.capability = capability
        self.num_keys = num_keys
        self.derivation_path = derivation_path
        self.checked = False
        self._lock: Optional[anyio.Lock] = None

    @property
    def desired_additional(self) -> int:
        return self.num_keys - 1

    async def ensure_keys(self) -> None:
        """
        Reconcile the derived keys with the account's access keys, once.

        Raises:
            KeyDerivationError: If the primary key used hardware entropy but an
                additional key did not.
            LedgerTransactionError: If the add or remove transaction keeps failing.
        """
        if self.checked:
            return
        if self._lock is None:
            self._lock = anyio.Lock()
        async with self._lock:
            if self.checked:
                return
            await self._reconcile()
            self.checked = True

    async def _reconcile(self) -> None:
        access_keys = await self.provider.get_access_key_list(self.identity.account_id)
        existing_additional = max(len(access_keys) - 1, 0)
        desired = self.desired_additional

        derived: List[DerivedKey] = await derive_additional_keys(
            max(desired, existing_additional), self.capability, self.derivation_path
        )
        secrets = [d.keypair.secret_key for d in derived]
        plan = plan_reconciliation(secrets, existing_additional, desired)
        primary = self.identity.private_keys[0]

        if plan.to_add:
            logger.info(f"Adding {len(plan.to_add)} access key(s) ({existing_additional} present, {desired} wanted).")
            await operations.add_keys_to_account(self.provider, self.identity.account_id, primary, plan.to_add)
        if plan.to_remove:
            logger.info(f"Removing {len(plan.to_remove)} access key(s) ({existing_additional} present, {desired} wanted).")
            await operations.remove_keys_from_account(self.provider, self.identity.account_id, primary, plan.to_remove)

        kept = derived[:desired]
        primary_hardware = self.identity.derived_with_hardware
        all_hardware = all(d.used_hardware for d in kept)
        if primary_hardware and not all_hardware:
            logger.critical("Primary key was derived with hardware entropy but additional keys were not.")
            raise KeyDerivationError("First key was derived with TEE but additional keys were not")

        self.identity.private_keys = [primary] + [d.keypair.secret_key for d in kept]
        self.identity.derived_with_hardware = primary_hardware and all_hardware

    def next_signer(self) -> Tuple[str, int]:
        """
        Return the next signing key and its index.

        With several keys the cursor advances before use, so the first call after
        reconciliation signs with key 1 and the primary is used last in each cycle.
        """
        keys = self.identity.private_keys
        if not keys:
            raise KeyDerivationError("No agent keys available")
        if len(keys) == 1:
            self.identity.current_key_index = 0
            return keys[0], 0
        index = (self.identity.current_key_index + 1) % len(keys)
        self.identity.current_key_index = index
        return keys[index], index
