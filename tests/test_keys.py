# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_enclave

from typing import Any, List
from unittest.mock import AsyncMock, MagicMock

import anyio
import pytest

from shade_agent.exceptions import KeyDerivationError, LedgerTransactionError
from shade_agent.identity import IdentityMaterial, derive_key, generate_identity
from shade_agent.keys import KeyLifecycleManager, plan_reconciliation
from shade_agent.ledger.interfaces import AddKeyAction, DeleteKeyAction

FAILURE_OUTCOME = {"status": {"Failure": {"error_type": "ActionError", "error_message": "nonce too low"}}}


def access_keys(count: int) -> List[dict]:
    return [{"public_key": f"ed25519:key{i}", "access_key": {"nonce": 1}} for i in range(count)]


async def public_key_for(path: str) -> str:
    return (await derive_key(None, path)).keypair.public_key


async def secret_key_for(path: str) -> str:
    return (await derive_key(None, path)).keypair.secret_key


def test_plan_add() -> None:
    plan = plan_reconciliation(["s1", "s2", "s3"], existing_additional=1, desired_additional=3)
    assert plan.to_add == ["s2", "s3"]
    assert plan.to_remove == []


def test_plan_equal() -> None:
    plan = plan_reconciliation(["s1", "s2"], existing_additional=2, desired_additional=2)
    assert plan.to_add == [] and plan.to_remove == []


@pytest.mark.asyncio
class TestEnsureKeys:
    async def make_manager(self, provider: MagicMock, num_keys: int, path: str = "seed-A") -> KeyLifecycleManager:
        identity = await generate_identity(None, path)
        return KeyLifecycleManager(identity, provider, None, num_keys, path)

    async def test_adds_missing_keys_in_one_transaction(self, provider_factory: Any) -> None:
        provider = provider_factory(access_keys=access_keys(1))
        manager = await self.make_manager(provider, num_keys=3)

        await manager.ensure_keys()

        provider.sign_and_send_transaction.assert_awaited_once()
        signer_id, secret_key, receiver_id, actions = provider.sign_and_send_transaction.await_args.args
        assert signer_id == receiver_id == manager.identity.account_id
        assert secret_key == manager.identity.private_keys[0]
        assert all(isinstance(a, AddKeyAction) for a in actions)
        assert [a.public_key for a in actions] == [
            await public_key_for("seed-A-1"),
            await public_key_for("seed-A-2"),
        ]
        assert manager.identity.private_keys[1:] == [
            await secret_key_for("seed-A-1"),
            await secret_key_for("seed-A-2"),
        ]

    async def test_adds_only_keys_beyond_existing(self, provider_factory: Any) -> None:
        provider = provider_factory(access_keys=access_keys(2))
        manager = await self.make_manager(provider, num_keys=3)

        await manager.ensure_keys()

        actions = provider.sign_and_send_transaction.await_args.args[3]
        assert [a.public_key for a in actions] == [await public_key_for("seed-A-2")]
        assert len(manager.identity.private_keys) == 3

    async def test_removes_surplus_keys(self, provider_factory: Any) -> None:
        provider = provider_factory(access_keys=access_keys(3))
        manager = await self.make_manager(provider, num_keys=1)

        await manager.ensure_keys()

        actions = provider.sign_and_send_transaction.await_args.args[3]
        assert all(isinstance(a, DeleteKeyAction) for a in actions)
        assert [a.public_key for a in actions] == [
            await public_key_for("seed-A-1"),
            await public_key_for("seed-A-2"),
        ]
        assert len(manager.identity.private_keys) == 1

    async def test_removes_from_desired_index(self, provider_factory: Any) -> None:
        provider = provider_factory(access_keys=access_keys(4))
        manager = await self.make_manager(provider, num_keys=2)

        await manager.ensure_keys()

        actions = provider.sign_and_send_transaction.await_args.args[3]
        assert [a.public_key for a in actions] == [
            await public_key_for("seed-A-2"),
            await public_key_for("seed-A-3"),
        ]
        assert manager.identity.private_keys[1:] == [await secret_key_for("seed-A-1")]

    async def test_no_transaction_when_in_sync(self, provider_factory: Any) -> None:
        provider = provider_factory(access_keys=access_keys(2))
        manager = await self.make_manager(provider, num_keys=2)

        await manager.ensure_keys()

        provider.sign_and_send_transaction.assert_not_awaited()
        assert len(manager.identity.private_keys) == 2

    async def test_empty_account_counts_as_no_additional_keys(self, provider_factory: Any) -> None:
        provider = provider_factory(access_keys=[])
        manager = await self.make_manager(provider, num_keys=2)

        await manager.ensure_keys()

        actions = provider.sign_and_send_transaction.await_args.args[3]
        assert len(actions) == 1

    async def test_runs_once(self, provider_factory: Any) -> None:
        provider = provider_factory(access_keys=access_keys(1))
        manager = await self.make_manager(provider, num_keys=2)

        await manager.ensure_keys()
        await manager.ensure_keys()

        assert manager.checked is True
        provider.get_access_key_list.assert_awaited_once()
        provider.sign_and_send_transaction.assert_awaited_once()

    async def test_concurrent_first_calls_reconcile_once(self, provider_factory: Any) -> None:
        provider = provider_factory(access_keys=access_keys(1))
        manager = await self.make_manager(provider, num_keys=3)

        async with anyio.create_task_group() as tg:
            for _ in range(5):
                tg.start_soon(manager.ensure_keys)

        provider.get_access_key_list.assert_awaited_once()
        provider.sign_and_send_transaction.assert_awaited_once()
        assert len(manager.identity.private_keys) == 3

    async def test_failed_reconciliation_is_retried_on_next_call(self, provider_factory: Any) -> None:
        provider = provider_factory(access_keys=access_keys(1))
        provider.get_access_key_list = AsyncMock(side_effect=[RuntimeError("rpc down"), access_keys(3)])
        manager = await self.make_manager(provider, num_keys=3)

        with pytest.raises(RuntimeError):
            await manager.ensure_keys()
        assert manager.checked is False

        await manager.ensure_keys()
        assert manager.checked is True

    async def test_add_retries_then_succeeds(self, provider_factory: Any) -> None:
        provider = provider_factory(access_keys=access_keys(1))
        provider.sign_and_send_transaction = AsyncMock(
            side_effect=[FAILURE_OUTCOME, RuntimeError("timeout"), {"status": {"SuccessValue": ""}}]
        )
        manager = await self.make_manager(provider, num_keys=2)

        await manager.ensure_keys()

        assert provider.sign_and_send_transaction.await_count == 3

    async def test_add_fails_after_three_attempts(self, provider_factory: Any) -> None:
        provider = provider_factory(access_keys=access_keys(1))
        provider.sign_and_send_transaction = AsyncMock(return_value=FAILURE_OUTCOME)
        manager = await self.make_manager(provider, num_keys=2)

        with pytest.raises(LedgerTransactionError, match="after 3 attempts"):
            await manager.ensure_keys()
        assert provider.sign_and_send_transaction.await_count == 3
        assert manager.checked is False

    async def test_partial_hardware_derivation_rejected(self, provider_factory: Any) -> None:
        provider = provider_factory(access_keys=access_keys(1))
        identity = await generate_identity(None, "seed-A")
        identity.derived_with_hardware = True
        manager = KeyLifecycleManager(identity, provider, None, 2, "seed-A")

        with pytest.raises(KeyDerivationError, match="derived with TEE but additional keys were not"):
            await manager.ensure_keys()

    async def test_hardware_flag_kept_when_all_keys_use_hardware(
        self, provider_factory: Any, fake_capability: Any
    ) -> None:
        provider = provider_factory(access_keys=access_keys(1))
        identity = await generate_identity(fake_capability, None)
        manager = KeyLifecycleManager(identity, provider, fake_capability, 3, None)

        await manager.ensure_keys()

        assert identity.derived_with_hardware is True
        assert len(set(identity.private_keys)) == 3

    async def test_local_keys_clear_hardware_flag(self, provider_factory: Any) -> None:
        provider = provider_factory(access_keys=access_keys(1))
        identity = await generate_identity(None, "seed-A")
        manager = KeyLifecycleManager(identity, provider, None, 2, "seed-A")

        await manager.ensure_keys()

        assert identity.derived_with_hardware is False


class TestNextSigner:
    def test_single_key_always_primary(self) -> None:
        identity = IdentityMaterial(account_id="a", private_keys=["k0"])
        manager = KeyLifecycleManager(identity, MagicMock(), None, 1)
        assert [manager.next_signer() for _ in range(3)] == [("k0", 0)] * 3

    def test_round_robin_advances_before_use(self) -> None:
        identity = IdentityMaterial(account_id="a", private_keys=["k0", "k1", "k2"])
        manager = KeyLifecycleManager(identity, MagicMock(), None, 3)
        indices = [manager.next_signer()[1] for _ in range(6)]
        assert indices == [1, 2, 0, 1, 2, 0]
        assert identity.current_key_index == 0

    def test_no_keys(self) -> None:
        identity = IdentityMaterial(account_id="a", private_keys=[])
        manager = KeyLifecycleManager(identity, MagicMock(), None, 1)
        with pytest.raises(KeyDerivationError, match="No agent keys available"):
            manager.next_signer()
