# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_enclave

import base64
import hashlib
import json
from typing import Any
from unittest.mock import AsyncMock

import pytest

from shade_agent.crypto import keypair_from_entropy
from shade_agent.exceptions import LedgerTransactionError
from shade_agent.ledger.interfaces import AddKeyAction, DeleteKeyAction, TransferAction
from shade_agent.ledger.operations import (
    add_keys_to_account,
    failure_message,
    fund_account,
    near_to_yocto,
    remove_keys_from_account,
    send_with_retries,
    success_value,
    yocto_to_near,
)

SPONSOR = keypair_from_entropy(hashlib.sha256(b"sponsor").digest())
AGENT = keypair_from_entropy(hashlib.sha256(b"agent").digest())
EXTRA = keypair_from_entropy(hashlib.sha256(b"extra").digest())

FAILURE = {"status": {"Failure": {"error_type": "ActionError", "error_message": "LackBalanceForState"}}}


def test_near_conversion() -> None:
    assert near_to_yocto(1) == 10**24
    assert near_to_yocto(0.3) == 3 * 10**23
    assert near_to_yocto("0.2") == 2 * 10**23
    assert yocto_to_near(25 * 10**23) == 2.5


@pytest.mark.parametrize("amount", [0, -1, "-0.5"])
def test_near_conversion_rejects_non_positive(amount: Any) -> None:
    with pytest.raises(ValueError):
        near_to_yocto(amount)


def test_failure_message() -> None:
    assert failure_message(FAILURE) == "LackBalanceForState"
    assert failure_message({"status": {"Failure": {"error_type": "ActionError"}}}) == "ActionError"
    assert failure_message({"status": {"SuccessValue": ""}}) is None
    assert failure_message({"status": "Started"}) is None


def test_success_value() -> None:
    encoded = base64.b64encode(json.dumps(True).encode()).decode()
    assert success_value({"status": {"SuccessValue": encoded}}) is True
    assert success_value({"status": {"SuccessValue": base64.b64encode(b"plain").decode()}}) == "plain"
    assert success_value({"status": {"SuccessValue": ""}}) is None
    assert success_value(FAILURE) is None


@pytest.mark.asyncio
class TestSendWithRetries:
    async def test_first_attempt_succeeds(self, mock_provider: Any) -> None:
        actions = [TransferAction(deposit=1)]
        await send_with_retries(mock_provider, "s", SPONSOR.secret_key, "r", actions, "Fund agent")
        mock_provider.sign_and_send_transaction.assert_awaited_once_with("s", SPONSOR.secret_key, "r", actions)

    async def test_failure_outcome_retried(self, mock_provider: Any) -> None:
        mock_provider.sign_and_send_transaction = AsyncMock(side_effect=[FAILURE, FAILURE, {"status": {"SuccessValue": ""}}])
        await send_with_retries(mock_provider, "s", SPONSOR.secret_key, "r", [], "Add keys")
        assert mock_provider.sign_and_send_transaction.await_count == 3

    async def test_final_error_is_redacted(self, mock_provider: Any) -> None:
        mock_provider.sign_and_send_transaction = AsyncMock(
            side_effect=RuntimeError(f"signer {SPONSOR.secret_key} rejected")
        )
        with pytest.raises(LedgerTransactionError, match="Failed to fund agent after 3 attempts") as exc_info:
            await send_with_retries(mock_provider, "s", SPONSOR.secret_key, "r", [], "Fund agent")
        assert SPONSOR.secret_key not in str(exc_info.value)
        assert exc_info.value.__cause__ is None
        assert mock_provider.sign_and_send_transaction.await_count == 3


@pytest.mark.asyncio
class TestKeyAndFundOperations:
    async def test_add_keys(self, mock_provider: Any) -> None:
        await add_keys_to_account(mock_provider, "agent", AGENT.secret_key, [EXTRA.secret_key])
        signer, secret, receiver, actions = mock_provider.sign_and_send_transaction.await_args.args
        assert (signer, secret, receiver) == ("agent", AGENT.secret_key, "agent")
        assert actions == [AddKeyAction(public_key=EXTRA.public_key)]

    async def test_remove_keys(self, mock_provider: Any) -> None:
        await remove_keys_from_account(mock_provider, "agent", AGENT.secret_key, [EXTRA.public_key])
        actions = mock_provider.sign_and_send_transaction.await_args.args[3]
        assert actions == [DeleteKeyAction(public_key=EXTRA.public_key)]

    async def test_fund(self, mock_provider: Any) -> None:
        await fund_account(mock_provider, "agent", "sponsor.testnet", SPONSOR.secret_key, 0.3)
        signer, secret, receiver, actions = mock_provider.sign_and_send_transaction.await_args.args
        assert (signer, secret, receiver) == ("sponsor.testnet", SPONSOR.secret_key, "agent")
        assert actions == [TransferAction(deposit=3 * 10**23)]

    async def test_fund_failure(self, mock_provider: Any) -> None:
        mock_provider.sign_and_send_transaction = AsyncMock(return_value=FAILURE)
        with pytest.raises(LedgerTransactionError, match="Failed to fund agent"):
            await fund_account(mock_provider, "agent", "sponsor.testnet", SPONSOR.secret_key, 1)
