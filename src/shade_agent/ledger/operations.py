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
Ledger Operations.

Key management and funding transactions with the retry policy the agent relies on:
up to three immediate attempts, retrying both failed execution outcomes and raised
errors. The final error is generic and redacted.
"""

import base64
import json
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from tenacity import AsyncRetrying, stop_after_attempt

from shade_agent.crypto import public_key_from_secret
from shade_agent.exceptions import LedgerTransactionError
from shade_agent.ledger.interfaces import Action, AddKeyAction, DeleteKeyAction, LedgerProvider, TransferAction
from shade_agent.redaction import sanitize_message
from shade_agent.utils.logger import logger

MAX_ATTEMPTS = 3
YOCTO_PER_NEAR = Decimal(10) ** 24


def near_to_yocto(amount: Union[int, float, str, Decimal]) -> int:
    value = Decimal(str(amount))
    if value <= 0:
        raise ValueError("amount must be positive")
    return int(value * YOCTO_PER_NEAR)


def yocto_to_near(amount: Union[int, str]) -> float:
    return float(Decimal(int(amount)) / YOCTO_PER_NEAR)


def failure_message(outcome: Dict[str, Any]) -> Optional[str]:
    """Return the failure description of an execution outcome, or None on success."""
    status = outcome.get("status") if isinstance(outcome, dict) else None
    if not isinstance(status, dict) or "Failure" not in status:
        return None
    failure = status["Failure"]
    if isinstance(failure, dict):
        return str(failure.get("error_message") or failure.get("error_type") or json.dumps(failure, default=str))
    return str(failure)


def success_value(outcome: Dict[str, Any]) -> Any:
    """Decode the ``SuccessValue`` of an outcome: JSON when possible, else text."""
    status = outcome.get("status") if isinstance(outcome, dict) else None
    if not isinstance(status, dict) or not status.get("SuccessValue"):
        return None
    raw = base64.b64decode(status["SuccessValue"])
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


async def send_with_retries(
    provider: LedgerProvider,
    signer_id: str,
    secret_key: str,
    receiver_id: str,
    actions: List[Action],
    description: str,
) -> Dict[str, Any]:
    """
    Sign and send a transaction, retrying up to MAX_ATTEMPTS times.

    Raises:
        LedgerTransactionError: When every attempt failed.
    """
    outcome: Dict[str, Any] = {}
    try:
        async for attempt in AsyncRetrying(stop=stop_after_attempt(MAX_ATTEMPTS), reraise=True):
            with attempt:
                attempt_number = attempt.retry_state.attempt_number
                outcome = await provider.sign_and_send_transaction(signer_id, secret_key, receiver_id, actions)
                failure = failure_message(outcome)
                if failure is not None:
                    logger.warning(f"{description} attempt {attempt_number}/{MAX_ATTEMPTS} failed: {failure}")
                    raise LedgerTransactionError(f"{description} transaction failed: {failure}")
    except Exception as e:
        logger.error(f"{description} failed after {MAX_ATTEMPTS} attempts.")
        raise LedgerTransactionError(
            f"Failed to {description.lower()} after {MAX_ATTEMPTS} attempts: {sanitize_message(e)}"
        ) from None
    return outcome


async def add_keys_to_account(
    provider: LedgerProvider, account_id: str, signer_secret: str, secret_keys: List[str]
) -> None:
    """Add one full-access key per secret in a single transaction."""
    actions: List[Action] = [AddKeyAction(public_key=public_key_from_secret(s)) for s in secret_keys]
    await send_with_retries(provider, account_id, signer_secret, account_id, actions, "Add keys")
    logger.info(f"Added {len(actions)} access key(s) to the agent account.")


async def remove_keys_from_account(
    provider: LedgerProvider, account_id: str, signer_secret: str, public_keys: List[str]
) -> None:
    """Delete the given public keys in a single transaction."""
    actions: List[Action] = [DeleteKeyAction(public_key=pk) for pk in public_keys]
    await send_with_retries(provider, account_id, signer_secret, account_id, actions, "Remove keys")
    logger.info(f"Removed {len(actions)} access key(s) from the agent account.")


async def fund_account(
    provider: LedgerProvider,
    receiver_id: str,
    sponsor_id: str,
    sponsor_secret: str,
    amount: Union[int, float, str, Decimal],
) -> None:
    """Transfer ``amount`` NEAR from the sponsor to ``receiver_id``."""
    actions: List[Action] = [TransferAction(deposit=near_to_yocto(amount))]
    await send_with_retries(provider, sponsor_id, sponsor_secret, receiver_id, actions, "Fund agent")
    logger.info(f"Funded agent account with {amount} NEAR.")
