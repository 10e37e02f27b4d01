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
NEAR transaction encoding.

Borsh serialization of transactions and signed transactions for the subset of actions
the agent issues, plus ed25519 signing over sha256 of the encoded transaction.
"""

import hashlib
import struct
from typing import List

from shade_agent.crypto import public_key_bytes, public_key_bytes_from_secret, sign
from shade_agent.ledger.interfaces import (
    Action,
    AddKeyAction,
    DeleteKeyAction,
    FunctionCallAction,
    TransferAction,
)

ED25519_KEY_TYPE = 0

# Action enum discriminants
FUNCTION_CALL = 2
TRANSFER = 3
ADD_KEY = 5
DELETE_KEY = 6

FULL_ACCESS_PERMISSION = 1


def _u8(value: int) -> bytes:
    return struct.pack("<B", value)


def _u32(value: int) -> bytes:
    return struct.pack("<I", value)


def _u64(value: int) -> bytes:
    return struct.pack("<Q", value)


def _u128(value: int) -> bytes:
    return value.to_bytes(16, "little")


def _bytes(value: bytes) -> bytes:
    return _u32(len(value)) + value


def _string(value: str) -> bytes:
    return _bytes(value.encode("utf-8"))


def _public_key(raw: bytes) -> bytes:
    return _u8(ED25519_KEY_TYPE) + raw


def serialize_action(action: Action) -> bytes:
    if isinstance(action, FunctionCallAction):
        return (
            _u8(FUNCTION_CALL)
            + _string(action.method_name)
            + _bytes(action.args)
            + _u64(action.gas)
            + _u128(action.deposit)
        )
    if isinstance(action, TransferAction):
        return _u8(TRANSFER) + _u128(action.deposit)
    if isinstance(action, AddKeyAction):
        # AccessKey { nonce: 0, permission: FullAccess }
        return _u8(ADD_KEY) + _public_key(public_key_bytes(action.public_key)) + _u64(0) + _u8(FULL_ACCESS_PERMISSION)
    if isinstance(action, DeleteKeyAction):
        return _u8(DELETE_KEY) + _public_key(public_key_bytes(action.public_key))
    raise TypeError(f"Unsupported action: {type(action).__name__}")


def serialize_transaction(
    signer_id: str,
    signer_public_key: bytes,
    nonce: int,
    receiver_id: str,
    block_hash: bytes,
    actions: List[Action],
) -> bytes:
    if len(block_hash) != 32:
        raise ValueError("block_hash must be 32 bytes")
    encoded = (
        _string(signer_id)
        + _public_key(signer_public_key)
        + _u64(nonce)
        + _string(receiver_id)
        + block_hash
        + _u32(len(actions))
    )
    for action in actions:
        encoded += serialize_action(action)
    return encoded


def sign_transaction(
    secret_key: str,
    signer_id: str,
    nonce: int,
    receiver_id: str,
    block_hash: bytes,
    actions: List[Action],
) -> bytes:
    """
    Build and sign a transaction.

    Returns:
        bytes: The borsh-encoded SignedTransaction, ready for broadcast.
    """
    encoded = serialize_transaction(
        signer_id,
        public_key_bytes_from_secret(secret_key),
        nonce,
        receiver_id,
        block_hash,
        actions,
    )
    signature = sign(secret_key, hashlib.sha256(encoded).digest())
    return encoded + _u8(ED25519_KEY_TYPE) + signature
