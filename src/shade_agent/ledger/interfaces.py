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
Ledger Interfaces.

The agent consumes the NEAR ledger through the LedgerProvider protocol. Transactions are
described as lists of actions; signing and transport belong to the provider.
"""

from typing import Any, Dict, List, Literal, Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel, Field

# 30 TGas, the default attached to function calls
DEFAULT_FUNCTION_CALL_GAS = 30_000_000_000_000


class FunctionCallAction(BaseModel):
    kind: Literal["function_call"] = "function_call"
    method_name: str
    args: bytes = b""
    gas: int = Field(DEFAULT_FUNCTION_CALL_GAS, ge=0)
    deposit: int = Field(0, ge=0, description="Attached deposit in yoctoNEAR")


class TransferAction(BaseModel):
    kind: Literal["transfer"] = "transfer"
    deposit: int = Field(..., ge=0, description="Amount in yoctoNEAR")


class AddKeyAction(BaseModel):
    """Adds a full-access key."""

    kind: Literal["add_key"] = "add_key"
    public_key: str


class DeleteKeyAction(BaseModel):
    kind: Literal["delete_key"] = "delete_key"
    public_key: str


Action = Union[FunctionCallAction, TransferAction, AddKeyAction, DeleteKeyAction]


@runtime_checkable
class LedgerProvider(Protocol):
    """
    Protocol for NEAR ledger access (RPC transport and transaction signing).
    """

    async def get_network_id(self) -> str:
        """Return the chain id the provider is connected to ("testnet", "mainnet")."""
        ...  # pragma: no cover

    async def call_function(
        self,
        contract_id: str,
        method_name: str,
        args: Dict[str, Any],
        block_query: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Call a view function and return its JSON-decoded result."""
        ...  # pragma: no cover

    async def get_access_key_list(self, account_id: str) -> List[Dict[str, Any]]:
        """Return the account's access keys, each with at least a ``public_key`` entry."""
        ...  # pragma: no cover

    async def get_balance(self, account_id: str) -> int:
        """
        Return the available balance in yoctoNEAR.

        Raises:
            AccountNotFoundError: If the account does not exist.
        """
        ...  # pragma: no cover

    async def sign_and_send_transaction(
        self,
        signer_id: str,
        secret_key: str,
        receiver_id: str,
        actions: List[Action],
    ) -> Dict[str, Any]:
        """Sign a transaction with ``secret_key`` and return its final execution outcome."""
        ...  # pragma: no cover
