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
NEAR JSON-RPC provider.

Default LedgerProvider used when the caller does not supply one.
"""

import base64
import json
from typing import Any, Dict, List, Optional

import base58
import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from shade_agent.crypto import public_key_from_secret
from shade_agent.exceptions import AccountNotFoundError, LedgerRpcError
from shade_agent.ledger.interfaces import Action
from shade_agent.ledger.transactions import sign_transaction
from shade_agent.utils.logger import logger

DEFAULT_RPC_URLS: Dict[str, str] = {
    "testnet": "https://test.rpc.fastnear.com",
    "mainnet": "https://free.rpc.fastnear.com",
}

DEFAULT_RETRIES = 3
DEFAULT_TIMEOUT_SECONDS = 30.0
FINAL: Dict[str, Any] = {"finality": "final"}


class JsonRpcProvider:
    """
    LedgerProvider over the NEAR JSON-RPC API.

    Transport failures are retried with exponential backoff; RPC-level errors are not.
    """

    def __init__(
        self,
        url: str,
        client: Optional[httpx.AsyncClient] = None,
        retries: int = DEFAULT_RETRIES,
    ) -> None:
        """
        Initialize the provider.

        Args:
            url (str): RPC endpoint.
            client (Optional[httpx.AsyncClient]): External HTTP client for connection pooling.
            retries (int): Attempts per request on transport failure.
        """
        self.url = url
        self.retries = retries
        self._internal_client = client is None
        self._client = client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT_SECONDS)

    @classmethod
    def for_network(cls, network_id: str, client: Optional[httpx.AsyncClient] = None) -> "JsonRpcProvider":
        if network_id not in DEFAULT_RPC_URLS:
            raise ValueError(f"No default RPC endpoint for network '{network_id}'")
        return cls(DEFAULT_RPC_URLS[network_id], client=client)

    async def __aenter__(self) -> "JsonRpcProvider":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._internal_client:
            await self._client.aclose()

    async def _request(self, method: str, params: Any) -> Any:
        payload = {"jsonrpc": "2.0", "id": "dontcare", "method": method, "params": params}

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retries),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                response = await self._client.post(self.url, json=payload)

        if response.status_code >= 500:
            raise LedgerRpcError(f"RPC {method} failed: HTTP {response.status_code}")

        body: Dict[str, Any] = response.json()
        error = body.get("error")
        if error:
            cause = error.get("cause") or {}
            name = cause.get("name") or error.get("name") or "UNKNOWN_ERROR"
            if name == "UNKNOWN_ACCOUNT":
                raise AccountNotFoundError(f"Account does not exist: {cause.get('info', {}).get('requested_account_id', '')}")
            logger.debug(f"RPC {method} returned error {name}")
            raise LedgerRpcError(f"RPC {method} failed: {name}: {error.get('message', '')}".strip())
        return body.get("result")

    async def _query(self, params: Dict[str, Any]) -> Dict[str, Any]:
        result: Dict[str, Any] = await self._request("query", params)
        if isinstance(result, dict) and "error" in result:
            raise LedgerRpcError(f"Query failed: {result['error']}")
        return result

    async def get_network_id(self) -> str:
        status = await self._request("status", [])
        return str(status["chain_id"])

    async def call_function(
        self,
        contract_id: str,
        method_name: str,
        args: Dict[str, Any],
        block_query: Optional[Dict[str, Any]] = None,
    ) -> Any:
        params = {
            "request_type": "call_function",
            "account_id": contract_id,
            "method_name": method_name,
            "args_base64": base64.b64encode(json.dumps(args).encode("utf-8")).decode("ascii"),
            **(block_query or FINAL),
        }
        result = await self._query(params)
        raw = bytes(result.get("result") or [])
        return json.loads(raw) if raw else None

    async def get_access_key_list(self, account_id: str) -> List[Dict[str, Any]]:
        result = await self._query({"request_type": "view_access_key_list", "account_id": account_id, **FINAL})
        keys: List[Dict[str, Any]] = result.get("keys", [])
        return keys

    async def get_balance(self, account_id: str) -> int:
        result = await self._query({"request_type": "view_account", "account_id": account_id, **FINAL})
        return int(result["amount"])

    async def sign_and_send_transaction(
        self,
        signer_id: str,
        secret_key: str,
        receiver_id: str,
        actions: List[Action],
    ) -> Dict[str, Any]:
        access_key = await self._query(
            {
                "request_type": "view_access_key",
                "account_id": signer_id,
                "public_key": public_key_from_secret(secret_key),
                **FINAL,
            }
        )
        signed = sign_transaction(
            secret_key,
            signer_id,
            int(access_key["nonce"]) + 1,
            receiver_id,
            base58.b58decode(access_key["block_hash"]),
            actions,
        )
        outcome: Dict[str, Any] = await self._request(
            "broadcast_tx_commit", [base64.b64encode(signed).decode("ascii")]
        )
        return outcome
