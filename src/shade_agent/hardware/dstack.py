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
dstack Hardware Capability.

Talks to the dstack guest agent (Intel TDX) over its local unix socket.
"""

import os
from typing import Any, Dict, Optional

import httpx

from shade_agent.hardware.interfaces import HardwareCapability
from shade_agent.utils.logger import logger

DEFAULT_DSTACK_SOCKET = "/var/run/dstack.sock"
REPORT_DATA_SIZE = 64


def get_dstack_socket_path() -> str:
    """Socket path, overridable with SHADE_AGENT_DSTACK_SOCKET."""
    return os.getenv("SHADE_AGENT_DSTACK_SOCKET", DEFAULT_DSTACK_SOCKET)


class DstackCapability(HardwareCapability):
    """
    HardwareCapability backed by the dstack guest agent RPC.
    """

    def __init__(self, socket_path: Optional[str] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        """
        Initialize the capability.

        Args:
            socket_path (Optional[str]): Unix socket of the guest agent.
            client (Optional[httpx.AsyncClient]): External HTTP client (mainly for testing).
        """
        self.socket_path = socket_path or get_dstack_socket_path()
        self._internal_client = client is None
        self._client = client or httpx.AsyncClient(
            transport=httpx.AsyncHTTPTransport(uds=self.socket_path),
            base_url="http://localhost",
        )

    async def _rpc(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._client.post(f"/{method}", json=payload)
        response.raise_for_status()
        result: Dict[str, Any] = response.json()
        return result

    async def info(self) -> Dict[str, Any]:
        return await self._rpc("Info", {})

    async def get_quote(self, report_data: bytes) -> str:
        if len(report_data) > REPORT_DATA_SIZE:
            raise ValueError(f"report_data must be at most {REPORT_DATA_SIZE} bytes")
        result = await self._rpc("GetQuote", {"report_data": report_data.hex()})
        return str(result["quote"])

    async def derive_key(self, material: str) -> bytes:
        result = await self._rpc("GetKey", {"path": material, "purpose": material})
        key = str(result["key"])
        return bytes.fromhex(key[2:] if key.startswith("0x") else key)

    async def aclose(self) -> None:
        if self._internal_client:
            await self._client.aclose()
            logger.debug("Closed dstack guest agent client.")
