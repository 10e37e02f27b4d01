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
Hardware Interfaces.

Defines the contract for the TEE hardware capability consumed by the agent.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict


class HardwareCapability(ABC):
    """
    Abstract Base Class for a TEE hardware capability.

    Provides hardware entropy for key derivation and the evidence (TCB report, quote)
    used to attest the agent's identity.
    """

    @abstractmethod
    async def info(self) -> Dict[str, Any]:
        """
        Fetch the platform info. Doubles as the liveness check.

        Returns:
            Dict[str, Any]: The info payload; its ``tcb_info`` entry is the TCB report,
            either as a mapping or as a JSON string.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def get_quote(self, report_data: bytes) -> str:
        """
        Generate a hardware-signed quote binding ``report_data`` (at most 64 bytes).

        Returns:
            str: The quote, hex-encoded (an ``0x`` prefix is tolerated).
        """
        pass  # pragma: no cover

    @abstractmethod
    async def derive_key(self, material: str) -> bytes:
        """
        Derive key bytes from hardware-held secrets and the given material.

        Returns:
            bytes: At least 32 bytes of key material.
        """
        pass  # pragma: no cover

    async def aclose(self) -> None:
        """Release any resources held by the capability."""
        return None
