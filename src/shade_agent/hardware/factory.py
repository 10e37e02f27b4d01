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
Hardware Factory.

Detects whether the agent runs inside a TEE and returns the matching capability.
Absence of hardware is a normal branch, not an error: the agent then derives its
identity locally and produces a null attestation.
"""

from pathlib import Path
from typing import Optional

from shade_agent.hardware.dstack import DstackCapability, get_dstack_socket_path
from shade_agent.hardware.interfaces import HardwareCapability
from shade_agent.utils.logger import logger


async def get_hardware_capability(socket_path: Optional[str] = None) -> Optional[HardwareCapability]:
    """
    Probe for the TEE hardware capability.

    Checks that the guest agent socket exists, then that the agent answers an info
    request. If the socket exists but the agent does not respond, the capability is
    treated as absent; such an agent can never register in a contract that requires a
    TEE since it cannot produce a valid attestation.

    Returns:
        Optional[HardwareCapability]: The live capability, or None when not in a TEE.
    """
    path = socket_path or get_dstack_socket_path()

    if not Path(path).exists():
        logger.info(f"No TEE socket at {path}. Running outside a TEE.")
        return None

    capability = DstackCapability(socket_path=path)
    try:
        await capability.info()
    except Exception as e:
        logger.warning(f"TEE socket present but guest agent is not responding: {e}")
        await capability.aclose()
        return None

    logger.info(f"TEE hardware detected and verified: {path}")
    return capability
