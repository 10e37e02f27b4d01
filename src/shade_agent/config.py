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
Environment configuration.

Builds a ShadeConfig from the process environment for the ``shade-agent`` entry point.
"""

import os
from typing import Any, Dict, Optional

from shade_agent.client import validate_config
from shade_agent.exceptions import ConfigurationError
from shade_agent.schemas import ShadeConfig


def _parse_int(name: str, value: Optional[str]) -> Optional[int]:
    if value is None or value.strip() == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer") from None


def load_config_from_env() -> ShadeConfig:
    """
    Read the agent configuration from environment variables.

    Variables:
        NEAR_NETWORK_ID: "testnet" (default) or "mainnet".
        AGENT_CONTRACT_ID: The agent contract account id.
        SPONSOR_ACCOUNT_ID / SPONSOR_PRIVATE_KEY: Sponsor used to fund the agent.
        NUM_KEYS: Number of signing keys (1-100).
        DERIVATION_PATH: Deterministic derivation path for local mode.
    """
    values: Dict[str, Any] = {
        "network_id": os.getenv("NEAR_NETWORK_ID") or "testnet",
        "agent_contract_id": os.getenv("AGENT_CONTRACT_ID") or None,
        "derivation_path": os.getenv("DERIVATION_PATH") or None,
    }

    num_keys = _parse_int("NUM_KEYS", os.getenv("NUM_KEYS"))
    if num_keys is not None:
        values["num_keys"] = num_keys

    sponsor_id = os.getenv("SPONSOR_ACCOUNT_ID")
    sponsor_key = os.getenv("SPONSOR_PRIVATE_KEY")
    if sponsor_id or sponsor_key:
        values["sponsor"] = {"account_id": sponsor_id or "", "private_key": sponsor_key or ""}

    return validate_config(values)
