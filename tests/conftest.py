# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_enclave

import hashlib
import json
from typing import Any, Callable, Dict, Iterator, List, Optional
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from shade_agent.hardware.interfaces import HardwareCapability

SUCCESS_OUTCOME: Dict[str, Any] = {"status": {"SuccessValue": ""}}

TCB_INFO: Dict[str, Any] = {
    "mrtd": "a1" * 48,
    "rtmr0": "b0" * 48,
    "rtmr1": "b1" * 48,
    "rtmr2": "b2" * 48,
    "rtmr3": "b3" * 48,
    "os_image_hash": "0e" * 32,
    "compose_hash": "c0" * 32,
    "device_id": "d0" * 32,
    "app_compose": '{"runner":"docker-compose"}',
    "event_log": [
        {"imr": 0, "event_type": 2147483659, "digest": "e0" * 48, "event": "", "event_payload": "0a0b"},
        {"imr": 3, "event_type": 134217729, "digest": "e3" * 48, "event": "compose-hash", "event_payload": "c0" * 32},
    ],
}


class FakeCapability(HardwareCapability):
    """In-memory TEE: hardware keys are sha256(secret || material)."""

    def __init__(self, secret: bytes = b"hardware-secret", quote: str = "0x" + "ab" * 16) -> None:
        self.secret = secret
        self.quote = quote
        self.derive_calls: List[str] = []
        self.quote_calls: List[bytes] = []
        self.info_calls = 0
        self.closed = False

    async def info(self) -> Dict[str, Any]:
        self.info_calls += 1
        return {"app_id": "app", "instance_id": "instance", "tcb_info": json.dumps(TCB_INFO)}

    async def get_quote(self, report_data: bytes) -> str:
        self.quote_calls.append(report_data)
        return self.quote

    async def derive_key(self, material: str) -> bytes:
        self.derive_calls.append(material)
        return hashlib.sha256(self.secret + material.encode("utf-8")).digest()

    async def aclose(self) -> None:
        self.closed = True


def make_provider(access_keys: Optional[List[Dict[str, Any]]] = None, network_id: str = "testnet") -> MagicMock:
    provider = MagicMock()
    provider.get_network_id = AsyncMock(return_value=network_id)
    provider.call_function = AsyncMock(return_value=None)
    provider.get_access_key_list = AsyncMock(
        return_value=access_keys if access_keys is not None else [{"public_key": "ed25519:primary"}]
    )
    provider.get_balance = AsyncMock(return_value=10**24)
    provider.sign_and_send_transaction = AsyncMock(return_value=dict(SUCCESS_OUTCOME))
    return provider


@pytest.fixture
def provider_factory() -> Callable[..., MagicMock]:
    return make_provider


@pytest.fixture
def mock_provider() -> MagicMock:
    return make_provider()


@pytest.fixture
def capability_factory() -> Callable[..., FakeCapability]:
    return FakeCapability


@pytest.fixture
def fake_capability() -> FakeCapability:
    return FakeCapability()


@pytest.fixture(autouse=True)
def no_tee() -> Iterator[AsyncMock]:
    """Clients created in tests never probe the real guest agent socket."""
    with patch("shade_agent.client.get_hardware_capability", new=AsyncMock(return_value=None)) as probe:
        yield probe
