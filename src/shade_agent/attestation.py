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
Attestation Assembly.

Collects the TCB report and the quote from the hardware, fetches the quote collateral
from the collateral service, and reshapes all three into the layout the agent contract
deserializes. Outside a TEE a null attestation is returned without any I/O.
"""

import json
from typing import Any, Dict, List, Mapping, Optional, Union

import anyio
import httpx

from shade_agent.exceptions import AttestationError, AttestationFetchError
from shade_agent.hardware.interfaces import HardwareCapability
from shade_agent.redaction import sanitize_message
from shade_agent.schemas import Attestation, Collateral, EventLogEntry, TcbInfo
from shade_agent.utils.logger import logger

COLLATERAL_ENDPOINT = "https://proof.t16z.com/api/upload"
COLLATERAL_TIMEOUT_SECONDS = 30.0
REPORT_DATA_SIZE = 64

COLLATERAL_TEXT_FIELDS = (
    "pck_crl_issuer_chain",
    "tcb_info_issuer_chain",
    "tcb_info",
    "qe_identity_issuer_chain",
    "qe_identity",
)
COLLATERAL_BINARY_FIELDS = (
    "root_ca_crl",
    "pck_crl",
    "tcb_info_signature",
    "qe_identity_signature",
)

NULL_REGISTER = "00" * 48
NULL_HASH = "00" * 32


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def _decode_hex(value: str) -> bytes:
    try:
        return bytes.fromhex(_strip_0x(value.strip()))
    except ValueError:
        raise AttestationError("Failed to decode hex string") from None


def encode_report_data(account_id: str) -> bytes:
    """UTF-8 account id right-padded with zero bytes to 64 bytes."""
    raw = account_id.encode("utf-8")
    if len(raw) > REPORT_DATA_SIZE:
        raise AttestationError(f"Account id too long for report data ({len(raw)} > {REPORT_DATA_SIZE} bytes)")
    return raw.ljust(REPORT_DATA_SIZE, b"\x00")


def transform_quote(quote_hex: str) -> List[int]:
    return list(_decode_hex(quote_hex))


def transform_collateral(raw: Mapping[str, Any]) -> Collateral:
    """
    Map the collateral service response onto the contract layout.

    Text fields pass through; binary fields are normalized to lower-case hex.
    """
    fields: Dict[str, str] = {}
    for name in COLLATERAL_TEXT_FIELDS:
        value = raw.get(name)
        fields[name] = "" if value is None else str(value)
    for name in COLLATERAL_BINARY_FIELDS:
        value = raw.get(name)
        fields[name] = _decode_hex(str(value)).hex() if value else ""
    return Collateral(**fields)


def transform_tcb_info(info: Union[str, Mapping[str, Any]]) -> TcbInfo:
    """
    Build the TCB report from the guest agent's info response.

    Accepts either the full info response (whose ``tcb_info`` may itself be a JSON
    string) or the TCB report directly. Registers pass through unmodified.
    """
    data: Any = json.loads(info) if isinstance(info, str) else dict(info)
    if "tcb_info" in data:
        data = data["tcb_info"]
        if isinstance(data, str):
            data = json.loads(data)
    if not isinstance(data, dict):
        raise AttestationError("TCB info is not an object")

    event_log = [
        EventLogEntry(
            imr=int(entry["imr"]),
            event_type=int(entry["event_type"]),
            digest=str(entry["digest"]),
            event=str(entry.get("event") or ""),
            event_payload=str(entry.get("event_payload") or ""),
        )
        for entry in data.get("event_log") or []
    ]
    return TcbInfo(
        mrtd=str(data.get("mrtd") or ""),
        rtmr0=str(data.get("rtmr0") or ""),
        rtmr1=str(data.get("rtmr1") or ""),
        rtmr2=str(data.get("rtmr2") or ""),
        rtmr3=str(data.get("rtmr3") or ""),
        os_image_hash=str(data.get("os_image_hash") or ""),
        compose_hash=str(data.get("compose_hash") or ""),
        device_id=str(data.get("device_id") or ""),
        app_compose=str(data.get("app_compose") or ""),
        event_log=event_log,
    )


def null_attestation() -> Attestation:
    """Attestation of an agent outside a TEE: an empty quote and zeroed registers."""
    return Attestation(
        quote=[],
        collateral=Collateral(),
        tcb_info=TcbInfo(
            mrtd=NULL_REGISTER,
            rtmr0=NULL_REGISTER,
            rtmr1=NULL_REGISTER,
            rtmr2=NULL_REGISTER,
            rtmr3=NULL_REGISTER,
            os_image_hash="",
            compose_hash=NULL_HASH,
            device_id=NULL_HASH,
            app_compose="",
            event_log=[],
        ),
    )


async def fetch_quote_collateral(
    quote_hex: str,
    client: Optional[httpx.AsyncClient] = None,
    endpoint: str = COLLATERAL_ENDPOINT,
    timeout: float = COLLATERAL_TIMEOUT_SECONDS,
) -> Dict[str, Any]:
    """
    Upload the quote to the collateral service and return its ``quote_collateral``.

    Raises:
        AttestationFetchError: On non-2xx, transport failure, timeout or a malformed body.
    """
    internal_client = client is None
    http = client or httpx.AsyncClient()
    try:
        with anyio.fail_after(timeout):
            response = await http.post(endpoint, files={"hex": (None, quote_hex)}, timeout=timeout)
        response.raise_for_status()
        body = response.json()
        collateral = body.get("quote_collateral") if isinstance(body, dict) else None
        if not isinstance(collateral, dict):
            raise ValueError("response has no quote_collateral")
        return collateral
    except TimeoutError:
        logger.error(f"Quote collateral request timed out after {timeout}s.")
        raise AttestationFetchError(f"Failed to get quote collateral: timed out after {timeout}s") from None
    except httpx.HTTPStatusError as e:
        logger.error(f"Quote collateral request failed: HTTP {e.response.status_code}")
        raise AttestationFetchError(f"Failed to get quote collateral: HTTP {e.response.status_code}") from None
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Quote collateral request failed: {e}")
        raise AttestationFetchError(f"Failed to get quote collateral: {sanitize_message(e)}") from None
    finally:
        if internal_client:
            await http.aclose()


async def get_attestation(
    capability: Optional[HardwareCapability],
    account_id: str,
    derived_with_hardware: bool,
    client: Optional[httpx.AsyncClient] = None,
) -> Attestation:
    """
    Assemble the attestation for ``account_id``.

    Args:
        capability (Optional[HardwareCapability]): TEE capability, None outside a TEE.
        account_id (str): Agent account id, bound into the quote's report data.
        derived_with_hardware (bool): Whether every agent key used hardware entropy.
        client (Optional[httpx.AsyncClient]): HTTP client for the collateral service.

    Returns:
        Attestation: The real attestation, or the null attestation when the agent is not
        running in a TEE or its keys were not derived with hardware entropy.
    """
    if capability is None or not derived_with_hardware:
        logger.debug("Returning null attestation.")
        return null_attestation()

    info = await capability.info()
    tcb_info = transform_tcb_info(info)

    quote_hex = _strip_0x(await capability.get_quote(encode_report_data(account_id)))
    collateral = transform_collateral(await fetch_quote_collateral(quote_hex, client=client))

    logger.info("Attestation assembled.")
    return Attestation(quote=transform_quote(quote_hex), collateral=collateral, tcb_info=tcb_info)
