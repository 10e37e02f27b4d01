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
Data schemas for the Shade Agent.

Defines the agent configuration, the registration status reported by the agent contract,
and the attestation structure in the exact layout the contract deserializes.
"""

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from shade_agent.ledger.interfaces import LedgerProvider

MIN_KEYS = 1
MAX_KEYS = 100


class SponsorConfig(BaseModel):
    """
    Sponsor account used to fund the agent.

    Attributes:
        account_id (str): The sponsor's NEAR account id.
        private_key (SecretStr): The sponsor's ed25519 secret key.
    """

    account_id: str
    private_key: SecretStr

    @field_validator("account_id")
    @classmethod
    def validate_account_id(cls, v: str) -> str:
        """Validate that account_id is not empty."""
        if not v or not v.strip():
            raise ValueError("sponsor.account_id is required when sponsor is provided")
        return v

    @field_validator("private_key")
    @classmethod
    def validate_private_key(cls, v: SecretStr) -> SecretStr:
        """Validate that private_key is not empty."""
        if not v.get_secret_value().strip():
            raise ValueError("sponsor secret is required when sponsor is provided")
        return v


class ShadeConfig(BaseModel):
    """
    Configuration of a Shade Agent client.

    Attributes:
        network_id (Literal["testnet", "mainnet"]): NEAR network (default: "testnet").
        agent_contract_id (Optional[str]): The agent contract account id.
        sponsor (Optional[SponsorConfig]): Sponsor used by fund().
        rpc (Optional[LedgerProvider]): Ledger provider; defaults to the network's RPC.
        num_keys (int): Number of signing keys (1-100, default: 1).
        derivation_path (Optional[str]): Deterministic derivation path for local mode.
            Must be a unique secret string; it is ignored inside a TEE.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    network_id: Literal["testnet", "mainnet"] = Field("testnet", description="NEAR network id")
    agent_contract_id: Optional[str] = Field(None, description="Agent contract account id")
    sponsor: Optional[SponsorConfig] = None
    rpc: Optional[Any] = Field(None, description="LedgerProvider implementation")
    num_keys: int = Field(1, description="Number of signing keys")
    derivation_path: Optional[str] = Field(None, description="Local deterministic derivation path")

    @field_validator("network_id", mode="before")
    @classmethod
    def validate_network_id(cls, v: Any) -> Any:
        """Validate that network_id is testnet or mainnet."""
        if v is None:
            return "testnet"
        if v not in ("testnet", "mainnet"):
            raise ValueError("network_id must be either 'testnet' or 'mainnet'")
        return v

    @field_validator("agent_contract_id")
    @classmethod
    def validate_agent_contract_id(cls, v: Optional[str]) -> Optional[str]:
        """Validate that agent_contract_id, when given, is not blank."""
        if v is not None and not v.strip():
            raise ValueError("agent_contract_id cannot be empty")
        return v

    @field_validator("num_keys", mode="before")
    @classmethod
    def validate_num_keys(cls, v: Any) -> Any:
        """Validate that num_keys is an integer between 1 and 100."""
        if v is None:
            return 1
        if isinstance(v, bool) or not isinstance(v, int) or not (MIN_KEYS <= v <= MAX_KEYS):
            raise ValueError(f"num_keys must be an integer between {MIN_KEYS} and {MAX_KEYS}")
        return v

    @field_validator("rpc")
    @classmethod
    def validate_rpc(cls, v: Any) -> Any:
        """Validate that rpc implements the LedgerProvider protocol."""
        if v is not None and not isinstance(v, LedgerProvider):
            raise ValueError("rpc must implement the LedgerProvider protocol")
        return v


class AgentStatus(BaseModel):
    """
    Registration status of the agent as reported by ``get_agent``.
    """

    registered: bool = False
    whitelisted: bool = False
    codehash_is_approved: bool = False


class Collateral(BaseModel):
    """
    Quote collateral in contract layout.

    Certificate chains and JSON documents are text; CRLs and signatures are lower-case
    hex strings.
    """

    pck_crl_issuer_chain: str = ""
    root_ca_crl: str = ""
    pck_crl: str = ""
    tcb_info_issuer_chain: str = ""
    tcb_info: str = ""
    tcb_info_signature: str = ""
    qe_identity_issuer_chain: str = ""
    qe_identity: str = ""
    qe_identity_signature: str = ""


class EventLogEntry(BaseModel):
    imr: int
    event_type: int
    digest: str
    event: str = ""
    event_payload: str = ""


class TcbInfo(BaseModel):
    """
    Trusted computing base report.

    mrtd and rtmr0-3 are 48-byte registers, compose_hash and device_id 32 bytes, all as
    hex. The event log order is significant: RTMRs are replayed from it.
    """

    mrtd: str = ""
    rtmr0: str = ""
    rtmr1: str = ""
    rtmr2: str = ""
    rtmr3: str = ""
    os_image_hash: str = ""
    compose_hash: str = ""
    device_id: str = ""
    app_compose: str = ""
    event_log: List[EventLogEntry] = Field(default_factory=list)


class Attestation(BaseModel):
    """
    Attestation evidence as passed to ``register_agent``.

    Attributes:
        quote (List[int]): Raw quote bytes.
        collateral (Collateral): Quote collateral.
        tcb_info (TcbInfo): TCB report of the workload.
    """

    quote: List[int] = Field(default_factory=list)
    collateral: Collateral = Field(default_factory=Collateral)
    tcb_info: TcbInfo = Field(default_factory=TcbInfo)

    @field_validator("quote")
    @classmethod
    def validate_quote_bytes(cls, v: List[int]) -> List[int]:
        """Validate that every quote element is a byte value."""
        if any(not (0 <= b <= 255) for b in v):
            raise ValueError("quote must contain only byte values (0-255)")
        return v
