"""
Shade Agent: TEE-bound agent identity, key rotation and attestation for NEAR agent
contracts.
"""

from shade_agent.client import ShadeClient, ShadeClientSync, create_client
from shade_agent.exceptions import (
    AgentCreationError,
    AttestationError,
    AttestationFetchError,
    ConfigurationError,
    KeyDerivationError,
    LedgerError,
    LedgerTransactionError,
    SecretExportError,
    ShadeAgentError,
)
from shade_agent.schemas import AgentStatus, Attestation, ShadeConfig, SponsorConfig

__all__ = [
    "AgentCreationError",
    "AgentStatus",
    "Attestation",
    "AttestationError",
    "AttestationFetchError",
    "ConfigurationError",
    "KeyDerivationError",
    "LedgerError",
    "LedgerTransactionError",
    "SecretExportError",
    "ShadeAgentError",
    "ShadeClient",
    "ShadeClientSync",
    "ShadeConfig",
    "SponsorConfig",
    "create_client",
]
