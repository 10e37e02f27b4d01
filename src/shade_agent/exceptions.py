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
Exceptions raised by the Shade Agent.

Every exception takes a single message argument so that the redactor can rebuild it
with a scrubbed message.
"""


class ShadeAgentError(Exception):
    """Base class for all Shade Agent errors."""

    pass


class ConfigurationError(ShadeAgentError):
    """Raised when the agent configuration is missing or invalid. Never retried."""

    pass


class AgentCreationError(ShadeAgentError):
    """Raised when the agent identity cannot be derived."""

    pass


class KeyDerivationError(ShadeAgentError):
    """Raised when the signing key pool is inconsistent (e.g. partial TEE derivation)."""

    pass


class LedgerError(ShadeAgentError):
    """Base class for ledger (NEAR RPC) failures."""

    pass


class LedgerRpcError(LedgerError):
    """Raised when the RPC endpoint returns an error or cannot be reached."""

    pass


class AccountNotFoundError(LedgerError):
    """Raised when the queried account does not exist on chain."""

    pass


class LedgerTransactionError(LedgerError):
    """Raised when a transaction still fails after all retry attempts."""

    pass


class ContractCallError(LedgerError):
    """Raised when a contract function call executes with a failure status."""

    pass


class AttestationError(ShadeAgentError):
    """Raised when attestation evidence cannot be assembled."""

    pass


class AttestationFetchError(AttestationError):
    """Raised when the quote collateral endpoint fails or times out. Not retried."""

    pass


class SecretExportError(ShadeAgentError):
    """Raised when private keys are exported without acknowledging the risk."""

    pass
