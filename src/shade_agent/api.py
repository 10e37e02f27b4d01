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
Management API.

Loopback-only sidecar exposing the agent's identity, balance, registration status and
attestation.
"""

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from shade_agent.client import ShadeClient
from shade_agent.exceptions import ConfigurationError
from shade_agent.redaction import sanitize_message
from shade_agent.schemas import AgentStatus, Attestation
from shade_agent.utils.logger import logger


class HealthResponse(BaseModel):
    status: str
    account_id: str
    in_tee: bool


class AccountResponse(BaseModel):
    account_id: str
    balance: float


def _http_error(action: str, error: Exception) -> HTTPException:
    detail = sanitize_message(error)
    logger.error(f"{action} failed: {detail}")
    status_code = 400 if isinstance(error, ConfigurationError) else 502
    return HTTPException(status_code=status_code, detail=f"{action} failed: {detail}")


def create_app(client: ShadeClient) -> FastAPI:
    """Build the API around an already created client."""
    app = FastAPI(title="Shade Agent API")
    app.state.client = client

    @app.get("/health", response_model=HealthResponse)  # type: ignore[misc]
    async def get_health() -> HealthResponse:
        return HealthResponse(status="ok", account_id=client.account_id(), in_tee=client.in_tee)

    @app.get("/agent/account", response_model=AccountResponse)  # type: ignore[misc]
    async def get_account() -> AccountResponse:
        """Agent account id and its balance in NEAR."""
        try:
            balance = await client.balance()
        except Exception as e:
            raise _http_error("Balance query", e) from None
        return AccountResponse(account_id=client.account_id(), balance=balance)

    @app.get("/agent/status", response_model=AgentStatus)  # type: ignore[misc]
    async def get_status() -> AgentStatus:
        try:
            return await client.registration_status()
        except Exception as e:
            raise _http_error("Registration status", e) from None

    @app.get("/agent/attestation", response_model=Attestation)  # type: ignore[misc]
    async def get_attestation() -> Attestation:
        """
        Current attestation of the agent.

        Outside a TEE this is the null attestation.
        """
        try:
            return await client.get_attestation()
        except Exception as e:
            raise _http_error("Attestation", e) from None

    return app
