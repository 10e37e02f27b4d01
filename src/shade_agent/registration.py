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
Registration loop.

Waits until the agent is whitelisted, keeps it funded and registers it in the agent
contract.
"""

from typing import Any

import anyio

from shade_agent.client import ShadeClient
from shade_agent.utils.logger import logger

DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_MIN_BALANCE = 0.2
DEFAULT_FUND_AMOUNT = 0.3


async def register_when_whitelisted(
    client: ShadeClient,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    min_balance: float = DEFAULT_MIN_BALANCE,
    fund_amount: float = DEFAULT_FUND_AMOUNT,
) -> Any:
    """
    Poll the contract until the agent is whitelisted, then register it.

    When the balance is below ``min_balance`` and a sponsor is configured the agent is
    topped up with ``fund_amount`` NEAR before registering.

    Returns:
        Any: The truthy result of ``register_agent``.
    """
    logger.info(f"Agent account id: {client.account_id()}")
    logger.info("Waiting for agent to be whitelisted...")

    while True:
        status = await client.registration_status()
        if status.whitelisted:
            if client.config.sponsor is not None and await client.balance() < min_balance:
                await client.fund(fund_amount)
            registered = await client.register()
            if registered:
                logger.info("Agent registered.")
                return registered
            logger.warning("Registration was not accepted, retrying.")
        await anyio.sleep(poll_interval)
