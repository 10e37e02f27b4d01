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
Entry point for the Shade Agent.

Creates the agent from the environment, registers it once it is whitelisted and serves
the management API on the loopback interface.
"""

import argparse
import sys
from typing import Optional

import anyio
import uvicorn

from shade_agent.api import create_app
from shade_agent.client import create_client
from shade_agent.config import load_config_from_env
from shade_agent.registration import register_when_whitelisted
from shade_agent.utils.logger import logger


async def run_agent(host: str, port: int, skip_registration: bool) -> None:
    """
    Run the agent until the API server stops.

    Everything shares one event loop so the client's HTTP connections stay usable by the
    API handlers.
    """
    config = load_config_from_env()
    async with await create_client(config) as client:
        if not skip_registration:
            await register_when_whitelisted(client)

        logger.info(f"Starting Management API on {host}:{port}")
        server = uvicorn.Server(uvicorn.Config(create_app(client), host=host, port=port, log_level="info"))
        await server.serve()


def main(args: Optional[list[str]] = None) -> None:
    """
    Entry point for the ``shade-agent`` command.

    Args:
        args (Optional[list[str]]): Command line arguments. Defaults to sys.argv[1:].
    """
    parser = argparse.ArgumentParser(description="Shade Agent")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Management API bind address")
    parser.add_argument("--port", "-p", type=int, default=3000, help="Management API port")
    parser.add_argument(
        "--skip-registration",
        action="store_true",
        help="Serve the API without waiting for whitelisting and registration",
    )
    parsed_args = parser.parse_args(args)

    logger.info("Starting Shade Agent...")
    if parsed_args.host not in ("127.0.0.1", "localhost", "::1"):
        logger.warning(f"Management API bound to non-loopback address {parsed_args.host}")

    try:
        anyio.run(run_agent, parsed_args.host, parsed_args.port, parsed_args.skip_registration)
    except Exception as e:
        logger.exception(f"Failed to start Shade Agent: {e}")
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover
    main()  # pragma: no cover
