# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_enclave

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from shade_agent.exceptions import ConfigurationError
from shade_agent.main import main, run_agent


def test_main_defaults() -> None:
    with patch("shade_agent.main.run_agent", new=AsyncMock()) as mock_run:
        main([])
    mock_run.assert_awaited_once_with("127.0.0.1", 3000, False)


def test_main_arguments() -> None:
    with patch("shade_agent.main.run_agent", new=AsyncMock()) as mock_run:
        main(["--port", "8080", "--skip-registration"])
    mock_run.assert_awaited_once_with("127.0.0.1", 8080, True)


def test_main_failure_exits() -> None:
    with patch("shade_agent.main.run_agent", new=AsyncMock(side_effect=ConfigurationError("bad"))):
        with pytest.raises(SystemExit) as exc_info:
            main([])
    assert exc_info.value.code == 1


def make_agent() -> MagicMock:
    agent = MagicMock()
    agent.__aenter__.return_value = agent
    agent.account_id.return_value = "ab" * 32
    return agent


@pytest.mark.asyncio
class TestRunAgent:
    async def test_registers_then_serves(self) -> None:
        agent = make_agent()
        with (
            patch("shade_agent.main.load_config_from_env") as mock_config,
            patch("shade_agent.main.create_client", new=AsyncMock(return_value=agent)) as mock_create,
            patch("shade_agent.main.register_when_whitelisted", new=AsyncMock()) as mock_register,
            patch("shade_agent.main.uvicorn") as mock_uvicorn,
        ):
            mock_uvicorn.Server.return_value.serve = AsyncMock()
            await run_agent("127.0.0.1", 3000, False)

        mock_create.assert_awaited_once_with(mock_config.return_value)
        mock_register.assert_awaited_once_with(agent)
        mock_uvicorn.Config.assert_called_once()
        assert mock_uvicorn.Config.call_args.kwargs["host"] == "127.0.0.1"
        mock_uvicorn.Server.return_value.serve.assert_awaited_once()
        agent.__aexit__.assert_awaited_once()

    async def test_skip_registration(self) -> None:
        agent = make_agent()
        with (
            patch("shade_agent.main.load_config_from_env"),
            patch("shade_agent.main.create_client", new=AsyncMock(return_value=agent)),
            patch("shade_agent.main.register_when_whitelisted", new=AsyncMock()) as mock_register,
            patch("shade_agent.main.uvicorn") as mock_uvicorn,
        ):
            mock_uvicorn.Server.return_value.serve = AsyncMock()
            await run_agent("127.0.0.1", 3000, True)

        mock_register.assert_not_awaited()
