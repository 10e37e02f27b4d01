# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_enclave

import os
import sys
from typing import Any

from loguru import logger

from shade_agent.redaction import sanitize, sanitize_message

__all__ = ["logger"]


def _redact_record(record: Any) -> None:
    """Loguru patcher: no record reaches a sink before its secrets are scrubbed."""
    record["message"] = sanitize_message(record["message"])
    record["extra"].update(sanitize(dict(record["extra"])))


# Remove default handler
logger.remove()
logger.configure(patcher=_redact_record)

# Sink 1: stderr (human-readable). diagnose=False keeps local variables out of tracebacks.
logger.add(
    sys.stderr,
    level=os.getenv("SHADE_AGENT_LOG_LEVEL", "INFO").upper(),
    format=(
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level>"
    ),
    backtrace=False,
    diagnose=False,
)

# Sink 2: optional JSON file with rotation
_log_file = os.getenv("SHADE_AGENT_LOG_FILE")
if _log_file:
    logger.add(
        _log_file,
        rotation="500 MB",
        retention="10 days",
        serialize=True,
        enqueue=True,
        level="INFO",
        backtrace=False,
        diagnose=False,
    )
