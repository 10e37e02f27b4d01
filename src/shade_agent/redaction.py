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
Secret Redaction.

Scrubs private key material from anything that leaves the agent: exception messages,
log records and API error payloads. Rules are applied in order:

1. Key-name rules, checked before descending into a mapping's values.
2. Keyword rules, which replace a whole string when it mentions a secret key.
3. Token rules, which replace key-prefixed tokens inside a string.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, FrozenSet, List, Optional, Pattern

from pydantic import BaseModel

from shade_agent.exceptions import ShadeAgentError

REDACTED = "[REDACTED]"
FALLBACK_MESSAGE = "An error occurred"


def _normalize_key(key: str) -> str:
    return re.sub(r"[\s_\-]", "", key).lower()


@dataclass(frozen=True)
class PatternRule:
    """A string test paired with the replacer applied when it matches."""

    pattern: Pattern[str]
    replacer: Callable[[str, Pattern[str]], str]

    def apply(self, value: str) -> str:
        if self.pattern.search(value) is None:
            return value
        return self.replacer(value, self.pattern)


def _replace_whole(value: str, pattern: Pattern[str]) -> str:
    return REDACTED


def _replace_matches(value: str, pattern: Pattern[str]) -> str:
    return pattern.sub(REDACTED, value)


DEFAULT_SENSITIVE_KEYS: FrozenSet[str] = frozenset({"privatekey", "secretkey"})

DEFAULT_STRING_RULES: List[PatternRule] = [
    PatternRule(re.compile(r"(private|secret)[_\-]?key", re.IGNORECASE), _replace_whole),
    PatternRule(re.compile(r"ed25519:\S+"), _replace_matches),
    PatternRule(re.compile(r"secp256k1:\S+"), _replace_matches),
]


class SecretRedactor:
    """
    Recursive redaction engine over str | number | bool | None | list | tuple | dict.

    Values that cannot carry a key (numbers, booleans, None) are returned as-is.
    Exceptions and pydantic models are reduced to their message / dumped fields first.
    """

    def __init__(
        self,
        sensitive_keys: Optional[FrozenSet[str]] = None,
        string_rules: Optional[List[PatternRule]] = None,
    ) -> None:
        self.sensitive_keys = sensitive_keys if sensitive_keys is not None else DEFAULT_SENSITIVE_KEYS
        self.string_rules = string_rules if string_rules is not None else DEFAULT_STRING_RULES

    def is_sensitive_key(self, key: Any) -> bool:
        return isinstance(key, str) and _normalize_key(key) in self.sensitive_keys

    def redact_string(self, value: str) -> str:
        for rule in self.string_rules:
            value = rule.apply(value)
        return value

    def redact(self, value: Any) -> Any:
        """
        Return a redacted copy of ``value``.

        Circular or excessively deep structures collapse to ``[REDACTED]`` rather than
        risk emitting a partially scrubbed payload.
        """
        try:
            return self._redact_recursive(value)
        except RecursionError:
            return REDACTED

    def _redact_recursive(self, value: Any) -> Any:
        if value is None or isinstance(value, (bool, int, float)):
            return value

        if isinstance(value, str):
            return self.redact_string(value)

        if isinstance(value, BaseException):
            return self.redact_string(str(value))

        if isinstance(value, BaseModel):
            return self._redact_recursive(value.model_dump())

        if isinstance(value, dict):
            clean = {}
            for k, v in value.items():
                if self.is_sensitive_key(k):
                    clean[k] = REDACTED
                else:
                    clean[k] = self._redact_recursive(v)
            return clean

        if isinstance(value, list):
            return [self._redact_recursive(v) for v in value]

        if isinstance(value, tuple):
            return tuple(self._redact_recursive(v) for v in value)

        return value


_default_redactor = SecretRedactor()


def sanitize(value: Any) -> Any:
    """Redact ``value`` with the default rules."""
    return _default_redactor.redact(value)


def sanitize_message(value: Any) -> str:
    """Redact ``value`` and render it as a single message string."""
    result = sanitize(value)
    if isinstance(result, (dict, list, tuple)):
        return json.dumps(result, default=str)
    return str(result) if result is not None else ""


def to_throwable(error: Any) -> Exception:
    """
    Build an exception that is safe to raise past the agent boundary.

    Errors raised by this package keep their class; anything else becomes a
    ``ShadeAgentError``. Only the top-level message survives: causes and contexts are
    never included. Raise the result with ``from None``.
    """
    message = sanitize_message(error) or FALLBACK_MESSAGE

    if isinstance(error, ShadeAgentError):
        try:
            return type(error)(message)
        except TypeError:
            return ShadeAgentError(message)
    return ShadeAgentError(message)
