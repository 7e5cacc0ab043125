"""
Safety hooks around the oracle call.
Screens user input before it is embedded in a prompt, and masks contact
details before a record is written to the logs.
"""

import logging
import re
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

# Patterns for PII masking in log output
PII_PATTERNS = {
    "email": re.compile(r"\b([A-Za-z0-9._%+-]+)@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b"),
    "phone": re.compile(r"\+?\d[\d\s().-]{7,}\d"),
}

# Prompt-injection patterns
MALICIOUS_PATTERNS = [
    r"ignore (all )?previous instructions",
    r"disregard.*(rules|instructions)",
    r"you are now",
    r"system prompt",
    r"<script>",
    r"DROP TABLE",
]


class UnsafeInputError(ValueError):
    """User message looks like an attempt to override the counselor instructions."""


def screen_user_message(message: str) -> None:
    """
    Reject messages that try to rewrite the model's instructions.

    Raises:
        UnsafeInputError: if a malicious pattern matches
    """
    for pattern in MALICIOUS_PATTERNS:
        if re.search(pattern, message or "", re.IGNORECASE):
            logger.warning(f"Malicious prompt detected: {pattern}")
            raise UnsafeInputError("Invalid input detected. Please rephrase your answer.")


def redact_value(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    value = PII_PATTERNS["email"].sub(r"****@\2", value)
    return PII_PATTERNS["phone"].sub("***-***-****", value)


def redact_record(record: Mapping[str, Any] | None) -> dict[str, Any]:
    """Copy of ``record`` safe to log."""
    if not isinstance(record, Mapping):
        return {}
    return {key: redact_value(value) for key, value in record.items()}
