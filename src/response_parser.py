"""
Defensive parsing of the oracle's JSON reply.

The model is asked for strict JSON but sometimes wraps it in markdown,
prefixes chatter, or uses key names from older prompt generations.
Nothing here raises: anything unusable becomes the fixed fallback reply.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "Could you please repeat that?"

MESSAGE_KEYS = ("ai_message", "message", "response")
EXTRACTION_KEYS = ("extracted_data", "updated_data", "newly_extracted_data")
COMPLETION_KEYS = ("is_complete", "completed")

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_OBJECT_SPAN = re.compile(r"\{[\s\S]*\}")


@dataclass
class OracleReply:
    ai_message: str = FALLBACK_MESSAGE
    extracted: dict[str, str] = field(default_factory=dict)
    claimed_complete: bool = False
    parsed: bool = False


def _load_object(raw: str) -> dict[str, Any] | None:
    text = _FENCE.sub("", raw.strip())
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        match = _OBJECT_SPAN.search(text)
        if not match:
            return None
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            return None
    return data if isinstance(data, dict) else None


def clean_extraction(extracted: Any) -> dict[str, str]:
    """Keep scalar values as strings; drop nulls and nested structures."""
    if not isinstance(extracted, dict):
        return {}

    cleaned: dict[str, str] = {}
    for key, value in extracted.items():
        if value is None or isinstance(value, (dict, list)):
            continue
        if isinstance(value, bool):
            cleaned[str(key)] = "true" if value else "false"
        elif isinstance(value, str):
            cleaned[str(key)] = value
        else:
            cleaned[str(key)] = str(value)
    return cleaned


def _first(data: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def parse_oracle_reply(raw: str | None) -> OracleReply:
    """Turn raw model text into an OracleReply, falling back when unusable."""
    if not raw or not isinstance(raw, str):
        logger.warning("Oracle returned an empty reply")
        return OracleReply()

    data = _load_object(raw)
    if data is None:
        logger.warning(f"Oracle reply was not valid JSON ({len(raw)} characters)")
        return OracleReply()

    message = _first(data, MESSAGE_KEYS)
    completion = _first(data, COMPLETION_KEYS)

    return OracleReply(
        ai_message=message.strip() if isinstance(message, str) else "",
        extracted=clean_extraction(_first(data, EXTRACTION_KEYS)),
        claimed_complete=completion is True,
        parsed=True,
    )
