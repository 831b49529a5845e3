"""Accessors over transport response objects and JSON diff extraction."""

import json
import logging
import re
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

_TEXT_CONTENT_TYPES = ("text", "output_text", "input_text")
_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


def _metadata(response: Any) -> Mapping:
    if not isinstance(response, Mapping):
        return {}
    metadata = response.get("metadata")
    return metadata if isinstance(metadata, Mapping) else {}


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def get_response_id(response: Any) -> str | None:
    if not isinstance(response, Mapping):
        return None
    return _str_or_none(response.get("id"))


def get_response_channel(response: Any) -> str | None:
    return _str_or_none(_metadata(response).get("channel"))


def get_response_workspace(response: Any) -> str | None:
    return _str_or_none(_metadata(response).get("workspaceKey"))


def get_correlation_id(response: Any) -> str | None:
    return _str_or_none(_metadata(response).get("correlationId"))


def parse_json_text(text: str) -> Any | None:
    """Parse a JSON blob that a model may have wrapped in a code fence or prose."""
    payload = (text or "").strip()
    if not payload:
        return None

    match = _FENCE_RE.search(payload)
    if match:
        payload = match.group(1).strip()

    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        pass

    start = payload.find("{")
    end = payload.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        return json.loads(payload[start:end + 1])
    except json.JSONDecodeError:
        return None


def iter_content_texts(response: Any):
    """Yield every text payload in a response: plain text blocks and audio transcripts."""
    if not isinstance(response, Mapping):
        return
    output = response.get("output")
    if not isinstance(output, list):
        return

    for item in output:
        if not isinstance(item, Mapping):
            continue
        content = item.get("content")
        if not isinstance(content, list):
            continue
        for block in content:
            if not isinstance(block, Mapping):
                continue
            block_type = block.get("type")
            if block_type in _TEXT_CONTENT_TYPES and isinstance(block.get("text"), str):
                yield block["text"]
            elif block_type == "audio" and isinstance(block.get("transcript"), str):
                yield block["transcript"]


def parse_response_json(response: Any) -> dict | None:
    """Return the first JSON object found in the response's content, or None."""
    for text in iter_content_texts(response):
        parsed = parse_json_text(text)
        if isinstance(parsed, dict):
            return parsed
    logger.debug(f"No JSON object in response {get_response_id(response)}")
    return None
