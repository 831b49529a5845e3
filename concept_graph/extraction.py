"""Extraction request construction."""

from collections.abc import Iterable, Mapping
from typing import Any

from .constants import CHANNEL, MAX_CONTEXT_TURNS

EXTRACTION_INSTRUCTIONS = (
    "You are a concept extractor. Return ONLY a JSON object with an \"ops\" array; "
    "no prose, no audio. Each op is an OBJECT with a \"type\" field where type is one of "
    "{add_node, update_node, add_edge, remove_edge}.\n\n"
    "For type=add_node or update_node, include: {\"type\": \"add_node|update_node\", "
    "\"label\": string, \"summary\"?: string, \"keywords\"?: string[], \"salience\"?: number 1-10}.\n"
    "For type=add_edge, include: {\"type\": \"add_edge\", \"sourceLabel\": string, "
    "\"targetLabel\": string, \"relation\"?: string, \"confidence\"?: number 0-1}.\n"
    "For type=remove_edge, include: {\"type\": \"remove_edge\", \"sourceLabel\": string, "
    "\"targetLabel\": string, \"relation\"?: string}.\n\n"
    "Analyze the conversation (most recent last) and produce minimal diffs strictly in "
    "this flat format. Conversation follows:\n\n"
)


def conversation_window(turns: Iterable[Mapping[str, Any]], max_turns: int = MAX_CONTEXT_TURNS) -> list[str]:
    """
    Format the most recent message turns as "role: text" lines.
    Turns with a non-message type are dropped before the window is cut.
    """
    lines = []
    for turn in turns:
        if turn.get("type", "message").lower() != "message":
            continue
        role = turn.get("role", "user")
        text = turn.get("text") or turn.get("title") or ""
        lines.append(f"{role}: {text}")
    return lines[-max_turns:] if max_turns > 0 else []


def build_extraction_request(
    window: list[str],
    correlation_id: str,
    workspace_key: str | None = None,
    channel: str = CHANNEL,
) -> dict:
    """
    Build an out-of-band extraction request. The window is passed inline; the
    model's own conversation memory, tools and audio are excluded.
    """
    metadata = {"channel": channel, "correlationId": correlation_id}
    if workspace_key:
        metadata["workspaceKey"] = workspace_key

    return {
        "type": "response.create",
        "response": {
            "conversation": "none",
            "modalities": ["text"],
            "tool_choice": "none",
            "instructions": EXTRACTION_INSTRUCTIONS + "\n".join(window),
            "metadata": metadata,
        },
    }
