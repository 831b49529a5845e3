"""Diff ingress: op normalization, structural validation and canonical op models.

Extraction output arrives in one of two shapes per op:

    {"type": "add_node", "label": "kayaking"}
    {"add_node": {"label": "kayaking"}}

Everything past this module sees only the canonical pydantic models below.
"""

import logging
from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class _OpModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, allow_inf_nan=False)

    def payload(self) -> dict[str, Any]:
        """Payload fields that were actually provided, without the tag."""
        return self.model_dump(exclude_none=True, exclude={"type"})


class _NodeOp(_OpModel):
    label: str = Field(..., min_length=1)
    summary: str | None = None
    keywords: list[str] | None = None
    salience: int | float | None = None


class AddNodeOp(_NodeOp):
    type: Literal["add_node"]


class UpdateNodeOp(_NodeOp):
    type: Literal["update_node"]


class AddEdgeOp(_OpModel):
    type: Literal["add_edge"]
    sourceLabel: str = Field(..., min_length=1)
    targetLabel: str = Field(..., min_length=1)
    relation: str | None = None
    confidence: int | float | None = None


class RemoveEdgeOp(_OpModel):
    type: Literal["remove_edge"]
    sourceLabel: str = Field(..., min_length=1)
    targetLabel: str = Field(..., min_length=1)
    relation: str | None = None


Op = Annotated[
    Union[AddNodeOp, UpdateNodeOp, AddEdgeOp, RemoveEdgeOp],
    Field(discriminator="type"),
]

_OP_ADAPTER: TypeAdapter = TypeAdapter(Op)


def normalize_op(raw: Any) -> dict | None:
    """
    Convert a wire op to explicit-tag form.

    An explicit ``type`` wins. Otherwise the first key names the type and the
    fields of its object value are spliced up one level. Returns None when
    neither form applies.
    """
    if not isinstance(raw, Mapping):
        return None
    if raw.get("type"):
        return dict(raw)

    keys = list(raw.keys())
    if not keys:
        return None
    nested = raw[keys[0]]
    if isinstance(nested, Mapping):
        return {**nested, "type": keys[0]}
    return None


def validate(diff: Any) -> bool:
    """Structural check only. Unknown op types pass; they are skipped when applied."""
    return normalize_diff(diff) is not None


def normalize_diff(diff: Any) -> list[dict] | None:
    """Return the diff's ops in explicit-tag form, or None if the diff is malformed."""
    if not isinstance(diff, Mapping):
        return None
    ops = diff.get("ops")
    if not isinstance(ops, list):
        return None

    tagged = []
    for raw in ops:
        op = normalize_op(raw)
        if op is None:
            logger.debug(f"Rejecting diff: op without type: {raw!r}")
            return None
        tagged.append(op)
    return tagged


def parse_op(op: Any) -> AddNodeOp | UpdateNodeOp | AddEdgeOp | RemoveEdgeOp | None:
    """
    Coerce a tagged (or wire-form) op into its canonical model.
    Returns None for unknown op types and ops with missing or mistyped fields.
    """
    if isinstance(op, _OpModel):
        return op

    tagged = normalize_op(op)
    if tagged is None:
        return None

    try:
        return _OP_ADAPTER.validate_python(tagged)
    except ValidationError as e:
        logger.debug(f"Skipping op {tagged.get('type')!r}: {e.error_count()} validation error(s)")
        return None
