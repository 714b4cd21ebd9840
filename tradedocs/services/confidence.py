"""
Confidence triage over extraction payloads.

An extraction payload is viewed as a tree of four node kinds:

- Leaf: an object carrying both a ``value`` and a ``confidence`` tag
- Record: any other object, recursed into by key
- Sequence: an ordered list, recursed into by index
- Scalar: anything else (untagged strings such as ``transport_type_detected``)

Field paths are dotted and index-qualified, e.g. ``invoices[2].invoice_number``,
so a reviewer can find the exact instance of a repeated sub-record.
"""

import re
import statistics
from dataclasses import dataclass
from typing import Any, Iterator

from pydantic import BaseModel

from ..models.extraction import CONFIDENCE_WEIGHTS, DEFAULT_CONFIDENCE

MIN_CONFIDENCE = DEFAULT_CONFIDENCE
MAX_CONFIDENCE = max(CONFIDENCE_WEIGHTS.values())


@dataclass(frozen=True)
class Leaf:
    value: Any
    confidence: Any
    raw: dict


@dataclass(frozen=True)
class Record:
    fields: dict[str, "Node"]


@dataclass(frozen=True)
class Sequence:
    items: list["Node"]


@dataclass(frozen=True)
class Scalar:
    value: Any


Node = Leaf | Record | Sequence | Scalar


@dataclass(frozen=True)
class TriageFinding:
    """One Low-confidence leaf that needs a human."""
    field_path: str
    value: str | None


def to_node(data: Any) -> Node:
    """Build the node tree for a payload (pydantic model or plain JSON data)."""
    match data:
        case BaseModel():
            return to_node(data.model_dump())
        case {"value": value, "confidence": confidence}:
            return Leaf(value=value, confidence=confidence, raw=data)
        case dict():
            return Record({str(key): to_node(child) for key, child in data.items()})
        case list() | tuple():
            return Sequence([to_node(item) for item in data])
        case _:
            return Scalar(data)


def _join(prefix: str, key: str) -> str:
    return f"{prefix}.{key}" if prefix else key


def iter_leaves(node: Node, path: str = "") -> Iterator[tuple[str, Leaf]]:
    """Depth-first walk yielding (field_path, leaf) in document order."""
    match node:
        case Leaf():
            yield path, node
        case Record(fields=fields):
            for key, child in fields.items():
                yield from iter_leaves(child, _join(path, key))
        case Sequence(items=items):
            for index, child in enumerate(items):
                yield from iter_leaves(child, f"{path}[{index}]")
        case Scalar():
            return


def triage(payload: Any) -> list[TriageFinding]:
    """Return one finding per leaf whose confidence is Low."""
    findings = []
    for path, leaf in iter_leaves(to_node(payload)):
        if leaf.confidence == "Low":
            value = None if leaf.value is None else str(leaf.value)
            findings.append(TriageFinding(field_path=path, value=value))
    return findings


def overall_confidence(payload: Any) -> float:
    """
    Mean of the numeric weights of every confidence-tagged leaf.

    High -> 0.95, Medium -> 0.75, anything else -> 0.5. A payload with no
    tagged leaves scores 0.5, so the result always lies in [0.5, 0.95].
    """
    scores = [
        CONFIDENCE_WEIGHTS.get(leaf.confidence, DEFAULT_CONFIDENCE)
        for _, leaf in iter_leaves(to_node(payload))
        if leaf.confidence
    ]
    if not scores:
        return DEFAULT_CONFIDENCE
    return min(max(statistics.fmean(scores), MIN_CONFIDENCE), MAX_CONFIDENCE)


_PATH_TOKEN = re.compile(r"([^.\[\]]+)|\[(\d+)\]")


def resolve_path(payload: Any, field_path: str) -> Any:
    """
    Follow a triage field path back into the payload.

    Raises KeyError / IndexError when the path does not exist.
    """
    current = payload.model_dump() if isinstance(payload, BaseModel) else payload
    for key, index in _PATH_TOKEN.findall(field_path):
        current = current[int(index)] if index else current[key]
    return current
