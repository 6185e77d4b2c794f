"""JSON Pointer (RFC 6901) helpers used to address nodes inside a model."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Tuple


@dataclass
class PointerResolveError(Exception):
    message: str
    segment: str
    pointer_so_far: str

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.message} (segment={self.segment!r}, pointer={self.pointer_so_far!r})"


def decode_segment(segment: str) -> str:
    return segment.replace("~1", "/").replace("~0", "~")


def encode_segment(segment: str) -> str:
    return segment.replace("~", "~0").replace("/", "~1")


def parse_pointer(pointer: str) -> List[str]:
    if pointer == "":
        return []
    parts = pointer.split("/")
    if parts and parts[0] == "":
        parts = parts[1:]
    return [decode_segment(p) for p in parts]


def join_pointer(base: str, *segments: Any) -> str:
    """Append raw segments (keys or list indices) to an existing pointer."""
    out = base
    for segment in segments:
        out = f"{out}/{encode_segment(str(segment))}"
    return out


def parent_pointer(pointer: str) -> Tuple[str, str]:
    """Split a pointer into (parent pointer, last decoded token)."""
    tokens = parse_pointer(pointer)
    if not tokens:
        raise PointerResolveError("Pointer has no parent", "", "")
    parent = "".join(f"/{encode_segment(t)}" for t in tokens[:-1])
    return parent, tokens[-1]


def _step(current: Any, token: str, pointer_so_far: str) -> Any:
    if isinstance(current, dict):
        if token not in current:
            raise PointerResolveError("Missing object key", token, pointer_so_far)
        return current[token]
    if isinstance(current, list):
        if not token.isdigit():
            raise PointerResolveError("Invalid list index", token, pointer_so_far)
        idx = int(token)
        if idx < 0 or idx >= len(current):
            raise PointerResolveError("List index out of range", token, pointer_so_far)
        return current[idx]
    raise PointerResolveError("Cannot traverse into non-container", token, pointer_so_far)


def get_value(doc: Any, pointer: str) -> Any:
    current = doc
    walked = ""
    for token in parse_pointer(pointer):
        current = _step(current, token, walked)
        walked = join_pointer(walked, token)
    return current


def get_container_and_token(doc: Any, pointer: str) -> Tuple[Any, str]:
    parent, token = parent_pointer(pointer)
    return get_value(doc, parent), token
