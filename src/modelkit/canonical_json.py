"""Deterministic JSON encoding for model documents."""

from __future__ import annotations

import json
import math
from typing import Any

from .pointer import join_pointer


class CanonicalJsonTypeError(TypeError):
    """Raised when a model node is not plain JSON data."""


def _check_node(node: Any, pointer: str) -> None:
    if isinstance(node, dict):
        for key, child in node.items():
            if not isinstance(key, str):
                raise CanonicalJsonTypeError(
                    f"Non-string key {key!r} at {pointer or '/'}"
                )
            _check_node(child, join_pointer(pointer, key))
        return
    if isinstance(node, list):
        for idx, child in enumerate(node):
            _check_node(child, join_pointer(pointer, idx))
        return
    if isinstance(node, float) and not math.isfinite(node):
        raise ValueError(f"Non-finite number at {pointer or '/'}: {node!r}")
    if node is None or isinstance(node, (str, int, float, bool)):
        return
    raise CanonicalJsonTypeError(
        f"Unsupported value of type {type(node).__name__} at {pointer or '/'}"
    )


def canonical_dumps(doc: Any) -> str:
    """Encode a model (or any sub-tree) to canonical JSON.

    Object keys are sorted at every depth, list order is kept as-is (list
    order is meaningful in a model), output is compact and non-ASCII text is
    written verbatim. Errors point at the offending node with a JSON Pointer.
    """
    _check_node(doc, "")
    return json.dumps(
        doc,
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )
