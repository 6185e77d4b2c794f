"""Name matching and naming-convention helpers."""

from __future__ import annotations

import re
from typing import Any


_PASCAL_CASE_RE = re.compile(r"^[A-Z][A-Za-z0-9]*$")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_name(value: Any) -> str:
    """Lower-case a name and drop all whitespace ("Customer Order" -> "customerorder")."""
    if not isinstance(value, str):
        return ""
    return _WHITESPACE_RE.sub("", value).lower()


def names_match(a: Any, b: Any) -> bool:
    left = normalize_name(a)
    return bool(left) and left == normalize_name(b)


def is_pascal_case(value: Any) -> bool:
    return isinstance(value, str) and bool(_PASCAL_CASE_RE.match(value))


def display_text(name: str) -> str:
    """Split a PascalCase name into words: "XMLParserRole" -> "XML Parser Role"."""
    if not name:
        return ""
    spaced = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", name)
    spaced = re.sub(r"(?<=[A-Z])(?=[A-Z][a-z])", " ", spaced)
    return spaced.strip()
