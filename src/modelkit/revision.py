"""Revision tokens for model documents."""

from __future__ import annotations

import hashlib
from typing import Any

from .canonical_json import canonical_dumps


REVISION_PREFIX = "sha256:"


def model_revision(doc: Any) -> str:
    """Return a content hash that changes whenever the model changes."""
    digest = hashlib.sha256(canonical_dumps(doc).encode("utf-8")).hexdigest()
    return f"{REVISION_PREFIX}{digest}"


def is_revision(value: Any) -> bool:
    return (
        isinstance(value, str)
        and value.startswith(REVISION_PREFIX)
        and len(value) == len(REVISION_PREFIX) + 64
    )
