"""Model document kernel utilities."""

from .canonical_json import CanonicalJsonTypeError, canonical_dumps
from .names import is_pascal_case, names_match, normalize_name
from .revision import model_revision

__all__ = [
    "CanonicalJsonTypeError",
    "canonical_dumps",
    "is_pascal_case",
    "model_revision",
    "names_match",
    "normalize_name",
]
