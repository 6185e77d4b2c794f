"""Stable repositioning of elements inside order-significant lists."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List

from bridge_errors import BoundsError, NotFoundError, issue
from modelkit.names import names_match


@dataclass(frozen=True)
class MovePlan:
    old_position: int
    new_position: int
    count: int

    def as_dict(self) -> dict:
        return {
            "old_position": self.old_position,
            "new_position": self.new_position,
            "count": self.count,
        }


def check_position(new_position: Any, count: int, path: str = "new_position") -> int:
    if isinstance(new_position, bool) or not isinstance(new_position, int):
        raise BoundsError(
            "new_position must be an integer",
            [issue("POSITION_INVALID", "new_position must be an integer", path, {"value": new_position})],
        )
    if new_position < 0 or new_position >= count:
        message = f"new_position {new_position} is out of range; valid positions are 0..{count - 1}"
        if count == 0:
            message = "list is empty; there is nothing to move"
        raise BoundsError(
            message,
            [issue("POSITION_OUT_OF_RANGE", message, path, {"value": new_position, "count": count})],
        )
    return new_position


def plan_move(items: List[Any], key: str, name: Any, new_position: Any) -> MovePlan:
    """Locate ``name`` by its ``key`` field and check the target position.

    Raises NotFoundError when the element is absent and BoundsError when
    ``new_position`` falls outside ``[0, len(items))``.
    """
    old_position = None
    for idx, item in enumerate(items):
        if isinstance(item, dict) and names_match(item.get(key), name):
            old_position = idx
            break
    if old_position is None:
        available = [item.get(key) for item in items if isinstance(item, dict)]
        raise NotFoundError(
            f'"{name}" not found',
            [issue("ELEMENT_NOT_FOUND", f'"{name}" not found', key, {"name": name, "available": available})],
        )
    count = len(items)
    return MovePlan(old_position, check_position(new_position, count), count)


def move_item(items: List[Any], old_position: int, new_position: int) -> List[Any]:
    """Return a new list with the element at ``old_position`` moved to ``new_position``."""
    count = len(items)
    if not 0 <= old_position < count:
        raise BoundsError(f"old position {old_position} is out of range")
    check_position(new_position, count)
    out = list(items)
    item = out.pop(old_position)
    out.insert(new_position, item)
    return out
