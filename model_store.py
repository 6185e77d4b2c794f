"""In-memory model document store with an atomic apply pipeline."""

from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Tuple

from modelkit.pointer import (
    PointerResolveError,
    get_container_and_token,
    get_value,
    join_pointer,
)
from modelkit.revision import model_revision
from reorder import move_item


Issue = Dict[str, Any]

logger = logging.getLogger("modelbridge.store")

_HISTORY_LIMIT = 200


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def _list_index(container: list, token: str, allow_end: bool) -> int:
    if token == "-" and allow_end:
        return len(container)
    if not token.isdigit():
        raise IndexError("Invalid list index")
    idx = int(token)
    upper = len(container) if allow_end else len(container) - 1
    if idx < 0 or idx > upper:
        raise IndexError("List index out of range")
    return idx


def _apply_add(doc: Any, path: str, value: Any) -> None:
    if path == "":
        raise ValueError("Cannot add at document root")
    container, token = get_container_and_token(doc, path)
    if isinstance(container, dict):
        container[token] = value
        return
    if isinstance(container, list):
        container.insert(_list_index(container, token, allow_end=True), value)
        return
    raise TypeError("Cannot add into non-container")


def _apply_remove(doc: Any, path: str) -> Any:
    container, token = get_container_and_token(doc, path)
    if isinstance(container, dict):
        if token not in container:
            raise KeyError("Missing object key")
        return container.pop(token)
    if isinstance(container, list):
        return container.pop(_list_index(container, token, allow_end=False))
    raise TypeError("Cannot remove from non-container")


def _apply_replace(doc: Any, path: str, value: Any) -> None:
    if path == "":
        raise ValueError("Cannot replace document root")
    container, token = get_container_and_token(doc, path)
    if isinstance(container, dict):
        if token not in container:
            raise KeyError("Missing object key")
        container[token] = value
        return
    if isinstance(container, list):
        container[_list_index(container, token, allow_end=False)] = value
        return
    raise TypeError("Cannot replace in non-container")


def _apply_merge(doc: Any, path: str, fields: dict) -> None:
    target = get_value(doc, path)
    if not isinstance(target, dict):
        raise TypeError("Cannot merge into non-object")
    if not isinstance(fields, dict):
        raise TypeError("Merge value must be an object")
    for key, value in fields.items():
        target[key] = copy.deepcopy(value)


def _apply_move(doc: Any, from_path: str, to_index: int) -> None:
    # Bounds are checked here so a bad move fails the apply like any other op.
    container, token = get_container_and_token(doc, from_path)
    if not isinstance(container, list):
        raise TypeError("Move source is not a list element")
    old_index = _list_index(container, token, allow_end=False)
    if isinstance(to_index, bool) or not isinstance(to_index, int) or to_index < 0 or to_index >= len(container):
        raise IndexError("Move target out of range")
    container[:] = move_item(container, old_index, to_index)


def _apply_ops(doc: Any, ops: List[dict]) -> None:
    for op in ops:
        name = op.get("op")
        if name == "add":
            _apply_add(doc, op["path"], copy.deepcopy(op["value"]))
        elif name == "remove":
            _apply_remove(doc, op["path"])
        elif name == "replace":
            _apply_replace(doc, op["path"], copy.deepcopy(op["value"]))
        elif name == "merge":
            _apply_merge(doc, op["path"], op["value"])
        elif name == "move":
            _apply_move(doc, op["from"], op["to_index"])
        else:
            raise ValueError(f"Unsupported op: {name}")


def _empty_model() -> dict:
    return {"namespace": [{"name": "Default", "object": [], "userStory": []}]}


class ModelStore:
    """Owns the canonical model document.

    Reads hand out deep copies or iterate the live tree without modifying it.
    Every write goes through ``apply``, which works on a copy and swaps it in
    only when all ops succeed, so readers never see a partially applied change.
    """

    def __init__(self, model: dict | None = None) -> None:
        doc = copy.deepcopy(model) if model is not None else _empty_model()
        if not isinstance(doc, dict):
            raise TypeError("model must be a JSON object")
        namespaces = doc.setdefault("namespace", [])
        if not isinstance(namespaces, list):
            raise TypeError("model.namespace must be a list")
        if not namespaces:
            namespaces.append({"name": "Default", "object": [], "userStory": []})
        for ns in namespaces:
            if isinstance(ns, dict) and not isinstance(ns.get("object"), list):
                ns["object"] = []
        self._doc = doc
        self._dirty = False
        self._revision = model_revision(doc)
        self._history: List[dict] = []

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def revision(self) -> str:
        return self._revision

    @property
    def document(self) -> dict:
        """The live tree. Callers must treat it as read-only."""
        return self._doc

    def get_model(self) -> dict:
        return copy.deepcopy(self._doc)

    def get_node(self, pointer: str) -> Any:
        return copy.deepcopy(get_value(self._doc, pointer))

    def iter_namespaces(self) -> Iterator[Tuple[str, dict]]:
        for ns_idx, ns in enumerate(self._doc.get("namespace") or []):
            if isinstance(ns, dict):
                yield join_pointer("/namespace", ns_idx), ns

    def iter_objects(self) -> Iterator[Tuple[str, dict]]:
        """Yield (pointer, data object) pairs in tree order."""
        for ns_pointer, ns in self.iter_namespaces():
            for obj_idx, obj in enumerate(ns.get("object") or []):
                if isinstance(obj, dict):
                    yield join_pointer(ns_pointer, "object", obj_idx), obj

    def list_objects(self) -> list[dict]:
        return [copy.deepcopy(obj) for _, obj in self.iter_objects()]

    def status(self) -> dict:
        return {
            "dirty": self._dirty,
            "revision": self._revision,
            "object_count": sum(1 for _ in self.iter_objects()),
        }

    def history(self) -> list[dict]:
        return list(self._history)

    def mark_saved(self) -> None:
        self._dirty = False

    def apply(self, ops: List[dict], reason: str | None = None) -> dict:
        errors: List[Issue] = []
        warnings: List[Issue] = []

        if not isinstance(ops, list) or not ops:
            errors.append(_issue("APPLY_INVALID", "ops must be a non-empty list", "ops"))
            return {"ok": False, "errors": errors, "warnings": warnings, "revision": self._revision, "audit_id": None}

        for idx, op in enumerate(ops):
            if not isinstance(op, dict) or not isinstance(op.get("op"), str):
                errors.append(_issue("APPLY_INVALID", "op must be object with 'op'", f"ops[{idx}]"))
                return {"ok": False, "errors": errors, "warnings": warnings, "revision": self._revision, "audit_id": None}

        candidate = copy.deepcopy(self._doc)
        try:
            _apply_ops(candidate, ops)
        except (PointerResolveError, KeyError, IndexError, TypeError, ValueError) as exc:
            logger.warning("store_apply_failed reason=%s error=%s", reason, exc)
            errors.append(_issue("APPLY_FAILED", str(exc), "ops"))
            return {"ok": False, "errors": errors, "warnings": warnings, "revision": self._revision, "audit_id": None}

        try:
            new_revision = model_revision(candidate)
        except (TypeError, ValueError) as exc:
            errors.append(_issue("APPLY_MODEL_INVALID", str(exc), "model"))
            return {"ok": False, "errors": errors, "warnings": warnings, "revision": self._revision, "audit_id": None}

        from_revision = self._revision
        self._doc = candidate
        self._revision = new_revision
        self._dirty = True

        audit_id = str(uuid.uuid4())
        self._history.insert(
            0,
            {
                "audit_id": audit_id,
                "reason": reason,
                "op_count": len(ops),
                "from_revision": from_revision,
                "to_revision": new_revision,
                "at": _now(),
            },
        )
        del self._history[_HISTORY_LIMIT:]
        logger.info("store_applied reason=%s ops=%s revision=%s", reason, len(ops), new_revision)

        return {
            "ok": True,
            "errors": errors,
            "warnings": warnings,
            "revision": new_revision,
            "audit_id": audit_id,
        }

    def insert_entity(self, pointer: str, value: Any, reason: str | None = None) -> dict:
        return self.apply([{"op": "add", "path": pointer, "value": value}], reason=reason)

    def update_entity(self, pointer: str, fields: dict, reason: str | None = None) -> dict:
        return self.apply([{"op": "merge", "path": pointer, "value": fields}], reason=reason)

    def remove_entity(self, pointer: str, reason: str | None = None) -> dict:
        return self.apply([{"op": "remove", "path": pointer}], reason=reason)

    def move_entity(self, pointer: str, new_index: int, reason: str | None = None) -> dict:
        return self.apply([{"op": "move", "from": pointer, "to_index": new_index}], reason=reason)
