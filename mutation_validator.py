"""Pre-write validation: naming, uniqueness, referential integrity and enums.

Every ``validate_*`` method returns the full list of issues it found, never
stopping at the first one, so a caller can fix everything in one round trip.
An empty list means the mutation may be applied.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List

from entity_resolver import EntityResolver, Resolved
from modelkit.names import is_pascal_case, normalize_name
from modelkit.schema import (
    LOOKUP_PARENT_OBJECT,
    OBJECT_LIST_KEYS,
    PAGE_INIT_SUFFIXES,
    ROLE_OBJECT,
    ElementList,
    allowed_values,
    is_page_init_name,
    page_init_flow_name,
    workflow_kind,
)


Issue = Dict[str, Any]

# Both spellings occur in real models: properties use fkObjectName,
# workflow params and output variables use fKObjectName.
_FK_TARGET_FIELDS = ("fkObjectName", "fKObjectName")

_STORY_ROLE_PATTERNS = (
    re.compile(r"^A\s+\[?(\w+(?:\s+\w+)*)\]?\s+wants to", re.IGNORECASE),
    re.compile(r"^As an?\s+\[?(\w+(?:\s+\w+)*)\]?\s*,?\s*I want to", re.IGNORECASE),
)


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def _join(prefix: str, name: str) -> str:
    return f"{prefix}.{name}" if prefix else name


def _locked_workflow_fields(kind: str) -> List[str]:
    # isPage decides whether an objectWorkflow entry is a form or a flow.
    spec = workflow_kind(kind)
    locked = [element.key for element in spec.lists.values()]
    if spec.container == "objectWorkflow":
        locked.append("isPage")
    return locked


def extract_story_role(text: Any) -> str | None:
    """Role named by "A [Role] wants to ..." or "As a [Role], I want to ..."."""
    if not isinstance(text, str):
        return None
    normalized = " ".join(text.split())
    for pattern in _STORY_ROLE_PATTERNS:
        match = pattern.match(normalized)
        if match:
            return match.group(1).strip()
    return None


class MutationValidator:
    def __init__(self, resolver: EntityResolver) -> None:
        self._resolver = resolver

    # -- building blocks -------------------------------------------------

    def check_name(self, issues: List[Issue], value: Any, path: str, label: str) -> bool:
        if not isinstance(value, str) or not value.strip():
            issues.append(_issue("NAME_REQUIRED", f"{label} name is required", path))
            return False
        if not is_pascal_case(value):
            issues.append(
                _issue(
                    "NAME_NOT_PASCAL_CASE",
                    f'{label} name "{value}" must be PascalCase (leading capital letter, letters and digits only, no spaces)',
                    path,
                    {"value": value},
                )
            )
            return False
        return True

    def check_unique(
        self,
        issues: List[Issue],
        value: Any,
        existing: Iterable[Any],
        path: str,
        label: str,
        scope: str,
    ) -> bool:
        wanted = normalize_name(value)
        if not wanted:
            return True
        for other in existing:
            if normalize_name(other) == wanted:
                issues.append(
                    _issue(
                        "NAME_NOT_UNIQUE",
                        f'{label} "{value}" collides with existing "{other}" in {scope}',
                        path,
                        {"value": value, "existing": other, "scope": scope},
                    )
                )
                return False
        return True

    def check_fields(self, issues: List[Issue], fields: Any, prefix: str) -> None:
        if not isinstance(fields, dict):
            issues.append(_issue("FIELDS_INVALID", "fields must be an object", prefix or None))
            return
        for key, value in fields.items():
            values = allowed_values(key)
            if values is None:
                continue
            if value not in values:
                shown = ", ".join(f'"{v}"' for v in values)
                issues.append(
                    _issue(
                        "ENUM_INVALID",
                        f'{key} must be one of {shown}; received {value!r}',
                        _join(prefix, key),
                        {"value": value, "allowed": list(values)},
                    )
                )

    def check_updatable(self, issues: List[Issue], fields: Any, locked: Iterable[str], prefix: str) -> None:
        if not isinstance(fields, dict):
            return
        for key in locked:
            if key in fields:
                issues.append(
                    _issue(
                        "FIELD_NOT_UPDATABLE",
                        f"{key} cannot be changed through this command",
                        _join(prefix, key),
                    )
                )

    def check_foreign_keys(self, issues: List[Issue], fields: dict, prefix: str) -> None:
        if not isinstance(fields, dict) or fields.get("isFK") != "true":
            return
        target_field = next((f for f in _FK_TARGET_FIELDS if fields.get(f)), None)
        if target_field is None:
            issues.append(
                _issue(
                    "FK_TARGET_REQUIRED",
                    'fkObjectName is required when isFK is "true"',
                    _join(prefix, "fkObjectName"),
                )
            )
            return
        target = fields[target_field]
        if not self._resolver.object_exists(target):
            issues.append(
                _issue(
                    "FK_TARGET_MISSING",
                    f'Foreign key target data object "{target}" does not exist',
                    _join(prefix, target_field),
                    {"value": target},
                )
            )

    # -- data objects ----------------------------------------------------

    def validate_new_object(self, args: dict) -> List[Issue]:
        issues: List[Issue] = []
        name = args.get("name")
        self.check_name(issues, name, "name", "Data object")
        self.check_unique(issues, name, self._resolver.object_names(), "name", "Data object", "model")

        is_lookup = args.get("isLookup", "false")
        self.check_fields(issues, {"isLookup": is_lookup}, "")

        parent = args.get("parentObjectName")
        if not isinstance(parent, str) or not parent:
            issues.append(_issue("PARENT_REQUIRED", "parentObjectName is required", "parentObjectName"))
        elif not self._resolver.object_exists(parent):
            issues.append(
                _issue(
                    "PARENT_NOT_FOUND",
                    f'parentObjectName "{parent}" does not match any existing data object (case-sensitive)',
                    "parentObjectName",
                    {"value": parent, "available": self._resolver.object_names()},
                )
            )
        if is_lookup == "true" and parent != LOOKUP_PARENT_OBJECT:
            issues.append(
                _issue(
                    "LOOKUP_PARENT_INVALID",
                    f'Lookup data objects must have parentObjectName "{LOOKUP_PARENT_OBJECT}"',
                    "parentObjectName",
                    {"value": parent},
                )
            )
        return issues

    def validate_object_update(self, obj: Resolved, fields: Any, prefix: str = "fields") -> List[Issue]:
        issues: List[Issue] = []
        self.check_fields(issues, fields, prefix)
        if not isinstance(fields, dict):
            return issues
        self.check_updatable(issues, fields, OBJECT_LIST_KEYS, prefix)
        if "name" in fields and fields["name"] != obj.name:
            issues.append(
                _issue(
                    "NAME_IMMUTABLE",
                    f'Data object "{obj.name}" cannot be renamed through an update',
                    _join(prefix, "name"),
                )
            )
        merged = {**obj.node, **fields}
        if ("isLookup" in fields or "parentObjectName" in fields) and merged.get("isLookup") == "true":
            if merged.get("parentObjectName") != LOOKUP_PARENT_OBJECT:
                issues.append(
                    _issue(
                        "LOOKUP_PARENT_INVALID",
                        f'Lookup data objects must have parentObjectName "{LOOKUP_PARENT_OBJECT}"',
                        _join(prefix, "parentObjectName"),
                        {"value": merged.get("parentObjectName")},
                    )
                )
        parent = fields.get("parentObjectName")
        if parent and not self._resolver.object_exists(parent):
            issues.append(
                _issue(
                    "PARENT_NOT_FOUND",
                    f'parentObjectName "{parent}" does not match any existing data object (case-sensitive)',
                    _join(prefix, "parentObjectName"),
                    {"value": parent},
                )
            )
        if parent and parent == obj.name:
            issues.append(
                _issue("PARENT_INVALID", "A data object cannot be its own parent", _join(prefix, "parentObjectName"))
            )
        return issues

    def validate_object_replacement(self, obj: Resolved, data: Any, prefix: str = "data_object") -> List[Issue]:
        """Check a full replacement body: scalar fields, properties and lookup values together."""
        issues: List[Issue] = []
        if not isinstance(data, dict):
            issues.append(_issue("FIELDS_INVALID", "data_object must be an object", prefix))
            return issues
        scalars = {k: v for k, v in data.items() if k not in OBJECT_LIST_KEYS}
        issues.extend(self.validate_object_update(obj, scalars, prefix))
        self.check_updatable(issues, data, [k for k in OBJECT_LIST_KEYS if k not in ("prop", "lookupItem")], prefix)
        if "prop" in data:
            issues.extend(self.validate_new_properties(obj, data["prop"], _join(prefix, "prop"), existing=[]))
        items = data.get("lookupItem")
        if items is not None:
            path = _join(prefix, "lookupItem")
            if not isinstance(items, list):
                issues.append(_issue("FIELDS_INVALID", "lookupItem must be a list", path))
            else:
                seen: List[Any] = []
                for idx, item in enumerate(items):
                    item_path = f"{path}[{idx}]"
                    if not isinstance(item, dict):
                        issues.append(_issue("FIELDS_INVALID", "lookup value must be an object", item_path))
                        continue
                    name = item.get("name")
                    self.check_name(issues, name, f"{item_path}.name", "Lookup value")
                    self.check_unique(issues, name, seen, f"{item_path}.name", "Lookup value", f'data object "{obj.name}"')
                    seen.append(name)
                    self.check_fields(issues, item, item_path)
        return issues

    def validate_new_properties(
        self,
        obj: Resolved,
        props: Any,
        prefix: str = "props",
        existing: List[Any] | None = None,
    ) -> List[Issue]:
        issues: List[Issue] = []
        if not isinstance(props, list):
            issues.append(_issue("FIELDS_INVALID", "properties must be a list", prefix))
            return issues
        if existing is None:
            existing = [p.get("name") for p in obj.node.get("prop") or [] if isinstance(p, dict)]
        seen: List[Any] = []
        for idx, prop in enumerate(props):
            path = f"{prefix}[{idx}]"
            if not isinstance(prop, dict):
                issues.append(_issue("FIELDS_INVALID", "property must be an object", path))
                continue
            name = prop.get("name")
            self.check_name(issues, name, f"{path}.name", "Property")
            if self.check_unique(issues, name, existing, f"{path}.name", "Property", f'data object "{obj.name}"'):
                self.check_unique(issues, name, seen, f"{path}.name", "Property", "this request")
            seen.append(name)
            self.check_fields(issues, prop, path)
            self.check_foreign_keys(issues, prop, path)
        return issues

    def validate_property_update(self, obj: Resolved, prop: Resolved, fields: Any, prefix: str = "fields") -> List[Issue]:
        issues: List[Issue] = []
        self.check_fields(issues, fields, prefix)
        if not isinstance(fields, dict):
            return issues
        new_name = fields.get("name")
        if new_name is not None and new_name != prop.name:
            self.check_name(issues, new_name, _join(prefix, "name"), "Property")
            others = [
                p.get("name")
                for idx, p in enumerate(obj.node.get("prop") or [])
                if isinstance(p, dict) and idx != prop.index
            ]
            self.check_unique(issues, new_name, others, _join(prefix, "name"), "Property", f'data object "{obj.name}"')
        merged = {**prop.node, **fields}
        self.check_foreign_keys(issues, merged, prefix)
        return issues

    # -- lookup values -----------------------------------------------------

    def validate_lookup_value(
        self,
        lookup_object: Resolved,
        item: Any,
        existing: Resolved | None = None,
        prefix: str = "lookup_value",
    ) -> List[Issue]:
        issues: List[Issue] = []
        if lookup_object.node.get("isLookup") != "true":
            issues.append(
                _issue(
                    "NOT_LOOKUP_OBJECT",
                    f'Data object "{lookup_object.name}" is not a lookup object (isLookup must be "true")',
                    "data_object_name",
                )
            )
        self.check_fields(issues, item, prefix)
        if not isinstance(item, dict):
            return issues
        name = item.get("name")
        if existing is not None and (name is None or name == existing.name):
            return issues
        path = _join(prefix, "name")
        self.check_name(issues, name, path, "Lookup value")
        names = [
            i.get("name")
            for idx, i in enumerate(lookup_object.node.get("lookupItem") or [])
            if isinstance(i, dict) and (existing is None or idx != existing.index)
        ]
        self.check_unique(issues, name, names, path, "Lookup value", f'data object "{lookup_object.name}"')
        return issues

    # -- workflows -------------------------------------------------------

    def validate_new_workflow(self, owner: Resolved, kind: str, fields: dict, prefix: str = "") -> List[Issue]:
        issues: List[Issue] = []
        spec = workflow_kind(kind)
        name = fields.get("name")
        label = spec.label.capitalize()
        path = _join(prefix, "name")
        self.check_name(issues, name, path, label)
        if is_page_init_name(name):
            issues.append(
                _issue(
                    "NAME_RESERVED_SUFFIX",
                    f'{label} name "{name}" must not end in {" or ".join(PAGE_INIT_SUFFIXES)}; '
                    "those names belong to page init flows",
                    path,
                    {"value": name, "reserved": list(PAGE_INIT_SUFFIXES)},
                )
            )
        siblings: List[Any] = []
        for key in {spec.container, "objectWorkflow"}:
            siblings.extend(w.get("name") for w in owner.node.get(key) or [] if isinstance(w, dict))
        scope = f'data object "{owner.name}"'
        if self.check_unique(issues, name, siblings, path, label, scope) and isinstance(name, str) and name.strip():
            init_name = page_init_flow_name(name, kind)
            self.check_unique(issues, init_name, siblings, path, "Page init flow", scope)
        self.check_fields(issues, fields, prefix)
        self.check_updatable(issues, fields, _locked_workflow_fields(kind), prefix)
        return issues

    def validate_workflow_update(self, workflow: Resolved, fields: Any, prefix: str = "fields") -> List[Issue]:
        issues: List[Issue] = []
        self.check_fields(issues, fields, prefix)
        if not isinstance(fields, dict):
            return issues
        self.check_updatable(issues, fields, _locked_workflow_fields(workflow.kind), prefix)
        if "name" in fields and fields["name"] != workflow.name:
            issues.append(
                _issue(
                    "NAME_IMMUTABLE",
                    f'{workflow.kind.replace("_", " ")} "{workflow.name}" cannot be renamed through an update',
                    _join(prefix, "name"),
                )
            )
        return issues

    def validate_new_element(self, workflow: Resolved, element: ElementList, item: Any, prefix: str) -> List[Issue]:
        issues: List[Issue] = []
        if not isinstance(item, dict):
            issues.append(_issue("FIELDS_INVALID", f"{element.label} must be an object", prefix))
            return issues
        value = item.get(element.identity)
        path = _join(prefix, element.identity)
        label = element.label.capitalize()
        if element.named:
            self.check_name(issues, value, path, label)
        elif not isinstance(value, str) or not value.strip():
            issues.append(_issue("NAME_REQUIRED", f"{element.identity} is required", path))
        siblings = [i.get(element.identity) for i in workflow.node.get(element.key) or [] if isinstance(i, dict)]
        self.check_unique(issues, value, siblings, path, label, f'{workflow.kind.replace("_", " ")} "{workflow.name}"')
        self.check_fields(issues, item, prefix)
        self.check_foreign_keys(issues, item, prefix)
        return issues

    def validate_element_update(
        self,
        workflow: Resolved,
        element: ElementList,
        current: Resolved,
        fields: Any,
        prefix: str,
    ) -> List[Issue]:
        issues: List[Issue] = []
        self.check_fields(issues, fields, prefix)
        if not isinstance(fields, dict):
            return issues
        new_value = fields.get(element.identity)
        if new_value is not None and new_value != current.name:
            path = _join(prefix, element.identity)
            label = element.label.capitalize()
            if element.named:
                self.check_name(issues, new_value, path, label)
            siblings = [
                i.get(element.identity)
                for idx, i in enumerate(workflow.node.get(element.key) or [])
                if isinstance(i, dict) and idx != current.index
            ]
            self.check_unique(issues, new_value, siblings, path, label, f'{workflow.kind.replace("_", " ")} "{workflow.name}"')
        self.check_foreign_keys(issues, {**current.node, **fields}, prefix)
        return issues

    # -- user stories ----------------------------------------------------

    def validate_user_story(self, fields: dict, existing_texts: Iterable[Any], prefix: str = "") -> List[Issue]:
        """Check story text format, its role and duplicates against ``existing_texts``."""
        issues: List[Issue] = []
        path = _join(prefix, "storyText")
        text = fields.get("storyText")
        if not isinstance(text, str) or not text.strip():
            issues.append(_issue("STORY_TEXT_REQUIRED", "storyText is required", path))
            return issues
        role = extract_story_role(text)
        if role is None:
            issues.append(
                _issue(
                    "STORY_FORMAT_INVALID",
                    'storyText must start with "A [Role] wants to" or "As a [Role], I want to"',
                    path,
                )
            )
        else:
            role_object = self._resolver.find_object(ROLE_OBJECT)
            if role_object.found:
                roles = [i.get("name") for i in role_object.node.get("lookupItem") or [] if isinstance(i, dict)]
                if normalize_name(role) not in {normalize_name(r) for r in roles}:
                    issues.append(
                        _issue(
                            "ROLE_NOT_FOUND",
                            f'Role "{role}" is not a value of the {ROLE_OBJECT} lookup object',
                            path,
                            {"role": role, "available": roles},
                        )
                    )
        wanted = " ".join(text.split()).lower()
        if any(isinstance(t, str) and " ".join(t.split()).lower() == wanted for t in existing_texts):
            issues.append(_issue("STORY_DUPLICATE", "A user story with the same text already exists", path))
        self.check_fields(issues, fields, prefix)
        return issues
