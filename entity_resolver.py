"""Name-based lookup of entities inside the model tree."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Tuple, Union

from modelkit.names import names_match
from modelkit.pointer import join_pointer
from modelkit.schema import WorkflowKind, workflow_kind


@dataclass
class Resolved:
    """A located entity plus the chain needed to write back into its parent list."""

    kind: str
    name: str
    node: dict
    pointer: str
    container_pointer: str
    index: int
    owner_name: str | None = None
    owner_pointer: str | None = None
    ambiguous: bool = False
    candidates: List[dict] = field(default_factory=list)

    found = True

    def location(self) -> dict:
        out: Dict[str, Any] = {"kind": self.kind, "name": self.name, "pointer": self.pointer}
        if self.owner_name is not None:
            out["owner_object_name"] = self.owner_name
        if self.ambiguous:
            out["ambiguous"] = True
            out["candidates"] = list(self.candidates)
        return out


@dataclass
class Unresolved:
    """Resolution failure: what was searched for and where."""

    kind: str
    name: str
    scope: str | None = None
    available: List[str] = field(default_factory=list)

    found = False

    def message(self) -> str:
        label = self.kind.replace("_", " ")
        where = f" in {self.scope}" if self.scope else ""
        return f'{label.capitalize()} "{self.name}" not found{where}'

    def detail(self) -> dict:
        out: Dict[str, Any] = {"kind": self.kind, "name": self.name, "scope": self.scope}
        if self.available:
            out["available"] = list(self.available)
        return out


Resolution = Union[Resolved, Unresolved]


class EntityResolver:
    def __init__(self, store) -> None:
        self._store = store

    # -- data objects ----------------------------------------------------

    def resolve_object(self, name: Any, exact: bool = True) -> Resolution:
        """Data objects match by exact name unless ``exact`` is False."""
        if isinstance(name, str) and name:
            for pointer, obj in self._store.iter_objects():
                obj_name = obj.get("name")
                hit = obj_name == name if exact else names_match(obj_name, name)
                if hit:
                    container, index = _split_index(pointer)
                    return Resolved(
                        kind="data_object",
                        name=obj_name,
                        node=obj,
                        pointer=pointer,
                        container_pointer=container,
                        index=index,
                    )
        return Unresolved(kind="data_object", name=str(name), scope="model")

    def find_object(self, name: Any) -> Resolution:
        """Case-insensitive, whitespace-free match for owner hints and filters."""
        return self.resolve_object(name, exact=False)

    def object_exists(self, name: Any) -> bool:
        return self.resolve_object(name).found

    def object_names(self) -> List[str]:
        return [str(obj.get("name")) for _, obj in self._store.iter_objects() if obj.get("name")]

    def resolve_property(self, obj: Resolved, name: Any) -> Resolution:
        props = obj.node.get("prop")
        props = props if isinstance(props, list) else []
        container = join_pointer(obj.pointer, "prop")
        for idx, prop in enumerate(props):
            if isinstance(prop, dict) and names_match(prop.get("name"), name):
                return Resolved(
                    kind="property",
                    name=str(prop.get("name")),
                    node=prop,
                    pointer=join_pointer(container, idx),
                    container_pointer=container,
                    index=idx,
                    owner_name=obj.name,
                    owner_pointer=obj.pointer,
                )
        return Unresolved(
            kind="property",
            name=str(name),
            scope=f'data object "{obj.name}"',
            available=[str(p.get("name")) for p in props if isinstance(p, dict)],
        )

    # -- workflows -------------------------------------------------------

    def iter_workflows(self, kind: str, owner: str | None = None) -> Iterator[Tuple[str, dict, str, dict]]:
        """Yield (owner pointer, owner object, workflow pointer, workflow) in tree order."""
        spec = workflow_kind(kind)
        for obj_pointer, obj in self._store.iter_objects():
            if owner and not names_match(obj.get("name"), owner):
                continue
            items = obj.get(spec.container)
            if not isinstance(items, list):
                continue
            for idx, wf in enumerate(items):
                if spec.matches(wf):
                    yield obj_pointer, obj, join_pointer(obj_pointer, spec.container, idx), wf

    def resolve_workflow(self, kind: str, name: Any, owner: str | None = None) -> Resolution:
        spec = workflow_kind(kind)
        if owner:
            owner_res = self.find_object(owner)
            if not owner_res.found:
                return owner_res
            owner = owner_res.name

        matches: List[Tuple[str, dict, str, dict]] = []
        for item in self.iter_workflows(kind, owner=owner):
            if names_match(item[3].get("name"), name):
                matches.append(item)
        if not matches:
            scope = f'data object "{owner}"' if owner else "model"
            return Unresolved(kind=kind, name=str(name), scope=scope)

        obj_pointer, obj, wf_pointer, wf = matches[0]
        container, index = _split_index(wf_pointer)
        resolved = Resolved(
            kind=kind,
            name=str(wf.get("name")),
            node=wf,
            pointer=wf_pointer,
            container_pointer=container,
            index=index,
            owner_name=obj.get("name"),
            owner_pointer=obj_pointer,
        )
        if len(matches) > 1:
            resolved.ambiguous = True
            resolved.candidates = [
                {"owner_object_name": m[1].get("name"), "name": m[3].get("name"), "pointer": m[2]}
                for m in matches
            ]
        return resolved

    # -- ordered lists inside a workflow ---------------------------------

    def resolve_element(self, workflow: Resolved, list_name: str, name: Any) -> Resolution:
        spec: WorkflowKind = workflow_kind(workflow.kind)
        element = spec.lists.get(list_name)
        if element is None:
            raise KeyError(f"{spec.label} has no {list_name} list")
        items = workflow.node.get(element.key)
        items = items if isinstance(items, list) else []
        container = join_pointer(workflow.pointer, element.key)
        for idx, item in enumerate(items):
            if isinstance(item, dict) and names_match(item.get(element.identity), name):
                return Resolved(
                    kind=f"{spec.name}_{element.name}",
                    name=str(item.get(element.identity)),
                    node=item,
                    pointer=join_pointer(container, idx),
                    container_pointer=container,
                    index=idx,
                    owner_name=workflow.owner_name,
                    owner_pointer=workflow.pointer,
                )
        available = [str(i.get(element.identity)) for i in items if isinstance(i, dict)]
        return Unresolved(
            kind=f"{spec.name}_{element.name}",
            name=str(name),
            scope=f'{spec.label} "{workflow.name}"',
            available=available,
        )

    # -- lookup values and user stories -----------------------------------

    def resolve_lookup_value(self, lookup_object: Resolved, name: Any) -> Resolution:
        items = lookup_object.node.get("lookupItem")
        items = items if isinstance(items, list) else []
        container = join_pointer(lookup_object.pointer, "lookupItem")
        for idx, item in enumerate(items):
            if isinstance(item, dict) and names_match(item.get("name"), name):
                return Resolved(
                    kind="lookup_value",
                    name=str(item.get("name")),
                    node=item,
                    pointer=join_pointer(container, idx),
                    container_pointer=container,
                    index=idx,
                    owner_name=lookup_object.name,
                    owner_pointer=lookup_object.pointer,
                )
        return Unresolved(
            kind="lookup_value",
            name=str(name),
            scope=f'data object "{lookup_object.name}"',
            available=[str(i.get("name")) for i in items if isinstance(i, dict)],
        )

    def resolve_user_story(self, name: Any) -> Resolution:
        for ns_pointer, ns in self._store.iter_namespaces():
            stories = ns.get("userStory")
            if not isinstance(stories, list):
                continue
            for idx, story in enumerate(stories):
                if not isinstance(story, dict):
                    continue
                if story.get("name") == name or names_match(story.get("storyNumber"), name):
                    container = join_pointer(ns_pointer, "userStory")
                    return Resolved(
                        kind="user_story",
                        name=str(story.get("name")),
                        node=story,
                        pointer=join_pointer(container, idx),
                        container_pointer=container,
                        index=idx,
                    )
        return Unresolved(kind="user_story", name=str(name), scope="model")


def _split_index(pointer: str) -> Tuple[str, int]:
    container, _, index = pointer.rpartition("/")
    return container, int(index)
