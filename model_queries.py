"""Read-only views over the model served by the Data Channel.

Every method returns a JSON-ready payload built from deep copies, so callers
can never reach into the live tree.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Iterator, List, Tuple

from bridge_errors import BadRequestError, NotFoundError, issue
from entity_resolver import EntityResolver
from model_store import ModelStore
from modelkit.names import names_match, normalize_name
from modelkit.schema import (
    ROLE_OBJECT,
    entity_schema,
    is_page_init_flow,
    schema_kinds,
    workflow_kind,
)


def _count(node: dict, key: str) -> int:
    items = node.get(key)
    return len(items) if isinstance(items, list) else 0


def _lookup_value_view(item: dict) -> dict:
    return {
        "name": item.get("name") or "",
        "displayName": item.get("displayName") or "",
        "description": item.get("description") or "",
        "isActive": item.get("isActive") or "true",
    }


def _workflow_type(workflow: dict) -> str:
    if workflow.get("isPage") == "true":
        return "Form Workflow"
    if workflow.get("isDynaFlow") == "true":
        return "DynaFlow Workflow"
    if workflow.get("isDynaFlowTask") == "true":
        return "DynaFlow Task Workflow"
    if is_page_init_flow(workflow):
        return "Page Init Workflow"
    return "General Workflow"


class ModelQueries:
    def __init__(self, store: ModelStore) -> None:
        self._store = store
        self._resolver = EntityResolver(store)

    # -- whole model -----------------------------------------------------

    def model(self) -> dict:
        return {"model": self._store.get_model()}

    def status(self) -> dict:
        return self._store.status()

    def objects(self) -> dict:
        objects = self._store.list_objects()
        return {"objects": objects, "count": len(objects)}

    # -- data objects ----------------------------------------------------

    def data_objects(self, name: str | None = None, search: str | None = None, is_lookup: str | None = None) -> dict:
        wanted = normalize_name(search) if search else ""
        items: List[dict] = []
        for _, obj in self._store.iter_objects():
            if name and not names_match(obj.get("name"), name):
                continue
            if wanted and wanted not in normalize_name(obj.get("name")):
                continue
            if is_lookup is not None and (obj.get("isLookup") == "true") != (is_lookup.lower() == "true"):
                continue
            items.append(
                {
                    "name": obj.get("name"),
                    "parentObjectName": obj.get("parentObjectName") or "",
                    "isLookup": obj.get("isLookup") == "true",
                    "codeDescription": obj.get("codeDescription") or "",
                    "propCount": _count(obj, "prop"),
                }
            )
        return {"data_objects": items, "count": len(items)}

    def data_objects_full(self) -> dict:
        items = []
        for _, obj in self._store.iter_objects():
            view = copy.deepcopy(obj)
            view.setdefault("isLookup", "false")
            view.setdefault("prop", [])
            items.append(view)
        return {"data_objects": items, "count": len(items)}

    def data_object(self, name: str) -> dict:
        found = self._resolver.find_object(name)
        if not found.found:
            raise NotFoundError(
                found.message(),
                [issue("DATA_OBJECT_NOT_FOUND", found.message(), "name", {"name": name})],
            )
        view = copy.deepcopy(found.node)
        view.setdefault("isLookup", "false")
        view.setdefault("prop", [])
        return {"data_object": view}

    def data_object_usage(self, name: str | None = None) -> dict:
        """Cross-references to data objects: ownership, report targets, column sources and FK properties."""
        if name:
            found = self._resolver.find_object(name)
            if not found.found:
                raise NotFoundError(
                    found.message(),
                    [issue("DATA_OBJECT_NOT_FOUND", found.message(), "name", {"name": name})],
                )
            targets = [found.name]
        else:
            targets = self._resolver.object_names()
        usage: List[dict] = []
        for target in targets:
            for ref in self._references(target):
                usage.append({"dataObjectName": target, **ref})
        return {"usage": usage, "count": len(usage)}

    def _references(self, target: str) -> Iterator[dict]:
        for _, obj in self._store.iter_objects():
            obj_name = obj.get("name")
            owned = obj_name == target
            for wf in obj.get("objectWorkflow") or []:
                if not isinstance(wf, dict):
                    continue
                if owned and wf.get("isPage") == "true" and not is_page_init_flow(wf):
                    yield {"referenceType": "Form Owner Object", "referencedBy": wf.get("name"), "itemType": "form"}
                if owned:
                    yield {
                        "referenceType": f"{_workflow_type(wf)} Owner Object",
                        "referencedBy": wf.get("name"),
                        "itemType": "workflow",
                    }
            for report in obj.get("report") or []:
                if not isinstance(report, dict):
                    continue
                if owned:
                    yield {"referenceType": "Report Owner Object", "referencedBy": report.get("name"), "itemType": "report"}
                if report.get("targetChildObject") == target:
                    yield {"referenceType": "Report Target Object", "referencedBy": report.get("name"), "itemType": "report"}
                for column in report.get("reportColumn") or []:
                    if isinstance(column, dict) and target in (column.get("sourceObject"), column.get("sourceObjectName")):
                        yield {
                            "referenceType": "Report Column Source Object",
                            "referencedBy": report.get("name"),
                            "itemType": "report",
                        }
            for prop in obj.get("prop") or []:
                if isinstance(prop, dict) and prop.get("isFK") == "true" and prop.get("fkObjectName") == target:
                    yield {
                        "referenceType": "Property Foreign Key",
                        "referencedBy": f"{obj_name}.{prop.get('name')}",
                        "itemType": "property",
                    }

    # -- workflows -------------------------------------------------------

    def _workflows(self, kind: str, name: str | None, owner: str | None) -> Iterator[Tuple[dict, dict]]:
        for _, obj, _, wf in self._resolver.iter_workflows(kind, owner=owner):
            if name and not names_match(wf.get("name"), name):
                continue
            yield obj, wf

    def workflows(self, kind: str, name: str | None = None, owner: str | None = None) -> dict:
        items: List[dict] = []
        for obj, wf in self._workflows(kind, name, owner):
            view = copy.deepcopy(wf)
            view["_ownerObjectName"] = obj.get("name")
            items.append(view)
        payload: Dict[str, Any] = {f"{kind}s": items, "count": len(items)}
        if name and len(items) > 1:
            payload["ambiguous"] = True
            payload["candidates"] = [{"owner_object_name": i["_ownerObjectName"], "name": i.get("name")} for i in items]
        return payload

    def general_flows_summary(self, name: str | None = None, owner: str | None = None) -> dict:
        items = [
            {
                "name": wf.get("name"),
                "ownerObject": obj.get("name"),
                "roleRequired": wf.get("roleRequired") or "Public",
                "paramCount": _count(wf, "objectWorkflowParam"),
                "outputVarCount": _count(wf, "objectWorkflowOutputVar"),
            }
            for obj, wf in self._workflows("general_flow", name, owner)
        ]
        return {"general_flows": items, "count": len(items)}

    def pages(self, name: str | None = None, page_type: str | None = None) -> dict:
        wanted_type = (page_type or "").strip().lower()
        if wanted_type not in ("", "form", "report"):
            message = 'page_type must be "form" or "report"'
            raise BadRequestError(message, [issue("QUERY_INVALID", message, "page_type", {"value": page_type})])
        items: List[dict] = []
        kinds = ("form", "report") if not wanted_type else (wanted_type,)
        for _, obj in self._store.iter_objects():
            for kind in kinds:
                spec = workflow_kind(kind)
                for wf in obj.get(spec.container) or []:
                    if not spec.matches(wf) or (name and not names_match(wf.get("name"), name)):
                        continue
                    view = copy.deepcopy(wf)
                    view["_ownerObjectName"] = obj.get("name")
                    view["_pageType"] = kind
                    items.append(view)
        return {"pages": items, "count": len(items)}

    # -- lookup values, roles, user stories ------------------------------

    def lookup_values(self, data_object_name: str | None) -> dict:
        if not data_object_name:
            message = "data_object_name parameter is required"
            raise BadRequestError(message, [issue("QUERY_INVALID", message, "data_object_name")])
        found = self._resolver.find_object(data_object_name)
        if not found.found:
            raise NotFoundError(
                found.message(),
                [issue("DATA_OBJECT_NOT_FOUND", found.message(), "data_object_name", {"name": data_object_name})],
            )
        items = [_lookup_value_view(i) for i in found.node.get("lookupItem") or [] if isinstance(i, dict)]
        return {"data_object_name": found.name, "lookup_values": items, "count": len(items)}

    def roles(self) -> dict:
        found = self._resolver.find_object(ROLE_OBJECT)
        if not found.found:
            return {"roles": [], "count": 0, "note": f'No "{ROLE_OBJECT}" data object in the model'}
        items = [_lookup_value_view(i) for i in found.node.get("lookupItem") or [] if isinstance(i, dict)]
        return {"roles": items, "count": len(items)}

    def user_stories(self) -> dict:
        items: List[dict] = []
        for _, ns in self._store.iter_namespaces():
            for story in ns.get("userStory") or []:
                if isinstance(story, dict):
                    items.append(
                        {
                            "name": story.get("name") or "",
                            "storyNumber": story.get("storyNumber") or "",
                            "storyText": story.get("storyText") or "",
                            "isIgnored": story.get("isIgnored") or "false",
                        }
                    )
        return {"user_stories": items, "count": len(items)}

    # -- schemas ---------------------------------------------------------

    def schema(self, kind: str) -> dict:
        schema = entity_schema(kind)
        if schema is None:
            message = f'No schema for "{kind}"'
            raise NotFoundError(message, [issue("SCHEMA_NOT_FOUND", message, "kind", {"available": schema_kinds()})])
        return {"schema": schema}
