"""Named mutation commands executed against a ModelStore.

Each command declares its argument shape. ``execute`` checks the name and the
arguments, then runs the handler, which resolves its targets, validates the
change and applies it through a single ``ModelStore.apply`` call. The outcome
is always an envelope dict, never an exception.
"""

from __future__ import annotations

import copy
import functools
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple

from bridge_errors import (
    INTERNAL,
    BridgeError,
    NotFoundError,
    ValidationFailedError,
    issue,
    validation_failed,
)
from entity_resolver import EntityResolver, Resolution, Resolved
from model_store import ModelStore
from modelkit.names import display_text
from modelkit.pointer import join_pointer
from modelkit.schema import (
    ROLE_OBJECT,
    WORKFLOW_KINDS,
    ElementList,
    page_init_flow_name,
    workflow_kind,
)
from mutation_validator import MutationValidator, extract_story_role
from reorder import plan_move


Issue = Dict[str, Any]

logger = logging.getLogger("modelbridge.command")

_ARG_TYPES: Dict[str, type] = {"string": str, "object": dict, "array": list, "integer": int}

_DEFAULT_LOOKUP_ITEM = {"name": "Unknown", "displayName": "", "description": "", "isActive": "true"}

_PROP_DEFAULTS = {"sqlServerDBDataType": "nvarchar", "isFK": "false"}
_SIZED_TYPES = ("nvarchar", "varchar")


@dataclass(frozen=True)
class ArgSpec:
    name: str
    type: str = "string"
    required: bool = True
    description: str = ""


@dataclass(frozen=True)
class CommandSpec:
    name: str
    handler: Callable[[dict], dict]
    args: Tuple[ArgSpec, ...] = ()
    mutating: bool = True
    description: str = ""

    def describe(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "mutating": self.mutating,
            "args": {
                arg.name: {"type": arg.type, "required": arg.required, "description": arg.description}
                for arg in self.args
            },
        }


def check_args(spec: CommandSpec, args: dict) -> List[Issue]:
    issues: List[Issue] = []
    declared = {arg.name: arg for arg in spec.args}
    for arg in spec.args:
        value = args.get(arg.name)
        if value is None:
            if arg.required:
                issues.append(issue("ARG_REQUIRED", f"{arg.name} is required", arg.name))
            continue
        expected = _ARG_TYPES[arg.type]
        if not isinstance(value, expected) or (arg.type == "integer" and isinstance(value, bool)):
            issues.append(
                issue(
                    "ARG_TYPE_INVALID",
                    f"{arg.name} must be of type {arg.type}",
                    arg.name,
                    {"expected": arg.type, "received": type(value).__name__},
                )
            )
        elif arg.type == "string" and arg.required and not value.strip():
            issues.append(issue("ARG_REQUIRED", f"{arg.name} must not be empty", arg.name))
    for name in args:
        if name not in declared:
            issues.append(issue("ARG_UNKNOWN", f"Unknown argument {name}", name, {"allowed": sorted(declared)}))
    return issues


def _raise_if(issues: List[Issue]) -> None:
    if issues:
        raise validation_failed(issues)


def _require(resolution: Resolution, arg: str) -> Resolved:
    if not resolution.found:
        message = resolution.message()
        raise NotFoundError(message, [issue(f"{resolution.kind.upper()}_NOT_FOUND", message, arg, resolution.detail())])
    return resolution


_OWNER_ARG = ArgSpec("owner_object_name", required=False, description="Owning data object; narrows the search")


class CommandDispatcher:
    def __init__(self, store: ModelStore) -> None:
        self._store = store
        self._resolver = EntityResolver(store)
        self._validator = MutationValidator(self._resolver)
        self._commands: Dict[str, CommandSpec] = {}
        for spec in self._builtin_commands():
            self.register(spec)

    @property
    def store(self) -> ModelStore:
        return self._store

    def register(self, spec: CommandSpec) -> None:
        self._commands[spec.name] = spec

    def get(self, name: str) -> CommandSpec | None:
        return self._commands.get(name)

    def list_commands(self) -> List[dict]:
        return [spec.describe() for spec in self._commands.values()]

    def execute(self, command: Any, args: Any = None) -> dict:
        spec = self._commands.get(command) if isinstance(command, str) else None
        if spec is None:
            message = f'Unknown command "{command}"'
            err = NotFoundError(
                message,
                [issue("COMMAND_NOT_FOUND", message, "command", {"available": sorted(self._commands)})],
            )
            logger.info("command_rejected command=%s error_code=%s", command, err.error_code)
            return err.to_body()
        if args is None:
            args = {}
        try:
            if not isinstance(args, dict):
                raise ValidationFailedError("args must be an object", [issue("ARGS_INVALID", "args must be an object", "args")])
            _raise_if(check_args(spec, args))
            payload = spec.handler(args)
        except BridgeError as exc:
            logger.info(
                "command_rejected command=%s error_code=%s issues=%s",
                command,
                exc.error_code,
                len(exc.issues),
            )
            return exc.to_body()
        except Exception:
            logger.exception("command_failed command=%s", command)
            return {
                "success": False,
                "error": f'Internal error while executing "{command}"',
                "error_code": INTERNAL,
                "errors": [],
            }
        logger.info("command_applied command=%s revision=%s", command, self._store.revision)
        return {"success": True, **payload}

    # -- shared steps ----------------------------------------------------

    def _apply(self, ops: List[dict], reason: str) -> dict:
        result = self._store.apply(ops, reason=reason)
        if not result["ok"]:
            raise BridgeError("Mutation could not be applied", result["errors"])
        return result

    @staticmethod
    def _ensure_list(ops: List[dict], node: dict, pointer: str, key: str) -> str:
        if not isinstance(node.get(key), list):
            ops.append({"op": "add", "path": join_pointer(pointer, key), "value": []})
        return join_pointer(pointer, key)

    def _object(self, args: dict, arg: str = "data_object_name") -> Resolved:
        return _require(self._resolver.resolve_object(args[arg]), arg)

    def _workflow(self, kind: str, args: dict) -> Resolved:
        name_arg = f"{kind}_name"
        owner = args.get("owner_object_name")
        resolution = self._resolver.resolve_workflow(kind, args[name_arg], owner=owner)
        if not resolution.found and resolution.kind == "data_object":
            return _require(resolution, "owner_object_name")
        workflow = _require(resolution, name_arg)
        if workflow.ambiguous:
            owners = ", ".join(str(c["owner_object_name"]) for c in workflow.candidates)
            label = workflow_kind(kind).label
            message = (
                f'{label.capitalize()} "{workflow.name}" exists under several data objects ({owners}); '
                "pass owner_object_name to choose one"
            )
            raise validation_failed(
                [issue("ENTITY_AMBIGUOUS", message, "owner_object_name", {"candidates": workflow.candidates})]
            )
        return workflow

    # -- data objects ----------------------------------------------------

    def _create_data_object(self, args: dict) -> dict:
        _raise_if(self._validator.validate_new_object(args))
        name = args["name"]
        parent = self._resolver.resolve_object(args["parentObjectName"])
        is_lookup = args.get("isLookup") or "false"
        node: Dict[str, Any] = {
            "name": name,
            "parentObjectName": parent.name,
            "isLookup": is_lookup,
            "codeDescription": args.get("codeDescription") or "",
            "prop": [],
            "lookupItem": [],
            "objectWorkflow": [],
            "report": [],
            "propSubscription": [],
            "modelPkg": [],
        }
        # Children of a non-root object carry a key back to their parent.
        if parent.node.get("parentObjectName"):
            node["prop"].append(
                {
                    "name": f"{parent.name}ID",
                    "sqlServerDBDataType": "int",
                    "isFK": "true",
                    "fkObjectName": parent.name,
                    "isFKLookup": "false",
                }
            )
        if is_lookup == "true":
            node["lookupItem"].append(dict(_DEFAULT_LOOKUP_ITEM))
        result = self._apply(
            [{"op": "add", "path": join_pointer(parent.container_pointer, "-"), "value": node}],
            reason="create_data_object",
        )
        return {
            "data_object": {
                "name": name,
                "parentObjectName": parent.name,
                "isLookup": is_lookup,
                "property_count": len(node["prop"]),
            },
            "revision": result["revision"],
            "message": f'Data object "{name}" created under "{parent.name}"',
        }

    def _update_data_object(self, args: dict) -> dict:
        obj = self._object(args)
        fields = args["fields"]
        _raise_if(self._validator.validate_object_update(obj, fields))
        self._apply([{"op": "merge", "path": obj.pointer, "value": fields}], reason="update_data_object")
        return {
            "data_object_name": obj.name,
            "updated_fields": sorted(fields),
            "message": f'Data object "{obj.name}" updated',
        }

    def _update_full_data_object(self, args: dict) -> dict:
        obj = self._object(args)
        data = args["data_object"]
        _raise_if(self._validator.validate_object_replacement(obj, data))
        node = copy.deepcopy(obj.node)
        node.update(data)
        node["name"] = obj.name
        self._apply([{"op": "replace", "path": obj.pointer, "value": node}], reason="update_full_data_object")
        return {
            "data_object_name": obj.name,
            "property_count": len(node.get("prop") or []),
            "lookup_value_count": len(node.get("lookupItem") or []),
            "message": f'Data object "{obj.name}" replaced',
        }

    def _add_data_object_props(self, args: dict) -> dict:
        obj = self._object(args)
        props = args["props"]
        _raise_if(self._validator.validate_new_properties(obj, props))
        ops: List[dict] = []
        container = self._ensure_list(ops, obj.node, obj.pointer, "prop")
        for prop in props:
            value = {**_PROP_DEFAULTS, **prop}
            if value["sqlServerDBDataType"] in _SIZED_TYPES:
                value.setdefault("sqlServerDBDataTypeSize", "100")
            ops.append({"op": "add", "path": join_pointer(container, "-"), "value": value})
        self._apply(ops, reason="add_data_object_props")
        names = [p["name"] for p in props]
        return {
            "data_object_name": obj.name,
            "added": names,
            "property_count": len(obj.node.get("prop") or []) + len(names),
            "message": f'Added {len(names)} propert{"y" if len(names) == 1 else "ies"} to "{obj.name}"',
        }

    def _update_data_object_prop(self, args: dict) -> dict:
        obj = self._object(args)
        prop = _require(self._resolver.resolve_property(obj, args["property_name"]), "property_name")
        fields = args["fields"]
        _raise_if(self._validator.validate_property_update(obj, prop, fields))
        self._apply([{"op": "merge", "path": prop.pointer, "value": fields}], reason="update_data_object_prop")
        return {
            "data_object_name": obj.name,
            "property_name": fields.get("name", prop.name),
            "updated_fields": sorted(fields),
            "message": f'Property "{prop.name}" of "{obj.name}" updated',
        }

    # -- lookup values and roles -----------------------------------------

    def _add_lookup_item(self, obj: Resolved, item: dict, prefix: str, reason: str) -> dict:
        _raise_if(self._validator.validate_lookup_value(obj, item, prefix=prefix))
        value = {"displayName": display_text(item["name"]), "description": "", "isActive": "true", **item}
        ops: List[dict] = []
        container = self._ensure_list(ops, obj.node, obj.pointer, "lookupItem")
        ops.append({"op": "add", "path": join_pointer(container, "-"), "value": value})
        self._apply(ops, reason=reason)
        return value

    def _update_lookup_item(self, obj: Resolved, name_arg: str, args: dict, reason: str) -> Resolved:
        current = _require(self._resolver.resolve_lookup_value(obj, args[name_arg]), name_arg)
        fields = args["fields"]
        _raise_if(self._validator.validate_lookup_value(obj, fields, existing=current, prefix="fields"))
        self._apply([{"op": "merge", "path": current.pointer, "value": fields}], reason=reason)
        return current

    def _add_lookup_value(self, args: dict) -> dict:
        obj = self._object(args)
        value = self._add_lookup_item(obj, args["lookup_value"], "lookup_value", "add_lookup_value")
        return {
            "data_object_name": obj.name,
            "lookup_value": value,
            "message": f'Lookup value "{value["name"]}" added to "{obj.name}"',
        }

    def _update_lookup_value(self, args: dict) -> dict:
        obj = self._object(args)
        current = self._update_lookup_item(obj, "lookup_value_name", args, "update_lookup_value")
        return {
            "data_object_name": obj.name,
            "lookup_value_name": args["fields"].get("name", current.name),
            "updated_fields": sorted(args["fields"]),
            "message": f'Lookup value "{current.name}" of "{obj.name}" updated',
        }

    def _role_object(self) -> Resolved:
        return _require(self._resolver.resolve_object(ROLE_OBJECT), "role")

    def _add_role(self, args: dict) -> dict:
        value = self._add_lookup_item(self._role_object(), args["role"], "role", "add_role")
        return {"role": value, "message": f'Role "{value["name"]}" added'}

    def _update_role(self, args: dict) -> dict:
        current = self._update_lookup_item(self._role_object(), "role_name", args, "update_role")
        return {
            "role_name": args["fields"].get("name", current.name),
            "updated_fields": sorted(args["fields"]),
            "message": f'Role "{current.name}" updated',
        }

    # -- forms and reports -----------------------------------------------

    def _create_workflow(self, kind: str, args: dict) -> dict:
        spec = workflow_kind(kind)
        owner = _require(self._resolver.find_object(args["owner_object_name"]), "owner_object_name")
        fields = args[kind]
        _raise_if(self._validator.validate_new_workflow(owner, kind, fields, prefix=kind))

        name = fields["name"]
        node: Dict[str, Any] = {"name": name, "titleText": display_text(name), "introText": ""}
        if kind == "report":
            node["visualizationType"] = "Grid"
        node.update(fields)
        if spec.container == "objectWorkflow":
            node["isPage"] = "true"
        for element in spec.lists.values():
            node[element.key] = []

        init_name = page_init_flow_name(name, kind)
        init_flow = {
            "name": init_name,
            "isPage": "false",
            "titleText": display_text(name),
            "objectWorkflowOutputVar": [],
        }

        ops: List[dict] = []
        container = self._ensure_list(ops, owner.node, owner.pointer, spec.container)
        ops.append({"op": "add", "path": join_pointer(container, "-"), "value": node})
        if spec.container == "objectWorkflow":
            ops.append({"op": "add", "path": join_pointer(container, "-"), "value": init_flow})
        else:
            flows = self._ensure_list(ops, owner.node, owner.pointer, "objectWorkflow")
            ops.append({"op": "add", "path": join_pointer(flows, "-"), "value": init_flow})
        self._apply(ops, reason=f"create_{kind}")
        return {
            f"{kind}_name": name,
            "owner_object_name": owner.name,
            "page_init_flow_name": init_name,
            "message": f'{spec.label.capitalize()} "{name}" created on "{owner.name}" with page init flow "{init_name}"',
        }

    def _update_workflow(self, kind: str, args: dict) -> dict:
        workflow = self._workflow(kind, args)
        fields = args["fields"]
        _raise_if(self._validator.validate_workflow_update(workflow, fields))
        self._apply([{"op": "merge", "path": workflow.pointer, "value": fields}], reason=f"update_{kind}")
        return {
            f"{kind}_name": workflow.name,
            "owner_object_name": workflow.owner_name,
            "updated_fields": sorted(fields),
            "message": f'{workflow_kind(kind).label.capitalize()} "{workflow.name}" updated',
        }

    # -- ordered lists inside workflows ----------------------------------

    def _add_element(self, kind: str, list_name: str, args: dict) -> dict:
        workflow = self._workflow(kind, args)
        element: ElementList = workflow_kind(kind).lists[list_name]
        item = args[list_name]
        _raise_if(self._validator.validate_new_element(workflow, element, item, prefix=list_name))
        ops: List[dict] = []
        container = self._ensure_list(ops, workflow.node, workflow.pointer, element.key)
        ops.append({"op": "add", "path": join_pointer(container, "-"), "value": item})
        self._apply(ops, reason=f"add_{kind}_{list_name}")
        count = len(workflow.node.get(element.key) or []) + 1
        identity = item[element.identity]
        return {
            f"{kind}_name": workflow.name,
            "owner_object_name": workflow.owner_name,
            f"{list_name}_name": identity,
            "position": count - 1,
            "count": count,
            "message": f'{element.label.capitalize()} "{identity}" added to "{workflow.name}"',
        }

    def _update_element(self, kind: str, list_name: str, args: dict) -> dict:
        workflow = self._workflow(kind, args)
        element: ElementList = workflow_kind(kind).lists[list_name]
        name_arg = f"{list_name}_name"
        current = _require(self._resolver.resolve_element(workflow, list_name, args[name_arg]), name_arg)
        fields = args["fields"]
        _raise_if(self._validator.validate_element_update(workflow, element, current, fields, prefix="fields"))
        self._apply([{"op": "merge", "path": current.pointer, "value": fields}], reason=f"update_{kind}_{list_name}")
        return {
            f"{kind}_name": workflow.name,
            "owner_object_name": workflow.owner_name,
            name_arg: fields.get(element.identity, current.name),
            "position": current.index,
            "updated_fields": sorted(fields),
            "message": f'{element.label.capitalize()} "{current.name}" of "{workflow.name}" updated',
        }

    def _move_element(self, kind: str, list_name: str, args: dict) -> dict:
        workflow = self._workflow(kind, args)
        element: ElementList = workflow_kind(kind).lists[list_name]
        name_arg = f"{list_name}_name"
        current = _require(self._resolver.resolve_element(workflow, list_name, args[name_arg]), name_arg)
        items = workflow.node.get(element.key) or []
        plan = plan_move(items, element.identity, current.name, args["new_position"])
        if plan.old_position != plan.new_position:
            self._apply(
                [{"op": "move", "from": current.pointer, "to_index": plan.new_position}],
                reason=f"move_{kind}_{list_name}",
            )
            message = (
                f'{element.label.capitalize()} "{current.name}" moved from position '
                f"{plan.old_position} to {plan.new_position}"
            )
        else:
            message = f'{element.label.capitalize()} "{current.name}" is already at position {plan.new_position}'
        return {
            f"{kind}_name": workflow.name,
            "owner_object_name": workflow.owner_name,
            name_arg: current.name,
            **plan.as_dict(),
            "message": message,
        }

    # -- user stories ----------------------------------------------------

    def _story_texts(self, exclude: str | None = None) -> List[Any]:
        texts: List[Any] = []
        for _, ns in self._store.iter_namespaces():
            for story in ns.get("userStory") or []:
                if isinstance(story, dict) and story.get("name") != exclude:
                    texts.append(story.get("storyText"))
        return texts

    def _create_user_story(self, args: dict) -> dict:
        fields = {key: args[key] for key in ("storyText", "storyNumber", "isIgnored") if args.get(key) is not None}
        _raise_if(self._validator.validate_user_story(fields, self._story_texts()))
        story = {
            "name": str(uuid.uuid4()),
            "storyNumber": fields.get("storyNumber", ""),
            "storyText": " ".join(fields["storyText"].split()),
            "isIgnored": fields.get("isIgnored", "false"),
        }
        ns_pointer, ns = next(self._store.iter_namespaces())
        ops: List[dict] = []
        container = self._ensure_list(ops, ns, ns_pointer, "userStory")
        ops.append({"op": "add", "path": join_pointer(container, "-"), "value": story})
        self._apply(ops, reason="create_user_story")
        return {
            "user_story": story,
            "role": extract_story_role(story["storyText"]),
            "message": "User story created",
        }

    def _update_user_story(self, args: dict) -> dict:
        current = _require(self._resolver.resolve_user_story(args["user_story_name"]), "user_story_name")
        fields = args["fields"]
        issues: List[Issue] = []
        self._validator.check_updatable(issues, fields, ("name",), "fields")
        if "storyText" in fields:
            merged = {**current.node, **fields}
            issues.extend(self._validator.validate_user_story(merged, self._story_texts(exclude=current.name), "fields"))
        else:
            self._validator.check_fields(issues, fields, "fields")
        _raise_if(issues)
        self._apply([{"op": "merge", "path": current.pointer, "value": fields}], reason="update_user_story")
        return {
            "user_story_name": current.name,
            "updated_fields": sorted(fields),
            "message": "User story updated",
        }

    # -- command table ---------------------------------------------------

    def _builtin_commands(self) -> List[CommandSpec]:
        fields_arg = ArgSpec("fields", "object", description="Fields to set; omitted fields keep their value")
        commands = [
            CommandSpec(
                "create_data_object",
                self._create_data_object,
                (
                    ArgSpec("name", description="PascalCase name, unique within the model"),
                    ArgSpec("parentObjectName", description="Exact name of an existing data object"),
                    ArgSpec("isLookup", required=False, description='"true" for lookup objects (parent must be "Pac")'),
                    ArgSpec("codeDescription", required=False),
                ),
                description="Create a data object",
            ),
            CommandSpec(
                "update_data_object",
                self._update_data_object,
                (ArgSpec("data_object_name"), fields_arg),
                description="Update scalar fields of a data object",
            ),
            CommandSpec(
                "update_full_data_object",
                self._update_full_data_object,
                (
                    ArgSpec("data_object_name"),
                    ArgSpec("data_object", "object", description="Full object; prop and lookupItem replace the current lists"),
                ),
                description="Replace a data object including its properties and lookup values",
            ),
            CommandSpec(
                "add_data_object_props",
                self._add_data_object_props,
                (ArgSpec("data_object_name"), ArgSpec("props", "array", description="Properties to append")),
                description="Append properties to a data object",
            ),
            CommandSpec(
                "update_data_object_prop",
                self._update_data_object_prop,
                (ArgSpec("data_object_name"), ArgSpec("property_name"), fields_arg),
                description="Update one property of a data object",
            ),
            CommandSpec(
                "add_lookup_value",
                self._add_lookup_value,
                (ArgSpec("data_object_name"), ArgSpec("lookup_value", "object")),
                description="Add a value to a lookup data object",
            ),
            CommandSpec(
                "update_lookup_value",
                self._update_lookup_value,
                (ArgSpec("data_object_name"), ArgSpec("lookup_value_name"), fields_arg),
                description="Update a value of a lookup data object",
            ),
            CommandSpec(
                "add_role",
                self._add_role,
                (ArgSpec("role", "object"),),
                description=f"Add a role (a lookup value of {ROLE_OBJECT})",
            ),
            CommandSpec(
                "update_role",
                self._update_role,
                (ArgSpec("role_name"), fields_arg),
                description="Update a role",
            ),
            CommandSpec(
                "create_user_story",
                self._create_user_story,
                (
                    ArgSpec("storyText", description='"A [Role] wants to ..." or "As a [Role], I want to ..."'),
                    ArgSpec("storyNumber", required=False),
                    ArgSpec("isIgnored", required=False),
                ),
                description="Create a user story",
            ),
            CommandSpec(
                "update_user_story",
                self._update_user_story,
                (ArgSpec("user_story_name", description="Story name or story number"), fields_arg),
                description="Update a user story",
            ),
        ]

        for kind in ("form", "report"):
            commands.append(
                CommandSpec(
                    f"create_{kind}",
                    functools.partial(self._create_workflow, kind),
                    (
                        ArgSpec("owner_object_name", description="Owning data object"),
                        ArgSpec(kind, "object", description=f"{kind.capitalize()} fields; name is required"),
                    ),
                    description=f"Create a {kind} and its page init flow",
                )
            )

        for kind, spec in WORKFLOW_KINDS.items():
            target = ArgSpec(f"{kind}_name", description=f"Name of the {spec.label}")
            commands.append(
                CommandSpec(
                    f"update_{kind}",
                    functools.partial(self._update_workflow, kind),
                    (target, _OWNER_ARG, fields_arg),
                    description=f"Update fields of a {spec.label}",
                )
            )
            for list_name, element in spec.lists.items():
                element_name = ArgSpec(f"{list_name}_name", description=f"{element.identity} of the {element.label}")
                commands.extend(
                    [
                        CommandSpec(
                            f"add_{kind}_{list_name}",
                            functools.partial(self._add_element, kind, list_name),
                            (target, _OWNER_ARG, ArgSpec(list_name, "object", description=f"The new {element.label}")),
                            description=f"Append a {element.label} to a {spec.label}",
                        ),
                        CommandSpec(
                            f"update_{kind}_{list_name}",
                            functools.partial(self._update_element, kind, list_name),
                            (target, _OWNER_ARG, element_name, fields_arg),
                            description=f"Update a {element.label} of a {spec.label}",
                        ),
                        CommandSpec(
                            f"move_{kind}_{list_name}",
                            functools.partial(self._move_element, kind, list_name),
                            (
                                target,
                                _OWNER_ARG,
                                element_name,
                                ArgSpec("new_position", "integer", description="0-based target position"),
                            ),
                            description=f"Move a {element.label} to a new position in a {spec.label}",
                        ),
                    ]
                )
        return commands
