"""Remote tool client: runs outside the host and reaches the model only over HTTP.

Query tools map to Data Channel GETs and may be retried. Mutation tools map to
one Command Channel POST each and are never retried, because a timed-out
command may still have been applied on the host.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple
from urllib.parse import quote

import httpx

from app.config import BridgeConfig, load_config
from bridge_errors import INTERNAL, NOT_FOUND, VALIDATION_FAILED, ChannelUnavailableError, issue
from modelkit.schema import WORKFLOW_KINDS

logger = logging.getLogger("modelbridge.client")

QUERY = "query"
MUTATION = "mutation"


@dataclass(frozen=True)
class ToolSpec:
    name: str
    kind: str
    description: str
    inputs: Tuple[str, ...] = ()
    required: Tuple[str, ...] = ()
    path: str = ""
    command: str | None = None
    output: str = ""

    @property
    def channel(self) -> str:
        return "data" if self.kind == QUERY else "command"

    def describe(self) -> dict:
        return {
            "name": self.name,
            "kind": self.kind,
            "channel": self.channel,
            "description": self.description,
            "input": {name: {"required": name in self.required} for name in self.inputs},
            "output": self.output or "success, error?, note?",
        }


def _query(name: str, path: str, description: str, inputs: Tuple[str, ...] = (), required: Tuple[str, ...] = (), output: str = "") -> ToolSpec:
    return ToolSpec(name, QUERY, description, inputs, required, path=path, output=output)


def _mutation(command: str, description: str, inputs: Tuple[str, ...], required: Tuple[str, ...] | None = None) -> ToolSpec:
    return ToolSpec(
        command,
        MUTATION,
        description,
        inputs,
        inputs if required is None else required,
        command=command,
        output="success, message?, error?, error_code?, errors?, note?",
    )


QUERY_TOOLS: List[ToolSpec] = [
    _query("get_model", "/api/model", "Full model document", output="model"),
    _query("get_model_status", "/api/model/status", "Dirty flag, revision and object count"),
    _query("list_objects", "/api/objects", "All data objects with every field", output="objects, count"),
    _query(
        "list_data_objects",
        "/api/data-objects",
        "Data object summaries",
        ("name", "search", "is_lookup"),
        output="data_objects, count",
    ),
    _query("list_data_objects_full", "/api/data-objects-full", "Data objects with all fields", output="data_objects, count"),
    _query("get_data_object", "/api/data-objects/{name}", "One data object by name", ("name",), ("name",), "data_object"),
    _query("list_data_object_usage", "/api/data-object-usage", "Usage references of every data object", output="usage, count"),
    _query(
        "get_data_object_usage",
        "/api/data-object-usage/{name}",
        "Usage references of one data object",
        ("name",),
        ("name",),
        "usage, count",
    ),
    _query("get_forms", "/api/forms", "Forms", ("form_name", "owner_object_name"), output="forms, count, ambiguous?"),
    _query("get_reports", "/api/reports", "Reports", ("report_name", "owner_object_name"), output="reports, count, ambiguous?"),
    _query(
        "get_general_flows",
        "/api/general-flows",
        "General flows",
        ("general_flow_name", "owner_object_name"),
        output="general_flows, count, ambiguous?",
    ),
    _query(
        "get_general_flows_summary",
        "/api/general-flows-summary",
        "General flow summaries",
        ("general_flow_name", "owner_object_name"),
        output="general_flows, count",
    ),
    _query(
        "get_page_init_flows",
        "/api/page-init-flows",
        "Page init flows",
        ("page_init_flow_name", "owner_object_name"),
        output="page_init_flows, count, ambiguous?",
    ),
    _query("get_pages", "/api/pages", "Forms and reports", ("page_name", "page_type"), output="pages, count"),
    _query(
        "get_lookup_values",
        "/api/lookup-values",
        "Values of a lookup data object",
        ("data_object_name",),
        ("data_object_name",),
        "lookup_values, count",
    ),
    _query("list_roles", "/api/roles", "Roles", output="roles, count"),
    _query("list_user_stories", "/api/user-stories", "User stories", output="user_stories, count"),
    _query("get_schema", "/api/schemas/{kind}", "Field schema of an entity kind", ("kind",), ("kind",), "schema"),
]


def _mutation_tools() -> List[ToolSpec]:
    tools = [
        _mutation(
            "create_data_object",
            "Create a data object",
            ("name", "parentObjectName", "isLookup", "codeDescription"),
            ("name", "parentObjectName"),
        ),
        _mutation("update_data_object", "Update scalar fields of a data object", ("data_object_name", "fields")),
        _mutation("update_full_data_object", "Replace a data object", ("data_object_name", "data_object")),
        _mutation("add_data_object_props", "Append properties to a data object", ("data_object_name", "props")),
        _mutation("update_data_object_prop", "Update a property", ("data_object_name", "property_name", "fields")),
        _mutation("add_lookup_value", "Add a lookup value", ("data_object_name", "lookup_value")),
        _mutation("update_lookup_value", "Update a lookup value", ("data_object_name", "lookup_value_name", "fields")),
        _mutation("add_role", "Add a role", ("role",)),
        _mutation("update_role", "Update a role", ("role_name", "fields")),
        _mutation("create_user_story", "Create a user story", ("storyText", "storyNumber", "isIgnored"), ("storyText",)),
        _mutation("update_user_story", "Update a user story", ("user_story_name", "fields")),
        _mutation("create_form", "Create a form and its page init flow", ("owner_object_name", "form")),
        _mutation("create_report", "Create a report and its page init flow", ("owner_object_name", "report")),
    ]
    for kind, spec in WORKFLOW_KINDS.items():
        target = f"{kind}_name"
        tools.append(
            _mutation(f"update_{kind}", f"Update a {spec.label}", (target, "owner_object_name", "fields"), (target, "fields"))
        )
        for list_name, element in spec.lists.items():
            element_name = f"{list_name}_name"
            tools.extend(
                [
                    _mutation(
                        f"add_{kind}_{list_name}",
                        f"Append a {element.label} to a {spec.label}",
                        (target, "owner_object_name", list_name),
                        (target, list_name),
                    ),
                    _mutation(
                        f"update_{kind}_{list_name}",
                        f"Update a {element.label} of a {spec.label}",
                        (target, "owner_object_name", element_name, "fields"),
                        (target, element_name, "fields"),
                    ),
                    _mutation(
                        f"move_{kind}_{list_name}",
                        f"Move a {element.label} within a {spec.label}",
                        (target, "owner_object_name", element_name, "new_position"),
                        (target, element_name, "new_position"),
                    ),
                ]
            )
    return tools


TOOLS: Dict[str, ToolSpec] = {tool.name: tool for tool in QUERY_TOOLS + _mutation_tools()}


def _degraded(channel: str, url: str, error: str, note: str) -> dict:
    message = f"{channel.capitalize()} Channel unavailable at {url}: {error}"
    body = ChannelUnavailableError(message, [issue("CHANNEL_UNAVAILABLE", message, channel, {"url": url})]).to_body()
    body["note"] = note
    return body


def _decode(res: httpx.Response) -> dict:
    try:
        body = res.json()
    except ValueError:
        return {
            "success": False,
            "error": f"Unexpected non-JSON response (HTTP {res.status_code})",
            "error_code": INTERNAL,
        }
    if not isinstance(body, dict):
        return {"success": res.status_code < 400, "data": body}
    body.setdefault("success", res.status_code < 400)
    return body


class RemoteToolClient:
    def __init__(
        self,
        config: BridgeConfig | None = None,
        data_client: httpx.Client | None = None,
        command_client: httpx.Client | None = None,
        retry_delay: float = 0.2,
    ) -> None:
        self.config = config or load_config()
        self.retry_delay = retry_delay
        self._owns_data = data_client is None
        self._owns_command = command_client is None
        self._data = data_client or httpx.Client(base_url=self.config.data_url, timeout=self.config.client_timeout)
        self._command = command_client or httpx.Client(base_url=self.config.command_url, timeout=self.config.client_timeout)

    def __enter__(self) -> "RemoteToolClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_data:
            self._data.close()
        if self._owns_command:
            self._command.close()

    @staticmethod
    def tools() -> List[dict]:
        return [tool.describe() for tool in TOOLS.values()]

    def invoke(self, name: str, arguments: Any = None) -> dict:
        """Run one tool. Failures come back as ``success: False`` bodies, never as exceptions."""
        tool = TOOLS.get(name)
        if tool is None:
            return {"success": False, "error": f'Unknown tool "{name}"', "error_code": NOT_FOUND}
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return {"success": False, "error": "arguments must be an object", "error_code": VALIDATION_FAILED}
        missing = [key for key in tool.required if arguments.get(key) in (None, "")]
        if missing:
            return {
                "success": False,
                "error": f"Missing required argument(s): {', '.join(missing)}",
                "error_code": VALIDATION_FAILED,
            }
        if tool.kind == QUERY:
            return self._run_query(tool, arguments)
        return self._run_command(tool, arguments)

    def _run_query(self, tool: ToolSpec, arguments: dict) -> dict:
        path = tool.path
        params: Dict[str, str] = {}
        for key in tool.inputs:
            value = arguments.get(key)
            if value is None:
                continue
            token = "{" + key + "}"
            if token in path:
                path = path.replace(token, quote(str(value), safe=""))
            else:
                params[key] = str(value).lower() if isinstance(value, bool) else str(value)

        attempts = 1 + max(0, self.config.client_retries)
        last_error = ""
        for attempt in range(1, attempts + 1):
            try:
                res = self._data.get(path, params=params)
            except httpx.TransportError as exc:
                last_error = str(exc) or exc.__class__.__name__
                logger.warning("channel_unavailable channel=data path=%s attempt=%s/%s error=%s", path, attempt, attempts, last_error)
                if attempt < attempts:
                    time.sleep(self.retry_delay)
                continue
            except httpx.HTTPError as exc:
                logger.warning("query_failed tool=%s error=%s", tool.name, exc)
                return {"success": False, "error": str(exc), "error_code": INTERNAL}
            return _decode(res)
        return _degraded(
            "data",
            str(self._data.base_url),
            last_error,
            "The model host is not reachable; start the editor bridge or run discover() to find its port.",
        )

    def _run_command(self, tool: ToolSpec, arguments: dict) -> dict:
        body = {"command": tool.command, "args": arguments}
        url = str(self._command.base_url)
        try:
            res = self._command.post("/api/execute-command", json=body)
        except httpx.TimeoutException as exc:
            logger.warning("command_timeout command=%s", tool.command)
            return _degraded(
                "command",
                url,
                str(exc) or "timed out",
                "The command may still have been applied. Re-query the model through a query tool before retrying.",
            )
        except httpx.TransportError as exc:
            logger.warning("channel_unavailable channel=command command=%s error=%s", tool.command, exc)
            return _degraded(
                "command",
                url,
                str(exc) or exc.__class__.__name__,
                "The model host is not reachable, so nothing was changed. Start the editor bridge and try again.",
            )
        except httpx.HTTPError as exc:
            logger.warning("command_failed command=%s error=%s", tool.command, exc)
            return {"success": False, "error": str(exc), "error_code": INTERNAL}
        return _decode(res)

    def discover(self, attempts: int | None = None, timeout: float = 0.5) -> Dict[str, int | None]:
        """Probe /api/health across the port window and point the client at the channels found."""
        cfg = self.config
        found: Dict[str, int | None] = {"data": None, "command": None}
        window = attempts or cfg.port_attempts
        with httpx.Client(timeout=timeout) as probe:
            for port in range(cfg.data_port, cfg.data_port + window + 1):
                try:
                    res = probe.get(f"http://{cfg.host}:{port}/api/health")
                    health = res.json()
                except (httpx.HTTPError, ValueError):
                    continue
                channel = health.get("channel") if isinstance(health, dict) else None
                if channel in found and found[channel] is None:
                    found[channel] = port
                if all(found.values()):
                    break
        logger.info("discover data_port=%s command_port=%s", found["data"], found["command"])
        if found["data"] is not None and self._owns_data:
            self._data.close()
            self._data = httpx.Client(base_url=f"http://{cfg.host}:{found['data']}", timeout=cfg.client_timeout)
        if found["command"] is not None and self._owns_command:
            self._command.close()
            self._command = httpx.Client(base_url=f"http://{cfg.host}:{found['command']}", timeout=cfg.client_timeout)
        return found
