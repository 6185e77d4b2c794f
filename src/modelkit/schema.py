"""Static description of the application model: workflow kinds, ordered lists and field enums."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Tuple


SQL_DATA_TYPES: Tuple[str, ...] = (
    "nvarchar",
    "bit",
    "datetime",
    "int",
    "uniqueidentifier",
    "money",
    "bigint",
    "float",
    "decimal",
    "date",
    "varchar",
    "text",
)
BOOLEAN_VALUES: Tuple[str, ...] = ("true", "false")
BUTTON_TYPES: Tuple[str, ...] = ("submit", "cancel", "other")

# Flags that also accept "" meaning "not set".
_TRI_STATE_FLAGS = {"isNotPublishedToSubscriptions"}
_FLAG_RE = re.compile(r"^(is|force)[A-Z]")

LOOKUP_PARENT_OBJECT = "Pac"
ROLE_OBJECT = "Role"

# Child lists of a data object; only dedicated commands may change them.
OBJECT_LIST_KEYS: Tuple[str, ...] = ("prop", "lookupItem", "objectWorkflow", "report", "propSubscription", "modelPkg")


def allowed_values(field_name: str) -> Tuple[str, ...] | None:
    """Closed value set for a model field, or None when the field is free-form."""
    if field_name == "sqlServerDBDataType":
        return SQL_DATA_TYPES
    if field_name == "buttonType":
        return BUTTON_TYPES
    if field_name in _TRI_STATE_FLAGS:
        return ("",) + BOOLEAN_VALUES
    if _FLAG_RE.match(field_name):
        return BOOLEAN_VALUES
    return None


PAGE_INIT_SUFFIXES: Tuple[str, ...] = ("InitObjWF", "InitReport")


def is_page_init_name(name: Any) -> bool:
    if not isinstance(name, str):
        return False
    lowered = name.lower()
    return any(lowered.endswith(suffix.lower()) for suffix in PAGE_INIT_SUFFIXES)


def is_page_init_flow(workflow: dict) -> bool:
    return is_page_init_name(workflow.get("name"))


def is_form(workflow: dict) -> bool:
    return workflow.get("isPage") == "true" and not is_page_init_flow(workflow)


def is_general_flow(workflow: dict) -> bool:
    if workflow.get("isDynaFlow") not in (None, "", "false"):
        return False
    if workflow.get("isDynaFlowTask") not in (None, "", "false"):
        return False
    return workflow.get("isPage") == "false" and not is_page_init_flow(workflow)


def _any_report(_report: dict) -> bool:
    return True


@dataclass(frozen=True)
class ElementList:
    """An order-significant child list of a workflow."""

    name: str
    key: str
    identity: str
    label: str
    named: bool = True


@dataclass(frozen=True)
class WorkflowKind:
    name: str
    container: str
    label: str
    predicate: Callable[[dict], bool]
    lists: Dict[str, ElementList] = field(default_factory=dict)

    def matches(self, node: Any) -> bool:
        return isinstance(node, dict) and self.predicate(node)


_WF_PARAM = ElementList("param", "objectWorkflowParam", "name", "parameter")
_WF_BUTTON = ElementList("button", "objectWorkflowButton", "buttonText", "button", named=False)
_WF_OUTPUT_VAR = ElementList("output_var", "objectWorkflowOutputVar", "name", "output variable")

WORKFLOW_KINDS: Dict[str, WorkflowKind] = {
    "form": WorkflowKind(
        "form",
        "objectWorkflow",
        "form",
        is_form,
        {"param": _WF_PARAM, "button": _WF_BUTTON, "output_var": _WF_OUTPUT_VAR},
    ),
    "report": WorkflowKind(
        "report",
        "report",
        "report",
        _any_report,
        {
            "param": ElementList("param", "reportParam", "name", "parameter"),
            "column": ElementList("column", "reportColumn", "name", "column"),
            "button": ElementList("button", "reportButton", "buttonText", "button", named=False),
        },
    ),
    "general_flow": WorkflowKind(
        "general_flow",
        "objectWorkflow",
        "general flow",
        is_general_flow,
        {"param": _WF_PARAM, "output_var": _WF_OUTPUT_VAR},
    ),
    "page_init_flow": WorkflowKind(
        "page_init_flow",
        "objectWorkflow",
        "page init flow",
        is_page_init_flow,
        {"output_var": _WF_OUTPUT_VAR},
    ),
}


def workflow_kind(name: str) -> WorkflowKind:
    kind = WORKFLOW_KINDS.get(name)
    if kind is None:
        raise KeyError(f"Unknown workflow kind: {name}")
    return kind


def page_init_flow_name(workflow_name: str, kind: str) -> str:
    suffix = PAGE_INIT_SUFFIXES[1] if kind == "report" else PAGE_INIT_SUFFIXES[0]
    return f"{workflow_name}{suffix}"


# -- entity schemas served to remote tools ----------------------------------

_PROPERTY_FIELDS: List[Tuple[str, str]] = [
    ("name", "PascalCase property name, unique within the data object"),
    ("sqlServerDBDataType", "SQL Server data type"),
    ("sqlServerDBDataTypeSize", "Size for nvarchar, varchar and decimal types"),
    ("labelText", "Label shown in generated UI"),
    ("codeDescription", "Developer-facing description"),
    ("defaultValue", "Default value"),
    ("isFK", "Foreign key flag"),
    ("fkObjectName", "Target data object when isFK is \"true\""),
    ("fkObjectPropertyName", "Target property on the foreign object"),
    ("isFKLookup", "Foreign key points at a lookup object"),
    ("isFKConstraintSuppressed", "Suppress the database FK constraint"),
    ("isEncrypted", "Store the value encrypted"),
    ("isQueryByAvailable", "Allow filtering by this property"),
    ("forceDBColumnIndex", "Force a database index"),
    ("isNotPublishedToSubscriptions", "Exclude from subscriptions"),
]

_PARAM_FIELDS: List[Tuple[str, str]] = [
    ("name", "PascalCase parameter name, unique within the workflow"),
    ("sqlServerDBDataType", "SQL Server data type"),
    ("sqlServerDBDataTypeSize", "Size for nvarchar, varchar and decimal types"),
    ("labelText", "Label shown next to the input"),
    ("codeDescription", "Developer-facing description"),
    ("defaultValue", "Default value"),
    ("isFK", "Foreign key flag"),
    ("fKObjectName", "Target data object when isFK is \"true\""),
    ("isFKLookup", "Foreign key points at a lookup object"),
    ("isRequired", "Input is required"),
    ("isSecured", "Render as a secured (password) input"),
    ("isVisible", "Input is visible"),
]

_BUTTON_FIELDS: List[Tuple[str, str]] = [
    ("buttonText", "Text displayed on the button, unique within the workflow"),
    ("buttonType", "Button type"),
    ("destinationTargetName", "Workflow or page the button navigates to"),
    ("isVisible", "Button is visible"),
]

_OUTPUT_VAR_FIELDS: List[Tuple[str, str]] = [
    ("name", "PascalCase output variable name, unique within the workflow"),
    ("sqlServerDBDataType", "SQL Server data type"),
    ("sqlServerDBDataTypeSize", "Size for nvarchar, varchar and decimal types"),
    ("labelText", "Label text"),
    ("sourceObjectName", "Data object the value is read from"),
    ("sourcePropertyName", "Property the value is read from"),
    ("isFK", "Foreign key flag"),
    ("fKObjectName", "Target data object when isFK is \"true\""),
]

_COLUMN_FIELDS: List[Tuple[str, str]] = [
    ("name", "PascalCase column name, unique within the report"),
    ("headerText", "Column header text"),
    ("sourceObjectName", "Data object the column is read from"),
    ("sourcePropertyName", "Property the column is read from"),
    ("sqlServerDBDataType", "SQL Server data type"),
    ("sqlServerDBDataTypeSize", "Size for nvarchar, varchar and decimal types"),
    ("isVisible", "Column is visible"),
    ("isButton", "Render the column as a button"),
    ("buttonText", "Button text when isButton is \"true\""),
]

_SCHEMA_FIELDS: Dict[str, Tuple[str, List[Tuple[str, str]], List[str]]] = {
    "data_object": (
        "A data object (table-like entity) owned by a namespace",
        [
            ("name", "PascalCase name, unique within the model"),
            ("parentObjectName", "Exact name of the owning data object"),
            ("isLookup", "Lookup objects hold a fixed list of values"),
            ("codeDescription", "Developer-facing description"),
        ],
        ["name", "parentObjectName"],
    ),
    "property": ("A property of a data object", _PROPERTY_FIELDS, ["name"]),
    "lookup_value": (
        "A value of a lookup data object",
        [
            ("name", "PascalCase value name, unique within the lookup object"),
            ("displayName", "Display text"),
            ("description", "Description"),
            ("isActive", "Value is active"),
        ],
        ["name"],
    ),
    "role": (
        "A role, stored as a lookup value of the Role data object",
        [
            ("name", "PascalCase role name"),
            ("displayName", "Display text"),
            ("description", "Description"),
            ("isActive", "Role is active"),
        ],
        ["name"],
    ),
    "form": (
        "A form (page workflow) owned by a data object",
        [
            ("name", "PascalCase form name"),
            ("titleText", "Form title"),
            ("introText", "Introduction text"),
            ("codeDescription", "Developer-facing description"),
            ("isAuthorizationRequired", "Require an authenticated user"),
            ("roleRequired", "Role required to open the form"),
            ("isObjectDelete", "Form deletes the owning object"),
            ("isAutoSubmit", "Submit on load"),
            ("isHeaderVisible", "Show the page header"),
            ("isCustomLogicOverwritten", "Custom logic replaces the default"),
        ],
        ["name"],
    ),
    "form_param": ("A form input parameter", _PARAM_FIELDS, ["name"]),
    "form_button": ("A form button", _BUTTON_FIELDS, ["buttonText"]),
    "form_output_var": ("A form output variable", _OUTPUT_VAR_FIELDS, ["name"]),
    "report": (
        "A report (list page) owned by a data object",
        [
            ("name", "PascalCase report name"),
            ("titleText", "Report title"),
            ("introText", "Introduction text"),
            ("visualizationType", "Grid, DetailTwoColumn, DetailThreeColumn, ..."),
            ("targetChildObject", "Child data object listed by the report"),
            ("isAuthorizationRequired", "Require an authenticated user"),
            ("roleRequired", "Role required to open the report"),
        ],
        ["name"],
    ),
    "report_param": ("A report filter parameter", _PARAM_FIELDS, ["name"]),
    "report_column": ("A report column", _COLUMN_FIELDS, ["name"]),
    "report_button": ("A report button", _BUTTON_FIELDS, ["buttonText"]),
    "general_flow": (
        "A general (non-page) workflow owned by a data object",
        [
            ("name", "PascalCase flow name"),
            ("titleText", "Title"),
            ("codeDescription", "Developer-facing description"),
            ("isExposedInBusinessObject", "Expose the flow on the business object"),
            ("isCustomLogicOverwritten", "Custom logic replaces the default"),
        ],
        ["name"],
    ),
    "general_flow_param": ("A general flow input parameter", _PARAM_FIELDS, ["name"]),
    "general_flow_output_var": ("A general flow output variable", _OUTPUT_VAR_FIELDS, ["name"]),
    "page_init_flow": (
        "A flow that initializes a form (<Form>InitObjWF) or report (<Report>InitReport)",
        [
            ("name", "Name ending in InitObjWF or InitReport"),
            ("titleText", "Title"),
            ("codeDescription", "Developer-facing description"),
            ("isCustomLogicOverwritten", "Custom logic replaces the default"),
        ],
        ["name"],
    ),
    "page_init_flow_output_var": ("A page init flow output variable", _OUTPUT_VAR_FIELDS, ["name"]),
    "user_story": (
        "A user story: 'A [Role] wants to ...' or 'As a [Role], I want to ...'",
        [
            ("storyText", "Story text"),
            ("storyNumber", "Optional story number"),
            ("isIgnored", "Story is ignored"),
        ],
        ["storyText"],
    ),
}


def schema_kinds() -> List[str]:
    return sorted(_SCHEMA_FIELDS.keys())


def entity_schema(kind: str) -> dict | None:
    entry = _SCHEMA_FIELDS.get(kind)
    if entry is None:
        return None
    description, fields, required = entry
    properties: Dict[str, dict] = {}
    for name, field_description in fields:
        prop: Dict[str, Any] = {"type": "string", "description": field_description}
        values = allowed_values(name)
        if values is not None:
            prop["enum"] = list(values)
        properties[name] = prop
    return {
        "kind": kind,
        "description": description,
        "properties": properties,
        "required": list(required),
    }
