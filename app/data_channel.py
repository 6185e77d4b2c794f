"""Read-only Data Channel: queries over the model, no side effects."""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import FastAPI

from app.routes import RouteRegistry, RouteRequest, create_channel_app, pattern
from model_queries import ModelQueries
from model_store import ModelStore

logger = logging.getLogger("modelbridge.data")


def _q(request: RouteRequest, name: str) -> str | None:
    value = request.query.get(name)
    return value if value not in (None, "") else None


def build_data_routes(store: ModelStore, port_getter: Callable[[], int | None]) -> RouteRegistry:
    queries = ModelQueries(store)
    routes = RouteRegistry()

    routes.get("/api/health", lambda r: {"status": "ok", "channel": "data", "port": port_getter()}, "Liveness and bound port")
    routes.get("/api/model", lambda r: queries.model(), "Full model document")
    routes.get("/api/model/status", lambda r: queries.status(), "Dirty flag, revision and object count")
    routes.get("/api/objects", lambda r: queries.objects(), "All data objects")
    routes.get(
        "/api/data-objects",
        lambda r: queries.data_objects(_q(r, "name"), _q(r, "search"), _q(r, "is_lookup")),
        "Data object summaries; filters name, search, is_lookup",
    )
    routes.get("/api/data-objects-full", lambda r: queries.data_objects_full(), "Data objects with all fields")
    routes.get(
        pattern(r"/api/data-objects/(?P<name>[^/]+)"),
        lambda r: queries.data_object(r.params["name"]),
        "One data object by name",
    )
    routes.get("/api/data-object-usage", lambda r: queries.data_object_usage(), "Usage references for all data objects")
    routes.get(
        pattern(r"/api/data-object-usage/(?P<name>[^/]+)"),
        lambda r: queries.data_object_usage(r.params["name"]),
        "Usage references for one data object",
    )
    routes.get(
        "/api/forms",
        lambda r: queries.workflows("form", _q(r, "form_name"), _q(r, "owner_object_name")),
        "Forms; filters form_name, owner_object_name",
    )
    routes.get(
        "/api/reports",
        lambda r: queries.workflows("report", _q(r, "report_name"), _q(r, "owner_object_name")),
        "Reports; filters report_name, owner_object_name",
    )
    routes.get(
        "/api/general-flows",
        lambda r: queries.workflows("general_flow", _q(r, "general_flow_name"), _q(r, "owner_object_name")),
        "General flows; filters general_flow_name, owner_object_name",
    )
    routes.get(
        "/api/general-flows-summary",
        lambda r: queries.general_flows_summary(_q(r, "general_flow_name"), _q(r, "owner_object_name")),
        "General flow summaries",
    )
    routes.get(
        "/api/page-init-flows",
        lambda r: queries.workflows("page_init_flow", _q(r, "page_init_flow_name"), _q(r, "owner_object_name")),
        "Page init flows; filters page_init_flow_name, owner_object_name",
    )
    routes.get(
        "/api/pages",
        lambda r: queries.pages(_q(r, "page_name"), _q(r, "page_type")),
        "Forms and reports; filters page_name, page_type",
    )
    routes.get(
        "/api/lookup-values",
        lambda r: queries.lookup_values(_q(r, "data_object_name")),
        "Values of a lookup data object",
    )
    routes.get("/api/roles", lambda r: queries.roles(), "Roles")
    routes.get("/api/user-stories", lambda r: queries.user_stories(), "User stories")
    routes.get(
        pattern(r"/api/schemas/(?P<kind>[a-z_]+)"),
        lambda r: queries.schema(r.params["kind"]),
        "Field schema of an entity kind",
    )
    return routes


def create_data_app(store: ModelStore, port_getter: Callable[[], int | None] = lambda: None) -> FastAPI:
    return create_channel_app("data", build_data_routes(store, port_getter), logger)
