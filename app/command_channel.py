"""Command Channel: one execution endpoint in front of the CommandDispatcher."""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import FastAPI

from app.routes import RouteRegistry, RouteRequest, create_channel_app
from bridge_errors import BadRequestError, issue
from command_dispatcher import CommandDispatcher

logger = logging.getLogger("modelbridge.command")


def _execute(dispatcher: CommandDispatcher, request: RouteRequest) -> dict:
    body = request.body
    if not isinstance(body, dict):
        raise BadRequestError(
            "Request body must be a JSON object {command, args}",
            [issue("BODY_INVALID", "Request body must be a JSON object", "body")],
        )
    command = body.get("command")
    if not isinstance(command, str) or not command:
        raise BadRequestError("command is required", [issue("COMMAND_REQUIRED", "command is required", "command")])
    # Older callers send "arguments" instead of "args".
    args = body["args"] if "args" in body else body.get("arguments")
    logger.info("command_received command=%s", command)
    return dispatcher.execute(command, args)


def build_command_routes(dispatcher: CommandDispatcher, port_getter: Callable[[], int | None]) -> RouteRegistry:
    routes = RouteRegistry()
    routes.get("/api/health", lambda r: {"status": "ok", "channel": "command", "port": port_getter()}, "Liveness and bound port")
    routes.get("/api/commands", lambda r: {"commands": dispatcher.list_commands()}, "Declared commands and argument shapes")
    routes.post("/api/execute-command", lambda r: _execute(dispatcher, r), "Execute a named command")
    return routes


def create_command_app(dispatcher: CommandDispatcher, port_getter: Callable[[], int | None] = lambda: None) -> FastAPI:
    return create_channel_app("command", build_command_routes(dispatcher, port_getter), logger)
