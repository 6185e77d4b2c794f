"""Declarative route table shared by the Data and Command channels."""

from __future__ import annotations

import json
import logging
import re
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Pattern, Union

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bridge_errors import BAD_REQUEST, HTTP_STATUS, INTERNAL, BadRequestError, BridgeError, NotFoundError, issue


@dataclass
class RouteRequest:
    method: str
    path: str
    params: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, str] = field(default_factory=dict)
    body: Any = None


Handler = Callable[[RouteRequest], dict]


@dataclass
class Route:
    method: str
    path: Union[str, Pattern[str]]
    handler: Handler
    description: str = ""

    def match(self, method: str, path: str) -> Dict[str, str] | None:
        if method.upper() != self.method:
            return None
        if isinstance(self.path, str):
            return {} if path == self.path else None
        found = self.path.fullmatch(path)
        if found is None:
            return None
        return {k: v for k, v in found.groupdict().items() if v is not None}

    def describe(self) -> dict:
        path = self.path if isinstance(self.path, str) else self.path.pattern
        return {"method": self.method, "path": path, "description": self.description}


class RouteRegistry:
    """Ordered (method, path or pattern) -> handler table; the first match wins."""

    def __init__(self) -> None:
        self._routes: List[Route] = []

    def add(self, method: str, path: Union[str, Pattern[str]], handler: Handler, description: str = "") -> None:
        self._routes.append(Route(method.upper(), path, handler, description))

    def get(self, path: Union[str, Pattern[str]], handler: Handler, description: str = "") -> None:
        self.add("GET", path, handler, description)

    def post(self, path: Union[str, Pattern[str]], handler: Handler, description: str = "") -> None:
        self.add("POST", path, handler, description)

    def match(self, method: str, path: str) -> tuple[Route, Dict[str, str]] | None:
        for route in self._routes:
            params = route.match(method, path)
            if params is not None:
                return route, params
        return None

    def describe(self) -> List[dict]:
        return [route.describe() for route in self._routes]

    def __len__(self) -> int:
        return len(self._routes)


def pattern(regex: str) -> Pattern[str]:
    return re.compile(regex)


def _ok_response(payload: dict, status: int = 200) -> JSONResponse:
    body = {"success": True, **payload}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _error_response(err: BridgeError) -> JSONResponse:
    return JSONResponse(jsonable_encoder(err.to_body()), status_code=HTTP_STATUS.get(err.error_code, 500))


def _parse_body(raw: bytes) -> Any:
    if not raw or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise BadRequestError(
            "Request body is not valid JSON",
            [issue("BODY_INVALID_JSON", str(exc), "body")],
        ) from exc


class RequestLogMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: Any, channel: str, logger: logging.Logger) -> None:
        super().__init__(app)
        self.channel = channel
        self.logger = logger

    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS":
            return await call_next(request)
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        self.logger.info(
            "request channel=%s method=%s path=%s status=%s duration_ms=%s",
            self.channel,
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response


def create_channel_app(channel: str, registry: RouteRegistry, logger: logging.Logger) -> FastAPI:
    """Build a FastAPI app whose only route hands every request to ``registry``.

    Handlers are synchronous and run after the body has been read, so a
    handler never yields to the event loop part-way through a mutation.
    """
    app = FastAPI(title=f"Model bridge {channel} channel")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLogMiddleware, channel=channel, logger=logger)

    @app.api_route("/{path:path}", methods=["GET", "POST"])
    async def dispatch(request: Request) -> JSONResponse:
        method = request.method.upper()
        path = request.scope["path"]
        found = registry.match(method, path)
        if found is None:
            logger.info("route_missing channel=%s method=%s path=%s", channel, method, path)
            message = f"No route for {method} {path}"
            err = NotFoundError(message, [issue("ROUTE_NOT_FOUND", message, "path", {"available": registry.describe()})])
            return _error_response(err)
        route, params = found
        raw = await request.body() if method == "POST" else b""
        try:
            body = _parse_body(raw)
            payload = route.handler(RouteRequest(method, path, params, dict(request.query_params), body))
        except BridgeError as exc:
            level = logging.WARNING if exc.error_code == BAD_REQUEST else logging.INFO
            logger.log(level, "route_rejected channel=%s path=%s error_code=%s", channel, path, exc.error_code)
            return _error_response(exc)
        except Exception:
            logger.exception("route_failed channel=%s method=%s path=%s", channel, method, path)
            body = {"success": False, "error": "Internal server error", "error_code": INTERNAL, "errors": []}
            return JSONResponse(body, status_code=500)
        logger.debug("route_served channel=%s method=%s path=%s", channel, method, path)
        # Dispatcher envelopes already carry success and error_code.
        if payload.get("success") is False:
            return JSONResponse(jsonable_encoder(payload), status_code=HTTP_STATUS.get(payload.get("error_code"), 500))
        return _ok_response(payload)

    return app
