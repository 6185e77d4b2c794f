"""Error taxonomy shared by the dispatcher, the channels and the tool client."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


Issue = Dict[str, Any]

NOT_FOUND = "NotFound"
VALIDATION_FAILED = "ValidationFailed"
BOUNDS_ERROR = "BoundsError"
CHANNEL_UNAVAILABLE = "ChannelUnavailable"
INTERNAL = "Internal"
BAD_REQUEST = "BadRequest"

HTTP_STATUS = {
    NOT_FOUND: 404,
    VALIDATION_FAILED: 422,
    BOUNDS_ERROR: 400,
    CHANNEL_UNAVAILABLE: 503,
    INTERNAL: 500,
    BAD_REQUEST: 400,
}


def issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


@dataclass
class BridgeError(Exception):
    message: str
    issues: List[Issue] = field(default_factory=list)

    error_code = INTERNAL

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.error_code}: {self.message}"

    def to_body(self) -> dict:
        return {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
            "errors": list(self.issues),
        }


@dataclass
class NotFoundError(BridgeError):
    error_code = NOT_FOUND


@dataclass
class ValidationFailedError(BridgeError):
    error_code = VALIDATION_FAILED


@dataclass
class BoundsError(BridgeError):
    error_code = BOUNDS_ERROR


@dataclass
class ChannelUnavailableError(BridgeError):
    error_code = CHANNEL_UNAVAILABLE


def validation_failed(issues: List[Issue]) -> ValidationFailedError:
    """Build a ValidationFailedError whose message lists every issue."""
    if len(issues) == 1:
        message = issues[0]["message"]
    else:
        message = f"{len(issues)} validation errors: " + "; ".join(i["message"] for i in issues)
    return ValidationFailedError(message, list(issues))


@dataclass
class BadRequestError(BridgeError):
    error_code = BAD_REQUEST
