"""
Structured tool errors.

Tools never raise into the conversation loop. Failures are returned as a
JSON envelope the model can reason about:

    {"error": {"code", "type", "message", "recoverable",
               "retry_after", "suggestions", "context"}}
"""

import json
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error taxonomy shared by all tools."""
    INVALID_INPUT = "INVALID_INPUT"
    MISSING_REQUIRED = "MISSING_REQUIRED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    CONFLICT = "CONFLICT"
    CONNECTION_TIMEOUT = "CONNECTION_TIMEOUT"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    AUTH_FAILED = "AUTH_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    BUG = "BUG"


# Codes a caller can usually fix by retrying or adjusting input
RECOVERABLE_CODES = {
    ErrorCode.INVALID_INPUT,
    ErrorCode.MISSING_REQUIRED,
    ErrorCode.CONFLICT,
    ErrorCode.CONNECTION_TIMEOUT,
    ErrorCode.SERVICE_UNAVAILABLE,
}


def tool_error(
    code: ErrorCode,
    error_type: str,
    message: str,
    *,
    recoverable: bool | None = None,
    retry_after: int | None = None,
    suggestions: list[str] | None = None,
    context: dict[str, Any] | None = None,
) -> str:
    """Build the error envelope as JSON text."""
    if recoverable is None:
        recoverable = code in RECOVERABLE_CODES
    return json.dumps({
        "error": {
            "code": code.value,
            "type": error_type,
            "message": message,
            "recoverable": recoverable,
            "retry_after": retry_after,
            "suggestions": suggestions or [],
            "context": context or {},
        }
    }, default=str)


def tool_success(payload: Any) -> str:
    """Serialize a success payload."""
    return json.dumps(payload, indent=2, default=str)


def parse_error_envelope(result: str) -> dict[str, Any] | None:
    """Return the inner error object if ``result`` is an error envelope."""
    try:
        parsed = json.loads(result)
    except (TypeError, ValueError):
        return None
    if not isinstance(parsed, dict):
        return None
    error = parsed.get("error")
    if isinstance(error, dict) and "code" in error and "message" in error:
        return error
    return None
