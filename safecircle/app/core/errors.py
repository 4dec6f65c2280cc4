"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain-specific exception classes for the safety lifecycle
    • Consistent JSON error response format
    • Automatic logging of unhandled errors
    • Request context in error responses (non-production)

Error kinds and how they propagate:

    Kind                   Class                      Effect
    ─────────────────      ───────────────────────    ─────────────────────────────
    PermissionDenied       PermissionDeniedError      location degrades to sentinel
    NoContacts             NoContactsError            fire aborted, nothing recorded
    PersistenceFailure     PersistenceError           mutation not committed
    RemoteDispatchFailure  RemoteDispatchError        logged, alert kept
    InvalidInput           InvalidInputError          rejected before any mutation

Usage:
    from safecircle.app.core.errors import InvalidInputError

    raise InvalidInputError("Please enter a valid phone number", field="phone")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from safecircle.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class SafeCircleError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class NotFoundError(SafeCircleError):
    """Resource not found (404)."""

    def __init__(self, resource: str, **identifiers: Any):
        details = {"resource": resource, **identifiers}
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details=details,
        )


class InvalidInputError(SafeCircleError):
    """Input validation failed (422). Raised before any store mutation."""

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        d = {**details}
        if field:
            d["field"] = field
        super().__init__(
            message=message,
            status_code=422,
            error_code="INVALID_INPUT",
            details=d,
        )


class LocationError(SafeCircleError):
    """Base for location failures. Never fatal to the alert lifecycle."""


class PermissionDeniedError(LocationError):
    """Location permission was denied by the platform (403)."""

    def __init__(self, message: str = "Permission to access location was denied"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="PERMISSION_DENIED",
        )


class LocationUnavailableError(LocationError):
    """Permission granted but no position fix yet (503)."""

    def __init__(self, message: str = "Location not available yet"):
        super().__init__(
            message=message,
            status_code=503,
            error_code="LOCATION_UNAVAILABLE",
        )


class NoContactsError(SafeCircleError):
    """An alert fired with an empty contact store (409)."""

    def __init__(self, message: str = "Please add emergency contacts before sending an SOS"):
        super().__init__(
            message=message,
            status_code=409,
            error_code="NO_CONTACTS",
        )


class PersistenceError(SafeCircleError):
    """Durable local write failed — the mutation was not committed (500)."""

    def __init__(self, key: str, message: str = ""):
        super().__init__(
            message=f"Failed to persist '{key}': {message}",
            status_code=500,
            error_code="PERSISTENCE_FAILURE",
            details={"key": key},
        )


class RemoteDispatchError(SafeCircleError):
    """Remote backend or notification call failed (502). Recoverable."""

    def __init__(self, service: str, message: str = "", **details: Any):
        super().__init__(
            message=f"Remote call '{service}' failed: {message}",
            status_code=502,
            error_code="REMOTE_DISPATCH_FAILURE",
            details={"service": service, **details},
        )


class InvalidTransitionError(SafeCircleError):
    """Alert status change would move backwards (409)."""

    def __init__(self, alert_id: str, current: str, target: str):
        super().__init__(
            message=f"Alert {alert_id} cannot move from '{current}' to '{target}'",
            status_code=409,
            error_code="INVALID_TRANSITION",
            details={"alert_id": alert_id, "current": current, "target": target},
        )


class LifecycleStateError(SafeCircleError):
    """Lifecycle action not valid in the current state (409)."""

    def __init__(self, message: str, *, state: str):
        super().__init__(
            message=message,
            status_code=409,
            error_code="LIFECYCLE_STATE",
            details={"state": state},
        )


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: Dict[str, Any] = {
        "error": {
            "code": error_code,
            "message": message,
            "status": status_code,
        }
    }

    if details:
        body["error"]["details"] = details

    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(SafeCircleError)
    async def handle_app_error(request: Request, exc: SafeCircleError):
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(
            level,
            "API Error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message,
            exc.details, request,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in e.get("loc", ())[1:]), "message": e.get("msg")}
            for e in exc.errors()
        ]
        logger.warning("Request validation failed: %s", errors)
        return _build_error_response(
            422, "INVALID_INPUT", "Request validation failed",
            {"errors": errors}, request,
        )

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        logger.warning("ValueError: %s", exc)
        return _build_error_response(
            422, "INVALID_INPUT", str(exc), request=request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "Internal server error"
        details = (
            {"traceback": traceback.format_exc().split("\n")}
            if settings.DEBUG else None
        )
        return _build_error_response(
            500, "INTERNAL_ERROR", message, details, request,
        )
