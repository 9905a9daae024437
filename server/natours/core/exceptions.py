"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import logging
import uuid
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .database import utcnow

logger = logging.getLogger(__name__)


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )


class ValidationError(ProblemDetailsException):
    """Exception for schema constraint violations."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        violations: Optional[List[Dict[str, str]]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if violations:
            extensions["violations"] = violations

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri="https://natours.dev/problems/validation-error",
            instance=instance,
            extensions=extensions,
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"No {resource_type} found"
            if resource_id:
                detail += f" with ID '{resource_id}'"

        extensions = {
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="https://natours.dev/problems/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for duplicate-key and other unique constraint violations."""

    def __init__(
        self,
        detail: str = "Duplicate field value. Please use another value!",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title="Duplicate Field Value",
            detail=detail,
            type_uri="https://natours.dev/problems/duplicate-field-value",
            instance=instance,
            extensions=extensions,
        )


class InternalServerError(ProblemDetailsException):
    """Exception for internal server errors."""

    def __init__(
        self,
        detail: str = "Something went very wrong!",
        error_id: Optional[str] = None,
        instance: Optional[str] = None,
        debug_info: Optional[Dict[str, Any]] = None,
    ):
        if not error_id:
            error_id = str(uuid.uuid4())

        extensions = {
            "error_id": error_id,
            "timestamp": utcnow().isoformat() + "Z",
        }
        if debug_info:
            extensions["debug"] = debug_info

        super().__init__(
            status_code=500,
            title="Internal Server Error",
            detail=detail,
            type_uri="https://natours.dev/problems/internal-server-error",
            instance=instance,
            extensions=extensions,
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Translate FastAPI request validation failures into a 400 problem."""
    violations = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        violations.append({
            "path": ".".join(location),
            "message": error.get("msg", "Invalid value"),
        })

    messages = "; ".join(f"{v['path']}: {v['message']}" for v in violations)
    problem = ValidationError(
        detail=f"Invalid input data. {messages}" if messages else "Invalid input data.",
        violations=violations,
        instance=str(request.url),
    )
    return await problem_details_handler(request, problem)


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Translate unique constraint violations that escaped a repository."""
    logger.warning(
        "Integrity error reached the error handler",
        extra={"path": request.url.path, "error": str(exc.orig)}
    )
    problem = ConflictError(instance=str(request.url))
    return await problem_details_handler(request, problem)


async def not_found_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes and other framework HTTP errors."""
    if isinstance(exc, ProblemDetailsException):
        return await problem_details_handler(request, exc)

    if exc.status_code == 404:
        problem = NotFoundError(
            resource_type="route",
            detail=f"Can't find {request.url.path} on this server!",
            instance=str(request.url),
        )
        return await problem_details_handler(request, problem)

    problem = ProblemDetailsException(
        status_code=exc.status_code,
        title=str(exc.detail),
        instance=str(request.url),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=problem.problem_details,
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Programming errors never leak internals in production; development
    responses carry the exception type and message.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    debug_info = None
    if not settings.is_production:
        debug_info = {"exception": type(exc).__name__, "message": str(exc)}

    problem = InternalServerError(instance=str(request.url), debug_info=debug_info)

    logger.error(
        "Unhandled exception while processing request",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_id": problem.extensions["error_id"],
        },
        exc_info=exc,
    )

    return JSONResponse(
        status_code=500,
        content=problem.problem_details,
    )
