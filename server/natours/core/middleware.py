"""Request-processing stages applied to every request, outermost first."""

import json
import logging
import time
import uuid
from typing import Any, Callable, Iterable, Optional
from urllib.parse import parse_qsl, urlencode

from fastapi import Request, Response
from fastapi.responses import JSONResponse
import nh3
from starlette.datastructures import Headers
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .config import settings
from .database import utcnow
from .exceptions import ProblemDetailsException
from .observability import metrics_collector

logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique request ID to each request.

    The request ID is either extracted from the X-Request-ID header
    or generated if not present. It's added to the response headers
    and can be used for request correlation across services.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[self.header_name] = request_id
        return response


class RequestTimeMiddleware(BaseHTTPMiddleware):
    """Stamps the request with its arrival time (ISO 8601, UTC)."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.request_time = utcnow().isoformat() + "Z"
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Sets the usual hardening headers on every response."""

    DEFAULT_HEADERS = {
        "Content-Security-Policy": (
            "default-src 'self' data: blob:; "
            "script-src 'self' https://cdn.jsdelivr.net; "
            "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
            "img-src 'self' data: https://fastapi.tiangolo.com; "
            "object-src 'none'; upgrade-insecure-requests"
        ),
        "Cross-Origin-Opener-Policy": "same-origin",
        "Referrer-Policy": "no-referrer",
        "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
        "X-Content-Type-Options": "nosniff",
        "X-DNS-Prefetch-Control": "off",
        "X-Frame-Options": "SAMEORIGIN",
        "X-Permitted-Cross-Domain-Policies": "none",
    }

    def __init__(self, app: ASGIApp, headers: Optional[dict] = None):
        super().__init__(app)
        self.headers = {**self.DEFAULT_HEADERS, **(headers or {})}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        return response


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Rejects requests whose declared Content-Length exceeds the limit."""

    def __init__(self, app: ASGIApp, max_body_bytes: int = 10 * 1024):
        super().__init__(app)
        self.max_body_bytes = max_body_bytes

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("Content-Length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_body_bytes:
            logger.warning(
                "Request body too large",
                extra={
                    "path": request.url.path,
                    "content_length": int(content_length),
                    "max_body_bytes": self.max_body_bytes,
                }
            )
            problem = ProblemDetailsException(
                status_code=413,
                title="Payload Too Large",
                detail=f"Request body must not exceed {self.max_body_bytes} bytes",
                instance=str(request.url),
            )
            return JSONResponse(status_code=413, content=problem.problem_details)
        return await call_next(request)


PARAMETER_WHITELIST = frozenset({
    "duration",
    "ratings_quantity",
    "ratings_average",
    "max_group_size",
    "difficulty",
    "price",
})


def strip_markup(value: Any) -> Any:
    """Remove HTML markup from every string in a decoded JSON document."""
    if isinstance(value, str):
        return nh3.clean(value, tags=set()) if "<" in value else value
    if isinstance(value, list):
        return [strip_markup(item) for item in value]
    if isinstance(value, dict):
        return {key: strip_markup(item) for key, item in value.items()}
    return value


def dedupe_query_string(query_string: bytes, whitelist: frozenset = PARAMETER_WHITELIST) -> bytes:
    """
    Keep only the last value of a repeated query parameter.

    Parameters whose field (the part before ``[``) is whitelisted keep every
    value, so ``duration=5&duration=9`` still filters on both.
    """
    pairs = parse_qsl(query_string.decode("latin-1"), keep_blank_values=True)
    last_index = {key: index for index, (key, _) in enumerate(pairs)}
    if len(last_index) == len(pairs):
        return query_string

    kept = [
        (key, value) for index, (key, value) in enumerate(pairs)
        if key.split("[", 1)[0] in whitelist or last_index[key] == index
    ]
    return urlencode(kept).encode("latin-1")


class SanitizationMiddleware:
    """
    Cleans request input before it reaches the routers.

    String values in JSON bodies lose any HTML markup, and repeated query
    parameters collapse to their last value unless whitelisted. Written as a
    plain ASGI middleware because it rewrites the request body.
    """

    def __init__(self, app: ASGIApp, whitelist: Iterable[str] = PARAMETER_WHITELIST):
        self.app = app
        self.whitelist = frozenset(whitelist)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        scope = dict(scope)
        scope["query_string"] = dedupe_query_string(scope.get("query_string", b""), self.whitelist)

        if "application/json" not in Headers(scope=scope).get("content-type", ""):
            await self.app(scope, receive, send)
            return

        chunks = []
        while True:
            message = await receive()
            if message["type"] != "http.request":
                # client went away mid-upload
                return
            chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                break

        body = self._clean_body(b"".join(chunks))
        headers = [(name, value) for name, value in scope["headers"] if name != b"content-length"]
        scope["headers"] = headers + [(b"content-length", str(len(body)).encode("latin-1"))]

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if replayed:
                return await receive()
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}

        await self.app(scope, replay, send)

    @staticmethod
    def _clean_body(body: bytes) -> bytes:
        try:
            document = json.loads(body)
        except ValueError:
            # left for request validation to reject
            return body

        cleaned = strip_markup(document)
        if cleaned == document:
            return body
        logger.info("Stripped markup from request body")
        return json.dumps(cleaned).encode("utf-8")


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that logs HTTP requests and responses.

    Logs request and response information including timing,
    status codes, and correlation IDs, and feeds the request metrics.
    """

    def __init__(
        self,
        app: ASGIApp,
        log_request_body: bool = False,
        skip_paths: Optional[list] = None,
    ):
        super().__init__(app)
        self.log_request_body = log_request_body
        self.skip_paths = skip_paths or ["/health", "/metrics", "/favicon.ico"]

    def _should_log(self, path: str) -> bool:
        return path not in self.skip_paths

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP address from request."""
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return "unknown"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self._should_log(request.url.path):
            return await call_next(request)

        start_time = time.perf_counter()

        log_data = {
            "event": "request_started",
            "request_id": getattr(request.state, "request_id", "unknown"),
            "request_time": getattr(request.state, "request_time", None),
            "method": request.method,
            "path": request.url.path,
            "query": request.url.query,
            "client_ip": self._get_client_ip(request),
            "user_agent": request.headers.get("User-Agent", "unknown"),
        }

        if self.log_request_body and request.method in ["POST", "PUT", "PATCH"]:
            body = await request.body()
            if body:
                log_data["request_body"] = body.decode("utf-8", errors="replace")[:1000]

        logger.info("HTTP request started", extra=log_data)

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            metrics_collector.record_request(request.method, self._endpoint(request), 500, duration)
            log_data.update({
                "event": "request_failed",
                "status_code": 500,
                "duration_ms": round(duration * 1000, 2),
                "error": str(e),
            })
            logger.error("HTTP request failed with unhandled exception", extra=log_data)
            raise

        duration = time.perf_counter() - start_time
        status_code = response.status_code
        metrics_collector.record_request(request.method, self._endpoint(request), status_code, duration)

        log_data.update({
            "event": "request_completed",
            "status_code": status_code,
            "duration_ms": round(duration * 1000, 2),
            "response_size": response.headers.get("Content-Length"),
        })

        if status_code >= 500:
            logger.error("HTTP request completed with server error", extra=log_data)
        elif status_code >= 400:
            logger.warning("HTTP request completed with client error", extra=log_data)
        else:
            logger.info("HTTP request completed successfully", extra=log_data)

        return response

    @staticmethod
    def _endpoint(request: Request) -> str:
        """Route template, so metric labels don't explode per resource id."""
        route = request.scope.get("route")
        return getattr(route, "path", "unmatched")


def build_middleware_stack() -> list[Middleware]:
    """
    Build the ordered request-processing stages.

    The first entry is the outermost layer: it sees the request first and
    the response last.
    """
    return [
        Middleware(RequestIDMiddleware),
        Middleware(RequestTimeMiddleware),
        Middleware(SecurityHeadersMiddleware),
        Middleware(BodySizeLimitMiddleware, max_body_bytes=settings.max_body_bytes),
        Middleware(SanitizationMiddleware),
        Middleware(LoggingMiddleware, log_request_body=settings.debug),
        Middleware(GZipMiddleware, minimum_size=1000),
        Middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
            allow_headers=["*"],
            expose_headers=["X-Request-ID"],
        ),
    ]
