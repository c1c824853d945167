"""Request context middleware.

Every request gets an id (reused from a valid inbound ``X-Request-ID``) and,
before the endpoint runs, the matched route template plus the catalog ids the
URL names. All of it is bound into structlog's contextvars, so resolver and
repository logs emitted while serving the request carry the version they were
working on.
"""
import time
import uuid
from collections.abc import Awaitable, Callable
from contextvars import ContextVar
from typing import Any

import structlog
from fastapi import Request, Response
from opentelemetry.trace.status import Status, StatusCode
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

from modcompat.core.logging import get_logger
from modcompat.core.tracing import create_span, get_tracer

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

logger = get_logger(__name__)
tracer = get_tracer(__name__)

# Path parameters that identify catalog rows; bound as integers when numeric.
CONTEXT_PATH_PARAMS = ("version_id",)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind request id and catalog context to logs and spans for one request."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = _inbound_request_id(request) or str(uuid.uuid4())
        request_id_var.set(request_id)
        context = route_context(request)
        structlog.contextvars.bind_contextvars(request_id=request_id, **context)

        attributes = {
            "http.method": request.method,
            "http.url": str(request.url),
            "http.route": context["route"],
            "request.id": request_id,
        }
        attributes.update(
            {f"modcompat.{key}": str(value) for key, value in context.items() if key != "route"}
        )

        with create_span(tracer, f"{request.method} {context['route']}", **attributes) as span:
            start_time = time.time()
            logger.info(
                "Request started",
                method=request.method,
                path=request.url.path,
                query_params=str(request.query_params) if request.query_params else None,
            )
            try:
                response = await call_next(request)
            except Exception as exc:
                duration_ms = _elapsed_ms(start_time)
                span.record_exception(exc)
                span.set_attribute("request.duration_ms", duration_ms)
                span.set_status(Status(StatusCode.ERROR, str(exc)))
                logger.error(
                    "Request failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    duration_ms=duration_ms,
                    exc_info=True,
                )
                raise
            else:
                response.headers["X-Request-ID"] = request_id
                _record_response(span, response, _elapsed_ms(start_time))
                return response
            finally:
                structlog.contextvars.clear_contextvars()


def route_context(request: Request) -> dict[str, Any]:
    """Match the request against the app's routes and pull out catalog context.

    Returns the route template under ``route`` (the raw path when nothing
    matches), any ``CONTEXT_PATH_PARAMS`` found in the URL, and the ``as_of``
    query parameter when one was given.
    """
    context: dict[str, Any] = {"route": request.url.path}
    app = request.scope.get("app")
    for route in getattr(getattr(app, "router", None), "routes", ()):
        match, child_scope = route.matches(request.scope)
        if match is not Match.FULL:
            continue
        context["route"] = getattr(route, "path", request.url.path)
        params = child_scope.get("path_params", {})
        for name in CONTEXT_PATH_PARAMS:
            if name in params:
                value = str(params[name])
                context[name] = int(value) if value.isdigit() else value
        break
    as_of = request.query_params.get("as_of")
    if as_of:
        context["as_of"] = as_of
    return context


def _record_response(span: Any, response: Response, duration_ms: float) -> None:
    span.set_attribute("http.status_code", response.status_code)
    span.set_attribute("request.duration_ms", duration_ms)
    if response.status_code >= 400:
        span.set_status(Status(StatusCode.ERROR, f"HTTP {response.status_code}"))
    else:
        span.set_status(Status(StatusCode.OK))
    log = logger.warning if response.status_code >= 500 else logger.info
    log("Request completed", status_code=response.status_code, duration_ms=duration_ms)


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)


def _inbound_request_id(request: Request) -> str | None:
    raw = request.headers.get("x-request-id")
    if not raw:
        return None
    try:
        return str(uuid.UUID(raw))
    except ValueError:
        return None


def get_request_id() -> str:
    """Current request id, or an empty string outside a request."""
    return request_id_var.get("")
