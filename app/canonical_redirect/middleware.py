from __future__ import annotations

import logging
from typing import Optional
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from canonical_redirect.errors import (
    InvalidArgumentError,
    MalformedInputError,
    classify_exception,
)
from canonical_redirect.hosts import HostString
from canonical_redirect.logging_config import (
    clear_correlation_id,
    get_logger,
    log_with_context,
    set_correlation_id,
)
from canonical_redirect.models import Redirect, RequestDescriptor
from canonical_redirect.options import CanonicalUrlOptions, TrailingSlashAction
from canonical_redirect.rule import RedirectToCanonicalUrlRule
from canonical_redirect.telemetry import evaluation_span, record_verdict

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _request_host(scope: dict) -> str:
    for key, value in scope.get("headers") or []:
        if key.lower() == b"host":
            return value.decode("latin-1").strip()
    server = scope.get("server")
    if not server:
        return ""
    host, port = server[0], server[1]
    if ":" in host:
        host = f"[{host}]"
    default_port = {"http": 80, "https": 443}.get(scope.get("scheme", "http"))
    if port is None or port == default_port:
        return host
    return f"{host}:{port}"


def _host_is_valid(host: HostString) -> bool:
    try:
        host.to_uri_component()
    except MalformedInputError:
        return False
    return True


def request_descriptor_from_scope(scope: dict) -> RequestDescriptor:
    """
    Describe an ASGI HTTP request for the rule.

    ``path`` is the decoded ASGI path below ``root_path``; ``display_url`` keeps
    the raw escaped path so decoding it yields exactly what the client sent.
    """
    scheme = scope.get("scheme") or "http"
    root_path = scope.get("root_path") or ""
    path = scope.get("path") or ""
    if root_path and path.startswith(root_path):
        path = path[len(root_path) :]

    raw_path = scope.get("raw_path")
    if raw_path:
        display_path = raw_path.decode("latin-1").split("?", 1)[0]
        if root_path and not display_path.startswith(root_path):
            display_path = root_path + display_path
    else:
        display_path = root_path + path

    query_string = (scope.get("query_string") or b"").decode("latin-1")
    query = f"?{query_string}" if query_string else ""

    host = _request_host(scope)
    return RequestDescriptor(
        scheme=scheme,
        host=HostString(host),
        path_base=root_path,
        path=path,
        query=query,
        display_url=f"{scheme}://{host}{display_path}{query}",
    )


class CanonicalUrlMiddleware(BaseHTTPMiddleware):
    """Redirect every request that does not already use its canonical URL."""

    def __init__(
        self,
        app,
        options: Optional[CanonicalUrlOptions] = None,
        *,
        rule_logger: Optional[logging.Logger] = None,
    ):
        super().__init__(app)
        if rule_logger is None:
            self.rule = RedirectToCanonicalUrlRule(options)
        else:
            self.rule = RedirectToCanonicalUrlRule(options, logger=rule_logger)

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        set_correlation_id(request_id)
        try:
            response = self._evaluate(request)
            if response is None:
                response = await call_next(request)
            response.headers.setdefault(REQUEST_ID_HEADER, request_id)
            return response
        finally:
            clear_correlation_id()

    def _evaluate(self, request: Request) -> Optional[Response]:
        with evaluation_span(request.method) as span:
            descriptor = request_descriptor_from_scope(request.scope)
            try:
                verdict = self.rule.apply(descriptor)
            except MalformedInputError as exc:
                # A well-formed request host means the configured options are at fault.
                if _host_is_valid(descriptor.host):
                    raise
                return self._reject(descriptor, exc)

            record_verdict(span, verdict)
            if not isinstance(verdict, Redirect):
                return None
            return Response(
                status_code=verdict.status_code,
                headers={"Location": verdict.location},
            )

    def _reject(self, descriptor: RequestDescriptor, exc: MalformedInputError) -> Response:
        info = classify_exception(exc)
        log_with_context(
            logger,
            logging.WARNING,
            "Rejected request with malformed host",
            error_code=info.code,
            host=str(descriptor.host),
        )
        return JSONResponse(
            {"error": info.code, "detail": info.message},
            status_code=info.status_code,
        )


def add_redirect_to_canonical_url(app, options: Optional[CanonicalUrlOptions] = None):
    """
    Install ``CanonicalUrlMiddleware`` on a Starlette/FastAPI app.

    Without ``options`` the defaults apply (lowercase paths, no host or
    trailing slash enforcement). When a trailing slash action is configured
    the router's own slash redirects are switched off, since they would undo
    the canonical form and loop. Returns ``app`` for chaining.
    """
    if app is None:
        raise InvalidArgumentError(code="app_required", message="app is required")
    effective = options if options is not None else CanonicalUrlOptions()
    if effective.trailing_slash != TrailingSlashAction.IGNORE:
        app.router.redirect_slashes = False
    app.add_middleware(CanonicalUrlMiddleware, options=options)
    return app
