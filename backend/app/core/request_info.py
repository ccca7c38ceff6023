"""Small accessors shared by the request tracer and the error normalizer."""

from __future__ import annotations

import logging
from typing import Any, Dict, FrozenSet, List, Optional, Pattern, Tuple

from starlette.convertors import Convertor
from starlette.requests import Request
from starlette.routing import compile_path

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

RouteTemplate = Tuple[Pattern[str], Dict[str, Convertor], FrozenSet[str]]


def client_ip(request: Request) -> str:
    """Client address, honouring the first hop of X-Forwarded-For (trust proxy)."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


def request_url(request: Request) -> str:
    """Path plus query string, as the client sent it."""
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


def request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def query_params(request: Request) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    for key, value in request.query_params.multi_items():
        if key in params:
            existing = params[key]
            params[key] = existing + [value] if isinstance(existing, list) else [existing, value]
        else:
            params[key] = value
    return params


def _route_templates(app: Any) -> List[RouteTemplate]:
    """
    Compiled ``(regex, convertors, methods)`` for every documented path.

    Built from the OpenAPI path table, so nested routers are already
    flattened with their prefixes. Cached on ``app.state`` against the
    schema object, which FastAPI itself caches after the first build.
    """
    schema = app.openapi()
    cached = getattr(app.state, "route_templates", None)
    if cached is not None and cached[0] is schema:
        return cached[1]

    templates: List[RouteTemplate] = []
    for path, operations in schema.get("paths", {}).items():
        regex, _, convertors = compile_path(path)
        methods = frozenset(method.upper() for method in operations)
        templates.append((regex, convertors, methods))
    app.state.route_templates = (schema, templates)
    return templates


def path_params(request: Request) -> Dict[str, Any]:
    """
    Path parameters of the route the request is headed for.

    Middleware runs before routing, so when the scope has not been routed
    yet the path is matched against the app's route templates here.
    A method match wins over a path-only match.
    """
    if request.path_params:
        return dict(request.path_params)
    app = request.scope.get("app")
    if not hasattr(app, "openapi"):
        return {}
    try:
        templates = _route_templates(app)
    except Exception:
        logger.debug("Route templates unavailable; logging without path params", exc_info=True)
        return {}

    method = "GET" if request.method == "HEAD" else request.method
    partial: Dict[str, Any] = {}
    for regex, convertors, methods in templates:
        match = regex.match(request.url.path)
        if match is None:
            continue
        params = {key: convertors[key].convert(value) for key, value in match.groupdict().items()}
        if method in methods:
            return params
        if not partial:
            partial = params
    return partial
