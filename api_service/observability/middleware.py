from __future__ import annotations

from time import perf_counter
from typing import Any, Callable

import structlog

from api_service.observability.metrics import ServiceMetrics


UNMATCHED_ROUTE = "unmatched"


class RequestLoggingMiddleware:
    """Logs request start/completion and records per-request HTTP metrics.

    Completion fires once the final response body chunk has been sent. If the
    app raises or the response never finishes (client gone), it fires from the
    ``finally`` block instead with ``aborted=True``. Either way, at most once.
    """

    def __init__(self, app: Callable[..., Any], metrics: ServiceMetrics) -> None:
        self.app = app
        self.metrics = metrics
        # Avoid self-observing the scrape endpoint.
        self._excluded_metric_paths = {"/metrics"}

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "")
        method = scope.get("method", "")
        client = scope.get("client")
        logger = structlog.get_logger("api")

        start = perf_counter()
        logger.info("Request started", method=method, path=path, ip=client[0] if client else None)

        status_code: int = 500
        completed = False

        def complete(aborted: bool) -> None:
            nonlocal completed
            if completed:
                return
            completed = True

            elapsed = perf_counter() - start
            if path not in self._excluded_metric_paths:
                # Route template, not the raw path, keeps the label set bounded.
                route = scope.get("route")
                route_path = getattr(route, "path", None) or UNMATCHED_ROUTE
                self.metrics.observe_http_request(method, route_path, status_code, elapsed)

            fields: dict[str, Any] = {
                "method": method,
                "path": path,
                "status": status_code,
                "duration": f"{elapsed * 1000.0:.0f}ms",
            }
            if aborted:
                fields["aborted"] = True
            logger.info("Request completed", **fields)

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code

            if message.get("type") == "http.response.start":
                status_code = int(message.get("status", 500))

            await send(message)

            if message.get("type") == "http.response.body" and not message.get("more_body", False):
                complete(aborted=False)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            complete(aborted=True)
