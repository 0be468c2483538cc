"""
Proxy dispatcher: the per-request pipeline.

classify -> {health | clear | reject | cache hit | forward and cache}
"""

from typing import Optional, TYPE_CHECKING

from fastapi import Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from shared.errors import ValidationRejection
from shared.logging import get_logger
from .adapters.upstream_gateway import UpstreamGateway, copy_headers
from .caching.cache_store import CacheStore
from .models import CacheEntry, Classification, RequestCategory
from .routing.classifier import classify

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


CACHE_HIT_HEADER = "X-Hit-From-Cache"
HEALTHCHECK_BODY = "OK"


def build_cached_response(entry: CacheEntry) -> Response:
    """Replay a stored entry.

    Always answers 200; the stored upstream status is not replayed.
    """
    if entry.is_json:
        response: Response = JSONResponse(content=entry.body, status_code=200)
    else:
        response = Response(content=entry.body, status_code=200)
    copy_headers(response, entry.headers)
    response.headers[CACHE_HIT_HEADER] = "1"
    return response


class ProxyDispatcher:
    """Composes classification, the cache store and the upstream gateway."""

    def __init__(
        self,
        store: CacheStore,
        gateway: UpstreamGateway,
        *,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.metrics = metrics
        self.logger = get_logger("proxy.dispatcher")

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)

    async def handle(self, request: Request) -> Response:
        """Classify and answer an inbound request."""
        raw_path = request.scope.get("raw_path") or request.url.path.encode("utf-8")
        # Some servers keep the query, or a bare "?", in raw_path
        raw, separator, _ = raw_path.partition(b"?")
        path = raw.decode("latin-1")
        query_string = request.scope.get("query_string", b"")
        query = query_string.decode("latin-1") if query_string or separator else None

        classification = classify(request.method, path, query)
        self._count("proxy_requests_total", category=classification.category.value)
        self.logger.debug(
            "Request classified",
            method=request.method,
            path=path,
            category=classification.category.value,
        )
        return await self.dispatch(classification, request)

    async def dispatch(self, classification: Classification, request: Request) -> Response:
        """Act on a classification."""
        category = classification.category

        if category is RequestCategory.HEALTH_CHECK:
            return PlainTextResponse(HEALTHCHECK_BODY, status_code=200)

        if category is RequestCategory.CLEAR_CACHE:
            self.store.reset_all()
            self._count("cache_resets_total")
            self.logger.info("Response cache cleared", path=request.url.path)
            return Response(status_code=200)

        if category.is_rejection:
            rejection = ValidationRejection(classification.message or "Request not allowed")
            self.logger.info(
                "Request rejected",
                method=request.method,
                path=request.url.path,
                reason=category.value,
            )
            return PlainTextResponse(rejection.message, status_code=rejection.status_code)

        cache_key = classification.cache_key
        entry = self.store.get(cache_key)
        if entry is not None:
            self._count("cache_lookups_total", result="hit")
            self.logger.debug("Cache hit", cache_key=cache_key)
            return build_cached_response(entry)

        self._count("cache_lookups_total", result="miss")
        self.logger.debug("Cache miss, forwarding upstream", cache_key=cache_key)
        return await self.gateway.forward(request, cache_key)
