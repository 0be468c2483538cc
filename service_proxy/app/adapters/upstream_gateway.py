"""
Upstream gateway for the content delivery API.
"""

import time
from typing import Dict, List, Mapping, Optional, Tuple, Union, TYPE_CHECKING

import httpx
from fastapi import Request
from fastapi.responses import JSONResponse, Response

from shared.errors import ConfigurationError, UpstreamError
from shared.logging import get_logger
from ..caching.cache_store import CacheStore
from ..models import CacheEntry, ProxyConfig

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


PRODUCTION_HOST = "cdn.contentful.com"
PREVIEW_HOST = "preview.contentful.com"
DEFAULT_TIMEOUT_SECONDS = 10.0

HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

# httpx negotiates and decodes content encoding itself
REQUEST_EXCLUDED_HEADERS = HOP_BY_HOP_HEADERS | {"host", "content-length", "accept-encoding", "authorization"}
RESPONSE_EXCLUDED_HEADERS = HOP_BY_HOP_HEADERS | {"content-length", "content-encoding"}

FORWARDED_HEADERS = ("x-forwarded-for", "x-forwarded-port", "x-forwarded-proto")

# Never folded into one comma-joined value
MULTI_VALUE_HEADERS = frozenset({"set-cookie"})


def build_upstream_base(config: ProxyConfig) -> str:
    """Base URL of the upstream API, scoped to the configured space."""
    path = f"spaces/{config.space_id}" if config.space_id else ""
    scheme = "https" if config.secure else "http"
    host = PREVIEW_HOST if config.preview else PRODUCTION_HOST
    return f"{scheme}://{host}/{path}"


def resolve_auth_token(config: ProxyConfig) -> str:
    """Pick the bearer token for the selected API."""
    if config.preview and not config.preview_token:
        raise ConfigurationError(
            "Please provide preview API token to use the preview API.",
            {"preview": True},
        )
    return config.preview_token if config.preview else config.access_token


def join_url(base: str, target: str) -> str:
    return f"{base.rstrip('/')}/{target.lstrip('/')}"


def copy_headers(response: Response, headers: Mapping[str, Union[str, List[str]]]) -> Response:
    """Apply stored upstream headers to an outgoing response."""
    for name, value in headers.items():
        if name.lower() in RESPONSE_EXCLUDED_HEADERS:
            continue
        if isinstance(value, list):
            for item in value:
                response.headers.append(name, item)
        else:
            response.headers[name] = value
    return response


def capture_response(upstream: httpx.Response) -> CacheEntry:
    """Buffer an upstream response into a CacheEntry.

    Raises:
        UpstreamError: a JSON response whose body cannot be decoded.
    """
    headers: Dict[str, Union[str, List[str]]] = {}
    for raw_name, raw_value in upstream.headers.raw:
        name = raw_name.decode("latin-1")
        value = raw_value.decode("latin-1")
        if name.lower() in MULTI_VALUE_HEADERS:
            headers.setdefault(name, []).append(value)
            continue
        headers[name] = f"{headers[name]}, {value}" if name in headers else value

    content_type = upstream.headers.get("content-type", "").lower()
    if "json" in content_type and upstream.content:
        try:
            body = upstream.json()
        except ValueError as exc:
            raise UpstreamError(
                "Upstream returned an undecodable response",
                details={"error_type": "decode", "status_code": upstream.status_code, "error": str(exc)},
            ) from exc
    else:
        body = upstream.content

    return CacheEntry(
        headers=headers,
        status=upstream.status_code,
        status_text=upstream.reason_phrase,
        body=body,
    )


class UpstreamGateway:
    """Forwards allowed requests upstream and caches what comes back."""

    def __init__(
        self,
        config: ProxyConfig,
        store: CacheStore,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        # Both raise before the service accepts traffic
        self.base_url = build_upstream_base(config)
        self._token = resolve_auth_token(config)

        self.store = store
        self.metrics = metrics
        self.logger = get_logger("proxy.upstream_gateway")
        self._client = httpx.AsyncClient(
            verify=config.secure,
            timeout=timeout,
            transport=transport,
        )

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)

    def _outbound_headers(self, request: Request) -> List[Tuple[str, str]]:
        """Client headers plus forwarding metadata and upstream auth."""
        headers: List[Tuple[str, str]] = []
        forwarded: Dict[str, str] = {}
        seen = set()

        for raw_name, raw_value in request.headers.raw:
            name = raw_name.decode("latin-1")
            value = raw_value.decode("latin-1")
            lowered = name.lower()
            if lowered in REQUEST_EXCLUDED_HEADERS:
                continue
            if lowered in FORWARDED_HEADERS:
                forwarded[lowered] = value
                continue
            seen.add(lowered)
            headers.append((name, value))

        scheme = request.url.scheme
        port = request.url.port or (443 if scheme in ("https", "wss") else 80)
        values = {
            "x-forwarded-for": request.client.host if request.client else "",
            "x-forwarded-port": str(port),
            "x-forwarded-proto": scheme,
        }
        for header in FORWARDED_HEADERS:
            existing = forwarded.get(header)
            joined = f"{existing},{values[header]}" if existing else values[header]
            headers.append((header.title(), joined))

        if "x-forwarded-host" not in seen and request.headers.get("host"):
            headers.append(("X-Forwarded-Host", request.headers["host"]))

        headers.append(("Authorization", f"Bearer {self._token}"))
        return headers

    async def _send(self, request: Request, cache_key: str) -> httpx.Response:
        url = join_url(self.base_url, cache_key)
        body = await request.body()
        start = time.perf_counter()

        try:
            upstream = await self._client.request(
                request.method,
                url,
                headers=self._outbound_headers(request),
                content=body or None,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamError(
                "Upstream request timed out",
                status_code=504,
                details={"error_type": "timeout", "error": str(exc) or exc.__class__.__name__},
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(
                "Upstream request failed",
                details={"error_type": "network", "error": str(exc) or exc.__class__.__name__},
            ) from exc
        finally:
            if self.metrics:
                self.metrics.observe_histogram("upstream_request_duration_seconds", time.perf_counter() - start)

        self._count("upstream_requests_total", status_code=str(upstream.status_code))
        self.logger.debug(
            "Upstream responded",
            method=request.method,
            url=url,
            status_code=upstream.status_code,
        )
        return upstream

    async def forward(self, request: Request, cache_key: str) -> Response:
        """Forward ``request`` upstream, cache the result under ``cache_key``.

        Only GET answers are cached. Upstream failures are answered here and
        never cached.
        """
        try:
            upstream = await self._send(request, cache_key)
            entry = capture_response(upstream)
        except UpstreamError as exc:
            self._count("upstream_errors_total", error_type=exc.details.get("error_type", "unknown"))
            self.logger.error(
                "Upstream request failed",
                cache_key=cache_key,
                status_code=exc.status_code,
                message=exc.message,
                details=exc.details,
            )
            return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())

        if request.method.upper() == "GET":
            self.store.set(cache_key, entry)
            self.logger.debug("Cached upstream response", cache_key=cache_key, status=entry.status)

        response = Response(content=upstream.content, status_code=upstream.status_code)
        return copy_headers(response, entry.headers)

    async def close(self) -> None:
        await self._client.aclose()
