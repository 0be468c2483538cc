"""
End-to-end tests for the proxy service.
"""

from typing import List, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient

from shared.config import ProxySettings
from shared.errors import ConfigurationError
from service_proxy.app.caching.cache_store import CacheStore
from service_proxy.app.main import create_app


CACHE_KEY = "/entries?content_type=webchatFeature"
CONTENTFUL_JSON = "application/vnd.contentful.delivery.v1+json"
ENTRIES_BODY = {"sys": {"type": "Array"}, "total": 1, "items": [{"sys": {"id": "feature-1"}}]}


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeContentApi:
    """Stands in for the upstream content delivery API."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.status_code = 200
        self.body = ENTRIES_BODY
        self.error = None
        self.extra_headers: List[Tuple[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(
            self.status_code,
            json=self.body,
            headers=[
                ("Content-Type", CONTENTFUL_JSON),
                ("X-Contentful-Request-Id", f"req-{len(self.requests)}"),
                *self.extra_headers,
            ],
        )


class TestProxyService:
    """Test cases for the proxy HTTP surface."""

    @pytest.fixture
    def settings(self):
        return ProxySettings(space_id="space-1", access_token="cda-token", cache_expiration_minutes=1)

    @pytest.fixture
    def content_api(self):
        return FakeContentApi()

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def store(self, clock):
        return CacheStore(max_age_seconds=60, clock=clock)

    @pytest.fixture
    def app(self, settings, store, content_api):
        return create_app(settings, store=store, transport=httpx.MockTransport(content_api))

    @pytest.fixture
    def client(self, app):
        with TestClient(app) as test_client:
            yield test_client

    def test_healthcheck(self, client, content_api):
        """Test GET /healthcheck answers OK without upstream traffic."""
        response = client.get("/healthcheck")

        assert response.status_code == 200
        assert response.text == "OK"
        assert content_api.requests == []

    def test_first_request_is_forwarded_and_cached(self, client, content_api, store):
        """Test a cache miss goes upstream and populates the cache."""
        response = client.get(CACHE_KEY)

        assert response.status_code == 200
        assert response.json() == ENTRIES_BODY
        assert "x-hit-from-cache" not in response.headers
        assert len(content_api.requests) == 1
        assert store.has(CACHE_KEY) is True
        assert store.get(CACHE_KEY).body == ENTRIES_BODY

    def test_repeat_request_is_served_from_cache(self, client, content_api):
        """Test a repeated request is a hit and makes no upstream call."""
        first = client.get(CACHE_KEY)
        second = client.get(CACHE_KEY)

        assert second.status_code == 200
        assert second.headers["x-hit-from-cache"] == "1"
        assert second.json() == first.json()
        assert second.headers["content-type"] == CONTENTFUL_JSON
        assert second.headers["x-contentful-request-id"] == "req-1"
        assert len(content_api.requests) == 1

    def test_disallowed_content_type(self, client, content_api):
        """Test an unknown content_type is refused with 401."""
        response = client.get("/entries?content_type=banana")

        assert response.status_code == 401
        assert response.text == "Missing content_type or content_type value not allowed"
        assert content_api.requests == []

    def test_missing_content_type(self, client):
        """Test a missing content_type is refused with 401."""
        response = client.get("/entries?limit=5")

        assert response.status_code == 401

    def test_delete_clears_cache(self, client, content_api, store):
        """Test DELETE empties the cache and the next request misses."""
        client.get(CACHE_KEY)
        assert client.get(CACHE_KEY).headers.get("x-hit-from-cache") == "1"

        response = client.delete("/anything")

        assert response.status_code == 200
        assert response.content == b""
        assert store.has(CACHE_KEY) is False

        after = client.get(CACHE_KEY)
        assert "x-hit-from-cache" not in after.headers
        assert len(content_api.requests) == 2

    def test_other_path_rejected(self, client, content_api):
        """Test any other path is refused with 401."""
        response = client.get("/other-path")

        assert response.status_code == 401
        assert response.text == "Only '/entries' allowed"
        assert content_api.requests == []

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH"])
    def test_write_methods_do_not_populate_cache(self, client, content_api, store, method):
        """Test a non-GET to an allowed target is refused and a later GET still misses."""
        response = client.request(method, CACHE_KEY, content=b"{}")

        assert response.status_code == 401
        assert response.text == "Only GET requests allowed"
        assert store.has(CACHE_KEY) is False

        after = client.get(CACHE_KEY)
        assert "x-hit-from-cache" not in after.headers
        assert after.json() == ENTRIES_BODY
        assert [sent.method for sent in content_api.requests] == ["GET"]

    @pytest.mark.parametrize("method", ["HEAD", "OPTIONS"])
    def test_head_and_options_refused(self, client, content_api, method):
        """Test HEAD and OPTIONS never reach upstream."""
        assert client.request(method, CACHE_KEY).status_code == 401
        assert content_api.requests == []

    def test_cached_set_cookie_replayed_separately(self, client, content_api):
        """Test each stored Set-Cookie is replayed as its own header."""
        content_api.extra_headers = [("Set-Cookie", "a=1; Path=/"), ("Set-Cookie", "b=2; Path=/")]

        client.get(CACHE_KEY)
        second = client.get(CACHE_KEY)

        assert second.headers["x-hit-from-cache"] == "1"
        assert second.headers.get_list("set-cookie") == ["a=1; Path=/", "b=2; Path=/"]

    @pytest.mark.parametrize("path", ["/entries", "/docs", "/openapi.json", "/"])
    def test_paths_without_entries_query_rejected(self, client, path):
        """Test /entries without a query and framework paths are refused."""
        assert client.get(path).status_code == 401

    def test_cache_entry_expires(self, client, content_api, clock):
        """Test an expired entry is fetched again."""
        client.get(CACHE_KEY)
        clock.now += 60

        response = client.get(CACHE_KEY)

        assert "x-hit-from-cache" not in response.headers
        assert len(content_api.requests) == 2

    def test_different_query_is_different_key(self, client, content_api):
        """Test reordered query strings do not share a cache entry."""
        client.get("/entries?content_type=insightsTips&limit=1")
        response = client.get("/entries?limit=1&content_type=insightsTips")

        assert "x-hit-from-cache" not in response.headers
        assert len(content_api.requests) == 2

    def test_upstream_request_shape(self, client, content_api):
        """Test the outbound call targets the space with bearer auth."""
        client.get(CACHE_KEY, headers={"X-Client-Name": "webchat"})

        sent = content_api.requests[0]
        assert str(sent.url) == "https://cdn.contentful.com/spaces/space-1/entries?content_type=webchatFeature"
        assert sent.headers["Authorization"] == "Bearer cda-token"
        assert sent.headers["X-Client-Name"] == "webchat"
        assert sent.headers["X-Forwarded-For"] == "testclient"
        assert sent.headers["X-Forwarded-Proto"] == "http"

    def test_cached_error_status_replayed_as_200(self, client, content_api):
        """Test a cache hit answers 200 even when upstream answered otherwise.

        The stored upstream status is captured but not replayed.
        """
        content_api.status_code = 404
        content_api.body = {"sys": {"type": "Error", "id": "NotFound"}}

        first = client.get(CACHE_KEY)
        second = client.get(CACHE_KEY)

        assert first.status_code == 404
        assert second.status_code == 200
        assert second.headers["x-hit-from-cache"] == "1"
        assert second.json() == {"sys": {"type": "Error", "id": "NotFound"}}

    def test_upstream_failure(self, client, content_api, store):
        """Test a network failure answers 502 and caches nothing."""
        content_api.error = httpx.ConnectError("connection refused")

        response = client.get(CACHE_KEY)

        assert response.status_code == 502
        assert response.json()["code"] == "UPSTREAM_ERROR"
        assert store.has(CACHE_KEY) is False

    def test_service_survives_upstream_failure(self, client, content_api):
        """Test later requests succeed after an upstream failure."""
        content_api.error = httpx.ConnectError("connection refused")
        assert client.get(CACHE_KEY).status_code == 502

        content_api.error = None
        response = client.get(CACHE_KEY)

        assert response.status_code == 200
        assert response.json() == ENTRIES_BODY

    def test_request_id_echoed_in_error(self, client, content_api):
        """Test error bodies carry the caller's request id."""
        content_api.error = httpx.ConnectError("connection refused")

        response = client.get(CACHE_KEY, headers={"X-Request-ID": "abc-123"})

        assert response.json()["request_id"] == "abc-123"

    def test_metrics_recorded(self, client, app):
        """Test classification and cache counters."""
        client.get(CACHE_KEY)
        client.get(CACHE_KEY)
        client.get("/other-path")
        client.delete("/")

        metrics = app.state.proxy_service.metrics
        assert metrics.sample_value("cache_lookups_total", result="miss") == 1.0
        assert metrics.sample_value("cache_lookups_total", result="hit") == 1.0
        assert metrics.sample_value("proxy_requests_total", category="rejected_bad_path") == 1.0
        assert metrics.sample_value("cache_resets_total") == 1.0

    def test_independent_instances(self, settings, content_api):
        """Test two apps keep separate caches."""
        first_store = CacheStore()
        second_store = CacheStore()
        transport = httpx.MockTransport(content_api)

        with TestClient(create_app(settings, store=first_store, transport=transport)) as first:
            first.get(CACHE_KEY)
        with TestClient(create_app(settings, store=second_store, transport=transport)) as second:
            response = second.get(CACHE_KEY)

        assert "x-hit-from-cache" not in response.headers
        assert first_store.has(CACHE_KEY) and second_store.has(CACHE_KEY)


class TestProxyServiceConfiguration:
    """Test cases for startup configuration."""

    def test_preview_without_token_prevents_startup(self):
        """Test the app cannot be built in preview mode without a token."""
        settings = ProxySettings(space_id="space-1", access_token="cda-token", preview=True)

        with pytest.raises(ConfigurationError):
            create_app(settings)

    def test_preview_mode_uses_preview_api(self):
        """Test preview mode targets the preview host with the preview token."""
        content_api = FakeContentApi()
        settings = ProxySettings(
            space_id="space-1",
            access_token="cda-token",
            preview_token="cpa-token",
            preview=True,
        )

        with TestClient(create_app(settings, transport=httpx.MockTransport(content_api))) as client:
            client.get(CACHE_KEY)

        sent = content_api.requests[0]
        assert sent.url.host == "preview.contentful.com"
        assert sent.headers["Authorization"] == "Bearer cpa-token"

    def test_default_store_uses_configured_max_age(self):
        """Test the cache store follows CACHE_EXPIRATION_IN_MINUTES."""
        settings = ProxySettings(space_id="space-1", access_token="cda-token", cache_expiration_minutes=5)
        app = create_app(settings)

        assert app.state.proxy_service.cache_store.max_age_seconds == 300
