"""
Content cache proxy service.
"""

import sys
from typing import Optional

import httpx
from fastapi import FastAPI, Request

from shared.base_service import BaseService
from shared.config import ProxySettings
from shared.errors import ConfigurationError
from shared.logging import get_logger
from .adapters.upstream_gateway import UpstreamGateway
from .caching.cache_store import CacheStore
from .dispatcher import ProxyDispatcher
from .models import ProxyConfig


PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class ProxyService(BaseService):
    """Caching reverse proxy in front of the content delivery API."""

    def __init__(
        self,
        settings: Optional[ProxySettings] = None,
        *,
        store: Optional[CacheStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__("proxy", settings)

        if store is None:
            store = CacheStore(
                max_age_seconds=self.settings.cache_max_age_seconds,
                max_entries=self.settings.cache_max_entries,
                sliding=self.settings.cache_sliding_expiration,
            )
        self.cache_store = store

        # Raises ConfigurationError before any route is registered
        self.gateway = UpstreamGateway(
            ProxyConfig.from_settings(self.settings),
            self.cache_store,
            timeout=self.settings.upstream_timeout_seconds,
            transport=transport,
            metrics=self.metrics,
        )
        self.dispatcher = ProxyDispatcher(self.cache_store, self.gateway, metrics=self.metrics)

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.gateway.close()

        self._setup_proxy_routes()

        self.logger.info(
            "Proxy configured",
            upstream=self.gateway.base_url,
            preview=self.settings.preview,
            cache_max_age_seconds=self.cache_store.max_age_seconds,
            cache_max_entries=self.cache_store.max_entries,
        )

        # Expose service instance via app state for introspection/testing
        self.app.state.proxy_service = self

    def _setup_proxy_routes(self):
        """Route every path and method through the dispatcher."""

        @self.app.api_route("/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
        async def proxy(request: Request):
            return await self.dispatcher.handle(request)


def create_app(
    settings: Optional[ProxySettings] = None,
    *,
    store: Optional[CacheStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Create FastAPI application."""
    service = ProxyService(settings, store=store, transport=transport)
    return service.app


def main():
    try:
        service = ProxyService()
    except ConfigurationError as exc:
        get_logger("proxy").error("Invalid configuration", message=exc.message, details=exc.details)
        sys.exit(1)
    service.run()


if __name__ == "__main__":
    main()
