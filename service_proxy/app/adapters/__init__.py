"""
Adapters package for the proxy service.

Contains the HTTP gateway to the upstream content delivery API. It
encapsulates:

- Base URL and token selection (production or preview API)
- Request rewriting and forwarding headers
- Capturing responses into the cache and mapping failures to shared errors
"""

from .upstream_gateway import UpstreamGateway, build_upstream_base, resolve_auth_token

__all__ = [
    "UpstreamGateway",
    "build_upstream_base",
    "resolve_auth_token",
]
