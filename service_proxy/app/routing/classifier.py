"""
Request classification for the proxy.

Decides, from the request line alone, whether a request is a health
check, a cache clear, an allowed content fetch, or must be refused.
No cache or upstream work happens here.
"""

import re
from typing import FrozenSet, Optional

from ..models import Classification, RequestCategory
from .query import parse_query


HEALTHCHECK_PATH = "/healthcheck"
ALLOWED_CONTENT_TYPES: FrozenSet[str] = frozenset({"webchatFeature", "insightsTips"})

BAD_METHOD_MESSAGE = "Only GET requests allowed"
BAD_PATH_MESSAGE = "Only '/entries' allowed"
BAD_CONTENT_TYPE_MESSAGE = "Missing content_type or content_type value not allowed"

_ENTRIES_RE = re.compile(r"^/entries/?\?")


def request_target(path: str, query: Optional[str]) -> str:
    """Rebuild the literal path + query string used as cache key.

    ``query`` is None when the request line carries no ``?`` at all; an
    empty string keeps the bare ``?``.
    """
    return path if query is None else f"{path}?{query}"


def classify(method: str, path: str, query: Optional[str] = None) -> Classification:
    """Label a request with exactly one RequestCategory."""
    method = method.upper()

    if method == "GET" and path == HEALTHCHECK_PATH:
        return Classification(RequestCategory.HEALTH_CHECK)

    if method == "DELETE":
        return Classification(RequestCategory.CLEAR_CACHE)

    # Only GET reads or populates the cache
    if method != "GET":
        return Classification(RequestCategory.REJECTED_BAD_METHOD, message=BAD_METHOD_MESSAGE)

    target = request_target(path, query)
    if not _ENTRIES_RE.match(target):
        return Classification(RequestCategory.REJECTED_BAD_PATH, message=BAD_PATH_MESSAGE)

    # A repeated content_type decodes to a list and is never a single allowed value
    content_type = parse_query(query or "").get("content_type")
    if not isinstance(content_type, str) or content_type not in ALLOWED_CONTENT_TYPES:
        return Classification(RequestCategory.REJECTED_BAD_CONTENT_TYPE, message=BAD_CONTENT_TYPE_MESSAGE)

    return Classification(RequestCategory.CACHEABLE, cache_key=target)
