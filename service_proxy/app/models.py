"""
Core value types for the content cache proxy.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.config import ProxySettings


@dataclass(frozen=True)
class ProxyConfig:
    """Upstream connection settings handed to the proxy core."""

    space_id: str = ""
    access_token: str = ""
    preview_token: Optional[str] = None
    preview: bool = False
    secure: bool = True

    @classmethod
    def from_settings(cls, settings: "ProxySettings") -> "ProxyConfig":
        return cls(
            space_id=settings.space_id or "",
            access_token=settings.access_token or "",
            preview_token=settings.preview_token,
            preview=settings.preview,
            secure=settings.secure,
        )


@dataclass(frozen=True)
class CacheEntry:
    """A fully buffered upstream response.

    ``body`` holds the decoded JSON value for JSON responses and the raw
    bytes otherwise. Repeated ``Set-Cookie`` headers are kept as a list.
    """

    headers: Dict[str, Union[str, List[str]]] = field(default_factory=dict)
    status: int = 200
    status_text: str = ""
    body: Any = None

    @property
    def is_json(self) -> bool:
        return not isinstance(self.body, (bytes, bytearray))


class RequestCategory(Enum):
    """Outcome of request classification."""
    HEALTH_CHECK = "health_check"
    CLEAR_CACHE = "clear_cache"
    REJECTED_BAD_METHOD = "rejected_bad_method"
    REJECTED_BAD_PATH = "rejected_bad_path"
    REJECTED_BAD_CONTENT_TYPE = "rejected_bad_content_type"
    CACHEABLE = "cacheable"

    @property
    def is_rejection(self) -> bool:
        return self in (
            RequestCategory.REJECTED_BAD_METHOD,
            RequestCategory.REJECTED_BAD_PATH,
            RequestCategory.REJECTED_BAD_CONTENT_TYPE,
        )


@dataclass(frozen=True)
class Classification:
    """Classified request, consumed by the dispatcher."""

    category: RequestCategory
    cache_key: Optional[str] = None
    message: Optional[str] = None
