"""
Request routing package: classification and query decoding.
"""

from .classifier import classify, request_target, ALLOWED_CONTENT_TYPES
from .query import parse_query

__all__ = ["classify", "request_target", "parse_query", "ALLOWED_CONTENT_TYPES"]
