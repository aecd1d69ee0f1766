"""
Eco Wifi API Utilities

Error mapping and shared query helpers for the API.
"""

from .errors import (
    http_error,
    view_query,
    bad_view_query,
)

__all__ = [
    "http_error",
    "view_query",
    "bad_view_query",
]
