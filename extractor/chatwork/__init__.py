"""Chatwork API access."""

from .client import ChatworkClient, FetchResult, filter_by_extract_from

__all__ = [
    "ChatworkClient",
    "FetchResult",
    "filter_by_extract_from",
]
