"""Errors raised by the search subsystem."""

from __future__ import annotations


class SearchError(Exception):
    """Base class of search errors."""

    status_code = 500


class SearchNotConfiguredError(SearchError):
    """Raised when a search operation needs OpenSearch and ``OPENSEARCH_URL`` is unset."""

    status_code = 503

    def __init__(self, message: str = "OpenSearch is not configured") -> None:
        super().__init__(message)


class InvalidSearchRequestError(SearchError):
    """Raised for a malformed sync request, e.g. an invalid NOTIFY payload."""

    status_code = 400


class InvalidIndexError(SearchError):
    status_code = 400

    def __init__(self, index: str) -> None:
        self.index = index
        super().__init__(f"Invalid index: {index}")
