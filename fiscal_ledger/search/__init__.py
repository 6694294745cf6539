"""Search index synchronization and querying on OpenSearch."""

from .common import IndexName, format_index_name
from .errors import InvalidIndexError, InvalidSearchRequestError, SearchError, SearchNotConfiguredError
from .types import SearchRequest, SearchRequestType, parse_search_request

__all__ = [
    "IndexName",
    "format_index_name",
    "SearchError",
    "SearchNotConfiguredError",
    "InvalidSearchRequestError",
    "InvalidIndexError",
    "SearchRequest",
    "SearchRequestType",
    "parse_search_request",
]
