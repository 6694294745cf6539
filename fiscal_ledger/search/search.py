"""
Multi-index search.

One bool query covers every requested index: each index contributes a clause
filtered on its own ``_index``, and results are grouped back per index with a
terms aggregation on ``_index`` and top hits.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from fiscal_ledger.core.monitoring import HandlerType, report_error

from .adapters import SEARCH_ADAPTERS
from .client import get_search_client
from .common import IndexName, format_index_name, parse_index_name
from .errors import SearchError

logger = logging.getLogger(__name__)

MIN_SCORE = 0.0001


def get_account_filter_conditions(account_id: Optional[int] = None, host_id: Optional[int] = None) -> List[dict]:
    """Restrict results to entities related to an account and/or a host."""
    conditions: List[dict] = []
    if account_id is not None:
        conditions += [
            {"term": {"FromCollectiveId": account_id}},
            {"term": {"CollectiveId": account_id}},
            {"term": {"ParentCollectiveId": account_id}},
        ]
    if host_id is not None:
        conditions.append({"term": {"HostCollectiveId": host_id}})

    if len(conditions) < 2:
        return conditions
    return [{"bool": {"minimum_should_match": 1, "should": conditions}}]


def build_query(
    search_term: str,
    indexes: Sequence[IndexName],
    account_id: Optional[int] = None,
    host_id: Optional[int] = None,
) -> Dict[str, Any]:
    account_conditions = get_account_filter_conditions(account_id, host_id)
    should = []
    for index in indexes:
        adapter = SEARCH_ADAPTERS[index]
        matches: List[dict] = [
            {
                "multi_match": {
                    "query": search_term,
                    "type": "best_fields",
                    "operator": "or",
                    "fuzziness": "AUTO",
                    "fields": adapter.searchable_fields(),
                }
            }
        ]
        if search_term.strip().isdigit():
            matches.append({"term": {"id": {"value": search_term.strip(), "boost": 1000}}})

        should.append(
            {
                "bool": {
                    "filter": [{"term": {"_index": format_index_name(index)}}],
                    "minimum_should_match": 1,
                    "should": matches,
                }
            }
        )

    query: Dict[str, Any] = {"bool": {"should": should}}
    if account_conditions:
        query["bool"]["filter"] = account_conditions
    return query


def get_highlight_config(indexes: Sequence[IndexName]) -> Dict[str, Any]:
    fields: Dict[str, dict] = {}
    for index in indexes:
        for field in SEARCH_ADAPTERS[index].mappings["properties"]:
            if SEARCH_ADAPTERS[index].is_searchable_field(field):
                fields[field] = {}
    return {
        "pre_tags": ["<mark>"],
        "post_tags": ["</mark>"],
        "fragment_size": 40,
        "number_of_fragments": 1,
        "fields": fields,
    }


async def global_search(
    search_term: str,
    indexes: Optional[Sequence[IndexName]] = None,
    account_id: Optional[int] = None,
    host_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
    timeout_in_seconds: int = 30,
    client: Any = None,
) -> Dict[str, Dict[str, Any]]:
    """Search several indexes at once.

    Returns:
        ``{index: {"count": int, "hits": [{"id", "score", "highlight"}]}}`` for
        every requested index

    Raises:
        SearchNotConfiguredError: If OpenSearch is not configured.
        SearchError: If the query fails.
    """
    client = client or get_search_client(throw_if_unavailable=True)
    indexes = list(indexes or IndexName)
    body = {
        "size": 0,
        "query": build_query(search_term, indexes, account_id, host_id),
        "min_score": MIN_SCORE,
        "aggs": {
            "by_index": {
                "terms": {"field": "_index", "size": len(indexes)},
                "aggs": {
                    "top_hits_by_index": {
                        "top_hits": {
                            "size": limit,
                            "from": offset,
                            "_source": {"includes": ["id", "uuid"]},
                            "highlight": get_highlight_config(indexes),
                        }
                    }
                },
            }
        },
    }

    try:
        response = await client.search(
            index=",".join(format_index_name(index) for index in indexes),
            body=body,
            params={"timeout": f"{timeout_in_seconds}s"},
        )
    except Exception as e:
        report_error(
            e,
            handler=HandlerType.API,
            extra={"search_term": search_term, "indexes": [i.value for i in indexes], "limit": limit},
        )
        raise SearchError("The search query failed, please try again later") from e

    results: Dict[str, Dict[str, Any]] = {index.value: {"count": 0, "hits": []} for index in indexes}
    for bucket in response.get("aggregations", {}).get("by_index", {}).get("buckets", []):
        index = parse_index_name(bucket["key"])
        if index is None:
            continue
        hits = bucket.get("top_hits_by_index", {}).get("hits", {}).get("hits", [])
        results[index.value] = {
            "count": bucket.get("doc_count", 0),
            "hits": [
                {
                    "id": hit.get("_source", {}).get("id"),
                    "score": hit.get("_score"),
                    "highlight": hit.get("highlight", {}),
                }
                for hit in hits
            ],
        }
    return results
