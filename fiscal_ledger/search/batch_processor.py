"""
Debounced bulk indexing.

Row changes arrive one by one. Instead of sending one OpenSearch request per
change, the processor queues them and flushes the queue in a single bulk
request, either when ``max_batch_size`` requests are waiting, when a full
account re-index is requested, or ``max_sync_delay`` after the first queued
request.

At most one batch runs at a time and at most one flush timer is scheduled.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from fiscal_ledger.core.monitoring import HandlerType, report_error, report_message
from fiscal_ledger.server.core.config import settings

from .adapters import SEARCH_ADAPTERS, get_adapter_from_table_name
from .client import get_search_client
from .common import IndexName, format_index_name
from .types import SearchRequest, SearchRequestType

logger = logging.getLogger(__name__)


def _default_session_factory():
    from fiscal_ledger.core.database.session import async_session_maker

    return async_session_maker


class SearchBatchProcessor:
    """Process-wide queue of search sync requests."""

    _instance: Optional["SearchBatchProcessor"] = None

    def __init__(
        self,
        client: Any,
        session_factory: Optional[Callable[[], Any]] = None,
        max_batch_size: Optional[int] = None,
        max_sync_delay: Optional[int] = None,
    ) -> None:
        """
        Args:
            client: Async OpenSearch client
            session_factory: Callable returning an async session context manager
            max_batch_size: Queue size that triggers an immediate flush
            max_sync_delay: Debounce window, in milliseconds
        """
        config = settings.opensearch
        self.client = client
        self.session_factory = session_factory or _default_session_factory()
        self.max_batch_size = max_batch_size or config.max_batch_size
        self.max_sync_delay = max_sync_delay if max_sync_delay is not None else config.max_sync_delay

        self._queue: List[SearchRequest] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._is_started = False
        self._is_processing = False
        self._process_batch_task: Optional[asyncio.Future] = None
        self._background_tasks: Set[asyncio.Task] = set()

    @classmethod
    def get_instance(cls) -> "SearchBatchProcessor":
        if cls._instance is None:
            cls._instance = cls(get_search_client(throw_if_unavailable=True))
        return cls._instance

    @classmethod
    def current_instance(cls) -> Optional["SearchBatchProcessor"]:
        """The singleton if it was created, without creating it."""
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None

    def start(self) -> None:
        self._is_started = True

    @property
    def is_started(self) -> bool:
        return self._is_started

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    @property
    def has_scheduled_batch(self) -> bool:
        return self._timer is not None

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    async def flush_and_close(self) -> None:
        """Stop accepting requests and process everything still queued."""
        logger.debug("Flushing and closing search batch processor")
        self._is_started = False
        while self._queue or self._process_batch_task is not None:
            await self.call_process_batch()
        self._cancel_timer()

    def add_to_queue(self, request: SearchRequest) -> None:
        if not self._is_started:
            return

        logger.debug(f"New request: {request.type.value} {request.table or ''} {request.payload.id}")
        self._queue.append(request)

        if len(self._queue) >= self.max_batch_size or request.is_full_account_re_index:
            self._spawn(self.call_process_batch())
        else:
            self._schedule_call_process_batch()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _spawn(self, coroutine) -> None:
        task = asyncio.ensure_future(coroutine)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def _schedule_call_process_batch(self, wait: Optional[int] = None) -> None:
        if self._timer is not None:
            return
        wait = self.max_sync_delay if wait is None else wait
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(wait / 1000, lambda: self._spawn(self.call_process_batch(is_timeout=True)))

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def call_process_batch(self, is_timeout: bool = False) -> None:
        """Run a batch now, or wait for the one in flight."""
        if self._process_batch_task is not None:
            logger.debug("call_process_batch: waiting on existing batch processing")
            await asyncio.shield(self._process_batch_task)
        elif self._timer is not None:
            logger.debug(
                "call_process_batch: running batch after sync delay"
                if is_timeout
                else "call_process_batch: running batch early"
            )
            self._cancel_timer()
            await self._run_batch()
        elif self._queue:
            logger.debug("call_process_batch: running batch now")
            await self._run_batch()
        else:
            logger.debug("call_process_batch: all done")

    async def _run_batch(self) -> None:
        task = asyncio.ensure_future(self._process_batch())
        self._process_batch_task = task
        try:
            await asyncio.shield(task)
        finally:
            if self._process_batch_task is task:
                self._process_batch_task = None

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def _process_batch(self) -> None:
        self._cancel_timer()

        if not self._queue:
            logger.debug("No messages to process")
            return

        if self._is_processing:
            return

        self._is_processing = True
        processing_queue = self._queue[: self.max_batch_size]
        del self._queue[: self.max_batch_size]
        logger.debug(f"Processing batch of {len(processing_queue)} requests")

        try:
            operations, delete_query = await self.convert_requests_to_bulk_operations(processing_queue)
            if delete_query is not None:
                result = await self.client.delete_by_query(**delete_query)
                logger.debug(f"Delete query took {result.get('took')} ms")

            if operations:
                response = await self.client.bulk(body=operations)
                logger.debug(f"Synchronized {len(response.get('items', []))} items in {response.get('took')} ms")
                if response.get("errors"):
                    report_message(
                        "SearchBatchProcessor: Bulk indexing errors",
                        severity="warning",
                        handler=HandlerType.SEARCH_SYNC_JOB,
                        extra={"processing_queue": [r.model_dump(mode="json") for r in processing_queue]},
                    )
        except Exception as e:
            report_error(
                e,
                handler=HandlerType.SEARCH_SYNC_JOB,
                extra={"processing_queue": [r.model_dump(mode="json") for r in processing_queue]},
            )

        self._is_processing = False
        self._process_batch_task = None

        if self._queue and self._timer is None:
            wait = 0 if len(self._queue) >= self.max_batch_size else self.max_sync_delay
            self._schedule_call_process_batch(wait)

    @staticmethod
    def preprocess_requests(
        requests: List[SearchRequest],
    ) -> Tuple[List[int], Dict[str, List[SearchRequest]]]:
        """Keep the latest request per entity and group them by table.

        A full account re-index takes priority over the requests on that
        account's own row.

        Returns:
            Accounts to re-index, and the remaining requests by table
        """
        collectives_table = SEARCH_ADAPTERS[IndexName.COLLECTIVES].table
        accounts_to_re_index: "OrderedDict[int, None]" = OrderedDict()
        other_requests: "OrderedDict[Tuple[str, int], SearchRequest]" = OrderedDict()

        for request in requests:
            account_id = request.payload.id
            if request.is_full_account_re_index:
                accounts_to_re_index[account_id] = None
                other_requests.pop((collectives_table, account_id), None)
            elif request.table != collectives_table or account_id not in accounts_to_re_index:
                key = (request.table, account_id)
                other_requests.pop(key, None)
                other_requests[key] = request

        grouped: Dict[str, List[SearchRequest]] = {}
        for (table, _), request in other_requests.items():
            grouped.setdefault(table, []).append(request)
        return list(accounts_to_re_index), grouped

    @staticmethod
    def get_accounts_re_index_delete_query(account_ids: List[int]) -> Optional[Dict[str, Any]]:
        if not account_ids:
            return None

        return {
            "index": ",".join(format_index_name(adapter.index) for adapter in SEARCH_ADAPTERS.values()),
            "wait_for_completion": True,
            "body": {
                "query": {
                    "bool": {
                        "should": [
                            {
                                "bool": {
                                    "must": [
                                        {"term": {"_index": format_index_name(IndexName.COLLECTIVES)}},
                                        {"terms": {"_id": [str(i) for i in account_ids]}},
                                    ]
                                }
                            },
                            {"bool": {"must": [{"terms": {"HostCollectiveId": account_ids}}]}},
                            {"bool": {"must": [{"terms": {"ParentCollectiveId": account_ids}}]}},
                            {"bool": {"must": [{"terms": {"FromCollectiveId": account_ids}}]}},
                            {"bool": {"must": [{"terms": {"CollectiveId": account_ids}}]}},
                        ]
                    }
                }
            },
        }

    async def convert_requests_to_bulk_operations(
        self, requests: List[SearchRequest]
    ) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, Any]]]:
        accounts_to_re_index, requests_by_table = self.preprocess_requests(requests)
        operations: List[Dict[str, Any]] = []
        delete_query = self.get_accounts_re_index_delete_query(accounts_to_re_index)

        async with self.session_factory() as session:
            if accounts_to_re_index:
                for adapter in SEARCH_ADAPTERS.values():
                    entries = await adapter.find_entries_to_index(
                        session, related_to_collective_ids=accounts_to_re_index
                    )
                    for entry in entries:
                        operations.append({"index": {"_index": format_index_name(adapter.index), "_id": str(entry.id)}})
                        operations.append(adapter.map_to_document(entry))

            for table, table_requests in requests_by_table.items():
                adapter = get_adapter_from_table_name(table)
                if adapter is None:
                    logger.error(f"No search adapter found for table {table}")
                    continue

                index_name = format_index_name(adapter.index)
                update_ids = [r.payload.id for r in table_requests if r.type == SearchRequestType.UPDATE]
                entries_by_id = {}
                if update_ids:
                    entries = await adapter.find_entries_to_index(session, ids=update_ids)
                    entries_by_id = {entry.id: entry for entry in entries}

                for request in table_requests:
                    entity_id = request.payload.id
                    if request.type == SearchRequestType.UPDATE and entity_id in entries_by_id:
                        operations.append({"index": {"_index": index_name, "_id": str(entity_id)}})
                        operations.append(adapter.map_to_document(entries_by_id[entity_id]))
                    elif request.type in (SearchRequestType.UPDATE, SearchRequestType.DELETE):
                        operations.append({"delete": {"_index": index_name, "_id": str(entity_id)}})

        return operations, delete_query
