"""Paginated fetcher that drains a SugarCRM query page by page."""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from portal_sync.exceptions import TransportError
from portal_sync.services.source_client import SourcePage

logger = logging.getLogger(__name__)

# Accumulation stops once more than this many records have been fetched
MAX_RECORDS = 10000


@dataclass
class QueryConfig:
    """Parameters for a filtered module query."""
    module: str
    filters: List[Dict[str, Any]] = field(default_factory=list)
    fields: Optional[List[str]] = None
    page_size: int = 20
    order_by: str = "date_modified"
    order_direction: str = "desc"


@dataclass
class FetchResult:
    """All records fetched for one query."""
    records: List[Dict[str, Any]]
    total_fetched: int
    module: str
    truncated: bool = False


PageCallback = Callable[[List[Dict[str, Any]], SourcePage], Any]


class PaginatedFetcher:
    """Drives a source client until a query is exhausted.

    Pages are requested strictly one after another. Any page error aborts
    the whole fetch; partial results are never returned.
    """

    def __init__(self, source_client, max_records: int = MAX_RECORDS):
        """Initialize fetcher.

        Args:
            source_client: Object with async ``query`` and ``query_related``.
            max_records: Safety bound on accumulated records.
        """
        self.source_client = source_client
        self.max_records = max_records

    async def fetch_all(self, query: QueryConfig, on_page: Optional[PageCallback] = None) -> FetchResult:
        """Fetch every page of a query.

        Args:
            query: Query parameters.
            on_page: Optional callback (sync or async) invoked with each page's
                records and the page itself.

        Returns:
            FetchResult with the accumulated records.

        Raises:
            TransportError: If a page fails or the upstream offset does not advance.
        """
        records: List[Dict[str, Any]] = []
        offset = 0
        truncated = False

        while True:
            try:
                page = await self.source_client.query(
                    module=query.module,
                    filters=query.filters,
                    fields=query.fields,
                    page_size=query.page_size,
                    offset=offset,
                    order_by=query.order_by,
                    order_direction=query.order_direction,
                )
            except Exception as e:
                logger.error(f"Error fetching {query.module} page at offset {offset}: {e}")
                raise

            records.extend(page.records)
            await self._notify(on_page, page)

            if len(records) > self.max_records:
                logger.warning(
                    f"Fetched more than {self.max_records} {query.module} records, stopping pagination"
                )
                truncated = True
                break

            if not page.has_more:
                break

            if page.next_offset is None or page.next_offset <= offset:
                raise TransportError(
                    f"Pagination for {query.module} did not advance (offset {offset}, next_offset {page.next_offset})"
                )
            offset = page.next_offset

        logger.info(f"Fetched {len(records)} {query.module} records")
        return FetchResult(records=records, total_fetched=len(records), module=query.module, truncated=truncated)

    async def fetch_all_related(
        self,
        module: str,
        record_id: str,
        link_name: str,
        fields: Optional[List[str]] = None,
        filters: Optional[List[Dict[str, Any]]] = None,
        page_size: int = 20,
        order_by: str = "date_modified",
        order_direction: str = "desc",
        on_page: Optional[PageCallback] = None,
    ) -> FetchResult:
        """Fetch every record linked to a record through a relationship link.

        The next offset is ``offset + page_size``; paging stops on a short page.
        """
        records: List[Dict[str, Any]] = []
        offset = 0
        truncated = False

        while True:
            page = await self.source_client.query_related(
                module=module,
                record_id=record_id,
                link_name=link_name,
                fields=fields,
                filters=filters,
                page_size=page_size,
                offset=offset,
                order_by=order_by,
                order_direction=order_direction,
            )
            records.extend(page.records)
            await self._notify(on_page, page)

            if len(records) > self.max_records:
                logger.warning(f"Fetched more than {self.max_records} {link_name} records, stopping pagination")
                truncated = True
                break
            if not page.has_more:
                break
            offset += page_size

        return FetchResult(
            records=records,
            total_fetched=len(records),
            module=f"{module}/{link_name}",
            truncated=truncated,
        )

    @staticmethod
    async def _notify(on_page: Optional[PageCallback], page: SourcePage) -> None:
        if on_page is None:
            return
        result = on_page(page.records, page)
        if inspect.isawaitable(result):
            await result
