"""Tests for the paginated fetcher."""

import pytest

from portal_sync.exceptions import TransportError
from portal_sync.services.paginated_fetcher import PaginatedFetcher, QueryConfig
from portal_sync.services.source_client import SourcePage


class FakeSource:
    """Serves pre-built pages keyed by offset and records the offsets asked for."""

    def __init__(self, pages=None, related_pages=None, error_at=None):
        self.pages = pages or {}
        self.related_pages = related_pages or {}
        self.error_at = error_at
        self.offsets = []

    async def query(self, module, filters, fields, page_size, offset, order_by, order_direction):
        self.offsets.append(offset)
        if offset == self.error_at:
            raise TransportError("boom", status_code=500)
        return self.pages[offset]

    async def query_related(self, module, record_id, link_name, fields, filters, page_size, offset,
                            order_by, order_direction):
        self.offsets.append(offset)
        records = self.related_pages.get(offset, [])
        return SourcePage(records=records, has_more=len(records) == page_size, next_offset=offset + page_size)


def records(*ids):
    return [{"id": i} for i in ids]


class TestFetchAll:
    """Tests for fetch_all."""

    @pytest.mark.asyncio
    async def test_follows_next_offset(self):
        source = FakeSource({
            0: SourcePage(records(1, 2), has_more=True, next_offset=2),
            2: SourcePage(records(3), has_more=False, next_offset=-1),
        })

        result = await PaginatedFetcher(source).fetch_all(QueryConfig(module="Accounts", page_size=2))

        assert source.offsets == [0, 2]
        assert [r["id"] for r in result.records] == [1, 2, 3]
        assert result.total_fetched == 3
        assert result.module == "Accounts"
        assert not result.truncated

    @pytest.mark.asyncio
    async def test_empty_result(self):
        source = FakeSource({0: SourcePage([], has_more=False)})

        result = await PaginatedFetcher(source).fetch_all(QueryConfig(module="Accounts"))

        assert result.records == []
        assert result.total_fetched == 0

    @pytest.mark.asyncio
    async def test_page_callback_sync_and_async(self):
        source = FakeSource({
            0: SourcePage(records(1), has_more=True, next_offset=1),
            1: SourcePage(records(2), has_more=False),
        })
        seen = []

        async def on_page(page_records, page):
            seen.append(len(page_records))

        await PaginatedFetcher(source).fetch_all(QueryConfig(module="Accounts"), on_page=on_page)
        await PaginatedFetcher(FakeSource(source.pages)).fetch_all(
            QueryConfig(module="Accounts"), on_page=lambda r, p: seen.append(len(r))
        )

        assert seen == [1, 1, 1, 1]

    @pytest.mark.asyncio
    async def test_page_error_aborts(self):
        source = FakeSource({0: SourcePage(records(1), has_more=True, next_offset=1)}, error_at=1)

        with pytest.raises(TransportError):
            await PaginatedFetcher(source).fetch_all(QueryConfig(module="Accounts"))

    @pytest.mark.asyncio
    async def test_non_advancing_offset_is_transport_error(self):
        source = FakeSource({0: SourcePage(records(1), has_more=True, next_offset=0)})

        with pytest.raises(TransportError, match="did not advance"):
            await PaginatedFetcher(source).fetch_all(QueryConfig(module="Accounts"))

    @pytest.mark.asyncio
    async def test_safety_bound(self, caplog):
        pages = {
            offset: SourcePage(records(*range(offset, offset + 4)), has_more=True, next_offset=offset + 4)
            for offset in range(0, 40, 4)
        }
        source = FakeSource(pages)

        result = await PaginatedFetcher(source, max_records=10).fetch_all(QueryConfig(module="Accounts"))

        assert result.truncated
        assert result.total_fetched == 12
        assert source.offsets == [0, 4, 8]
        assert "stopping pagination" in caplog.text


class TestFetchAllRelated:
    """Tests for relationship paging."""

    @pytest.mark.asyncio
    async def test_stops_on_short_page(self):
        source = FakeSource(related_pages={0: records(1, 2), 2: records(3, 4), 4: records(5)})

        result = await PaginatedFetcher(source).fetch_all_related(
            "Accounts", "acc-1", "accounts_comp_compliance_officers_1", page_size=2
        )

        assert source.offsets == [0, 2, 4]
        assert [r["id"] for r in result.records] == [1, 2, 3, 4, 5]
        assert result.module == "Accounts/accounts_comp_compliance_officers_1"

    @pytest.mark.asyncio
    async def test_exact_multiple_needs_one_more_page(self):
        source = FakeSource(related_pages={0: records(1, 2)})

        result = await PaginatedFetcher(source).fetch_all_related("Accounts", "acc-1", "link", page_size=2)

        assert source.offsets == [0, 2]
        assert result.total_fetched == 2
