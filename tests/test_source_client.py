"""Tests for the SugarCRM client."""

import json

import httpx
import pytest

from portal_sync.exceptions import AuthenticationError, ConfigurationError, TransportError
from portal_sync.services.source_client import SugarCRMClient, date_filter, text_filter

API_URL = "https://crm.test/rest/v11_20"


def make_client(handler):
    return SugarCRMClient(
        api_url=API_URL,
        username="integration",
        password="secret",
        transport=httpx.MockTransport(handler),
    )


class Recorder:
    """MockTransport handler that answers login and records every request."""

    def __init__(self, responses):
        self.responses = responses
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/oauth2/token"):
            return httpx.Response(200, json={"access_token": "tok-1"})
        return self.responses.pop(0)


class TestFilters:
    """Tests for filter helpers."""

    def test_date_filter(self):
        assert date_filter("2025-09-01T00:00:00Z") == {"date_modified": {"$gte": "2025-09-01T00:00:00Z"}}

    def test_date_filter_requires_value(self):
        with pytest.raises(ValueError):
            date_filter("")

    def test_text_filter(self):
        assert text_filter("acc_type_c", "Member") == {"acc_type_c": {"$equals": "Member"}}


class TestSugarCRMClient:
    """Tests for SugarCRM client requests."""

    @pytest.mark.asyncio
    async def test_query_request_shape(self):
        recorder = Recorder([
            httpx.Response(200, json={"records": [{"id": "a"}], "next_offset": 2, "has_more": True}),
        ])

        async with make_client(recorder) as client:
            page = await client.query(
                "Accounts",
                filters=[{"acc_type_c": {"$equals": "Member"}}],
                fields=["id", "name"],
                page_size=2,
                offset=0,
            )

        login, query = recorder.requests
        assert json.loads(login.content) == {
            "grant_type": "password",
            "client_id": "sugar",
            "username": "integration",
            "password": "secret",
            "platform": "base",
        }
        assert query.url.path == "/rest/v11_20/Accounts/filter"
        assert query.headers["OAuth-Token"] == "tok-1"
        assert json.loads(query.content) == {
            "fields": ["id", "name"],
            "max_num": 2,
            "offset": 0,
            "order_by": "date_modified",
            "order_direction": "desc",
            "filter": [{"acc_type_c": {"$equals": "Member"}}],
        }
        assert page.records == [{"id": "a"}]
        assert page.has_more is True
        assert page.next_offset == 2

    @pytest.mark.asyncio
    async def test_token_reused_within_context(self):
        recorder = Recorder([
            httpx.Response(200, json={"records": [], "next_offset": -1}),
            httpx.Response(200, json={"records": [], "next_offset": -1}),
        ])

        async with make_client(recorder) as client:
            first = await client.query("Accounts")
            await client.query("Accounts")

        paths = [r.url.path for r in recorder.requests]
        assert paths.count("/rest/v11_20/oauth2/token") == 1
        assert first.has_more is False
        assert first.next_offset is None

    @pytest.mark.asyncio
    async def test_http_error_is_transport_error(self):
        recorder = Recorder([httpx.Response(500, text="down")])

        async with make_client(recorder) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.query("Accounts")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_login_failure(self):
        def handler(request):
            return httpx.Response(401, json={"error": "invalid_grant"})

        async with make_client(handler) as client:
            with pytest.raises(AuthenticationError):
                await client.query("Accounts")

    @pytest.mark.asyncio
    async def test_login_without_token(self):
        def handler(request):
            return httpx.Response(200, json={})

        async with make_client(handler) as client:
            with pytest.raises(AuthenticationError, match="No access token"):
                await client.authenticate()

    @pytest.mark.asyncio
    async def test_query_related_params(self):
        recorder = Recorder([httpx.Response(200, json={"records": [{"id": "c1"}, {"id": "c2"}]})])

        async with make_client(recorder) as client:
            page = await client.query_related(
                "Accounts",
                "acc-1",
                "accounts_comp_compliance_officers_1",
                fields=["id", "name"],
                filters=[{"status_c": {"$equals": "1"}}],
                page_size=2,
                offset=4,
            )

        request = recorder.requests[-1]
        assert request.method == "GET"
        assert request.url.path == "/rest/v11_20/Accounts/acc-1/link/accounts_comp_compliance_officers_1"
        params = request.url.params
        assert params["fields"] == "id,name"
        assert params["filter[0][status_c][$equals]"] == "1"
        assert params["max_num"] == "2"
        assert params["offset"] == "4"
        assert params["order_by"] == "date_modified:desc"
        assert page.has_more is True
        assert page.next_offset == 6

    @pytest.mark.asyncio
    async def test_missing_configuration(self):
        client = SugarCRMClient(api_url=API_URL, username=None, password="x")
        client.username = None

        with pytest.raises(ConfigurationError):
            async with client:
                pass

    @pytest.mark.asyncio
    async def test_requires_context_manager(self):
        client = SugarCRMClient(api_url=API_URL, username="u", password="p")

        with pytest.raises(RuntimeError, match="async context manager"):
            await client.query("Accounts")
