"""SugarCRM REST API client for filtered and relationship queries."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from portal_sync.config import settings
from portal_sync.exceptions import AuthenticationError, ConfigurationError, TransportError
from portal_sync.services.secret_service import SecretService

logger = logging.getLogger(__name__)

DEFAULT_FIELDS = ["id", "name", "date_modified"]


@dataclass
class SourcePage:
    """One page of SugarCRM records."""
    records: List[Dict[str, Any]]
    has_more: bool
    next_offset: Optional[int] = None
    total_count: Optional[int] = None


def date_filter(value: str, field_name: str = "date_modified", operator: str = "$gte") -> Dict[str, Any]:
    """Build a date predicate, e.g. ``{"date_modified": {"$gte": value}}``.

    Raises:
        ValueError: If value is empty.
    """
    if not value:
        raise ValueError("Date value is required for date filter")
    return {field_name: {operator: value}}


def text_filter(field_name: str, value: str, operator: str = "$equals") -> Dict[str, Any]:
    """Build a text predicate, e.g. ``{"acc_type_c": {"$equals": "Member"}}``.

    Raises:
        ValueError: If field_name is empty or value is None.
    """
    if not field_name or value is None:
        raise ValueError("Field and value are required for text filter")
    return {field_name: {operator: value}}


class SugarCRMClient:
    """Client for the SugarCRM v11 REST API.

    Must be used as an async context manager. The OAuth token is fetched
    lazily on the first query and reused for the life of the context.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize SugarCRM client.

        Args:
            api_url: REST base URL, e.g. ``https://crm/rest/v11_20`` (defaults to settings).
            username: API user (defaults to settings).
            password: API password (defaults to SUGARCRM_PASSWORD or SUGARCRM_PASSWORD_ENC).
            timeout: Request timeout in seconds (defaults to settings.http_timeout_seconds).
            transport: Optional httpx transport, used by tests.
        """
        self.api_url = (api_url or settings.sugarcrm_api_url or "").rstrip('/')
        self.username = username or settings.sugarcrm_username
        self.password = password
        self.timeout = timeout or settings.http_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._token: Optional[str] = None

    async def __aenter__(self):
        """Async context manager entry."""
        if self.password is None:
            self.password = SecretService().get_secret_env("SUGARCRM_PASSWORD")
        if not self.api_url or not self.username or not self.password:
            raise ConfigurationError(
                "Missing required settings: SUGARCRM_USERNAME, SUGARCRM_PASSWORD, SUGARCRM_API_URL"
            )
        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            timeout=self.timeout,
            headers={"Content-Type": "application/json"},
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None
        self._token = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("SugarCRMClient must be used as async context manager")
        return self._client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        reraise=True
    )
    async def _make_request(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Any] = None,
        authenticated: bool = True,
    ) -> Dict[str, Any]:
        """Make HTTP request to SugarCRM with retry logic.

        Only timeouts and network errors are retried.

        Raises:
            TransportError: On a non-2xx response.
        """
        client = self._get_client()
        headers = {}
        if authenticated:
            headers["OAuth-Token"] = await self.authenticate()

        try:
            response = await client.request(
                method=method,
                url=endpoint,
                json=json_data,
                params=params,
                headers=headers,
            )
            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error {e.response.status_code} for {method} {endpoint}: {e.response.text}")
            raise TransportError(
                f"SugarCRM API call failed: {e.response.status_code} {e.response.reason_phrase}",
                status_code=e.response.status_code,
            ) from e
        except httpx.TimeoutException:
            logger.error(f"Timeout for {method} {endpoint}")
            raise
        except httpx.NetworkError as e:
            logger.error(f"Network error for {method} {endpoint}: {e}")
            raise

    async def _call(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        """Run _make_request, turning exhausted network retries into TransportError."""
        try:
            return await self._make_request(method, endpoint, **kwargs)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            raise TransportError(f"SugarCRM unreachable for {method} {endpoint}: {e}") from e

    async def authenticate(self) -> str:
        """Get an OAuth token using the password grant.

        Returns:
            Access token.

        Raises:
            AuthenticationError: If the token request fails or returns no token.
        """
        if self._token:
            return self._token

        body = {
            "grant_type": "password",
            "client_id": settings.sugarcrm_client_id,
            "username": self.username,
            "password": self.password,
            "platform": settings.sugarcrm_platform,
        }
        try:
            data = await self._call("POST", "/oauth2/token", json_data=body, authenticated=False)
        except TransportError as e:
            raise AuthenticationError(f"SugarCRM authentication failed: {e}") from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise AuthenticationError("No access token received from SugarCRM")

        self._token = token
        logger.debug("SugarCRM authentication succeeded")
        return token

    async def query(
        self,
        module: str,
        filters: Optional[List[Dict[str, Any]]] = None,
        fields: Optional[List[str]] = None,
        page_size: int = 20,
        offset: int = 0,
        order_by: str = "date_modified",
        order_direction: str = "desc",
    ) -> SourcePage:
        """Query one page of a module through the filter API.

        Args:
            module: SugarCRM module, e.g. ``Accounts``.
            filters: Single-field predicates, AND-ed by SugarCRM.
            fields: Fields to return.
            page_size: ``max_num`` for the page.
            offset: Offset of the page.
            order_by: Sort field.
            order_direction: ``asc`` or ``desc``.

        Returns:
            SourcePage.

        Raises:
            TransportError: If the call fails.
        """
        if not module:
            raise ValueError("Module name is required")

        body: Dict[str, Any] = {
            "fields": list(fields or DEFAULT_FIELDS),
            "max_num": page_size,
            "offset": offset,
            "order_by": order_by,
            "order_direction": order_direction,
        }
        if filters:
            body["filter"] = filters

        data = await self._call("POST", f"/{module}/filter", json_data=body)
        records = data.get("records") or []
        next_offset = data.get("next_offset")
        return SourcePage(
            records=records,
            has_more=bool(data.get("has_more", False)),
            next_offset=next_offset if isinstance(next_offset, int) and next_offset >= 0 else None,
            total_count=data.get("total_count"),
        )

    async def query_related(
        self,
        module: str,
        record_id: str,
        link_name: str,
        fields: Optional[List[str]] = None,
        filters: Optional[List[Dict[str, Any]]] = None,
        page_size: int = 20,
        offset: int = 0,
        order_by: str = "date_modified",
        order_direction: str = "desc",
    ) -> SourcePage:
        """Query one page of records linked to a record.

        Filters are sent as ``filter[i][field][op]`` query parameters. A page is
        considered to have more when it came back full.
        """
        if not module or not record_id or not link_name:
            raise ValueError("Module, record_id and link_name are required parameters")

        params: List[tuple] = []
        if fields:
            params.append(("fields", ",".join(fields)))
        for index, predicate in enumerate(filters or []):
            for field_name, condition in predicate.items():
                if isinstance(condition, dict):
                    for operator, value in condition.items():
                        params.append((f"filter[{index}][{field_name}][{operator}]", value))
                else:
                    params.append((f"filter[{index}][{field_name}]", condition))
        params.append(("max_num", page_size))
        params.append(("offset", offset))
        params.append(("order_by", f"{order_by}:{order_direction}"))

        data = await self._call("GET", f"/{module}/{record_id}/link/{link_name}", params=params)
        records = data.get("records") or []
        return SourcePage(
            records=records,
            has_more=len(records) == page_size,
            next_offset=offset + page_size,
            total_count=data.get("total_count"),
        )
