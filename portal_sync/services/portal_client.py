"""Portal API client for pushing transformed record batches."""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from portal_sync.config import settings
from portal_sync.exceptions import AuthenticationError, ConfigurationError, TransportError
from portal_sync.services.secret_service import SecretService

logger = logging.getLogger(__name__)


class PushResult(BaseModel):
    """Per-record result returned by a portal integration endpoint.

    Older endpoints answer with ``sugarId``/``portalId``; both spellings are accepted.
    Numeric ids are coerced to strings; a null message or log type falls back
    to its default.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    log_type: str = Field("Info", validation_alias=AliasChoices("logType", "log_type"))
    module_name: Optional[str] = Field(None, validation_alias=AliasChoices("moduleName", "module_name"))
    source_id: Optional[str] = Field(None, validation_alias=AliasChoices("sourceId", "sugarId", "source_id"))
    destination_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("destinationId", "portalId", "destination_id")
    )
    http_status: Optional[int] = Field(None, validation_alias=AliasChoices("httpStatus", "http_status"))
    internal_status: Optional[str] = Field(
        None, validation_alias=AliasChoices("internalStatus", "internal_status")
    )
    message: Optional[str] = ""
    validation_errors: Optional[Any] = Field(
        None, validation_alias=AliasChoices("validationErrors", "validation_errors")
    )

    @field_validator("source_id", "destination_id", mode="before")
    @classmethod
    def _id_to_str(cls, value):
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("log_type", mode="before")
    @classmethod
    def _default_log_type(cls, value):
        return value or "Info"

    @field_validator("message", mode="before")
    @classmethod
    def _null_message(cls, value):
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)


class PortalClient:
    """Client for the portal integration API.

    Must be used as an async context manager. The admin bearer token is
    cached on the instance for ``portal_token_ttl_seconds``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        token_ttl_seconds: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize portal client.

        Args:
            base_url: Portal base URL (defaults to settings.portal_base_url).
            username: Admin user (defaults to settings.portal_username).
            password: Admin password (defaults to PORTAL_PASSWORD or PORTAL_PASSWORD_ENC).
            token_ttl_seconds: Token cache lifetime (defaults to settings).
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used by tests.
        """
        self.base_url = (base_url or settings.portal_base_url).rstrip('/')
        self.username = username or settings.portal_username
        self.password = password
        self.token_ttl_seconds = token_ttl_seconds or settings.portal_token_ttl_seconds
        self.timeout = timeout or settings.http_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._token: Optional[str] = None
        self._token_expires_at: float = 0.0

    async def __aenter__(self):
        """Async context manager entry."""
        if self.password is None:
            self.password = SecretService().get_secret_env("PORTAL_PASSWORD")
        if not self.password:
            raise ConfigurationError("PORTAL_PASSWORD or PORTAL_PASSWORD_ENC must be set")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
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

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("PortalClient must be used as async context manager")
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
        json_data: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Make HTTP request to the portal with retry logic.

        Raises:
            TransportError: On a non-2xx response.
        """
        client = self._get_client()

        try:
            response = await client.request(method=method, url=endpoint, json=json_data, headers=headers)
            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error {e.response.status_code} for {method} {endpoint}: {e.response.text}")
            raise TransportError(
                f"HTTP {e.response.status_code}: {e.response.reason_phrase} - {e.response.text}",
                status_code=e.response.status_code,
            ) from e
        except httpx.TimeoutException:
            logger.error(f"Timeout for {method} {endpoint}")
            raise
        except httpx.NetworkError as e:
            logger.error(f"Network error for {method} {endpoint}: {e}")
            raise

    async def _call(self, method: str, endpoint: str, **kwargs) -> Any:
        try:
            return await self._make_request(method, endpoint, **kwargs)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            raise TransportError(f"Portal unreachable for {method} {endpoint}: {e}") from e

    async def get_token(self) -> str:
        """Get the admin bearer token, logging in when the cached one has expired.

        Raises:
            AuthenticationError: If login fails or returns no token.
        """
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        logger.debug("Requesting new portal token")
        try:
            data = await self._call(
                "POST",
                "/api/auth/admin/login",
                json_data={"username": self.username, "password": self.password},
            )
        except TransportError as e:
            raise AuthenticationError(f"Portal login failed: {e}") from e

        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise AuthenticationError("No token received from portal login")

        self._token = token
        self._token_expires_at = time.monotonic() + self.token_ttl_seconds
        logger.info("Portal authentication successful")
        return token

    async def push(self, endpoint: str, batch: List[Dict[str, Any]]) -> List[PushResult]:
        """POST a batch of records to an integration endpoint.

        Args:
            endpoint: Path such as ``api/integration/SugarMemberToPortalMember``.
            batch: Transformed records.

        Returns:
            One PushResult per element of the response array.

        Raises:
            TransportError: On a non-2xx response or a body that is not an array.
            AuthenticationError: If the token cannot be obtained.
        """
        if not batch:
            logger.info("No records to push")
            return []

        path = endpoint if endpoint.startswith('/') else f"/{endpoint}"
        token = await self.get_token()
        logger.info(f"Pushing {len(batch)} records to {path}")

        data = await self._call("POST", path, json_data=batch, headers={"Authorization": f"Bearer {token}"})

        if not isinstance(data, list):
            raise TransportError(f"Unexpected portal response for {path}: expected an array")

        try:
            return [PushResult.model_validate(item) for item in data]
        except ValidationError as e:
            raise TransportError(f"Malformed portal response for {path}: {e}") from e
