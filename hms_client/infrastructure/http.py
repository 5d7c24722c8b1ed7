from typing import Optional, Any, Dict, AsyncIterator
from contextlib import asynccontextmanager
import enum
import logging

import httpx

from hms_client.core.config import settings
from hms_client.core.exceptions import (
    ApiError,
    BaseClientException,
    InvalidResponseError,
    error_from_response,
    handle_transport_error,
)

logger = logging.getLogger(__name__)


def clean_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Drop empty filters and flatten list values the way the backend expects.

    ``{"status": ["COMPLETED", "VERIFIED"], "search": None}`` becomes
    ``{"status": "COMPLETED,VERIFIED"}``.
    """
    cleaned: Dict[str, Any] = {}
    for key, value in (params or {}).items():
        if value is None or value == "":
            continue
        if isinstance(value, enum.Enum):
            value = value.value
        if isinstance(value, (list, tuple, set)):
            value = ",".join(str(v.value if isinstance(v, enum.Enum) else v) for v in value)
        elif isinstance(value, bool):
            value = "true" if value else "false"
        cleaned[key] = value
    return cleaned


class ApiClient:
    """Thin async wrapper over httpx for the hospital REST backend.

    Every failure leaves the client as one of the client exception types:
    transport problems become TransportError, non-2xx responses become an
    ApiError subclass, and ``{"success": false}`` envelopes become ApiError
    as well.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        session_token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.API_BASE_URL
        self._session_token = session_token if session_token is not None else settings.SESSION_TOKEN
        self._timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def connect(self) -> None:
        if self._client is not None:
            return
        cookies = {}
        if self._session_token:
            cookies[settings.SESSION_COOKIE_NAME] = self._session_token
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            cookies=cookies,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )
        logger.info(f"API client ready for {self.base_url}")

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("API client closed")

    async def __aenter__(self) -> "ApiClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("API client is not connected")
        return self._client

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        fallback_message: str = "Operation failed",
    ) -> Any:
        """Send one request and return the decoded JSON body (None when empty)."""
        operation = f"{method} {path}"
        try:
            response = await self.client.request(method, path, params=clean_params(params), json=json)
        except httpx.TransportError as e:
            raise handle_transport_error(e, operation) from e

        if response.is_error:
            error = error_from_response(response, fallback_message)
            logger.warning(f"{operation} failed with {response.status_code}: {error.message}")
            raise error

        if not response.content:
            return None
        try:
            body = response.json()
        except ValueError as e:
            raise InvalidResponseError(
                status_code=response.status_code,
                details={"operation": operation, "original_error": str(e)},
            ) from e

        if isinstance(body, dict) and body.get("success") is False:
            raise ApiError(
                message=body.get("error") or fallback_message,
                status_code=response.status_code,
                details={"operation": operation},
            )
        return body

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        return await self.request("GET", path, params=params, **kwargs)

    async def post(self, path: str, json: Optional[Any] = None, **kwargs) -> Any:
        return await self.request("POST", path, json=json, **kwargs)

    async def put(self, path: str, json: Optional[Any] = None, **kwargs) -> Any:
        return await self.request("PUT", path, json=json, **kwargs)

    async def patch(self, path: str, json: Optional[Any] = None, **kwargs) -> Any:
        return await self.request("PATCH", path, json=json, **kwargs)

    async def delete(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        return await self.request("DELETE", path, params=params, **kwargs)

    @asynccontextmanager
    async def stream(self, path: str, params: Optional[Dict[str, Any]] = None) -> AsyncIterator[httpx.Response]:
        """Open a long-lived GET for server-sent events."""
        operation = f"STREAM {path}"
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        try:
            async with self.client.stream(
                "GET", path, params=clean_params(params), headers=headers, timeout=None
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise error_from_response(response, "Failed to open event stream")
                yield response
        except httpx.TransportError as e:
            raise handle_transport_error(e, operation) from e

    async def is_healthy(self) -> bool:
        try:
            await self.get(f"{settings.API_PREFIX}/health")
            return True
        except BaseClientException as e:
            logger.error(f"API health check failed: {e.message}")
        return False
