"""
HTTP Transport for CCManager.

Handles async HTTP communication with the assistant and hosting APIs, request
and response logging, and mapping of connection failures into typed
exceptions. Status handling is left to the calling client.
"""

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from ccmanager.exceptions import TransportError
from ccmanager.logging import log_http_request, log_http_response


class HTTPTransport:
    """
    Async HTTP transport layer shared by the provider clients.

    Handles:
    - Default headers per provider (auth and versioning headers)
    - Whole-response requests and streamed responses
    - Connection errors surfaced as TransportError
    - Masked DEBUG logging of every exchange

    No retry is attempted and no timeout is configured unless one is passed;
    httpx defaults apply.
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize HTTP transport.

        Args:
            base_url: Base URL for API requests (e.g., "https://api.github.com")
            headers: Headers sent with every request
            timeout: Request timeout in seconds (default: httpx default)
            transport: Optional httpx transport, e.g. httpx.MockTransport in tests
        """
        self.base_url = base_url.rstrip("/")
        self.headers = dict(headers or {})

        client_kwargs: dict[str, Any] = {
            "base_url": self.base_url,
            "headers": self.headers,
        }
        if timeout is not None:
            client_kwargs["timeout"] = timeout
        if transport is not None:
            client_kwargs["transport"] = transport

        self._client = httpx.AsyncClient(**client_kwargs)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "HTTPTransport":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Make a request and read the whole response.

        Args:
            method: HTTP method
            path: API path (e.g., "/user/repos")
            params: Query parameters
            json: JSON request body
            headers: Extra headers for this request only

        Returns:
            The httpx response, whatever its status

        Raises:
            TransportError: If the connection fails
        """
        url = f"{self.base_url}{path}"
        log_http_request(method, url, {**self.headers, **(headers or {})}, json)

        started = time.monotonic()
        try:
            response = await self._client.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.HTTPError as e:
            raise TransportError(str(e) or type(e).__name__) from e

        log_http_response(
            response.status_code,
            url,
            elapsed_ms=(time.monotonic() - started) * 1000,
        )
        return response

    @asynccontextmanager
    async def stream(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> AsyncIterator[httpx.Response]:
        """
        Open a streamed response.

        The connection is released when the context exits, including when the
        consumer stops reading early.

        Raises:
            TransportError: If the connection cannot be opened
        """
        url = f"{self.base_url}{path}"
        log_http_request(method, url, {**self.headers, **(headers or {})}, json)

        try:
            async with self._client.stream(
                method, path, json=json, headers=headers
            ) as response:
                log_http_response(response.status_code, url)
                yield response
        except httpx.HTTPError as e:
            raise TransportError(str(e) or type(e).__name__) from e
