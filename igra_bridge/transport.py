"""
Transport protocol for ledger REST calls.

Defines the seam where concrete HTTP implementations plug in. The REST
client depends on this protocol, not on httpx directly, so tests can pass
a FakeTransport with canned responses.

Concrete implementations:
    - HttpxTransport (default, uses httpx.AsyncClient)
    - FakeTransport (tests)
"""

from __future__ import annotations

from types import TracebackType
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class JsonTransport(Protocol):
    """Async transport for JSON GET/POST requests."""

    async def get_json(self, url: str) -> Any:
        """GET ``url`` and return the parsed JSON body.

        Raises:
            Exception: On transport-level failures (connection refused,
                timeout, TLS error, non-2xx status).
        """
        ...

    async def post_json(self, url: str, payload: dict[str, Any]) -> Any:
        """POST ``payload`` as JSON and return the parsed JSON body.

        Unlike get_json, a 4xx response with a JSON body is returned
        rather than raised, so the caller can read the node's reason.
        """
        ...


class HttpxTransport:
    """Default transport using httpx.AsyncClient.

    Used as an async context manager, one connection pool is kept for the
    whole session; otherwise each call opens and closes its own client.
    Lazily imports httpx; it is only required for real network calls.
    """

    def __init__(self, timeout: float = 30.0) -> None:
        self._timeout = timeout
        self._client: Any = None

    async def __aenter__(self) -> HttpxTransport:
        import httpx

        self._client = httpx.AsyncClient(timeout=self._timeout)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        import httpx

        if self._client is not None:
            return await self._client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.request(method, url, **kwargs)

    async def get_json(self, url: str) -> Any:
        """GET via httpx."""
        response = await self._request(
            "GET", url, headers={"Accept": "application/json"}
        )
        response.raise_for_status()
        return response.json()

    async def post_json(self, url: str, payload: dict[str, Any]) -> Any:
        """POST via httpx."""
        response = await self._request(
            "POST",
            url,
            json=payload,
            headers={"Content-Type": "application/json"},
        )
        if response.status_code >= 500 or not response.content:
            response.raise_for_status()
        return response.json()
