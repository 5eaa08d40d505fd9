"""HTTP transport for the Mixpanel analytics client.

The client only needs a GET (immediate delivery) and a form POST (batch
delivery), each returning a status code and a text body. Transport
exceptions propagate to the caller, which decides how to report them.
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True)
class TransportResponse:
    """Status code and body of an HTTP response."""

    status_code: int
    body: str


@runtime_checkable
class Transport(Protocol):
    """Protocol for the HTTP calls made by the client."""

    async def get(self, url: str, headers: Mapping[str, str]) -> TransportResponse:
        ...

    async def post(
        self,
        url: str,
        headers: Mapping[str, str],
        data: Mapping[str, str],
    ) -> TransportResponse:
        ...


class HttpxTransport:
    """Transport backed by a shared ``httpx.AsyncClient``.

    The client is created on first use, or injected (tests pass one built
    on ``httpx.MockTransport``). An injected client is not closed by
    ``aclose()``.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def get(self, url: str, headers: Mapping[str, str]) -> TransportResponse:
        response = await self._get_client().get(url, headers=dict(headers))
        return TransportResponse(status_code=response.status_code, body=response.text)

    async def post(
        self,
        url: str,
        headers: Mapping[str, str],
        data: Mapping[str, str],
    ) -> TransportResponse:
        response = await self._get_client().post(url, headers=dict(headers), data=dict(data))
        return TransportResponse(status_code=response.status_code, body=response.text)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
