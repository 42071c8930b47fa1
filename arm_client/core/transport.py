from http import HTTPStatus
from typing import Mapping, Protocol

import httpx
from loguru import logger

from arm_client.core.models import TransportResponse
from arm_client.exceptions.transport import (
    TransientTransportError,
    UnexpectedResponseError,
)
from arm_client.utils.backoff import get_retry_after

TRANSIENT_STATUS_CODES = frozenset(
    [HTTPStatus.REQUEST_TIMEOUT, HTTPStatus.TOO_MANY_REQUESTS]
)
NOT_FOUND_STATUS_CODES = frozenset([HTTPStatus.NOT_FOUND, HTTPStatus.GONE])


class Transport(Protocol):
    def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
    ) -> TransportResponse: ...


class AsyncTransport(Protocol):
    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
    ) -> TransportResponse: ...


class HttpxTransport:
    """Blocking transport over an `httpx.Client`.

    Non-2xx responses are returned as-is; only connection level failures raise.
    """

    def __init__(self, client: httpx.Client) -> None:
        self.client = client

    def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
    ) -> TransportResponse:
        try:
            response = self.client.request(
                method, url, headers=headers, content=body
            )
        except httpx.TransportError as e:
            logger.warning(f"Request {method} {url} failed: {type(e).__name__} {e}")
            raise TransientTransportError(str(e) or type(e).__name__, url=url) from e
        return TransportResponse.from_httpx(response)

    def close(self) -> None:
        self.client.close()


class AsyncHttpxTransport:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
    ) -> TransportResponse:
        try:
            response = await self.client.request(
                method, url, headers=headers, content=body
            )
        except httpx.TransportError as e:
            logger.warning(f"Request {method} {url} failed: {type(e).__name__} {e}")
            raise TransientTransportError(str(e) or type(e).__name__, url=url) from e
        return TransportResponse.from_httpx(response)

    async def aclose(self) -> None:
        await self.client.aclose()


def is_transient_status(status_code: int) -> bool:
    return status_code in TRANSIENT_STATUS_CODES or status_code >= 500


def raise_for_response(response: TransportResponse, method: str, url: str) -> None:
    """Raise the matching error for a response the core cannot use."""
    if response.is_success:
        return

    if is_transient_status(response.status_code):
        raise TransientTransportError(
            f"Request {method} {url} failed with status code {response.status_code}",
            url=url,
            status_code=response.status_code,
            retry_after=get_retry_after(response.headers),
        )

    raise UnexpectedResponseError(
        f"Request {method} {url} returned unexpected status code {response.status_code}",
        url=url,
        status_code=response.status_code,
        body=response.body,
    )
