import httpx
import pytest
from pytest_httpx import HTTPXMock

from arm_client.core.models import TransportResponse
from arm_client.core.transport import (
    AsyncHttpxTransport,
    HttpxTransport,
    is_transient_status,
    raise_for_response,
)
from arm_client.exceptions.transport import (
    TransientTransportError,
    UnexpectedResponseError,
)

URL = "https://management.azure.com/operations/op-1"


def test_httpx_transport_returns_error_responses_as_is(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(url=URL, status_code=500, json={"error": "boom"})

    with httpx.Client() as client:
        response = HttpxTransport(client).send("GET", URL)

    assert response.status_code == 500
    assert not response.is_success
    assert b"boom" in response.body


def test_httpx_transport_sends_headers_and_body(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(url=URL, method="PUT", status_code=201)

    with httpx.Client() as client:
        HttpxTransport(client).send(
            "PUT", URL, headers={"x-ms-client-request-id": "abc"}, body=b"{}"
        )

    request = httpx_mock.get_request()
    assert request is not None
    assert request.headers["x-ms-client-request-id"] == "abc"
    assert request.content == b"{}"


def test_httpx_transport_maps_connection_errors(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_exception(httpx.ConnectError("connection refused"), url=URL)

    with httpx.Client() as client:
        with pytest.raises(TransientTransportError) as exc_info:
            HttpxTransport(client).send("GET", URL)

    assert exc_info.value.url == URL
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_async_httpx_transport(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(url=URL, json={"status": "Running"}, headers={"Retry-After": "3"})
    httpx_mock.add_exception(httpx.ReadTimeout("timed out"), url=URL)

    async with httpx.AsyncClient() as client:
        transport = AsyncHttpxTransport(client)
        response = await transport.send("GET", URL)
        with pytest.raises(TransientTransportError):
            await transport.send("GET", URL)

    assert response.status_code == 200
    assert response.headers["retry-after"] == "3"


@pytest.mark.parametrize(
    "status_code, transient",
    [(408, True), (429, True), (500, True), (503, True), (400, False), (409, False)],
)
def test_is_transient_status(status_code: int, transient: bool) -> None:
    assert is_transient_status(status_code) is transient


def test_raise_for_response() -> None:
    raise_for_response(TransportResponse(status_code=204), "GET", URL)

    with pytest.raises(TransientTransportError) as transient:
        raise_for_response(
            TransportResponse(
                status_code=429, headers=httpx.Headers({"Retry-After": "12"})
            ),
            "GET",
            URL,
        )
    assert transient.value.retry_after == 12.0

    with pytest.raises(UnexpectedResponseError) as unexpected:
        raise_for_response(
            TransportResponse(status_code=403, body=b"denied"), "GET", URL
        )
    assert unexpected.value.status_code == 403
    assert unexpected.value.body == b"denied"
    assert not unexpected.value.retryable
