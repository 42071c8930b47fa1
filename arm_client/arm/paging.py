import json
from typing import Any, Mapping

import httpx
from pydantic import ValidationError

from arm_client.arm.models import ListResult
from arm_client.core.effects import Flow, SendRequest
from arm_client.core.models import Page, TransportResponse
from arm_client.core.runner import run_async, run_sync
from arm_client.core.transport import AsyncTransport, Transport, raise_for_response
from arm_client.exceptions.operations import MalformedServerResponse

API_VERSION_PARAM = "api-version"
PAGE_SIZE_PARAM = "$top"


def parse_list_page(
    response: TransportResponse, url: str, data_key: str = "value"
) -> Page[Any]:
    """Parse an ARM list body, ``{"value": [...], "nextLink": "..."}``, into a Page."""
    try:
        body = json.loads(response.body.decode("utf-8")) if response.body else {}
        if not isinstance(body, dict):
            raise ValueError(f"expected a JSON object, got {type(body).__name__}")
        result = ListResult.model_validate(
            {"value": body.get(data_key) or [], "nextLink": body.get("nextLink")}
        )
    except (ValueError, ValidationError) as e:
        raise MalformedServerResponse(
            f"Could not parse list page from {url}: {e}", url=url, body=response.body
        ) from e

    return Page(
        items=result.value,
        next_cursor=result.next_link or None,
        response=response,
    )


class ArmPageRequests:
    """Builds and parses the requests of one ARM list operation.

    The first page is requested from `url`; every later page from the
    `nextLink` the server returned, forwarded verbatim.
    """

    def __init__(
        self,
        url: str,
        api_version: str | None = None,
        page_size_hint: int | None = None,
        data_key: str = "value",
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.url = url
        self.api_version = api_version
        self.page_size_hint = page_size_hint
        self.data_key = data_key
        self.headers = httpx.Headers(headers)

    def first_page_url(self) -> str:
        url = httpx.URL(self.url)
        params: dict[str, str] = {}
        if self.api_version and API_VERSION_PARAM not in url.params:
            params[API_VERSION_PARAM] = self.api_version
        if self.page_size_hint is not None:
            params[PAGE_SIZE_PARAM] = str(self.page_size_hint)
        return str(url.copy_merge_params(params)) if params else self.url

    def request_for(self, cursor: str | None) -> SendRequest:
        url = self.first_page_url() if cursor is None else cursor
        return SendRequest("GET", url, self.headers)

    def fetch_flow(self, cursor: str | None) -> Flow[Page[Any]]:
        request = self.request_for(cursor)
        response: TransportResponse = yield request
        raise_for_response(response, request.method, request.url)
        return parse_list_page(response, request.url, self.data_key)


class ArmPageFetcher(ArmPageRequests):
    def __init__(self, transport: Transport, url: str, **kwargs: Any) -> None:
        super().__init__(url, **kwargs)
        self._transport = transport

    def __call__(self, cursor: str | None) -> Page[Any]:
        return run_sync(self.fetch_flow(cursor), self._transport)


class AsyncArmPageFetcher(ArmPageRequests):
    def __init__(self, transport: AsyncTransport, url: str, **kwargs: Any) -> None:
        super().__init__(url, **kwargs)
        self._transport = transport

    async def __call__(self, cursor: str | None) -> Page[Any]:
        return await run_async(self.fetch_flow(cursor), self._transport)
