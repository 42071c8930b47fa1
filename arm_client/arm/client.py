import json
from typing import Any, Mapping

import httpx
from loguru import logger

from arm_client.arm.paging import (
    API_VERSION_PARAM,
    ArmPageFetcher,
    AsyncArmPageFetcher,
)
from arm_client.arm.polling import (
    get_status_url,
    json_projector,
    provisioning_state_classifier,
)
from arm_client.core.effects import Flow, SendRequest
from arm_client.core.models import TransportResponse
from arm_client.core.paging import AsyncPagedSequence, PagedSequence
from arm_client.core.polling import AsyncLROPoller, Classifier, LROPoller, Projector
from arm_client.core.runner import run_async, run_sync
from arm_client.core.transport import AsyncTransport, Transport, raise_for_response
from arm_client.utils.cancellation import CancellationToken

DEFAULT_BASE_URL = "https://management.azure.com"


class _ArmClientBase:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_version: str | None = None,
        headers: Mapping[str, str] | None = None,
        **poller_options: Any,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.headers = httpx.Headers(headers)
        self.poller_options = poller_options

    def resolve_url(self, url: str) -> str:
        if not url.startswith(("http://", "https://")):
            url = f"{self.base_url}/{url.lstrip('/')}"
        parsed = httpx.URL(url)
        if self.api_version and API_VERSION_PARAM not in parsed.params:
            parsed = parsed.copy_merge_params({API_VERSION_PARAM: self.api_version})
        return str(parsed)

    def build_request(self, method: str, url: str, body: Any = None) -> SendRequest:
        headers = self.headers.copy()
        content: bytes | None
        if body is None or isinstance(body, bytes):
            content = body
        else:
            content = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"
        return SendRequest(method.upper(), self.resolve_url(url), headers, content)

    def begin_flow(self, request: SendRequest) -> Flow[TransportResponse]:
        logger.info(f"Starting operation {request.method} {request.url}")
        response: TransportResponse = yield request
        raise_for_response(response, request.method, request.url)
        return response


class ArmClient(_ArmClientBase):
    """
    Issues the requests that start ARM operations and listings from blocking
    code and hands back pollers and paged sequences to drive them.
    """

    def __init__(self, transport: Transport, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._transport = transport

    def begin(
        self,
        method: str,
        url: str,
        body: Any = None,
        *,
        classifier: Classifier = provisioning_state_classifier,
        projector: Projector[Any] = json_projector,
        cancel_token: CancellationToken | None = None,
    ) -> LROPoller[Any]:
        request = self.build_request(method, url, body)
        response = run_sync(self.begin_flow(request), self._transport, cancel_token)
        return LROPoller.from_response(
            self._transport,
            response,
            get_status_url(response.headers, fallback=request.url),
            classifier,
            projector,
            request_headers=self.headers,
            **self.poller_options,
        )

    def list(
        self,
        url: str,
        *,
        data_key: str = "value",
        page_size_hint: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> PagedSequence[Any]:
        fetcher = ArmPageFetcher(
            self._transport,
            self.resolve_url(url),
            page_size_hint=page_size_hint,
            data_key=data_key,
            headers=self.headers,
        )
        first_page = run_sync(fetcher.fetch_flow(None), self._transport, cancel_token)
        return PagedSequence(fetcher, first_page=first_page)


class AsyncArmClient(_ArmClientBase):
    def __init__(self, transport: AsyncTransport, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._transport = transport

    async def begin(
        self,
        method: str,
        url: str,
        body: Any = None,
        *,
        classifier: Classifier = provisioning_state_classifier,
        projector: Projector[Any] = json_projector,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncLROPoller[Any]:
        request = self.build_request(method, url, body)
        response = await run_async(
            self.begin_flow(request), self._transport, cancel_token
        )
        return AsyncLROPoller.from_response(
            self._transport,
            response,
            get_status_url(response.headers, fallback=request.url),
            classifier,
            projector,
            request_headers=self.headers,
            **self.poller_options,
        )

    async def list(
        self,
        url: str,
        *,
        data_key: str = "value",
        page_size_hint: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncPagedSequence[Any]:
        fetcher = AsyncArmPageFetcher(
            self._transport,
            self.resolve_url(url),
            page_size_hint=page_size_hint,
            data_key=data_key,
            headers=self.headers,
        )
        first_page = await run_async(
            fetcher.fetch_flow(None), self._transport, cancel_token
        )
        return AsyncPagedSequence(fetcher, first_page=first_page)
