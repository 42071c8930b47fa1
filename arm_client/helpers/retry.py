import asyncio
import time
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Generator, Iterable, Mapping, Union

import httpx

from arm_client.utils.backoff import (
    MAX_BACKOFF_WAIT_IN_SECONDS,
    RETRY_AFTER_HEADER,
    exponential_backoff,
    get_retry_after,
)

# POST is left out: starting an operation twice is not safe
IDEMPOTENT_METHODS = frozenset(["HEAD", "GET", "PUT", "DELETE", "OPTIONS", "TRACE"])
RETRYABLE_STATUS_CODES = frozenset(
    [
        HTTPStatus.TOO_MANY_REQUESTS,
        HTTPStatus.INTERNAL_SERVER_ERROR,
        HTTPStatus.BAD_GATEWAY,
        HTTPStatus.SERVICE_UNAVAILABLE,
        HTTPStatus.GATEWAY_TIMEOUT,
    ]
)

RetryOutcome = Union[httpx.Response, httpx.HTTPError]
RetryFlow = Generator[Union[httpx.Request, float], Any, httpx.Response]


@dataclass(frozen=True)
class RetryConfig:
    """
    Retry behaviour of a RetryTransport.

    Args:
        max_attempts: Retries allowed after the first attempt
        max_backoff_wait: Upper bound, in seconds, of any single wait
        base_delay: First exponential backoff delay in seconds
        jitter_ratio: Random spread applied to backoff delays (0-0.5)
        respect_retry_after_header: Prefer the server's wait hint over backoff
        retryable_methods: Methods retried without an explicit opt-in
        retry_after_headers: Headers holding the wait hint, checked in order
        additional_retry_status_codes: Retried on top of 429 and 5xx gateway errors
    """

    max_attempts: int = 10
    max_backoff_wait: float = MAX_BACKOFF_WAIT_IN_SECONDS
    base_delay: float = 0.1
    jitter_ratio: float = 0.1
    respect_retry_after_header: bool = True
    retryable_methods: Iterable[str] = IDEMPOTENT_METHODS
    retry_after_headers: Iterable[str] = (RETRY_AFTER_HEADER,)
    additional_retry_status_codes: Iterable[int] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not 0 <= self.jitter_ratio <= 0.5:
            raise ValueError(
                f"Jitter ratio should be between 0 and 0.5, actual {self.jitter_ratio}"
            )
        object.__setattr__(
            self,
            "retryable_methods",
            frozenset(method.upper() for method in self.retryable_methods),
        )
        object.__setattr__(self, "retry_after_headers", tuple(self.retry_after_headers))
        object.__setattr__(
            self,
            "additional_retry_status_codes",
            frozenset(self.additional_retry_status_codes),
        )

    @property
    def retry_status_codes(self) -> frozenset[int]:
        return RETRYABLE_STATUS_CODES | frozenset(self.additional_retry_status_codes)


# Adapted from https://github.com/encode/httpx/issues/108#issuecomment-1434439481
class RetryTransport(httpx.AsyncBaseTransport, httpx.BaseTransport):
    """
    An httpx transport that retries idempotent requests with exponential backoff
    on throttling and server errors, honoring Retry-After when present.

    This is an explicit, opt-in policy. The polling and paging core never
    retries on its own; wrap the client's transport with this class to get
    retries below it. A request outside `retryable_methods` can still opt in
    with ``extensions={"retryable": True}``.
    """

    def __init__(
        self,
        wrapped_transport: Union[httpx.BaseTransport, httpx.AsyncBaseTransport],
        retry_config: RetryConfig | None = None,
        logger: Any | None = None,
    ) -> None:
        self._wrapped_transport = wrapped_transport
        self._retry_config = retry_config or RetryConfig()
        self._logger = logger

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        sync_transport: httpx.BaseTransport = self._wrapped_transport  # type: ignore[assignment]
        if not self._is_retryable_method(request):
            return sync_transport.handle_request(request)

        flow = self._retry_flow(request)
        previous: httpx.Response | None = None
        try:
            step = next(flow)
            while True:
                if isinstance(step, float):
                    if previous is not None:
                        previous.close()
                    time.sleep(step)
                    step = flow.send(None)
                    continue
                outcome: RetryOutcome
                try:
                    outcome = sync_transport.handle_request(step)
                except httpx.HTTPError as e:
                    outcome = e
                previous = outcome if isinstance(outcome, httpx.Response) else None
                step = flow.send(outcome)
        except StopIteration as stop:
            return stop.value

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        async_transport: httpx.AsyncBaseTransport = self._wrapped_transport  # type: ignore[assignment]
        if not self._is_retryable_method(request):
            return await async_transport.handle_async_request(request)

        flow = self._retry_flow(request)
        previous: httpx.Response | None = None
        try:
            step = next(flow)
            while True:
                if isinstance(step, float):
                    if previous is not None:
                        await previous.aclose()
                    await asyncio.sleep(step)
                    step = flow.send(None)
                    continue
                outcome: RetryOutcome
                try:
                    outcome = await async_transport.handle_async_request(step)
                except httpx.HTTPError as e:
                    outcome = e
                previous = outcome if isinstance(outcome, httpx.Response) else None
                step = flow.send(outcome)
        except StopIteration as stop:
            return stop.value

    def close(self) -> None:
        self._wrapped_transport.close()  # type: ignore[union-attr]

    async def aclose(self) -> None:
        await self._wrapped_transport.aclose()  # type: ignore[union-attr,misc]

    def _retry_flow(self, request: httpx.Request) -> RetryFlow:
        """Yields the request to send, then either returns or yields a sleep."""
        retries = 0
        while True:
            outcome: RetryOutcome = yield request
            exhausted = retries >= self._retry_config.max_attempts
            if isinstance(outcome, httpx.Response):
                outcome.request = request
                if exhausted or not self._should_retry(outcome):
                    return outcome
                hint_headers: Mapping[str, str] = outcome.headers
            else:
                if exhausted:
                    self._log("error", f"{self._describe(request, outcome)}, giving up")
                    raise outcome
                hint_headers = {}

            retries += 1
            delay = float(self._calculate_sleep(retries, hint_headers))
            self._log(
                "warning",
                f"{self._describe(request, outcome)}, retry {retries}/"
                f"{self._retry_config.max_attempts} in {delay} seconds",
            )
            yield delay

    def _is_retryable_method(self, request: httpx.Request) -> bool:
        if request.extensions.get("retryable", False):
            return True
        return request.method in self._retry_config.retryable_methods

    def _should_retry(self, response: httpx.Response) -> bool:
        return response.status_code in self._retry_config.retry_status_codes

    def _calculate_sleep(self, retries: int, headers: Mapping[str, str]) -> float:
        config = self._retry_config
        if config.respect_retry_after_header:
            hint = get_retry_after(headers, config.retry_after_headers)
            if hint is not None:
                return min(hint, config.max_backoff_wait)
        return exponential_backoff(
            retries, config.base_delay, config.jitter_ratio, config.max_backoff_wait
        )

    @staticmethod
    def _describe(request: httpx.Request, outcome: RetryOutcome) -> str:
        prefix = f"Request {request.method} {request.url}"
        if isinstance(outcome, httpx.Response):
            return f"{prefix} returned status code {outcome.status_code}"
        if isinstance(outcome, httpx.ConnectTimeout):
            return f"{prefix} timed out connecting: {outcome}"
        if isinstance(outcome, httpx.TimeoutException):
            return f"{prefix} timed out: {outcome}"
        return f"{prefix} failed with {type(outcome).__name__}: {str(outcome) or 'no message'}"

    def _log(self, level: str, message: str) -> None:
        if self._logger is not None:
            getattr(self._logger, level)(message)
