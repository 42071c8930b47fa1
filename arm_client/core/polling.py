"""
Long-running operation polling.

`OperationHandle` owns the state of one remote asynchronous task and the flows
that advance it. `LROPoller` and `AsyncLROPoller` bind a handle to a transport
and run those flows for blocking and asyncio callers respectively.

Poll steps on one handle must be issued sequentially; concurrent calls on the
same handle are undefined. Observers on other threads or tasks should use
`snapshot()` rather than share the handle.
"""

from typing import Any, Callable, Generic, Mapping, TypeVar

import httpx
from loguru import logger

from arm_client.config.settings import get_settings
from arm_client.core.effects import Flow, SendRequest, Sleep
from arm_client.core.models import OperationSnapshot, OperationState, TransportResponse
from arm_client.core.runner import run_async, run_sync
from arm_client.core.transport import (
    NOT_FOUND_STATUS_CODES,
    AsyncTransport,
    Transport,
    raise_for_response,
)
from arm_client.exceptions.operations import (
    MalformedServerResponse,
    OperationFailed,
    StatusUrlUnreachable,
)
from arm_client.exceptions.transport import TransientTransportError
from arm_client.utils.backoff import get_retry_after, polling_delay
from arm_client.utils.cancellation import CancellationToken

T = TypeVar("T")

Classifier = Callable[[bytes], OperationState]
Projector = Callable[[bytes], T]

ACCEPTED_STATUS_CODE = 202


class OperationHandle(Generic[T]):
    def __init__(
        self,
        status_url: str,
        initial_payload: bytes,
        classifier: Classifier,
        projector: Projector[T],
        *,
        initial_status_code: int = 200,
        initial_headers: Mapping[str, str] | None = None,
        operation_id: str | None = None,
        polling_interval: float | None = None,
        max_retry_after: float | None = None,
        min_polling_interval: float | None = None,
        not_found_threshold: int | None = None,
        request_headers: Mapping[str, str] | None = None,
    ) -> None:
        settings = get_settings()
        self._status_url = status_url
        self._classifier = classifier
        self._projector = projector
        self.operation_id = operation_id or status_url
        self.polling_interval = (
            settings.polling_interval if polling_interval is None else polling_interval
        )
        self.max_retry_after = (
            settings.max_retry_after if max_retry_after is None else max_retry_after
        )
        self.min_polling_interval = (
            settings.min_polling_interval
            if min_polling_interval is None
            else min_polling_interval
        )
        self.not_found_threshold = (
            settings.not_found_threshold
            if not_found_threshold is None
            else not_found_threshold
        )
        self._request_headers = httpx.Headers(request_headers)
        self._logger = logger.bind(
            status_url=status_url, operation_id=self.operation_id
        )

        self._state = OperationState.RUNNING
        self._result: T | None = None
        self._retry_after: float | None = None
        self._not_found_polls = 0
        self._unreachable = False

        initial_response = TransportResponse(
            status_code=initial_status_code,
            headers=httpx.Headers(initial_headers),
            body=initial_payload,
        )
        state, result = self._evaluate(initial_response)
        self._commit(initial_response, state, result)

    @property
    def status_url(self) -> str:
        return self._status_url

    @property
    def state(self) -> OperationState:
        return self._state

    @property
    def last_status_payload(self) -> bytes:
        return self._last_response.body

    @property
    def last_response(self) -> TransportResponse:
        return self._last_response

    @property
    def retry_after(self) -> float | None:
        return self._retry_after

    @property
    def result_value(self) -> T | None:
        return self._result

    @property
    def has_completed(self) -> bool:
        return self._state.is_terminal

    @property
    def has_value(self) -> bool:
        return self._state is OperationState.SUCCEEDED

    def snapshot(self) -> OperationSnapshot:
        return OperationSnapshot(
            status_url=self._status_url,
            state=self._state,
            last_status_payload=self.last_status_payload,
            retry_after=self._retry_after,
            operation_id=self.operation_id,
            result_value=self._result,
        )

    def next_delay(self, polling_interval: float | None = None) -> float:
        return polling_delay(
            self._retry_after,
            self.polling_interval,
            self.max_retry_after,
            polling_interval,
            self.min_polling_interval,
        )

    def _evaluate(self, response: TransportResponse) -> tuple[OperationState, T | None]:
        # Classification and projection both happen before anything is
        # committed, so a bad payload leaves the handle untouched.
        if response.status_code == ACCEPTED_STATUS_CODE:
            return OperationState.RUNNING, None

        try:
            state = self._classifier(response.body)
        except MalformedServerResponse:
            raise
        except Exception as e:
            raise MalformedServerResponse(
                f"Could not classify status payload from {self._status_url}: {e}",
                url=self._status_url,
                body=response.body,
            ) from e
        if not isinstance(state, OperationState):
            raise MalformedServerResponse(
                f"Classifier returned {state!r} instead of an OperationState",
                url=self._status_url,
                body=response.body,
            )

        if state is not OperationState.SUCCEEDED:
            return state, None

        try:
            return state, self._projector(response.body)
        except MalformedServerResponse:
            raise
        except Exception as e:
            raise MalformedServerResponse(
                f"Could not project result payload from {self._status_url}: {e}",
                url=self._status_url,
                body=response.body,
            ) from e

    def _commit(
        self,
        response: TransportResponse,
        state: OperationState,
        result: T | None,
    ) -> None:
        previous_state = self._state
        self._last_response = response
        self._retry_after = get_retry_after(response.headers)
        self._state = state
        if state is OperationState.SUCCEEDED:
            self._result = result

        if state is not previous_state:
            self._logger.info(
                f"Operation {self.operation_id} moved from {previous_state.value} to {state.value}"
            )

    def _handle_not_found(self, response: TransportResponse) -> OperationState:
        self._not_found_polls += 1
        if self._not_found_polls < self.not_found_threshold:
            raise TransientTransportError(
                f"Status URL {self._status_url} returned {response.status_code}"
                f" ({self._not_found_polls}/{self.not_found_threshold})",
                url=self._status_url,
                status_code=response.status_code,
            )

        self._logger.error(
            f"Status URL {self._status_url} returned {response.status_code} for"
            f" {self._not_found_polls} consecutive polls, giving up on the operation"
        )
        self._unreachable = True
        self._commit(response, OperationState.FAILED, None)
        return self._state

    def poll_flow(self) -> Flow[OperationState]:
        """One status check. A terminal handle is returned as is, without I/O."""
        if self._state.is_terminal:
            return self._state

        response: TransportResponse = yield SendRequest(
            "GET", self._status_url, self._request_headers
        )
        if response.status_code in NOT_FOUND_STATUS_CODES:
            return self._handle_not_found(response)

        raise_for_response(response, "GET", self._status_url)
        self._not_found_polls = 0
        state, result = self._evaluate(response)
        self._commit(response, state, result)
        self._logger.debug(
            f"Polled {self._status_url}: {state.value}, retry after {self._retry_after}"
        )
        return state

    def wait_flow(self, polling_interval: float | None = None) -> Flow[T]:
        while not self._state.is_terminal:
            yield from self.poll_flow()
            if not self._state.is_terminal:
                yield Sleep(self.next_delay(polling_interval))
        return self._final_result()

    def wait_response_flow(
        self, polling_interval: float | None = None
    ) -> Flow[TransportResponse]:
        yield from self.wait_flow(polling_interval)
        return self._last_response

    def _final_result(self) -> T:
        if self._state is OperationState.SUCCEEDED:
            return self._result  # type: ignore[return-value]
        if self._unreachable:
            raise StatusUrlUnreachable(
                self._status_url,
                self._state,
                self.last_status_payload,
                f"Status URL {self._status_url} is no longer reachable",
            )
        raise OperationFailed(self._status_url, self._state, self.last_status_payload)


class LROPoller(OperationHandle[T]):
    """Drives an operation to completion from blocking code."""

    def __init__(
        self,
        transport: Transport,
        status_url: str,
        initial_payload: bytes,
        classifier: Classifier,
        projector: Projector[T],
        **options: Any,
    ) -> None:
        self._transport = transport
        super().__init__(status_url, initial_payload, classifier, projector, **options)

    @classmethod
    def from_response(
        cls,
        transport: Transport,
        response: TransportResponse,
        status_url: str,
        classifier: Classifier,
        projector: Projector[T],
        **options: Any,
    ) -> "LROPoller[T]":
        return cls(
            transport,
            status_url,
            response.body,
            classifier,
            projector,
            initial_status_code=response.status_code,
            initial_headers=response.headers,
            **options,
        )

    def poll_once(self, cancel_token: CancellationToken | None = None) -> OperationState:
        return run_sync(self.poll_flow(), self._transport, cancel_token)

    def wait_until_complete(
        self,
        cancel_token: CancellationToken | None = None,
        polling_interval: float | None = None,
    ) -> T:
        return run_sync(self.wait_flow(polling_interval), self._transport, cancel_token)

    def wait_until_complete_response(
        self,
        cancel_token: CancellationToken | None = None,
        polling_interval: float | None = None,
    ) -> TransportResponse:
        return run_sync(
            self.wait_response_flow(polling_interval), self._transport, cancel_token
        )


class AsyncLROPoller(OperationHandle[T]):
    """Drives an operation to completion from asyncio code."""

    def __init__(
        self,
        transport: AsyncTransport,
        status_url: str,
        initial_payload: bytes,
        classifier: Classifier,
        projector: Projector[T],
        **options: Any,
    ) -> None:
        self._transport = transport
        super().__init__(status_url, initial_payload, classifier, projector, **options)

    @classmethod
    def from_response(
        cls,
        transport: AsyncTransport,
        response: TransportResponse,
        status_url: str,
        classifier: Classifier,
        projector: Projector[T],
        **options: Any,
    ) -> "AsyncLROPoller[T]":
        return cls(
            transport,
            status_url,
            response.body,
            classifier,
            projector,
            initial_status_code=response.status_code,
            initial_headers=response.headers,
            **options,
        )

    async def poll_once(
        self, cancel_token: CancellationToken | None = None
    ) -> OperationState:
        return await run_async(self.poll_flow(), self._transport, cancel_token)

    async def wait_until_complete(
        self,
        cancel_token: CancellationToken | None = None,
        polling_interval: float | None = None,
    ) -> T:
        return await run_async(
            self.wait_flow(polling_interval), self._transport, cancel_token
        )

    async def wait_until_complete_response(
        self,
        cancel_token: CancellationToken | None = None,
        polling_interval: float | None = None,
    ) -> TransportResponse:
        return await run_async(
            self.wait_response_flow(polling_interval), self._transport, cancel_token
        )


def start_poller(
    transport: Transport,
    status_url: str,
    initial_payload: bytes,
    classifier: Classifier,
    projector: Projector[T],
    **options: Any,
) -> LROPoller[T]:
    return LROPoller(
        transport, status_url, initial_payload, classifier, projector, **options
    )


def start_async_poller(
    transport: AsyncTransport,
    status_url: str,
    initial_payload: bytes,
    classifier: Classifier,
    projector: Projector[T],
    **options: Any,
) -> AsyncLROPoller[T]:
    return AsyncLROPoller(
        transport, status_url, initial_payload, classifier, projector, **options
    )
