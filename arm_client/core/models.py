from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Sequence, TypeVar

import httpx

T = TypeVar("T")


class OperationState(str, Enum):
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    CANCELED = "Canceled"

    @property
    def is_terminal(self) -> bool:
        return self is not OperationState.RUNNING


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> "TransportResponse":
        return cls(
            status_code=response.status_code,
            headers=response.headers,
            body=response.content,
        )

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class Page(Generic[T]):
    """One fetched batch of a list operation.

    A page whose `next_cursor` is None is the last one, even when empty.
    """

    items: Sequence[T]
    next_cursor: str | None = None
    response: TransportResponse | None = None

    @property
    def is_last(self) -> bool:
        return self.next_cursor is None


@dataclass(frozen=True)
class OperationSnapshot:
    """Immutable copy of an operation handle, safe to hand to other observers."""

    status_url: str
    state: OperationState
    last_status_payload: bytes
    retry_after: float | None
    operation_id: str
    result_value: Any = None
