from .arm.client import ArmClient, AsyncArmClient
from .core.models import OperationSnapshot, OperationState, Page, TransportResponse
from .core.paging import (
    END_OF_SEQUENCE,
    AsyncPagedSequence,
    PagedSequence,
    start_async_paged_sequence,
    start_paged_sequence,
)
from .core.polling import (
    AsyncLROPoller,
    LROPoller,
    OperationHandle,
    start_async_poller,
    start_poller,
)
from .core.transport import AsyncHttpxTransport, HttpxTransport
from .exceptions.base import ArmClientError, ErrorKind
from .exceptions.operations import (
    DeadlineExceeded,
    MalformedServerResponse,
    OperationCancelled,
    OperationFailed,
    StatusUrlUnreachable,
)
from .exceptions.transport import TransientTransportError, UnexpectedResponseError
from .helpers.async_client import create_async_transport, create_transport
from .helpers.retry import RetryConfig, RetryTransport
from .utils.cancellation import CancellationToken
from .version import __version__


__all__ = [
    "ArmClient",
    "ArmClientError",
    "AsyncArmClient",
    "AsyncHttpxTransport",
    "AsyncLROPoller",
    "AsyncPagedSequence",
    "CancellationToken",
    "DeadlineExceeded",
    "END_OF_SEQUENCE",
    "ErrorKind",
    "HttpxTransport",
    "LROPoller",
    "MalformedServerResponse",
    "OperationCancelled",
    "OperationFailed",
    "OperationHandle",
    "OperationSnapshot",
    "OperationState",
    "Page",
    "PagedSequence",
    "RetryConfig",
    "RetryTransport",
    "StatusUrlUnreachable",
    "TransientTransportError",
    "TransportResponse",
    "UnexpectedResponseError",
    "create_async_transport",
    "create_transport",
    "start_async_paged_sequence",
    "start_async_poller",
    "start_paged_sequence",
    "start_poller",
    "__version__",
]
