from typing import TYPE_CHECKING

from arm_client.exceptions.base import ArmClientError, ErrorKind

if TYPE_CHECKING:
    from arm_client.core.models import OperationState


class OperationFailed(ArmClientError):
    """The remote operation reached a failed or canceled terminal state."""

    kind = ErrorKind.OPERATION_FAILED

    def __init__(
        self,
        status_url: str,
        state: "OperationState",
        payload: bytes,
        message: str | None = None,
    ) -> None:
        super().__init__(
            message or f"Operation at {status_url} finished with state {state.value}"
        )
        self.status_url = status_url
        self.state = state
        self.payload = payload


class StatusUrlUnreachable(OperationFailed):
    kind = ErrorKind.STATUS_URL_UNREACHABLE


class OperationCancelled(ArmClientError):
    """The caller abandoned the wait; the remote end state is unknown."""

    kind = ErrorKind.CANCELLED

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or "Operation was cancelled by the caller")
        self.reason = reason


class DeadlineExceeded(OperationCancelled):
    kind = ErrorKind.DEADLINE_EXCEEDED

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or "Deadline exceeded")


class MalformedServerResponse(ArmClientError):
    kind = ErrorKind.MALFORMED_RESPONSE

    def __init__(self, message: str, url: str | None = None, body: bytes = b"") -> None:
        super().__init__(message)
        self.url = url
        self.body = body
