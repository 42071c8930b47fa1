from enum import Enum


class ErrorKind(str, Enum):
    TRANSIENT_TRANSPORT = "transient_transport"
    UNEXPECTED_RESPONSE = "unexpected_response"
    OPERATION_FAILED = "operation_failed"
    STATUS_URL_UNREACHABLE = "status_url_unreachable"
    CANCELLED = "cancelled"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    MALFORMED_RESPONSE = "malformed_response"


class ArmClientError(Exception):
    """Base for every error raised by arm_client.

    `kind` lets callers pick a recovery strategy without matching on the
    exception class, `retryable` tells whether re-issuing the same step is safe.
    """

    kind: ErrorKind
    retryable: bool = False
