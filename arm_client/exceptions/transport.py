from arm_client.exceptions.base import ArmClientError, ErrorKind


class TransientTransportError(ArmClientError):
    kind = ErrorKind.TRANSIENT_TRANSPORT
    retryable = True

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.retry_after = retry_after


class UnexpectedResponseError(ArmClientError):
    kind = ErrorKind.UNEXPECTED_RESPONSE

    def __init__(self, message: str, url: str, status_code: int, body: bytes) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.body = body
