import json
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from arm_client.core.models import OperationState, TransportResponse


@dataclass
class RecordedRequest:
    method: str
    url: str
    headers: httpx.Headers
    body: bytes | None


class ScriptedTransport:
    """Replays a fixed list of responses or exceptions and records every request."""

    def __init__(self, *outcomes: TransportResponse | Exception) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[RecordedRequest] = []

    def _next_outcome(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None,
        body: bytes | None,
    ) -> TransportResponse:
        self.requests.append(
            RecordedRequest(method, url, httpx.Headers(headers), body)
        )
        if not self.outcomes:
            raise AssertionError(f"Unexpected request {method} {url}")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
    ) -> TransportResponse:
        return self._next_outcome(method, url, headers, body)


class AsyncScriptedTransport(ScriptedTransport):
    async def send(  # type: ignore[override]
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
    ) -> TransportResponse:
        return self._next_outcome(method, url, headers, body)


def json_response(
    body: Any, status_code: int = 200, headers: Mapping[str, str] | None = None
) -> TransportResponse:
    return TransportResponse(
        status_code=status_code,
        headers=httpx.Headers(headers),
        body=json.dumps(body).encode("utf-8"),
    )


def status_payload(status: str, **extra: Any) -> bytes:
    return json.dumps({"status": status, **extra}).encode("utf-8")


def status_response(
    status: str, retry_after: str | None = None, **extra: Any
) -> TransportResponse:
    headers = {"Retry-After": retry_after} if retry_after is not None else {}
    return json_response({"status": status, **extra}, headers=headers)


def status_classifier(payload: bytes) -> OperationState:
    return OperationState(json.loads(payload)["status"])


def name_projector(payload: bytes) -> str:
    return json.loads(payload)["name"]
