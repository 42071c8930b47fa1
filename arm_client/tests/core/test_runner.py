import pytest

from arm_client.core.effects import Flow, SendRequest, Sleep
from arm_client.core.models import TransportResponse
from arm_client.core.runner import run_async, run_sync
from arm_client.exceptions.transport import TransientTransportError
from arm_client.tests.helpers.fake_transport import (
    AsyncScriptedTransport,
    ScriptedTransport,
)


def retrying_flow(attempts: int) -> Flow[int]:
    """Sends until a request succeeds, counting the transient failures."""
    failures = 0
    for _ in range(attempts):
        try:
            response = yield SendRequest("GET", "https://example.com/status")
        except TransientTransportError:
            failures += 1
            yield Sleep(0)
            continue
        return response.status_code * 10 + failures
    raise RuntimeError("out of attempts")


def test_run_sync_feeds_outcomes_and_throws_failures_into_the_flow() -> None:
    transport = ScriptedTransport(
        TransientTransportError("reset"), TransportResponse(status_code=200)
    )

    assert run_sync(retrying_flow(3), transport) == 2001
    assert len(transport.requests) == 2


def test_run_sync_propagates_unhandled_failures() -> None:
    def flow() -> Flow[TransportResponse]:
        response = yield SendRequest("GET", "https://example.com/status")
        return response

    transport = ScriptedTransport(TransientTransportError("reset"))

    with pytest.raises(TransientTransportError):
        run_sync(flow(), transport)


def test_run_sync_requires_a_transport_for_requests() -> None:
    def flow() -> Flow[None]:
        yield SendRequest("GET", "https://example.com")

    with pytest.raises(TypeError):
        run_sync(flow())


def test_flow_without_effects_returns_immediately() -> None:
    def flow() -> Flow[str]:
        return "done"
        yield  # pragma: no cover

    assert run_sync(flow()) == "done"


@pytest.mark.asyncio
async def test_run_async_drives_the_same_flow() -> None:
    transport = AsyncScriptedTransport(
        TransientTransportError("reset"),
        TransientTransportError("reset"),
        TransportResponse(status_code=204),
    )

    assert await run_async(retrying_flow(3), transport) == 2042
    assert len(transport.requests) == 3
