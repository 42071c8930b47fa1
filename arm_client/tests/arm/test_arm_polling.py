import json

import httpx
import pytest

from arm_client.arm.polling import (
    get_status_url,
    json_projector,
    parse_operation_error,
    provisioning_state_classifier,
)
from arm_client.core.models import OperationState


@pytest.mark.parametrize(
    "body, expected",
    [
        ({"status": "Succeeded"}, OperationState.SUCCEEDED),
        ({"status": "InProgress"}, OperationState.RUNNING),
        ({"status": "Failed"}, OperationState.FAILED),
        ({"status": "Canceled"}, OperationState.CANCELED),
        ({"status": "Cancelled"}, OperationState.CANCELED),
        ({"properties": {"provisioningState": "Creating"}}, OperationState.RUNNING),
        ({"properties": {"provisioningState": "succeeded"}}, OperationState.SUCCEEDED),
        ({"id": "/subscriptions/1/resourceGroups/rg"}, OperationState.SUCCEEDED),
    ],
)
def test_provisioning_state_classifier(body: dict, expected: OperationState) -> None:
    assert provisioning_state_classifier(json.dumps(body).encode()) is expected


def test_empty_body_is_succeeded() -> None:
    assert provisioning_state_classifier(b"") is OperationState.SUCCEEDED
    assert json_projector(b"") is None


def test_non_json_body_is_rejected() -> None:
    with pytest.raises(ValueError):
        provisioning_state_classifier(b"<html/>")


def test_get_status_url_prefers_async_operation_header() -> None:
    headers = httpx.Headers(
        {
            "Location": "https://management.azure.com/location",
            "Azure-AsyncOperation": "https://management.azure.com/async",
        }
    )

    assert get_status_url(headers, "fallback") == "https://management.azure.com/async"
    assert (
        get_status_url({"location": "https://management.azure.com/location"}, "x")
        == "https://management.azure.com/location"
    )
    assert get_status_url({}, "https://resource") == "https://resource"


def test_parse_operation_error() -> None:
    payload = json.dumps(
        {
            "status": "Failed",
            "error": {
                "code": "QuotaExceeded",
                "message": "Operation could not be completed",
                "details": [{"code": "Inner", "message": "vCPU limit"}],
            },
        }
    ).encode()

    error = parse_operation_error(payload)

    assert error is not None
    assert error.code == "QuotaExceeded"
    assert error.details[0].message == "vCPU limit"


def test_parse_operation_error_from_properties() -> None:
    payload = json.dumps(
        {"properties": {"provisioningState": "Failed", "error": {"code": "Conflict"}}}
    ).encode()

    error = parse_operation_error(payload)

    assert error is not None and error.code == "Conflict"


@pytest.mark.parametrize("payload", [b"", b"not json", b"[]", b'{"status": "Failed"}'])
def test_parse_operation_error_without_error(payload: bytes) -> None:
    assert parse_operation_error(payload) is None
