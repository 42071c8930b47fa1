import json
from typing import Any, Mapping

from pydantic import ValidationError

from arm_client.arm.models import ErrorDetail, OperationStatus
from arm_client.core.models import OperationState

AZURE_ASYNC_OPERATION_HEADER = "Azure-AsyncOperation"
LOCATION_HEADER = "Location"

_TERMINAL_STATES = {
    "succeeded": OperationState.SUCCEEDED,
    "failed": OperationState.FAILED,
    "canceled": OperationState.CANCELED,
    "cancelled": OperationState.CANCELED,
}


def _load_json(payload: bytes) -> Any:
    return json.loads(payload.decode("utf-8"))


def provisioning_state_classifier(payload: bytes) -> OperationState:
    """Classify an ARM status body by its `status` or `properties.provisioningState`.

    An empty body means the operation completed without content. Any state
    outside Succeeded/Failed/Canceled (Accepted, Creating, Deleting, ...) is
    still running.
    """
    if not payload.strip():
        return OperationState.SUCCEEDED

    status = OperationStatus.model_validate(_load_json(payload))
    provisioning_state = status.provisioning_state
    if provisioning_state is None:
        return OperationState.SUCCEEDED
    return _TERMINAL_STATES.get(provisioning_state.lower(), OperationState.RUNNING)


def json_projector(payload: bytes) -> Any:
    if not payload.strip():
        return None
    return _load_json(payload)


def get_status_url(headers: Mapping[str, str], fallback: str) -> str:
    """Status URL for an accepted operation, falling back to the resource URL."""
    lowered = {key.lower(): value for key, value in headers.items()}
    for header_name in (AZURE_ASYNC_OPERATION_HEADER, LOCATION_HEADER):
        if url := lowered.get(header_name.lower()):
            return url
    return fallback


def parse_operation_error(payload: bytes) -> ErrorDetail | None:
    try:
        body = _load_json(payload)
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None

    error = body.get("error")
    if error is None and isinstance(body.get("properties"), dict):
        error = body["properties"].get("error")
    if not isinstance(error, dict):
        return None

    try:
        return ErrorDetail.model_validate(error)
    except ValidationError:
        return None
