from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    model_config = ConfigDict(extra="allow")

    code: str | None = None
    message: str | None = None
    target: str | None = None
    details: list["ErrorDetail"] = Field(default_factory=list)


class OperationStatus(BaseModel):
    """Body of an Azure-AsyncOperation status resource."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str | None = None
    name: str | None = None
    status: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    error: ErrorDetail | None = None

    @property
    def provisioning_state(self) -> str | None:
        if self.status:
            return self.status
        state = self.properties.get("provisioningState")
        return str(state) if state is not None else None


class ListResult(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    value: list[Any] = Field(default_factory=list)
    next_link: str | None = Field(default=None, alias="nextLink")
