from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator

ContainerStatus = Literal["creating", "running", "stopped", "error"]


class Container(BaseModel):
    """Container record as held by the session state store.

    Records are immutable; the store swaps in updated copies.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str = ""
    image: str = ""
    status: ContainerStatus = "running"
    created_at: str | None = None
    ip_address: str | None = None
    db_id: str | None = None
    user_id: str | None = None
    last_used_at: str | None = None
    idle_seconds: int | None = None

    @property
    def is_running(self) -> bool:
        return self.status == "running"

    @property
    def is_stopped(self) -> bool:
        return self.status == "stopped"


class CreatingContainer(BaseModel):
    """Transient record for the creation currently in flight."""

    model_config = ConfigDict(frozen=True)

    name: str
    image: str
    progress: int = 0
    message: str = ""
    stage: str = "initializing"


class ProgressEvent(BaseModel):
    """One frame of the container creation progress stream.

    Numeric ids are accepted as strings, and explicit nulls fall back to the
    field default, so a loosely typed frame is not dropped.
    """

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    stage: str = ""
    message: str = ""
    progress: float = 0
    detail: str | None = None
    error: str | None = None
    complete: bool = False
    container_id: str | None = None

    @field_validator("stage", "message", "progress", "complete", mode="before")
    @classmethod
    def _null_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return cls.model_fields[info.field_name].default
        return value

    @property
    def is_terminal(self) -> bool:
        """Whether this event ends the creation (success or failure)."""
        return bool(self.complete and self.container_id) or bool(self.error)


class ContainersResponse(BaseModel):
    """API response for the container listing."""

    containers: list[Container] = []
    count: int = 0
    limit: int | None = None


class StartContainerResponse(BaseModel):
    """API response for a start request."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    status: str | None = None
    recreated: bool = False


@dataclass(frozen=True)
class StartResult:
    """Outcome of starting a container.

    ``container_id`` differs from the requested id when the server recreated
    the container.
    """

    container_id: str
    recreated: bool = False


__all__ = [
    "ContainerStatus",
    "Container",
    "CreatingContainer",
    "ProgressEvent",
    "ContainersResponse",
    "StartContainerResponse",
    "StartResult",
]
