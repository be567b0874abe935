"""Messages pushed over the live-status channel, tagged by ``type``."""

from typing import Annotated, Literal

from pydantic import Field, TypeAdapter

from deployhub.schemas.deployment import CamelModel


class WorkloadCondition(CamelModel):
    type: str
    status: str
    reason: str | None = None
    message: str | None = None


class PodInfo(CamelModel):
    name: str
    phase: str
    ready: bool
    restarts: int
    node: str | None = None


class StatusMessage(CamelModel):
    type: Literal["status"] = "status"
    replicas: int
    ready_replicas: int
    available_replicas: int
    conditions: list[WorkloadCondition] = []


class PodStatusMessage(CamelModel):
    type: Literal["podStatus"] = "podStatus"
    pods: list[PodInfo] = []


class LogsMessage(CamelModel):
    # Reserved for client-requested log tailing; not emitted yet.
    type: Literal["logs"] = "logs"
    pod_name: str
    logs: str


class ErrorMessage(CamelModel):
    type: Literal["error"] = "error"
    message: str


LiveStatusMessage = Annotated[
    StatusMessage | PodStatusMessage | LogsMessage | ErrorMessage,
    Field(discriminator="type"),
]

live_status_adapter: TypeAdapter[LiveStatusMessage] = TypeAdapter(LiveStatusMessage)
