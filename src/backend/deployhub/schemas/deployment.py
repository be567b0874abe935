"""Pydantic request/response schemas for the deployments API.

The wire contract is camelCase; Python attributes stay snake_case.
Secret values are SecretStr so they never show up in reprs, logs or
validation error messages.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator
from pydantic.alias_generators import to_camel

from deployhub.models.deployment import DEFAULT_RESOURCES, Deployment, DeploymentStatus

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_RESERVED_LABELS = frozenset({"app", "deployment-id"})

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResourceSpec(CamelModel):
    cpu_request_millicores: int = Field(DEFAULT_RESOURCES["cpu_request_millicores"], gt=0)
    cpu_limit_millicores: int = Field(DEFAULT_RESOURCES["cpu_limit_millicores"], gt=0)
    memory_request_mb: int = Field(DEFAULT_RESOURCES["memory_request_mb"], gt=0)
    memory_limit_mb: int = Field(DEFAULT_RESOURCES["memory_limit_mb"], gt=0)

    @model_validator(mode="after")
    def requests_within_limits(self) -> ResourceSpec:
        if self.cpu_request_millicores > self.cpu_limit_millicores:
            msg = "cpuRequestMillicores must not exceed cpuLimitMillicores"
            raise ValueError(msg)
        if self.memory_request_mb > self.memory_limit_mb:
            msg = "memoryRequestMb must not exceed memoryLimitMb"
            raise ValueError(msg)
        return self


def _check_env_keys(keys, field_name: str) -> None:
    bad = [k for k in keys if not _ENV_KEY_RE.match(k)]
    if bad:
        msg = f"{field_name} keys must be valid environment variable names: {bad}"
        raise ValueError(msg)


class CreateDeploymentRequest(CamelModel):
    name: str = Field(min_length=1, max_length=128)
    image: str = Field(min_length=1, max_length=512)
    replicas: int = Field(1, ge=1)
    port: int = Field(ge=1, le=65535)
    env_vars: dict[str, str] | None = None
    secrets: dict[str, SecretStr] | None = None
    resources: ResourceSpec | None = None
    labels: dict[str, str] | None = None
    node_selector: dict[str, str] | None = None
    subdomain: str | None = Field(None, min_length=1, max_length=63)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not _NAME_RE.match(v):
            msg = "name must start with a letter or digit and contain only letters, digits, '-', '_' or '.'"
            raise ValueError(msg)
        return v

    @field_validator("env_vars")
    @classmethod
    def validate_env_vars(cls, v: dict[str, str] | None) -> dict[str, str] | None:
        if v:
            _check_env_keys(v, "envVars")
        return v

    @field_validator("secrets")
    @classmethod
    def validate_secrets(cls, v: dict[str, SecretStr] | None) -> dict[str, SecretStr] | None:
        if v:
            _check_env_keys(v, "secrets")
        return v

    @field_validator("labels")
    @classmethod
    def validate_labels(cls, v: dict[str, str] | None) -> dict[str, str] | None:
        if v and _RESERVED_LABELS & set(v):
            msg = f"labels must not override reserved keys {sorted(_RESERVED_LABELS)}"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def env_and_secrets_disjoint(self) -> CreateDeploymentRequest:
        overlap = set(self.env_vars or {}) & set(self.secrets or {})
        if overlap:
            msg = f"keys defined both as envVars and secrets: {sorted(overlap)}"
            raise ValueError(msg)
        return self

    def plain_secrets(self) -> dict[str, str]:
        return {key: value.get_secret_value() for key, value in (self.secrets or {}).items()}


class ScaleDeploymentRequest(CamelModel):
    replicas: int = Field(ge=1)


class DeploymentResponse(CamelModel):
    id: str
    project_id: str
    name: str
    image: str
    status: DeploymentStatus
    replicas: int
    resources: ResourceSpec
    external_url: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Deployment, external_url: str | None = None) -> DeploymentResponse:
        return cls(
            id=str(row.id),
            project_id=str(row.project_id),
            name=row.name,
            image=row.image,
            status=DeploymentStatus(row.status),
            replicas=row.replicas,
            resources=ResourceSpec.model_validate(row.resources),
            external_url=external_url,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


class DeploymentDetailResponse(DeploymentResponse):
    env_vars: dict[str, str]
    labels: dict[str, str] | None = None
    node_selector: dict[str, str] | None = None
    secret_keys: list[str]
    ready_replicas: int | None = None
    cluster_namespace: str


class DeploymentEventResponse(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    event_type: str
    message: str | None
    created_at: datetime


class ListResponse(CamelModel, Generic[T]):
    data: list[T]
    total: int


class MessageResponse(CamelModel):
    message: str
