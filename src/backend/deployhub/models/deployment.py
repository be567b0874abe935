"""SQLAlchemy ORM models for deployments, their encrypted secrets and audit events."""

import enum
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from deployhub.models.base import Base, JSONType, UUIDType, new_id, utcnow


class DeploymentStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TERMINATED = "terminated"

    def can_transition_to(self, target: "DeploymentStatus") -> bool:
        return target in _TRANSITIONS[self]


# Monotonic lifecycle: a status is never reverted, only advanced.
_TRANSITIONS: dict[DeploymentStatus, frozenset[DeploymentStatus]] = {
    DeploymentStatus.PENDING: frozenset({DeploymentStatus.RUNNING, DeploymentStatus.FAILED}),
    DeploymentStatus.RUNNING: frozenset(
        {DeploymentStatus.SUCCEEDED, DeploymentStatus.FAILED, DeploymentStatus.TERMINATED}
    ),
    DeploymentStatus.SUCCEEDED: frozenset({DeploymentStatus.TERMINATED}),
    DeploymentStatus.FAILED: frozenset({DeploymentStatus.TERMINATED}),
    DeploymentStatus.TERMINATED: frozenset(),
}

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in DeploymentStatus)

DEFAULT_RESOURCES = {
    "cpu_request_millicores": 250,
    "cpu_limit_millicores": 500,
    "memory_request_mb": 256,
    "memory_limit_mb": 512,
}


class Deployment(Base):
    __tablename__ = "deployments"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_deployments_project_name"),
        CheckConstraint("replicas >= 1", name="ck_deployments_replicas"),
    )

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=new_id)
    owner_id: Mapped[str] = mapped_column(UUIDType, nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(
        UUIDType, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    image: Mapped[str] = mapped_column(Text, nullable=False)
    env_vars: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    replicas: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    resources: Mapped[dict] = mapped_column(
        JSONType, nullable=False, default=lambda: dict(DEFAULT_RESOURCES)
    )
    labels: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    node_selector: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    status: Mapped[str] = mapped_column(
        Text,
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_deployments_status"),
        nullable=False,
        default=DeploymentStatus.PENDING.value,
        index=True,
    )
    cluster_namespace: Mapped[str] = mapped_column(String(128), nullable=False, default="default")
    cluster_resource_name: Mapped[str] = mapped_column(String(192), nullable=False)
    container_port: Mapped[int] = mapped_column(Integer, nullable=False)
    external_host: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class DeploymentSecret(Base):
    __tablename__ = "deployment_secrets"
    __table_args__ = (
        UniqueConstraint("deployment_id", "key", name="uq_deployment_secrets_deployment_key"),
    )

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=new_id)
    deployment_id: Mapped[str] = mapped_column(
        UUIDType, ForeignKey("deployments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    key: Mapped[str] = mapped_column(String(253), nullable=False)
    encrypted_value: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class DeploymentEvent(Base):
    __tablename__ = "deployment_events"

    id: Mapped[str] = mapped_column(UUIDType, primary_key=True, default=new_id)
    deployment_id: Mapped[str] = mapped_column(
        UUIDType, ForeignKey("deployments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(128), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Set client-side with microsecond precision so events order totally per deployment
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
