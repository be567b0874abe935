"""Repositories for deployment records, their encrypted secrets and audit events.

Every read or write that takes an ``owner_id`` is ownership-scoped: a row that
exists but belongs to someone else is reported exactly like a missing row.
Writes flush but never commit; transaction boundaries belong to the caller.
"""

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from deployhub.errors import ConflictError, NotFoundError
from deployhub.models.deployment import (
    Deployment,
    DeploymentEvent,
    DeploymentSecret,
    DeploymentStatus,
)


class DeploymentRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(
        self,
        owner_id: str,
        project_id: str,
        name: str,
        image: str,
        env_vars: dict[str, str],
        replicas: int,
        resources: dict[str, int],
        labels: dict[str, str] | None,
        node_selector: dict[str, str] | None,
        cluster_namespace: str,
        cluster_resource_name: str,
        container_port: int,
        external_host: str | None,
    ) -> Deployment:
        deployment = Deployment(
            owner_id=owner_id,
            project_id=project_id,
            name=name,
            image=image,
            env_vars=env_vars,
            replicas=replicas,
            resources=resources,
            labels=labels,
            node_selector=node_selector,
            status=DeploymentStatus.PENDING.value,
            cluster_namespace=cluster_namespace,
            cluster_resource_name=cluster_resource_name,
            container_port=container_port,
            external_host=external_host,
        )
        self.session.add(deployment)
        await self.session.flush()
        await self.session.refresh(deployment)
        return deployment

    async def get_by_id(self, deployment_id: str, owner_id: str) -> Deployment:
        result = await self.session.execute(
            select(Deployment).where(
                Deployment.id == deployment_id,
                Deployment.owner_id == owner_id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Deployment '{deployment_id}' not found")
        return row

    async def get_by_id_for_update(self, deployment_id: str, owner_id: str) -> Deployment:
        result = await self.session.execute(
            select(Deployment)
            .where(
                Deployment.id == deployment_id,
                Deployment.owner_id == owner_id,
            )
            .with_for_update()
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Deployment '{deployment_id}' not found")
        return row

    async def list_by_project(self, project_id: str, owner_id: str) -> list[Deployment]:
        result = await self.session.execute(
            select(Deployment)
            .where(
                Deployment.project_id == project_id,
                Deployment.owner_id == owner_id,
            )
            .order_by(Deployment.created_at, Deployment.name)
        )
        return list(result.scalars().all())

    async def update_status(self, deployment_id: str, status: DeploymentStatus) -> Deployment:
        result = await self.session.execute(
            select(Deployment).where(Deployment.id == deployment_id).with_for_update()
        )
        deployment = result.scalar_one_or_none()
        if deployment is None:
            raise NotFoundError(f"Deployment '{deployment_id}' not found")

        current = DeploymentStatus(deployment.status)
        if current is not status:
            if not current.can_transition_to(status):
                raise ConflictError(
                    f"Deployment '{deployment_id}' cannot move from "
                    f"{current.value} to {status.value}"
                )
            deployment.status = status.value
            await self.session.flush()
            await self.session.refresh(deployment)
        return deployment

    async def update_replicas(
        self, deployment_id: str, owner_id: str, replicas: int
    ) -> Deployment:
        deployment = await self.get_by_id_for_update(deployment_id, owner_id)
        deployment.replicas = replicas
        await self.session.flush()
        await self.session.refresh(deployment)
        return deployment

    async def delete(self, deployment_id: str, owner_id: str) -> None:
        # Secrets and events go with the row through ON DELETE CASCADE.
        result = await self.session.execute(
            delete(Deployment).where(
                Deployment.id == deployment_id,
                Deployment.owner_id == owner_id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Deployment '{deployment_id}' not found")


class DeploymentSecretRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, deployment_id: str, key: str, encrypted_value: bytes) -> None:
        self.session.add(
            DeploymentSecret(
                deployment_id=deployment_id,
                key=key,
                encrypted_value=encrypted_value,
            )
        )
        await self.session.flush()

    async def list_keys(self, deployment_id: str) -> list[str]:
        """Secret keys only. Ciphertext never leaves this repository through here."""
        result = await self.session.execute(
            select(DeploymentSecret.key)
            .where(DeploymentSecret.deployment_id == deployment_id)
            .order_by(DeploymentSecret.key)
        )
        return list(result.scalars().all())

    async def list_encrypted(self, deployment_id: str) -> dict[str, bytes]:
        result = await self.session.execute(
            select(DeploymentSecret.key, DeploymentSecret.encrypted_value).where(
                DeploymentSecret.deployment_id == deployment_id
            )
        )
        return {key: value for key, value in result.all()}

    async def delete_all(self, deployment_id: str) -> int:
        result = await self.session.execute(
            delete(DeploymentSecret).where(DeploymentSecret.deployment_id == deployment_id)
        )
        return result.rowcount


class DeploymentEventRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def append(
        self, deployment_id: str, event_type: str, message: str | None = None
    ) -> DeploymentEvent:
        event = DeploymentEvent(
            deployment_id=deployment_id,
            event_type=event_type,
            message=message,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def list_recent(self, deployment_id: str, limit: int = 50) -> list[DeploymentEvent]:
        result = await self.session.execute(
            select(DeploymentEvent)
            .where(DeploymentEvent.deployment_id == deployment_id)
            .order_by(DeploymentEvent.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count(self, deployment_id: str) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(DeploymentEvent)
            .where(DeploymentEvent.deployment_id == deployment_id)
        )
        return result.scalar_one()
