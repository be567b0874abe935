"""Deployment orchestration — sequences ledger, vault and cluster work.

Ordering rules:
  create   ledger transaction (row + encrypted secrets) commits first, then the
           cluster objects are composed, then the row moves pending -> running.
  scale    ledger replica update, then one cluster patch, then an event.
           Not atomic across the two systems: if the patch fails the ledger
           keeps the desired count and the caller retries.
  delete   cluster objects are removed best-effort before the ledger row, so a
           failure midway still leaves a record to retry from.
  redeploy one transaction holds the row lock across the status check, the
           cluster delete and compose, and the move to running.

A partial composition failure is not rolled back automatically. The row stays
pending, a ``deployment_failed`` event is appended and the ClusterApiError is
surfaced; ``redeploy`` is the explicit recovery path.

All collaborators arrive through an OrchestratorContext built per request.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from deployhub.cluster.composer import (
    ClusterResourceComposer,
    make_resource_name,
    make_subdomain,
)
from deployhub.errors import ClusterApiError, ConflictError, LedgerError, ValidationError
from deployhub.models.deployment import DeploymentStatus
from deployhub.repositories.deployment_repo import (
    DeploymentEventRepository,
    DeploymentRepository,
    DeploymentSecretRepository,
)
from deployhub.repositories.project_repo import ProjectRepository
from deployhub.schemas.deployment import (
    CreateDeploymentRequest,
    DeploymentDetailResponse,
    DeploymentEventResponse,
    DeploymentResponse,
    ResourceSpec,
)
from deployhub.security.vault import SecretVault

log = logging.getLogger(__name__)

EVENT_CREATED = "deployment_created"
EVENT_FAILED = "deployment_failed"
EVENT_SCALED = "deployment_scaled"
EVENT_SCALE_FAILED = "deployment_scale_failed"
EVENT_REDEPLOYED = "deployment_redeployed"


@dataclass
class OrchestratorContext:
    session: AsyncSession
    vault: SecretVault
    composer: ClusterResourceComposer
    base_domain: str
    namespace: str = "default"
    max_replicas: int = 50


class DeploymentOrchestrator:
    def __init__(self, ctx: OrchestratorContext) -> None:
        self.ctx = ctx
        self.session = ctx.session
        self.repo = DeploymentRepository(ctx.session)
        self.secrets = DeploymentSecretRepository(ctx.session)
        self.events = DeploymentEventRepository(ctx.session)
        self.projects = ProjectRepository(ctx.session)

    @asynccontextmanager
    async def _transaction(
        self, action: str, conflict: str | None = None
    ) -> AsyncIterator[None]:
        try:
            async with self.session.begin():
                yield
        except IntegrityError as exc:
            if conflict is not None:
                raise ConflictError(conflict) from exc
            log.exception("Ledger integrity error while %s", action)
            raise LedgerError(f"Ledger failure while {action}") from exc
        except SQLAlchemyError as exc:
            log.exception("Ledger error while %s", action)
            raise LedgerError(f"Ledger failure while {action}") from exc

    async def _record_event(self, deployment_id: str, event_type: str, message: str) -> None:
        """Append an audit event on an error path without masking the first error."""
        try:
            async with self._transaction(f"recording {event_type}"):
                await self.events.append(deployment_id, event_type, message)
        except LedgerError:
            log.error("Could not record %s event for deployment %s", event_type, deployment_id)

    def _check_replicas(self, replicas: int) -> None:
        if replicas < 1 or replicas > self.ctx.max_replicas:
            raise ValidationError(
                f"replicas must be between 1 and {self.ctx.max_replicas}, got {replicas}"
            )

    # ── create ─────────────────────────────────────────────────────────────

    async def create(
        self, owner_id: str, project_id: str, request: CreateDeploymentRequest
    ) -> DeploymentResponse:
        self._check_replicas(request.replicas)

        resource_name = make_resource_name(project_id, request.name)
        subdomain = make_subdomain(request.name, owner_id, request.subdomain)
        external_host = f"{subdomain}.{self.ctx.base_domain}"
        resources = (request.resources or ResourceSpec()).model_dump()
        env_vars = dict(request.env_vars or {})
        secrets = request.plain_secrets()

        async with self._transaction(
            "creating deployment",
            conflict=f"Deployment '{request.name}' already exists in project '{project_id}'",
        ):
            await self.projects.get_by_id(project_id, owner_id)
            deployment = await self.repo.create(
                owner_id=owner_id,
                project_id=project_id,
                name=request.name,
                image=request.image,
                env_vars=env_vars,
                replicas=request.replicas,
                resources=resources,
                labels=request.labels,
                node_selector=request.node_selector,
                cluster_namespace=self.ctx.namespace,
                cluster_resource_name=resource_name,
                container_port=request.port,
                external_host=external_host,
            )
            for key, value in secrets.items():
                await self.secrets.create(deployment.id, key, self.ctx.vault.encrypt(value))

        log.info(
            "Deployment %s committed as pending (%s, %d secret(s))",
            deployment.id,
            resource_name,
            len(secrets),
        )

        try:
            await self.ctx.composer.compose(deployment, external_host, env_vars, secrets)
        except ClusterApiError as exc:
            log.error("Composition failed for deployment %s: %s", deployment.id, exc.message)
            await self._record_event(
                deployment.id, EVENT_FAILED, f"Cluster composition failed: {exc.message}"
            )
            raise

        try:
            async with self._transaction("marking deployment running"):
                deployment = await self.repo.update_status(deployment.id, DeploymentStatus.RUNNING)
                await self.events.append(
                    deployment.id, EVENT_CREATED, "Deployment created successfully"
                )
        except LedgerError as exc:
            await self._record_event(
                deployment.id, EVENT_FAILED, f"Composed but not marked running: {exc.message}"
            )
            raise

        return DeploymentResponse.from_row(deployment, external_url=external_host)

    # ── scale ──────────────────────────────────────────────────────────────

    async def scale(self, deployment_id: str, owner_id: str, replicas: int) -> DeploymentResponse:
        self._check_replicas(replicas)

        async with self._transaction("updating replica count"):
            deployment = await self.repo.update_replicas(deployment_id, owner_id, replicas)

        try:
            await self.ctx.composer.scale(deployment, replicas)
        except ClusterApiError as exc:
            log.error("Scale patch failed for deployment %s: %s", deployment.id, exc.message)
            await self._record_event(
                deployment.id,
                EVENT_SCALE_FAILED,
                f"Scaling to {replicas} replicas failed: {exc.message}",
            )
            raise

        try:
            async with self._transaction("recording scale event"):
                await self.events.append(
                    deployment.id, EVENT_SCALED, f"Scaled to {replicas} replicas"
                )
        except LedgerError as exc:
            await self._record_event(
                deployment.id,
                EVENT_SCALE_FAILED,
                f"Scaled to {replicas} replicas but the ledger update failed: {exc.message}",
            )
            raise

        return DeploymentResponse.from_row(deployment)

    # ── delete ─────────────────────────────────────────────────────────────

    async def delete(self, deployment_id: str, owner_id: str) -> None:
        async with self._transaction("loading deployment"):
            deployment = await self.repo.get_by_id(deployment_id, owner_id)

        failed = await self.ctx.composer.delete(deployment)
        if failed:
            log.warning(
                "Deployment %s: cluster objects left behind after delete: %s",
                deployment.id,
                ", ".join(failed),
            )

        async with self._transaction("deleting deployment"):
            await self.repo.delete(deployment_id, owner_id)
        log.info("Deployment %s deleted", deployment_id)

    # ── reads ──────────────────────────────────────────────────────────────

    async def get_detail(self, deployment_id: str, owner_id: str) -> DeploymentDetailResponse:
        async with self._transaction("loading deployment detail"):
            deployment = await self.repo.get_by_id(deployment_id, owner_id)
            secret_keys = await self.secrets.list_keys(deployment.id)

        ready_replicas: int | None
        try:
            ready_replicas = await self.ctx.composer.read_ready_replicas(deployment)
        except ClusterApiError as exc:
            log.warning("Ready replicas unavailable for %s: %s", deployment.id, exc.message)
            ready_replicas = None

        base = DeploymentResponse.from_row(deployment, external_url=deployment.external_host)
        return DeploymentDetailResponse(
            **base.model_dump(),
            env_vars=dict(deployment.env_vars or {}),
            labels=deployment.labels,
            node_selector=deployment.node_selector,
            secret_keys=secret_keys,
            ready_replicas=ready_replicas,
            cluster_namespace=deployment.cluster_namespace,
        )

    async def list_deployments(self, project_id: str, owner_id: str) -> list[DeploymentResponse]:
        async with self._transaction("listing deployments"):
            await self.projects.get_by_id(project_id, owner_id)
            rows = await self.repo.list_by_project(project_id, owner_id)
        return [DeploymentResponse.from_row(row, external_url=row.external_host) for row in rows]

    async def list_events(
        self, deployment_id: str, owner_id: str, limit: int = 50
    ) -> list[DeploymentEventResponse]:
        async with self._transaction("listing deployment events"):
            await self.repo.get_by_id(deployment_id, owner_id)
            events = await self.events.list_recent(deployment_id, limit)
        return [DeploymentEventResponse.model_validate(e) for e in events]

    # ── recovery ───────────────────────────────────────────────────────────

    async def redeploy(self, deployment_id: str, owner_id: str) -> DeploymentResponse:
        """Recompose a deployment stuck in pending after a partial failure.

        The row lock is held from the status check until the row is marked
        running, so concurrent redeploys of one deployment run one at a time
        and the later one sees ``running`` and is rejected.
        """
        try:
            async with self._transaction("redeploying deployment"):
                deployment = await self.repo.get_by_id_for_update(deployment_id, owner_id)
                if deployment.status != DeploymentStatus.PENDING.value:
                    raise ConflictError(
                        f"Only pending deployments can be redeployed (status is {deployment.status})"
                    )
                if not deployment.external_host:
                    raise ValidationError(f"Deployment '{deployment_id}' has no external host")

                sealed = await self.secrets.list_encrypted(deployment.id)
                secrets = self.ctx.vault.decrypt_all(sealed)

                leftovers = await self.ctx.composer.delete(deployment)
                if leftovers:
                    raise ClusterApiError(
                        f"Could not clear existing objects: {', '.join(leftovers)}"
                    )
                await self.ctx.composer.compose(
                    deployment, deployment.external_host, dict(deployment.env_vars or {}), secrets
                )

                deployment = await self.repo.update_status(deployment.id, DeploymentStatus.RUNNING)
                await self.events.append(deployment.id, EVENT_REDEPLOYED, "Deployment recomposed")
        except (ClusterApiError, LedgerError) as exc:
            await self._record_event(deployment_id, EVENT_FAILED, f"Redeploy failed: {exc.message}")
            raise

        return DeploymentResponse.from_row(deployment, external_url=deployment.external_host)
