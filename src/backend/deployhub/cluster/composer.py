"""Translates a deployment ledger row into its cluster objects.

Composition order: secret (only when there are secrets) -> workload ->
network endpoint -> route. Deletion walks the reverse order best-effort and
finishes with the secret. Scaling is a single replica patch on the workload.

Resource names are derived from (project id, deployment name) only, so
recomputing a name always yields the same string and two deployments can never
share one; no locking is involved.
"""

import hashlib
import logging
import re

from deployhub.cluster.client import ClusterClient
from deployhub.cluster.objects import (
    ClusterObject,
    NetworkObject,
    ObjectOptions,
    ResourceQuantities,
    RouteObject,
    SecretObject,
    WorkloadObject,
)
from deployhub.config import AppSettings
from deployhub.errors import ClusterApiError, ValidationError
from deployhub.models.deployment import Deployment

log = logging.getLogger(__name__)

_DNS_LABEL_MAX = 63
_NAME_SLUG_MAX = 40
_DIGEST_CHARS = 12
_DNS_LABEL_RE = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")


def _slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9-]", "-", value.lower())
    return re.sub(r"-+", "-", slug).strip("-")


def make_resource_name(project_id: str, name: str) -> str:
    """DNS-1035 label (<= 63 chars, starts with a letter) unique per (project, name)."""
    slug = _slugify(name)[:_NAME_SLUG_MAX].rstrip("-")
    if not slug or not slug[0].isalpha():
        slug = f"d-{slug}".rstrip("-")
    digest = hashlib.sha256(f"{project_id}/{name}".encode()).hexdigest()[:_DIGEST_CHARS]
    return f"{slug}-{digest}"


def make_subdomain(name: str, owner_id: str, subdomain: str | None = None) -> str:
    """Explicit subdomain, or ``<name>-<owner_id[:8]>`` with the name cut so the
    owner suffix always survives the 63 character label limit."""
    if subdomain is not None:
        candidate = subdomain.lower()
        if not _DNS_LABEL_RE.match(candidate):
            raise ValidationError(f"Subdomain '{subdomain}' is not a valid DNS label")
        return candidate
    suffix = _slugify(owner_id[:8])
    slug = _slugify(name)[: _DNS_LABEL_MAX - len(suffix) - 1].rstrip("-")
    if not slug or not suffix:
        raise ValidationError(f"Cannot derive a subdomain from name '{name}'")
    return f"{slug}-{suffix}"


def secret_object_name(resource_name: str) -> str:
    return f"{resource_name}-secrets"


def tls_secret_name(resource_name: str) -> str:
    return f"{resource_name}-tls"


def selector_labels(deployment: Deployment) -> dict[str, str]:
    return {"app": deployment.cluster_resource_name, "deployment-id": str(deployment.id)}


def label_selector(deployment: Deployment) -> str:
    return ",".join(f"{key}={value}" for key, value in selector_labels(deployment).items())


class ClusterResourceComposer:
    def __init__(self, cluster: ClusterClient, settings: AppSettings) -> None:
        self.cluster = cluster
        self._settings = settings

    # ── object construction ────────────────────────────────────────────────

    def secret_object(self, deployment: Deployment, secrets: dict[str, str]) -> SecretObject:
        return SecretObject(
            name=secret_object_name(deployment.cluster_resource_name),
            namespace=deployment.cluster_namespace,
            labels=selector_labels(deployment),
            data=secrets,
        )

    def workload_object(
        self,
        deployment: Deployment,
        env_vars: dict[str, str] | None = None,
        secret_keys: tuple[str, ...] = (),
    ) -> WorkloadObject:
        name = deployment.cluster_resource_name
        options = ObjectOptions(
            env_vars=dict(env_vars if env_vars is not None else deployment.env_vars or {}),
            secret_keys=secret_keys,
            secret_name=secret_object_name(name) if secret_keys else None,
            labels=dict(deployment.labels or {}),
            node_selector=dict(deployment.node_selector or {}),
        )
        return WorkloadObject(
            name=name,
            namespace=deployment.cluster_namespace,
            selector=selector_labels(deployment),
            image=deployment.image,
            replicas=deployment.replicas,
            container_port=deployment.container_port,
            resources=ResourceQuantities.from_spec(deployment.resources),
            options=options,
        )

    def network_object(self, deployment: Deployment) -> NetworkObject:
        return NetworkObject(
            name=deployment.cluster_resource_name,
            namespace=deployment.cluster_namespace,
            selector=selector_labels(deployment),
            port=self._settings.SERVICE_PORT,
            target_port=deployment.container_port,
        )

    def route_object(self, deployment: Deployment, external_host: str) -> RouteObject:
        name = deployment.cluster_resource_name
        return RouteObject(
            name=name,
            namespace=deployment.cluster_namespace,
            labels=selector_labels(deployment),
            host=external_host,
            service_name=name,
            service_port=self._settings.SERVICE_PORT,
            tls_secret_name=tls_secret_name(name),
            ingress_class=self._settings.INGRESS_CLASS_NAME,
            annotations={
                "traefik.ingress.kubernetes.io/router.entrypoints": self._settings.INGRESS_ENTRYPOINTS,
                "cert-manager.io/cluster-issuer": self._settings.CLUSTER_ISSUER,
            },
        )

    def plan(
        self,
        deployment: Deployment,
        external_host: str,
        env_vars: dict[str, str],
        secrets: dict[str, str],
    ) -> list[ClusterObject]:
        objects: list[ClusterObject] = []
        if secrets:
            objects.append(self.secret_object(deployment, secrets))
        objects.append(self.workload_object(deployment, env_vars, tuple(secrets)))
        objects.append(self.network_object(deployment))
        objects.append(self.route_object(deployment, external_host))
        return objects

    # ── operations ─────────────────────────────────────────────────────────

    async def compose(
        self,
        deployment: Deployment,
        external_host: str,
        env_vars: dict[str, str],
        secrets: dict[str, str],
    ) -> None:
        """Create every object in order; the first failure propagates and the
        objects already created are left in place."""
        for obj in self.plan(deployment, external_host, env_vars, secrets):
            await obj.create(self.cluster)
            log.info("Created %r for deployment %s", obj, deployment.id)

    async def delete(self, deployment: Deployment) -> list[str]:
        """Best-effort removal. Returns the kinds that could not be deleted."""
        objects: list[ClusterObject] = [
            self.route_object(deployment, deployment.external_host or ""),
            self.network_object(deployment),
            self.workload_object(deployment),
            self.secret_object(deployment, {}),
        ]
        failed: list[str] = []
        for obj in objects:
            try:
                await obj.delete(self.cluster)
                log.info("Deleted %r for deployment %s", obj, deployment.id)
            except ClusterApiError as exc:
                if exc.status == 404:
                    continue
                log.error("Failed to delete %r for deployment %s: %s", obj, deployment.id, exc)
                failed.append(obj.kind)
        return failed

    async def scale(self, deployment: Deployment, replicas: int) -> None:
        await self.workload_object(deployment).patch(
            self.cluster, {"spec": {"replicas": replicas}}
        )
        log.info("Patched %s to %d replicas", deployment.cluster_resource_name, replicas)

    async def read_ready_replicas(self, deployment: Deployment) -> int:
        workload = await self.cluster.read_workload_status(
            deployment.cluster_namespace, deployment.cluster_resource_name
        )
        status = workload.status
        return (status.ready_replicas or 0) if status is not None else 0
