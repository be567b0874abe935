"""Process-wide handles and the per-request orchestrator context.

The vault and the cluster client are built once (the lifespan hook calls the
providers at startup so a bad key or kubeconfig fails fast). Everything else
is assembled per request into an OrchestratorContext; in tests, override
get_cluster_client / get_vault through app.dependency_overrides.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from deployhub.cluster.client import ClusterClient
from deployhub.cluster.composer import ClusterResourceComposer
from deployhub.config import settings
from deployhub.database import get_db
from deployhub.security.vault import SecretVault
from deployhub.services.deployment_service import DeploymentOrchestrator, OrchestratorContext


@lru_cache(maxsize=1)
def get_vault() -> SecretVault:
    return SecretVault(settings.ENCRYPTION_KEY)


@lru_cache(maxsize=1)
def get_cluster_client() -> ClusterClient:
    return ClusterClient.from_settings(settings)


def get_orchestrator(
    session: AsyncSession = Depends(get_db),
    vault: SecretVault = Depends(get_vault),
    cluster: ClusterClient = Depends(get_cluster_client),
) -> DeploymentOrchestrator:
    return DeploymentOrchestrator(
        OrchestratorContext(
            session=session,
            vault=vault,
            composer=ClusterResourceComposer(cluster, settings),
            base_domain=settings.BASE_DOMAIN,
            namespace=settings.DEFAULT_NAMESPACE,
            max_replicas=settings.MAX_REPLICAS,
        )
    )
