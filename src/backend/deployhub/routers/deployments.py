"""Deployment endpoints.

POST   /api/v1/projects/{project_id}/deployments   — create deployment
GET    /api/v1/projects/{project_id}/deployments   — list a project's deployments
GET    /api/v1/deployments/{id}                    — detail (secret keys only)
PATCH  /api/v1/deployments/{id}/scale              — change replica count
DELETE /api/v1/deployments/{id}                    — tear down
GET    /api/v1/deployments/{id}/events             — recent audit events
POST   /api/v1/deployments/{id}/redeploy           — recompose a pending deployment
WS     /api/v1/deployments/{id}/watch?token=...    — live status channel
"""

import logging
import uuid

from fastapi import APIRouter, Depends, Query, WebSocket, status
from starlette.websockets import WebSocketState

from deployhub.auth.dependencies import get_current_user, websocket_claims
from deployhub.auth.jwt import Claims
from deployhub.cluster.client import ClusterClient
from deployhub.cluster.composer import label_selector
from deployhub.config import settings
from deployhub.database import AsyncSessionLocal
from deployhub.dependencies import get_cluster_client, get_orchestrator
from deployhub.errors import NotFoundError, UnauthorizedError
from deployhub.repositories.deployment_repo import DeploymentRepository
from deployhub.schemas.deployment import (
    CreateDeploymentRequest,
    DeploymentDetailResponse,
    DeploymentEventResponse,
    DeploymentResponse,
    ListResponse,
    MessageResponse,
    ScaleDeploymentRequest,
)
from deployhub.services.deployment_service import DeploymentOrchestrator
from deployhub.streaming.live_status import LiveStatusStreamer

log = logging.getLogger(__name__)

_WS_UNAUTHORIZED = 4401
_WS_NOT_FOUND = 4404

project_router = APIRouter(prefix="/api/v1/projects", tags=["deployments"])
router = APIRouter(prefix="/api/v1/deployments", tags=["deployments"])


@project_router.post(
    "/{project_id}/deployments",
    response_model=DeploymentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_deployment(
    project_id: uuid.UUID,
    body: CreateDeploymentRequest,
    claims: Claims = Depends(get_current_user),
    svc: DeploymentOrchestrator = Depends(get_orchestrator),
) -> DeploymentResponse:
    return await svc.create(claims.owner_id, str(project_id), body)


@project_router.get("/{project_id}/deployments", response_model=ListResponse[DeploymentResponse])
async def list_deployments(
    project_id: uuid.UUID,
    claims: Claims = Depends(get_current_user),
    svc: DeploymentOrchestrator = Depends(get_orchestrator),
) -> ListResponse[DeploymentResponse]:
    deployments = await svc.list_deployments(str(project_id), claims.owner_id)
    return ListResponse[DeploymentResponse](data=deployments, total=len(deployments))


@router.get("/{deployment_id}", response_model=DeploymentDetailResponse)
async def get_deployment(
    deployment_id: uuid.UUID,
    claims: Claims = Depends(get_current_user),
    svc: DeploymentOrchestrator = Depends(get_orchestrator),
) -> DeploymentDetailResponse:
    return await svc.get_detail(str(deployment_id), claims.owner_id)


@router.patch("/{deployment_id}/scale", response_model=DeploymentResponse)
async def scale_deployment(
    deployment_id: uuid.UUID,
    body: ScaleDeploymentRequest,
    claims: Claims = Depends(get_current_user),
    svc: DeploymentOrchestrator = Depends(get_orchestrator),
) -> DeploymentResponse:
    return await svc.scale(str(deployment_id), claims.owner_id, body.replicas)


@router.delete("/{deployment_id}", response_model=MessageResponse)
async def delete_deployment(
    deployment_id: uuid.UUID,
    claims: Claims = Depends(get_current_user),
    svc: DeploymentOrchestrator = Depends(get_orchestrator),
) -> MessageResponse:
    await svc.delete(str(deployment_id), claims.owner_id)
    return MessageResponse(message="Deployment deleted successfully")


@router.get("/{deployment_id}/events", response_model=ListResponse[DeploymentEventResponse])
async def list_deployment_events(
    deployment_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=500),
    claims: Claims = Depends(get_current_user),
    svc: DeploymentOrchestrator = Depends(get_orchestrator),
) -> ListResponse[DeploymentEventResponse]:
    events = await svc.list_events(str(deployment_id), claims.owner_id, limit)
    return ListResponse[DeploymentEventResponse](data=events, total=len(events))


@router.post("/{deployment_id}/redeploy", response_model=DeploymentResponse)
async def redeploy_deployment(
    deployment_id: uuid.UUID,
    claims: Claims = Depends(get_current_user),
    svc: DeploymentOrchestrator = Depends(get_orchestrator),
) -> DeploymentResponse:
    return await svc.redeploy(str(deployment_id), claims.owner_id)


@router.websocket("/{deployment_id}/watch")
async def watch_deployment(
    websocket: WebSocket,
    deployment_id: uuid.UUID,
    cluster: ClusterClient = Depends(get_cluster_client),
) -> None:
    # Ownership is checked once, before the handshake completes.
    try:
        claims = websocket_claims(websocket)
        async with AsyncSessionLocal() as session:
            deployment = await DeploymentRepository(session).get_by_id(
                str(deployment_id), claims.owner_id
            )
    except UnauthorizedError as exc:
        await websocket.close(code=_WS_UNAUTHORIZED, reason=exc.message)
        return
    except NotFoundError as exc:
        await websocket.close(code=_WS_NOT_FOUND, reason=exc.message)
        return

    await websocket.accept()
    log.info("Live status stream opened for deployment %s", deployment.id)
    streamer = LiveStatusStreamer(
        cluster,
        namespace=deployment.cluster_namespace,
        resource_name=deployment.cluster_resource_name,
        label_selector=label_selector(deployment),
        interval_seconds=settings.STATUS_POLL_INTERVAL_SECONDS,
    )
    await streamer.run(websocket)

    if (
        websocket.application_state == WebSocketState.CONNECTED
        and websocket.client_state == WebSocketState.CONNECTED
    ):
        await websocket.close()
