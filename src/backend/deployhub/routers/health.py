"""Health check endpoints for DeployHub.

Both endpoints are unauthenticated and mounted at root (no /api/v1 prefix).
Used by Kubernetes liveness and readiness probes.
"""

import importlib.metadata

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from deployhub.database import AsyncSessionLocal

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: returns 200 if the application process is running."""
    try:
        version = importlib.metadata.version("deployhub")
    except importlib.metadata.PackageNotFoundError:
        version = "unknown"
    return {"status": "ok", "version": version}


@router.get("/health/ready")
async def health_ready() -> JSONResponse:
    """Readiness probe: returns 200 if the ledger database is reachable, 503 otherwise."""
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return JSONResponse(status_code=200, content={"status": "ok"})
    except Exception as exc:  # noqa: BLE001
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "detail": str(exc)},
        )
