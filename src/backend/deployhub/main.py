"""DeployHub FastAPI application factory.

Entry point: uvicorn deployhub.main:app
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from deployhub.config import settings
from deployhub.database import async_engine
from deployhub.dependencies import get_cluster_client, get_vault
from deployhub.errors import DeployHubError
from deployhub.middleware import RequestIDLogFilter, RequestIDMiddleware, get_request_id
from deployhub.routers import deployments, health

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"


def configure_logging() -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIDLogFilter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.LOG_LEVEL.upper())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    configure_logging()
    # Built eagerly so a bad encryption key or kubeconfig stops startup.
    get_vault()
    cluster = get_cluster_client()
    log.info(
        "DeployHub started (namespace=%s, base domain=%s)",
        settings.DEFAULT_NAMESPACE,
        settings.BASE_DOMAIN,
    )

    yield

    cluster.close()
    await async_engine.dispose()


app = FastAPI(title="DeployHub", lifespan=lifespan)

app.add_middleware(RequestIDMiddleware)


@app.exception_handler(DeployHubError)
async def deployhub_error_handler(request: Request, exc: DeployHubError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("%s: %s", exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                "request_id": get_request_id(),
            }
        },
        headers={"X-Request-ID": get_request_id()},
    )


app.include_router(health.router)
app.include_router(deployments.project_router)
app.include_router(deployments.router)
