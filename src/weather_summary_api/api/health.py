"""Liveness and readiness probes."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

router = APIRouter()


class HealthResponse(BaseModel):
    """Probe response.

    Example:
        >>> HealthResponse(status="ok", provider="OpenWeatherMap").provider
        'OpenWeatherMap'
    """

    status: str
    provider: str | None = None


@router.get(
    "/health",
    response_model=HealthResponse,
    response_model_exclude_none=True,
    summary="Liveness probe",
    description="Check if the application process is running",
    responses={
        200: {
            "description": "Application is alive",
            "content": {"application/json": {"example": {"status": "ok"}}},
        },
    },
)
async def health_check() -> HealthResponse:
    """Always 200 while the process is up; no dependencies are checked."""
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    response_model=HealthResponse,
    response_model_exclude_none=True,
    summary="Readiness probe",
    description="Check if the service container is built and requests can be served",
    responses={
        200: {
            "description": "Application is ready",
            "content": {"application/json": {"example": {"status": "ok", "provider": "OpenWeatherMap"}}},
        },
        503: {
            "description": "Application is still starting",
            "content": {"application/json": {"example": {"status": "starting"}}},
        },
    },
)
async def readiness_check(request: Request):
    """Ready once the lifespan has built the service container.

    The weather provider itself is not probed; its name is reported so
    operators can see which backend the replica talks to.
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        return JSONResponse(status_code=503, content={"status": "starting"})
    return HealthResponse(status="ok", provider=container.provider.name)
