import os

from fastapi import APIRouter, Request

from calculator_api import __version__
from calculator_api.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """
    Health check endpoint used by the container HEALTHCHECK, the ECS task
    definition health check, and post-deployment verification.
    """
    settings = request.app.state.settings
    return HealthResponse(
        status="ok",
        deployment_mode=settings.deployment_mode,
        version=__version__,
        container=os.environ.get("HOSTNAME"),
    )
