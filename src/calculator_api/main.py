from textwrap import dedent
import logging
import time
import pydantic
from fastapi import FastAPI, Request
from fastapi.routing import APIRoute

from calculator_api import __version__
from calculator_api.calculator import CalculatorError, Operation
from calculator_api.errors import (
    handle_broad_exceptions,
    handle_calculator_errors,
    handle_pydantic_validation_errors,
)
from calculator_api.routers.calculator import router as calculator_router
from calculator_api.routers.health import router as health_router
from calculator_api.schemas import WelcomeResponse
from calculator_api.config.settings import Settings, get_settings

# Set up logging
logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create a FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Calculator API",
        summary="Stateless arithmetic over HTTP",
        version=__version__,
        description=dedent(
            """\
        Minimal calculator service packaged as a container and deployed to ECS Fargate.

        | Endpoint | Notes |
        | --- | --- |
        | `GET /add?a=1&b=2` | also `/subtract`, `/multiply`, `/divide` |
        | `POST /v1/calculate` | `{"operation": "add", "a": 1, "b": 2}` |
        | `GET /health` | container and ECS health check |
        """
        ),
        docs_url="/docs",
        generate_unique_id_function=custom_generate_unique_id,
    )
    app.state.settings = settings

    @app.get("/", response_model=WelcomeResponse, tags=["calculator"])
    async def index():
        """Describe the service and its operations."""
        return WelcomeResponse(
            message=f"Welcome to {settings.app_name}",
            version=__version__,
            operations=list(Operation),
        )

    app.include_router(calculator_router, tags=["calculator"])
    app.include_router(health_router, tags=["health"])

    app.add_exception_handler(
        exc_class_or_status_code=pydantic.ValidationError,
        handler=handle_pydantic_validation_errors,
    )
    app.add_exception_handler(
        exc_class_or_status_code=CalculatorError,
        handler=handle_calculator_errors,
    )
    app.middleware("http")(handle_broad_exceptions)
    # Registered last so it is outermost and also logs 500s
    app.middleware("http")(log_requests)

    logger.info(f"Created {settings.app_name} app in {settings.deployment_mode} mode")
    return app


async def log_requests(request: Request, call_next):
    """Log method, path, status and latency of every request."""
    start_time = time.time()
    response = await call_next(request)
    duration_ms = (time.time() - start_time) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms:.1f}ms)")
    return response


def custom_generate_unique_id(route: APIRoute):
    """
    Generate prettier `operationId`s in the OpenAPI schema.

    These become the function names in generated client SDKs.
    """
    return f"{route.tags[0]}-{route.name}"


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
