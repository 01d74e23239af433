"""Exception handlers and error middleware for the calculator API."""
import logging

import pydantic
from fastapi import Request, status
from fastapi.responses import JSONResponse

from calculator_api.calculator import CalculatorError, DivisionByZeroError

logger = logging.getLogger(__name__)


async def handle_broad_exceptions(request: Request, call_next):
    """Handle any exception that propagates out of a route."""
    try:
        return await call_next(request)
    except Exception as e:
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {e}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )


async def handle_pydantic_validation_errors(request: Request, exc: pydantic.ValidationError) -> JSONResponse:
    """Return 422 for validation errors raised inside route handlers."""
    errors = exc.errors()
    logger.warning(f"Validation error on {request.url.path}: {errors}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": [
                {
                    "msg": error["msg"],
                    "input": error.get("input"),
                    "loc": error.get("loc"),
                }
                for error in errors
            ]
        },
    )


async def handle_calculator_errors(request: Request, exc: CalculatorError) -> JSONResponse:
    """Map arithmetic failures to client errors."""
    status_code = (
        status.HTTP_400_BAD_REQUEST
        if isinstance(exc, DivisionByZeroError)
        else status.HTTP_422_UNPROCESSABLE_ENTITY
    )
    logger.info(f"Calculation rejected on {request.url.path}: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})
