from fastapi import APIRouter, Depends, Request

from calculator_api.calculator import Operation, calculate
from calculator_api.schemas import (
    CalculationRequest,
    CalculationResponse,
    OperandsQueryParams,
)

router = APIRouter()


def get_operands(request: Request) -> OperandsQueryParams:
    """Parse `a`/`b` (or `num1`/`num2`) from the query string."""
    return OperandsQueryParams.model_validate(dict(request.query_params))


def _respond(operation: Operation, operands: OperandsQueryParams) -> CalculationResponse:
    return CalculationResponse(
        operation=operation,
        a=operands.a,
        b=operands.b,
        result=calculate(operation, operands.a, operands.b),
    )


@router.get("/add", response_model=CalculationResponse)
async def add(operands: OperandsQueryParams = Depends(get_operands)):
    """Add `b` to `a`."""
    return _respond(Operation.ADD, operands)


@router.get("/subtract", response_model=CalculationResponse)
async def subtract(operands: OperandsQueryParams = Depends(get_operands)):
    """Subtract `b` from `a`."""
    return _respond(Operation.SUBTRACT, operands)


@router.get("/multiply", response_model=CalculationResponse)
async def multiply(operands: OperandsQueryParams = Depends(get_operands)):
    """Multiply `a` by `b`."""
    return _respond(Operation.MULTIPLY, operands)


@router.get("/divide", response_model=CalculationResponse)
async def divide(operands: OperandsQueryParams = Depends(get_operands)):
    """Divide `a` by `b`. Dividing by zero returns 400."""
    return _respond(Operation.DIVIDE, operands)


@router.post("/v1/calculate", response_model=CalculationResponse)
async def calculate_operation(body: CalculationRequest):
    """Apply any supported operation given in the request body."""
    return CalculationResponse(
        operation=body.operation,
        a=body.a,
        b=body.b,
        result=calculate(body.operation, body.a, body.b),
    )
