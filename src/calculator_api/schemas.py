####################################
# --- Request/response schemas --- #
####################################

from typing import List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
)

from calculator_api.calculator import Operation


class OperandsQueryParams(BaseModel):
    """Query parameters for `GET /add`, `/subtract`, `/multiply`, `/divide`.

    `num1`/`num2` are accepted as aliases.
    """
    a: float = Field(validation_alias=AliasChoices("a", "num1"))
    b: float = Field(validation_alias=AliasChoices("b", "num2"))


class CalculationRequest(BaseModel):
    """Request body for `POST /v1/calculate`."""
    operation: Operation
    a: float
    b: float

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"operation": "divide", "a": 10, "b": 4}
        }
    )


class CalculationResponse(BaseModel):
    """Result of a single arithmetic operation."""
    operation: Operation
    a: float
    b: float
    result: float

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"operation": "divide", "a": 10, "b": 4, "result": 2.5}
        }
    )


class WelcomeResponse(BaseModel):
    """Response model for `GET /`."""
    message: str
    version: str
    operations: List[Operation]


class HealthResponse(BaseModel):
    """Response model for `GET /health`."""
    status: str
    deployment_mode: str
    version: str
    container: Optional[str] = Field(
        default=None,
        description="Container hostname (the task id on Fargate)",
    )
