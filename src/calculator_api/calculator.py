"""Arithmetic operations served by the calculator API."""
import math
import logging
from enum import Enum

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Supported binary operations."""
    ADD = "add"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    DIVIDE = "divide"


class CalculatorError(Exception):
    """Raised when an operation cannot produce a finite result."""


class DivisionByZeroError(CalculatorError):
    """Raised when dividing by zero."""


def add(a: float, b: float) -> float:
    return a + b


def subtract(a: float, b: float) -> float:
    return a - b


def multiply(a: float, b: float) -> float:
    return a * b


def divide(a: float, b: float) -> float:
    if b == 0:
        raise DivisionByZeroError("Division by zero is not allowed")
    return a / b


OPERATIONS = {
    Operation.ADD: add,
    Operation.SUBTRACT: subtract,
    Operation.MULTIPLY: multiply,
    Operation.DIVIDE: divide,
}


def calculate(operation: Operation, a: float, b: float) -> float:
    """Apply `operation` to `a` and `b`.

    Raises:
        DivisionByZeroError: when dividing by zero
        CalculatorError: when the result is not a finite number
    """
    operation = Operation(operation)
    result = OPERATIONS[operation](a, b)

    if not math.isfinite(result):
        raise CalculatorError(f"Result of {operation.value}({a}, {b}) is not a finite number")

    logger.debug(f"{operation.value}({a}, {b}) = {result}")
    return result
