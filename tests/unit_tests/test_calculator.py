import pytest

from calculator_api.calculator import (
    CalculatorError,
    DivisionByZeroError,
    Operation,
    calculate,
)


@pytest.mark.parametrize(
    "operation, a, b, expected",
    [
        (Operation.ADD, 2, 3, 5),
        (Operation.SUBTRACT, 2, 3, -1),
        (Operation.MULTIPLY, -4, 2.5, -10),
        (Operation.DIVIDE, 10, 4, 2.5),
        ("add", 0.1, 0.2, pytest.approx(0.3)),
    ],
)
def test_calculate(operation, a, b, expected):
    assert calculate(operation, a, b) == expected


def test_divide_by_zero():
    with pytest.raises(DivisionByZeroError):
        calculate(Operation.DIVIDE, 1, 0)


def test_divide_by_zero_is_calculator_error():
    assert issubclass(DivisionByZeroError, CalculatorError)


def test_overflow_is_rejected():
    with pytest.raises(CalculatorError, match="not a finite number"):
        calculate(Operation.MULTIPLY, 1e308, 10)


def test_unknown_operation():
    with pytest.raises(ValueError):
        calculate("power", 2, 3)
