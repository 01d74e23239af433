import logging

from fastapi import status
from fastapi.testclient import TestClient


def test__divide_by_zero__returns_400(client: TestClient):
    response = client.get("/divide", params={"a": 1, "b": 0})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "zero" in response.json()["detail"]


def test__post_divide_by_zero__returns_400(client: TestClient):
    response = client.post("/v1/calculate", json={"operation": "divide", "a": 1, "b": 0})

    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test__overflow__returns_422(client: TestClient):
    response = client.get("/multiply", params={"a": 1e308, "b": 10})

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test__missing_operand__returns_422(client: TestClient):
    response = client.get("/add", params={"a": 1})

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert "b" in response.json()["detail"][0]["loc"]


def test__non_numeric_operand__returns_422(client: TestClient):
    response = client.get("/add", params={"a": "one", "b": 2})

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test__unknown_operation__returns_422(client: TestClient):
    response = client.post("/v1/calculate", json={"operation": "power", "a": 2, "b": 3})

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test__unexpected_error__returns_500(client: TestClient, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr("calculator_api.routers.calculator.calculate", explode)

    response = client.get("/add", params={"a": 1, "b": 2})

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json() == {"detail": "Internal server error"}


def test__unknown_route__returns_404(client: TestClient):
    response = client.get("/power", params={"a": 2, "b": 3})

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test__unexpected_error__is_logged(client: TestClient, monkeypatch, caplog):
    def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr("calculator_api.routers.calculator.calculate", explode)

    with caplog.at_level(logging.INFO, logger="calculator_api.main"):
        client.get("/add", params={"a": 1, "b": 2})

    messages = [r.getMessage() for r in caplog.records if r.name == "calculator_api.main"]
    assert any("GET /add -> 500" in message for message in messages)
