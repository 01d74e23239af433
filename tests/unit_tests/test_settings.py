import pytest
from pydantic import ValidationError

from calculator_api.config.settings import Settings
from tests.consts import TEST_APP_NAME


def test_defaults_derive_resource_names():
    settings = Settings()

    assert settings.port == 3000
    assert settings.ecs_cluster_name == f"{TEST_APP_NAME}-cluster"
    assert settings.ecs_service_name == f"{TEST_APP_NAME}-service"
    assert settings.task_definition_family == f"{TEST_APP_NAME}-task"
    assert settings.container_name == TEST_APP_NAME
    assert settings.log_group_name == f"/ecs/{TEST_APP_NAME}-task"


def test_explicit_names_are_kept(monkeypatch):
    monkeypatch.setenv("ECS_CLUSTER_NAME", "shared-cluster")
    monkeypatch.setenv("CONTAINER_NAME", "web")

    settings = Settings()

    assert settings.ecs_cluster_name == "shared-cluster"
    assert settings.container_name == "web"


@pytest.mark.parametrize("raw, expected", [("prod", "aws-prod"), ("mock", "aws-mock"), ("local", "local-dev")])
def test_deployment_mode_aliases(raw, expected):
    assert Settings(deployment_mode=raw).deployment_mode == expected


def test_invalid_deployment_mode():
    with pytest.raises(ValidationError):
        Settings(deployment_mode="staging")


def test_invalid_fargate_size():
    with pytest.raises(ValidationError, match="Invalid Fargate size"):
        Settings(task_cpu="256", task_memory="4096")


def test_invalid_port():
    with pytest.raises(ValidationError):
        Settings(port=70000)


def test_image_uri_uses_account_and_tag(monkeypatch):
    monkeypatch.setenv("AWS_ACCOUNT_ID", "111122223333")
    monkeypatch.setenv("IMAGE_TAG", "v2")

    settings = Settings()

    assert settings.image_uri == "111122223333.dkr.ecr.us-east-1.amazonaws.com/calculator-app:v2"


def test_local_modes_default_to_moto_endpoint(monkeypatch):
    monkeypatch.delenv("AWS_ACCESS_KEY_ID")
    monkeypatch.delenv("AWS_SECRET_ACCESS_KEY")

    settings = Settings(deployment_mode="aws-mock")

    assert settings.aws_endpoint_url == "http://localhost:5000"
    assert settings.aws_access_key_id == "mock"
    assert settings.account_id == "123456789012"


def test_prod_mode_has_no_endpoint_override():
    assert Settings(deployment_mode="aws-prod").aws_endpoint_url is None


def test_container_environment():
    env = Settings(port=8080).get_container_environment()

    assert env["PORT"] == "8080"
    assert env["APP_NAME"] == TEST_APP_NAME
