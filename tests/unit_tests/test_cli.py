import json
from unittest.mock import MagicMock

import pytest
import requests
from click.testing import CliRunner

from calculator_api.aws.deploy_ecs import ECSDeploymentBuilder
from calculator_api.cli import cli
from tests.consts import TEST_APP_NAME, TEST_IMAGE_URI


@pytest.fixture
def runner():
    return CliRunner()


def test_show_config(runner):
    result = runner.invoke(cli, ["show-config"])

    assert result.exit_code == 0
    assert f"ECS Cluster: {TEST_APP_NAME}-cluster" in result.output
    assert "testing" not in result.output


def test_task_definition_command(runner, mocked_aws, tmp_path):
    output = tmp_path / "task-definition.json"

    result = runner.invoke(cli, ["task-definition", "-o", str(output), "--image", TEST_IMAGE_URI])

    assert result.exit_code == 0, result.output
    written = json.loads(output.read_text())
    assert written["containerDefinitions"][0]["name"] == TEST_APP_NAME
    assert written["containerDefinitions"][0]["image"] == TEST_IMAGE_URI


def test_verify_url(runner, monkeypatch):
    response = MagicMock(status_code=200)
    response.json.return_value = {"status": "ok"}
    monkeypatch.setattr("calculator_api.aws.deploy_ecs.requests.get", MagicMock(return_value=response))

    result = runner.invoke(cli, ["verify", "--url", "http://203.0.113.10:3000", "--attempts", "1"])

    assert result.exit_code == 0
    assert "http://203.0.113.10:3000/health OK" in result.output


def test_verify_url_failure_exits_nonzero(runner, monkeypatch):
    monkeypatch.setattr(
        "calculator_api.aws.deploy_ecs.requests.get",
        MagicMock(side_effect=requests.ConnectionError("refused")),
    )

    result = runner.invoke(cli, ["verify", "--url", "http://203.0.113.10:3000", "--attempts", "1"])

    assert result.exit_code == 1
    assert "Verification failed" in result.output


def test_deploy_mode_option_selects_endpoint(runner, monkeypatch):
    def fake_deploy(self, **kwargs):
        return {"mode": self.mode, "endpoint": self.settings.aws_endpoint_url, "endpoints": []}

    monkeypatch.setattr("calculator_api.aws.deploy_ecs.ECSDeploymentBuilder.deploy", fake_deploy)

    result = runner.invoke(cli, ["deploy", "--mode", "aws-mock"])

    assert result.exit_code == 0, result.output
    assert '"mode": "aws-mock"' in result.output
    assert '"endpoint": "http://localhost:5000"' in result.output


def test_status_after_deploy(runner, mock_settings):
    ECSDeploymentBuilder(settings=mock_settings).deploy()

    result = runner.invoke(cli, ["status"])

    assert result.exit_code == 0, result.output
    assert f"{TEST_APP_NAME}-service" in result.output


def test_status_without_service_fails(runner, mocked_aws):
    result = runner.invoke(cli, ["status"])

    assert result.exit_code == 1
    assert "Status failed" in result.output


def test_teardown_requires_confirmation(runner, mocked_aws):
    result = runner.invoke(cli, ["teardown", "--mode", "aws-mock"], input="n\n")

    assert result.exit_code != 0
    assert "Teardown completed" not in result.output
