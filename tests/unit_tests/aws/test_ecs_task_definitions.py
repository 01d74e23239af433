import json

import boto3
import pytest

from calculator_api.aws.ecs_task_definitions import EXECUTION_ROLE_POLICY_ARN, TaskDefinitionBuilder
from tests.consts import TEST_APP_NAME, TEST_IMAGE_URI


def test_task_definition_payload(mocked_aws):
    task_definition = TaskDefinitionBuilder().build_task_definition(TEST_IMAGE_URI)

    assert task_definition["family"] == f"{TEST_APP_NAME}-task"
    assert task_definition["networkMode"] == "awsvpc"
    assert task_definition["requiresCompatibilities"] == ["FARGATE"]
    assert task_definition["cpu"] == "256"
    assert task_definition["memory"] == "512"
    assert task_definition["executionRoleArn"].endswith(f"role/{TEST_APP_NAME}-ecs-execution-role")

    (container,) = task_definition["containerDefinitions"]
    assert container["name"] == TEST_APP_NAME
    assert container["image"] == TEST_IMAGE_URI
    assert container["essential"] is True
    assert container["portMappings"] == [{"containerPort": 3000, "hostPort": 3000, "protocol": "tcp"}]
    assert container["logConfiguration"]["options"]["awslogs-group"] == f"/ecs/{TEST_APP_NAME}-task"
    assert "/health" in container["healthCheck"]["command"][1]


def test_register_creates_role_and_log_group(mocked_aws):
    arn = TaskDefinitionBuilder().register(TEST_IMAGE_URI)

    assert arn.endswith(f"task-definition/{TEST_APP_NAME}-task:1")

    iam = boto3.client("iam")
    policies = iam.list_attached_role_policies(RoleName=f"{TEST_APP_NAME}-ecs-execution-role")
    assert [p["PolicyArn"] for p in policies["AttachedPolicies"]] == [EXECUTION_ROLE_POLICY_ARN]

    groups = boto3.client("logs").describe_log_groups(logGroupNamePrefix="/ecs/")["logGroups"]
    assert groups[0]["logGroupName"] == f"/ecs/{TEST_APP_NAME}-task"
    assert groups[0]["retentionInDays"] == 7


def test_register_twice_adds_a_revision(mocked_aws):
    builder = TaskDefinitionBuilder()
    builder.register(TEST_IMAGE_URI)
    second = builder.register(TEST_IMAGE_URI.replace(":abc123", ":def456"))

    assert second.endswith(":2")
    assert builder.describe()["containerDefinitions"][0]["image"].endswith(":def456")


def test_previous_revision(mocked_aws):
    builder = TaskDefinitionBuilder()
    first = builder.register(TEST_IMAGE_URI)
    second = builder.register(TEST_IMAGE_URI)
    third = builder.register(TEST_IMAGE_URI)

    assert builder.previous_revision(third) == second
    assert builder.previous_revision(first) is None

    builder.deregister(second)
    assert builder.previous_revision(third) == first


def test_previous_revision_rejects_bad_arn():
    with pytest.raises(ValueError, match="revision"):
        TaskDefinitionBuilder().previous_revision("not-an-arn")


def test_render_replaces_image_and_strips_read_only_keys(mocked_aws):
    builder = TaskDefinitionBuilder()
    builder.register(TEST_IMAGE_URI)
    described = builder.describe()

    rendered = builder.render(described, "repo/app:new")

    assert rendered["containerDefinitions"][0]["image"] == "repo/app:new"
    assert "taskDefinitionArn" not in rendered
    assert "revision" not in rendered
    assert described["containerDefinitions"][0]["image"] == TEST_IMAGE_URI


def test_render_unknown_container(mocked_aws):
    builder = TaskDefinitionBuilder()
    task_definition = builder.build_task_definition(TEST_IMAGE_URI)

    with pytest.raises(ValueError, match="Container 'web' not found"):
        builder.render(task_definition, "repo/app:new", container_name="web")


def test_write_task_definition(mocked_aws, tmp_path):
    output = TaskDefinitionBuilder().write_task_definition(str(tmp_path / "task-def.json"), TEST_IMAGE_URI)

    written = json.loads(output.read_text())
    assert written["family"] == f"{TEST_APP_NAME}-task"
    assert written["containerDefinitions"][0]["image"] == TEST_IMAGE_URI
