import boto3

from calculator_api.aws.ecs_cluster import ECSClusterManager
from tests.consts import TEST_APP_NAME


def test_create_cluster(mocked_aws):
    manager = ECSClusterManager()

    cluster = manager.create_cluster()

    assert cluster["clusterName"] == f"{TEST_APP_NAME}-cluster"
    assert manager.cluster_arn == cluster["clusterArn"]


def test_create_cluster_is_idempotent(mocked_aws):
    first = ECSClusterManager().create_cluster()
    second = ECSClusterManager().create_cluster()

    assert first["clusterArn"] == second["clusterArn"]
    arns = boto3.client("ecs").list_clusters()["clusterArns"]
    assert arns == [first["clusterArn"]]


def test_cluster_info_when_missing(mocked_aws):
    info = ECSClusterManager().get_cluster_info()

    assert info["status"] == "MISSING"
    assert info["cluster_arn"] is None


def test_cluster_info_when_active(mocked_aws):
    manager = ECSClusterManager()
    manager.create_cluster()

    info = manager.get_cluster_info()

    assert info["status"] == "ACTIVE"
    assert info["cluster_name"] == f"{TEST_APP_NAME}-cluster"


def test_delete_cluster(mocked_aws):
    manager = ECSClusterManager()
    manager.create_cluster()

    manager.delete_cluster()

    assert manager.get_cluster_info()["status"] == "MISSING"
