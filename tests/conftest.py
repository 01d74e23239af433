import pytest
from fastapi.testclient import TestClient
from moto import mock_aws

from calculator_api.aws.utils import AWSClientManager
from calculator_api.config.settings import Settings, get_settings
from calculator_api.main import create_app
from tests.consts import TEST_APP_NAME, TEST_REGION


@pytest.fixture(autouse=True)
def aws_environment(monkeypatch, tmp_path):
    """Point settings and boto3 at fake credentials and a throwaway state file."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)
    monkeypatch.setenv("DEPLOYMENT_MODE", "aws-prod")
    monkeypatch.setenv("APP_NAME", TEST_APP_NAME)
    monkeypatch.setenv("STATE_FILE", str(tmp_path / "deployment_state.json"))
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)
    monkeypatch.chdir(tmp_path)

    get_settings.cache_clear()
    AWSClientManager.reset()
    yield
    get_settings.cache_clear()
    AWSClientManager.reset()


@pytest.fixture
def mocked_aws(aws_environment):
    """Run the test against moto's in-memory AWS."""
    with mock_aws(config={"iam": {"load_aws_managed_policies": True}}):
        yield


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def client() -> TestClient:
    app = create_app(Settings(deployment_mode="local-dev"))
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def mock_settings(mocked_aws) -> Settings:
    """aws-mock settings served by in-process moto instead of a moto server."""
    settings = Settings(deployment_mode="aws-mock")
    settings.aws_endpoint_url = None
    return settings
