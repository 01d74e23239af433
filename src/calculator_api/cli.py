# cli.py
import json
import logging
import sys

import click
from botocore.exceptions import BotoCoreError, ClientError

from calculator_api.aws.errors import DeploymentError
from calculator_api.config.settings import get_settings

# Configure logging
logger = logging.getLogger(__name__)


def _builder(mode=None):
    from calculator_api.aws.deploy_ecs import ECSDeploymentBuilder
    return ECSDeploymentBuilder(mode)


def _fail(action: str, error: Exception):
    logger.error(f"{action} failed: {error}")
    print(f"❌ {action} failed: {error}")
    sys.exit(1)


def _print_json(data):
    print(json.dumps(data, indent=2, default=str))


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
def cli(log_level):
    """Calculator web app and ECS Fargate deployment commands"""
    settings = get_settings()
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


@cli.command()
@click.option("--host", default=None, help="Bind address (default: HOST or 0.0.0.0)")
@click.option("--port", default=None, type=int, help="Port (default: PORT or 3000)")
@click.option("--reload", is_flag=True, help="Reload on code changes (development)")
def serve(host, port, reload):
    """Run the calculator web server"""
    import uvicorn

    settings = get_settings()
    host = host or settings.host
    port = port or settings.port
    logger.info(f"Serving {settings.app_name} on {host}:{port}")
    uvicorn.run(
        "calculator_api.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    print("Current Configuration:")
    for name, value in settings.as_display_dict().items():
        print(f"  {name}: {value}")


@cli.command()
@click.option("--mode", type=click.Choice(["aws-mock", "aws-prod"]), default=None,
              help="Deployment mode (default: DEPLOYMENT_MODE)")
@click.option("--context", default=".", show_default=True, help="Docker build context")
@click.option("--tag", default=None, help="Image tag (default: IMAGE_TAG)")
@click.option("--skip-build", is_flag=True, help="Deploy an image already in ECR")
@click.option("--no-wait", is_flag=True, help="Do not wait for the service to stabilize")
@click.option("--no-verify", is_flag=True, help="Skip the HTTP health check after deploying")
def deploy(mode, context, tag, skip_build, no_wait, no_verify):
    """Build, push and run the app on ECS Fargate"""
    try:
        result = _builder(mode).deploy(
            context=context,
            tag=tag,
            skip_build=skip_build,
            wait=not no_wait,
            verify=not no_verify,
        )
    except (DeploymentError, ClientError, BotoCoreError, ValueError) as e:
        _fail("Deployment", e)

    _print_json(result)
    print("✅ Deployment completed successfully")
    for endpoint in result.get("endpoints", []):
        print(f"   {endpoint}")


@cli.command()
@click.option("--mode", type=click.Choice(["aws-mock", "aws-prod"]), default=None)
@click.option("--tag", default=None, help="Image tag already pushed to ECR")
@click.option("--image", default=None, help="Full image URI (overrides --tag)")
@click.option("--no-wait", is_flag=True)
@click.option("--no-verify", is_flag=True)
def redeploy(mode, tag, image, no_wait, no_verify):
    """Roll the existing service onto a new image"""
    try:
        result = _builder(mode).redeploy(tag=tag, image_uri=image, wait=not no_wait, verify=not no_verify)
    except (DeploymentError, ClientError, BotoCoreError, ValueError) as e:
        _fail("Redeploy", e)

    _print_json(result)
    print("✅ Redeploy completed successfully")


@cli.command()
@click.option("--mode", type=click.Choice(["aws-mock", "aws-prod"]), default=None)
def status(mode):
    """Show service, cluster and last deployment status"""
    try:
        _print_json(_builder(mode).status())
    except (DeploymentError, ClientError, BotoCoreError, ValueError) as e:
        _fail("Status", e)


@cli.command()
@click.option("--mode", type=click.Choice(["aws-mock", "aws-prod"]), default=None)
@click.option("--url", default=None, help="Base URL to check (default: running tasks' public IPs)")
@click.option("--attempts", default=10, show_default=True, type=int)
@click.option("--delay", default=6.0, show_default=True, type=float)
def verify(mode, url, attempts, delay):
    """Check that the deployed app answers GET /health with 200"""
    try:
        if url:
            from calculator_api.aws.deploy_ecs import verify_endpoint
            verify_endpoint(url, attempts=attempts, delay=delay)
            endpoints = [url]
        else:
            endpoints = _builder(mode).verify(attempts=attempts, delay=delay)
    except (DeploymentError, ClientError, BotoCoreError, ValueError) as e:
        _fail("Verification", e)

    for endpoint in endpoints:
        print(f"✅ {endpoint}/health OK")


@cli.command()
@click.option("--mode", type=click.Choice(["aws-mock", "aws-prod"]), default=None)
def open_port(mode):
    """Allow inbound TCP on the app port for the service's security groups"""
    settings = get_settings()
    try:
        changes = _builder(mode).open_port()
    except (DeploymentError, ClientError, BotoCoreError, ValueError) as e:
        _fail("Opening port", e)

    for group_id, added in changes.items():
        action = "opened" if added else "already open"
        print(f"✅ {group_id}: tcp/{settings.port} from {settings.ingress_cidr} {action}")


@cli.command()
@click.option("--output", "-o", default="task-definition.json", show_default=True,
              help="Where to write the task definition JSON")
@click.option("--image", default=None, help="Image URI (default: ECR URI for IMAGE_TAG)")
def task_definition(output, image):
    """Write the Fargate task definition used by the CI deploy step"""
    from calculator_api.aws.ecs_task_definitions import TaskDefinitionBuilder

    try:
        path = TaskDefinitionBuilder().write_task_definition(output, image)
    except (ClientError, BotoCoreError, OSError) as e:
        _fail("Writing task definition", e)
    print(f"✅ Task definition written to {path}")


@cli.command()
@click.option("--mode", type=click.Choice(["aws-mock", "aws-prod"]), default=None)
@click.option("--no-wait", is_flag=True)
def rollback(mode, no_wait):
    """Point the service back at the previous task definition"""
    try:
        result = _builder(mode).rollback(wait=not no_wait)
    except (DeploymentError, ClientError, BotoCoreError, ValueError) as e:
        _fail("Rollback", e)

    _print_json(result)
    print("✅ Rollback completed")


@cli.command()
@click.option("--mode", type=click.Choice(["aws-mock", "aws-prod"]), default=None)
@click.option("--delete-repository", is_flag=True, help="Also delete the ECR repository and its images")
@click.confirmation_option(prompt="Delete the ECS service, cluster and security group?")
def teardown(mode, delete_repository):
    """Remove everything the deploy command created"""
    try:
        _builder(mode).teardown(delete_repository=delete_repository)
    except (DeploymentError, ClientError, BotoCoreError, ValueError) as e:
        _fail("Teardown", e)
    print("✅ Teardown completed")


if __name__ == "__main__":
    cli()
