"""
ECS Task Definition Builder
Creates Fargate task definitions for the calculator container and renders
new image URIs into existing definitions for continuous deployment.
"""
import copy
import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional
from botocore.exceptions import ClientError

from calculator_api.aws.utils import get_ecs_client, get_iam_client, get_logs_client, ec2_tags, project_tags
from calculator_api.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

EXECUTION_ROLE_POLICY_ARN = 'arn:aws:iam::aws:policy/service-role/AmazonECSTaskExecutionRolePolicy'

# Keys returned by describe_task_definition that register_task_definition rejects
READ_ONLY_KEYS = (
    'taskDefinitionArn',
    'revision',
    'status',
    'requiresAttributes',
    'compatibilities',
    'registeredAt',
    'registeredBy',
    'deregisteredAt',
)


class TaskDefinitionBuilder:
    """Builds and registers the Fargate task definition for the calculator."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.ecs_client = get_ecs_client(self.settings)
        self.family = self.settings.task_definition_family
        self.container_name = self.settings.container_name
        self.execution_role_name = f"{self.settings.app_name}-ecs-execution-role"

    def create_log_group(self, log_group_name: Optional[str] = None) -> str:
        """Create CloudWatch log group for task logging."""
        log_group_name = log_group_name or self.settings.log_group_name
        logs_client = get_logs_client(self.settings)
        try:
            logs_client.create_log_group(
                logGroupName=log_group_name,
                tags={
                    'Environment': self.settings.deployment_mode,
                    'Project': self.settings.app_name,
                    'ManagedBy': 'ECS'
                }
            )
            logger.info(f"Created log group: {log_group_name}")
        except logs_client.exceptions.ResourceAlreadyExistsException:
            logger.info(f"Log group already exists: {log_group_name}")

        logs_client.put_retention_policy(
            logGroupName=log_group_name,
            retentionInDays=self.settings.log_retention_days
        )
        return log_group_name

    def ensure_execution_role(self) -> str:
        """Get or create the task execution role (image pull + log delivery)."""
        iam_client = get_iam_client(self.settings)

        try:
            role_response = iam_client.get_role(RoleName=self.execution_role_name)
            return role_response['Role']['Arn']
        except iam_client.exceptions.NoSuchEntityException:
            pass

        trust_policy = {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Principal": {"Service": "ecs-tasks.amazonaws.com"},
                    "Action": "sts:AssumeRole"
                }
            ]
        }

        try:
            role_response = iam_client.create_role(
                RoleName=self.execution_role_name,
                AssumeRolePolicyDocument=json.dumps(trust_policy),
                Tags=ec2_tags(self.settings, self.execution_role_name)
            )
            iam_client.attach_role_policy(
                RoleName=self.execution_role_name,
                PolicyArn=EXECUTION_ROLE_POLICY_ARN
            )
        except ClientError as e:
            logger.error(f"Failed to create ECS execution role: {e}")
            raise

        logger.info(f"Created ECS execution role: {self.execution_role_name}")
        return role_response['Role']['Arn']

    def build_container_definition(self, image_uri: str, log_group: Optional[str] = None) -> Dict[str, Any]:
        """Single essential container listening on the app port."""
        port = self.settings.port
        return {
            'name': self.container_name,
            'image': image_uri,
            'essential': True,
            'portMappings': [
                {
                    'containerPort': port,
                    'hostPort': port,
                    'protocol': 'tcp'
                }
            ],
            'environment': [
                {'name': name, 'value': value}
                for name, value in self.settings.get_container_environment().items()
            ],
            'logConfiguration': {
                'logDriver': 'awslogs',
                'options': {
                    'awslogs-group': log_group or self.settings.log_group_name,
                    'awslogs-region': self.settings.aws_region,
                    'awslogs-stream-prefix': 'ecs'
                }
            },
            'healthCheck': {
                'command': [
                    'CMD-SHELL',
                    f"python -c \"import urllib.request; urllib.request.urlopen('http://localhost:{port}/health')\" || exit 1"
                ],
                'interval': 30,
                'timeout': 5,
                'retries': 3,
                'startPeriod': 10
            }
        }

    def build_task_definition(self, image_uri: str, execution_role_arn: Optional[str] = None,
                              log_group: Optional[str] = None) -> Dict[str, Any]:
        """Build the register_task_definition payload."""
        if execution_role_arn is None:
            execution_role_arn = f"arn:aws:iam::{self.settings.account_id}:role/{self.execution_role_name}"

        return {
            'family': self.family,
            'networkMode': 'awsvpc',
            'requiresCompatibilities': ['FARGATE'],
            'cpu': self.settings.task_cpu,
            'memory': self.settings.task_memory,
            'executionRoleArn': execution_role_arn,
            'containerDefinitions': [self.build_container_definition(image_uri, log_group)]
        }

    def register(self, image_uri: str) -> str:
        """Register a new revision pointing at `image_uri`. Returns its ARN."""
        log_group = self.create_log_group()
        execution_role_arn = self.ensure_execution_role()
        task_definition = self.build_task_definition(image_uri, execution_role_arn, log_group)
        return self.register_payload(task_definition)

    def register_payload(self, task_definition: Dict[str, Any]) -> str:
        try:
            response = self.ecs_client.register_task_definition(
                tags=project_tags(self.settings, 'Calculator-Web'),
                **task_definition
            )
        except ClientError as e:
            logger.error(f"Failed to register task definition {task_definition.get('family')}: {e}")
            raise

        task_def = response['taskDefinition']
        logger.info(f"Registered task definition: {task_def['family']}:{task_def['revision']}")
        return task_def['taskDefinitionArn']

    def describe(self, task_definition: Optional[str] = None) -> Dict[str, Any]:
        """Describe `task_definition` (ARN or family[:revision]); latest revision by default."""
        response = self.ecs_client.describe_task_definition(
            taskDefinition=task_definition or self.family
        )
        return response['taskDefinition']

    def render(self, task_definition: Dict[str, Any], image_uri: str,
               container_name: Optional[str] = None) -> Dict[str, Any]:
        """Return a registrable copy of `task_definition` with the container's image replaced."""
        container_name = container_name or self.container_name
        rendered = {
            key: value for key, value in copy.deepcopy(task_definition).items()
            if key not in READ_ONLY_KEYS
        }

        for container in rendered.get('containerDefinitions', []):
            if container.get('name') == container_name:
                container['image'] = image_uri
                return rendered

        raise ValueError(f"Container '{container_name}' not found in task definition {rendered.get('family')}")

    def write_task_definition(self, path: str, image_uri: Optional[str] = None) -> Path:
        """Write the task definition JSON consumed by the CI deploy step."""
        output = Path(path)
        task_definition = self.build_task_definition(image_uri or self.settings.image_uri)
        output.write_text(json.dumps(task_definition, indent=2) + "\n")
        logger.info(f"Wrote task definition to {output}")
        return output

    def previous_revision(self, task_definition_arn: str) -> Optional[str]:
        """ARN of the ACTIVE revision before `task_definition_arn`, if any."""
        family_revision = task_definition_arn.rsplit('/', 1)[-1]
        family, _, revision = family_revision.rpartition(':')
        if not family or not revision.isdigit():
            raise ValueError(f"Not a task definition ARN with revision: {task_definition_arn}")

        for candidate in range(int(revision) - 1, 0, -1):
            try:
                task_def = self.describe(f"{family}:{candidate}")
            except ClientError:
                continue
            if task_def.get('status') == 'ACTIVE':
                return task_def['taskDefinitionArn']
        return None

    def deregister(self, task_definition_arn: str) -> None:
        try:
            self.ecs_client.deregister_task_definition(taskDefinition=task_definition_arn)
            logger.info(f"Deregistered task definition: {task_definition_arn}")
        except ClientError as e:
            logger.warning(f"Failed to deregister task definition: {e}")
