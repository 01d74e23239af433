"""ECS service definition for the calculator: create, update, inspect and remove."""
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
from botocore.exceptions import ClientError, WaiterError

from calculator_api.aws.errors import ServiceNotFoundError
from calculator_api.aws.utils import get_ec2_client, get_ecs_client, project_tags
from calculator_api.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class ServiceStatus:
    """Snapshot of the service as reported by ECS."""
    service_name: str
    status: str
    desired_count: int
    running_count: int
    pending_count: int
    task_definition: Optional[str]
    deployments: List[Dict[str, Any]] = field(default_factory=list)
    security_groups: List[str] = field(default_factory=list)

    @property
    def is_stable(self) -> bool:
        return (
            self.status == 'ACTIVE'
            and len(self.deployments) == 1
            and self.running_count == self.desired_count
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'service_name': self.service_name,
            'status': self.status,
            'desired_count': self.desired_count,
            'running_count': self.running_count,
            'pending_count': self.pending_count,
            'task_definition': self.task_definition,
            'deployments': len(self.deployments),
            'stable': self.is_stable,
        }


class ECSServiceManager:
    """Manager for the calculator's Fargate service."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.ecs_client = get_ecs_client(self.settings)
        self.cluster_name = self.settings.ecs_cluster_name
        self.service_name = self.settings.ecs_service_name

    def create_or_update_service(self, task_definition_arn: str,
                                 network_config: Dict[str, Any]) -> Dict[str, Any]:
        """Create the service, or roll the existing one onto `task_definition_arn`."""
        existing_service = self._find_existing_service()
        if existing_service:
            logger.info(f"Updating existing service: {self.service_name}")
            return self.update_service(task_definition_arn)

        try:
            service_response = self.ecs_client.create_service(
                cluster=self.cluster_name,
                serviceName=self.service_name,
                taskDefinition=task_definition_arn,
                desiredCount=self.settings.desired_count,
                launchType='FARGATE',
                networkConfiguration=self._build_network_configuration(network_config),
                deploymentConfiguration={
                    'maximumPercent': 200,
                    'minimumHealthyPercent': 100,
                    'deploymentCircuitBreaker': {'enable': True, 'rollback': True}
                },
                tags=[{'key': 'Name', 'value': self.service_name}] + project_tags(self.settings, 'Calculator-Web')
            )
        except ClientError as e:
            logger.error(f"Failed to create service {self.service_name}: {e}")
            raise

        service = service_response['service']
        logger.info(f"Created service: {self.service_name} ({self.settings.desired_count} task(s))")
        return service

    def update_service(self, task_definition_arn: Optional[str] = None,
                       desired_count: Optional[int] = None) -> Dict[str, Any]:
        """Force a new deployment, optionally on a new task definition or count."""
        kwargs = {
            'cluster': self.cluster_name,
            'service': self.service_name,
            'forceNewDeployment': True,
        }
        if task_definition_arn:
            kwargs['taskDefinition'] = task_definition_arn
        if desired_count is not None:
            kwargs['desiredCount'] = desired_count

        try:
            response = self.ecs_client.update_service(**kwargs)
        except ClientError as e:
            if e.response['Error']['Code'] in ('ServiceNotFoundException', 'ServiceNotActiveException'):
                raise ServiceNotFoundError(f"Service {self.service_name} not found in {self.cluster_name}") from e
            logger.error(f"Failed to update service {self.service_name}: {e}")
            raise

        service = response['service']
        logger.info(f"Updated service {self.service_name} -> {service.get('taskDefinition')}")
        return service

    def redeploy(self, task_definition_arn: Optional[str] = None) -> Dict[str, Any]:
        """Restart tasks so they pull the current image (same tag) or a new revision."""
        return self.update_service(task_definition_arn)

    def scale(self, desired_count: int) -> Dict[str, Any]:
        if desired_count < 0:
            raise ValueError("desired_count must be >= 0")
        return self.update_service(desired_count=desired_count)

    def wait_for_stable(self, timeout: int = 600, delay: int = 15) -> None:
        """Block until ECS reports the service stable."""
        waiter = self.ecs_client.get_waiter('services_stable')
        logger.info(f"Waiting up to {timeout}s for {self.service_name} to stabilize")
        try:
            waiter.wait(
                cluster=self.cluster_name,
                services=[self.service_name],
                WaiterConfig={'Delay': delay, 'MaxAttempts': max(1, timeout // delay)}
            )
        except WaiterError as e:
            logger.error(f"Service {self.service_name} did not stabilize: {e}")
            raise
        logger.info(f"Service {self.service_name} is stable")

    def get_service_status(self) -> ServiceStatus:
        service = self._find_existing_service()
        if not service:
            raise ServiceNotFoundError(f"Service {self.service_name} not found in {self.cluster_name}")

        awsvpc = service.get('networkConfiguration', {}).get('awsvpcConfiguration', {})
        return ServiceStatus(
            service_name=service['serviceName'],
            status=service['status'],
            desired_count=service.get('desiredCount', 0),
            running_count=service.get('runningCount', 0),
            pending_count=service.get('pendingCount', 0),
            task_definition=service.get('taskDefinition'),
            deployments=service.get('deployments', []),
            security_groups=awsvpc.get('securityGroups', []),
        )

    def list_task_arns(self) -> List[str]:
        response = self.ecs_client.list_tasks(
            cluster=self.cluster_name,
            serviceName=self.service_name,
            desiredStatus='RUNNING'
        )
        return response.get('taskArns', [])

    def get_public_endpoints(self) -> List[str]:
        """`http://<public ip>:<port>` for every running task."""
        task_arns = self.list_task_arns()
        if not task_arns:
            return []

        response = self.ecs_client.describe_tasks(cluster=self.cluster_name, tasks=task_arns)
        eni_ids = []
        for task in response.get('tasks', []):
            for attachment in task.get('attachments', []):
                if attachment.get('type') != 'ElasticNetworkInterface':
                    continue
                for detail in attachment.get('details', []):
                    if detail.get('name') == 'networkInterfaceId':
                        eni_ids.append(detail['value'])

        if not eni_ids:
            return []

        ec2_client = get_ec2_client(self.settings)
        interfaces = ec2_client.describe_network_interfaces(NetworkInterfaceIds=eni_ids)
        endpoints = []
        for interface in interfaces.get('NetworkInterfaces', []):
            public_ip = interface.get('Association', {}).get('PublicIp')
            if public_ip:
                endpoints.append(f"http://{public_ip}:{self.settings.port}")
        return endpoints

    def delete_service(self) -> None:
        """Scale to zero and delete the service."""
        if not self._find_existing_service():
            logger.info(f"No service to delete: {self.service_name}")
            return
        try:
            self.ecs_client.update_service(
                cluster=self.cluster_name,
                service=self.service_name,
                desiredCount=0
            )
            self.ecs_client.delete_service(
                cluster=self.cluster_name,
                service=self.service_name,
                force=True
            )
            logger.info(f"Deleted service: {self.service_name}")
        except ClientError as e:
            logger.error(f"Failed to delete service {self.service_name}: {e}")
            raise

    def service_exists(self) -> bool:
        return self._find_existing_service() is not None

    def _build_network_configuration(self, network_config: Dict[str, Any]) -> Dict[str, Any]:
        if not network_config.get('subnet_ids'):
            raise ValueError("network_config requires at least one subnet")
        if not network_config.get('security_group_id'):
            raise ValueError("network_config requires a security group")

        assign_public_ip = network_config.get('assign_public_ip', self.settings.assign_public_ip)
        return {
            'awsvpcConfiguration': {
                'subnets': list(network_config['subnet_ids']),
                'securityGroups': [network_config['security_group_id']],
                'assignPublicIp': 'ENABLED' if assign_public_ip else 'DISABLED'
            }
        }

    def _find_existing_service(self) -> Optional[Dict[str, Any]]:
        """Find the ACTIVE service."""
        try:
            response = self.ecs_client.describe_services(
                cluster=self.cluster_name,
                services=[self.service_name]
            )
        except ClientError:
            return None
        for service in response.get('services', []):
            if service['status'] == 'ACTIVE':
                return service
        return None
