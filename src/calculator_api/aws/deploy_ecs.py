"""AWS ECS Fargate deployment for the calculator app."""
import logging
from typing import Dict, Any, List, Optional

import requests

from calculator_api.aws.deployment_state import (
    DeploymentPhase,
    DeploymentStateManager,
    create_deployment_id,
)
from calculator_api.aws.ecr_images import ECRImagePublisher
from calculator_api.aws.ecs_cluster import ECSClusterManager
from calculator_api.aws.ecs_services import ECSServiceManager
from calculator_api.aws.ecs_task_definitions import TaskDefinitionBuilder
from calculator_api.aws.errors import DeploymentError, VerificationError
from calculator_api.aws.vpc_network import VPCNetworkBuilder
from calculator_api.config.settings import Settings, get_settings
from calculator_api.utils.decorators import log_operation, retry

logger = logging.getLogger(__name__)


def verify_endpoint(base_url: str, attempts: int = 10, delay: float = 6.0, timeout: float = 5.0) -> Dict[str, Any]:
    """GET `<base_url>/health` until it answers 200. Returns the health payload."""
    url = f"{base_url.rstrip('/')}/health"

    @retry(max_attempts=attempts, delay=delay, backoff=1.0,
           exceptions=(requests.RequestException, VerificationError), logger_name=__name__)
    def _check() -> Dict[str, Any]:
        response = requests.get(url, timeout=timeout)
        if response.status_code != 200:
            raise VerificationError(f"{url} returned HTTP {response.status_code}")
        return response.json()

    try:
        payload = _check()
    except requests.RequestException as e:
        raise VerificationError(f"{url} unreachable: {e}") from e

    logger.info(f"Verified {url}: {payload}")
    return payload


class ECSDeploymentStrategy:
    """Base class for ECS deployment strategies."""

    builds_images = True
    waits_for_service = True

    def __init__(self, mode: str, settings: Optional[Settings] = None):
        self.mode = mode
        self.settings = settings or get_settings()
        self.publisher = None
        self.network = None
        self.cluster_manager = None
        self.task_definitions = None
        self.service_manager = None

    def setup_clients(self) -> None:
        """Initialize infrastructure managers."""
        self.publisher = ECRImagePublisher(self.settings)
        self.network = VPCNetworkBuilder(self.settings)
        self.cluster_manager = ECSClusterManager(self.settings)
        self.task_definitions = TaskDefinitionBuilder(self.settings)
        self.service_manager = ECSServiceManager(self.settings)
        logger.info(f"Initialized ECS managers for {self.mode}")

    def prepare_image(self, context: str, tag: str, skip_build: bool) -> str:
        raise NotImplementedError


class MockECSStrategy(ECSDeploymentStrategy):
    """Strategy for aws-mock: every AWS call goes to a moto server, docker is not used."""

    builds_images = False
    waits_for_service = False

    def __init__(self, settings: Optional[Settings] = None):
        super().__init__("aws-mock", settings)

    def prepare_image(self, context: str, tag: str, skip_build: bool) -> str:
        self.publisher.ensure_repository()
        image_uri = self.publisher.image_reference(tag)
        logger.info(f"Mock mode: skipping docker build/push, using {image_uri}")
        return image_uri


class ProductionECSStrategy(ECSDeploymentStrategy):
    """Strategy for aws-prod deployment using real AWS ECS."""

    def __init__(self, settings: Optional[Settings] = None):
        super().__init__("aws-prod", settings)

    def prepare_image(self, context: str, tag: str, skip_build: bool) -> str:
        if skip_build:
            if not self.publisher.image_exists(tag):
                raise DeploymentError(
                    f"Image {self.settings.ecr_repo_name}:{tag} not found in ECR; push it before deploying it"
                )
            return self.publisher.image_reference(tag)
        return self.publisher.publish(context=context, tag=tag)


class ECSDeploymentBuilder:
    """Runs the deployment steps for the configured mode and records them."""

    def __init__(self, mode: Optional[str] = None, settings: Optional[Settings] = None):
        if settings is None:
            settings = get_settings()
            if mode and mode != settings.deployment_mode:
                # Endpoint, credentials and account id follow the requested mode
                settings = Settings(deployment_mode=mode)
        elif mode and mode != settings.deployment_mode:
            raise ValueError(f"Mode {mode} does not match settings for {settings.deployment_mode}")
        self.settings = settings
        self.mode = self.settings.deployment_mode
        self.strategy = self._create_strategy()
        self.state = DeploymentStateManager(self.settings.state_file)
        self._clients_ready = False

    def _create_strategy(self) -> ECSDeploymentStrategy:
        """Create deployment strategy based on mode."""
        if self.mode == "aws-mock":
            return MockECSStrategy(self.settings)
        elif self.mode == "aws-prod":
            return ProductionECSStrategy(self.settings)
        else:
            raise ValueError(f"Unsupported deployment mode: {self.mode}")

    def _ready(self) -> ECSDeploymentStrategy:
        if not self._clients_ready:
            self.strategy.setup_clients()
            self._clients_ready = True
        return self.strategy

    @log_operation("ECS Fargate deployment")
    def deploy(self, context: str = ".", tag: Optional[str] = None, skip_build: bool = False,
               wait: bool = True, verify: bool = True) -> Dict[str, Any]:
        """Image -> network -> cluster -> task definition -> service -> verify."""
        strategy = self._ready()
        tag = tag or self.settings.image_tag
        self.state.start_deployment(create_deployment_id(self.mode), self.mode)

        image_uri = self._run_phase(
            DeploymentPhase.IMAGE,
            lambda: strategy.prepare_image(context, tag, skip_build),
            lambda uri: {'image_uri': uri},
        )

        network_config = self._run_phase(
            DeploymentPhase.NETWORK,
            lambda: (strategy.network
                     .use_vpc()
                     .build_subnets()
                     .build_security_group()
                     .get_network_config()),
            lambda config: config,
        )

        self._run_phase(
            DeploymentPhase.CLUSTER,
            strategy.cluster_manager.create_cluster,
            lambda cluster: {'cluster_arn': cluster['clusterArn']},
        )

        return self._release(image_uri, network_config, wait, verify)

    @log_operation("ECS redeploy")
    def redeploy(self, tag: Optional[str] = None, image_uri: Optional[str] = None,
                 wait: bool = True, verify: bool = True) -> Dict[str, Any]:
        """Register a revision with a new image and roll the existing service onto it."""
        strategy = self._ready()
        if not image_uri:
            image_uri = strategy.prepare_image(context=".", tag=tag or self.settings.image_tag, skip_build=True)

        self.state.start_deployment(create_deployment_id(f"{self.mode}-redeploy"), self.mode)
        self.state.skip_phase(DeploymentPhase.IMAGE, "image supplied")
        self.state.skip_phase(DeploymentPhase.NETWORK, "existing service network")
        self.state.skip_phase(DeploymentPhase.CLUSTER, "existing cluster")

        # Fails early when the service is missing
        strategy.service_manager.get_service_status()
        return self._release(image_uri, None, wait, verify)

    def _release(self, image_uri: str, network_config: Optional[Dict[str, Any]],
                 wait: bool, verify: bool) -> Dict[str, Any]:
        strategy = self.strategy
        services = strategy.service_manager

        previous = None
        if services.service_exists():
            previous = services.get_service_status().task_definition

        task_definition_arn = self._run_phase(
            DeploymentPhase.TASK_DEFINITION,
            lambda: strategy.task_definitions.register(image_uri),
            lambda arn: {'task_definition_arn': arn},
        )
        self.state.record_release(image_uri, task_definition_arn, previous)

        def roll_service():
            if network_config is None:
                service = services.update_service(task_definition_arn)
            else:
                service = services.create_or_update_service(task_definition_arn, network_config)
            if wait and strategy.waits_for_service:
                services.wait_for_stable()
            return service

        service = self._run_phase(
            DeploymentPhase.SERVICE,
            roll_service,
            lambda svc: {'service_arn': svc.get('serviceArn'), 'service_name': svc.get('serviceName')},
        )

        endpoints = []
        if verify and strategy.waits_for_service and wait:
            endpoints = self._run_phase(
                DeploymentPhase.VERIFY,
                self.verify,
                lambda urls: {'endpoints': urls},
            )
        else:
            self.state.skip_phase(DeploymentPhase.VERIFY, "verification disabled for this run")

        self.state.complete_deployment()
        return {
            'status': 'success',
            'mode': self.mode,
            'region': self.settings.aws_region,
            'cluster_name': self.settings.ecs_cluster_name,
            'service_name': service.get('serviceName', self.settings.ecs_service_name),
            'image_uri': image_uri,
            'task_definition_arn': task_definition_arn,
            'previous_task_definition_arn': previous,
            'endpoints': endpoints,
        }

    @log_operation("Post-deployment verification")
    def verify(self, endpoint: Optional[str] = None, attempts: int = 10, delay: float = 6.0) -> List[str]:
        """Health-check `endpoint`, or every running task's public endpoint."""
        endpoints = [endpoint] if endpoint else self._ready().service_manager.get_public_endpoints()
        if not endpoints:
            raise VerificationError(
                "No public endpoint found; check that tasks are RUNNING and assignPublicIp is ENABLED"
            )
        for url in endpoints:
            verify_endpoint(url, attempts=attempts, delay=delay)
        return endpoints

    @log_operation("Rollback to previous task definition")
    def rollback(self, wait: bool = True) -> Dict[str, Any]:
        """Point the service at the task definition that was live before the last release."""
        strategy = self._ready()
        target = None
        if self.state.load_state():
            target = self.state.state.previous_task_definition_arn

        if not target:
            current = strategy.service_manager.get_service_status().task_definition
            target = strategy.task_definitions.previous_revision(current) if current else None

        if not target:
            raise DeploymentError("No previous task definition to roll back to")

        strategy.service_manager.update_service(target)
        if wait and strategy.waits_for_service:
            strategy.service_manager.wait_for_stable()
        self.state.mark_rolled_back()

        return {'status': 'rolled_back', 'task_definition_arn': target}

    def status(self) -> Dict[str, Any]:
        """Service, cluster and last-deployment summary."""
        strategy = self._ready()
        self.state.load_state()
        status = strategy.service_manager.get_service_status()
        return {
            'cluster': strategy.cluster_manager.get_cluster_info(),
            'service': status.to_dict(),
            'endpoints': strategy.service_manager.get_public_endpoints(),
            'last_deployment': self.state.get_status_summary(),
        }

    @log_operation("Opening container port on service security groups")
    def open_port(self) -> Dict[str, bool]:
        """Add the inbound rule on every security group attached to the service."""
        strategy = self._ready()
        groups = strategy.service_manager.get_service_status().security_groups
        if not groups:
            raise DeploymentError(f"Service {self.settings.ecs_service_name} has no security groups")
        return {group_id: strategy.network.ensure_ingress(group_id) for group_id in groups}

    @log_operation("ECS teardown")
    def teardown(self, delete_repository: bool = False) -> None:
        """Remove service, cluster and security group in reverse creation order."""
        strategy = self._ready()
        strategy.service_manager.delete_service()
        strategy.cluster_manager.delete_cluster()
        strategy.network.cleanup()
        if delete_repository:
            strategy.publisher.delete_repository()
        self.state.cleanup_state_file()

    def _run_phase(self, phase: DeploymentPhase, action, resources_of):
        self.state.start_phase(phase)
        try:
            result = action()
        except Exception as e:
            self.state.fail_phase(phase, str(e))
            raise
        self.state.complete_phase(phase, resources_of(result))
        return result
