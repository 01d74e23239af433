"""ECS cluster management with Fargate capacity providers."""
import logging
from typing import Dict, Any, Optional
from botocore.exceptions import ClientError

from calculator_api.aws.utils import get_ecs_client, project_tags
from calculator_api.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

FARGATE_CAPACITY_PROVIDERS = ['FARGATE', 'FARGATE_SPOT']


class ECSClusterManager:
    """Manager for the ECS cluster the calculator service runs in."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.ecs_client = get_ecs_client(self.settings)
        self.cluster_name = self.settings.ecs_cluster_name
        self.cluster_arn = None

    def create_cluster(self) -> Dict[str, Any]:
        """Create the cluster, or return it if it is already ACTIVE."""
        try:
            existing_cluster = self._find_existing_cluster()
            if existing_cluster:
                self.cluster_arn = existing_cluster['clusterArn']
                logger.info(f"Using existing ECS cluster: {self.cluster_name}")
                return existing_cluster

            cluster_response = self.ecs_client.create_cluster(
                clusterName=self.cluster_name,
                tags=[{'key': 'Name', 'value': self.cluster_name}] + project_tags(self.settings, 'Calculator-Web'),
                capacityProviders=FARGATE_CAPACITY_PROVIDERS,
                defaultCapacityProviderStrategy=[
                    {'capacityProvider': 'FARGATE', 'weight': 1, 'base': 0}
                ],
                settings=[
                    {
                        'name': 'containerInsights',
                        'value': 'disabled'
                    }
                ]
            )

            cluster = cluster_response['cluster']
            self.cluster_arn = cluster['clusterArn']
            logger.info(f"Created ECS cluster: {self.cluster_name}")
            return cluster

        except ClientError as e:
            logger.error(f"Failed to create ECS cluster: {e}")
            raise

    def get_cluster_info(self) -> Dict[str, Any]:
        """Get cluster configuration."""
        cluster = self._find_existing_cluster()
        return {
            'cluster_name': self.cluster_name,
            'cluster_arn': cluster['clusterArn'] if cluster else None,
            'status': cluster['status'] if cluster else 'MISSING',
            'running_tasks': cluster.get('runningTasksCount', 0) if cluster else 0,
            'active_services': cluster.get('activeServicesCount', 0) if cluster else 0,
        }

    def delete_cluster(self) -> None:
        """Delete the cluster. Services must be deleted first."""
        try:
            self.ecs_client.delete_cluster(cluster=self.cluster_name)
            logger.info(f"Deleted ECS cluster: {self.cluster_name}")
        except ClientError as e:
            if e.response['Error']['Code'] == 'ClusterNotFoundException':
                logger.info(f"ECS cluster already gone: {self.cluster_name}")
                return
            logger.error(f"Failed to delete ECS cluster: {e}")
            raise

    def _find_existing_cluster(self) -> Optional[Dict[str, Any]]:
        """Find existing ACTIVE cluster by name."""
        try:
            response = self.ecs_client.describe_clusters(clusters=[self.cluster_name])
            for cluster in response.get('clusters', []):
                if cluster['status'] == 'ACTIVE':
                    return cluster
            return None
        except ClientError:
            return None
