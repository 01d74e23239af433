"""AWS utility functions and client management."""
import os
import boto3
import logging
from typing import Any, Dict, List, Optional
from calculator_api.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class AWSClientManager:
    """Manager for AWS service clients, one shared instance per connection target.

    The target (mode, region, endpoint, access key) comes from the settings the
    manager is created with, so settings built for a different deployment mode
    never reuse clients pointed somewhere else.
    """
    _instances = {}

    def __new__(cls, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        key = (
            settings.deployment_mode,
            settings.aws_region,
            settings.aws_endpoint_url,
            settings.aws_access_key_id,
        )
        if key not in cls._instances:
            instance = super(AWSClientManager, cls).__new__(cls)
            instance._initialize(settings)
            cls._instances[key] = instance
        return cls._instances[key]

    def _initialize(self, settings: Settings):
        """Initialize the client manager with settings."""
        self.settings = settings
        self._clients = {}

        # Cache commonly used values
        self.region = self.settings.aws_region
        self.endpoint_url = self.settings.aws_endpoint_url
        self.mode = self.settings.deployment_mode

        logger.info("Initializing AWSClientManager")
        logger.info(f"  Mode: {self.mode}")
        logger.info(f"  Region: {self.region}")
        logger.info(f"  Endpoint: {self.endpoint_url}")
    def get_client(self, service_name: str) -> Any:
        """Get or create an AWS service client."""
        if service_name in self._clients:
            return self._clients[service_name]

        client_kwargs = {
            'region_name': self.region
        }

        # Named profile (SSO) takes precedence in production
        aws_profile = os.environ.get('AWS_PROFILE')
        if aws_profile and self.mode == 'aws-prod':
            session = boto3.Session(profile_name=aws_profile)
            client = session.client(service_name, **client_kwargs)
            self._clients[service_name] = client
            logger.debug(f"Created {service_name} client using profile: {aws_profile}")
            return client

        if self.settings.aws_access_key_id:
            client_kwargs['aws_access_key_id'] = self.settings.aws_access_key_id
        if self.settings.aws_secret_access_key:
            client_kwargs['aws_secret_access_key'] = self.settings.aws_secret_access_key

        # moto server endpoint for local/mock modes
        if self.endpoint_url and self.mode in ['local-dev', 'aws-mock']:
            client_kwargs['endpoint_url'] = self.endpoint_url

        try:
            client = boto3.client(service_name, **client_kwargs)
            self._clients[service_name] = client
            logger.debug(f"Created {service_name} client")
            return client
        except Exception as e:
            logger.error(f"Error creating {service_name} client: {str(e)}")
            raise

    @classmethod
    def reset(cls):
        """Drop every manager so the next use re-reads settings."""
        cls._instances.clear()


# Convenience functions for common operations

def get_ec2_client(settings: Optional[Settings] = None):
    """Get the EC2 client."""
    return AWSClientManager(settings).get_client('ec2')


def get_ecr_client(settings: Optional[Settings] = None):
    """Get the ECR client."""
    return AWSClientManager(settings).get_client('ecr')


def get_ecs_client(settings: Optional[Settings] = None):
    """Get the ECS client."""
    return AWSClientManager(settings).get_client('ecs')


def get_iam_client(settings: Optional[Settings] = None):
    """Get the IAM client."""
    return AWSClientManager(settings).get_client('iam')


def get_logs_client(settings: Optional[Settings] = None):
    """Get the CloudWatch Logs client."""
    return AWSClientManager(settings).get_client('logs')


def get_sts_client(settings: Optional[Settings] = None):
    """Get the STS client."""
    return AWSClientManager(settings).get_client('sts')


def project_tags(settings, purpose: str = None) -> List[Dict[str, str]]:
    """ECS-style (lowercase key/value) tags identifying project resources."""
    tags = [
        {'key': 'Project', 'value': settings.app_name},
        {'key': 'ManagedBy', 'value': 'calculator-api'},
    ]
    if purpose:
        tags.append({'key': 'Purpose', 'value': purpose})
    return tags


def ec2_tags(settings, name: str) -> List[Dict[str, str]]:
    """EC2/IAM-style (capitalized Key/Value) tags identifying project resources."""
    return [
        {'Key': 'Name', 'Value': name},
        {'Key': 'Project', 'Value': settings.app_name},
    ]
