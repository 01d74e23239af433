# src/calculator_api/config/settings.py
from typing import Optional, Dict, Any
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

VALID_DEPLOYMENT_MODES = ["local-dev", "aws-mock", "aws-prod"]

# Fargate task size classes: cpu units -> allowed memory (MiB)
FARGATE_SIZES = {
    "256": ["512", "1024", "2048"],
    "512": [str(m) for m in range(1024, 4097, 1024)],
    "1024": [str(m) for m in range(2048, 8193, 1024)],
    "2048": [str(m) for m in range(4096, 16385, 1024)],
    "4096": [str(m) for m in range(8192, 30721, 1024)],
}


class Settings(BaseSettings):
    """
    Single source of truth for the calculator app and its deployment tooling.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    Usage:
        from calculator_api.config.settings import get_settings
        settings = get_settings()
        image = settings.image_uri
    """

    # Application Settings
    app_name: str = Field(
        default="calculator-app",
        description="Application name, also the prefix for AWS resource names"
    )

    # Deployment Mode
    deployment_mode: str = Field(
        default="local-dev",
        description="Deployment mode: local-dev, aws-mock, or aws-prod"
    )

    # Web server
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(
        default=3000,
        ge=1,
        le=65535,
        description="Web server port, also the container port"
    )

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-1",
        alias="AWS_DEFAULT_REGION"
    )

    aws_access_key_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCESS_KEY_ID"
    )

    aws_secret_access_key: Optional[str] = Field(
        default=None,
        alias="AWS_SECRET_ACCESS_KEY"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        alias="AWS_ENDPOINT_URL"
    )

    aws_account_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCOUNT_ID",
        description="AWS Account ID (auto-detected if not provided)"
    )

    # ECR Configuration
    ecr_repo_name: str = Field(
        default="calculator-app",
        description="ECR repository name"
    )

    image_tag: str = Field(
        default="latest",
        description="Image tag pushed and deployed"
    )

    # ECS Configuration (derived from app_name when empty)
    ecs_cluster_name: Optional[str] = Field(default=None, description="ECS cluster name")
    ecs_service_name: Optional[str] = Field(default=None, description="ECS service name")
    task_definition_family: Optional[str] = Field(default=None, description="Task definition family")
    container_name: Optional[str] = Field(default=None, description="Container name in the task definition")

    task_cpu: str = Field(default="256", description="Fargate CPU units")
    task_memory: str = Field(default="512", description="Fargate memory (MiB)")

    desired_count: int = Field(default=1, ge=0, description="Number of tasks kept running")

    assign_public_ip: bool = Field(
        default=True,
        description="Give Fargate tasks a public IP (required without a load balancer)"
    )

    ingress_cidr: str = Field(
        default="0.0.0.0/0",
        description="Source CIDR allowed to reach the container port"
    )

    vpc_id: Optional[str] = Field(
        default=None,
        description="VPC to deploy into (default VPC when not set)"
    )

    log_retention_days: int = Field(default=7, description="CloudWatch log retention")

    # Deployment tracking
    state_file: str = Field(
        default=".deployment_state.json",
        description="Deployment state ledger"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator('deployment_mode', mode='before')
    @classmethod
    def normalize_deployment_mode(cls, v):
        """Normalize short deployment mode names."""
        if v:
            mode_mapping = {
                "local": "local-dev",
                "mock": "aws-mock",
                "prod": "aws-prod",
            }
            return mode_mapping.get(v, v)
        return v

    @field_validator('deployment_mode')
    @classmethod
    def validate_deployment_mode(cls, v):
        """Validate deployment mode is one of the allowed values."""
        if v not in VALID_DEPLOYMENT_MODES:
            raise ValueError(f"Invalid deployment_mode: {v}. Must be one of {VALID_DEPLOYMENT_MODES}")
        return v

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper()

    @model_validator(mode='after')
    def apply_derived_defaults(self):
        """Fill resource names from app_name and set local-mode AWS defaults."""
        if self.task_memory not in FARGATE_SIZES.get(self.task_cpu, []):
            raise ValueError(
                f"Invalid Fargate size: cpu={self.task_cpu} memory={self.task_memory}"
            )

        prefix = self.app_name.lower().replace(' ', '-')
        if not self.ecs_cluster_name:
            self.ecs_cluster_name = f"{prefix}-cluster"
        if not self.ecs_service_name:
            self.ecs_service_name = f"{prefix}-service"
        if not self.task_definition_family:
            self.task_definition_family = f"{prefix}-task"
        if not self.container_name:
            self.container_name = prefix

        # Local modes talk to a moto server with mock credentials
        if self.deployment_mode in ["local-dev", "aws-mock"]:
            if self.aws_endpoint_url is None:
                self.aws_endpoint_url = "http://localhost:5000"
            if self.aws_access_key_id is None:
                self.aws_access_key_id = "mock"
            if self.aws_secret_access_key is None:
                self.aws_secret_access_key = "mock"
        return self

    @property
    def account_id(self) -> str:
        """Get AWS account ID with auto-detection fallback."""
        if self.aws_account_id:
            return self.aws_account_id

        if self.deployment_mode == "aws-prod":
            from calculator_api.aws.utils import get_sts_client
            return get_sts_client(self).get_caller_identity()['Account']

        # moto's default account
        return "123456789012"

    @property
    def ecr_registry(self) -> str:
        """Get ECR registry URL."""
        return f"{self.account_id}.dkr.ecr.{self.aws_region}.amazonaws.com"

    @property
    def image_uri(self) -> str:
        """Fully-qualified image URI for the configured tag."""
        return f"{self.ecr_registry}/{self.ecr_repo_name}:{self.image_tag}"

    @property
    def log_group_name(self) -> str:
        return f"/ecs/{self.task_definition_family}"

    def get_container_environment(self) -> Dict[str, str]:
        """Environment passed to the container in the task definition."""
        return {
            'APP_NAME': self.app_name,
            'DEPLOYMENT_MODE': self.deployment_mode,
            'PORT': str(self.port),
            'LOG_LEVEL': self.log_level,
        }

    def as_display_dict(self) -> Dict[str, Any]:
        """Configuration summary without secrets."""
        return {
            'Deployment Mode': self.deployment_mode,
            'App Name': self.app_name,
            'Listen': f"{self.host}:{self.port}",
            'AWS Region': self.aws_region,
            'AWS Endpoint': self.aws_endpoint_url,
            'ECR Repository': self.ecr_repo_name,
            'Image Tag': self.image_tag,
            'ECS Cluster': self.ecs_cluster_name,
            'ECS Service': self.ecs_service_name,
            'Task Definition': self.task_definition_family,
            'Container': self.container_name,
            'Task Size': f"{self.task_cpu} CPU / {self.task_memory} MiB",
            'Desired Count': self.desired_count,
            'Public IP': self.assign_public_ip,
            'Ingress CIDR': self.ingress_cidr,
        }

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()
