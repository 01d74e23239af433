"""Exceptions raised by the deployment tooling."""


class DeploymentError(Exception):
    """Base class for deployment failures the CLI reports and exits on."""


class ImagePublishError(DeploymentError):
    """Docker login, build or push failed."""


class ServiceNotFoundError(DeploymentError):
    """The ECS service does not exist or is not ACTIVE."""


class VerificationError(DeploymentError):
    """The deployed endpoint did not answer its health check."""
