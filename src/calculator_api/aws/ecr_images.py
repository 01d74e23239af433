"""Build the calculator image and publish it to ECR."""
import base64
import logging
import subprocess
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from calculator_api.aws.errors import ImagePublishError
from calculator_api.aws.utils import get_ecr_client, ec2_tags
from calculator_api.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class ECRImagePublisher:
    """Creates the ECR repository and pushes tagged images to it."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.ecr_client = get_ecr_client(self.settings)
        self.repository_name = self.settings.ecr_repo_name
        self.repository_uri = None

    def ensure_repository(self) -> str:
        """Create the repository if needed and return its URI."""
        try:
            response = self.ecr_client.create_repository(
                repositoryName=self.repository_name,
                imageScanningConfiguration={'scanOnPush': True},
                tags=ec2_tags(self.settings, self.repository_name)
            )
            self.repository_uri = response['repository']['repositoryUri']
            logger.info(f"Created ECR repository: {self.repository_uri}")
        except self.ecr_client.exceptions.RepositoryAlreadyExistsException:
            response = self.ecr_client.describe_repositories(
                repositoryNames=[self.repository_name]
            )
            self.repository_uri = response['repositories'][0]['repositoryUri']
            logger.info(f"Using existing ECR repository: {self.repository_uri}")

        return self.repository_uri

    def get_login_credentials(self) -> Dict[str, str]:
        """Decode the ECR authorization token into docker login credentials."""
        response = self.ecr_client.get_authorization_token()
        token_data = response['authorizationData'][0]

        # Token is base64("AWS:<password>")
        username, password = base64.b64decode(token_data['authorizationToken']).decode('utf-8').split(':', 1)
        return {
            'username': username,
            'password': password,
            'endpoint': token_data['proxyEndpoint'],
        }

    def login(self) -> None:
        """Log the local docker daemon in to the registry."""
        credentials = self.get_login_credentials()
        self._docker(
            ['login', '--username', credentials['username'], '--password-stdin', credentials['endpoint']],
            input=credentials['password'].encode(),
        )
        logger.info(f"Docker logged in to {credentials['endpoint']}")

    def image_reference(self, tag: str) -> str:
        if not self.repository_uri:
            self.ensure_repository()
        return f"{self.repository_uri}:{tag}"

    def build(self, context: str = ".", dockerfile: str = "Dockerfile", tags: Iterable[str] = ("latest",)) -> List[str]:
        """Build the image from `context` and tag it once per tag."""
        context_path = Path(context)
        dockerfile_path = Path(dockerfile)
        if not dockerfile_path.is_absolute():
            dockerfile_path = context_path / dockerfile_path
        if not dockerfile_path.exists():
            raise ImagePublishError(f"Dockerfile not found: {dockerfile_path}")

        references = [self.image_reference(tag) for tag in tags]
        command = ['build', '-f', str(dockerfile_path)]
        for reference in references:
            command.extend(['-t', reference])
        command.append(str(context_path))

        logger.info(f"Building Docker image with context: {context_path}")
        self._docker(command)
        return references

    def push(self, references: Iterable[str]) -> None:
        for reference in references:
            logger.info(f"Pushing Docker image {reference}")
            self._docker(['push', reference])

    def publish(self, context: str = ".", tag: Optional[str] = None,
                extra_tags: Iterable[str] = ("latest",), dockerfile: str = "Dockerfile") -> str:
        """Ensure repository, login, build and push. Returns the URI for `tag`."""
        tag = tag or self.settings.image_tag
        tags = [tag] + [t for t in extra_tags if t != tag]

        self.ensure_repository()
        self.login()
        references = self.build(context, dockerfile, tags)
        self.push(references)

        logger.info(f"Published {references[0]}")
        return references[0]

    def image_exists(self, tag: Optional[str] = None) -> bool:
        """Check whether `tag` is already in the repository."""
        tag = tag or self.settings.image_tag
        try:
            response = self.ecr_client.describe_images(
                repositoryName=self.repository_name,
                imageIds=[{'imageTag': tag}]
            )
            images = response.get('imageDetails', [])
            if images:
                logger.info(f"Found existing image {self.repository_name}:{tag}, pushed {images[0].get('imagePushedAt', 'unknown time')}")
                return True
            return False
        except (self.ecr_client.exceptions.ImageNotFoundException,
                self.ecr_client.exceptions.RepositoryNotFoundException):
            return False

    def delete_repository(self) -> None:
        """Delete the repository and every image in it."""
        try:
            self.ecr_client.delete_repository(repositoryName=self.repository_name, force=True)
            logger.info(f"Deleted ECR repository: {self.repository_name}")
        except self.ecr_client.exceptions.RepositoryNotFoundException:
            logger.info(f"ECR repository already gone: {self.repository_name}")

    def _docker(self, args: List[str], input: Optional[bytes] = None) -> None:
        try:
            subprocess.run(['docker'] + args, input=input, check=True)
        except FileNotFoundError as e:
            raise ImagePublishError("docker executable not found on PATH") from e
        except subprocess.CalledProcessError as e:
            raise ImagePublishError(f"docker {args[0]} failed with exit code {e.returncode}") from e
