"""Calculator web app and its ECS Fargate deployment tooling."""

__version__ = "1.0.0"
