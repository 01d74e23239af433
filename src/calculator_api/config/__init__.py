"""
Configuration management for the calculator app.

Contains the Pydantic settings shared by the web server and the ECS deployment
tooling across local-dev, aws-mock, and aws-prod deployment modes.
"""
