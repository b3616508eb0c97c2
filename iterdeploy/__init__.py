"""Iterative CloudFormation deployments with automatic rollback."""

__version__ = "0.3.0"
