#!/usr/bin/env python3
"""
Capability factory and package exports.
"""

import boto3

from .base import StackCapabilities
from .cloudformation import CloudFormationCapabilities
from .events import StackEventMonitor


def create_session(region=None, profile=None):
    """boto3 session from the default credential chain or a named profile."""
    return boto3.session.Session(profile_name=profile, region_name=region)


def get_capabilities(session, region, observer=None, options=None, rate_limiter=None):
    """
    Factory function to create the capabilities a deployment run uses.

    Args:
        session: boto3 session holding live credentials
        region: Region the stacks and tables live in
        observer: Progress observer receiving stack events
        options: DeploymentOptions with polling delays and timeouts
        rate_limiter: Limiter shared by the run's readiness polls

    Returns:
        CloudFormationCapabilities instance
    """
    return CloudFormationCapabilities(
        session, region, observer=observer, options=options, rate_limiter=rate_limiter,
    )


# Package exports
__all__ = [
    'StackCapabilities', 'CloudFormationCapabilities', 'StackEventMonitor',
    'create_session', 'get_capabilities',
]
