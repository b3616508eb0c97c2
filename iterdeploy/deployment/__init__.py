"""
Deployment and orchestration package.

This package contains the deployment state machine, the orchestrator that
drives it over a sequence of stack updates, and the readiness, progress and
persisted-state helpers it reports through.
"""

__all__ = [
    'orchestrator', 'state_machine', 'models', 'errors', 'progress',
    'rate_limit', 'readiness', 'state_manager', 'utils',
]
