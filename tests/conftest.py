"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from iterdeploy.cloud.base import StackCapabilities  # noqa: E402
from iterdeploy.deployment.models import DeploymentStep, StepOperation  # noqa: E402
from iterdeploy.deployment.orchestrator import DeploymentOrchestrator  # noqa: E402
from iterdeploy.deployment.progress import ProgressObserver  # noqa: E402
from iterdeploy.deployment.rate_limit import RateLimiter  # noqa: E402


def make_step(name, forward_tables=(), backward_tables=()):
    """Step `name` deploying template <name>1.json, rolling back to <name>0.json."""
    return DeploymentStep(
        forward=StepOperation(
            stack_name=name, template_path=f"{name}1.json", table_names=forward_tables,
        ),
        backward=StepOperation(
            stack_name=name, template_path=f"{name}0.json", table_names=backward_tables,
        ),
    )


class FakeCapabilities(StackCapabilities):
    """
    Deterministic capabilities recording every call.

    `failures` maps (method, template_path) to the exception that call raises.
    """

    def __init__(self, missing=(), failures=None, ready_after=0):
        super().__init__(rate_limiter=RateLimiter(rate=10000, burst=100), poll_interval=0.001)
        self.missing = set(missing)
        self.failures = dict(failures or {})
        self.ready_after = ready_after
        self.calls = []
        self.streams = []
        self.table_checks = {}

    def _maybe_fail(self, method, operation):
        error = self.failures.get((method, operation.template_path))
        if error is not None:
            raise error

    def submit_update(self, operation):
        self.calls.append(('submit_update', operation.template_path))
        self._maybe_fail('submit_update', operation)

    def await_stable(self, operation):
        self.calls.append(('await_stable', operation.stack_name))
        self._maybe_fail('await_stable', operation)

    def wait_for_tables(self, operation):
        self.calls.append(('wait_for_tables', operation.stack_name))
        self._maybe_fail('wait_for_tables', operation)
        super().wait_for_tables(operation)

    def is_table_ready(self, table_name, region):
        count = self.table_checks.get(table_name, 0) + 1
        self.table_checks[table_name] = count
        return count > self.ready_after

    def template_exists(self, bucket, template_path):
        self.calls.append(('template_exists', template_path))
        return template_path not in self.missing

    def start_event_stream(self, operation):
        self.streams.append(('start', operation.template_path))
        return lambda: self.streams.append(('stop', operation.template_path))

    @property
    def mutations(self):
        return [call for call in self.calls if call[0] == 'submit_update']


class RecordingObserver(ProgressObserver):
    def __init__(self):
        self.messages = []
        self.succeeded = []
        self.failed = []

    def status(self, message, completed, total):
        self.messages.append((message, completed, total))

    def succeed(self, message):
        self.succeeded.append(message)

    def fail(self, message):
        self.failed.append(message)


@pytest.fixture
def fake():
    return FakeCapabilities()


@pytest.fixture
def build_orchestrator():
    def _build(capabilities, steps=()):
        orchestrator = DeploymentOrchestrator("deploy-bucket", "us-east-1", lambda observer: capabilities)
        for step in steps:
            orchestrator.add_step(step)
        return orchestrator
    return _build
