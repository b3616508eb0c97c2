#!/usr/bin/env python3
"""
Iterative Deployment Orchestrator
Deploys an ordered list of stack updates and rolls them back in reverse on failure.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from .errors import (
    ContractViolation, DeploymentFailed, DeploymentRolledBack,
    DeploymentStateError, PreflightArtifactMissing,
)
from .models import (
    DeploymentSequence, DeploymentStep, OrchestrationContext,
    Phase, Substate,
)
from .progress import GuardedObserver, ProgressObserver
from .rate_limit import RateLimiter
from .state_machine import DeploymentMachine
from .state_manager import (
    DeploymentStateRecorder, DeploymentStatus, DeploymentStepStatus,
)
from .utils import get_bucket_key, get_http_url, prefixed_token
from ..config.options import DeploymentOptions

logger = logging.getLogger(__name__)


@dataclass
class DeploymentOutcome:
    """Result of a run that reached DEPLOYED."""

    state: Phase
    steps: int
    context: Optional[OrchestrationContext] = None


class _ProgressTracker:
    """Turns transitions into status texts for the progress observer."""

    def __init__(self, observer, total):
        self.observer = observer
        self.total = total
        self.max_deployed = 0

    def update(self, state, context):
        index = context.current_index
        self.max_deployed = min(self.total, max(self.max_deployed, index + 1))

        if state.phase == Phase.IDLE:
            self.observer.status("Starting deployment", 0, self.total)
        elif state.phase == Phase.DEPLOYING:
            self.observer.status(
                f"Deploying stack ({self.max_deployed} of {self.total})", index, self.total
            )
        elif state.phase == Phase.ROLLING_BACK:
            self.observer.status(
                f"Rolling back ({self.max_deployed - index} of {self.max_deployed})",
                self.max_deployed - index - 1, self.max_deployed,
            )
        elif state.phase == Phase.DEPLOYED:
            self.observer.status("Deployed", self.total, self.total)
            self.observer.succeed("Deployed")
        elif state.phase == Phase.ROLLED_BACK:
            self.observer.status("Rolled back", self.max_deployed, self.max_deployed)
            self.observer.fail(f"Deployment failed and was rolled back: {context.error}")
        elif state.phase == Phase.FAILED:
            self.observer.fail(
                f"Rollback failed: {context.rollback_error}. Manual intervention is required"
            )


class DeploymentOrchestrator:
    """
    Owns the deployment sequence and drives the state machine over it.

    `capabilities_factory(observer)` returns the StackCapabilities a run
    executes against; create_instance() binds it to a live boto3 session.
    """

    def __init__(self, bucket, region, capabilities_factory, options=None):
        if not bucket:
            raise ContractViolation("deployment bucket is required")
        if not region:
            raise ContractViolation("region is required")
        self.bucket = bucket
        self.region = region
        self.options = options or DeploymentOptions()
        self._capabilities_factory = capabilities_factory
        self._sequence = DeploymentSequence()
        self._lock = threading.Lock()

    @classmethod
    def create_instance(cls, bucket, region=None, profile=None, options=None):
        """Orchestrator bound to CloudFormation with credentials from the default chain or profile."""
        from ..cloud import create_session, get_capabilities

        session = create_session(region=region, profile=profile)
        region = region or session.region_name
        if not region:
            raise ContractViolation("Could not determine the AWS region, set it in the plan or config")
        options = options or DeploymentOptions()
        rate_limiter = RateLimiter.from_delay(options.throttle_delay)

        def factory(observer):
            return get_capabilities(
                session, region, observer=observer, options=options, rate_limiter=rate_limiter,
            )

        return cls(bucket, region, factory, options)

    @property
    def steps(self):
        return list(self._sequence)

    @property
    def started(self):
        return self._sequence.sealed

    def add_step(self, step):
        """Resolve template locations for both operations and append the step."""
        step.forward.validate()
        step.backward.validate()
        resolved = DeploymentStep(
            forward=self._resolve(step.forward, 'deploy'),
            backward=self._resolve(step.backward, 'rollback'),
        )
        self._sequence.append(resolved)
        logger.debug("Added step %d for stack %s", len(self._sequence) - 1, step.forward.stack_name)

    def _resolve(self, operation, token_prefix):
        location = operation.template_url or operation.template_path
        return operation.with_location(
            template_path=get_bucket_key(location, self.bucket),
            template_url=get_http_url(location, self.bucket),
            region=operation.region or self.region,
            client_request_token=prefixed_token(operation.client_request_token, token_prefix),
        )

    def run(self, observer=None, recorder=None):
        """
        Deploy every step, rolling back on failure.

        Returns DeploymentOutcome when all steps deployed. Raises
        PreflightArtifactMissing before any update when a template is
        missing, DeploymentRolledBack when the rollback restored every
        stack, DeploymentFailed when the rollback itself failed. Observer and
        recorder failures are logged and never change the outcome.
        """
        observer = GuardedObserver(observer or ProgressObserver())
        recorder = recorder or DeploymentStateRecorder()

        with self._lock:
            if self._sequence.sealed:
                raise DeploymentStateError("Deployment has already been started")
            if not len(self._sequence):
                raise ContractViolation("No deployment steps have been added")
            steps = self._sequence.seal()

        capabilities = self._capabilities_factory(observer)
        self._preflight(capabilities, steps)

        context = OrchestrationContext(sequence=steps, bucket=self.bucket, region=self.region)
        tracker = _ProgressTracker(observer, len(steps))
        machine = DeploymentMachine(capabilities)

        previous = None
        state = None
        for state, context in machine.start(context):
            tracker.update(state, context)
            self._record(recorder, previous, state, context)
            previous = state

        if state.phase == Phase.DEPLOYED:
            logger.info("Deployed %d step(s)", len(steps))
            return DeploymentOutcome(state=Phase.DEPLOYED, steps=len(steps), context=context)
        if state.phase == Phase.ROLLED_BACK:
            raise DeploymentRolledBack(context.error)
        raise DeploymentFailed(context.error, context.rollback_error)

    def _preflight(self, capabilities, steps):
        """Check every forward and backward template exists before anything is mutated."""
        templates = sorted({
            operation.template_path
            for step in steps
            for operation in (step.forward, step.backward)
        })
        logger.info("Checking %d template(s) in deployment bucket %s", len(templates), self.bucket)

        workers = max(1, min(self.options.preflight_workers, len(templates)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="preflight") as pool:
            found = list(pool.map(lambda path: capabilities.template_exists(self.bucket, path), templates))

        missing = [path for path, exists in zip(templates, found) if not exists]
        if missing:
            raise PreflightArtifactMissing(self.bucket, missing)

    def _record(self, recorder, previous, state, context):
        for method, args in _recorder_calls(previous, state, context):
            try:
                getattr(recorder, method)(*args)
            except Exception:
                logger.warning("Deployment state recorder %s%r failed", method, args, exc_info=True)


def _recorder_calls(previous, state, context):
    """Map one transition to the recorder calls that persist it."""
    total = len(context.sequence)

    if state.phase == Phase.DEPLOYING:
        if state.substate == Substate.TRIGGER_OPERATION:
            if previous.phase == Phase.IDLE:
                if total > 1:
                    return [('start_deployment', ([DeploymentStepStatus.WAITING_FOR_DEPLOYMENT] * total,))]
                return []
            return [('advance_step', (DeploymentStepStatus.DEPLOYED,))]
        if state.substate == Substate.WAIT_FOR_READINESS:
            return [('update_current_step_status', (DeploymentStepStatus.WAITING_FOR_TABLE_READY,))]
        return [('update_current_step_status', (DeploymentStepStatus.DEPLOYING,))]

    if state.phase == Phase.ROLLING_BACK:
        if state.substate == Substate.TRIGGER_OPERATION:
            if previous.phase == Phase.DEPLOYING:
                return [('start_rollback', ())]
            return [('advance_step', (DeploymentStepStatus.ROLLED_BACK,))]
        if state.substate == Substate.WAIT_FOR_READINESS:
            return [('update_current_step_status', (DeploymentStepStatus.WAITING_FOR_TABLE_READY,))]
        return [('update_current_step_status', (DeploymentStepStatus.WAITING_FOR_ROLLBACK,))]

    if state.phase == Phase.DEPLOYED:
        return [
            ('update_current_step_status', (DeploymentStepStatus.DEPLOYED,)),
            ('finish_deployment', (DeploymentStatus.DEPLOYED,)),
        ]
    if state.phase == Phase.ROLLED_BACK:
        return [
            ('update_current_step_status', (DeploymentStepStatus.ROLLED_BACK,)),
            ('finish_deployment', (DeploymentStatus.ROLLED_BACK,)),
        ]
    if state.phase == Phase.FAILED:
        return [('finish_deployment', (DeploymentStatus.FAILED,))]
    return []
