#!/usr/bin/env python3
"""
Exception types raised by the deployment orchestrator.
"""


class DeploymentError(Exception):
    """Base class for all orchestrator errors."""


class ContractViolation(DeploymentError):
    """A step or call broke an invariant. Never routed through rollback."""


class DeploymentStateError(DeploymentError):
    """Operation not allowed in the orchestrator's current state."""


class PreflightArtifactMissing(DeploymentError):
    """One or more templates are missing from the deployment bucket."""

    def __init__(self, bucket, template_paths):
        self.bucket = bucket
        self.template_paths = sorted(template_paths)
        super().__init__(
            f"The cloudformation template(s) {', '.join(self.template_paths)} "
            f"were not found in deployment bucket {bucket}"
        )


class StackNotDeployable(DeploymentError):
    """The target stack is missing or not in a state that accepts updates."""

    def __init__(self, stack_name, status=None):
        self.stack_name = stack_name
        self.status = status
        super().__init__(f"Stack {stack_name} can not be updated (status: {status or 'unknown'})")


class ReadinessTimeout(DeploymentError):
    """Tables did not become ready within the configured timeout."""

    def __init__(self, table_names, timeout):
        self.table_names = sorted(table_names)
        self.timeout = timeout
        super().__init__(
            f"Tables {', '.join(self.table_names)} not ready after {timeout:.0f}s"
        )


class StepError(DeploymentError):
    """An action for one step failed. Wraps the underlying cause."""

    action = "step"

    def __init__(self, index, stack_name, cause):
        self.index = index
        self.stack_name = stack_name
        self.cause = cause
        super().__init__(f"{self.action} failed for stack {stack_name} (step {index}): {cause}")


class OperationError(StepError):
    action = "Update"


class StabilityError(StepError):
    action = "Waiting for stack update"


class ReadinessError(StepError):
    action = "Waiting for table indices"


class RollbackOperationError(StepError):
    action = "Rollback"


class DeploymentUnsuccessful(DeploymentError):
    """The run ended in a terminal state other than DEPLOYED."""

    terminal_state = None

    def __init__(self, message, error):
        self.error = error
        super().__init__(message)


class DeploymentRolledBack(DeploymentUnsuccessful):
    """Deployment failed and every deployed step was rolled back."""

    def __init__(self, error):
        from .models import Phase
        self.terminal_state = Phase.ROLLED_BACK
        super().__init__(f"Deployment failed and was rolled back: {error}", error)


class DeploymentFailed(DeploymentUnsuccessful):
    """Rollback itself failed. Stacks are in an indeterminate state."""

    def __init__(self, error, rollback_error):
        from .models import Phase
        self.terminal_state = Phase.FAILED
        self.rollback_error = rollback_error
        super().__init__(
            f"Deployment failed: {error}. Rollback failed: {rollback_error}. "
            f"Manual intervention is required",
            error,
        )
