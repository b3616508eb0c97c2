#!/usr/bin/env python3
"""
Data model for iterative deployments: step operations, the deployment
sequence, the orchestration context and the machine states.
"""

import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple

from .errors import ContractViolation, DeploymentStateError


@dataclass(frozen=True)
class StepOperation:
    """One directional stack update: which template, with which parameters."""

    stack_name: str
    template_path: str
    template_url: str = ""
    region: str = ""
    parameters: Mapping[str, str] = field(default_factory=dict)
    capabilities: Tuple[str, ...] = ()
    client_request_token: Optional[str] = None
    table_names: FrozenSet[str] = frozenset()

    def __post_init__(self):
        # Frozen dataclass: normalise containers so the operation can't be mutated through them
        params = {str(k): str(v) for k, v in dict(self.parameters).items()}
        object.__setattr__(self, 'parameters', MappingProxyType(params))
        object.__setattr__(self, 'capabilities', tuple(self.capabilities))
        object.__setattr__(self, 'table_names', frozenset(self.table_names))

    def validate(self):
        if not self.stack_name:
            raise ContractViolation("stack name should be passed for every step operation")
        if not self.template_path and not self.template_url:
            raise ContractViolation(f"stack {self.stack_name} has no template location")

    def with_location(self, template_path, template_url, region, client_request_token):
        return replace(
            self,
            template_path=template_path,
            template_url=template_url,
            region=region,
            client_request_token=client_request_token,
        )


@dataclass(frozen=True)
class DeploymentStep:
    """Forward operation plus the operation that undoes it."""

    forward: StepOperation
    backward: StepOperation

    def operation(self, rolling_back):
        return self.backward if rolling_back else self.forward


class DeploymentSequence:
    """Ordered, append-only list of steps. Sealed once a run starts."""

    def __init__(self, steps=None):
        self._steps = list(steps or [])
        self._sealed = False
        self._lock = threading.Lock()

    def append(self, step):
        with self._lock:
            if self._sealed:
                raise DeploymentStateError(
                    "Deployment has started. Can not add steps once the deployment has been started"
                )
            self._steps.append(step)

    def seal(self):
        """Reject further appends. Returns an immutable snapshot of the steps."""
        with self._lock:
            if self._sealed:
                raise DeploymentStateError("Deployment has already been started")
            self._sealed = True
            return tuple(self._steps)

    @property
    def sealed(self):
        return self._sealed

    def __len__(self):
        return len(self._steps)

    def __iter__(self):
        return iter(list(self._steps))

    def __getitem__(self, index):
        return self._steps[index]


class Phase(Enum):
    IDLE = "idle"
    DEPLOYING = "deploying"
    ROLLING_BACK = "rolling_back"
    DEPLOYED = "deployed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


class Substate(Enum):
    TRIGGER_OPERATION = "trigger_operation"
    WAIT_FOR_READINESS = "wait_for_readiness"
    WAIT_FOR_STABILITY = "wait_for_stability"


TERMINAL_PHASES = frozenset({Phase.DEPLOYED, Phase.ROLLED_BACK, Phase.FAILED})


@dataclass(frozen=True)
class MachineState:
    phase: Phase
    substate: Optional[Substate] = None

    @property
    def is_terminal(self):
        return self.phase in TERMINAL_PHASES

    @property
    def rolling_back(self):
        return self.phase == Phase.ROLLING_BACK

    def matches(self, phase, substate=None):
        if self.phase != phase:
            return False
        return substate is None or self.substate == substate

    def __str__(self):
        if self.substate is None:
            return self.phase.value
        return f"{self.phase.value}.{self.substate.value}"


IDLE = MachineState(Phase.IDLE)
DEPLOYED = MachineState(Phase.DEPLOYED)
ROLLED_BACK = MachineState(Phase.ROLLED_BACK)
FAILED = MachineState(Phase.FAILED)


@dataclass(frozen=True)
class OrchestrationContext:
    """
    Snapshot handed between transitions.

    current_index is -1 before any step started, the in-flight step while
    deploying or rolling back, len(sequence) once every forward step is
    complete and -1 again after a full rollback.
    """

    sequence: Tuple[DeploymentStep, ...]
    current_index: int = -1
    bucket: str = ""
    region: str = ""
    error: Optional[Exception] = None
    rollback_error: Optional[Exception] = None

    def __post_init__(self):
        object.__setattr__(self, 'sequence', tuple(self.sequence))
        if not -1 <= self.current_index <= len(self.sequence):
            raise ContractViolation(
                f"current index {self.current_index} out of range for {len(self.sequence)} steps"
            )

    @property
    def current_step(self):
        if 0 <= self.current_index < len(self.sequence):
            return self.sequence[self.current_index]
        return None

    def evolve(self, **changes):
        return replace(self, **changes)
