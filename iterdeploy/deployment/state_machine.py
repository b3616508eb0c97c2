#!/usr/bin/env python3
"""
Deployment state machine.

`transition()` is a pure function: given the current state, context and the
outcome of the pending action it returns the next state, the next context
and the action to run in that state. `DeploymentMachine` drives it by
evaluating each action against an injected capabilities object.

Deploy walks steps 0..n-1 through TRIGGER_OPERATION -> (WAIT_FOR_READINESS)
-> WAIT_FOR_STABILITY. Any failure switches to ROLLING_BACK at the same
index, which walks back to 0 redeploying each step's backward operation.
A failure while rolling back is terminal (FAILED).
"""

import logging
from collections import namedtuple
from enum import Enum

from .errors import (
    ContractViolation, OperationError, ReadinessError,
    RollbackOperationError, StabilityError,
)
from .models import (
    DEPLOYED, FAILED, IDLE, ROLLED_BACK,
    MachineState, Phase, Substate,
)

logger = logging.getLogger(__name__)


class Action(Enum):
    NONE = "none"
    SUBMIT_FORWARD = "submit_forward"
    SUBMIT_BACKWARD = "submit_backward"
    WAIT_FOR_READINESS = "wait_for_readiness"
    WAIT_FOR_STABILITY = "wait_for_stability"


Transition = namedtuple('Transition', ['state', 'context', 'action'])

_FORWARD_ERRORS = {
    Substate.TRIGGER_OPERATION: OperationError,
    Substate.WAIT_FOR_READINESS: ReadinessError,
    Substate.WAIT_FOR_STABILITY: StabilityError,
}


def action_for(state):
    if state.phase == Phase.DEPLOYING:
        if state.substate == Substate.TRIGGER_OPERATION:
            return Action.SUBMIT_FORWARD
    elif state.phase == Phase.ROLLING_BACK:
        if state.substate == Substate.TRIGGER_OPERATION:
            return Action.SUBMIT_BACKWARD
    else:
        return Action.NONE
    if state.substate == Substate.WAIT_FOR_READINESS:
        return Action.WAIT_FOR_READINESS
    return Action.WAIT_FOR_STABILITY


def _after_trigger(phase, step, rolling_back):
    if step.operation(rolling_back).table_names:
        return MachineState(phase, Substate.WAIT_FOR_READINESS)
    return MachineState(phase, Substate.WAIT_FOR_STABILITY)


def _deploying(state, context, error):
    index = context.current_index
    step = context.current_step

    if error is not None:
        wrapped = _FORWARD_ERRORS[state.substate](index, step.forward.stack_name, error)
        return MachineState(Phase.ROLLING_BACK, Substate.TRIGGER_OPERATION), context.evolve(error=wrapped)

    if state.substate == Substate.TRIGGER_OPERATION:
        return _after_trigger(Phase.DEPLOYING, step, False), context
    if state.substate == Substate.WAIT_FOR_READINESS:
        return MachineState(Phase.DEPLOYING, Substate.WAIT_FOR_STABILITY), context

    context = context.evolve(current_index=index + 1)
    if context.current_index == len(context.sequence):
        return DEPLOYED, context
    return MachineState(Phase.DEPLOYING, Substate.TRIGGER_OPERATION), context


def _rolling_back(state, context, error):
    index = context.current_index
    step = context.current_step

    if error is not None:
        wrapped = RollbackOperationError(index, step.backward.stack_name, error)
        return FAILED, context.evolve(rollback_error=wrapped)

    if state.substate == Substate.TRIGGER_OPERATION:
        return _after_trigger(Phase.ROLLING_BACK, step, True), context
    if state.substate == Substate.WAIT_FOR_READINESS:
        return MachineState(Phase.ROLLING_BACK, Substate.WAIT_FOR_STABILITY), context

    context = context.evolve(current_index=index - 1)
    if context.current_index == -1:
        return ROLLED_BACK, context
    return MachineState(Phase.ROLLING_BACK, Substate.TRIGGER_OPERATION), context


def transition(state, context, error=None):
    """
    Fold the outcome of the current state's action into the next state.

    `error` is None when the action succeeded, otherwise the exception it
    raised; it is wrapped in the StepError subclass matching the state.
    """
    if state.is_terminal:
        raise ContractViolation(f"No transitions out of terminal state {state}")

    if state.phase == Phase.IDLE:
        context = context.evolve(current_index=0)
        if not context.sequence:
            next_state = DEPLOYED
        else:
            next_state = MachineState(Phase.DEPLOYING, Substate.TRIGGER_OPERATION)
    elif state.phase == Phase.DEPLOYING:
        next_state, context = _deploying(state, context, error)
    else:
        next_state, context = _rolling_back(state, context, error)

    return Transition(next_state, context, action_for(next_state))


class DeploymentMachine:
    """Drives `transition()` to a terminal state against real capabilities."""

    def __init__(self, capabilities):
        self._capabilities = capabilities

    def start(self, context):
        """
        Yield every (state, context) pair from IDLE to a terminal state.

        The event stream for a step runs from entering the step until leaving
        it, and is stopped on every exit path including closing the generator.
        """
        state = IDLE
        yield state, context

        current = transition(state, context)
        stream_key = None
        stop_stream = None
        try:
            while True:
                state, context = current.state, current.context

                key = None if state.is_terminal else (state.phase, context.current_index)
                if key != stream_key:
                    if stop_stream is not None:
                        stop_stream()
                        stop_stream = None
                    if key is not None:
                        stop_stream = self._start_stream(state, context)
                    stream_key = key

                yield state, context
                if state.is_terminal:
                    return

                error = self._execute(current.action, state, context)
                current = transition(state, context, error)
        finally:
            if stop_stream is not None:
                stop_stream()

    def run(self, context):
        """Run to completion, returning the terminal (state, context)."""
        last = None
        for last in self.start(context):
            pass
        return last

    def _start_stream(self, state, context):
        operation = context.current_step.operation(state.rolling_back)
        try:
            return self._capabilities.start_event_stream(operation)
        except Exception as e:
            logger.warning("Could not start event stream for %s: %s", operation.stack_name, e)
            return None

    def _execute(self, action, state, context):
        """Run one action. Returns the exception it raised, or None."""
        operation = context.current_step.operation(state.rolling_back)
        logger.debug("%s: %s for %s", state, action.value, operation.stack_name)
        try:
            if action in (Action.SUBMIT_FORWARD, Action.SUBMIT_BACKWARD):
                self._capabilities.submit_update(operation)
            elif action == Action.WAIT_FOR_READINESS:
                self._capabilities.wait_for_tables(operation)
            elif action == Action.WAIT_FOR_STABILITY:
                self._capabilities.await_stable(operation)
            else:
                raise ContractViolation(f"State {state} has no action to execute")
        except ContractViolation:
            raise
        except Exception as e:
            logger.info("%s failed for %s: %s", action.value, operation.stack_name, e)
            return e
        return None
