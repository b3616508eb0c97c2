#!/usr/bin/env python3
"""
Persistent deployment state.

The orchestrator reports every machine transition to a recorder. The
recorder is observational only: it never changes how a run proceeds.
DeploymentStateManager persists the state as YAML through a storage backend
so that a second run can refuse to start while one is in progress.
"""

import logging
import threading
from datetime import datetime, timezone
from enum import Enum

import yaml

from .utils import dump_yaml

logger = logging.getLogger(__name__)

DEFAULT_STATE_KEY = "deployment-state.yaml"


class DeploymentStatus(Enum):
    IDLE = "IDLE"
    DEPLOYING = "DEPLOYING"
    ROLLING_BACK = "ROLLING_BACK"
    DEPLOYED = "DEPLOYED"
    ROLLED_BACK = "ROLLED_BACK"
    FAILED = "FAILED"


class DeploymentStepStatus(Enum):
    WAITING_FOR_DEPLOYMENT = "WAITING_FOR_DEPLOYMENT"
    DEPLOYING = "DEPLOYING"
    DEPLOYED = "DEPLOYED"
    WAITING_FOR_TABLE_READY = "WAITING_FOR_TABLE_READY"
    WAITING_FOR_ROLLBACK = "WAITING_FOR_ROLLBACK"
    ROLLED_BACK = "ROLLED_BACK"


IN_PROGRESS = (DeploymentStatus.DEPLOYING, DeploymentStatus.ROLLING_BACK)


class DeploymentStateRecorder:
    """Recorder that records nothing."""

    def start_deployment(self, step_states):
        return True

    def start_rollback(self):
        return True

    def advance_step(self, status):
        return True

    def update_current_step_status(self, status):
        return True

    def finish_deployment(self, status):
        return True


def _now():
    return datetime.now(timezone.utc).isoformat()


def _idle_state():
    return {
        'status': DeploymentStatus.IDLE.value,
        'current_step_index': 0,
        'started_at': None,
        'finished_at': None,
        'steps': [],
    }


class DeploymentStateManager(DeploymentStateRecorder):
    """Deployment state stored under one key of a storage backend."""

    def __init__(self, storage, state_key=DEFAULT_STATE_KEY):
        self.storage = storage
        self.state_key = state_key
        self._lock = threading.Lock()

    def get_state(self):
        text = self.storage.read_text(self.state_key)
        if not text:
            return _idle_state()
        try:
            state = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValueError(
                f"Deployment state at {self.storage.describe(self.state_key)} is corrupt: {e}"
            ) from e
        return state or _idle_state()

    def _save(self, state):
        self.storage.write_text(self.state_key, dump_yaml(state))

    def get_status(self):
        return DeploymentStatus(self.get_state()['status'])

    def is_deployment_in_progress(self):
        return self.get_status() in IN_PROGRESS

    def start_deployment(self, step_states):
        with self._lock:
            if self.is_deployment_in_progress():
                logger.warning("A deployment is already in progress, not starting a new one")
                return False
            state = _idle_state()
            state.update({
                'status': DeploymentStatus.DEPLOYING.value,
                'started_at': _now(),
                'steps': [{'status': DeploymentStepStatus(s).value} for s in step_states],
            })
            self._save(state)
            return True

    def start_rollback(self):
        with self._lock:
            state = self.get_state()
            if state['status'] != DeploymentStatus.DEPLOYING.value:
                return False
            state['status'] = DeploymentStatus.ROLLING_BACK.value
            self._save(state)
            return True

    def _update(self, status, step):
        with self._lock:
            state = self.get_state()
            if DeploymentStatus(state['status']) not in IN_PROGRESS or not state['steps']:
                logger.debug("No deployment in progress, ignoring step status %s", status)
                return False
            index = state['current_step_index']
            if 0 <= index < len(state['steps']):
                state['steps'][index]['status'] = DeploymentStepStatus(status).value
            if step:
                rolling_back = state['status'] == DeploymentStatus.ROLLING_BACK.value
                index += -1 if rolling_back else 1
                state['current_step_index'] = max(0, min(index, len(state['steps']) - 1))
            self._save(state)
            return True

    def advance_step(self, status):
        """Set the current step's status and move to the next step in the current direction."""
        return self._update(status, step=True)

    def update_current_step_status(self, status):
        return self._update(status, step=False)

    def finish_deployment(self, status):
        with self._lock:
            state = self.get_state()
            if DeploymentStatus(state['status']) not in IN_PROGRESS:
                return False
            state['status'] = DeploymentStatus(status).value
            state['finished_at'] = _now()
            self._save(state)
            return True
