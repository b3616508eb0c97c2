#!/usr/bin/env python3
"""
Tunable timings for a deployment run, read from the `options` section of
deployment-config.yaml.
"""

from dataclasses import dataclass, fields
from typing import Optional


@dataclass
class DeploymentOptions:
    throttle_delay: float = 1.0
    event_polling_delay: float = 1.0
    stability_poll_delay: int = 30
    stability_max_attempts: int = 120
    readiness_timeout: Optional[float] = 1800.0
    preflight_workers: int = 8

    @classmethod
    def from_config(cls, config):
        """Build options from a loaded config dict. Unknown keys are rejected."""
        section = (config or {}).get('options') or {}
        known = {f.name for f in fields(cls)}
        unknown = set(section) - known
        if unknown:
            raise ValueError(f"Unknown deployment options: {', '.join(sorted(unknown))}")
        return cls(**section)
