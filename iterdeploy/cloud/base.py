#!/usr/bin/env python3
"""
Base capability interface the deployment state machine runs against.
"""

from ..deployment.rate_limit import RateLimiter
from ..deployment.readiness import ReadinessWaiter


class StackCapabilities:
    """
    Interface for stack operations (CloudFormation in production, fakes in tests).

    Subclasses implement the single-call operations; `wait_for_tables` is
    built on `is_table_ready` and the shared rate limiter.
    """

    def __init__(self, rate_limiter=None, poll_interval=1.0, readiness_timeout=None):
        self.rate_limiter = rate_limiter or RateLimiter.from_delay(poll_interval)
        self.poll_interval = poll_interval
        self.readiness_timeout = readiness_timeout

    def submit_update(self, operation):
        """Submit the update for operation.stack_name. Raises on rejection."""
        raise NotImplementedError("Subclasses must implement submit_update()")

    def await_stable(self, operation):
        """Block until the stack settles. Raises if it settles in a failure status."""
        raise NotImplementedError("Subclasses must implement await_stable()")

    def is_table_ready(self, table_name, region):
        """True iff every secondary index of the table is active."""
        raise NotImplementedError("Subclasses must implement is_table_ready()")

    def template_exists(self, bucket, template_path):
        raise NotImplementedError("Subclasses must implement template_exists()")

    def start_event_stream(self, operation):
        """Start streaming stack events. Returns a callable that stops the stream."""
        return lambda: None

    def wait_for_tables(self, operation):
        if not operation.table_names:
            return
        waiter = ReadinessWaiter(
            self.is_table_ready, self.rate_limiter,
            poll_interval=self.poll_interval, timeout=self.readiness_timeout,
        )
        waiter.wait(operation.table_names, operation.region)
