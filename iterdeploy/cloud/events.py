#!/usr/bin/env python3
"""
Background poller that streams CloudFormation stack events to a progress observer.
"""

import logging
import threading
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


class StackEventMonitor:
    """Polls describe_stack_events and forwards events newer than start()."""

    def __init__(self, cfn_client, stack_name, observer, interval=1.0):
        self.cfn = cfn_client
        self.stack_name = stack_name
        self.observer = observer
        self.interval = interval
        self._seen = set()
        self._since = None
        self._stop = threading.Event()
        self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self._thread is not None:
            return
        self._seed()
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._poll_loop, daemon=True, name=f"stack-events-{self.stack_name}"
        )
        self._thread.start()
        self._notify('event_stream_started', self.stack_name)
        logger.debug("Started event monitor for %s", self.stack_name)

    def stop(self):
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join(timeout=self.interval + 1)
        self._thread = None
        # Flush anything that arrived since the last poll
        self.poll()
        self._notify('event_stream_stopped', self.stack_name)
        logger.debug("Stopped event monitor for %s", self.stack_name)

    def _seed(self):
        """Mark the stack's existing events as seen, timed by AWS rather than the local clock."""
        try:
            response = self.cfn.describe_stack_events(StackName=self.stack_name)
        except Exception as e:
            logger.warning("Reading stack events for %s failed, using local time: %s", self.stack_name, e)
            self._since = datetime.now(timezone.utc)
            return

        events = response.get('StackEvents', [])
        self._seen.update(event['EventId'] for event in events)
        timestamps = [event['Timestamp'] for event in events if event.get('Timestamp') is not None]
        self._since = max(timestamps) if timestamps else None

    def _poll_loop(self):
        while not self._stop.is_set():
            self.poll()
            self._stop.wait(self.interval)

    def _notify(self, method, *args):
        try:
            getattr(self.observer, method)(*args)
        except Exception:
            logger.warning("Progress observer %s failed for %s", method, self.stack_name, exc_info=True)

    def poll(self):
        """Fetch the newest page of events and forward unseen ones, oldest first."""
        try:
            response = self.cfn.describe_stack_events(StackName=self.stack_name)
        except Exception as e:
            logger.warning("Polling stack events for %s failed: %s", self.stack_name, e)
            return []

        fresh = []
        for event in response.get('StackEvents', []):
            if event['EventId'] in self._seen:
                continue
            timestamp = event.get('Timestamp')
            if self._since is not None and timestamp is not None and timestamp < self._since:
                continue
            self._seen.add(event['EventId'])
            fresh.append(event)

        fresh.reverse()
        for event in fresh:
            self._notify('stack_event', event)
        return fresh
