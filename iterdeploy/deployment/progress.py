#!/usr/bin/env python3
"""
Progress observers notified once per machine transition.
"""

import logging

logger = logging.getLogger(__name__)


class ProgressObserver:
    """No-op observer, used for headless runs and tests."""

    def status(self, message, completed, total):
        """Human readable status plus steps completed in the current direction."""

    def stack_event(self, event):
        """Raw CloudFormation stack event from the event stream."""

    def event_stream_started(self, stack_name):
        pass

    def event_stream_stopped(self, stack_name):
        pass

    def succeed(self, message):
        pass

    def fail(self, message):
        pass


class ConsoleProgressPrinter(ProgressObserver):
    """Prints progress to stdout."""

    def __init__(self, show_events=True):
        self.show_events = show_events
        self._last_message = None

    def status(self, message, completed, total):
        if message != self._last_message:
            print(message)
            self._last_message = message

    def stack_event(self, event):
        if not self.show_events:
            return
        timestamp = event.get('Timestamp')
        when = timestamp.strftime('%H:%M:%S') if timestamp else '--:--:--'
        reason = event.get('ResourceStatusReason', '')
        print(
            f"  {when} {event.get('ResourceStatus', ''):<35} "
            f"{event.get('ResourceType', ''):<40} {event.get('LogicalResourceId', '')}"
            + (f" - {reason}" if reason else "")
        )

    def event_stream_started(self, stack_name):
        if self.show_events:
            print(f"Streaming events for stack {stack_name}")

    def succeed(self, message):
        print(f"[OK] {message}")

    def fail(self, message):
        print(f"ERROR: {message}")


class GuardedObserver(ProgressObserver):
    """Forwards to another observer. Its exceptions are logged, never raised."""

    def __init__(self, observer):
        self.observer = observer

    def _forward(self, method, *args):
        try:
            getattr(self.observer, method)(*args)
        except Exception:
            logger.warning("Progress observer %s failed", method, exc_info=True)

    def status(self, message, completed, total):
        self._forward('status', message, completed, total)

    def stack_event(self, event):
        self._forward('stack_event', event)

    def event_stream_started(self, stack_name):
        self._forward('event_stream_started', stack_name)

    def event_stream_stopped(self, stack_name):
        self._forward('event_stream_stopped', stack_name)

    def succeed(self, message):
        self._forward('succeed', message)

    def fail(self, message):
        self._forward('fail', message)
