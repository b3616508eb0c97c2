"""Wait for DynamoDB global secondary indexes to become usable."""

import logging
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Callable, Iterable, Optional

from .errors import ReadinessTimeout
from .rate_limit import RateLimiter

logger = logging.getLogger(__name__)


class ReadinessWaiter:
    """Poll a set of tables concurrently until every one reports ready.

    `check(table_name, region)` returns True once all of a table's indexes
    are active and raises on unrecoverable errors. All polling tasks share
    the injected rate limiter. The first task error (or a timeout) fails the
    whole wait immediately; the remaining tasks are told to stop.
    """

    def __init__(
        self,
        check: Callable[[str, str], bool],
        rate_limiter: RateLimiter,
        poll_interval: float = 1.0,
        timeout: Optional[float] = None,
    ):
        self._check = check
        self._rate_limiter = rate_limiter
        self._poll_interval = poll_interval
        self._timeout = timeout

    def wait(self, table_names: Iterable[str], region: str) -> None:
        names = sorted(set(table_names))
        if not names:
            return

        logger.info("Waiting for DynamoDB table indices to be ready: %s", ", ".join(names))
        stop = threading.Event()
        checks_before = self._rate_limiter.total_allowed
        deadline = time.monotonic() + self._timeout if self._timeout else None

        with ThreadPoolExecutor(max_workers=len(names), thread_name_prefix="readiness") as pool:
            futures = {pool.submit(self._poll, name, region, stop, deadline): name for name in names}
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            failed = [f for f in done if f.exception() is not None]
            if failed:
                stop.set()
                error = failed[0].exception()
                logger.warning("Readiness check for table %s failed: %s", futures[failed[0]], error)
                raise error

        logger.info(
            "Table indices ready: %s (%d checks)",
            ", ".join(names), self._rate_limiter.total_allowed - checks_before,
        )

    def _poll(self, table_name, region, stop, deadline):
        while not stop.is_set():
            if not self._rate_limiter.acquire(stop):
                return False
            if self._check(table_name, region):
                logger.debug("Table %s is ready", table_name)
                return True
            if deadline is not None and time.monotonic() >= deadline:
                raise ReadinessTimeout([table_name], self._timeout)
            stop.wait(self._poll_interval)
        return False
