"""
Sequential batch runner.

Walks the URL list one request at a time: check request limits, fetch with
retries, record the result, checkpoint every N items, pause, repeat. A
block or too many failures stops the run; whatever has been collected is
written out before returning.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Union

from core.exceptions import ErrorRecovery, FetchError
from core.models import (
    FailureResult,
    RequestLogEntry,
    Result,
    RunStats,
    RunStatus,
    SuccessResult,
    Task,
    build_tasks,
)
from core.request_tracker import RequestTracker
from .accumulator import ResultLog, SnapshotWriter
from .clients import FetchResponse
from .pacing import DelayController
from .retry import RetryStrategy

logger = logging.getLogger(__name__)

MAX_LIMIT_CHECKS = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_run_id() -> str:
    """Generate unique run ID."""
    return str(uuid.uuid4())[:8]


class PageClient(Protocol):
    def fetch(self, url: str) -> FetchResponse: ...


@dataclass
class RunReport:
    """What a finished run produced."""
    stats: RunStats
    results: List[Result]
    snapshots_written: int


class BatchRunner:
    """Drives the fetch loop for one run."""

    def __init__(self,
                 client: PageClient,
                 delay: DelayController,
                 retry: RetryStrategy,
                 output_dir: Union[str, Path],
                 flush_every: int = 10,
                 max_failures: int = 5,
                 tracker: Optional[RequestTracker] = None,
                 max_limit_wait_seconds: float = 60.0,
                 run_id: Optional[str] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], datetime] = _utcnow):
        """
        Initialize batch runner.

        Args:
            client: Anything with fetch(url) -> FetchResponse
            delay: Pause between consecutive URLs
            retry: Retry policy wrapped around each fetch
            output_dir: Where JSON snapshots go
            flush_every: Write a snapshot after every N recorded results
            max_failures: Abort once failures exceed this number
            tracker: Optional request tracker consulted before each URL
            max_limit_wait_seconds: Longest wait accepted when a limit is hit
            run_id: Identifier used in snapshot file names
        """
        if flush_every < 1:
            raise ValueError("flush_every must be at least 1")

        self.client = client
        self.delay = delay
        self.retry = retry
        self.flush_every = flush_every
        self.max_failures = max_failures
        self.tracker = tracker
        self.max_limit_wait_seconds = max_limit_wait_seconds
        self.run_id = run_id or generate_run_id()
        self._sleep = sleep
        self._clock = clock

        self.log = ResultLog()
        self.writer = SnapshotWriter(output_dir, self.run_id)
        self.stats = RunStats(
            run_id=self.run_id,
            attempted=0,
            succeeded=0,
            failed=0,
            status=RunStatus.RUNNING,
            started_at=self._clock(),
        )

    def _flush(self) -> None:
        self.writer.flush(self.log, self.stats)

    def _wait_for_limits(self) -> bool:
        """Sleep through short limit waits; False when the wait is too long."""
        for _ in range(MAX_LIMIT_CHECKS):
            check = self.tracker.check_rate_limits()
            if check.can_proceed:
                return True
            if check.wait_seconds > self.max_limit_wait_seconds:
                logger.error(f"{check.reason}, next slot in {check.wait_seconds:.0f}s. Stopping.")
                return False
            logger.warning(f"{check.reason}, waiting {check.wait_seconds:.1f}s")
            self._sleep(check.wait_seconds)
        return self.tracker.check_rate_limits().can_proceed

    def _track(self, entry: RequestLogEntry) -> None:
        if self.tracker is not None:
            self.tracker.log_request(entry)

    def _process(self, task: Task) -> Result:
        """Fetch one task through the retry strategy and turn the outcome into a Result."""
        attempts = 0

        def attempt() -> FetchResponse:
            nonlocal attempts
            attempts += 1
            try:
                response = self.client.fetch(task.url)
            except FetchError as e:
                self._track(RequestLogEntry(
                    timestamp=self._clock(),
                    url=task.url,
                    success=False,
                    status_code=e.status_code,
                    error_message=e.message,
                ))
                raise
            self._track(RequestLogEntry(
                timestamp=self._clock(),
                url=task.url,
                success=True,
                status_code=response.status_code,
                response_time_ms=response.latency_ms,
            ))
            return response

        try:
            response = self.retry.execute(attempt)
        except FetchError as e:
            logger.error(f"✗ [{task.position}] {task.url}: {e.message}")
            return FailureResult(
                url=task.url,
                position=task.position,
                reason=e.message,
                error_type=e.__class__.__name__,
                status_code=e.status_code,
                timestamp=self._clock(),
                fatal=ErrorRecovery.is_fatal_error(e),
            )

        logger.info(f"✓ [{task.position}] {task.url} ({response.latency_ms}ms, {attempts} attempt(s))")
        return SuccessResult(
            url=task.url,
            position=task.position,
            payload=response.payload,
            latency_ms=response.latency_ms,
            attempts=attempts,
            parsed_at=self._clock(),
        )

    def _record(self, result: Result) -> None:
        self.log.append(result)
        self.stats.attempted += 1
        if isinstance(result, SuccessResult):
            self.stats.succeeded += 1
        else:
            self.stats.failed += 1

    def _run_tasks(self, tasks: List[Task]) -> RunStatus:
        """Walk the tasks; return the status the run ended with."""
        if not tasks:
            logger.error("No URLs to process")
            return RunStatus.ABORTED_NO_URLS

        for index, task in enumerate(tasks):
            if self.tracker is not None and not self._wait_for_limits():
                return RunStatus.ABORTED_RATE_LIMIT

            logger.info(f"[{task.position}/{len(tasks)}] Parsing: {task.url}")
            result = self._process(task)
            self._record(result)

            if len(self.log) % self.flush_every == 0:
                self._flush()
                logger.info(f"Checkpoint saved after {len(self.log)} URLs")

            if isinstance(result, FailureResult) and result.fatal:
                logger.error("Block detected, stopping run")
                return RunStatus.ABORTED_BLOCKED

            if self.stats.failed > self.max_failures:
                logger.warning(f"Too many failures ({self.stats.failed}), stopping run")
                return RunStatus.ABORTED_FAILURES

            if index < len(tasks) - 1:
                self.delay.wait()

        return RunStatus.COMPLETED

    def _finish(self, status: RunStatus) -> None:
        self.stats.status = status
        self.stats.finished_at = self._clock()
        self._flush()

    def run(self, urls: List[str]) -> RunReport:
        """
        Process urls in order.

        An unexpected exception still writes a final snapshot with status
        'aborted: error' before it propagates. KeyboardInterrupt does not.

        Returns:
            RunReport with final stats, every recorded result, and the
            number of snapshots written
        """
        tasks = build_tasks(urls)
        logger.info(f"Run {self.run_id}: {len(tasks)} URLs to process")

        try:
            status = self._run_tasks(tasks)
        except Exception:
            logger.exception(f"Run {self.run_id} failed, saving {len(self.log)} recorded results")
            self._finish(RunStatus.ABORTED_ERROR)
            raise
        self._finish(status)

        logger.info(
            f"Run {self.run_id} finished: {status.value}. "
            f"Processed {self.stats.attempted}, succeeded {self.stats.succeeded}, "
            f"failed {self.stats.failed} in {self.stats.duration_seconds / 60:.2f} minutes"
        )
        return RunReport(stats=self.stats, results=self.log.entries, snapshots_written=self.writer.flush_count)
