"""Status polling for one in-flight backend task.

A run owns exactly one repeating status-query timer and one one-shot timeout
timer. Every exit path (completion, backend failure, query failure, timeout,
stop, clear) disposes both. Each run has a generation number; a response that
arrives after its run was stopped or replaced is discarded.
"""

import asyncio
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone

from docmark.backend.base import BaseJobBackend
from docmark.backend.models import BackendStatus, TaskStatusReport
from docmark.logging.logger import Log
from docmark.processor.models import (
    Operation,
    PollLogEntry,
    PollOutcome,
    ProcessingTask,
    ProcessingTimedOut,
    TaskStatus,
)
from docmark.processor.timers import OneShotTimer, RepeatingTimer, Scheduler, default_scheduler

FinishCallback = Callable[[PollOutcome], None]

DEFAULT_FAILURE_MESSAGE = "processing failed"
QUERY_FAILURE_MESSAGE = "status query failed"
TIMEOUT_MESSAGE = (
    "Processing is taking longer than expected. "
    "Polling has stopped; check the task result again later."
)


def presentation_status(backend_status: str) -> TaskStatus:
    """Map a raw backend state to the status shown to users."""
    if backend_status == BackendStatus.FINISHED:
        return TaskStatus.COMPLETED
    if backend_status == BackendStatus.FAILED:
        return TaskStatus.FAILED
    return TaskStatus.PROCESSING


def is_terminal(report: TaskStatusReport) -> bool:
    """A run stops on ``failed``, or on ``finished`` once a result is attached.

    A bare ``finished`` keeps polling: the backend may report completion
    before the result artifact is available.
    """
    if report.status == BackendStatus.FAILED:
        return True
    return report.status == BackendStatus.FINISHED and report.has_result


class PollingEngine:
    """Polls the job backend until a task settles, fails, or times out."""

    def __init__(
        self,
        backend: BaseJobBackend,
        *,
        interval_seconds: float = 2.0,
        timeout_seconds: float = 300.0,
        initial_progress: float = 10,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._backend = backend
        self._interval_seconds = interval_seconds
        self._timeout_seconds = timeout_seconds
        self._initial_progress = initial_progress
        self._scheduler = scheduler
        self._clock: Scheduler | None = None
        self._interval: RepeatingTimer | None = None
        self._timeout: OneShotTimer | None = None
        self._generation = 0
        self._started_at = 0.0
        self._poll_count = 0
        self._task: ProcessingTask | None = None
        self._log: list[PollLogEntry] = []
        self._notice: ProcessingTimedOut | None = None
        self._outcome: PollOutcome | None = None
        self._on_finish: FinishCallback | None = None
        self._finished: asyncio.Event | None = None

    @property
    def task(self) -> ProcessingTask | None:
        """A copy of the current task record."""
        return replace(self._task) if self._task is not None else None

    @property
    def poll_log(self) -> tuple[PollLogEntry, ...]:
        return tuple(self._log)

    @property
    def notice(self) -> ProcessingTimedOut | None:
        return self._notice

    @property
    def outcome(self) -> PollOutcome | None:
        return self._outcome

    @property
    def is_polling(self) -> bool:
        return self._interval is not None

    @property
    def live_timers(self) -> tuple[int, int]:
        """Number of live (interval, timeout) timers; each is at most 1."""
        return int(self._interval is not None), int(self._timeout is not None)

    def start_polling(
        self,
        task_id: str,
        operation: Operation,
        on_finish: FinishCallback | None = None,
    ) -> ProcessingTask:
        """Create the task record and begin polling it.

        Any timers left from an earlier run are disposed first.
        """
        self.stop_polling()
        self._generation += 1
        generation = self._generation
        scheduler = self._scheduler or default_scheduler()
        self._clock = scheduler

        self._started_at = scheduler.time()
        self._poll_count = 0
        self._log = []
        self._notice = None
        self._outcome = None
        self._on_finish = on_finish
        self._finished = asyncio.Event()
        self._task = ProcessingTask(
            task_id=task_id,
            operation=operation,
            status=TaskStatus.PROCESSING,
            progress_percent=self._initial_progress,
        )

        self._interval = RepeatingTimer(
            scheduler, self._interval_seconds, lambda: self._tick(generation)
        )
        self._timeout = OneShotTimer(
            scheduler, self._timeout_seconds, lambda: self._expire(generation)
        )
        self._interval.start()
        self._timeout.start()
        Log.info(
            f"Polling task {task_id} every {self._interval_seconds}s "
            f"(timeout {self._timeout_seconds}s)"
        )
        return replace(self._task)

    def stop_polling(self) -> None:
        """Dispose both timers and release waiters. Safe to call repeatedly.

        A run stopped before it settled leaves ``outcome`` as None.
        """
        if self._interval is not None:
            self._interval.cancel()
            self._interval = None
        if self._timeout is not None:
            self._timeout.cancel()
            self._timeout = None
        if self._finished is not None:
            self._finished.set()

    def clear(self) -> None:
        """Stop polling and forget the task, its log and any notice."""
        self.stop_polling()
        self._generation += 1
        self._task = None
        self._log = []
        self._notice = None
        self._outcome = None
        self._on_finish = None
        if self._finished is not None:
            self._finished.set()
            self._finished = None

    async def wait(self) -> PollOutcome | None:
        """Wait for the current run to end and return how it ended."""
        if self._finished is not None:
            await self._finished.wait()
        return self._outcome

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self._interval is not None

    async def _tick(self, generation: int) -> None:
        task = self._task
        if not self._is_current(generation) or task is None:
            return
        task_id = task.task_id
        try:
            report = await self._backend.get_status(task_id)
        except Exception as exc:
            if not self._is_current(generation):
                Log.debug(f"Ignoring failed status query for stopped task {task_id}")
                return
            Log.error(f"Status query for task {task_id} failed: {exc}")
            self._finish_failed(task, QUERY_FAILURE_MESSAGE, PollOutcome.QUERY_FAILED)
            return

        if not self._is_current(generation):
            Log.debug(f"Discarding late status for task {task_id}: {report.status}")
            return

        self._record(report)
        self._apply_progress(task, report)

        if is_terminal(report):
            if report.status == BackendStatus.FAILED:
                self._finish_failed(
                    task, report.message or DEFAULT_FAILURE_MESSAGE, PollOutcome.FAILED
                )
            else:
                self._finish_completed(task, report)
        elif report.status == BackendStatus.FINISHED:
            Log.info(f"Task {task_id} reported finished without a result yet, polling on")

    def _record(self, report: TaskStatusReport) -> None:
        self._poll_count += 1
        self._log.append(
            PollLogEntry(
                sequence=self._poll_count,
                timestamp=datetime.now(timezone.utc),
                backend_status=report.status,
                progress=report.progress,
                has_result=report.has_result,
                estimated_time=report.estimated_time,
            )
        )
        Log.debug(
            f"Poll #{self._poll_count}: status={report.status} "
            f"({presentation_status(report.status).value}) progress={report.progress} "
            f"result={report.has_result} eta={report.estimated_time}"
        )

    @staticmethod
    def _apply_progress(task: ProcessingTask, report: TaskStatusReport) -> None:
        reported = max(0.0, min(100.0, report.progress))
        task.progress_percent = max(task.progress_percent, reported)
        task.estimated_time_remaining = report.estimated_time

    def _finish_completed(self, task: ProcessingTask, report: TaskStatusReport) -> None:
        self.stop_polling()
        task.status = TaskStatus.COMPLETED
        task.progress_percent = 100
        task.result = report.result
        task.error = None
        Log.info(f"Task {task.task_id} completed after {self._poll_count} polls")
        self._settle(PollOutcome.COMPLETED)

    def _finish_failed(
        self, task: ProcessingTask, message: str, outcome: PollOutcome
    ) -> None:
        self.stop_polling()
        task.status = TaskStatus.FAILED
        task.progress_percent = 0
        task.result = None
        task.error = message
        Log.error(f"Task {task.task_id} failed: {message}")
        self._settle(outcome)

    def _expire(self, generation: int) -> None:
        if generation != self._generation or self._task is None:
            return
        self.stop_polling()
        elapsed = self._clock.time() - self._started_at if self._clock is not None else 0.0
        self._notice = ProcessingTimedOut(
            task_id=self._task.task_id,
            elapsed_seconds=elapsed,
            message=TIMEOUT_MESSAGE,
        )
        Log.warning(
            f"Task {self._task.task_id} still {self._task.status.value} after "
            f"{elapsed:.0f}s, polling stopped"
        )
        self._settle(PollOutcome.TIMED_OUT)

    def _settle(self, outcome: PollOutcome) -> None:
        self._outcome = outcome
        if self._finished is not None:
            self._finished.set()
        callback, self._on_finish = self._on_finish, None
        if callback is not None:
            callback(outcome)
