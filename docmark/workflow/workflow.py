"""The watermark processing workflow.

State machine:

    idle -> file_selected -> uploading -> uploaded -> submitting -> processing
    processing -> completed | failed | timed_out
    any state -> idle (reset)

Every failure is captured in ``error`` (and ``notice`` for the advisory
timeout) instead of being raised to the hosting layer.
"""

from collections.abc import Callable
from pathlib import Path

from docmark.backend import BackendBundle
from docmark.backend.base import BasePolicyStore
from docmark.backend.models import Policy
from docmark.config.settings import Settings
from docmark.intake.exceptions import InputValidationError
from docmark.intake.file_intake import FileIntake, remote_reference
from docmark.intake.models import SelectedFile
from docmark.logging.logger import Log
from docmark.processor.exceptions import SubmissionFailedError
from docmark.processor.models import (
    Operation,
    PollLogEntry,
    PollOutcome,
    ProcessingTask,
    ProcessingTimedOut,
)
from docmark.processor.polling import DEFAULT_FAILURE_MESSAGE, PollingEngine
from docmark.processor.submitter import SubmitParams, TaskSubmitter, parse_operation
from docmark.processor.timers import Scheduler
from docmark.upload.exceptions import UploadFailedError
from docmark.upload.models import UploadedReference
from docmark.upload.tracker import UploadTracker
from docmark.workflow.state import ErrorKind, WorkflowError, WorkflowState

StateListener = Callable[[WorkflowState], None]


class Workflow:
    """Composes intake, upload, submission and polling for one document."""

    def __init__(
        self,
        intake: FileIntake,
        tracker: UploadTracker,
        submitter: TaskSubmitter,
        engine: PollingEngine,
        policy_store: BasePolicyStore | None = None,
    ) -> None:
        self._intake = intake
        self._tracker = tracker
        self._submitter = submitter
        self._engine = engine
        self._policy_store = policy_store
        self._state = WorkflowState.IDLE
        self._uploaded: UploadedReference | None = None
        self._error: WorkflowError | None = None
        self._listeners: list[StateListener] = []
        # bumped whenever downstream state is discarded; stale continuations compare it
        self._epoch = 0

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def selected_file(self) -> SelectedFile | None:
        return self._intake.selected

    @property
    def uploaded(self) -> UploadedReference | None:
        return self._uploaded

    @property
    def task(self) -> ProcessingTask | None:
        return self._engine.task

    @property
    def poll_log(self) -> tuple[PollLogEntry, ...]:
        return self._engine.poll_log

    @property
    def upload_progress(self) -> float:
        return self._tracker.progress_percent

    @property
    def error(self) -> WorkflowError | None:
        return self._error

    @property
    def notice(self) -> ProcessingTimedOut | None:
        return self._engine.notice

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def select(self, name: str, content: bytes) -> bool:
        """Validate and select a file; a new selection discards all later state."""
        try:
            self._intake.select(name, content)
        except InputValidationError as exc:
            return self._reject_selection(exc)
        return self._accept_selection()

    def select_path(self, path: Path) -> bool:
        try:
            self._intake.select_path(path)
        except (InputValidationError, OSError) as exc:
            return self._reject_selection(exc)
        return self._accept_selection()

    def use_remote_file(self, file_url: str) -> bool:
        """Target a file the backend already stores, such as an earlier download URL.

        Skips selection and upload; like a new selection it discards all later state.
        """
        try:
            reference = remote_reference(file_url)
        except InputValidationError as exc:
            return self._reject_selection(exc)
        if self._state is not WorkflowState.IDLE:
            self._engine.stop_polling()
            self._discard_downstream()
        self._intake.clear()
        self._uploaded = reference
        self._error = None
        Log.info(f"Using remote file {reference.file_url}")
        self._transition(WorkflowState.UPLOADED)
        return True

    async def upload(self) -> bool:
        file = self._intake.selected
        if self._state is not WorkflowState.FILE_SELECTED or file is None:
            return self._reject_state("upload")

        epoch = self._epoch
        self._error = None
        self._transition(WorkflowState.UPLOADING)
        try:
            reference = await self._tracker.upload(file)
        except UploadFailedError as exc:
            if epoch != self._epoch:
                return False
            self._error = WorkflowError.from_exception(ErrorKind.UPLOAD, exc)
            self._transition(WorkflowState.FILE_SELECTED)
            return False

        if epoch != self._epoch:
            Log.debug(f"Ignoring upload of {file.name} finished after reset")
            return False
        self._uploaded = reference
        self._transition(WorkflowState.UPLOADED)
        return True

    async def submit(
        self,
        operation: Operation | str,
        *,
        policy_id: str | None = None,
        watermark_text: str | None = None,
        biz_id: str | None = None,
    ) -> bool:
        uploaded = self._uploaded
        if self._state is not WorkflowState.UPLOADED or uploaded is None:
            return self._reject_state("submit")

        params = SubmitParams(policy_id=policy_id, watermark_text=watermark_text, biz_id=biz_id)
        try:
            op = parse_operation(operation)
            self._submitter.validate(op, params)
        except InputValidationError as exc:
            self._error = WorkflowError.from_exception(ErrorKind.VALIDATION, exc)
            Log.warning(f"Submission rejected: {exc}")
            return False

        epoch = self._epoch
        self._error = None
        self._transition(WorkflowState.SUBMITTING)
        try:
            submitted = await self._submitter.submit(op, uploaded, params)
        except SubmissionFailedError as exc:
            if epoch != self._epoch:
                return False
            self._error = WorkflowError.from_exception(ErrorKind.SUBMISSION, exc)
            self._transition(WorkflowState.UPLOADED)
            return False

        if epoch != self._epoch:
            Log.warning(f"Task {submitted.task_id} was created after reset and is not tracked")
            return False
        self._engine.start_polling(submitted.task_id, op, on_finish=self._on_polling_finished)
        self._transition(WorkflowState.PROCESSING)
        return True

    def reset(self) -> None:
        """Stop polling and discard every entity; always ends in idle."""
        self._engine.stop_polling()
        self._discard_downstream()
        self._intake.clear()
        self._error = None
        self._transition(WorkflowState.IDLE)

    def close(self) -> None:
        """Dispose all timers when the hosting view goes away."""
        self._engine.stop_polling()
        self._tracker.cancel()
        self._epoch += 1
        Log.debug(f"Workflow closed in state {self._state.value}")

    async def wait_until_settled(self) -> WorkflowState:
        """Wait while processing; return the resulting state."""
        if self._state is WorkflowState.PROCESSING:
            await self._engine.wait()
        return self._state

    async def list_policies(self) -> list[Policy]:
        if self._policy_store is None:
            return []
        try:
            return await self._policy_store.list_active_policies()
        except Exception as exc:
            Log.error(f"Listing policies failed: {exc}")
            self._error = WorkflowError.from_exception(ErrorKind.POLICY, exc)
            return []

    def _accept_selection(self) -> bool:
        if self._state is not WorkflowState.IDLE:
            self._engine.stop_polling()
            self._discard_downstream()
        self._error = None
        self._transition(WorkflowState.FILE_SELECTED)
        return True

    def _reject_selection(self, exc: Exception) -> bool:
        self._error = WorkflowError.from_exception(ErrorKind.VALIDATION, exc)
        Log.warning(f"File rejected: {exc}")
        return False

    def _reject_state(self, action: str) -> bool:
        self._error = WorkflowError(
            kind=ErrorKind.INVALID_STATE,
            code="InvalidStateError",
            message=f"Cannot {action} while {self._state.value}",
        )
        Log.warning(self._error.message)
        return False

    def _discard_downstream(self) -> None:
        self._engine.clear()
        self._tracker.cancel()
        self._uploaded = None
        self._epoch += 1

    def _on_polling_finished(self, outcome: PollOutcome) -> None:
        task = self._engine.task
        if outcome is PollOutcome.COMPLETED:
            self._transition(WorkflowState.COMPLETED)
        elif outcome is PollOutcome.TIMED_OUT:
            self._transition(WorkflowState.TIMED_OUT)
        else:
            message = task.error if task is not None and task.error else DEFAULT_FAILURE_MESSAGE
            if outcome is PollOutcome.QUERY_FAILED:
                self._error = WorkflowError(ErrorKind.POLLING, "StatusQueryFailed", message)
            else:
                self._error = WorkflowError(ErrorKind.TASK_FAILED, "TaskFailed", message)
            self._transition(WorkflowState.FAILED)

    def _transition(self, state: WorkflowState) -> None:
        if state is self._state:
            return
        Log.info(f"Workflow {self._state.value} -> {state.value}")
        self._state = state
        for listener in self._listeners:
            listener(state)


def build_workflow(
    settings: Settings,
    bundle: BackendBundle,
    scheduler: Scheduler | None = None,
) -> Workflow:
    """Build a Workflow with all collaborators configured from settings."""
    intake = FileIntake(
        max_size_bytes=settings.max_upload_size_bytes,
        allowed_extensions=settings.allowed_extensions,
    )
    tracker = UploadTracker(
        bundle.transport,
        tick_seconds=settings.upload_progress_tick_seconds,
        max_increment=settings.upload_progress_max_increment,
        ceiling=settings.upload_progress_ceiling,
        reset_delay_seconds=settings.upload_progress_reset_delay_seconds,
        scheduler=scheduler,
    )
    engine = PollingEngine(
        bundle.jobs,
        interval_seconds=settings.poll_interval_seconds,
        timeout_seconds=settings.poll_timeout_seconds,
        initial_progress=settings.initial_task_progress,
        scheduler=scheduler,
    )
    return Workflow(
        intake=intake,
        tracker=tracker,
        submitter=TaskSubmitter(bundle.jobs),
        engine=engine,
        policy_store=bundle.policies,
    )
