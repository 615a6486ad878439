from dataclasses import dataclass
from enum import StrEnum


class WorkflowState(StrEnum):
    IDLE = "idle"
    FILE_SELECTED = "file_selected"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    SUBMITTING = "submitting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


SETTLED_STATES = frozenset(
    {WorkflowState.COMPLETED, WorkflowState.FAILED, WorkflowState.TIMED_OUT}
)


class ErrorKind(StrEnum):
    VALIDATION = "validation"
    UPLOAD = "upload"
    SUBMISSION = "submission"
    POLLING = "polling"
    TASK_FAILED = "task_failed"
    POLICY = "policy"
    INVALID_STATE = "invalid_state"


@dataclass(frozen=True)
class WorkflowError:
    """An error captured as data for the hosting layer to present."""

    kind: ErrorKind
    code: str
    message: str

    @classmethod
    def from_exception(cls, kind: ErrorKind, exc: BaseException) -> "WorkflowError":
        return cls(kind=kind, code=type(exc).__name__, message=str(exc))
