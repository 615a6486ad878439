from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from docmark.backend.models import TaskResult


class Operation(StrEnum):
    EMBED = "embed"
    EXTRACT = "extract"


class TaskStatus(StrEnum):
    """Presentation status derived from backend-reported states."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PollOutcome(StrEnum):
    """Why a polling run ended."""

    COMPLETED = "completed"
    FAILED = "failed"
    QUERY_FAILED = "query_failed"
    TIMED_OUT = "timed_out"


@dataclass
class ProcessingTask:
    """State of one backend job. Mutated only by the PollingEngine.

    ``result`` is set only when ``status`` is completed and ``error`` only
    when it is failed.
    """

    task_id: str
    operation: Operation
    status: TaskStatus = TaskStatus.PROCESSING
    progress_percent: float = 0.0
    estimated_time_remaining: str | None = None
    result: TaskResult | None = None
    error: str | None = None


@dataclass(frozen=True)
class PollLogEntry:
    """Diagnostic record of one successful status query."""

    sequence: int
    timestamp: datetime
    backend_status: str
    progress: float
    has_result: bool
    estimated_time: str | None = None


@dataclass(frozen=True)
class ProcessingTimedOut:
    """Advisory notice: the task did not settle within the polling timeout."""

    task_id: str
    elapsed_seconds: float
    message: str
