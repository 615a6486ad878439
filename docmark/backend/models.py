from dataclasses import dataclass
from enum import StrEnum


class BackendStatus(StrEnum):
    """Task states reported by the job backend."""

    PROCESSING = "processing"
    FINISHED = "finished"
    FAILED = "failed"


@dataclass(frozen=True)
class SubmittedTask:
    """Identifier the backend assigned to a newly created job."""

    task_id: str


@dataclass(frozen=True)
class TaskResult:
    """Result payload of a finished job.

    Embed jobs carry ``download_url``; extract jobs carry
    ``extracted_content`` and usually ``confidence``.
    """

    download_url: str | None = None
    extracted_content: str | None = None
    confidence: float | None = None

    @property
    def is_present(self) -> bool:
        return bool(self.download_url) or bool(self.extracted_content)


@dataclass(frozen=True)
class TaskStatusReport:
    """One parsed answer of the status endpoint.

    ``status`` is kept as the raw string so unknown backend states can be
    logged verbatim; they are treated as still processing.
    """

    status: str
    progress: float = 0.0
    estimated_time: str | None = None
    result: TaskResult | None = None
    message: str | None = None

    @property
    def has_result(self) -> bool:
        return self.result is not None and self.result.is_present


@dataclass(frozen=True)
class Policy:
    """A named watermark configuration from the policy store."""

    id: str
    name: str
    description: str = ""
    watermark_text: str = ""
    sensitivity: str | None = None
