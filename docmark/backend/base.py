from abc import ABC, abstractmethod

from docmark.backend.models import Policy, SubmittedTask, TaskStatusReport
from docmark.intake.models import SelectedFile
from docmark.upload.models import UploadedReference


class BaseFileTransport(ABC):
    """Contract for services that store an uploaded file and return its locator."""

    @abstractmethod
    async def upload(self, file: SelectedFile) -> UploadedReference:
        """Transmit the file content.

        Raises:
            BackendError: on any failure.
        """


class BaseJobBackend(ABC):
    """Contract for the remote watermark job service."""

    @abstractmethod
    async def submit_embed(
        self,
        file_url: str,
        watermark_text: str,
        biz_id: str,
    ) -> SubmittedTask:
        """Create an embed job and return its task id.

        Raises:
            BackendError: if the job could not be created.
        """

    @abstractmethod
    async def submit_extract(self, file_url: str, biz_id: str) -> SubmittedTask:
        """Create an extract job and return its task id.

        Raises:
            BackendError: if the job could not be created.
        """

    @abstractmethod
    async def get_status(self, task_id: str) -> TaskStatusReport:
        """Query the current state of a job.

        Raises:
            BackendError: if the query itself fails.
        """

    async def check_health(self) -> bool:
        """Return True when the backend answers its health endpoint."""
        return True


class BasePolicyStore(ABC):
    """Read-only source of watermark policies."""

    @abstractmethod
    async def list_active_policies(self) -> list[Policy]:
        """Return the policies available for embedding."""
