"""Example in-process backend.

Use this module for local development and tests, and as a reference when
implementing a new backend: subclass the contracts in ``docmark.backend.base``
and register the provider in ``BackendFactory``.
"""

import itertools
from dataclasses import dataclass
from typing import ClassVar

from docmark.backend.base import BaseFileTransport, BaseJobBackend, BasePolicyStore
from docmark.backend.exceptions import BackendResponseError
from docmark.backend.models import (
    BackendStatus,
    Policy,
    SubmittedTask,
    TaskResult,
    TaskStatusReport,
)
from docmark.intake.models import SelectedFile
from docmark.upload.models import UploadedReference


@dataclass
class _ExampleJob:
    operation: str
    file_url: str
    content: str
    polls: int = 0


class ExampleBackend(BaseFileTransport, BaseJobBackend, BasePolicyStore):
    """Deterministic backend: every job finishes after a fixed number of polls.

    No network calls. Progress advances by ``progress_step`` per status query;
    the query after progress reaches 100 reports ``finished`` with a result.
    A finished embed registers its download URL, and extracting from that URL
    returns the embedded text.
    """

    DEFAULT_POLICIES: ClassVar[list[Policy]] = [
        Policy(
            id="default",
            name="Default",
            description="Visible company watermark",
            watermark_text="CONFIDENTIAL",
            sensitivity="medium",
        ),
        Policy(
            id="restricted",
            name="Restricted",
            description="Invisible trace watermark",
            watermark_text="RESTRICTED",
            sensitivity="high",
        ),
    ]

    def __init__(self, progress_step: int = 30) -> None:
        self._progress_step = progress_step
        self._jobs: dict[str, _ExampleJob] = {}
        self._files: set[str] = set()
        self._watermarks: dict[str, str] = {}
        self._ids = itertools.count(1)

    async def upload(self, file: SelectedFile) -> UploadedReference:
        file_url = f"memory://uploads/{next(self._ids)}/{file.name}"
        self._files.add(file_url)
        return UploadedReference(
            file_url=file_url,
            file_name=file.name,
            file_size_bytes=file.size_bytes,
        )

    async def submit_embed(
        self,
        file_url: str,
        watermark_text: str,
        biz_id: str,
    ) -> SubmittedTask:
        _ = biz_id
        return self._create_job("embed", file_url, watermark_text)

    async def submit_extract(self, file_url: str, biz_id: str) -> SubmittedTask:
        _ = biz_id
        return self._create_job("extract", file_url, "")

    async def get_status(self, task_id: str) -> TaskStatusReport:
        job = self._jobs.get(task_id)
        if job is None:
            raise BackendResponseError(f"Unknown task {task_id}")
        job.polls += 1
        progress = min(100, job.polls * self._progress_step)
        if progress < 100:
            remaining = (100 - progress + self._progress_step - 1) // self._progress_step
            return TaskStatusReport(
                status=BackendStatus.PROCESSING,
                progress=progress,
                estimated_time=f"{remaining * 2}s",
            )
        return TaskStatusReport(
            status=BackendStatus.FINISHED,
            progress=100,
            result=self._result_for(job),
        )

    async def list_active_policies(self) -> list[Policy]:
        return list(self.DEFAULT_POLICIES)

    def _create_job(self, operation: str, file_url: str, content: str) -> SubmittedTask:
        if file_url not in self._files:
            raise BackendResponseError(f"Unknown file {file_url}")
        task_id = f"example-{next(self._ids)}"
        self._jobs[task_id] = _ExampleJob(
            operation=operation, file_url=file_url, content=content
        )
        return SubmittedTask(task_id=task_id)

    def _result_for(self, job: _ExampleJob) -> TaskResult:
        if job.operation == "embed":
            download_url = f"{job.file_url}?watermarked=1"
            self._files.add(download_url)
            self._watermarks[download_url] = job.content
            return TaskResult(download_url=download_url)
        content = self._watermarks.get(job.file_url, self.DEFAULT_POLICIES[0].watermark_text)
        return TaskResult(extracted_content=content, confidence=0.98)
