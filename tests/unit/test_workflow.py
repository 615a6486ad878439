import asyncio
import random
from unittest.mock import AsyncMock

import pytest

from docmark.backend.exceptions import BackendNetworkError, BackendResponseError
from docmark.backend.models import Policy, SubmittedTask, TaskResult, TaskStatusReport
from docmark.intake.file_intake import FileIntake
from docmark.processor.models import TaskStatus
from docmark.processor.polling import PollingEngine
from docmark.processor.submitter import TaskSubmitter
from docmark.upload.models import UploadedReference
from docmark.upload.tracker import UploadTracker
from docmark.workflow.state import ErrorKind, WorkflowState
from docmark.workflow.workflow import Workflow

MIB = 1024 * 1024


def _make_workflow(scheduler) -> tuple[Workflow, AsyncMock, AsyncMock, AsyncMock]:
    transport = AsyncMock()
    transport.upload.return_value = UploadedReference(
        file_url="u1", file_name="doc.pdf", file_size_bytes=10 * MIB
    )
    jobs = AsyncMock()
    jobs.submit_embed.return_value = SubmittedTask(task_id="t1")
    jobs.submit_extract.return_value = SubmittedTask(task_id="t2")
    policies = AsyncMock()
    workflow = Workflow(
        intake=FileIntake(),
        tracker=UploadTracker(transport, rng=random.Random(0), scheduler=scheduler),
        submitter=TaskSubmitter(jobs),
        engine=PollingEngine(jobs, scheduler=scheduler),
        policy_store=policies,
    )
    return workflow, transport, jobs, policies


async def _uploaded(workflow: Workflow) -> None:
    assert workflow.select("doc.pdf", b"x" * (10 * MIB))
    assert await workflow.upload()


class TestSelect:
    def test_valid_file_selected(self, scheduler) -> None:
        workflow, *_ = _make_workflow(scheduler)

        assert workflow.select("doc.pdf", b"x" * 100)

        assert workflow.state is WorkflowState.FILE_SELECTED
        assert workflow.selected_file.name == "doc.pdf"
        assert workflow.error is None

    @pytest.mark.parametrize("name", ["report", "report.exe", "report."])
    def test_invalid_name_changes_nothing(self, scheduler, name: str) -> None:
        workflow, *_ = _make_workflow(scheduler)

        assert not workflow.select(name, b"x")

        assert workflow.state is WorkflowState.IDLE
        assert workflow.selected_file is None
        assert workflow.error.kind is ErrorKind.VALIDATION

    def test_oversized_file_rejected(self, scheduler) -> None:
        workflow, *_ = _make_workflow(scheduler)

        assert not workflow.select("doc.pdf", b"x" * (50 * MIB + 1))

        assert workflow.error.code == "FileTooLargeError"
        assert workflow.state is WorkflowState.IDLE

    @pytest.mark.asyncio
    async def test_reselect_discards_upload(self, scheduler) -> None:
        workflow, *_ = _make_workflow(scheduler)
        await _uploaded(workflow)

        assert workflow.select("other.docx", b"y")

        assert workflow.state is WorkflowState.FILE_SELECTED
        assert workflow.uploaded is None
        assert workflow.selected_file.name == "other.docx"

    def test_missing_path_is_validation_error(self, scheduler, tmp_path) -> None:
        workflow, *_ = _make_workflow(scheduler)

        assert not workflow.select_path(tmp_path / "missing.pdf")

        assert workflow.error.kind is ErrorKind.VALIDATION
        assert workflow.error.code == "FileNotFoundError"


class TestUpload:
    @pytest.mark.asyncio
    async def test_upload_stores_reference(self, scheduler) -> None:
        workflow, transport, *_ = _make_workflow(scheduler)
        states: list[WorkflowState] = []
        workflow.add_listener(states.append)

        await _uploaded(workflow)

        assert workflow.state is WorkflowState.UPLOADED
        assert workflow.uploaded.file_url == "u1"
        assert workflow.upload_progress == 100.0
        assert states == [
            WorkflowState.FILE_SELECTED,
            WorkflowState.UPLOADING,
            WorkflowState.UPLOADED,
        ]
        transport.upload.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_upload_failure_returns_to_file_selected(self, scheduler) -> None:
        workflow, transport, *_ = _make_workflow(scheduler)
        transport.upload.side_effect = BackendNetworkError("Backend network error: refused")
        workflow.select("doc.pdf", b"x")

        assert not await workflow.upload()

        assert workflow.state is WorkflowState.FILE_SELECTED
        assert workflow.error.kind is ErrorKind.UPLOAD
        assert "refused" in workflow.error.message
        assert workflow.upload_progress == 0.0
        assert workflow.uploaded is None

    @pytest.mark.asyncio
    async def test_upload_without_file_is_rejected(self, scheduler) -> None:
        workflow, transport, *_ = _make_workflow(scheduler)

        assert not await workflow.upload()

        assert workflow.error.kind is ErrorKind.INVALID_STATE
        assert workflow.state is WorkflowState.IDLE
        transport.upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_reset_during_upload_ignores_result(self, scheduler) -> None:
        workflow, transport, *_ = _make_workflow(scheduler)
        gate = asyncio.Event()

        async def slow_upload(file):
            await gate.wait()
            return UploadedReference(file_url="u1", file_name=file.name, file_size_bytes=1)

        transport.upload.side_effect = slow_upload
        workflow.select("doc.pdf", b"x")
        upload = asyncio.ensure_future(workflow.upload())
        await scheduler.drain()
        workflow.reset()
        gate.set()

        assert not await upload
        assert workflow.state is WorkflowState.IDLE
        assert workflow.uploaded is None


class TestSubmit:
    @pytest.mark.asyncio
    async def test_embed_without_policy_stays_uploaded(self, scheduler) -> None:
        workflow, _, jobs, _ = _make_workflow(scheduler)
        await _uploaded(workflow)

        assert not await workflow.submit("embed", watermark_text="CONFIDENTIAL")

        assert workflow.state is WorkflowState.UPLOADED
        assert workflow.error.kind is ErrorKind.VALIDATION
        assert workflow.error.code == "MissingPolicyError"
        jobs.submit_embed.assert_not_called()

    @pytest.mark.asyncio
    async def test_embed_with_blank_text_stays_uploaded(self, scheduler) -> None:
        workflow, _, jobs, _ = _make_workflow(scheduler)
        await _uploaded(workflow)

        assert not await workflow.submit("embed", policy_id="p1", watermark_text="   ")

        assert workflow.state is WorkflowState.UPLOADED
        assert workflow.error.code == "MissingWatermarkTextError"
        jobs.submit_embed.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_operation_rejected(self, scheduler) -> None:
        workflow, *_ = _make_workflow(scheduler)
        await _uploaded(workflow)

        assert not await workflow.submit("remove")

        assert workflow.error.code == "UnsupportedOperationError"
        assert workflow.state is WorkflowState.UPLOADED

    @pytest.mark.asyncio
    async def test_submission_failure_returns_to_uploaded(self, scheduler) -> None:
        workflow, _, jobs, _ = _make_workflow(scheduler)
        jobs.submit_extract.side_effect = BackendResponseError("quota exceeded")
        await _uploaded(workflow)

        assert not await workflow.submit("extract")

        assert workflow.state is WorkflowState.UPLOADED
        assert workflow.error.kind is ErrorKind.SUBMISSION
        assert workflow.error.message == "quota exceeded"
        assert workflow.task is None

    @pytest.mark.asyncio
    async def test_submit_before_upload_rejected(self, scheduler) -> None:
        workflow, _, jobs, _ = _make_workflow(scheduler)
        workflow.select("doc.pdf", b"x")

        assert not await workflow.submit("extract")

        assert workflow.error.kind is ErrorKind.INVALID_STATE
        jobs.submit_extract.assert_not_called()


class TestProcessing:
    @pytest.mark.asyncio
    async def test_embed_scenario_completes(self, scheduler) -> None:
        workflow, _, jobs, _ = _make_workflow(scheduler)
        jobs.get_status.side_effect = [
            TaskStatusReport(status="processing", progress=30),
            TaskStatusReport(status="processing", progress=60),
            TaskStatusReport(status="finished", progress=100, result=TaskResult(download_url="d1")),
        ]
        await _uploaded(workflow)

        assert await workflow.submit("embed", policy_id="p1", watermark_text="CONFIDENTIAL")

        assert workflow.state is WorkflowState.PROCESSING
        assert workflow.task.task_id == "t1"
        assert workflow.task.progress_percent == 10
        jobs.submit_embed.assert_awaited_once()
        assert jobs.submit_embed.await_args.args[:2] == ("u1", "CONFIDENTIAL")

        await scheduler.advance(2.0)
        assert workflow.task.progress_percent == 30
        await scheduler.advance(2.0)
        assert workflow.task.progress_percent == 60
        await scheduler.advance(2.0)

        assert workflow.state is WorkflowState.COMPLETED
        assert workflow.task.status is TaskStatus.COMPLETED
        assert workflow.task.result.download_url == "d1"
        assert len(workflow.poll_log) == 3
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_backend_failure_fails_workflow(self, scheduler) -> None:
        workflow, _, jobs, _ = _make_workflow(scheduler)
        jobs.get_status.side_effect = [TaskStatusReport(status="failed", message="corrupt file")]
        await _uploaded(workflow)
        await workflow.submit("extract")

        await scheduler.advance(2.0)

        assert workflow.state is WorkflowState.FAILED
        assert workflow.error.kind is ErrorKind.TASK_FAILED
        assert workflow.error.message == "corrupt file"

    @pytest.mark.asyncio
    async def test_query_failure_fails_workflow(self, scheduler) -> None:
        workflow, _, jobs, _ = _make_workflow(scheduler)
        jobs.get_status.side_effect = BackendNetworkError("Backend network error: refused")
        await _uploaded(workflow)
        await workflow.submit("extract")

        await scheduler.advance(2.0)

        assert workflow.state is WorkflowState.FAILED
        assert workflow.error.kind is ErrorKind.POLLING
        assert workflow.error.message == "status query failed"

    @pytest.mark.asyncio
    async def test_timeout_sets_notice(self, scheduler) -> None:
        workflow, _, jobs, _ = _make_workflow(scheduler)
        jobs.get_status.return_value = TaskStatusReport(status="processing", progress=50)
        await _uploaded(workflow)
        await workflow.submit("extract")

        await scheduler.advance(300.0)

        assert workflow.state is WorkflowState.TIMED_OUT
        assert workflow.notice is not None
        assert workflow.task.status is TaskStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_wait_until_settled(self, scheduler) -> None:
        workflow, _, jobs, _ = _make_workflow(scheduler)
        jobs.get_status.return_value = TaskStatusReport(
            status="finished", result=TaskResult(extracted_content="CONFIDENTIAL", confidence=0.9)
        )
        await _uploaded(workflow)
        await workflow.submit("extract")

        waiter = asyncio.ensure_future(workflow.wait_until_settled())
        await scheduler.advance(2.0)

        assert await waiter is WorkflowState.COMPLETED
        assert workflow.task.result.extracted_content == "CONFIDENTIAL"


class TestReset:
    @pytest.mark.asyncio
    async def test_reset_during_processing_stops_everything(self, scheduler) -> None:
        workflow, _, jobs, _ = _make_workflow(scheduler)
        jobs.get_status.return_value = TaskStatusReport(status="processing", progress=30)
        await _uploaded(workflow)
        await workflow.submit("extract")
        await scheduler.advance(2.0)

        workflow.reset()
        workflow.reset()

        assert workflow.state is WorkflowState.IDLE
        assert workflow.selected_file is None
        assert workflow.uploaded is None
        assert workflow.task is None
        assert workflow.error is None
        assert workflow.upload_progress == 0.0
        assert scheduler.pending == 0
        calls = jobs.get_status.await_count
        await scheduler.advance(10.0)
        assert jobs.get_status.await_count == calls

    @pytest.mark.asyncio
    async def test_close_releases_settle_waiter(self, scheduler) -> None:
        workflow, _, jobs, _ = _make_workflow(scheduler)
        jobs.get_status.return_value = TaskStatusReport(status="processing", progress=30)
        await _uploaded(workflow)
        await workflow.submit("extract")

        waiter = asyncio.ensure_future(workflow.wait_until_settled())
        await scheduler.advance(2.0)
        workflow.close()
        await scheduler.advance(400.0)

        assert waiter.done()
        assert waiter.result() is WorkflowState.PROCESSING
        assert scheduler.pending == 0

    def test_reset_when_idle(self, scheduler) -> None:
        workflow, *_ = _make_workflow(scheduler)

        workflow.reset()

        assert workflow.state is WorkflowState.IDLE


class TestPolicies:
    @pytest.mark.asyncio
    async def test_lists_policies(self, scheduler) -> None:
        workflow, _, _, policies = _make_workflow(scheduler)
        policies.list_active_policies.return_value = [Policy(id="p1", name="Default")]

        assert [p.id for p in await workflow.list_policies()] == ["p1"]

    @pytest.mark.asyncio
    async def test_policy_failure_captured(self, scheduler) -> None:
        workflow, _, _, policies = _make_workflow(scheduler)
        policies.list_active_policies.side_effect = BackendNetworkError("down")

        assert await workflow.list_policies() == []
        assert workflow.error.kind is ErrorKind.POLICY
        assert workflow.state is WorkflowState.IDLE


class TestUseRemoteFile:
    @pytest.mark.asyncio
    async def test_extract_from_url_skips_upload(self, scheduler) -> None:
        workflow, transport, jobs, _ = _make_workflow(scheduler)

        assert workflow.use_remote_file("https://files.local/d1/doc_watermarked.pdf")

        assert workflow.state is WorkflowState.UPLOADED
        assert workflow.uploaded.file_name == "doc_watermarked.pdf"
        assert workflow.selected_file is None
        assert await workflow.submit("extract", biz_id="b1")
        jobs.submit_extract.assert_awaited_once_with("https://files.local/d1/doc_watermarked.pdf", "b1")
        transport.upload.assert_not_called()
        workflow.close()

    def test_relative_url_rejected_without_change(self, scheduler) -> None:
        workflow, *_ = _make_workflow(scheduler)
        workflow.select("doc.pdf", b"x")

        assert not workflow.use_remote_file("doc_watermarked.pdf")

        assert workflow.state is WorkflowState.FILE_SELECTED
        assert workflow.uploaded is None
        assert workflow.error.kind is ErrorKind.VALIDATION
        assert workflow.error.code == "InvalidFileUrlError"

    @pytest.mark.asyncio
    async def test_download_url_of_finished_embed_can_be_extracted(self, scheduler) -> None:
        workflow, _, jobs, _ = _make_workflow(scheduler)
        jobs.get_status.side_effect = [
            TaskStatusReport(status="finished", result=TaskResult(download_url="https://files.local/d1")),
        ]
        await _uploaded(workflow)
        await workflow.submit("embed", policy_id="p1", watermark_text="CONFIDENTIAL")
        await scheduler.advance(2.0)
        download_url = workflow.task.result.download_url

        assert workflow.use_remote_file(download_url)

        assert workflow.state is WorkflowState.UPLOADED
        assert workflow.task is None
        assert workflow.uploaded.file_url == "https://files.local/d1"
        assert scheduler.pending == 0
