import time
from dataclasses import dataclass

from docmark.backend.base import BaseJobBackend
from docmark.backend.models import SubmittedTask
from docmark.logging.logger import Log
from docmark.processor.exceptions import (
    MissingPolicyError,
    MissingWatermarkTextError,
    SubmissionFailedError,
    UnsupportedOperationError,
)
from docmark.processor.models import Operation
from docmark.upload.models import UploadedReference


@dataclass(frozen=True)
class SubmitParams:
    """Operation parameters entered by the user."""

    policy_id: str | None = None
    watermark_text: str | None = None
    biz_id: str | None = None


def parse_operation(value: Operation | str) -> Operation:
    """Raises UnsupportedOperationError for anything but embed/extract."""
    try:
        return Operation(value)
    except ValueError as exc:
        raise UnsupportedOperationError(
            f"Unsupported operation '{value}'. Choose from: {[o.value for o in Operation]}"
        ) from exc


def default_biz_id(operation: Operation) -> str:
    return f"{operation.value}_{int(time.time() * 1000)}"


class TaskSubmitter:
    """Turns an uploaded file and operation parameters into one backend job."""

    def __init__(self, backend: BaseJobBackend) -> None:
        self._backend = backend

    def validate(self, operation: Operation, params: SubmitParams) -> None:
        """Check operation-specific parameters without any network call.

        Raises:
            MissingPolicyError: embed without a policy id.
            MissingWatermarkTextError: embed with blank watermark text.
        """
        if operation is not Operation.EMBED:
            return
        if not (params.policy_id or "").strip():
            raise MissingPolicyError("Select a watermark policy before embedding")
        if not (params.watermark_text or "").strip():
            raise MissingWatermarkTextError("Watermark text must not be empty")

    async def submit(
        self,
        operation: Operation,
        uploaded: UploadedReference,
        params: SubmitParams,
    ) -> SubmittedTask:
        """Create the remote job.

        Raises:
            InputValidationError: see validate(); raised before any request.
            SubmissionFailedError: if the backend call fails.
        """
        self.validate(operation, params)
        biz_id = params.biz_id or default_biz_id(operation)
        Log.info(f"Submitting {operation.value} job for {uploaded.file_name} (biz_id={biz_id})")
        try:
            if operation is Operation.EMBED:
                submitted = await self._backend.submit_embed(
                    uploaded.file_url,
                    (params.watermark_text or "").strip(),
                    biz_id,
                )
            else:
                submitted = await self._backend.submit_extract(uploaded.file_url, biz_id)
        except Exception as exc:
            Log.error(f"Submitting {operation.value} job failed: {exc}")
            raise SubmissionFailedError(str(exc) or f"Watermark {operation.value} failed") from exc
        Log.info(f"Backend accepted {operation.value} job as task {submitted.task_id}")
        return submitted
