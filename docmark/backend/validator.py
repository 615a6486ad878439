"""Validates gateway JSON payloads and builds domain models."""

from typing import Any

from docmark.backend.exceptions import BackendResponseError
from docmark.backend.models import Policy, SubmittedTask, TaskResult, TaskStatusReport
from docmark.upload.models import UploadedReference


def require_success(data: Any, default_message: str) -> dict[str, Any]:
    """Return the payload if it is an object with ``success: true``.

    Raises:
        BackendResponseError: carrying the backend message, or ``default_message``.
    """
    if not isinstance(data, dict):
        raise BackendResponseError("Response must be a JSON object")
    if data.get("success") is not True:
        message = data.get("message")
        raise BackendResponseError(message if isinstance(message, str) and message else default_message)
    return data


def build_uploaded_reference(data: Any) -> UploadedReference:
    payload = require_success(data, "File upload failed")
    file_url = payload.get("fileUrl")
    if not file_url or not isinstance(file_url, str):
        raise BackendResponseError("'fileUrl' must be a non-empty string")
    file_name = payload.get("fileName") or ""
    if not isinstance(file_name, str):
        raise BackendResponseError("'fileName' must be a string")
    file_size = payload.get("fileSize") or 0
    if not isinstance(file_size, int) or isinstance(file_size, bool):
        raise BackendResponseError("'fileSize' must be an integer")
    return UploadedReference(file_url=file_url, file_name=file_name, file_size_bytes=file_size)


def build_submitted_task(data: Any, default_message: str) -> SubmittedTask:
    payload = require_success(data, default_message)
    task_id = payload.get("taskId")
    if not task_id or not isinstance(task_id, str):
        raise BackendResponseError("'taskId' must be a non-empty string")
    return SubmittedTask(task_id=task_id)


def build_status_report(data: Any) -> TaskStatusReport:
    """Build a TaskStatusReport from the ``data`` object of a status response.

    Accepts both ``status`` and the upstream ``task_status`` field name.
    """
    payload = require_success(data, "Status query failed")
    raw = payload.get("data")
    if not isinstance(raw, dict):
        raise BackendResponseError("'data' must be an object")
    status = raw.get("status", raw.get("task_status"))
    if not status or not isinstance(status, str):
        raise BackendResponseError("'data.status' must be a non-empty string")
    result = _build_result(raw.get("result"))
    return TaskStatusReport(
        status=status,
        progress=_build_progress(raw.get("progress")),
        estimated_time=_optional_str(raw.get("estimatedTime"), "data.estimatedTime"),
        result=result,
        message=_build_message(raw),
    )


def build_policies(data: Any) -> list[Policy]:
    payload = require_success(data, "Policy listing failed")
    raw = payload.get("data")
    if not isinstance(raw, list):
        raise BackendResponseError("'data' must be a list")
    return [_build_policy(item, i) for i, item in enumerate(raw)]


def _build_progress(raw: Any) -> float:
    if raw is None:
        return 0.0
    if not isinstance(raw, (int, float)) or isinstance(raw, bool):
        raise BackendResponseError("'data.progress' must be a number")
    return float(raw)


def _build_result(raw: Any) -> TaskResult | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise BackendResponseError("'data.result' must be an object or null")
    confidence = raw.get("confidence")
    if confidence is not None and (
        not isinstance(confidence, (int, float)) or isinstance(confidence, bool)
    ):
        raise BackendResponseError("'data.result.confidence' must be a number or null")
    return TaskResult(
        download_url=_optional_str(raw.get("downloadUrl"), "data.result.downloadUrl"),
        extracted_content=_optional_str(
            raw.get("extractedContent"), "data.result.extractedContent"
        ),
        confidence=float(confidence) if confidence is not None else None,
    )


def _build_message(raw: dict[str, Any]) -> str | None:
    message = raw.get("message")
    if isinstance(message, str) and message:
        return message
    result = raw.get("result")
    if isinstance(result, dict):
        nested = result.get("message")
        if isinstance(nested, str) and nested:
            return nested
    return None


def _build_policy(raw: Any, index: int) -> Policy:
    if not isinstance(raw, dict):
        raise BackendResponseError(f"Policy at index {index} must be an object")
    policy_id = raw.get("id")
    if not policy_id or not isinstance(policy_id, str):
        raise BackendResponseError(f"Policy at index {index}: 'id' must be a non-empty string")
    name = raw.get("name")
    if not name or not isinstance(name, str):
        raise BackendResponseError(f"Policy at index {index}: 'name' must be a non-empty string")
    return Policy(
        id=policy_id,
        name=name,
        description=_optional_str(raw.get("description"), "description") or "",
        watermark_text=_optional_str(raw.get("watermarkText"), "watermarkText") or "",
        sensitivity=_optional_str(raw.get("sensitivity"), "sensitivity"),
    )


def _optional_str(raw: Any, field: str) -> str | None:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise BackendResponseError(f"'{field}' must be a string or null")
    return raw
