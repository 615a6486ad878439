"""Adapters for the watermark HTTP gateway built on httpx."""

from typing import Any

import httpx

from docmark.backend.base import BaseFileTransport, BaseJobBackend, BasePolicyStore
from docmark.backend.exceptions import BackendNetworkError, BackendResponseError
from docmark.backend.models import Policy, SubmittedTask, TaskStatusReport
from docmark.backend.validator import (
    build_policies,
    build_status_report,
    build_submitted_task,
    build_uploaded_reference,
)
from docmark.intake.models import SelectedFile
from docmark.logging.logger import Log
from docmark.upload.models import UploadedReference

UPLOAD_PATH = "/api/watermark/upload"
EMBED_PATH = "/api/watermark/add"
EXTRACT_PATH = "/api/watermark/extract"
TASK_PATH = "/api/watermark/task/{task_id}"
POLICIES_PATH = "/api/watermark/policies"
HEALTH_PATH = "/api/watermark/status"


class _GatewayAdapter:
    """Shared request handling: one AsyncClient, uniform error translation."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def _send(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            raise BackendNetworkError(f"Backend network error: {exc}") from exc
        except httpx.HTTPError as exc:
            raise BackendResponseError(f"Backend request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_error:
            message = data.get("message") if isinstance(data, dict) else None
            raise BackendResponseError(
                f"Backend returned HTTP {response.status_code}: "
                f"{message or response.reason_phrase}"
            )
        if data is None:
            raise BackendResponseError(f"Backend returned a non-JSON body for {url}")
        return data


class HttpFileTransport(_GatewayAdapter, BaseFileTransport):
    """Uploads files as multipart form data."""

    async def upload(self, file: SelectedFile) -> UploadedReference:
        data = await self._send(
            "POST",
            UPLOAD_PATH,
            files={"file": (file.name, file.content, file.mime_type)},
        )
        reference = build_uploaded_reference(data)
        Log.debug(f"Transport stored {file.name} at {reference.file_url}")
        return reference


class HttpJobBackend(_GatewayAdapter, BaseJobBackend):
    """Creates embed/extract jobs and queries their status."""

    async def submit_embed(
        self,
        file_url: str,
        watermark_text: str,
        biz_id: str,
    ) -> SubmittedTask:
        data = await self._send(
            "POST",
            EMBED_PATH,
            json={"fileUrl": file_url, "content": watermark_text, "bizId": biz_id},
        )
        return build_submitted_task(data, "Watermark embedding failed")

    async def submit_extract(self, file_url: str, biz_id: str) -> SubmittedTask:
        data = await self._send(
            "POST",
            EXTRACT_PATH,
            json={"fileUrl": file_url, "bizId": biz_id},
        )
        return build_submitted_task(data, "Watermark extraction failed")

    async def get_status(self, task_id: str) -> TaskStatusReport:
        data = await self._send("GET", TASK_PATH.format(task_id=task_id))
        return build_status_report(data)

    async def check_health(self) -> bool:
        try:
            response = await self._client.get(
                HEALTH_PATH, headers={"Accept": "application/json"}
            )
        except httpx.HTTPError as exc:
            Log.warning(f"Watermark service unreachable: {exc}")
            return False
        return response.is_success


class HttpPolicyStore(_GatewayAdapter, BasePolicyStore):
    """Reads active policies from the gateway."""

    async def list_active_policies(self) -> list[Policy]:
        data = await self._send("GET", POLICIES_PATH, params={"active": "true"})
        return build_policies(data)
