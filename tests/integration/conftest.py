import json

import httpx
import pytest

from docmark.config.settings import Settings


class FakeGateway:
    """In-memory watermark gateway speaking the HTTP wire format."""

    def __init__(self, polls_until_done: int = 3) -> None:
        self.polls_until_done = polls_until_done
        self.requests: list[httpx.Request] = []
        self.tasks: dict[str, dict] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/api/watermark/upload":
            return httpx.Response(
                200,
                json={"success": True, "fileUrl": "https://files.local/u1", "fileName": "doc.pdf", "fileSize": 4},
            )
        if path in ("/api/watermark/add", "/api/watermark/extract"):
            body = json.loads(request.content)
            task_id = f"t{len(self.tasks) + 1}"
            self.tasks[task_id] = {"body": body, "polls": 0, "embed": path.endswith("/add")}
            return httpx.Response(200, json={"success": True, "taskId": task_id})
        if path.startswith("/api/watermark/task/"):
            task = self.tasks.get(path.rsplit("/", 1)[1])
            if task is None:
                return httpx.Response(404, json={"success": False, "message": "task not found"})
            task["polls"] += 1
            if task["polls"] < self.polls_until_done:
                progress = task["polls"] * 30
                return httpx.Response(
                    200, json={"success": True, "data": {"task_status": "processing", "progress": progress}}
                )
            result = (
                {"downloadUrl": "https://files.local/d1"}
                if task["embed"]
                else {"extractedContent": "CONFIDENTIAL", "confidence": 0.97}
            )
            return httpx.Response(
                200,
                json={"success": True, "data": {"task_status": "finished", "progress": 100, "result": result}},
            )
        if path == "/api/watermark/policies":
            return httpx.Response(
                200,
                json={"success": True, "data": [{"id": "p1", "name": "Default", "watermarkText": "CONFIDENTIAL"}]},
            )
        return httpx.Response(404, json={"success": False, "message": "not found"})


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def example_settings() -> Settings:
    return Settings(_env_file=None, backend_provider="example")


@pytest.fixture()
def http_settings() -> Settings:
    return Settings(
        _env_file=None,
        backend_provider="http",
        backend_base_url="http://gw.local",
        backend_access_key="ak",
        backend_secret_key="sk",
    )
