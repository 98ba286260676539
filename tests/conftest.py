import json

import httpx
import pytest

from firmflow.client import BackendClient
from firmflow.config import Settings
from firmflow.controller import PDF, UploadController
from firmflow.logger import LogStore
from firmflow.models import UploadFile
from firmflow.storage import MemoryStorage


class FakeBackend:
    """
    Scripted stand-in for the processing backend.

    ``statuses`` is consumed one item per status call; the last item repeats.
    An item is a response body dict, an ``httpx.Response``, or an exception
    to raise.
    """

    def __init__(self, statuses=None, upload=None, webhook_status=200):
        self.statuses = list(statuses or [{"status": "processing"}])
        self.upload = upload if upload is not None else {"jobId": "j1", "status": "queued"}
        self.webhook_status = webhook_status
        self.calls = []
        self.forwarded = []

    def status_calls(self):
        return [path for method, path in self.calls if path.startswith("/api/status/")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))

        if path == "/api/upload":
            item = self.upload
        elif path.startswith("/api/status/"):
            item = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        elif path == "/webhook/automation":
            self.forwarded.append(json.loads(request.content))
            return httpx.Response(self.webhook_status, json={"ok": self.webhook_status < 300})
        else:
            return httpx.Response(404)

        if isinstance(item, Exception):
            raise item
        if isinstance(item, httpx.Response):
            return item
        return httpx.Response(200, json=item)

    def transport(self):
        return httpx.MockTransport(self.handler)


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def settings():
    return Settings(
        env="development",
        api_base="http://backend.test",
        poll_interval_ms=10,
        poll_timeout_ms=2000,
        forwarded_display_ms=3000,
    )


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def log_store(storage):
    return LogStore(storage)


@pytest.fixture
def make_controller(settings, log_store):
    def _make(backend, clock=None, **overrides):
        cfg = settings.model_copy(update=overrides) if overrides else settings
        client = BackendClient(cfg.api_base, transport=backend.transport())
        kwargs = {"clock": clock} if clock is not None else {}
        return UploadController(client, log_store, settings=cfg, **kwargs)

    return _make


@pytest.fixture
def pdf_file():
    return UploadFile(filename="contract.pdf", content_type=PDF, content=b"%PDF-1.7 test")
