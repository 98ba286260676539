import httpx
import pytest

from firmflow.controller import DOCX, UploadController, validate_upload
from firmflow.errors import ForwardingError, JobInProgressError, ValidationError
from firmflow.models import JobState, LogTag, UploadFile
from firmflow.storage import MemoryStorage

from .conftest import FakeBackend, FakeClock


def test_validate_upload_accepts_pdf_and_docx(pdf_file):
    validate_upload(pdf_file)
    validate_upload(UploadFile(filename="memo.docx", content_type=DOCX, content=b"PK"))


@pytest.mark.asyncio
async def test_unsupported_type_never_reaches_backend(make_controller, log_store):
    backend = FakeBackend()
    controller = make_controller(backend)
    png = UploadFile(filename="scan.png", content_type="image/png", content=b"\x89PNG")

    with pytest.raises(ValidationError):
        await controller.submit(png)

    assert backend.calls == []
    assert controller.state is JobState.IDLE
    assert controller.job is None
    assert controller.error_message == "Please select a PDF or DOCX file"
    assert log_store.list_tracked_job_ids() == []
    await controller.aclose()


@pytest.mark.asyncio
async def test_full_lifecycle_with_forward(make_controller, pdf_file, log_store):
    backend = FakeBackend(statuses=[
        {"jobId": "j1", "status": "processing"},
        {"jobId": "j1", "status": "done", "extraction": {"summary": "ok"},
         "result": {"summary": "ok", "keyFields": {"amount": 1200}}},
    ])
    clock = FakeClock()
    controller = make_controller(backend, clock=clock)

    await controller.submit(pdf_file)
    assert await controller.wait() is JobState.SUCCEEDED
    assert controller.payload.parsed == {"summary": "ok"}

    assert await controller.send_result() is True
    assert backend.forwarded == [{"summary": "ok", "keyFields": {"amount": 1200}}]
    assert controller.forwarded is True

    clock.now += 2.9
    assert controller.forwarded is True
    clock.now += 0.2
    assert controller.forwarded is False

    note = log_store.read("j1")[0]
    assert note.tag is LogTag.DEBUG_NOTE
    assert note.detail == {"event": "forwarded", "status_code": 200}
    await controller.aclose()


@pytest.mark.asyncio
async def test_forward_failure_surfaces_generic_error(make_controller, pdf_file, log_store):
    backend = FakeBackend(statuses=[{"status": "done", "result": {"summary": "ok", "keyFields": {}}}],
                          webhook_status=502)
    controller = make_controller(backend)

    await controller.submit(pdf_file)
    await controller.wait()

    assert await controller.send_result() is False
    assert controller.forwarded is False
    assert controller.error_message == "Failed to send to automation"
    assert controller.state is JobState.SUCCEEDED
    assert log_store.read("j1")[0].detail["event"] == "forward_failed"
    assert log_store.read("j1")[0].detail["status_code"] == 502
    await controller.aclose()


@pytest.mark.asyncio
async def test_forward_requires_succeeded_job(make_controller, pdf_file):
    backend = FakeBackend(statuses=[{"status": "failed"}])
    controller = make_controller(backend)

    with pytest.raises(ForwardingError):
        await controller.send_result({"summary": "x"})

    await controller.submit(pdf_file)
    await controller.wait()
    with pytest.raises(ForwardingError):
        await controller.send_result({"summary": "x"})
    assert backend.forwarded == []
    await controller.aclose()


@pytest.mark.asyncio
async def test_forward_without_result_is_a_no_op(make_controller, pdf_file):
    backend = FakeBackend(statuses=[{"status": "done", "requires_review": True}])
    controller = make_controller(backend)

    await controller.submit(pdf_file)
    await controller.wait()
    assert controller.requires_review is True
    assert await controller.send_result() is False
    assert backend.forwarded == []
    await controller.aclose()


@pytest.mark.asyncio
async def test_reset_discards_job_and_flags(make_controller, pdf_file):
    backend = FakeBackend(statuses=[{"status": "done", "extraction": "{broken",
                                     "result": {"summary": "s", "keyFields": {}}}])
    controller = make_controller(backend)

    await controller.submit(pdf_file)
    await controller.wait()
    assert controller.payload.parse_failed is True
    await controller.send_result()
    assert controller.forwarded is True

    controller.reset()
    assert controller.state is JobState.IDLE
    assert controller.job is None
    assert controller.payload is None
    assert controller.forwarded is False
    assert controller.error is None
    await controller.aclose()


@pytest.mark.asyncio
async def test_second_upload_rejected_while_polling(make_controller, pdf_file):
    backend = FakeBackend(statuses=[{"status": "processing"}])
    controller = make_controller(backend, poll_timeout_ms=50)

    await controller.submit(pdf_file)
    with pytest.raises(JobInProgressError):
        await controller.submit(pdf_file)
    assert await controller.wait() is JobState.TIMED_OUT
    assert controller.error_message == "Processing timeout"
    await controller.aclose()


@pytest.mark.asyncio
async def test_mark_raw_shown_logs_event(make_controller, pdf_file, log_store):
    backend = FakeBackend(statuses=[{"status": "done", "extraction": "not json"}])
    controller = make_controller(backend)

    await controller.submit(pdf_file)
    await controller.wait()
    controller.mark_raw_shown()

    entry = controller.logs()[0]
    assert entry.tag is LogTag.SHOW_RAW_RESPONSE
    assert entry.detail == {"jobId": "j1", "parseFailed": True}
    await controller.aclose()


@pytest.mark.asyncio
async def test_from_settings_wires_namespace_and_limits(settings, pdf_file):
    backend = FakeBackend(statuses=[{"status": "done"}])
    storage = MemoryStorage()
    cfg = settings.model_copy(update={"storage_namespace": "acme", "max_log_entries": 3})
    controller = UploadController.from_settings(cfg, storage=storage, transport=backend.transport())

    await controller.submit(pdf_file)
    await controller.wait()

    assert controller.poller.interval == pytest.approx(0.01)
    assert storage.get("acme:logs:j1") is not None
    assert len(controller.logs()) == 3
    await controller.aclose()


@pytest.mark.asyncio
async def test_submission_failure_keeps_upload_log(make_controller, pdf_file, log_store):
    backend = FakeBackend(upload=httpx.ConnectError("backend down"))
    controller = make_controller(backend)

    assert await controller.submit(pdf_file) is None
    assert controller.state is JobState.FAILED
    assert controller.error_message == "Upload failed. Please try again."
    assert [e.tag for e in controller.logs()] == [LogTag.UPLOAD_ERROR, LogTag.UPLOAD_REQUEST]
    await controller.aclose()
