# firmflow/poller.py
"""
Submission and status polling for a single processing job.

State flow:
    Idle -> Uploading -> Polling -> Succeeded | Failed | TimedOut
    any state -> Idle on reset()

The poll loop is one asyncio task: a sleep, then a status request, repeated
until the backend reports a terminal status. The task runs under
``asyncio.wait_for`` so the overall budget cancels whatever request is in
flight. Each run carries its own cancellation token; ``cancel()`` sets it
and cancels the task, and the loop checks it before every cycle and before
reporting a timeout.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

import httpx

from .errors import (
    FirmFlowError,
    JobInProgressError,
    ParseError,
    PollTimeoutError,
    ProcessingError,
    StatusRequestError,
    SubmissionError,
)
from .extraction import normalize
from .logger import LogStore
from .models import ExtractionPayload, Job, JobState, LogTag

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = frozenset({"done", "completed"})
FAILURE_STATUSES = frozenset({"error", "failed"})

DEFAULT_INTERVAL = 2.0
DEFAULT_TIMEOUT = 300.0


def error_detail(exc: Exception) -> Dict[str, Any]:
    detail: Dict[str, Any] = {"error": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, httpx.HTTPStatusError):
        detail["status_code"] = exc.response.status_code
        detail["body"] = exc.response.text
    return detail


class JobPoller:
    def __init__(
        self,
        client,
        log_store: LogStore,
        interval: float = DEFAULT_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        verbose: bool = False,
        on_change: Optional[Callable[[JobState], None]] = None,
    ):
        self.client = client
        self.log_store = log_store
        self.interval = interval
        self.timeout = timeout
        self.verbose = verbose
        self.on_change = on_change

        self.state = JobState.IDLE
        self.job: Optional[Job] = None
        self.upload_ref: Optional[str] = None
        self.payload: Optional[ExtractionPayload] = None
        self.result: Optional[Dict[str, Any]] = None
        self.requires_review = False
        self.error: Optional[FirmFlowError] = None
        self.parse_error: Optional[ParseError] = None
        self.poll_count = 0

        self._task: Optional[asyncio.Task] = None
        self._token: Optional[asyncio.Event] = None

    @property
    def log_key(self) -> Optional[str]:
        """Job id once issued, else the local reference of the upload attempt."""
        return self.job.job_id if self.job else self.upload_ref

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def _trace(self, msg, *args):
        if self.verbose:
            logger.info("[DEBUG] " + msg, *args)

    def _set_state(self, state: JobState) -> None:
        self.state = state
        if self.job is not None:
            self.job.state = state
        if self.on_change is not None:
            self.on_change(state)

    def _clear(self) -> None:
        self.job = None
        self.upload_ref = None
        self.payload = None
        self.result = None
        self.requires_review = False
        self.error = None
        self.parse_error = None
        self.poll_count = 0

    # Submission

    async def submit(self, filename: str, content: bytes, content_type: str) -> Optional[Job]:
        """
        Uploads the document and starts polling. Returns the Job, or None if
        the upload failed (state is then Failed and ``error`` is set) or the
        poller was reset while the upload was in flight.
        """
        if self.state.is_active:
            raise JobInProgressError(f"job {self.log_key} is {self.state.value}")

        self.cancel()
        self._clear()
        ref = self.upload_ref = f"upload-{uuid4().hex[:12]}"
        self._set_state(JobState.UPLOADING)
        self.log_store.append(ref, LogTag.UPLOAD_REQUEST, {
            "filename": filename,
            "content_type": content_type,
            "size": len(content),
        })

        try:
            upload, body = await self.client.upload(filename, content, content_type)
        except (httpx.HTTPError, ValueError) as e:
            if self.upload_ref != ref:
                return None
            detail = error_detail(e)
            self.log_store.append(ref, LogTag.UPLOAD_ERROR, detail)
            self._fail(SubmissionError(detail))
            return None

        if self.upload_ref != ref or self.state is not JobState.UPLOADING:
            self._trace("Upload %s finished after reset, ignoring jobId %s", ref, upload.job_id)
            return None

        self.job = Job(job_id=upload.job_id, state=JobState.UPLOADING, created_at=datetime.now(timezone.utc))
        self.log_store.append(upload.job_id, LogTag.UPLOAD_RESPONSE, {"upload_ref": ref, "response": body})
        self.start_polling(upload.job_id)
        return self.job

    # Polling

    def start_polling(self, job_id: str) -> asyncio.Task:
        """Cancels any running poll loop and starts a fresh one for ``job_id``."""
        self.cancel()
        if self.job is None or self.job.job_id != job_id:
            self.job = Job(job_id=job_id, state=JobState.POLLING, created_at=datetime.now(timezone.utc))
        self._set_state(JobState.POLLING)
        self._trace("Starting polling for jobId: %s", job_id)
        self.log_store.append(job_id, LogTag.DEBUG_NOTE, {
            "event": "polling_started",
            "interval_ms": int(round(self.interval * 1000)),
            "timeout_ms": int(round(self.timeout * 1000)),
        })

        token = self._token = asyncio.Event()
        self._task = asyncio.create_task(self._run(job_id, token), name=f"poll-{job_id}")
        return self._task

    async def _run(self, job_id: str, token: asyncio.Event) -> None:
        try:
            await asyncio.wait_for(self._poll_loop(job_id, token), self.timeout)
        except asyncio.TimeoutError:
            if token.is_set():
                return
            self._trace("Stopping polling - Timeout. JobId: %s", job_id)
            self.log_store.append(job_id, LogTag.POLL_TIMEOUT, {
                "timeout_ms": int(round(self.timeout * 1000)),
                "polls": self.poll_count,
            })
            self._finish(JobState.TIMED_OUT, PollTimeoutError(f"no terminal status for {job_id}"))

    async def _poll_loop(self, job_id: str, token: asyncio.Event) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if token.is_set():
                return

            self.poll_count += 1
            self.log_store.append(job_id, LogTag.POLL_REQUEST, {"attempt": self.poll_count})
            try:
                status, body = await self.client.status(job_id)
            except (httpx.HTTPError, ValueError) as e:
                if token.is_set():
                    return
                self._trace("Stopping polling - Network Error. JobId: %s, Error: %s", job_id, e)
                self.log_store.append(job_id, LogTag.POLL_ERROR, error_detail(e))
                self._fail(StatusRequestError(error_detail(e)))
                return

            if token.is_set():
                return
            self._trace("Poll response for jobId %s: %s", job_id, body)
            self.log_store.append(job_id, LogTag.POLL_RESPONSE, body)

            if status.status in SUCCESS_STATUSES:
                self._trace("Stopping polling - Success. JobId: %s, Status: %s", job_id, status.status)
                self._succeed(job_id, status)
                return
            if status.status in FAILURE_STATUSES:
                self._trace("Stopping polling - Error. JobId: %s, Status: %s", job_id, status.status)
                self.log_store.append(job_id, LogTag.POLL_ERROR, {"status": status.status, "response": body})
                self._fail(ProcessingError({"status": status.status}))
                return

    def _succeed(self, job_id: str, status) -> None:
        payload = normalize(status.extraction, self.log_store, job_id)
        self.payload = payload
        self.result = status.result
        self.requires_review = bool(status.requires_review)
        if payload.parse_failed:
            self.parse_error = ParseError({"raw": payload.raw})
        if payload.available:
            self.log_store.append(job_id, LogTag.DISPLAY_EXTRACTION, {
                "jobId": job_id,
                "parsedExists": payload.parsed is not None,
            })
        self._finish(JobState.SUCCEEDED)

    def _fail(self, error: FirmFlowError) -> None:
        self._finish(JobState.FAILED, error)

    def _finish(self, state: JobState, error: Optional[FirmFlowError] = None) -> None:
        # Runs inside the poll loop, which returns right after; the token and
        # the handle are dropped without cancelling the running task.
        if self._token is not None:
            self._token.set()
        self._task = None
        self.error = error
        if error is not None:
            logger.warning("Job %s %s: %s", self.log_key, state.value, error.user_message)
        self._set_state(state)

    # Cancellation

    def cancel(self) -> None:
        """Stops the poll loop. Safe to call repeatedly and from inside the loop."""
        if self._token is not None:
            self._token.set()
        task, self._task = self._task, None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    def reset(self) -> None:
        key = self.log_key
        self.cancel()
        if key is not None:
            self._trace("Reset upload - clearing polling for jobId: %s", key)
            self.log_store.append(key, LogTag.DEBUG_NOTE, {"event": "reset", "state": self.state.value})
        self._clear()
        self._set_state(JobState.IDLE)

    async def wait(self) -> JobState:
        """Waits for the current poll loop to end and returns the resulting state."""
        task = self._task
        if task is not None:
            await asyncio.wait({task})
        return self.state

    async def aclose(self) -> None:
        task = self._task
        self.cancel()
        if task is not None:
            await asyncio.wait({task})
