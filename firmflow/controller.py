# firmflow/controller.py
import logging
import time
from typing import Any, Callable, List, Optional

import httpx

from .client import BackendClient
from .config import Settings, get_settings
from .errors import FirmFlowError, ForwardingError, ValidationError
from .logger import LogStore
from .models import JobState, LogEntry, LogTag, UploadFile
from .poller import JobPoller, error_detail
from .storage import FileStorage

logger = logging.getLogger(__name__)

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
ACCEPTED_MEDIA_TYPES = (PDF, DOCX)


def validate_upload(file: UploadFile) -> None:
    if file.content_type not in ACCEPTED_MEDIA_TYPES:
        raise ValidationError(f"unsupported media type {file.content_type!r} for {file.filename}")


class UploadController:
    """
    One upload lifecycle: validate, submit, poll, optionally forward the
    result to the automation webhook.
    """

    def __init__(
        self,
        client: BackendClient,
        log_store: LogStore,
        settings: Optional[Settings] = None,
        verbose: bool = False,
        poller: Optional[JobPoller] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = settings or get_settings()
        self.client = client
        self.log_store = log_store
        self.poller = poller or JobPoller(
            client,
            log_store,
            interval=settings.poll_interval_s,
            timeout=settings.poll_timeout_s,
            verbose=verbose,
        )
        self.forwarded_display = settings.forwarded_display_s
        self._clock = clock
        self._forwarded_at: Optional[float] = None
        self.validation_error: Optional[ValidationError] = None
        self.forward_error: Optional[ForwardingError] = None

    @classmethod
    def from_settings(cls, settings: Settings, verbose: bool = False, storage=None, transport=None):
        client = BackendClient(settings.api_base, timeout=settings.request_timeout_s, transport=transport)
        log_store = LogStore(
            storage if storage is not None else FileStorage(settings.storage_dir),
            namespace=settings.storage_namespace,
            max_entries=settings.max_log_entries,
        )
        return cls(client, log_store, settings=settings, verbose=verbose)

    # Poller state

    @property
    def state(self) -> JobState:
        return self.poller.state

    @property
    def job(self):
        return self.poller.job

    @property
    def payload(self):
        return self.poller.payload

    @property
    def result(self):
        return self.poller.result

    @property
    def requires_review(self) -> bool:
        return self.poller.requires_review

    @property
    def error(self) -> Optional[FirmFlowError]:
        return self.validation_error or self.forward_error or self.poller.error

    @property
    def error_message(self) -> Optional[str]:
        error = self.error
        return error.user_message if error is not None else None

    @property
    def forwarded(self) -> bool:
        if self._forwarded_at is None:
            return False
        if self._clock() - self._forwarded_at >= self.forwarded_display:
            self._forwarded_at = None
            return False
        return True

    # Actions

    async def submit(self, file: UploadFile):
        self.validation_error = None
        try:
            validate_upload(file)
        except ValidationError as e:
            self.validation_error = e
            raise
        self.forward_error = None
        self._forwarded_at = None
        return await self.poller.submit(file.filename, file.content, file.content_type)

    async def wait(self) -> JobState:
        return await self.poller.wait()

    async def send_result(self, result: Any = None) -> bool:
        if self.state is not JobState.SUCCEEDED:
            raise ForwardingError(
                f"job is {self.state.value}",
                user_message="Results can only be sent once processing has finished.",
            )
        if result is None:
            result = self.poller.result
        if result is None:
            return False

        job_id = self.poller.log_key
        self.forward_error = None
        try:
            status_code = await self.client.forward(result)
        except httpx.HTTPError as e:
            detail = error_detail(e)
            self.log_store.append(job_id, LogTag.DEBUG_NOTE, {"event": "forward_failed", **detail})
            self.forward_error = ForwardingError(detail)
            logger.warning("Forwarding result for %s failed: %s", job_id, e)
            return False

        self.log_store.append(job_id, LogTag.DEBUG_NOTE, {"event": "forwarded", "status_code": status_code})
        self._forwarded_at = self._clock()
        return True

    def mark_raw_shown(self) -> None:
        job_id = self.poller.log_key
        if job_id is None:
            return
        payload = self.poller.payload
        self.log_store.append(job_id, LogTag.SHOW_RAW_RESPONSE, {
            "jobId": job_id,
            "parseFailed": bool(payload and payload.parse_failed),
        })

    def logs(self) -> List[LogEntry]:
        key = self.poller.log_key
        return self.log_store.read(key) if key else []

    def reset(self) -> None:
        self.poller.reset()
        self.validation_error = None
        self.forward_error = None
        self._forwarded_at = None

    async def aclose(self) -> None:
        await self.poller.aclose()
        await self.client.aclose()
