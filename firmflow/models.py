# firmflow/models.py
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobState(str, Enum):
    IDLE = "Idle"
    UPLOADING = "Uploading"
    POLLING = "Polling"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def is_active(self) -> bool:
        return self in (JobState.UPLOADING, JobState.POLLING)


TERMINAL_STATES = frozenset({JobState.SUCCEEDED, JobState.FAILED, JobState.TIMED_OUT})


class LogTag(str, Enum):
    UPLOAD_REQUEST = "UPLOAD_REQUEST"
    UPLOAD_RESPONSE = "UPLOAD_RESPONSE"
    UPLOAD_ERROR = "UPLOAD_ERROR"
    POLL_REQUEST = "POLL_REQUEST"
    POLL_RESPONSE = "POLL_RESPONSE"
    POLL_ERROR = "POLL_ERROR"
    POLL_TIMEOUT = "POLL_TIMEOUT"
    PARSE_ERROR = "PARSE_ERROR"
    DISPLAY_EXTRACTION = "DISPLAY_EXTRACTION"
    SHOW_RAW_RESPONSE = "SHOW_RAW_RESPONSE"
    DEBUG_NOTE = "DEBUG_NOTE"


class LogEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    timestamp: str = Field(alias="ts")
    tag: LogTag
    detail: Any = None

    def to_record(self) -> Dict[str, Any]:
        """Storage form: ``{"ts": ..., "tag": ..., "detail": ...}``."""
        return self.model_dump(mode="json", by_alias=True)


class Job(BaseModel):
    job_id: str
    state: JobState = JobState.POLLING
    created_at: datetime


class ExtractionPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    raw: Any = None
    parsed: Any = None
    parse_failed: bool = False

    @property
    def available(self) -> bool:
        return self.raw is not None


# Backend wire models

class UploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    job_id: str = Field(alias="jobId", min_length=1)
    status: str = ""


class StatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    job_id: Optional[str] = Field(default=None, alias="jobId")
    status: str
    extraction: Any = None
    requires_review: Optional[bool] = None
    result: Optional[Dict[str, Any]] = None


class UploadFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)
