from .client import BackendClient
from .config import Settings, get_settings, load_settings, verbose_from_query
from .controller import ACCEPTED_MEDIA_TYPES, UploadController
from .extraction import normalize
from .logger import LogStore
from .models import ExtractionPayload, Job, JobState, LogEntry, LogTag, UploadFile
from .poller import JobPoller
from .storage import FileStorage, MemoryStorage

__all__ = [
    "ACCEPTED_MEDIA_TYPES",
    "BackendClient",
    "ExtractionPayload",
    "FileStorage",
    "Job",
    "JobPoller",
    "JobState",
    "LogEntry",
    "LogStore",
    "LogTag",
    "MemoryStorage",
    "Settings",
    "UploadController",
    "UploadFile",
    "get_settings",
    "load_settings",
    "normalize",
    "verbose_from_query",
]
