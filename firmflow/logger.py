# firmflow/logger.py
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from pydantic import ValidationError as ModelValidationError

from .models import LogEntry, LogTag
from .storage import MemoryStorage

logger = logging.getLogger(__name__)
diagnostics = logging.getLogger("firmflow.diagnostics")

MAX_ENTRIES = 200


def now_iso():
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class LogExport:
    filename: str
    content: str
    media_type: str = "application/json"


class LogStore:
    """
    Per-job diagnostic log, newest entry first, capped at ``max_entries``.

    Every append rewrites the job's full list into ``storage`` under
    ``<namespace>:logs:<job_id>``. Storage failures never reach the caller;
    the in-memory list stays authoritative for the session.
    """

    def __init__(self, storage=None, namespace: str = "firmflow", max_entries: int = MAX_ENTRIES):
        self.storage = storage if storage is not None else MemoryStorage()
        self.namespace = namespace
        self.max_entries = max_entries
        self._logs: Dict[str, List[LogEntry]] = {}
        # job ids whose latest entries never reached storage
        self._unsaved: Set[str] = set()

    @property
    def key_prefix(self) -> str:
        return f"{self.namespace}:logs:"

    def key_for(self, job_id: str) -> str:
        return self.key_prefix + job_id

    def append(self, job_id: str, tag: LogTag, detail: Any = None) -> LogEntry:
        entry = LogEntry(timestamp=now_iso(), tag=LogTag(tag), detail=detail)
        diagnostics.debug("[%s] %s", entry.tag.value, detail)

        entries = self._logs.setdefault(job_id, [])
        entries.insert(0, entry)
        del entries[self.max_entries:]

        self._persist(job_id, entries)
        return entry

    def read(self, job_id: str) -> List[LogEntry]:
        if job_id in self._unsaved:
            return list(self._logs.get(job_id, []))
        stored = self._load(job_id)
        if stored:
            self._logs[job_id] = stored
            return list(stored)
        return list(self._logs.get(job_id, []))

    def clear(self, job_id: str) -> None:
        self._logs.pop(job_id, None)
        self._unsaved.discard(job_id)
        try:
            self.storage.remove(self.key_for(job_id))
        except Exception as e:
            logger.warning("Failed to remove stored logs for %s: %s", job_id, e)

    def export(self, job_id: str) -> LogExport:
        records = [e.to_record() for e in self.read(job_id)]
        return LogExport(
            filename=f"{self.namespace}-logs-{job_id}.json",
            content=json.dumps(records, indent=2, ensure_ascii=False),
        )

    def list_tracked_job_ids(self) -> List[str]:
        job_ids = list(self._logs)
        try:
            stored_keys = list(self.storage.keys())
        except Exception as e:
            logger.warning("Failed to list stored logs: %s", e)
            stored_keys = []
        for key in stored_keys:
            if key.startswith(self.key_prefix):
                job_id = key[len(self.key_prefix):]
                if job_id not in job_ids:
                    job_ids.append(job_id)
        return job_ids

    def _persist(self, job_id: str, entries: List[LogEntry]) -> None:
        try:
            payload = json.dumps([e.to_record() for e in entries], ensure_ascii=False)
            self.storage.set(self.key_for(job_id), payload)
        except Exception as e:
            self._unsaved.add(job_id)
            logger.warning("Failed to persist logs for %s: %s", job_id, e)
        else:
            self._unsaved.discard(job_id)

    def _load(self, job_id: str) -> Optional[List[LogEntry]]:
        try:
            raw = self.storage.get(self.key_for(job_id))
            if not raw:
                return None
            return [LogEntry.model_validate(r) for r in json.loads(raw)][: self.max_entries]
        except (OSError, ValueError, TypeError, ModelValidationError) as e:
            logger.warning("Failed to load stored logs for %s: %s", job_id, e)
            return None
