# firmflow/storage.py
"""
Durable key-value storage for the job logs.

Both backends speak the same small API (``get``/``set``/``remove``/``keys``)
with string values. ``quota_bytes`` caps the total stored size; a write past
it raises ``StorageQuotaError`` and leaves the previous value in place.
"""

from pathlib import Path
from typing import Dict, Iterator, Optional
from urllib.parse import quote, unquote

from .errors import StorageQuotaError


class MemoryStorage:
    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._items: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            used = sum(len(v.encode("utf-8")) for k, v in self._items.items() if k != key)
            if used + len(value.encode("utf-8")) > self.quota_bytes:
                raise StorageQuotaError(f"quota of {self.quota_bytes} bytes exceeded writing {key}")
        self._items[key] = value

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> Iterator[str]:
        return iter(list(self._items))


class FileStorage:
    """One file per key under ``directory``; keys are percent-encoded into file names."""

    SUFFIX = ".json"

    def __init__(self, directory: Path, quota_bytes: Optional[int] = None):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.quota_bytes = quota_bytes

    def _path(self, key: str) -> Path:
        return self.directory / (quote(key, safe="") + self.SUFFIX)

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        if self.quota_bytes is not None:
            used = sum(p.stat().st_size for p in self.directory.glob("*" + self.SUFFIX) if p != path)
            if used + len(value.encode("utf-8")) > self.quota_bytes:
                raise StorageQuotaError(f"quota of {self.quota_bytes} bytes exceeded writing {key}")
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> Iterator[str]:
        for path in sorted(self.directory.glob("*" + self.SUFFIX)):
            yield unquote(path.name[: -len(self.SUFFIX)])
