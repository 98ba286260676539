# firmflow/utils.py
import mimetypes
from pathlib import Path

from .controller import DOCX, PDF
from .logger import LogExport

_KNOWN_SUFFIXES = {".pdf": PDF, ".docx": DOCX}


def guess_media_type(path: Path) -> str:
    suffix = Path(path).suffix.lower()
    if suffix in _KNOWN_SUFFIXES:
        return _KNOWN_SUFFIXES[suffix]
    guessed, _ = mimetypes.guess_type(str(path))
    return guessed or "application/octet-stream"


def save_export(export: LogExport, out_dir: Path) -> str:
    """
    Write a log export into ``out_dir`` under its own file name.
    Returns the str(path).
    """
    out_path = Path(out_dir) / export.filename
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(export.content)
    return str(out_path)
