# firmflow/extraction.py
"""
Normalization of the ``extraction`` field of a status response.

The backend sends it either as a JSON-encoded string or as an object, or
leaves it out. ``classify`` turns the raw value into one of three tagged
shapes and ``normalize`` maps each shape onto an ``ExtractionPayload``.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from .models import ExtractionPayload, LogTag


@dataclass(frozen=True)
class Raw:
    text: str


@dataclass(frozen=True)
class Structured:
    value: Any


@dataclass(frozen=True)
class Absent:
    pass


ABSENT = Absent()


def classify(raw: Any):
    if raw is None:
        return ABSENT
    if isinstance(raw, str):
        return Raw(raw)
    return Structured(raw)


def normalize(raw: Any, log_store=None, job_id: Optional[str] = None) -> ExtractionPayload:
    """
    Returns the payload for ``raw``. A string that fails to decode gives
    ``parsed=None, parse_failed=True`` and, when a log store is passed, a
    PARSE_ERROR entry with the decoder message.
    """
    shape = classify(raw)
    if isinstance(shape, Absent):
        return ExtractionPayload()
    if isinstance(shape, Structured):
        return ExtractionPayload(raw=shape.value, parsed=shape.value)

    try:
        decoded = json.loads(shape.text)
    except json.JSONDecodeError as e:
        if log_store is not None and job_id is not None:
            log_store.append(job_id, LogTag.PARSE_ERROR, {"error": str(e), "raw": shape.text})
        return ExtractionPayload(raw=shape.text, parsed=None, parse_failed=True)
    return ExtractionPayload(raw=shape.text, parsed=decoded)


# Display helpers for a parsed extraction

MAX_LISTED = 5


def summary_text(parsed: Dict[str, Any]) -> str:
    if parsed.get("summary"):
        return str(parsed["summary"])
    stamp = parsed.get("extraction_timestamp")
    if stamp:
        try:
            day = datetime.fromisoformat(str(stamp).replace("Z", "+00:00")).date()
            return f"Document processed on {day.isoformat()}. Contract extraction completed successfully."
        except ValueError:
            pass
    return "Document extraction completed successfully."


def _obligation_text(item: Any) -> str:
    if isinstance(item, str):
        return item
    if isinstance(item, dict):
        return item.get("summary") or item.get("description") or "Obligation details"
    return "Obligation details"


def _mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _sequence(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def summarize(parsed: Any) -> Dict[str, Any]:
    """
    Fields shown on the results panel. Non-dict payloads only get a summary
    line; nested fields of the wrong shape are treated as missing.
    """
    if not isinstance(parsed, dict):
        return {"summary": "Document extraction completed successfully.", "parties": [], "more_parties": 0,
                "obligations": [], "effective_date": None, "expiration_date": None, "confidence": None}

    parties = _sequence(parsed.get("parties"))
    obligations = (_sequence(parsed.get("key_obligations"))
                   or _sequence(_mapping(parsed.get("scope_of_work")).get("deliverables")))
    details = _mapping(parsed.get("contract_details"))
    accuracy = _mapping(parsed.get("confidence_scores")).get("overall_accuracy")

    return {
        "summary": summary_text(parsed),
        "parties": parties[:MAX_LISTED],
        "more_parties": max(len(parties) - MAX_LISTED, 0),
        "obligations": [_obligation_text(o) for o in obligations[:MAX_LISTED]],
        "effective_date": details.get("effective_date"),
        "expiration_date": details.get("expiration_date"),
        "confidence": round(accuracy * 100) if isinstance(accuracy, (int, float)) and accuracy else None,
    }
