"""
Deterministic hashing utilities.

Certificate mappings carry a SHA-256 content hash computed at creation and
re-verified whenever a mapping is loaded.  The canonical form below must be
identical before and after a database round-trip, so Decimals are
normalized and datetimes rendered in ISO form.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # 10, 10.00 and 10.000000000 must hash the same.
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, UUID):
        return str(obj)
    raise TypeError(f"cannot canonicalize {type(obj).__name__}")


def canonicalize_json(data: dict | list | Any) -> str:
    """Sorted keys, no whitespace, stable rendering of special types."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """Hex-encoded SHA-256 of the canonical JSON form."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_certificate_mapping(
    certificate_id: UUID,
    certificate_no: str,
    claim_id: UUID,
    student_id: str,
    umbrella_key: str,
    qualification: str,
    total_credits_required: Decimal,
    issued_at: datetime,
    lines: list[dict],
) -> str:
    """
    Content hash of a certificate mapping.

    ``lines`` are dicts with course_id, credits_used, total_credits,
    theory_hours, practical_hours and completion_date; they are hashed in
    the order given (position order).
    """
    payload = {
        "certificate_id": certificate_id,
        "certificate_no": certificate_no,
        "claim_id": claim_id,
        "student_id": student_id,
        "umbrella_key": umbrella_key,
        "qualification": qualification,
        "total_credits_required": total_credits_required,
        "issued_at": issued_at,
        "lines": [
            {
                "course_id": line["course_id"],
                "credits_used": line["credits_used"],
                "total_credits": line["total_credits"],
                "theory_hours": line["theory_hours"],
                "practical_hours": line["practical_hours"],
                "completion_date": line["completion_date"],
            }
            for line in lines
        ],
    }
    return hash_payload(payload)
