from __future__ import annotations

import re
from typing import Any, Dict, Optional, Set

EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+")
REDACTED = "[redacted]"
PHONE_PATTERN = re.compile(
    r"(?<![\w-])\+?\d{1,3}[\s.-]?\(?\d{2,4}\)?[\s.-]?\d{3,4}[\s.-]?\d{3,4}(?![\w-])"
)

DEFAULT_ALLOWED_KEYS: Set[str] = {"result_count", "staff_id", "status"}

RESOURCE_METADATA_KEYS: Dict[str, Set[str]] = {
    "appointment": {
        "patient_ref",
        "scheduled_date",
        "scheduled_time",
        "duration_minutes",
        "appointment_type",
        "previous_status",
        "series_id",
        "attempts",
        "reason",
    },
    "appointment_series": {
        "created",
        "skipped",
        "removed",
        "frequency",
        "reason",
    },
    "time_off": {
        "start_date",
        "end_date",
        "type",
        "affected_count",
    },
    "staff_schedule": {
        "working_days",
        "is_active",
    },
}

ACTION_METADATA_KEYS: Dict[str, Set[str]] = {
    "appointment.reschedule": {"replacement_id", "previous_date", "previous_time"},
    "appointment.cancel": {"notify"},
    "appointment_series.cancel": {"cancelled"},
}


def _allowed_keys(resource_type: str, action: str) -> Set[str]:
    allowed = set(DEFAULT_ALLOWED_KEYS)
    allowed.update(RESOURCE_METADATA_KEYS.get(resource_type, set()))
    allowed.update(ACTION_METADATA_KEYS.get(action, set()))
    return allowed


def sanitize_metadata(
    resource_type: str,
    action: str,
    metadata: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    if not metadata:
        return {}

    allowed = _allowed_keys(resource_type, action)
    sanitized: Dict[str, Any] = {}
    for key, value in metadata.items():
        if key not in allowed:
            raise ValueError(
                f"Audit metadata key '{key}' is not allowed for action '{action}' on '{resource_type}'"
            )
        _ensure_no_contact_details(value)
        sanitized[key] = value
    return sanitized


def _ensure_no_contact_details(value: Any) -> None:
    if isinstance(value, str):
        if EMAIL_PATTERN.search(value) or PHONE_PATTERN.search(value):
            raise ValueError("Audit metadata may not contain email addresses or phone numbers")
    elif isinstance(value, dict):
        for nested in value.values():
            _ensure_no_contact_details(nested)
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            _ensure_no_contact_details(item)


def redact_contact_details(text: str) -> str:
    """Mask emails and phone numbers in free text kept for the audit trail."""
    return PHONE_PATTERN.sub(REDACTED, EMAIL_PATTERN.sub(REDACTED, text))


def make_patient_reference(patient_id: int) -> str:
    return f"patient:{patient_id}"


def ensure_appointment_metadata(
    *,
    patient_id: Optional[int] = None,
    reason: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {}
    if patient_id is not None:
        metadata["patient_ref"] = make_patient_reference(patient_id)
    if reason is not None:
        metadata["reason"] = redact_contact_details(reason)
    if extra:
        metadata.update({key: value for key, value in extra.items() if value is not None})
    return metadata
