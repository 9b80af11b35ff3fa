# Overview: Payload validation against model column metadata plus per-entity business rules.

"""
Request payload validation

Every create/update payload goes through validate_payload() before it
reaches the record store:

- keys outside the policy's writable_fields are refused (a store can never
  set verification_status, an organizer can never set organizer_profile_id)
- values are coerced to the column type (form posts send everything as strings)
- NOT NULL and String(length) limits are checked here rather than at flush time

Business rules that column metadata cannot express live in the
enforce_rules_* functions below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, Integer, String, Text

from .errors import ValidationError
from .time_utils import parse_iso_date, parse_iso_datetime


# Fee ceiling: 10,000,000 yen
MAX_EVENT_FEE = 10_000_000

USER_GENDERS = ("male", "female", "other")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """What a client may write to a model, and what a create must include."""
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)


def _to_int(key: str, value: Any) -> int:
    # bool is an int subclass; "1.5" and "1e3" are refused too
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    text = value.strip() if isinstance(value, str) else ""
    if text.lstrip("-").isdigit():
        return int(text)
    raise ValidationError(f"{key} must be an integer")


def _to_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    flag = value.strip().lower() if isinstance(value, str) else None
    if flag in ("true", "false"):
        return flag == "true"
    raise ValidationError(f"{key} must be true or false")


def _to_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    parsed = None
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
    if parsed is None:
        raise ValidationError(f"{key} must be an ISO-8601 date or datetime")
    return parsed


def _to_date(key: str, value: Any) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = None
    if isinstance(value, str):
        try:
            parsed = parse_iso_date(value)
        except ValueError:
            parsed = None
    if parsed is None:
        raise ValidationError(f"{key} must be a date (YYYY-MM-DD)")
    return parsed


def _to_json(key: str, value: Any):
    if isinstance(value, (list, dict)):
        return value
    raise ValidationError(f"{key} must be a JSON array or object")


def _to_text(key: str, value: Any) -> str:
    return str(value).strip()


# Order matters: DateTime is checked before Date so a deadline column
# accepts a bare date string.
_COERCERS = (
    (Integer, _to_int),
    (Boolean, _to_bool),
    (DateTime, _to_datetime),
    (Date, _to_date),
    (JSON, _to_json),
    ((String, Text), _to_text),
)


def coerce_column_value(column, value: Any):
    """Convert a raw JSON/form value to the Python type of `column`."""
    if value is None:
        return None
    for column_type, coerce in _COERCERS:
        if isinstance(column.type, column_type):
            return coerce(column.key, value)
    return value


def _check_column(column, raw: Any):
    if raw is None:
        if not column.nullable:
            raise ValidationError(f"{column.key} cannot be null")
        return None

    value = coerce_column_value(column, raw)
    if isinstance(value, str):
        if value == "" and not column.nullable:
            raise ValidationError(f"{column.key} cannot be blank")
        max_length = getattr(column.type, "length", None)
        if max_length and len(value) > max_length:
            raise ValidationError(f"{column.key} exceeds max length {max_length}")
    return value


def validate_payload(
    *,
    model,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Return a cleaned patch for `model` built from a client payload.

    partial=True validates only the keys present (updates);
    partial=False also requires policy.required_on_create (creates).

    Raises:
        ValidationError: non-object payload, missing required fields (listed
            in .missing), a key outside the policy, or a value that does not
            fit its column
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    if not partial:
        missing = sorted(name for name in policy.required_on_create if payload.get(name) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing=missing)

    columns = {column.key: column for column in model.__mapper__.columns}
    refused = sorted(key for key in payload if key not in policy.writable_fields or key not in columns)
    if refused:
        raise ValidationError(f"Field not allowed: {', '.join(refused)}")

    return {key: _check_column(columns[key], raw) for key, raw in payload.items()}


def enforce_rules_event(patch: dict) -> None:
    """Event rules beyond column types: capacity, fee range, requirement labels, date order."""
    if patch.get("max_stores") is not None and patch["max_stores"] < 1:
        raise ValidationError("max_stores must be >= 1")

    fee = patch.get("fee")
    if fee is not None and not 0 <= fee <= MAX_EVENT_FEE:
        raise ValidationError(f"fee must be between 0 and {MAX_EVENT_FEE}")

    if patch.get("requirements") is not None:
        labels = patch["requirements"]
        if not isinstance(labels, list) or not all(isinstance(r, str) and r.strip() for r in labels):
            raise ValidationError("requirements must be a list of document labels")
        patch["requirements"] = [r.strip() for r in labels]

    start, end = patch.get("event_date"), patch.get("end_date")
    if start and end and end < start:
        raise ValidationError("end_date must not be before event_date")


def enforce_rules_user(patch: dict) -> None:
    if patch.get("gender") is not None and patch["gender"] not in USER_GENDERS:
        raise ValidationError(f"gender must be one of: {', '.join(USER_GENDERS)}")
    if patch.get("age") is not None and not 0 < patch["age"] < 130:
        raise ValidationError("age must be between 1 and 129")
