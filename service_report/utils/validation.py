"""Reusable validation helpers for request bodies and status values.

Raises ValidationError (rendered as 400) so routes and services share one
error shape.
"""
from __future__ import annotations
from typing import Any, Iterable, Mapping
from service_report.errors import ValidationError


def validate_status(new_status: str, allowed: Iterable[str], field_name: str = 'status') -> str:
    """Validate that new_status is inside allowed.

    Returns the status (to enable inline usage) or raises ValidationError.
    """
    if new_status not in allowed:
        raise ValidationError(f"{field_name} invalid")
    return new_status


def require_fields(data: Mapping[str, Any], *names: str, prefix: str = '') -> None:
    """Raise ValidationError listing every missing or blank field."""
    missing = []
    for name in names:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(f"{prefix}{name}")
    if missing:
        raise ValidationError(f"{', '.join(missing)} required")


def require_mapping(data: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValidationError(f"{field_name} must be an object")
    return data


def coerce_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer")

__all__ = ['validate_status', 'require_fields', 'require_mapping', 'coerce_int']
