"""Normalization of stored timestamps.

Delivery documents carry timestamps in several shapes depending on who wrote
them: native datetimes, SDK timestamp wrappers, ``{"seconds": ...}`` mappings
from serialized documents, ISO-8601 strings from the REST API, or epoch
milliseconds. Everything downstream compares plain UTC datetimes, so records
are passed through :func:`normalize_record` once when they are loaded.
"""

import logging
from datetime import date, datetime, time, timezone
from typing import Any, Dict, Mapping, Optional

from .reference import ensure_reference


logger = logging.getLogger(__name__)

TIMESTAMP_FIELDS = (
    'createdAt',
    'updatedAt',
    'assignedAt',
    'pickedUpAt',
    'inTransitAt',
    'deliveredAt',
    'returnedAt',
)

_CONVERTER_METHODS = ('to_datetime', 'ToDatetime', 'toDate')


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_instant(value: Any) -> Optional[datetime]:
    """Convert any supported timestamp representation to an aware UTC datetime.

    Returns None for missing or unreadable values instead of raising.
    """
    if value is None or value == '':
        return None

    if isinstance(value, datetime):
        return _as_utc(value)

    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)

    for method in _CONVERTER_METHODS:
        converter = getattr(value, method, None)
        if callable(converter):
            try:
                return to_instant(converter())
            except Exception as e:
                logger.warning(f"Timestamp conversion via {method}() failed: {e}")
                return None

    if isinstance(value, Mapping):
        seconds = value.get('seconds', value.get('_seconds'))
        if seconds is None:
            return None
        nanos = value.get('nanoseconds', value.get('_nanoseconds')) or 0
        try:
            return datetime.fromtimestamp(float(seconds) + float(nanos) / 1e9, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            return None

    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        # epoch milliseconds, as written by browser clients
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            return _as_utc(datetime.fromisoformat(text))
        except ValueError:
            return None

    return None


def normalize_record(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy of a stored delivery with uniform timestamps and a reference."""
    normalized = dict(record)
    for field in TIMESTAMP_FIELDS:
        if field in normalized:
            normalized[field] = to_instant(normalized[field])
    return ensure_reference(normalized)
