import random
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional


REFERENCE_PREFIX = "DLV"
DATED_REFERENCE_RE = re.compile(r'DLV-(\d{4})(\d{2})(\d{2})-(\d{4})')
FALLBACK_REFERENCE_RE = re.compile(r'DLV-([A-Z0-9_-]{1,8})')


@dataclass(frozen=True)
class ParsedReference:
    kind: str  # "dated" or "fallback"
    suffix: str
    date: Optional[date] = None


def generate_delivery_reference(now: Optional[datetime] = None, rng: Optional[random.Random] = None) -> str:
    """Build a ``DLV-YYYYMMDD-NNNN`` reference for a new delivery.

    The suffix is random, so two deliveries created the same day collide with
    probability 1 in 10,000. Nothing checks for that.
    """
    now = now or datetime.now()
    suffix = (rng or random).randint(0, 9999)
    return f"{REFERENCE_PREFIX}-{now:%Y%m%d}-{suffix:04d}"


def fallback_reference(record_id: str) -> str:
    """Reference shown for records stored without one."""
    return f"{REFERENCE_PREFIX}-{str(record_id)[:8].upper()}"


def parse_reference(text: Optional[str]) -> Optional[ParsedReference]:
    if not text:
        return None

    text = text.strip()
    match = DATED_REFERENCE_RE.fullmatch(text)
    if match:
        year, month, day, suffix = match.groups()
        try:
            ref_date = date(int(year), int(month), int(day))
        except ValueError:
            ref_date = None
        if ref_date is not None:
            return ParsedReference(kind="dated", suffix=suffix, date=ref_date)

    match = FALLBACK_REFERENCE_RE.fullmatch(text)
    if match:
        return ParsedReference(kind="fallback", suffix=match.group(1))

    return None


def ensure_reference(record: Mapping[str, Any]) -> Dict[str, Any]:
    result = dict(record)
    if not result.get('reference') and result.get('id'):
        result['reference'] = fallback_reference(result['id'])
    return result
