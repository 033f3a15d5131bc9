"""Search, filtering and pagination of delivery lists.

These back the list views of every dashboard. They work on plain lists of
delivery mappings and never mutate their input.
"""

import calendar
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .timestamps import to_instant


ALL = 'all'
DATE_WINDOWS = ('today', 'week', 'month')

Record = Mapping[str, Any]


def _contains(value: Any, needle: str) -> bool:
    return isinstance(value, str) and needle in value.lower()


def _subtract_month(day: datetime) -> datetime:
    year, month = (day.year, day.month - 1) if day.month > 1 else (day.year - 1, 12)
    last_day = calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last_day))


def window_start(window: str, now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> datetime:
    """Earliest creation instant that still falls inside ``window``.

    Windows are anchored on the start of the current day in ``tz``: ``today``
    is that midnight, ``week`` goes back seven days from it and ``month`` one
    calendar month (clamped to the end of shorter months).
    """
    tz = tz or timezone.utc
    now = (now or datetime.now(tz)).astimezone(tz)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if window == 'today':
        return today
    if window == 'week':
        return today - timedelta(days=7)
    if window == 'month':
        return _subtract_month(today)
    raise ValueError(f"Unknown date window: {window!r}")


def search_deliveries(records: Iterable[Record], term: Optional[str], include_owner: bool = False) -> List[Record]:
    if not term:
        return list(records)

    needle = term.lower()
    results = []
    for delivery in records:
        products = delivery.get('products') or []
        if (
            _contains(delivery.get('reference'), needle)
            or _contains(delivery.get('recipientName'), needle)
            # phone numbers are matched as typed
            or (isinstance(delivery.get('recipientPhone'), str) and term in delivery['recipientPhone'])
            or _contains(delivery.get('recipientEmail'), needle)
            or (include_owner and _contains(delivery.get('ownerEmail'), needle))
            or any(isinstance(p, Mapping) and _contains(p.get('name'), needle) for p in products)
        ):
            results.append(delivery)
    return results


def filter_by_status(records: Iterable[Record], status: Optional[str]) -> List[Record]:
    if not status or status == ALL:
        return list(records)
    return [d for d in records if d.get('status') == status]


def filter_by_window(
    records: Iterable[Record],
    window: Optional[str],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[Record]:
    if not window or window == ALL:
        return list(records)

    start = window_start(window, now, tz)
    results = []
    for delivery in records:
        created = to_instant(delivery.get('createdAt'))
        if created is not None and created >= start:
            results.append(delivery)
    return results


def _range_bound(value: Union[date, datetime, str, None], end: bool, tz: tzinfo) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, str) and len(value) == 10:
        value = date.fromisoformat(value)
    if isinstance(value, date) and not isinstance(value, datetime):
        # a bare end date covers that whole day
        day = value + timedelta(days=1) if end else value
        return datetime(day.year, day.month, day.day, tzinfo=tz)
    return to_instant(value)


def filter_by_date_range(
    records: Iterable[Record],
    start: Union[date, datetime, str, None] = None,
    end: Union[date, datetime, str, None] = None,
    tz: Optional[tzinfo] = None,
) -> List[Record]:
    tz = tz or timezone.utc
    start_at = _range_bound(start, False, tz)
    end_at = _range_bound(end, True, tz)
    if start_at is None and end_at is None:
        return list(records)

    results = []
    for delivery in records:
        created = to_instant(delivery.get('createdAt'))
        if created is None:
            continue
        if start_at is not None and created < start_at:
            continue
        if end_at is not None and created >= end_at:
            continue
        results.append(delivery)
    return results


def filter_by_delivery_person(records: Iterable[Record], person_id: Optional[str]) -> List[Record]:
    """Assigned deliveries, optionally narrowed to one delivery person."""
    if not person_id or person_id == ALL:
        return [d for d in records if d.get('assignedDeliveryGuy')]
    return [d for d in records if d.get('assignedDeliveryGuy') == person_id]


def sort_by_created(records: Iterable[Record], descending: bool = True) -> List[Record]:
    """Order by creation time; records without a readable timestamp go last."""
    dated, undated = [], []
    for delivery in records:
        (dated if to_instant(delivery.get('createdAt')) is not None else undated).append(delivery)
    dated.sort(key=lambda d: to_instant(d.get('createdAt')), reverse=descending)
    return dated + undated


@dataclass
class Page:
    items: List[Any]
    page: int
    per_page: int
    total: int
    total_pages: int
    first_index: int
    last_index: int
    pages: List[int] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "items": self.items,
            "page": self.page,
            "perPage": self.per_page,
            "total": self.total,
            "totalPages": self.total_pages,
            "showingFrom": self.first_index,
            "showingTo": self.last_index,
            "pages": self.pages,
        }


def page_numbers(current: int, total_pages: int, span: int = 5) -> List[int]:
    """Page buttons to show: at most ``span`` pages centred on ``current``."""
    if total_pages <= span:
        return list(range(1, total_pages + 1))
    half = span // 2
    if current <= half + 1:
        first = 1
    elif current >= total_pages - half:
        first = total_pages - span + 1
    else:
        first = current - half
    return list(range(first, first + span))


def paginate(items: Sequence[Any], page: int = 1, per_page: int = 10) -> Page:
    if per_page < 1:
        raise ValueError("per_page must be at least 1")

    total = len(items)
    total_pages = math.ceil(total / per_page)
    page = min(max(page, 1), max(total_pages, 1))
    start = (page - 1) * per_page
    page_items = list(items[start:start + per_page])

    return Page(
        items=page_items,
        page=page,
        per_page=per_page,
        total=total,
        total_pages=total_pages,
        first_index=start + 1 if page_items else 0,
        last_index=start + len(page_items),
        pages=page_numbers(page, total_pages),
    )
