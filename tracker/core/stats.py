"""Aggregate numbers shown on the dashboards.

All functions are pure and recompute from the list they are given; callers
pass the freshest list on every refresh.
"""

from collections import Counter
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .filters import filter_by_delivery_person, filter_by_window
from .lifecycle import DeliveryStatus, Role
from .timestamps import to_instant


UNASSIGNED = 'unassigned'

Record = Mapping[str, Any]


def count_by_status(records: Iterable[Record]) -> Dict[str, int]:
    counts = {status.value: 0 for status in DeliveryStatus}
    for delivery in records:
        status = delivery.get('status')
        if status in counts:
            counts[status] += 1
    return counts


def count_in_window(
    records: Iterable[Record],
    window: str,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> int:
    return len(filter_by_window(records, window, now, tz))


def _rate(part: int, total: int) -> float:
    if total == 0:
        return 0
    return round(part / total * 100, 1)


def success_rate(records: Sequence[Record]) -> float:
    """Percentage of deliveries that were delivered."""
    return _rate(count_by_status(records)[DeliveryStatus.DELIVERED.value], len(records))


def return_rate(records: Sequence[Record]) -> float:
    return _rate(count_by_status(records)[DeliveryStatus.RETURNED.value], len(records))


def pending_rate(records: Sequence[Record]) -> float:
    return _rate(count_by_status(records)[DeliveryStatus.PENDING.value], len(records))


def active_count(records: Sequence[Record]) -> int:
    counts = count_by_status(records)
    return len(records) - counts[DeliveryStatus.DELIVERED.value] - counts[DeliveryStatus.RETURNED.value]


def average_daily(records: Sequence[Record], days: int = 30) -> int:
    return round(len(records) / days)


def count_by_delivery_person(records: Iterable[Record]) -> Dict[str, int]:
    counts: Counter = Counter()
    for delivery in records:
        counts[delivery.get('assignedDeliveryGuy') or UNASSIGNED] += 1
    return dict(counts)


def delivery_person_stats(records: Iterable[Record], person_id: Optional[str] = None) -> Dict[str, int]:
    assigned = filter_by_delivery_person(records, person_id)
    counts = count_by_status(assigned)
    return {
        'total': len(assigned),
        'pending': counts[DeliveryStatus.PENDING.value],
        'inTransit': counts[DeliveryStatus.PICKED_UP.value] + counts[DeliveryStatus.IN_TRANSIT.value],
        'delivered': counts[DeliveryStatus.DELIVERED.value],
        'returned': counts[DeliveryStatus.RETURNED.value],
    }


def daily_counts(
    records: Iterable[Record],
    days: int = 7,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[Dict[str, Any]]:
    """Deliveries created on each of the last ``days`` days, newest first."""
    tz = tz or timezone.utc
    today = (now or datetime.now(tz)).astimezone(tz).date()
    created = Counter()
    for delivery in records:
        instant = to_instant(delivery.get('createdAt'))
        if instant is not None:
            created[instant.astimezone(tz).date()] += 1

    result = []
    for offset in range(days):
        day = today - timedelta(days=offset)
        result.append({'date': day.isoformat(), 'count': created[day]})
    return result


def monthly_delivered_counts(
    records: Iterable[Record],
    months: int = 6,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[Dict[str, Any]]:
    """Delivered deliveries per creation month for the last ``months`` months."""
    tz = tz or timezone.utc
    current = (now or datetime.now(tz)).astimezone(tz)
    delivered = Counter()
    for delivery in records:
        if delivery.get('status') != DeliveryStatus.DELIVERED.value:
            continue
        instant = to_instant(delivery.get('createdAt'))
        if instant is not None:
            delivered[instant.astimezone(tz).strftime('%Y-%m')] += 1

    result = []
    year, month = current.year, current.month
    for _ in range(months):
        key = f"{year:04d}-{month:02d}"
        result.append({'month': key, 'count': delivered[key]})
        year, month = (year, month - 1) if month > 1 else (year - 1, 12)
    return result


def count_users_by_role(users: Iterable[Record]) -> Dict[str, int]:
    counts = {role.value: 0 for role in Role}
    for user in users:
        role = Role.parse(user.get('role'))
        if role is not None:
            counts[role.value] += 1
    return counts


def dashboard_summary(
    records: Sequence[Record],
    users: Sequence[Record],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> Dict[str, Any]:
    """Everything the admin overview shows, in one mapping."""
    by_status = count_by_status(records)
    by_role = count_users_by_role(users)
    return {
        'totalUsers': len(users),
        'totalProjectOwners': by_role[Role.PROJECT_OWNER.value],
        'totalDeliveryGuys': by_role[Role.DELIVERY_GUY.value],
        'totalAdmins': by_role[Role.ADMIN.value],
        'totalDeliveries': len(records),
        'pendingDeliveries': by_status[DeliveryStatus.PENDING.value],
        'completedDeliveries': by_status[DeliveryStatus.DELIVERED.value],
        'returnedDeliveries': by_status[DeliveryStatus.RETURNED.value],
        'byStatus': by_status,
        'activeDeliveries': active_count(records),
        'averageDaily': average_daily(records),
        'successRate': success_rate(records),
        'returnRate': return_rate(records),
        'pendingRate': pending_rate(records),
        'createdToday': count_in_window(records, 'today', now, tz),
        'createdThisWeek': count_in_window(records, 'week', now, tz),
        'createdThisMonth': count_in_window(records, 'month', now, tz),
        'byDeliveryPerson': count_by_delivery_person(records),
    }
