"""Roles, delivery statuses and the delivery lifecycle.

Status flow::

    pending -> picked-up -> in-transit -> delivered
                                       -> returned

Each transition stamps its own timestamp field on the delivery document.
Assignment to a delivery person is separate from the status flow and stamps
``assignedAt``.
"""

import enum
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from .timestamps import to_instant


logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    PROJECT_OWNER = "project-owner"
    DELIVERY_GUY = "delivery-guy"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: Any) -> Optional["Role"]:
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            if value is not None:
                # "delivery" shows up in some old profiles; left unmapped on purpose
                logger.warning(f"Unknown role value {value!r}")
            return None


class DeliveryStatus(str, enum.Enum):
    PENDING = "pending"
    PICKED_UP = "picked-up"
    IN_TRANSIT = "in-transit"
    DELIVERED = "delivered"
    RETURNED = "returned"

    @property
    def is_final(self) -> bool:
        return self in (DeliveryStatus.DELIVERED, DeliveryStatus.RETURNED)


TRANSITIONS = {
    DeliveryStatus.PENDING: {DeliveryStatus.PICKED_UP},
    DeliveryStatus.PICKED_UP: {DeliveryStatus.IN_TRANSIT},
    DeliveryStatus.IN_TRANSIT: {DeliveryStatus.DELIVERED, DeliveryStatus.RETURNED},
    DeliveryStatus.DELIVERED: set(),
    DeliveryStatus.RETURNED: set(),
}

STATUS_TIMESTAMP_FIELDS = {
    DeliveryStatus.PICKED_UP: 'pickedUpAt',
    DeliveryStatus.IN_TRANSIT: 'inTransitAt',
    DeliveryStatus.DELIVERED: 'deliveredAt',
    DeliveryStatus.RETURNED: 'returnedAt',
}

# The single "next step" button shown to delivery personnel. In-transit
# deliveries are closed with an explicit delivered/returned choice instead.
NEXT_ACTIONS = {
    DeliveryStatus.PENDING: (DeliveryStatus.PICKED_UP, "Mark as picked up"),
    DeliveryStatus.PICKED_UP: (DeliveryStatus.IN_TRANSIT, "Start Delivery"),
}


def can_transition(current: Any, new: Any) -> bool:
    try:
        current_status = DeliveryStatus(current)
        new_status = DeliveryStatus(new)
    except ValueError:
        return False
    return new_status in TRANSITIONS[current_status]


def next_action(status: Any) -> Optional[Dict[str, str]]:
    try:
        action = NEXT_ACTIONS.get(DeliveryStatus(status))
    except ValueError:
        return None
    if action is None:
        return None
    next_status, label = action
    return {"nextStatus": next_status.value, "text": label}


def is_editable(record: Mapping[str, Any]) -> bool:
    """Only deliveries nobody has started on can be edited by their owner."""
    return record.get('status') == DeliveryStatus.PENDING.value


def status_update(
    new_status: DeliveryStatus,
    actor_id: str,
    actor_email: Optional[str],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Update document for moving a delivery to ``new_status``."""
    now = now or datetime.now(timezone.utc)
    updates: Dict[str, Any] = {
        'status': new_status.value,
        'deliveryGuyId': actor_id,
        'deliveryGuyEmail': actor_email,
        'updatedAt': now,
    }
    timestamp_field = STATUS_TIMESTAMP_FIELDS.get(new_status)
    if timestamp_field:
        updates[timestamp_field] = now
    return updates


def assignment_update(delivery_guy_id: str, delivery_guy_email: Optional[str], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    return {
        'assignedDeliveryGuy': delivery_guy_id,
        'deliveryGuyEmail': delivery_guy_email,
        'assignedAt': now,
        'updatedAt': now,
    }


_TIMELINE_STEPS = (
    ('created', 'createdAt', "Order Created", None),
    ('assigned', 'assignedAt', "Assigned to Delivery Guy", None),
    ('picked-up', 'pickedUpAt', "Picked Up", None),
    ('in-transit', 'inTransitAt', "In Transit", None),
    ('delivered', 'deliveredAt', "Delivered Successfully", DeliveryStatus.DELIVERED),
    ('returned', 'returnedAt', "Returned", DeliveryStatus.RETURNED),
)


def activity_timeline(record: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Events that happened to a delivery, oldest first.

    Final events only appear when the delivery is still in that final status.
    """
    timeline = []
    for step, field, label, required_status in _TIMELINE_STEPS:
        if required_status is not None and record.get('status') != required_status.value:
            continue
        when = to_instant(record.get(field))
        if when is None:
            continue
        timeline.append({"status": step, "label": label, "date": when})
    return sorted(timeline, key=lambda event: event["date"])
