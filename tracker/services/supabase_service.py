import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import create_client, Client

from ..core.config import Config
from ..core.filters import sort_by_created
from ..core.lifecycle import DeliveryStatus, Role, assignment_update, status_update
from ..core.session import Session
from ..core.timestamps import normalize_record
from ..core.validation import clean_products, parse_price


logger = logging.getLogger(__name__)


def get_client() -> Client:
    return create_client(Config.SUPABASE_URL, Config.SUPABASE_SERVICE_KEY)


def _serialize(document: Dict[str, Any]) -> Dict[str, Any]:
    """JSON-safe copy of a document; datetimes become ISO-8601 strings."""
    serialized = {}
    for key, value in document.items():
        if isinstance(value, (datetime, date)):
            serialized[key] = value.isoformat()
        else:
            serialized[key] = value
    return serialized


def _deliveries(supabase: Client):
    return supabase.table(Config.DELIVERIES_TABLE)


def _text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _form_document(form: Dict[str, Any]) -> Dict[str, Any]:
    destination = form['destination']
    return {
        'products': clean_products(form.get('products')),
        'destination': {'lat': destination['lat'], 'lng': destination['lng']},
        'address': form.get('address') or '',
        'notes': form.get('notes') or '',
        'recipientName': _text(form.get('recipientName')),
        'recipientPhone': _text(form.get('recipientPhone')),
        'recipientEmail': _text(form.get('recipientEmail')),
        'price': parse_price(form.get('price')),
    }


def list_deliveries(owner_id: Optional[str] = None, assigned_to: Optional[str] = None) -> List[Dict[str, Any]]:
    """Deliveries newest first, optionally scoped to an owner or a delivery person."""

    def _query(ordered: bool):
        query = _deliveries(supabase).select('*')
        if owner_id:
            query = query.eq('ownerId', owner_id)
        if assigned_to:
            query = query.eq('assignedDeliveryGuy', assigned_to)
        if ordered:
            query = query.order('createdAt', desc=True)
        return query.execute()

    try:
        supabase: Client = get_client()
        try:
            result = _query(ordered=True)
            return [normalize_record(row) for row in result.data or []]
        except Exception as e:
            # Ordering needs the createdAt column; older tables may lack it
            logger.warning(f"Ordered delivery query failed, retrying unordered: {e}")
            result = _query(ordered=False)
            return sort_by_created(normalize_record(row) for row in result.data or [])
    except Exception as e:
        logger.error(f"Failed to load deliveries: {e}")
        raise HTTPException(status_code=500, detail="Failed to load deliveries")


def list_deliveries_for(session: Session) -> List[Dict[str, Any]]:
    """The deliveries the caller is allowed to see."""
    if session.role is Role.ADMIN:
        return list_deliveries()
    if session.role is Role.DELIVERY_GUY:
        return list_deliveries(assigned_to=session.user_id)
    if session.role is Role.PROJECT_OWNER:
        return list_deliveries(owner_id=session.user_id)
    raise HTTPException(status_code=403, detail="Account has no role assigned")


def get_delivery(delivery_id: str) -> Dict[str, Any]:

    try:
        supabase: Client = get_client()
        result = _deliveries(supabase).select('*').eq('id', delivery_id).execute()
    except Exception as e:
        logger.error(f"Failed to fetch delivery {delivery_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch delivery")

    if not result.data:
        raise HTTPException(status_code=404, detail=f"Delivery not found: {delivery_id}")
    return normalize_record(result.data[0])


def create_delivery(form: Dict[str, Any], reference: str, session: Session) -> Dict[str, Any]:

    now = datetime.now(timezone.utc)
    document = {
        'reference': reference,
        'ownerId': session.user_id,
        'ownerEmail': session.email,
        **_form_document(form),
        'status': DeliveryStatus.PENDING.value,
        'assignedDeliveryGuy': None,
        'createdAt': now,
        'updatedAt': now,
    }

    try:
        supabase: Client = get_client()
        result = _deliveries(supabase).insert(_serialize(document)).execute()
    except Exception as e:
        logger.error(f"Failed to create delivery {reference}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create delivery. Please try again.")

    created = result.data[0] if result.data else document
    logger.info(f"Created delivery {reference} for owner {session.user_id}")
    return normalize_record(created)


def _update(delivery_id: str, updates: Dict[str, Any], action: str) -> Dict[str, Any]:
    try:
        supabase: Client = get_client()
        result = _deliveries(supabase).update(_serialize(updates)).eq('id', delivery_id).execute()
    except Exception as e:
        logger.error(f"Failed to {action} delivery {delivery_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to {action} delivery")

    if not result.data:
        raise HTTPException(status_code=404, detail=f"Delivery not found: {delivery_id}")
    return normalize_record(result.data[0])


def update_delivery(delivery_id: str, form: Dict[str, Any]) -> Dict[str, Any]:
    updates = {**_form_document(form), 'updatedAt': datetime.now(timezone.utc)}
    return _update(delivery_id, updates, "update")


def assign_delivery(delivery_id: str, delivery_guy_id: str, delivery_guy_email: Optional[str]) -> Dict[str, Any]:
    return _update(delivery_id, assignment_update(delivery_guy_id, delivery_guy_email), "assign")


def update_delivery_status(delivery_id: str, new_status: DeliveryStatus, session: Session) -> Dict[str, Any]:
    updates = status_update(new_status, session.user_id, session.email)
    return _update(delivery_id, updates, "update status of")


def delete_delivery(delivery_id: str) -> None:

    try:
        supabase: Client = get_client()
        _deliveries(supabase).delete().eq('id', delivery_id).execute()
    except Exception as e:
        logger.error(f"Failed to delete delivery {delivery_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete delivery")


def list_users() -> List[Dict[str, Any]]:

    try:
        supabase: Client = get_client()
        result = supabase.table(Config.USERS_TABLE).select('*').execute()
        return result.data or []
    except Exception as e:
        logger.error(f"Failed to load users: {e}")
        raise HTTPException(status_code=500, detail="Failed to load users")


def list_delivery_guys() -> List[Dict[str, Any]]:
    return [user for user in list_users() if Role.parse(user.get('role')) is Role.DELIVERY_GUY]


def get_user(user_id: str) -> Optional[Dict[str, Any]]:

    try:
        supabase: Client = get_client()
        result = supabase.table(Config.USERS_TABLE).select('*').eq('id', user_id).execute()
    except Exception as e:
        # Callers treat a missing profile as "no role"
        logger.error(f"Error getting user {user_id}: {e}")
        return None
    return result.data[0] if result.data else None


def get_user_role(user_id: str) -> Optional[Role]:
    user = get_user(user_id)
    if not user:
        return None
    return Role.parse(user.get('role'))


def save_user_profile(user_id: str, profile: Dict[str, Any]) -> None:
    supabase: Client = get_client()
    supabase.table(Config.USERS_TABLE).upsert(_serialize({'id': user_id, **profile})).execute()
