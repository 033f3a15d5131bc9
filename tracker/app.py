import logging
import time
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from .core.config import Config
from .core.filters import (
    filter_by_date_range,
    filter_by_delivery_person,
    filter_by_status,
    filter_by_window,
    paginate,
    search_deliveries,
)
from .core.lifecycle import DeliveryStatus, Role, activity_timeline, can_transition, is_editable, next_action
from .core.middleware import global_exception_handler, log_requests
from .core.reference import generate_delivery_reference
from .core.session import Session, require_role
from .core.stats import (
    count_by_status,
    daily_counts,
    dashboard_summary,
    delivery_person_stats,
    monthly_delivered_counts,
)
from .core.validation import format_tunisian_phone, validate_delivery_form, validate_storable_price
from .models import AssignIn, DeliveryForm, DeliveryPage, LoginIn, SignUpIn, StatusIn, ValidationOut
from .services.auth_service import get_session, sign_in, sign_out, sign_up
from .services.supabase_service import (
    assign_delivery,
    create_delivery,
    delete_delivery,
    get_client,
    get_delivery,
    list_deliveries_for,
    list_delivery_guys,
    list_users,
    update_delivery,
    update_delivery_status,
)

logger = logging.getLogger(__name__)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def current_session(authorization: Optional[str] = Header(None)) -> Session:
    """Session for the bearer token on the request."""
    return get_session(_bearer_token(authorization))


def _timezone() -> tzinfo:
    if Config.TIMEZONE.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(Config.TIMEZONE)


def _present(delivery: Dict[str, Any]) -> Dict[str, Any]:
    """Delivery as returned to clients, with display-only fields added."""
    return {
        **delivery,
        "recipientPhoneFormatted": format_tunisian_phone(delivery.get("recipientPhone") or ""),
        "editable": is_editable(delivery),
        "nextAction": next_action(delivery.get("status")),
    }


def _can_view(session: Session, delivery: Dict[str, Any]) -> bool:
    if session.role is Role.ADMIN:
        return True
    if session.role is Role.PROJECT_OWNER:
        return delivery.get("ownerId") == session.user_id
    if session.role is Role.DELIVERY_GUY:
        return delivery.get("assignedDeliveryGuy") == session.user_id
    return False


def _visible_delivery(delivery_id: str, session: Session) -> Dict[str, Any]:
    delivery = get_delivery(delivery_id)
    if not _can_view(session, delivery):
        raise HTTPException(status_code=403, detail="You do not have access to this delivery")
    return delivery


def _form_errors(form: Dict[str, Any]) -> Dict[str, str]:
    errors = validate_delivery_form(form)
    if "price" not in errors:
        # A valid price can still be too large to save
        price = validate_storable_price(form.get("price"))
        if not price.is_valid:
            errors["price"] = price.error
    return errors


def _validated_form(body: DeliveryForm) -> Dict[str, Any]:
    form = body.model_dump()
    errors = _form_errors(form)
    if errors:
        raise HTTPException(status_code=422, detail={"errors": errors})
    return form


# Initialize FastAPI
app = FastAPI(title="Delivery Tracker API")

# CORS setup
ALLOWED_ORIGINS = Config.allowed_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

@app.middleware("http")
async def _log_requests(request, call_next):
    return await log_requests(request, call_next)

@app.exception_handler(Exception)
async def _global_exception_handler(request, exc):
    return await global_exception_handler(request, exc)


# Auth

@app.post("/auth/signup", status_code=201)
async def signup(body: SignUpIn):
    extra = {"fullName": body.full_name, "phone": body.phone}
    return sign_up(body.email, body.password, body.role, extra)


@app.post("/auth/login")
async def login(body: LoginIn):
    return sign_in(body.email, body.password)


@app.post("/auth/logout", status_code=204)
async def logout(authorization: Optional[str] = Header(None)):
    token = _bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    sign_out(token)


@app.get("/auth/me")
async def me(session: Session = Depends(current_session)):
    return {
        "user_id": session.user_id,
        "email": session.email,
        "role": session.role.value if session.role else None,
    }


# Deliveries

@app.post("/deliveries/validate", response_model=ValidationOut)
async def validate_delivery(body: DeliveryForm):
    """Check a delivery form without saving it; reports every invalid field."""
    errors = _form_errors(body.model_dump())
    return {"valid": not errors, "errors": errors}


@app.get("/deliveries", response_model=DeliveryPage)
async def deliveries(
    search: Optional[str] = None,
    status: str = Query("all", pattern="^(all|pending|picked-up|in-transit|delivered|returned)$"),
    date_window: str = Query("all", pattern="^(all|today|week|month)$"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    delivery_guy_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(Config.ITEMS_PER_PAGE, ge=1, le=100),
    session: Session = Depends(current_session),
):
    """List the caller's deliveries, filtered and paginated.

    Admins see every delivery (and can search by owner email), project owners
    their own, delivery personnel the ones assigned to them.
    """
    tz = _timezone()
    records = list_deliveries_for(session)
    records = search_deliveries(records, search, include_owner=session.role is Role.ADMIN)
    records = filter_by_status(records, status)
    records = filter_by_window(records, date_window, tz=tz)
    records = filter_by_date_range(records, start_date, end_date, tz=tz)
    if delivery_guy_id and session.role is Role.ADMIN:
        records = filter_by_delivery_person(records, delivery_guy_id)

    result = paginate(records, page, per_page)
    result.items = [_present(d) for d in result.items]
    return {**result.as_dict(), "counts": {"total": len(records), **count_by_status(records)}}


@app.post("/deliveries", status_code=201)
async def new_delivery(body: DeliveryForm, session: Session = Depends(current_session)):
    require_role(session, Role.PROJECT_OWNER)
    form = _validated_form(body)
    reference = generate_delivery_reference(datetime.now(_timezone()))
    return _present(create_delivery(form, reference, session))


@app.get("/deliveries/{delivery_id}")
async def delivery_detail(delivery_id: str, session: Session = Depends(current_session)):
    return _present(_visible_delivery(delivery_id, session))


@app.put("/deliveries/{delivery_id}")
async def edit_delivery(delivery_id: str, body: DeliveryForm, session: Session = Depends(current_session)):
    require_role(session, Role.PROJECT_OWNER)
    delivery = _visible_delivery(delivery_id, session)
    if not is_editable(delivery):
        raise HTTPException(status_code=409, detail="Cannot edit delivery. Only pending deliveries can be edited.")
    form = _validated_form(body)
    return _present(update_delivery(delivery_id, form))


@app.delete("/deliveries/{delivery_id}", status_code=204)
async def remove_delivery(delivery_id: str, session: Session = Depends(current_session)):
    require_role(session, Role.PROJECT_OWNER, Role.ADMIN)
    delivery = _visible_delivery(delivery_id, session)
    if session.role is Role.PROJECT_OWNER and not is_editable(delivery):
        raise HTTPException(status_code=409, detail="Cannot delete delivery. Only pending deliveries can be deleted.")
    delete_delivery(delivery_id)
    logger.info(f"Delivery {delivery.get('reference')} deleted by {session.user_id}")


@app.post("/deliveries/{delivery_id}/assign")
async def assign(delivery_id: str, body: AssignIn, session: Session = Depends(current_session)):
    require_role(session, Role.ADMIN)
    delivery = get_delivery(delivery_id)
    if delivery.get("assignedDeliveryGuy"):
        raise HTTPException(status_code=409, detail="Delivery is already assigned")

    delivery_guy = next((u for u in list_delivery_guys() if u.get("id") == body.delivery_guy_id), None)
    if delivery_guy is None:
        raise HTTPException(status_code=404, detail=f"Delivery guy not found: {body.delivery_guy_id}")

    return _present(assign_delivery(delivery_id, body.delivery_guy_id, delivery_guy.get("email")))


@app.post("/deliveries/{delivery_id}/status")
async def change_status(delivery_id: str, body: StatusIn, session: Session = Depends(current_session)):
    require_role(session, Role.DELIVERY_GUY)
    delivery = _visible_delivery(delivery_id, session)
    current = delivery.get("status")

    if Config.ENFORCE_STATUS_TRANSITIONS and not can_transition(current, body.status):
        raise HTTPException(
            status_code=409,
            detail=f"Cannot move delivery from {current} to {body.status.value}",
        )
    if not Config.ENFORCE_STATUS_TRANSITIONS and not can_transition(current, body.status):
        logger.warning(f"Delivery {delivery_id} moved out of order: {current} -> {body.status.value}")

    return _present(update_delivery_status(delivery_id, body.status, session))


@app.get("/deliveries/{delivery_id}/timeline")
async def timeline(delivery_id: str, session: Session = Depends(current_session)):
    delivery = _visible_delivery(delivery_id, session)
    return {"reference": delivery.get("reference"), "timeline": activity_timeline(delivery)}


# Statistics

@app.get("/stats")
async def stats(session: Session = Depends(current_session)):
    """Admin overview: totals, rates, per-status and per-person counts, charts."""
    require_role(session, Role.ADMIN)
    tz = _timezone()
    records = list_deliveries_for(session)
    users = list_users()
    return {
        **dashboard_summary(records, users, tz=tz),
        "last7Days": daily_counts(records, days=7, tz=tz),
        "deliveredByMonth": monthly_delivered_counts(records, months=6, tz=tz),
    }


@app.get("/stats/delivery-guys")
async def delivery_guy_stats(delivery_guy_id: Optional[str] = None, session: Session = Depends(current_session)):
    require_role(session, Role.ADMIN)
    records = list_deliveries_for(session)
    return {
        "delivery_guy_id": delivery_guy_id or "all",
        **delivery_person_stats(records, delivery_guy_id),
    }


@app.get("/health")
async def health_check():
    """Basic health and dependency checks for the API."""
    health_start_time = time.time()

    try:
        # Check configuration and Supabase connection
        Config.validate()
        supabase = get_client()
        supabase.table(Config.DELIVERIES_TABLE).select('id').limit(1).execute()

        health_duration = time.time() - health_start_time

        return {
            "status": "healthy",
            "service": "delivery-tracker-api",
            "timestamp": datetime.now().isoformat(),
            "response_time_ms": round(health_duration * 1000, 2)
        }
    except Exception as e:
        health_duration = time.time() - health_start_time
        logger.error(f"Health check failed: {str(e)} - Duration: {health_duration:.1f}s")

        return {
            "status": "unhealthy",
            "service": "delivery-tracker-api",
            "timestamp": datetime.now().isoformat(),
            "error": str(e),
            "response_time_ms": round(health_duration * 1000, 2)
        }


@app.get("/")
async def root():
    """Return basic API information."""

    return {
        "service": "Delivery Tracker API",
        "version": "1.0",
        "endpoints": {
            "deliveries": "/deliveries",
            "validate": "/deliveries/validate",
            "stats": "/stats",
            "health": "/health"
        },
        "timestamp": datetime.now().isoformat(),
        "description": "Delivery requests for project owners, delivery personnel and administrators"
    }
