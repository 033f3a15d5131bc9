import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException
from supabase import create_client, Client

from ..core.config import Config
from ..core.lifecycle import Role
from ..core.session import Session
from .supabase_service import get_client, get_user_role, save_user_profile


logger = logging.getLogger(__name__)

# (substring of the provider message, friendly message, HTTP status)
SIGNUP_ERRORS = (
    ("already registered", "Email already in use. Please try logging in instead.", 409),
    ("already been registered", "Email already in use. Please try logging in instead.", 409),
    ("password should be", "Password too weak. Please use at least 6 characters.", 400),
    ("invalid format", "Invalid email address.", 400),
    ("email address", "Invalid email address.", 400),
    ("signups not allowed", "Authentication not enabled. Please contact support.", 503),
)

LOGIN_ERRORS = (
    ("invalid login credentials", "Incorrect email or password.", 401),
    ("email not confirmed", "Please confirm your email address before logging in.", 401),
    ("rate limit", "Too many failed attempts. Please try again later.", 429),
    ("too many", "Too many failed attempts. Please try again later.", 429),
    ("invalid format", "Invalid email address.", 400),
)


def get_auth_client() -> Client:
    return create_client(Config.SUPABASE_URL, Config.SUPABASE_ANON_KEY)


def _friendly_error(error: Exception, table, default: str, default_status: int) -> HTTPException:
    message = str(error).lower()
    for needle, friendly, status_code in table:
        if needle in message:
            return HTTPException(status_code=status_code, detail=friendly)
    return HTTPException(status_code=default_status, detail=default)


def sign_up(email: str, password: str, role: Role, additional_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Create the auth user and its profile row.

    A failed profile write does not undo the account; the caller gets a
    warning message instead.
    """
    try:
        supabase: Client = get_auth_client()
        response = supabase.auth.sign_up({"email": email, "password": password})
    except Exception as e:
        logger.error(f"Sign up failed for {email}: {e}")
        raise _friendly_error(e, SIGNUP_ERRORS, "Failed to create account", 400)

    user = response.user
    if user is None:
        raise HTTPException(status_code=400, detail="Failed to create account")

    profile = {
        'email': user.email or email,
        'role': role.value,
        'createdAt': datetime.now(timezone.utc),
        **{k: v for k, v in (additional_data or {}).items() if v is not None},
    }
    try:
        save_user_profile(user.id, profile)
        message = "Account created successfully! Welcome aboard!"
        level = "success"
    except Exception as e:
        logger.error(f"Error saving user profile for {user.id}: {e}")
        message = "Account created but profile setup incomplete. Please contact support."
        level = "warning"

    return {
        "user_id": user.id,
        "email": user.email or email,
        "role": role.value,
        "access_token": response.session.access_token if response.session else None,
        "message": message,
        "level": level,
    }


def sign_in(email: str, password: str) -> Dict[str, Any]:

    try:
        supabase: Client = get_auth_client()
        response = supabase.auth.sign_in_with_password({"email": email, "password": password})
    except Exception as e:
        logger.warning(f"Login failed for {email}: {e}")
        raise _friendly_error(e, LOGIN_ERRORS, "Failed to log in", 401)

    if response.user is None or response.session is None:
        raise HTTPException(status_code=401, detail="Failed to log in")

    role = get_user_role(response.user.id)
    return {
        "user_id": response.user.id,
        "email": response.user.email,
        "role": role.value if role else None,
        "access_token": response.session.access_token,
        "refresh_token": response.session.refresh_token,
        "message": "Welcome back!",
    }


def sign_out(access_token: str) -> None:

    try:
        supabase: Client = get_client()
        supabase.auth.admin.sign_out(access_token)
    except Exception as e:
        logger.warning(f"Sign out failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to log out")


def get_session(access_token: Optional[str]) -> Session:
    """Resolve a bearer token to the caller's session."""
    if not access_token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        supabase: Client = get_auth_client()
        response = supabase.auth.get_user(access_token)
    except Exception as e:
        logger.warning(f"Token verification failed: {e}")
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    user = response.user if response else None
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    return Session(user_id=user.id, email=user.email, role=get_user_role(user.id))
