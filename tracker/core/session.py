from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException

from .lifecycle import Role


@dataclass(frozen=True)
class Session:
    """Identity of the caller for a single request."""

    user_id: str
    email: Optional[str]
    role: Optional[Role]

    def has_role(self, *roles: Role) -> bool:
        return self.role in roles


def require_role(session: Session, *roles: Role) -> Session:
    if not session.has_role(*roles):
        allowed = ', '.join(role.value for role in roles)
        raise HTTPException(status_code=403, detail=f"This action requires one of: {allowed}")
    return session
