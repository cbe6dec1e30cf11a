from __future__ import annotations

from typing import Callable, Generator

from fastapi import Depends, Header, Path
from sqlalchemy.orm import Session

from backend.app.core.errors import ForbiddenError, UnauthorizedError
from backend.app.core.security import (
    Actor,
    ExpiredTokenError,
    InvalidTokenError,
    decode_access_token,
)
from backend.app.db.models.core_types import Role
from backend.app.db.models.models_v1 import User
from backend.app.db.session import SessionLocal
from backend.app.schemas.common import OBJECT_ID_PATTERN


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    token = None
    if authorization and authorization.startswith("Bearer"):
        parts = authorization.split(" ", 1)
        token = parts[1].strip() if len(parts) == 2 else None

    if not token:
        raise UnauthorizedError("You are not logged in. Please log in to access this resource.")

    try:
        user_id = decode_access_token(token)
    except ExpiredTokenError:
        raise UnauthorizedError("Your token has expired. Please log in again.") from None
    except InvalidTokenError:
        raise UnauthorizedError("Invalid token. Please log in again.") from None

    user = db.get(User, user_id)
    if not user:
        raise UnauthorizedError("The user belonging to this token no longer exists.")
    if not user.is_active:
        raise UnauthorizedError("Your account has been deactivated. Please contact administrator.")
    return user


def require_roles(*roles: Role) -> Callable[..., User]:
    """Dépendance : l'utilisateur courant doit avoir un des rôles donnés."""
    allowed = " or ".join(r.value for r in roles)

    def _guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise ForbiddenError(f"You do not have permission to perform this action. Required role: {allowed}")
        return user

    return _guard


def actor_of(user: User) -> Actor:
    return Actor(id=user.id, role=user.role)


def path_id(id: str = Path(pattern=OBJECT_ID_PATTERN)) -> str:
    return id.lower()
