from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_user, get_db, path_id, require_roles
from backend.app.api.responses import paginate, resolve_sort, success
from backend.app.api.v1.presenters import user_out
from backend.app.core.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from backend.app.core.logging_config import get_logger
from backend.app.core.security import create_access_token, hash_password, verify_password
from backend.app.db.models.core_types import Role
from backend.app.db.models.models_v1 import User
from backend.app.schemas.common import ApiModel, Email

router = APIRouter(prefix="/auth")
logger = get_logger("api.auth")

admin_only = require_roles(Role.admin)

USER_SORT = {
    "createdAt": User.created_at,
    "name": User.name,
    "email": User.email,
    "role": User.role,
}


class RegisterIn(ApiModel):
    name: str = Field(min_length=2, max_length=50)
    email: Email
    password: str = Field(min_length=6, max_length=128)


class LoginIn(ApiModel):
    email: Email
    password: str = Field(min_length=1)


class PasswordUpdateIn(ApiModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6, max_length=128)


class UserUpdateIn(ApiModel):
    name: str | None = Field(default=None, min_length=2, max_length=50)
    email: Email | None = None
    role: Role | None = None
    is_active: bool | None = None


def _auth_payload(user: User) -> dict:
    return {
        "user": {"id": user.id, "name": user.name, "email": user.email, "role": user.role.value},
        "token": create_access_token(user.id),
    }


def _email_taken(db: Session, email: str) -> bool:
    return db.execute(select(User.id).where(User.email == email)).scalar_one_or_none() is not None


@router.post("/register")
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    if _email_taken(db, payload.email):
        raise ConflictError("A user with this email already exists")

    # Rôle toujours Staff à l'inscription : promotion réservée à l'Admin
    user = User(
        name=payload.name,
        email=payload.email,
        password_hash=hash_password(payload.password),
        role=Role.staff,
    )
    db.add(user)
    db.commit()

    logger.info("user_registered", extra={"user_id": user.id})
    return success(_auth_payload(user), "User registered successfully", status_code=201)


@router.post("/login")
def login(payload: LoginIn, db: Session = Depends(get_db)):
    user = db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none()
    if not user or not verify_password(user.password_hash, payload.password):
        raise UnauthorizedError("Invalid email or password")
    if not user.is_active:
        raise UnauthorizedError("Your account has been deactivated. Please contact administrator.")

    return success(_auth_payload(user), "Login successful")


@router.get("/me")
def get_me(user: User = Depends(get_current_user)):
    return success({"user": user_out(user)}, "User profile retrieved successfully")


@router.put("/update-password")
def update_password(
    payload: PasswordUpdateIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not verify_password(user.password_hash, payload.current_password):
        raise UnauthorizedError("Current password is incorrect")

    user.password_hash = hash_password(payload.new_password)
    db.commit()

    return success({"token": create_access_token(user.id)}, "Password updated successfully")


@router.get("/users")
def list_users(
    role: Role | None = None,
    is_active: bool | None = Query(default=None, alias="isActive"),
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = Query(default="createdAt", alias="sortBy"),
    order: str = "desc",
    db: Session = Depends(get_db),
    _: User = Depends(admin_only),
):
    stmt = select(User)
    if role is not None:
        stmt = stmt.where(User.role == role)
    if is_active is not None:
        stmt = stmt.where(User.is_active.is_(is_active))
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

    rows, pagination = paginate(
        db, stmt, page=page, limit=limit, sort_column=resolve_sort(USER_SORT, sort_by), order=order
    )
    return success(
        {"users": [user_out(u) for u in rows], "pagination": pagination},
        "Users retrieved successfully",
    )


@router.get("/users/{id}")
def get_user(user_id: str = Depends(path_id), db: Session = Depends(get_db), _: User = Depends(admin_only)):
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return success({"user": user_out(user)}, "User retrieved successfully")


@router.put("/users/{id}")
def update_user(
    payload: UserUpdateIn,
    user_id: str = Depends(path_id),
    db: Session = Depends(get_db),
    _: User = Depends(admin_only),
):
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    if payload.email and payload.email != user.email and _email_taken(db, payload.email):
        raise ConflictError("Email already in use")

    if payload.name is not None:
        user.name = payload.name
    if payload.email is not None:
        user.email = payload.email
    if payload.role is not None:
        user.role = payload.role
    if payload.is_active is not None:
        user.is_active = payload.is_active

    db.commit()
    return success({"user": user_out(user)}, "User updated successfully")


@router.delete("/users/{id}")
def delete_user(
    user_id: str = Depends(path_id),
    db: Session = Depends(get_db),
    current: User = Depends(admin_only),
):
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    if user.id == current.id:
        raise ValidationError("You cannot delete your own account")

    # Soft delete
    user.is_active = False
    db.commit()

    logger.info("user_deactivated", extra={"user_id": user.id, "actor_id": current.id})
    return success({}, "User deleted successfully")
