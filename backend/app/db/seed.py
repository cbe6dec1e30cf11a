from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.core.config import get_settings
from backend.app.core.logging_config import configure_logging, get_logger
from backend.app.core.security import hash_password
from backend.app.db.session import SessionLocal
from backend.app.db.models.models_v1 import User
from backend.app.db.models.core_types import Role

logger = get_logger("db.seed")


def seed_admin(db: Session) -> User:
    """
    Crée le compte Admin initial depuis la configuration (idempotent).
    Seul moyen d'obtenir un Admin : l'inscription publique crée du Staff.
    """
    settings = get_settings()
    user = db.scalar(select(User).where(User.email == settings.admin_email))
    if user:
        logger.info("seed_admin_exists", extra={"user_id": user.id})
        return user

    user = User(
        name=settings.admin_name,
        email=settings.admin_email,
        password_hash=hash_password(settings.admin_password),
        role=Role.admin,
        is_active=True,
    )
    db.add(user)
    db.commit()

    logger.info("seed_admin_created", extra={"user_id": user.id, "email": user.email})
    return user


def run_seed() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, fmt=settings.log_format)

    db = SessionLocal()
    try:
        seed_admin(db)
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
