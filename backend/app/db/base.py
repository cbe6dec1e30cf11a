from __future__ import annotations

import os
import time
from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_object_id() -> str:
    """
    Identifiant 24 hex : 4 octets de timestamp + 8 octets aléatoires.
    Triable grossièrement par date de création.
    """
    return f"{int(time.time()):08x}{os.urandom(8).hex()}"


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
