from __future__ import annotations

from fastapi import APIRouter

from backend.app.api.responses import success
from backend.app.db.base import utcnow

router = APIRouter()


@router.get("/health")
def health():
    return success({"timestamp": utcnow().isoformat()}, "Server is running")
