from __future__ import annotations

import math
from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from backend.app.core.errors import ValidationError

MAX_LIMIT = 100


def success(data: Any = None, message: str = "Success", status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"status": "success", "data": data if data is not None else {}, "message": message}),
    )


def error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "error", "message": message})


def paginate(
    db: Session,
    stmt: Select,
    *,
    page: int,
    limit: int,
    sort_column,
    order: str,
) -> tuple[list, dict]:
    """
    Applique tri + pagination et calcule ``{total, page, pages}``.
    """
    if page < 1 or limit < 1 or limit > MAX_LIMIT:
        raise ValidationError(f"page must be >= 1 and limit between 1 and {MAX_LIMIT}")
    if order not in ("asc", "desc"):
        raise ValidationError("order must be 'asc' or 'desc'")

    total = db.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()

    ordered = stmt.order_by(sort_column.desc() if order == "desc" else sort_column.asc())
    rows = db.execute(ordered.limit(limit).offset((page - 1) * limit)).scalars().all()

    return list(rows), {"total": total, "page": page, "pages": math.ceil(total / limit)}


def resolve_sort(columns: dict, sort_by: str):
    try:
        return columns[sort_by]
    except KeyError:
        allowed = ", ".join(sorted(columns))
        raise ValidationError(f"sortBy must be one of: {allowed}") from None
