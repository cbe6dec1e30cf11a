from __future__ import annotations

import re
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import Field, field_validator
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_user, get_db, path_id, require_roles
from backend.app.api.responses import paginate, resolve_sort, success
from backend.app.api.v1.presenters import item_out
from backend.app.core.errors import ConflictError, NotFoundError
from backend.app.core.logging_config import get_logger
from backend.app.db.models.core_types import InventoryCategory, Role
from backend.app.db.models.models_v1 import InventoryItem, Supplier, User
from backend.app.schemas.common import ApiModel, ObjectId
from backend.services.inventory import list_low_stock, set_stock

router = APIRouter(prefix="/inventory")
logger = get_logger("api.inventory")

writers = require_roles(Role.admin, Role.manager)
admin_only = require_roles(Role.admin)

SKU_RE = re.compile(r"^[A-Z0-9-]+$")

ITEM_SORT = {
    "createdAt": InventoryItem.created_at,
    "itemName": InventoryItem.item_name,
    "sku": InventoryItem.sku,
    "quantity": InventoryItem.quantity,
    "unitPrice": InventoryItem.unit_price,
    "category": InventoryItem.category,
}


class InventoryIn(ApiModel):
    item_name: str = Field(min_length=2, max_length=100)
    sku: str = Field(min_length=1, max_length=64)
    description: str | None = Field(default=None, max_length=500)
    quantity: int = Field(ge=0)
    unit_price: Decimal = Field(ge=0, max_digits=14, decimal_places=2)
    category: InventoryCategory = InventoryCategory.other
    reorder_level: int = Field(default=10, ge=0)
    supplier_id: ObjectId | None = Field(default=None, alias="supplier")

    @field_validator("sku")
    @classmethod
    def _sku_format(cls, value: str) -> str:
        value = value.upper()
        if not SKU_RE.match(value):
            raise ValueError("SKU must contain only uppercase letters, numbers, and hyphens")
        return value


def _check_sku(db: Session, sku: str, exclude_id: str | None = None) -> None:
    # Unicité globale : les articles désactivés gardent leur SKU
    stmt = select(InventoryItem.id).where(InventoryItem.sku == sku)
    if exclude_id:
        stmt = stmt.where(InventoryItem.id != exclude_id)
    if db.execute(stmt).first():
        raise ConflictError("An item with this SKU already exists")


def _check_supplier(db: Session, supplier_id: str | None) -> None:
    if supplier_id is not None and not db.get(Supplier, supplier_id):
        raise NotFoundError("Supplier not found")


@router.get("/alerts/low-stock")
def low_stock(db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    items = list_low_stock(db)
    return success(
        {"items": [item_out(i) for i in items], "count": len(items)},
        "Low stock items retrieved successfully",
    )


@router.get("")
def list_inventory(
    category: InventoryCategory | None = None,
    is_low_stock: bool | None = Query(default=None, alias="isLowStock"),
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = Query(default="createdAt", alias="sortBy"),
    order: str = "desc",
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    stmt = select(InventoryItem).where(InventoryItem.is_active.is_(True))
    if category is not None:
        stmt = stmt.where(InventoryItem.category == category)
    if is_low_stock is True:
        stmt = stmt.where(InventoryItem.is_low_stock)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(InventoryItem.item_name.ilike(pattern), InventoryItem.sku.ilike(pattern)))

    rows, pagination = paginate(
        db, stmt, page=page, limit=limit, sort_column=resolve_sort(ITEM_SORT, sort_by), order=order
    )
    return success(
        {"items": [item_out(i) for i in rows], "pagination": pagination},
        "Inventory items retrieved successfully",
    )


@router.get("/{id}")
def get_item(item_id: str = Depends(path_id), db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    item = db.get(InventoryItem, item_id)
    if not item:
        raise NotFoundError("Inventory item not found")
    return success({"item": item_out(item)}, "Inventory item retrieved successfully")


@router.post("")
def create_item(payload: InventoryIn, db: Session = Depends(get_db), user: User = Depends(writers)):
    sku = payload.sku
    _check_sku(db, sku)
    _check_supplier(db, payload.supplier_id)

    item = InventoryItem(
        item_name=payload.item_name,
        sku=sku,
        description=payload.description,
        quantity=payload.quantity,
        unit_price=payload.unit_price,
        category=payload.category,
        reorder_level=payload.reorder_level,
        supplier_id=payload.supplier_id,
        created_by=user.id,
    )
    db.add(item)
    db.commit()

    logger.info("inventory_item_created", extra={"item_id": item.id, "sku": sku, "actor_id": user.id})
    return success({"item": item_out(item)}, "Inventory item created successfully", status_code=201)


@router.put("/{id}")
def update_item(
    payload: InventoryIn,
    item_id: str = Depends(path_id),
    db: Session = Depends(get_db),
    user: User = Depends(writers),
):
    item = db.get(InventoryItem, item_id)
    if not item:
        raise NotFoundError("Inventory item not found")

    sku = payload.sku
    if sku != item.sku:
        _check_sku(db, sku, exclude_id=item.id)
    _check_supplier(db, payload.supplier_id)

    item.item_name = payload.item_name
    item.sku = sku
    item.description = payload.description
    item.unit_price = payload.unit_price
    item.category = payload.category
    item.reorder_level = payload.reorder_level
    item.supplier_id = payload.supplier_id
    item.updated_by = user.id

    # Stock : même UPDATE atomique que la réception des PO
    db.flush()
    set_stock(db, item.id, payload.quantity, user.id)
    db.commit()

    return success({"item": item_out(item)}, "Inventory item updated successfully")


@router.delete("/{id}")
def delete_item(item_id: str = Depends(path_id), db: Session = Depends(get_db), user: User = Depends(admin_only)):
    item = db.get(InventoryItem, item_id)
    if not item:
        raise NotFoundError("Inventory item not found")

    # Soft delete
    item.is_active = False
    item.updated_by = user.id
    db.commit()

    logger.info("inventory_item_deactivated", extra={"item_id": item.id, "actor_id": user.id})
    return success({}, "Inventory item deleted successfully")
