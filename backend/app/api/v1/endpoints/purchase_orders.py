from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backend.app.api.deps import actor_of, get_current_user, get_db, path_id, require_roles
from backend.app.api.responses import paginate, resolve_sort, success
from backend.app.api.v1.presenters import po_out
from backend.app.core.errors import NotFoundError
from backend.app.db.models.core_types import POStatus, Role
from backend.app.db.models.models_v1 import PurchaseOrder, User
from backend.app.schemas.common import ApiModel, ObjectId
from backend.services.procurement import (
    LineInput,
    change_order_status,
    create_order,
    delete_order,
    update_order,
)

router = APIRouter(prefix="/purchase-orders")

writers = require_roles(Role.admin, Role.manager)
admin_only = require_roles(Role.admin)

PO_SORT = {
    "orderDate": PurchaseOrder.order_date,
    "createdAt": PurchaseOrder.created_at,
    "poNumber": PurchaseOrder.po_number,
    "totalAmount": PurchaseOrder.total_amount,
    "expectedDeliveryDate": PurchaseOrder.expected_delivery_date,
    "status": PurchaseOrder.status,
}


class POLineIn(ApiModel):
    inventory_id: ObjectId = Field(alias="inventory")
    quantity: int = Field(ge=1)
    unit_price: Decimal | None = Field(default=None, ge=0, max_digits=14, decimal_places=2)

    def to_input(self) -> LineInput:
        return LineInput(inventory_id=self.inventory_id, quantity=self.quantity, unit_price=self.unit_price)


class POCreate(ApiModel):
    supplier_id: ObjectId = Field(alias="supplier")
    items: list[POLineIn] = Field(min_length=1)
    expected_delivery_date: datetime
    notes: str | None = Field(default=None, max_length=1000)


class POUpdate(ApiModel):
    supplier_id: ObjectId | None = Field(default=None, alias="supplier")
    items: list[POLineIn] | None = Field(default=None, min_length=1)
    expected_delivery_date: datetime | None = None
    notes: str | None = Field(default=None, max_length=1000)


class StatusIn(ApiModel):
    # Texte libre : la valeur est validée par la machine à états
    status: str


@router.get("")
def list_orders(
    status: POStatus | None = None,
    supplier: ObjectId | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = Query(default="orderDate", alias="sortBy"),
    order: str = "desc",
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    stmt = select(PurchaseOrder)
    if status is not None:
        stmt = stmt.where(PurchaseOrder.status == status)
    if supplier is not None:
        stmt = stmt.where(PurchaseOrder.supplier_id == supplier)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(PurchaseOrder.po_number.ilike(pattern), PurchaseOrder.notes.ilike(pattern)))

    rows, pagination = paginate(
        db, stmt, page=page, limit=limit, sort_column=resolve_sort(PO_SORT, sort_by), order=order
    )
    return success(
        {"purchaseOrders": [po_out(po) for po in rows], "pagination": pagination},
        "Purchase orders retrieved successfully",
    )


@router.get("/{id}")
def get_order(order_id: str = Depends(path_id), db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    po = db.get(PurchaseOrder, order_id)
    if not po:
        raise NotFoundError("Purchase order not found")
    return success({"purchaseOrder": po_out(po)}, "Purchase order retrieved successfully")


@router.post("")
def create_po(payload: POCreate, db: Session = Depends(get_db), user: User = Depends(writers)):
    po = create_order(
        db,
        supplier_id=payload.supplier_id,
        lines=[ln.to_input() for ln in payload.items],
        expected_delivery_date=payload.expected_delivery_date,
        notes=payload.notes,
        actor=actor_of(user),
    )
    return success({"purchaseOrder": po_out(po)}, "Purchase order created successfully", status_code=201)


@router.put("/{id}")
def update_po(
    payload: POUpdate,
    order_id: str = Depends(path_id),
    db: Session = Depends(get_db),
    user: User = Depends(writers),
):
    changes = {}
    # notes absent = inchangé, notes null = effacé
    if "notes" in payload.model_fields_set:
        changes["notes"] = payload.notes

    po = update_order(
        db,
        order_id,
        actor=actor_of(user),
        supplier_id=payload.supplier_id,
        lines=[ln.to_input() for ln in payload.items] if payload.items is not None else None,
        expected_delivery_date=payload.expected_delivery_date,
        **changes,
    )
    return success({"purchaseOrder": po_out(po)}, "Purchase order updated successfully")


@router.patch("/{id}/status")
def update_po_status(
    payload: StatusIn,
    order_id: str = Depends(path_id),
    db: Session = Depends(get_db),
    user: User = Depends(writers),
):
    po, result = change_order_status(db, order_id, payload.status, actor=actor_of(user))

    message = "Purchase order status updated successfully"
    if result.reconcile:
        message = "Purchase order marked as received and inventory updated successfully"
    return success({"purchaseOrder": po_out(po)}, message)


@router.delete("/{id}")
def delete_po(order_id: str = Depends(path_id), db: Session = Depends(get_db), user: User = Depends(admin_only)):
    delete_order(db, order_id, actor=actor_of(user))
    return success({}, "Purchase order deleted successfully")
