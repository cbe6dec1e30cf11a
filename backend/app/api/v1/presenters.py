"""
Jointures côté lecture : les services manipulent des ids et des snapshots,
la résolution des références pour l'affichage se fait ici, après coup.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from backend.app.db.models.models_v1 import (
    InventoryItem,
    PurchaseOrder,
    PurchaseOrderLine,
    Supplier,
    User,
)


def _dt(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _money(value: Decimal | None) -> float | None:
    return None if value is None else float(value)


def user_ref(user: User | None) -> dict | None:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "email": user.email}


def user_out(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "isActive": user.is_active,
        "createdAt": _dt(user.created_at),
        "updatedAt": _dt(user.updated_at),
    }


def supplier_ref(supplier: Supplier | None) -> dict | None:
    if supplier is None:
        return None
    return {
        "id": supplier.id,
        "supplierName": supplier.supplier_name,
        "email": supplier.email,
        "phone": supplier.phone,
    }


def supplier_out(s: Supplier) -> dict:
    return {
        "id": s.id,
        "supplierName": s.supplier_name,
        "contactPerson": s.contact_person,
        "email": s.email,
        "phone": s.phone,
        "address": {
            "street": s.street,
            "city": s.city,
            "state": s.state,
            "country": s.country,
            "postalCode": s.postal_code,
        },
        "taxId": s.tax_id,
        "paymentTerms": s.payment_terms.value,
        "rating": s.rating,
        "notes": s.notes,
        "isActive": s.is_active,
        "createdBy": user_ref(s.creator),
        "updatedBy": user_ref(s.updater),
        "createdAt": _dt(s.created_at),
        "updatedAt": _dt(s.updated_at),
    }


def item_out(item: InventoryItem) -> dict:
    return {
        "id": item.id,
        "itemName": item.item_name,
        "sku": item.sku,
        "description": item.description,
        "quantity": item.quantity,
        "unitPrice": _money(item.unit_price),
        "category": item.category.value,
        "reorderLevel": item.reorder_level,
        "isLowStock": item.is_low_stock,
        "supplier": (
            {"id": item.supplier.id, "supplierName": item.supplier.supplier_name} if item.supplier else None
        ),
        "isActive": item.is_active,
        "createdBy": user_ref(item.creator),
        "updatedBy": user_ref(item.updater),
        "createdAt": _dt(item.created_at),
        "updatedAt": _dt(item.updated_at),
    }


def line_out(line: PurchaseOrderLine) -> dict:
    inv = line.inventory
    return {
        "id": line.id,
        "inventory": (
            {"id": inv.id, "itemName": inv.item_name, "sku": inv.sku, "quantity": inv.quantity}
            if inv is not None
            else line.inventory_id
        ),
        "itemName": line.item_name,
        "sku": line.sku,
        "quantity": line.quantity,
        "unitPrice": _money(line.unit_price),
        "totalPrice": _money(line.total_price),
    }


def po_out(po: PurchaseOrder) -> dict:
    return {
        "id": po.id,
        "poNumber": po.po_number,
        "supplier": supplier_ref(po.supplier),
        "items": [line_out(l) for l in po.lines],
        "totalAmount": _money(po.total_amount),
        "status": po.status.value,
        "orderDate": _dt(po.order_date),
        "expectedDeliveryDate": _dt(po.expected_delivery_date),
        "actualDeliveryDate": _dt(po.actual_delivery_date),
        "notes": po.notes,
        "createdBy": user_ref(po.creator),
        "updatedBy": user_ref(po.updater),
        "approvedBy": user_ref(po.approver),
        "receivedBy": user_ref(po.receiver),
        "createdAt": _dt(po.created_at),
        "updatedAt": _dt(po.updated_at),
    }
