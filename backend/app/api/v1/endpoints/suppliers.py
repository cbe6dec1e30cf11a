from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import Field, field_validator
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_user, get_db, path_id, require_roles
from backend.app.api.responses import paginate, resolve_sort, success
from backend.app.api.v1.presenters import supplier_out
from backend.app.core.errors import ConflictError, NotFoundError
from backend.app.core.logging_config import get_logger
from backend.app.db.models.core_types import PaymentTerms, Role
from backend.app.db.models.models_v1 import Supplier, User
from backend.app.schemas.common import ApiModel, Email

router = APIRouter(prefix="/suppliers")
logger = get_logger("api.suppliers")

writers = require_roles(Role.admin, Role.manager)
admin_only = require_roles(Role.admin)

SUPPLIER_SORT = {
    "createdAt": Supplier.created_at,
    "supplierName": Supplier.supplier_name,
    "email": Supplier.email,
    "rating": Supplier.rating,
}


class AddressIn(ApiModel):
    street: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, max_length=128)
    state: str | None = Field(default=None, max_length=128)
    country: str | None = Field(default=None, max_length=128)
    postal_code: str | None = Field(default=None, max_length=32)


class SupplierIn(ApiModel):
    supplier_name: str = Field(min_length=2, max_length=100)
    contact_person: str = Field(min_length=2, max_length=50)
    email: Email
    phone: str = Field(min_length=5, max_length=32, pattern=r"^[0-9+\-\s()]+$")
    address: AddressIn = Field(default_factory=AddressIn)
    tax_id: str | None = Field(default=None, max_length=64)
    payment_terms: PaymentTerms = PaymentTerms.net_30
    rating: int = Field(default=3, ge=1, le=5)
    notes: str | None = Field(default=None, max_length=1000)

    @field_validator("tax_id")
    @classmethod
    def _blank_tax_id(cls, value: str | None) -> str | None:
        # "" = pas de numéro fiscal ; plusieurs NULL cohabitent sous UNIQUE
        return value or None


def _check_tax_id(db: Session, tax_id: str | None, exclude_id: str | None = None) -> None:
    if tax_id is None:
        return
    stmt = select(Supplier.id).where(Supplier.tax_id == tax_id)
    if exclude_id:
        stmt = stmt.where(Supplier.id != exclude_id)
    if db.execute(stmt).first():
        raise ConflictError("A supplier with this tax ID already exists")


def _apply(supplier: Supplier, payload: SupplierIn) -> None:
    supplier.supplier_name = payload.supplier_name
    supplier.contact_person = payload.contact_person
    supplier.email = payload.email
    supplier.phone = payload.phone
    supplier.street = payload.address.street
    supplier.city = payload.address.city
    supplier.state = payload.address.state
    supplier.country = payload.address.country
    supplier.postal_code = payload.address.postal_code
    supplier.tax_id = payload.tax_id
    supplier.payment_terms = payload.payment_terms
    supplier.rating = payload.rating
    supplier.notes = payload.notes


@router.get("")
def list_suppliers(
    is_active: bool | None = Query(default=None, alias="isActive"),
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = Query(default="supplierName", alias="sortBy"),
    order: str = "asc",
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    stmt = select(Supplier)
    if is_active is not None:
        stmt = stmt.where(Supplier.is_active.is_(is_active))
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(
                Supplier.supplier_name.ilike(pattern),
                Supplier.email.ilike(pattern),
                Supplier.contact_person.ilike(pattern),
            )
        )

    rows, pagination = paginate(
        db, stmt, page=page, limit=limit, sort_column=resolve_sort(SUPPLIER_SORT, sort_by), order=order
    )
    return success(
        {"suppliers": [supplier_out(s) for s in rows], "pagination": pagination},
        "Suppliers retrieved successfully",
    )


@router.get("/{id}")
def get_supplier(supplier_id: str = Depends(path_id), db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    supplier = db.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError("Supplier not found")
    return success({"supplier": supplier_out(supplier)}, "Supplier retrieved successfully")


@router.post("")
def create_supplier(payload: SupplierIn, db: Session = Depends(get_db), user: User = Depends(writers)):
    _check_tax_id(db, payload.tax_id)

    supplier = Supplier(created_by=user.id)
    _apply(supplier, payload)
    db.add(supplier)
    db.commit()

    logger.info("supplier_created", extra={"supplier_id": supplier.id, "actor_id": user.id})
    return success({"supplier": supplier_out(supplier)}, "Supplier created successfully", status_code=201)


@router.put("/{id}")
def update_supplier(
    payload: SupplierIn,
    supplier_id: str = Depends(path_id),
    db: Session = Depends(get_db),
    user: User = Depends(writers),
):
    supplier = db.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError("Supplier not found")

    if payload.tax_id != supplier.tax_id:
        _check_tax_id(db, payload.tax_id, exclude_id=supplier.id)

    _apply(supplier, payload)
    supplier.updated_by = user.id
    db.commit()

    return success({"supplier": supplier_out(supplier)}, "Supplier updated successfully")


@router.delete("/{id}")
def delete_supplier(supplier_id: str = Depends(path_id), db: Session = Depends(get_db), user: User = Depends(admin_only)):
    supplier = db.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError("Supplier not found")

    # Soft delete : les PO historiques gardent leur fournisseur
    supplier.is_active = False
    supplier.updated_by = user.id
    db.commit()

    logger.info("supplier_deactivated", extra={"supplier_id": supplier.id, "actor_id": user.id})
    return success({}, "Supplier deleted successfully")
