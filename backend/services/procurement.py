"""
Procurement service.

Ce module orchestre le cycle de vie des bons de commande :
numérotation, valorisation des lignes, machine à états des statuts.

Il ne contient AUCUNE écriture de stock : l'entrée en stock à la réception
est déléguée à ``backend.services.inventory``, dans la même transaction que
l'écriture du PO.

Machine à états :

    Draft -> Pending -> Approved -> Received
      \\         \\           \\
       +---------+-----------+--> Cancelled

``Received`` et ``Cancelled`` sont terminaux : plus de changement de statut,
de modification ni de suppression.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from backend.app.core.errors import (
    AppError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from backend.app.core.logging_config import get_logger
from backend.app.core.security import Actor
from backend.app.db.base import utcnow
from backend.app.db.models.core_types import POStatus, TERMINAL_PO_STATUSES
from backend.app.db.models.models_v1 import (
    InventoryItem,
    PurchaseOrder,
    PurchaseOrderLine,
    Supplier,
)
from backend.services import inventory

logger = get_logger("services.procurement")

MONEY = Decimal("0.01")
PO_PREFIX = "PO"
PO_SEQUENCE_MAX = 9999

_UNSET = object()


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(MONEY, rounding=ROUND_HALF_UP)


def as_utc(value: datetime) -> datetime:
    # Dates naïves reçues de l'API = UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------- NUMÉROTATION ----------
def generate_po_number(db: Session, now: datetime | None = None) -> str:
    """
    ``PO-YYYYMM-NNNN`` : séquence mensuelle dérivée des données,
    plafonnée à 9999 bons par mois.

    Lit le plus grand po_number du mois (ordre lexicographique) et ajoute 1.
    Deux créations concurrentes peuvent calculer le même numéro : la
    contrainte UNIQUE sur po_number tranche (voir ``create_order``).
    """
    now = as_utc(now or utcnow())
    prefix = f"{PO_PREFIX}-{now:%Y%m}-"

    last = db.execute(
        select(PurchaseOrder.po_number)
        .where(PurchaseOrder.po_number.like(f"{prefix}%"))
        .order_by(PurchaseOrder.po_number.desc())
        .limit(1)
    ).scalar_one_or_none()

    sequence = 1
    if last:
        sequence = int(last.rsplit("-", 1)[1]) + 1
    if sequence > PO_SEQUENCE_MAX:
        # Au-delà, le tri lexicographique ne trouverait plus le dernier numéro
        raise ConflictError(f"Purchase order numbers for {now:%Y-%m} are exhausted")

    return f"{prefix}{sequence:04d}"


# ---------- VALORISATION ----------
@dataclass(frozen=True)
class LineInput:
    inventory_id: str
    quantity: int
    unit_price: Decimal | None = None


def enrich_lines(db: Session, submitted: Iterable[LineInput]) -> list[PurchaseOrderLine]:
    """
    Résout chaque ligne contre son article :
    - snapshot item_name / sku (figé ensuite)
    - unit_price par défaut = prix courant de l'article
    - total_price toujours recalculé, jamais repris de l'entrée
    """
    lines: list[PurchaseOrderLine] = []
    for position, ln in enumerate(submitted):
        item = db.get(InventoryItem, ln.inventory_id)
        if not item:
            raise NotFoundError(f"Inventory item with ID {ln.inventory_id} not found")

        unit_price = to_money(item.unit_price if ln.unit_price is None else ln.unit_price)
        lines.append(
            PurchaseOrderLine(
                position=position,
                inventory_id=item.id,
                item_name=item.item_name,
                sku=item.sku,
                quantity=int(ln.quantity),
                unit_price=unit_price,
                total_price=to_money(unit_price * int(ln.quantity)),
            )
        )
    return lines


def normalize_order(po: PurchaseOrder) -> PurchaseOrder:
    """
    Recalcule total_price de chaque ligne puis total_amount.
    Appelé explicitement en tête de chaque chemin d'écriture.
    """
    total = Decimal("0.00")
    for line in po.lines:
        line.total_price = to_money(to_money(line.unit_price) * int(line.quantity))
        total += line.total_price
    po.total_amount = to_money(total)
    return po


# ---------- MACHINE À ÉTATS ----------
@dataclass(frozen=True)
class TransitionResult:
    previous: POStatus
    current: POStatus
    reconcile: bool


def parse_status(requested) -> POStatus:
    try:
        return POStatus(getattr(requested, "value", requested))
    except ValueError:
        allowed = ", ".join(s.value for s in POStatus)
        raise ValidationError(f"Invalid status. Must be one of: {allowed}") from None


def check_transition(current: POStatus, requested) -> POStatus:
    """
    Valide une transition sans rien modifier.

    Un statut terminal refuse toute cible, y compris lui-même.
    """
    target = parse_status(requested)
    if current in TERMINAL_PO_STATUSES:
        raise ValidationError(f"Cannot change status from {current.value}")
    return target


def apply_transition(po: PurchaseOrder, requested, actor: Actor, now: datetime) -> TransitionResult:
    """
    Applique la transition sur l'objet en mémoire (aucune I/O).

    - toujours : status, updated_by
    - entrée en Approved : approved_by si pas encore renseigné
    - entrée en Received : actual_delivery_date, received_by, et
      ``reconcile=True`` pour que l'appelant passe l'entrée en stock
    """
    previous = po.status
    target = check_transition(previous, requested)

    po.status = target
    po.updated_by = actor.id

    # Défensif : la garde terminale empêche déjà une seconde réception,
    # et un approbateur existant n'est jamais écrasé.
    if target == POStatus.approved and not po.approved_by:
        po.approved_by = actor.id

    reconcile = False
    if target == POStatus.received:
        po.actual_delivery_date = as_utc(now)
        po.received_by = actor.id
        reconcile = True

    return TransitionResult(previous=previous, current=target, reconcile=reconcile)


# ---------- OPÉRATIONS ----------
def _get_order(db: Session, order_id: str) -> PurchaseOrder:
    po = db.get(PurchaseOrder, order_id)
    if not po:
        raise NotFoundError("Purchase order not found")
    return po


def _ensure_supplier(db: Session, supplier_id: str) -> Supplier:
    supplier = db.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError("Supplier not found")
    return supplier


def _ensure_future(expected: datetime, now: datetime) -> datetime:
    expected = as_utc(expected)
    if expected < as_utc(now):
        raise ValidationError("Expected delivery date must be in the future")
    return expected


def _ensure_editable(po: PurchaseOrder) -> None:
    if po.status in TERMINAL_PO_STATUSES:
        raise ValidationError(f"Cannot update purchase order with status: {po.status.value}")


def create_order(
    db: Session,
    *,
    supplier_id: str,
    lines: list[LineInput],
    expected_delivery_date: datetime,
    notes: str | None,
    actor: Actor,
    now: datetime | None = None,
) -> PurchaseOrder:
    now = as_utc(now or utcnow())
    try:
        _ensure_supplier(db, supplier_id)
        expected = _ensure_future(expected_delivery_date, now)
        if not lines:
            raise ValidationError("At least one item is required")

        po_number = generate_po_number(db, now)
        po = PurchaseOrder(
            po_number=po_number,
            supplier_id=supplier_id,
            status=POStatus.draft,
            order_date=now,
            expected_delivery_date=expected,
            notes=notes,
            created_by=actor.id,
            lines=enrich_lines(db, lines),
        )
        normalize_order(po)
        db.add(po)

        # Deux créations concurrentes dans le même mois : la contrainte UNIQUE tranche
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            logger.warning("po_number_conflict", extra={"po_number": po_number})
            raise ConflictError(
                f"Purchase order number {po_number} is already taken, please retry"
            ) from None

        db.commit()
    except AppError:
        db.rollback()
        raise

    logger.info(
        "purchase_order_created",
        extra={"po_id": po.id, "po_number": po.po_number, "total_amount": po.total_amount, "actor_id": actor.id},
    )
    return po


def update_order(
    db: Session,
    order_id: str,
    *,
    actor: Actor,
    supplier_id: str | None = None,
    lines: list[LineInput] | None = None,
    expected_delivery_date: datetime | None = None,
    notes=_UNSET,
    now: datetime | None = None,
) -> PurchaseOrder:
    """
    Modification d'un PO non terminal. po_number et statut ne bougent pas ici.
    Champs absents = inchangés ; ``notes`` peut être remis à None explicitement.
    """
    now = as_utc(now or utcnow())
    try:
        po = _get_order(db, order_id)
        _ensure_editable(po)

        if supplier_id is not None and supplier_id != po.supplier_id:
            _ensure_supplier(db, supplier_id)
            po.supplier_id = supplier_id
        if lines is not None:
            if not lines:
                raise ValidationError("At least one item is required")
            po.lines = enrich_lines(db, lines)
        if expected_delivery_date is not None:
            po.expected_delivery_date = _ensure_future(expected_delivery_date, now)
        if notes is not _UNSET:
            po.notes = notes

        po.updated_by = actor.id
        normalize_order(po)

        try:
            db.flush()
        except StaleDataError:
            db.rollback()
            raise ConflictError("Purchase order was modified concurrently, please reload and retry") from None

        db.commit()
    except AppError:
        db.rollback()
        raise

    logger.info("purchase_order_updated", extra={"po_id": po.id, "actor_id": actor.id})
    return po


def change_order_status(
    db: Session,
    order_id: str,
    requested,
    *,
    actor: Actor,
    now: datetime | None = None,
) -> tuple[PurchaseOrder, TransitionResult]:
    """
    Changement de statut, transactionnel.

    1. lecture du PO + version vue
    2. validation pure de la transition
    3. relecture verrouillée (FOR UPDATE) : version changée -> ConflictError
    4. application ; entrée en Received -> entrée en stock, même transaction
    5. commit ; toute erreur -> rollback complet (PO + stock)
    """
    now = as_utc(now or utcnow())
    try:
        po = _get_order(db, order_id)
        seen_version = po.version
        check_transition(po.status, requested)

        po = db.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if po is None:
            raise NotFoundError("Purchase order not found")
        if po.version != seen_version:
            logger.warning(
                "po_status_conflict",
                extra={"po_id": order_id, "seen_version": seen_version, "current_version": po.version},
            )
            raise ConflictError("Purchase order was modified concurrently, please reload and retry")

        result = apply_transition(po, requested, actor, now)
        normalize_order(po)

        try:
            # PO écrit d'abord (UPDATE ... WHERE version = :seen), puis le stock
            db.flush()
            if result.reconcile:
                inventory.reconcile_received_lines(db, po.lines, actor_id=actor.id)
                db.flush()
        except StaleDataError:
            raise ConflictError("Purchase order was modified concurrently, please reload and retry") from None

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "purchase_order_status_changed",
        extra={
            "po_id": po.id,
            "from_status": result.previous.value,
            "to_status": result.current.value,
            "actor_id": actor.id,
        },
    )
    return po, result


def delete_order(db: Session, order_id: str, *, actor: Actor) -> None:
    try:
        po = _get_order(db, order_id)
        if po.status == POStatus.received:
            raise ValidationError("Cannot delete a received purchase order")
        if po.status == POStatus.cancelled:
            raise ValidationError("Cannot delete a cancelled purchase order")

        db.delete(po)
        db.commit()
    except AppError:
        db.rollback()
        raise

    logger.info("purchase_order_deleted", extra={"po_id": order_id, "actor_id": actor.id})
