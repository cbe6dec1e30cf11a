"""
Inventory service.

Point d'écriture unique pour ``inventory_items.quantity`` : la réception d'un
PO comme l'édition manuelle d'un article passent par ``_write_stock``, un
UPDATE SQL atomique (pas de read-modify-write côté application).
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from backend.app.core.errors import NotFoundError
from backend.app.core.logging_config import get_logger
from backend.app.db.base import utcnow
from backend.app.db.models.models_v1 import InventoryItem, PurchaseOrderLine

logger = get_logger("services.inventory")

_items = InventoryItem.__table__


def _write_stock(db: Session, inventory_id: str, quantity_expr, actor_id: str | None) -> bool:
    result = db.execute(
        update(_items)
        .where(_items.c.id == inventory_id)
        .values(quantity=quantity_expr, updated_by=actor_id, updated_at=utcnow())
    )
    if result.rowcount != 1:
        return False

    # L'UPDATE passe sous l'ORM : on invalide l'objet en session s'il existe
    cached = db.identity_map.get(identity_key(InventoryItem, inventory_id))
    if cached is not None:
        db.expire(cached, ["quantity", "updated_by", "updated_at"])
    return True


def increment_stock(db: Session, inventory_id: str, qty: int, actor_id: str | None) -> bool:
    """
    ``quantity = quantity + qty`` en une instruction SQL.
    Retourne False si l'article n'existe pas.
    """
    return _write_stock(db, inventory_id, _items.c.quantity + int(qty), actor_id)


def set_stock(db: Session, inventory_id: str, qty: int, actor_id: str | None) -> bool:
    """Correction manuelle (valeur absolue), même primitive que la réception."""
    return _write_stock(db, inventory_id, int(qty), actor_id)


def reconcile_received_lines(
    db: Session,
    lines: Iterable[PurchaseOrderLine],
    *,
    actor_id: str,
) -> None:
    """
    Entrée en stock des lignes d'un PO reçu.

    Règle métier :
        pour chaque ligne : article.quantity += ligne.quantity

    Propriétés :
    - accumulation pure (jamais de décrément, pas de plafond)
    - aucune transaction ouverte ici : l'appelant commit ou rollback le tout
    - article manquant -> NotFoundError, l'appelant annule aussi les
      incréments déjà passés
    """
    applied = 0
    for line in lines:
        if not increment_stock(db, line.inventory_id, line.quantity, actor_id):
            logger.warning(
                "reconciliation_item_missing",
                extra={"inventory_id": line.inventory_id, "sku": line.sku, "applied_lines": applied},
            )
            raise NotFoundError(f"Inventory item {line.item_name} ({line.sku}) not found")
        applied += 1

    logger.info("stock_reconciled", extra={"lines": applied, "actor_id": actor_id})


def list_low_stock(db: Session) -> list[InventoryItem]:
    """Articles actifs avec quantity <= reorder_level, du plus bas au plus haut."""
    stmt = (
        select(InventoryItem)
        .where(InventoryItem.is_active.is_(True))
        .where(InventoryItem.is_low_stock)
        .order_by(InventoryItem.quantity.asc(), InventoryItem.sku.asc())
    )
    return list(db.execute(stmt).scalars().all())
