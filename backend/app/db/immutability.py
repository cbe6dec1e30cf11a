"""
Immutabilité des bons de commande terminés, au niveau ORM.

Les handlers HTTP refusent déjà toute modification d'un PO ``Received`` ou
``Cancelled`` ; ce listener applique la même règle à chaque flush, quel que
soit le chemin d'écriture :

- PO dont le statut *persisté* est terminal : aucun UPDATE
- lignes d'un tel PO : aucun INSERT / UPDATE / DELETE
- PO terminal : aucun DELETE

La transition elle-même (ex. ``Approved -> Received`` + date de livraison
+ ``received_by``) reste permise : on regarde la valeur d'origine via
l'historique d'attribut SQLAlchemy, pas la nouvelle.
"""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from backend.app.core.errors import ImmutableRecordError
from backend.app.core.logging_config import get_logger
from backend.app.db.models.core_types import POStatus, TERMINAL_PO_STATUSES
from backend.app.db.models.models_v1 import PurchaseOrder, PurchaseOrderLine

logger = get_logger("db.immutability")


def persisted_status(po: PurchaseOrder) -> POStatus | None:
    """Statut tel qu'en base avant ce flush (None pour un PO nouveau)."""
    hist = get_history(po, "status")
    if hist.deleted:
        return hist.deleted[0]
    if hist.unchanged:
        return hist.unchanged[0]
    return None


def _blocked(po: PurchaseOrder, operation: str, entity: str) -> ImmutableRecordError:
    status = persisted_status(po)
    logger.warning(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity,
            "po_id": po.id,
            "po_status": getattr(status, "value", status),
            "operation": operation,
        },
    )
    if operation == "DELETE" and entity == "PurchaseOrder":
        return ImmutableRecordError(f"Cannot delete a {status.value.lower()} purchase order")
    return ImmutableRecordError(f"Cannot update purchase order with status: {status.value}")


def _is_frozen(po: PurchaseOrder | None) -> bool:
    return po is not None and persisted_status(po) in TERMINAL_PO_STATUSES


def _check_purchase_orders_before_flush(session, flush_context, instances):
    with session.no_autoflush:
        for obj in list(session.deleted):
            if isinstance(obj, PurchaseOrder) and _is_frozen(obj):
                raise _blocked(obj, "DELETE", "PurchaseOrder")

        for obj in list(session.dirty):
            if isinstance(obj, PurchaseOrder) and session.is_modified(obj) and _is_frozen(obj):
                raise _blocked(obj, "UPDATE", "PurchaseOrder")

        for op, objs in (("INSERT", session.new), ("UPDATE", session.dirty), ("DELETE", session.deleted)):
            for obj in list(objs):
                if not isinstance(obj, PurchaseOrderLine):
                    continue
                if op == "UPDATE" and not session.is_modified(obj):
                    continue
                po = obj.po
                if po is None and obj.po_id is not None:
                    po = session.get(PurchaseOrder, obj.po_id)
                # Lignes supprimées avec leur PO : le DELETE du PO est contrôlé plus haut
                if op == "DELETE" and po in session.deleted:
                    continue
                if _is_frozen(po):
                    raise _blocked(po, op, "PurchaseOrderLine")


def register_immutability_listeners() -> None:
    if not event.contains(Session, "before_flush", _check_purchase_orders_before_flush):
        event.listen(Session, "before_flush", _check_purchase_orders_before_flush)


def unregister_immutability_listeners() -> None:
    """Réservé aux tests."""
    if event.contains(Session, "before_flush", _check_purchase_orders_before_flush):
        event.remove(Session, "before_flush", _check_purchase_orders_before_flush)
