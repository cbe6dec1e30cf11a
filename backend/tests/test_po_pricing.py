from datetime import timedelta
from decimal import Decimal

import pytest

from backend.app.core.errors import NotFoundError, ValidationError
from backend.app.db.base import utcnow
from backend.services.procurement import (
    LineInput,
    create_order,
    enrich_lines,
    normalize_order,
    to_money,
    update_order,
)


def _create(db_session, supplier, actor, lines, **kw):
    return create_order(
        db_session,
        supplier_id=supplier.id,
        lines=lines,
        expected_delivery_date=kw.pop("expected", utcnow() + timedelta(days=5)),
        notes=kw.pop("notes", None),
        actor=actor,
        **kw,
    )


def test_to_money_rounds_half_up():
    assert to_money("2.675") == Decimal("2.68")
    assert to_money(3) == Decimal("3.00")


def test_missing_unit_price_defaults_to_item_price(db_session, make_item):
    item = make_item("CABLE-1", unit_price="12.50")

    (line,) = enrich_lines(db_session, [LineInput(item.id, 4)])

    assert line.unit_price == Decimal("12.50")
    assert line.total_price == Decimal("50.00")
    assert (line.item_name, line.sku) == (item.item_name, "CABLE-1")


def test_explicit_zero_price_is_kept(db_session, make_item):
    item = make_item(unit_price="12.50")

    (line,) = enrich_lines(db_session, [LineInput(item.id, 4, unit_price=Decimal("0"))])

    assert line.unit_price == Decimal("0.00")
    assert line.total_price == Decimal("0.00")


def test_unknown_item_is_reported(db_session):
    with pytest.raises(NotFoundError) as exc:
        enrich_lines(db_session, [LineInput("a" * 24, 1)])
    assert str(exc.value) == f"Inventory item with ID {'a' * 24} not found"


def test_order_total_is_sum_of_lines(db_session, supplier, actor, make_item):
    a = make_item(unit_price="10.00")
    b = make_item(unit_price="20.00")

    po = _create(db_session, supplier, actor, [LineInput(a.id, 5), LineInput(b.id, 3, Decimal("19.99"))])

    assert [l.total_price for l in po.lines] == [Decimal("50.00"), Decimal("59.97")]
    assert po.total_amount == Decimal("109.97")


def test_tampered_totals_are_recomputed(db_session, supplier, actor, make_item):
    item = make_item(unit_price="10.00")
    po = _create(db_session, supplier, actor, [LineInput(item.id, 2)])

    po.lines[0].total_price = Decimal("999.00")
    po.total_amount = Decimal("1.00")
    normalize_order(po)

    assert po.lines[0].total_price == Decimal("20.00")
    assert po.total_amount == Decimal("20.00")


def test_line_snapshot_survives_item_changes(db_session, supplier, actor, make_item):
    item = make_item("WIDGET-1", unit_price="8.00", item_name="Widget")
    po = _create(db_session, supplier, actor, [LineInput(item.id, 1)])

    item.item_name = "Widget v2"
    item.unit_price = Decimal("9.00")
    db_session.commit()
    db_session.expire_all()

    line = po.lines[0]
    assert line.item_name == "Widget"
    assert line.unit_price == Decimal("8.00")
    assert po.total_amount == Decimal("8.00")


def test_update_replaces_lines_and_total(db_session, supplier, actor, make_item):
    a = make_item(unit_price="10.00")
    b = make_item(unit_price="4.00")
    po = _create(db_session, supplier, actor, [LineInput(a.id, 1)])

    po = update_order(db_session, po.id, actor=actor, lines=[LineInput(b.id, 10)])

    assert len(po.lines) == 1
    assert po.lines[0].inventory_id == b.id
    assert po.total_amount == Decimal("40.00")
    assert po.updated_by == actor.id


def test_update_keeps_notes_unless_given(db_session, supplier, actor, make_item):
    item = make_item()
    po = _create(db_session, supplier, actor, [LineInput(item.id, 1)], notes="keep me")

    po = update_order(db_session, po.id, actor=actor, expected_delivery_date=utcnow() + timedelta(days=9))
    assert po.notes == "keep me"

    po = update_order(db_session, po.id, actor=actor, notes=None)
    assert po.notes is None


def test_expected_date_must_be_in_future(db_session, supplier, actor, make_item):
    item = make_item()
    with pytest.raises(ValidationError) as exc:
        _create(db_session, supplier, actor, [LineInput(item.id, 1)], expected=utcnow() - timedelta(days=1))
    assert str(exc.value) == "Expected delivery date must be in the future"


def test_order_needs_lines(db_session, supplier, actor):
    with pytest.raises(ValidationError):
        _create(db_session, supplier, actor, [])


def test_order_needs_existing_supplier(db_session, actor, make_item):
    item = make_item()
    with pytest.raises(NotFoundError):
        create_order(
            db_session,
            supplier_id="b" * 24,
            lines=[LineInput(item.id, 1)],
            expected_delivery_date=utcnow() + timedelta(days=1),
            notes=None,
            actor=actor,
        )
