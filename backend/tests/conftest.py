from __future__ import annotations

from decimal import Decimal
from itertools import count

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.api.deps import get_db
from backend.app.core.security import Actor, create_access_token, hash_password
from backend.app.db.base import Base
from backend.app.db.immutability import register_immutability_listeners, unregister_immutability_listeners
from backend.app.db.models.core_types import Role
from backend.app.db.models.models_v1 import InventoryItem, Supplier, User

DEFAULT_PASSWORD = "secret123"


@pytest.fixture(scope="function")
def engine():
    """
    Base SQLite en mémoire, neuve pour chaque test.

    StaticPool : une seule connexion partagée, sinon chaque checkout
    verrait une base vide.
    """
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)
        eng.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Session:
    register_immutability_listeners()
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    session = factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        unregister_immutability_listeners()


@pytest.fixture(scope="function")
def client(db_session):
    from backend.app.main import app

    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.pop(get_db, None)


_seq = count(1)


@pytest.fixture
def make_user(db_session):
    def _make(role: Role = Role.staff, *, email: str | None = None, is_active: bool = True, password=DEFAULT_PASSWORD):
        n = next(_seq)
        user = User(
            name=f"User {n}",
            email=email or f"user{n}@example.com",
            password_hash=hash_password(password),
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture
def admin(make_user):
    return make_user(Role.admin)


@pytest.fixture
def manager(make_user):
    return make_user(Role.manager)


@pytest.fixture
def staff(make_user):
    return make_user(Role.staff)


@pytest.fixture
def actor(manager) -> Actor:
    return Actor(id=manager.id, role=manager.role)


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


@pytest.fixture
def make_supplier(db_session):
    def _make(name: str | None = None, **fields):
        n = next(_seq)
        supplier = Supplier(
            supplier_name=name or f"Supplier {n}",
            contact_person="Jane Doe",
            email=f"supplier{n}@example.com",
            phone="+33100000000",
            **fields,
        )
        db_session.add(supplier)
        db_session.commit()
        return supplier

    return _make


@pytest.fixture
def supplier(make_supplier):
    return make_supplier("Acme Supplies")


@pytest.fixture
def make_item(db_session):
    def _make(sku: str | None = None, *, quantity: int = 0, unit_price="10.00", reorder_level: int = 10, **fields):
        n = next(_seq)
        item = InventoryItem(
            item_name=fields.pop("item_name", f"Item {n}"),
            sku=sku or f"SKU-{n:04d}",
            quantity=quantity,
            unit_price=Decimal(str(unit_price)),
            reorder_level=reorder_level,
            **fields,
        )
        db_session.add(item)
        db_session.commit()
        return item

    return _make


@pytest.fixture
def password() -> str:
    return DEFAULT_PASSWORD
