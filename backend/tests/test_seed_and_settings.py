import io
import json
import logging

import pytest
from sqlalchemy import func, select

from backend.app.core import config
from backend.app.core.logging_config import configure_logging, get_logger, reset_logging
from backend.app.core.security import (
    ExpiredTokenError,
    InvalidTokenError,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from backend.app.db.models.core_types import Role
from backend.app.db.models.models_v1 import User
from backend.app.db.seed import seed_admin


@pytest.fixture
def settings_env(monkeypatch):
    config.get_settings.cache_clear()
    yield monkeypatch
    config.get_settings.cache_clear()


@pytest.mark.parametrize(
    "raw, seconds",
    [("7d", 604800), ("12h", 43200), ("30m", 1800), ("45s", 45), ("3600", 3600)],
)
def test_parse_duration(raw, seconds):
    assert config.parse_duration(raw) == seconds


def test_parse_duration_rejects_garbage():
    with pytest.raises(ValueError):
        config.parse_duration("soon")


def test_settings_from_environment(settings_env):
    settings_env.setenv("TOKEN_EXPIRES_IN", "2h")
    settings_env.setenv("ADMIN_EMAIL", "Boss@Example.com")

    settings = config.get_settings()

    assert settings.token_expires_in == 7200
    assert settings.admin_email == "boss@example.com"


def test_password_hashing_round_trip():
    hashed = hash_password("correct horse")
    assert hashed != "correct horse"
    assert verify_password(hashed, "correct horse")
    assert not verify_password(hashed, "battery staple")


def test_token_round_trip_and_failures():
    token = create_access_token("a" * 24, secret="s1", expires_in=60, now=1_000)

    assert decode_access_token(token, secret="s1", now=1_030) == "a" * 24
    with pytest.raises(ExpiredTokenError):
        decode_access_token(token, secret="s1", now=1_060)
    with pytest.raises(InvalidTokenError):
        decode_access_token(token, secret="other", now=1_030)
    with pytest.raises(InvalidTokenError):
        decode_access_token("garbage", secret="s1")


def test_seed_admin_is_idempotent(db_session, settings_env):
    settings_env.setenv("ADMIN_EMAIL", "root@example.com")
    settings_env.setenv("ADMIN_PASSWORD", "seed-pass-1")

    first = seed_admin(db_session)
    second = seed_admin(db_session)

    assert first.id == second.id
    assert first.role is Role.admin
    assert verify_password(first.password_hash, "seed-pass-1")
    count = db_session.execute(select(func.count()).select_from(User)).scalar_one()
    assert count == 1


def test_structured_logging_emits_json_with_extras():
    stream = io.StringIO()
    reset_logging()
    try:
        configure_logging(level=logging.INFO, handler=logging.StreamHandler(stream))
        get_logger("tests").info("purchase_order_created", extra={"po_id": "abc", "actor_id": "u1"})
    finally:
        reset_logging()

    record = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert record["message"] == "purchase_order_created"
    assert record["po_id"] == "abc"
    assert record["level"] == "INFO"
