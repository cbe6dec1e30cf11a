"""
Mots de passe et jetons d'accès.

- mots de passe : hash werkzeug (pbkdf2/scrypt selon la version)
- jetons : ``base64url(payload JSON).base64url(HMAC-SHA256)``,
  payload = ``{"id": <user id>, "exp": <epoch secondes>}``
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from dataclasses import dataclass

from werkzeug.security import check_password_hash, generate_password_hash

from backend.app.core.config import get_settings
from backend.app.db.models.core_types import Role


class TokenError(Exception):
    pass


class InvalidTokenError(TokenError):
    pass


class ExpiredTokenError(TokenError):
    pass


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    return check_password_hash(password_hash, password)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(body: str, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body.encode("ascii"), hashlib.sha256).digest()
    return _b64encode(digest)


def create_access_token(
    user_id: str,
    *,
    secret: str | None = None,
    expires_in: int | None = None,
    now: float | None = None,
) -> str:
    settings = get_settings()
    secret = secret or settings.token_secret
    expires_in = settings.token_expires_in if expires_in is None else expires_in
    issued = time.time() if now is None else now

    payload = {"id": user_id, "exp": int(issued) + int(expires_in)}
    body = _b64encode(json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    return f"{body}.{_sign(body, secret)}"


def decode_access_token(token: str, *, secret: str | None = None, now: float | None = None) -> str:
    """
    Vérifie signature + expiration et retourne l'id utilisateur.
    """
    secret = secret or get_settings().token_secret

    # En-tête HTTP décodé en latin-1 : un jeton non ASCII est forcément invalide
    try:
        body, signature = token.split(".")
        expected = _sign(body, secret).encode("ascii")
        given = signature.encode("ascii")
    except (ValueError, UnicodeError):
        raise InvalidTokenError("Malformed token") from None

    if not hmac.compare_digest(given, expected):
        raise InvalidTokenError("Bad signature")

    try:
        payload = json.loads(_b64decode(body))
        user_id = str(payload["id"])
        exp = int(payload["exp"])
    except (ValueError, KeyError, TypeError):
        raise InvalidTokenError("Malformed payload") from None

    current = time.time() if now is None else now
    if current >= exp:
        raise ExpiredTokenError("Token expired")
    return user_id


@dataclass(frozen=True)
class Actor:
    """Identité explicite passée aux services (jamais d'état de requête implicite)."""

    id: str
    role: Role
