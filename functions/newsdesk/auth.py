"""
Bearer-token authority and the single administrator account.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from newsdesk.errors import ConfigurationError, Unauthenticated

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"
DEFAULT_TOKEN_TTL = timedelta(days=7)

PWD = PasswordHasher()


class TokenAuthority:
    """Issues and verifies HS256 tokens for the administrator identity."""

    algorithm = "HS256"

    def __init__(self, secret: Optional[str], *, ttl: timedelta = DEFAULT_TOKEN_TTL):
        self._secret = secret
        self.ttl = ttl

    def _require_secret(self) -> str:
        if not self._secret:
            raise ConfigurationError("Server misconfigured: JWT_SECRET is not set")
        return self._secret

    def issue(self, identity: str, *, issued_at: Optional[datetime] = None) -> str:
        secret = self._require_secret()
        now = issued_at or datetime.now(timezone.utc)
        payload = {
            "sub": identity,
            "role": ADMIN_ROLE,
            "iat": now,
            "exp": now + self.ttl,
        }
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def verify(self, token: Optional[str]) -> str:
        """Return the identity carried by ``token`` or raise Unauthenticated."""
        secret = self._require_secret()
        if not token:
            raise Unauthenticated()
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            logger.info("auth_token_expired")
            raise Unauthenticated("Token expired")
        except jwt.InvalidTokenError:
            logger.info("auth_token_invalid")
            raise Unauthenticated()

        if payload.get("role") != ADMIN_ROLE or not payload.get("sub"):
            logger.info("auth_token_wrong_identity")
            raise Unauthenticated()
        return str(payload["sub"])


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


@dataclass
class AdminAccount:
    """
    The one administrator. The password is either stored in plaintext
    (ADMIN_PASSWORD) or as an argon2 hash (ADMIN_PASSWORD_HASH); the hash
    takes precedence when both are set.
    """

    username: str
    password: Optional[str] = None
    password_hash: Optional[str] = None

    def check(self, username: Optional[str], password: Optional[str]) -> bool:
        if not self.password and not self.password_hash:
            raise ConfigurationError(
                "Server misconfigured: ADMIN_PASSWORD or ADMIN_PASSWORD_HASH must be set"
            )
        if not username or password is None:
            return False
        user_ok = secrets.compare_digest(username.encode(), self.username.encode())
        if self.password_hash:
            try:
                password_ok = PWD.verify(self.password_hash, password)
            except InvalidHashError as exc:
                raise ConfigurationError(
                    "Server misconfigured: ADMIN_PASSWORD_HASH is not an argon2 hash"
                ) from exc
            except VerificationError:
                password_ok = False
        else:
            password_ok = secrets.compare_digest(password.encode(), self.password.encode())
        return user_ok and password_ok
