"""
Password hashing and JWT session tokens.

Supports:
- Salted one-way password hashing (passlib, pbkdf2_sha256)
- Constant-cost verification, including for unknown users
- Self-contained, expiring HS256 access tokens carrying identity claims
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from .constants import JWT_ALGORITHM
from .errors import ExpiredTokenError, InvalidTokenError, MissingTokenError
from .schemas import SessionClaim

logger = logging.getLogger(__name__)


class PasswordHasher:
    """Wraps a passlib CryptContext so callers never touch raw hashes."""

    def __init__(self, schemes: tuple[str, ...] = ("pbkdf2_sha256",)):
        self._context = CryptContext(schemes=list(schemes), deprecated="auto")

    def hash(self, password: str) -> str:
        if not password:
            raise ValueError("password_blank")
        return self._context.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        if not password or not password_hash:
            return False
        try:
            return self._context.verify(password, password_hash)
        except (ValueError, TypeError):
            logger.warning("Stored password hash could not be parsed")
            return False

    def dummy_verify(self) -> None:
        """Spend the same time as a real verification when there is no user."""
        self._context.dummy_verify()


class TokenService:
    """Issues and verifies signed session tokens.

    No server-side session state is kept; everything needed to authenticate
    a request travels inside the token.
    """

    def __init__(self, secret: str, expiry_seconds: int = 86400, algorithm: str = JWT_ALGORITHM):
        if not secret:
            raise ValueError("jwt_secret_blank")
        if int(expiry_seconds) < 1:
            raise ValueError("expiry_seconds must be positive")
        self.secret = secret
        self.expiry_seconds = int(expiry_seconds)
        self.algorithm = algorithm

    def issue(self, user_id: uuid.UUID, username: str, now: Optional[datetime] = None) -> str:
        """Generate a new token for the given identity."""
        issued_at = now or datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            'sub': str(user_id),
            'username': username,
            'iat': issued_at,
            'exp': issued_at + timedelta(seconds=self.expiry_seconds),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: Optional[str]) -> SessionClaim:
        """Verify and decode a token into a SessionClaim."""
        if not token:
            raise MissingTokenError()
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise ExpiredTokenError()
        except JWTError as e:
            logger.debug("JWT verification failed: %s", e)
            raise InvalidTokenError()

        try:
            return SessionClaim(
                user_id=uuid.UUID(str(payload['sub'])),
                username=str(payload['username']),
                issued_at=datetime.fromtimestamp(int(payload['iat']), tz=timezone.utc),
                expires_at=datetime.fromtimestamp(int(payload['exp']), tz=timezone.utc),
            )
        except (KeyError, ValueError, TypeError) as e:
            logger.debug("JWT claims incomplete: %s", e)
            raise InvalidTokenError()
