"""
BizIntel Security Utilities

JWT issuance and verification. The dispatcher only ever sees the
principal produced by TokenAuthority.verify().
"""

from datetime import datetime, timedelta

import structlog
from jose import ExpiredSignatureError, JWTError, jwt

from core.config import Settings
from core.errors import AuthenticationError

logger = structlog.get_logger()


class TokenAuthority:
    """Issues and verifies bearer tokens signed with the configured secret."""

    def __init__(self, settings: Settings):
        self.secret = settings.jwt_secret
        self.algorithm = settings.jwt_algorithm
        self.default_ttl = timedelta(hours=settings.jwt_expiration_hours)

    def issue(self, claims: dict, expires_delta: timedelta | None = None) -> str:
        """Create a JWT access token."""
        to_encode = claims.copy()
        expire = datetime.utcnow() + (expires_delta or self.default_ttl)
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> dict:
        """Decode a token into its principal, raising AuthenticationError when unusable."""
        if not token or not isinstance(token, str):
            raise AuthenticationError("Authentication required: missing token")
        try:
            return jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            logger.warning("security.token_expired")
            raise AuthenticationError("Invalid or expired token") from None
        except JWTError as exc:
            logger.warning("security.token_invalid", error=str(exc))
            raise AuthenticationError("Invalid or expired token") from None
