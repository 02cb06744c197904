"""
Bearer token creation and verification.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from agora.config import get_settings


class AccessTokenPayload(BaseModel):
    """Bearer token payload."""

    sub: str  # Principal ID, any accepted format
    exp: datetime
    iat: datetime
    jti: str
    iss: Optional[str] = None

    class Config:
        from_attributes = True


class IssuedToken(BaseModel):
    """Bearer token handed out after a code redemption."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int  # Seconds until the token expires


class JWTManager:
    """
    Bearer token creation and verification.

    Verification failures are never raised: callers get None and fall back
    to the unauthenticated context.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        access_token_expire_minutes: Optional[int] = None,
        issuer: Optional[str] = None,
    ):
        settings = get_settings()
        self.secret_key = secret_key or settings.secret_key
        self.algorithm = algorithm or settings.algorithm
        self.access_token_expire_minutes = (
            access_token_expire_minutes or settings.access_token_expire_minutes
        )
        self.issuer = issuer or settings.token_issuer

    def create_access_token(
        self,
        principal_id: uuid.UUID,
        expires_delta: Optional[timedelta] = None,
    ) -> tuple[str, datetime, str]:
        """
        Create a new access token whose subject is the principal id.

        Returns:
            Tuple of (token, expiration_datetime, token_id)
        """
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta or timedelta(minutes=self.access_token_expire_minutes))
        jti = str(uuid.uuid4())

        payload = {
            "sub": str(principal_id),
            "exp": expire,
            "iat": now,
            "jti": jti,
            "iss": self.issuer,
            "type": "access",
        }

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        return token, expire, jti

    def issue(self, principal_id: uuid.UUID) -> IssuedToken:
        """Create an access token wrapped for the API response."""
        token, expire, _ = self.create_access_token(principal_id)
        expires_in = int((expire - datetime.now(timezone.utc)).total_seconds())
        return IssuedToken(access_token=token, expires_in=expires_in)

    def verify_access_token(self, token: str) -> Optional[AccessTokenPayload]:
        """
        Verify and decode an access token.

        Returns:
            AccessTokenPayload if valid, None otherwise
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
            )

            # Tokens from the external provider may omit the type claim
            if payload.get("type", "access") != "access":
                return None

            return AccessTokenPayload(
                sub=str(payload["sub"]),
                exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                iat=datetime.fromtimestamp(payload.get("iat", payload["exp"]), tz=timezone.utc),
                jti=payload.get("jti", ""),
                iss=payload.get("iss"),
            )
        except (JWTError, KeyError):
            return None


# Default manager instance
_jwt_manager: Optional[JWTManager] = None


def get_jwt_manager() -> JWTManager:
    """Get or create the default JWT manager."""
    global _jwt_manager
    if _jwt_manager is None:
        _jwt_manager = JWTManager()
    return _jwt_manager


def reset_jwt_manager() -> None:
    """Drop the cached manager so it picks up new settings."""
    global _jwt_manager
    _jwt_manager = None
