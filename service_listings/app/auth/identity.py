"""
Bearer-token identity provider for the Listings Service.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Request
from jose import jwt
from jose.exceptions import JWTError

from shared.errors import AuthenticationError
from shared.logging import get_logger, set_user_context
from ..store.models import User

BEARER_PREFIX = "Bearer "


class JWTIdentityProvider:
    """Issue and verify HS256 access tokens carrying the user id."""

    def __init__(self, secret: str, algorithm: str = "HS256", expiry_seconds: int = 7 * 24 * 3600):
        if not secret:
            raise ValueError("JWTIdentityProvider requires a secret")
        self.secret = secret
        self.algorithm = algorithm
        self.expiry_seconds = expiry_seconds
        self.logger = get_logger("listings.auth")

    def issue_token(self, user: User) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": user.user_id,
            "email": user.email,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self.expiry_seconds)).timestamp()),
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def verify_token(self, token: str) -> Dict[str, Any]:
        """Verify signature and expiry; return the claims."""
        if token.startswith(BEARER_PREFIX):
            token = token[len(BEARER_PREFIX):]

        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"verify_exp": True, "verify_aud": False},
            )
        except JWTError as e:
            self.logger.warning("Token verification failed", error=str(e))
            raise AuthenticationError("Invalid token", details={"token_error": str(e)}) from None

        if not claims.get("sub"):
            raise AuthenticationError("Token missing subject")
        return claims

    async def authenticate(self, request: Request) -> str:
        """Resolve the caller's user id from the Authorization header."""
        header: Optional[str] = request.headers.get("Authorization")
        if not header or not header.startswith(BEARER_PREFIX) or not header[len(BEARER_PREFIX):].strip():
            raise AuthenticationError("Missing bearer token")

        claims = self.verify_token(header[len(BEARER_PREFIX):].strip())
        user_id = claims["sub"]
        set_user_context(user_id)
        return user_id
