"""
Account registration and login.
"""

from typing import Any, Dict

from shared.errors import AuthenticationError, ConflictError
from shared.logging import get_logger
from ..auth.identity import JWTIdentityProvider
from ..auth.passwords import hash_password, verify_password
from ..store.base import EntityStore
from ..store.models import Credentials, User


class AuthService:
    """Email/password accounts issuing bearer tokens."""

    def __init__(self, store: EntityStore, identity: JWTIdentityProvider, password_rounds: int = 12):
        self.store = store
        self.identity = identity
        self.password_rounds = password_rounds
        self.logger = get_logger("listings.service.auth")

    async def register(self, credentials: Credentials) -> Dict[str, Any]:
        if await self.store.get_user_by_email(credentials.email) is not None:
            raise ConflictError("User already exists")

        user = User(
            email=credentials.email,
            password_hash=hash_password(credentials.password, self.password_rounds),
        )
        await self.store.insert_user(user)

        self.logger.info("User registered", user_id=user.user_id)
        return {"message": "User registered successfully", "userId": user.user_id}

    async def login(self, credentials: Credentials) -> Dict[str, str]:
        user = await self.store.get_user_by_email(credentials.email)
        if user is None or not verify_password(credentials.password, user.password_hash):
            raise AuthenticationError("Invalid email or password")

        self.logger.info("User logged in", user_id=user.user_id)
        return {"token": self.identity.issue_token(user)}
