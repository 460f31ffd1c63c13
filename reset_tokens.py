"""
Password reset token lifecycle.

The raw token only ever leaves the server by e-mail; the users collection
keeps its SHA-256 digest and an expiry. Completion is a single conditional
update, which makes every token single-use.
"""

import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Dict

from database import utcnow
from errors import ValidationFailed
from mailer import Mailer
from security import PasswordHasher
from users import UserRepository

logger = logging.getLogger(__name__)

INVALID_TOKEN = "Password reset token is invalid"
EXPIRED_TOKEN = "Password reset token has expired"


class ResetTokenInvalid(ValidationFailed):
    def __init__(self, message: str = INVALID_TOKEN):
        super().__init__(message)


class ResetTokenExpired(ValidationFailed):
    def __init__(self, message: str = EXPIRED_TOKEN):
        super().__init__(message)


def hash_reset_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


class ResetTokenManager:
    def __init__(
        self,
        users: UserRepository,
        hasher: PasswordHasher,
        mailer: Mailer,
        ttl: timedelta,
        frontend_url: str,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._users = users
        self._hasher = hasher
        self._mailer = mailer
        self._ttl = ttl
        self._frontend_url = frontend_url.rstrip("/")
        self._clock = clock

    def request_reset(self, email: str) -> None:
        """Start a reset for email. Returns the same way whether or not it is registered."""
        user = self._users.find_by_email(email)
        if not user:
            logger.info("Password reset requested for unregistered address")
            return

        raw_token = secrets.token_urlsafe(32)
        expires_at = self._clock() + self._ttl
        self._users.set_reset_token(user["_id"], hash_reset_token(raw_token), expires_at)

        reset_url = f"{self._frontend_url}/reset-password/{raw_token}"
        minutes = int(self._ttl.total_seconds() // 60)
        body = (
            f"Hello {user.get('firstName', '')},\n\n"
            "You are receiving this email because a password reset was requested for your account.\n"
            f"Open the link below to choose a new password. It expires in {minutes} minutes.\n\n"
            f"{reset_url}\n\n"
            "If you did not request this, you can ignore this email.\n"
        )
        self._mailer.send(user["email"], "Password Reset Request", body)
        logger.info("Password reset issued for user %s", user["_id"])

    def resolve_reset(self, raw_token: str) -> Dict[str, Any]:
        """Return the user a live token belongs to, else raise ResetTokenInvalid/Expired"""
        if not raw_token:
            raise ResetTokenInvalid()
        token_hash = hash_reset_token(raw_token)
        user = self._users.find_by_reset_hash(token_hash)
        if not user:
            raise ResetTokenInvalid()
        expires_at = user.get("resetTokenExpiresAt")
        if expires_at is None or expires_at <= self._clock():
            self._users.clear_reset_token(token_hash)
            raise ResetTokenExpired()
        return user

    def complete_reset(self, raw_token: str, new_password: str) -> Dict[str, Any]:
        self.resolve_reset(raw_token)
        token_hash = hash_reset_token(raw_token)
        updated = self._users.consume_reset_token(token_hash, self._clock(), self._hasher.hash(new_password))
        if updated is None:
            # lost a race with another completion, or expired in between
            raise ResetTokenInvalid()
        logger.info("Password reset completed for user %s", updated["_id"])
        return updated
