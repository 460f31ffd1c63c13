import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from errors import RejectionKind, Unauthenticated

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PasswordHasher:
    """Salted bcrypt hashing; the salt and cost live inside the hash string."""

    def __init__(self, rounds: int = 10):
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, hashed: Optional[str]) -> bool:
        if not password or not hashed:
            return False
        try:
            return self._context.verify(password, hashed)
        except (ValueError, TypeError):
            # corrupted stored hash
            logger.warning("Stored password hash could not be parsed")
            return False


@dataclass(frozen=True)
class TokenClaims:
    subject: str
    issued_at: datetime
    expires_at: datetime


class TokenService:
    """Issues and verifies signed, expiring bearer tokens (JWT)."""

    def __init__(
        self,
        secret: str,
        ttl: timedelta,
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = _now,
    ):
        self._secret = secret
        self._ttl = ttl
        self._algorithm = algorithm
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, subject_id: str) -> str:
        issued_at = self._clock()
        claims = {
            "sub": str(subject_id),
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self._ttl).timestamp()),
        }
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify(self, token: Optional[str]) -> TokenClaims:
        """
        Return the claims of a valid token.

        Raises Unauthenticated with kind ABSENT (no token), EXPIRED (good
        signature, past exp) or MALFORMED (anything else).
        """
        if not token:
            raise Unauthenticated(RejectionKind.ABSENT, "Not authorized, no token")
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except ExpiredSignatureError:
            raise Unauthenticated(RejectionKind.EXPIRED, "Not authorized, token expired")
        except JWTError as e:
            logger.debug("Token rejected: %s", e)
            raise Unauthenticated(RejectionKind.MALFORMED, "Not authorized, invalid token")

        subject = payload.get("sub")
        if not subject or "exp" not in payload:
            raise Unauthenticated(RejectionKind.MALFORMED, "Not authorized, invalid token")
        return TokenClaims(
            subject=subject,
            issued_at=datetime.fromtimestamp(payload.get("iat", 0), tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
