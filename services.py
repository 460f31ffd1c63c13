"""
Account operations and the service container wired into the app.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from pymongo.database import Database

from config import Settings
from errors import InvalidCredentials, NotFound, ValidationFailed
from gates import AuthenticationGate, Gatekeeper
from mailer import Mailer
from policy import enforce, forbid_self_delete, forbid_self_demotion
from reset_tokens import ResetTokenManager
from schemas import Principal, Role
from security import PasswordHasher, TokenService
from users import EMAIL_TAKEN, PRIVATE_FIELDS, UserRepository

logger = logging.getLogger(__name__)


def public_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Wire form of a user document"""
    out = {k: v for k, v in doc.items() if k not in PRIVATE_FIELDS}
    out["_id"] = str(doc["_id"])
    return out


class AccountService:
    def __init__(self, users: UserRepository, hasher: PasswordHasher, tokens: TokenService):
        self.users = users
        self.hasher = hasher
        self.tokens = tokens

    # -------------------- Auth --------------------
    def register(self, first_name: str, last_name: str, email: str, password: str,
                 role: Role = Role.STUDENT) -> Tuple[Dict[str, Any], str]:
        if self.users.find_by_email(email):
            raise ValidationFailed(EMAIL_TAKEN)
        doc = self.users.create(first_name, last_name, email, self.hasher.hash(password), Role(role).value)
        logger.info("Registered user %s with role %s", doc["_id"], doc["role"])
        return doc, self.tokens.issue(str(doc["_id"]))

    def login(self, email: str, password: str) -> Tuple[Dict[str, Any], str]:
        doc = self.users.find_by_email(email)
        if not doc or not self.hasher.verify(password, doc.get("passwordHash")):
            logger.info("Login failed")
            raise InvalidCredentials()
        return doc, self.tokens.issue(str(doc["_id"]))

    # -------------------- Own account --------------------
    def profile(self, principal: Principal) -> Dict[str, Any]:
        doc = self.users.find_by_id(principal.id)
        if not doc:
            raise NotFound("User not found")
        return doc

    def update_profile(self, principal: Principal, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._update(principal.id, fields)

    def change_password(self, principal: Principal, current_password: str, new_password: str) -> None:
        doc = self.users.find_by_id(principal.id, include_private=True)
        if not doc:
            raise NotFound("User not found")
        current_hash = doc.get("passwordHash")
        if not self.hasher.verify(current_password, current_hash):
            raise ValidationFailed("Invalid current password")
        if not self.users.replace_password_if_unchanged(principal.id, current_hash, self.hasher.hash(new_password)):
            # password changed by a concurrent request after we verified it
            raise ValidationFailed("Invalid current password")
        logger.info("Password changed for user %s", principal.id)

    # -------------------- Admin --------------------
    def list_users(self, role: Optional[Role] = None) -> List[Dict[str, Any]]:
        return self.users.list_users(Role(role).value if role else None)

    def update_user(self, principal: Principal, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        role = fields.get("role")
        enforce(forbid_self_demotion(principal, user_id, Role(role) if role else None))
        if role:
            fields = dict(fields, role=Role(role).value)
        return self._update(user_id, fields)

    def delete_user(self, principal: Principal, user_id: str) -> None:
        enforce(forbid_self_delete(principal, user_id))
        if not self.users.delete(user_id):
            raise NotFound("User not found")
        logger.info("User %s deleted by %s", user_id, principal.id)

    def _update(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        if self.users.find_by_id(user_id) is None:
            raise NotFound("User not found")
        email = fields.get("email")
        if email:
            owner = self.users.find_by_email(email)
            if owner and str(owner["_id"]) != str(user_id):
                raise ValidationFailed(EMAIL_TAKEN)
        if not fields:
            return self.users.find_by_id(user_id)
        doc = self.users.update_fields(user_id, fields)
        if doc is None:
            raise NotFound("User not found")
        return doc


@dataclass
class Services:
    settings: Settings
    users: UserRepository
    hasher: PasswordHasher
    tokens: TokenService
    accounts: AccountService
    resets: ResetTokenManager
    gatekeeper: Gatekeeper
    mailer: Mailer


def build_services(settings: Settings, db: Database, mailer: Optional[Mailer] = None) -> Services:
    users = UserRepository(db)
    hasher = PasswordHasher(settings.bcrypt_rounds)
    tokens = TokenService(
        settings.jwt_secret,
        timedelta(seconds=settings.jwt_expires_in_seconds),
        algorithm=settings.jwt_algorithm,
    )
    mailer = mailer or Mailer(settings)
    resets = ResetTokenManager(
        users,
        hasher,
        mailer,
        timedelta(seconds=settings.reset_token_expires_in_seconds),
        settings.frontend_url,
    )
    return Services(
        settings=settings,
        users=users,
        hasher=hasher,
        tokens=tokens,
        accounts=AccountService(users, hasher, tokens),
        resets=resets,
        gatekeeper=Gatekeeper(AuthenticationGate(tokens, users)),
        mailer=mailer,
    )
