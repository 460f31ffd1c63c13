"""
Business rules layered on top of the role gates.

Checks return a PolicyViolation (or None) so handlers can decide how to
surface it; enforce() turns a violation into a 403.
"""

from dataclasses import dataclass
from typing import Optional

from errors import Forbidden
from schemas import Principal, Role
from users import to_object_id


@dataclass(frozen=True)
class PolicyViolation:
    rule: str
    message: str


def is_self(principal: Principal, target_id: str) -> bool:
    # ObjectId hex is case-insensitive, so compare parsed ids when both parse
    mine, theirs = to_object_id(principal.id), to_object_id(target_id)
    if mine is None or theirs is None:
        return principal.id == str(target_id)
    return mine == theirs


def forbid_self_delete(principal: Principal, target_id: str) -> Optional[PolicyViolation]:
    if is_self(principal, target_id):
        return PolicyViolation("self-delete", "Cannot delete your own admin account.")
    return None


def forbid_self_demotion(principal: Principal, target_id: str, new_role: Optional[Role]) -> Optional[PolicyViolation]:
    if new_role is not None and new_role != Role.ADMIN and is_self(principal, target_id):
        return PolicyViolation("self-demote", "Admin cannot demote their own account.")
    return None


def enforce(violation: Optional[PolicyViolation]) -> None:
    if violation is not None:
        raise Forbidden(violation.message)
