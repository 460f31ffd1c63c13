"""
Request gates.

A gate looks at the incoming request (and the principal resolved so far)
and either lets it through or rejects it. Gates run in a GatePipeline; the
pipeline refuses to be built if a gate that needs a principal is not
preceded by one that resolves it, so authorization can never run before
authentication.
"""

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional, Sequence

from fastapi import Request

from errors import Forbidden, PortalError, RejectionKind, Unauthenticated
from schemas import Principal, Role
from security import TokenService
from users import UserRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Outcome:
    principal: Optional[Principal] = None
    error: Optional[PortalError] = None

    @property
    def allowed(self) -> bool:
        return self.error is None


class Gate:
    provides_principal = False
    requires_principal = False

    def check(self, request, principal: Optional[Principal]) -> Outcome:
        raise NotImplementedError


def parse_bearer(header: Optional[str]) -> str:
    if not header:
        raise Unauthenticated(RejectionKind.ABSENT, "Not authorized, no token")
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        raise Unauthenticated(RejectionKind.MALFORMED, "Not authorized, malformed authorization header")
    token = token.strip()
    if not token:
        raise Unauthenticated(RejectionKind.MALFORMED, "Not authorized, token missing after Bearer")
    return token


class AuthenticationGate(Gate):
    """Bearer token -> verified claims -> principal loaded from the store."""

    provides_principal = True

    def __init__(self, tokens: TokenService, users: UserRepository):
        self._tokens = tokens
        self._users = users

    def check(self, request, principal: Optional[Principal]) -> Outcome:
        try:
            token = parse_bearer(request.headers.get("authorization"))
            claims = self._tokens.verify(token)
            doc = self._users.find_by_id(claims.subject)
            if doc is None:
                raise Unauthenticated(RejectionKind.PRINCIPAL_MISSING, "Not authorized, user not found")
        except Unauthenticated as e:
            logger.warning("Authentication rejected (%s) for %s", e.kind.value, _path(request))
            return Outcome(error=e)
        return Outcome(principal=Principal.from_document(doc))


class RoleGate(Gate):
    requires_principal = True

    def __init__(self, roles: Iterable[Role]):
        self.roles: FrozenSet[Role] = frozenset(Role(r) for r in roles)
        if not self.roles:
            raise ValueError("RoleGate needs at least one role")

    def check(self, request, principal: Optional[Principal]) -> Outcome:
        if principal is None:
            return Outcome(error=Unauthenticated(RejectionKind.ABSENT, "Not authorized, no token"))
        if principal.role not in self.roles:
            logger.warning("Role '%s' denied for %s", principal.role.value, _path(request))
            return Outcome(
                principal=principal,
                error=Forbidden(f"User role '{principal.role.value}' is not authorized to access this route"),
            )
        return Outcome(principal=principal)


class GatePipeline:
    def __init__(self, gates: Sequence[Gate]):
        resolved = False
        for gate in gates:
            if gate.requires_principal and not resolved:
                raise ValueError(f"{type(gate).__name__} must come after an authentication gate")
            resolved = resolved or gate.provides_principal
        self.gates = tuple(gates)

    def run(self, request) -> Optional[Principal]:
        """Run every gate in order, raising the first rejection"""
        principal = None
        for gate in self.gates:
            outcome = gate.check(request, principal)
            if not outcome.allowed:
                raise outcome.error
            principal = outcome.principal
        return principal


class Gatekeeper:
    """Builds (and caches) the pipeline for each role allow-list."""

    def __init__(self, authentication: AuthenticationGate):
        self._authentication = authentication
        self._pipelines: Dict[FrozenSet[Role], GatePipeline] = {}

    def pipeline(self, roles: Iterable[Role] = ()) -> GatePipeline:
        key = frozenset(Role(r) for r in roles)
        if key not in self._pipelines:
            gates = [self._authentication]
            if key:
                gates.append(RoleGate(key))
            self._pipelines[key] = GatePipeline(gates)
        return self._pipelines[key]


def require(*roles: Role):
    """
    FastAPI dependency: authenticate the request and, when roles are given,
    check the principal's role against them.
    """
    def dependency(request: Request) -> Principal:
        return request.app.state.services.gatekeeper.pipeline(roles).run(request)

    return dependency


def _path(request) -> str:
    url = getattr(request, "url", None)
    return getattr(url, "path", "request")
