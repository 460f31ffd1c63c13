"""
Exceptions raised by the portal services and gates.

Every PortalError carries the HTTP status it maps to; main.py renders them
all as {"message": ...}.
"""

from enum import Enum


class PortalError(Exception):
    """Base exception for all portal errors"""

    status_code = 500

    def __init__(self, message: str = "Server error"):
        self.message = message
        super().__init__(message)


class ConfigError(PortalError):
    """Configuration is missing or invalid"""


class ValidationFailed(PortalError):
    status_code = 400


class RejectionKind(str, Enum):
    ABSENT = "absent"
    MALFORMED = "malformed"
    EXPIRED = "expired"
    PRINCIPAL_MISSING = "principal_missing"


class Unauthenticated(PortalError):
    """Request carries no usable credential"""

    status_code = 401

    def __init__(self, kind: RejectionKind, message: str = "Not authorized"):
        self.kind = kind
        super().__init__(message)


class InvalidCredentials(PortalError):
    """Login with an unknown email or a wrong password"""

    status_code = 401

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class Forbidden(PortalError):
    status_code = 403


class NotFound(PortalError):
    status_code = 404
