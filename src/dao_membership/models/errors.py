"""Registry error taxonomy: every failure is a terminal, typed result.

Each error aborts the current operation with no state change. None are
caught or retried inside the registry; the service layer converts them
into ServiceResult failures.

All errors subclass ValueError so callers that already guard engine
calls with ``except ValueError`` keep working.
"""

from __future__ import annotations

import enum


class RegistryErrorKind(str, enum.Enum):
    """Classification of registry failures."""
    NOT_ADMIN = "not_admin"
    ALREADY_MEMBER = "already_member"
    NOT_MEMBER = "not_member"
    MEMBER_LIMIT_REACHED = "member_limit_reached"
    INVALID_USER = "invalid_user"
    INVALID_LIMIT = "invalid_limit"
    BATCH_TOO_LARGE = "batch_too_large"
    PAUSED = "paused"


class RegistryError(ValueError):
    """Base class for all registry failures."""
    kind: RegistryErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotAdmin(RegistryError):
    """Caller failed the admin gate."""
    kind = RegistryErrorKind.NOT_ADMIN


class AlreadyMember(RegistryError):
    kind = RegistryErrorKind.ALREADY_MEMBER


class NotMember(RegistryError):
    """Target (or caller, for delegation) is not an active member."""
    kind = RegistryErrorKind.NOT_MEMBER


class MemberLimitReached(RegistryError):
    kind = RegistryErrorKind.MEMBER_LIMIT_REACHED


class InvalidUser(RegistryError):
    """Target principal failed a shape check (blank, or equal to caller)."""
    kind = RegistryErrorKind.INVALID_USER


class InvalidLimit(RegistryError):
    kind = RegistryErrorKind.INVALID_LIMIT


class BatchTooLarge(RegistryError):
    kind = RegistryErrorKind.BATCH_TOO_LARGE


class RegistryPaused(RegistryError):
    """Raised only when pause enforcement is switched on in policy."""
    kind = RegistryErrorKind.PAUSED
