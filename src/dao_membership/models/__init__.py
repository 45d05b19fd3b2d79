"""Core data models for the DAO membership registry."""

from dao_membership.models.errors import (
    AlreadyMember,
    BatchTooLarge,
    InvalidLimit,
    InvalidUser,
    MemberLimitReached,
    NotAdmin,
    NotMember,
    RegistryError,
    RegistryErrorKind,
    RegistryPaused,
)

__all__ = [
    "AlreadyMember",
    "BatchTooLarge",
    "InvalidLimit",
    "InvalidUser",
    "MemberLimitReached",
    "NotAdmin",
    "NotMember",
    "RegistryError",
    "RegistryErrorKind",
    "RegistryPaused",
]
