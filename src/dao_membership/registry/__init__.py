"""Membership registry: store, access gate, delegation book, and engine."""

from dao_membership.registry.access import AccessGate
from dao_membership.registry.delegation import DelegationBook
from dao_membership.registry.engine import MembershipRegistry
from dao_membership.registry.store import MembershipStore, StoreSnapshot

__all__ = [
    "AccessGate",
    "DelegationBook",
    "MembershipRegistry",
    "MembershipStore",
    "StoreSnapshot",
]
