"""Access-control gate: the registry's entire authorization model.

A single predicate: caller == admin. The admin identity is captured once
when the registry is constructed and is never mutated afterwards. There
is no role hierarchy, no multi-admin support, and no transfer primitive.

The gate never authenticates identities. The host executor supplies the
caller; the gate only compares values for equality.
"""

from __future__ import annotations

from dao_membership.models.errors import NotAdmin


class AccessGate:
    """Equality gate against a fixed admin identity."""

    def __init__(self, admin_id: str) -> None:
        if not admin_id or not admin_id.strip():
            raise ValueError("Admin identity cannot be blank")
        self._admin_id = admin_id

    @property
    def admin_id(self) -> str:
        return self._admin_id

    def require_admin(self, caller: str) -> None:
        """Raise NotAdmin unless caller is the admin.

        Must run before any other validation in an admin-gated operation
        so unauthorized callers never see partial validation results.
        """
        if caller != self._admin_id:
            raise NotAdmin(f"Caller {caller} is not the registry admin")
