"""Membership service: audited facade over the membership registry.

This is the primary interface for programmatic access. The host executor
supplies the caller identity on every call; the service:
- Runs the registry operation (which enforces authorization, limits and
  all-or-nothing batches).
- Appends an audit event for every successful mutation.
- Persists a snapshot of registry state (if a state store is wired).

All operations produce typed results. Audit-trail events are never
silently dropped: if the event log rejects an append, the registry is
rolled back to its pre-call state and the operation fails closed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from dao_membership import __version__
from dao_membership.models.errors import RegistryError
from dao_membership.persistence.event_log import EventKind, EventLog, EventRecord
from dao_membership.persistence.state_store import StateStore
from dao_membership.policy.resolver import PolicyResolver
from dao_membership.registry.engine import MembershipRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class MembershipService:
    """Audited membership registry facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = MembershipService(resolver, admin_id="alice")

        result = service.add_member("alice", "bob")
        result = service.batch_add_members("alice", ["carol", "dave"])
        result = service.delegate_votes("bob", "carol")

    Persistence (optional):
        service = MembershipService(
            resolver, admin_id="alice", event_log=log, state_store=store,
        )
        # State is persisted after each audited mutation and loaded on
        # construction. A stored registry keeps its original admin.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        admin_id: Optional[str] = None,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._resolver = resolver
        self._event_log = event_log
        self._state_store = state_store
        self._lock = threading.RLock()
        self._event_counter = event_log.count if event_log is not None else 0
        self._persistence_degraded = False

        config = resolver.registry_config()
        stored = state_store.load_registry() if state_store is not None else None
        if stored is not None:
            if admin_id is not None and admin_id != stored["admin_id"]:
                raise ValueError(
                    f"Stored registry is administered by {stored['admin_id']}, "
                    f"not {admin_id}"
                )
            self._registry = MembershipRegistry.from_records(config, stored)
            return

        if admin_id is None:
            raise ValueError("admin_id is required to initialise a new registry")
        self._registry = MembershipRegistry(admin_id, config)

        if self._event_log is not None and self._event_log.count == 0:
            err = self._record_event(
                EventKind.REGISTRY_INITIALISED,
                admin_id,
                {"max_members": self._registry.get_max_members()},
            )
            if err:
                raise RuntimeError(err)
        err = self._safe_persist()
        if err:
            raise RuntimeError(err)

    @property
    def registry(self) -> MembershipRegistry:
        """The wrapped registry. Mutations made here bypass the audit log."""
        return self._registry

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    # ------------------------------------------------------------------
    # Membership mutations
    # ------------------------------------------------------------------

    def add_member(self, caller: str, principal: str) -> ServiceResult:
        return self._execute(
            caller,
            EventKind.MEMBER_ADDED,
            lambda: self._registry.add_dao_member(caller, principal),
            lambda ordinal: {"principal": principal, "index": ordinal},
        )

    def remove_member(self, caller: str, principal: str) -> ServiceResult:
        return self._execute(
            caller,
            EventKind.MEMBER_REMOVED,
            lambda: self._registry.remove_dao_member(caller, principal),
            lambda _: {"principal": principal},
        )

    def clear_member_at_index(self, caller: str, ordinal: int) -> ServiceResult:
        return self._execute(
            caller,
            EventKind.MEMBER_CLEARED_AT_INDEX,
            lambda: self._registry.clear_member_at_index(caller, ordinal),
            lambda principal: {"principal": principal, "index": ordinal},
        )

    def batch_add_members(
        self, caller: str, principals: Iterable[str],
    ) -> ServiceResult:
        batch = list(principals)
        return self._execute(
            caller,
            EventKind.MEMBERS_BATCH_ADDED,
            lambda: self._registry.batch_add_members(caller, batch),
            lambda ordinals: {"principals": batch, "indices": ordinals},
        )

    def batch_remove_members(
        self, caller: str, principals: Iterable[str],
    ) -> ServiceResult:
        batch = list(principals)
        return self._execute(
            caller,
            EventKind.MEMBERS_BATCH_REMOVED,
            lambda: self._registry.batch_remove_members(caller, batch),
            lambda removed: {"principals": batch, "removed": removed},
        )

    # ------------------------------------------------------------------
    # Limits, counters, reset
    # ------------------------------------------------------------------

    def set_member_limit(self, caller: str, new_limit: int) -> ServiceResult:
        return self._execute(
            caller,
            EventKind.MEMBER_LIMIT_CHANGED,
            lambda: self._registry.set_member_limit(caller, new_limit),
            lambda previous: {
                "previous_limit": previous,
                "new_limit": new_limit,
                "conditional": False,
            },
        )

    def update_limit_conditionally(
        self, caller: str, new_limit: int,
    ) -> ServiceResult:
        return self._execute(
            caller,
            EventKind.MEMBER_LIMIT_CHANGED,
            lambda: self._registry.update_limit_conditionally(caller, new_limit),
            lambda previous: {
                "previous_limit": previous,
                "new_limit": new_limit,
                "conditional": True,
            },
        )

    def reset_member_count(self, caller: str) -> ServiceResult:
        return self._execute(
            caller,
            EventKind.MEMBER_COUNT_RESET,
            lambda: self._registry.reset_member_count(caller),
            lambda _: {"member_count": 0},
        )

    def reset_system(self, caller: str) -> ServiceResult:
        return self._execute(
            caller,
            EventKind.REGISTRY_RESET,
            lambda: self._registry.reset_dao_system(caller),
            lambda cleared: {"cleared": cleared, "cleared_count": len(cleared)},
        )

    # ------------------------------------------------------------------
    # Pause and delegation
    # ------------------------------------------------------------------

    def toggle_pause(self, caller: str) -> ServiceResult:
        return self._execute(
            caller,
            EventKind.PAUSE_TOGGLED,
            lambda: self._registry.toggle_pause(caller),
            lambda paused: {"is_paused": paused},
        )

    def delegate_votes(self, caller: str, delegate: str) -> ServiceResult:
        return self._execute(
            caller,
            EventKind.VOTES_DELEGATED,
            lambda: self._registry.delegate_votes(caller, delegate),
            lambda replaced: {"delegate": delegate, "replaced": replaced},
        )

    def revoke_delegation(self, caller: str) -> ServiceResult:
        return self._execute(
            caller,
            EventKind.DELEGATION_REVOKED,
            lambda: self._registry.revoke_delegation(caller),
            lambda revoked: {"revoked_delegate": revoked},
        )

    # ------------------------------------------------------------------
    # Status and queries
    # ------------------------------------------------------------------

    def check_membership(self, principal: str) -> dict[str, Any]:
        """Public membership view of a single principal."""
        return {
            "principal": principal,
            "is_member": self._registry.check_is_member(principal),
            "index": self._registry.index_of(principal),
            "delegate": self._registry.get_delegate(principal),
        }

    def status(self) -> dict[str, Any]:
        """Return registry-wide status summary."""
        return {
            "version": __version__,
            "policy_version": self._resolver.version,
            "registry": self._registry.summary(),
            "events": self._event_log.count if self._event_log is not None else 0,
            "persistence_degraded": self._persistence_degraded,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _execute(
        self,
        caller: str,
        kind: EventKind,
        operation: Callable[[], Any],
        describe: Callable[[Any], dict[str, Any]],
    ) -> ServiceResult:
        """Run a registry mutation, audit it, and persist.

        Fail-closed: if the audit append fails, the registry is restored
        to the snapshot taken before the operation. The registry lock is
        held throughout, so a direct registry call from another thread
        waits and cannot be undone by the rollback.
        """
        with self._lock, self._registry.lock:
            snapshot = self._registry.snapshot_state()
            try:
                value = operation()
            except RegistryError as e:
                return ServiceResult(
                    success=False,
                    errors=[str(e)],
                    data={"error_kind": e.kind.value},
                )

            data = describe(value)
            err = self._record_event(kind, caller, data)
            if err:
                self._registry.restore_state(snapshot)
                logger.warning("Rolled back %s by %s: %s", kind.value, caller, err)
                return ServiceResult(success=False, errors=[err])

            warning = self._safe_persist_post_audit()
            if warning:
                data = {**data, "warning": warning}
            return ServiceResult(success=True, data=data)

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _record_event(
        self, kind: EventKind, actor_id: str, payload: dict[str, Any],
    ) -> Optional[str]:
        """Append an audit event. Returns error string or None."""
        if self._event_log is None:
            return None
        try:
            event = EventRecord.create(
                event_id=self._next_event_id(),
                event_kind=kind,
                actor_id=actor_id,
                payload=payload,
            )
            self._event_log.append(event)
        except (ValueError, OSError) as e:
            return f"Event log failure: {e}"
        return None

    def _persist_state(self) -> None:
        """Persist current state to the state store (if wired).

        Can raise OSError; callers use the _safe_persist wrappers.
        """
        if self._state_store is None:
            return
        self._state_store.save_registry(self._registry.to_records())

    def _safe_persist(self) -> Optional[str]:
        """Persist state before any audit event depends on it."""
        try:
            self._persist_state()
            return None
        except OSError as e:
            return f"Persistence failure: {e}"

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after the audit event has been committed.

        MUST NOT roll back in-memory state: the audit trail is already
        durable. On failure the state store is stale: flag it and return
        a warning rather than an error.
        """
        try:
            self._persist_state()
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.error("State store write failed after audit: %s", e)
            return (
                f"Persistence degraded: {e}: state committed in audit "
                f"trail but StateStore is stale"
            )
