"""DAO membership CLI: command-line interface for the membership registry.

Usage:
    python -m dao_membership.cli --caller alice status
    python -m dao_membership.cli --caller alice add bob
    python -m dao_membership.cli --caller alice batch-add carol dave
    python -m dao_membership.cli --caller alice set-limit 50
    python -m dao_membership.cli --caller bob delegate carol
    python -m dao_membership.cli check bob
    python -m dao_membership.cli check-invariants

Environment (read from .env if present):
    DAO_CONFIG_DIR  policy directory (default: config/)
    DAO_DATA_DIR    event log and state snapshot directory (default: data/)
    DAO_ADMIN       admin identity used when creating a new registry
    DAO_CALLER      caller identity when --caller is omitted
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from dao_membership.persistence.event_log import EventLog
from dao_membership.persistence.state_store import StateStore
from dao_membership.policy.invariants import check_registry_policy
from dao_membership.policy.resolver import POLICY_FILENAME, PolicyResolver
from dao_membership.service import MembershipService, ServiceResult


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"


def _make_service(args: argparse.Namespace) -> MembershipService:
    """Create a MembershipService with durable persistence."""
    data_dir: Path = args.data_dir
    data_dir.mkdir(parents=True, exist_ok=True)
    resolver = PolicyResolver.from_config_dir(args.config)
    return MembershipService(
        resolver,
        admin_id=args.admin,
        event_log=EventLog(storage_path=data_dir / "events.jsonl"),
        state_store=StateStore(storage_path=data_dir / "registry_state.json"),
    )


def _caller(args: argparse.Namespace) -> str:
    if not args.caller:
        raise SystemExit("A caller identity is required (--caller or DAO_CALLER)")
    return args.caller


def _report(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, default=str))
        return 0
    print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.check_membership(args.principal), indent=2))
    return 0


def cmd_add(args: argparse.Namespace) -> int:
    return _report(_make_service(args).add_member(_caller(args), args.principal))


def cmd_remove(args: argparse.Namespace) -> int:
    return _report(_make_service(args).remove_member(_caller(args), args.principal))


def cmd_batch_add(args: argparse.Namespace) -> int:
    return _report(
        _make_service(args).batch_add_members(_caller(args), args.principals)
    )


def cmd_batch_remove(args: argparse.Namespace) -> int:
    return _report(
        _make_service(args).batch_remove_members(_caller(args), args.principals)
    )


def cmd_clear_index(args: argparse.Namespace) -> int:
    return _report(
        _make_service(args).clear_member_at_index(_caller(args), args.index)
    )


def cmd_set_limit(args: argparse.Namespace) -> int:
    return _report(_make_service(args).set_member_limit(_caller(args), args.limit))


def cmd_update_limit(args: argparse.Namespace) -> int:
    return _report(
        _make_service(args).update_limit_conditionally(_caller(args), args.limit)
    )


def cmd_reset_count(args: argparse.Namespace) -> int:
    return _report(_make_service(args).reset_member_count(_caller(args)))


def cmd_reset(args: argparse.Namespace) -> int:
    return _report(_make_service(args).reset_system(_caller(args)))


def cmd_toggle_pause(args: argparse.Namespace) -> int:
    return _report(_make_service(args).toggle_pause(_caller(args)))


def cmd_delegate(args: argparse.Namespace) -> int:
    return _report(_make_service(args).delegate_votes(_caller(args), args.delegate))


def cmd_revoke_delegation(args: argparse.Namespace) -> int:
    return _report(_make_service(args).revoke_delegation(_caller(args)))


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run registry policy invariant checks."""
    with (args.config / POLICY_FILENAME).open("r", encoding="utf-8") as handle:
        errors = check_registry_policy(json.load(handle))
    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"  - {err}")
        return 1
    print("Invariant checks passed.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dao-membership",
        description="DAO membership registry CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(os.getenv("DAO_CONFIG_DIR", DEFAULT_CONFIG)),
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path(os.getenv("DAO_DATA_DIR", DEFAULT_DATA)),
        help="Path to data directory (default: data/)",
    )
    parser.add_argument(
        "--admin",
        default=os.getenv("DAO_ADMIN"),
        help="Admin identity for a new registry",
    )
    parser.add_argument(
        "--caller",
        default=os.getenv("DAO_CALLER"),
        help="Identity of the caller making the request",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show registry status")

    p_check = sub.add_parser("check", help="Show membership of a principal")
    p_check.add_argument("principal")

    p_add = sub.add_parser("add", help="Add a member (admin)")
    p_add.add_argument("principal")

    p_remove = sub.add_parser("remove", help="Remove a member (admin)")
    p_remove.add_argument("principal")

    p_badd = sub.add_parser("batch-add", help="Add members, all-or-nothing (admin)")
    p_badd.add_argument("principals", nargs="+")

    p_brem = sub.add_parser(
        "batch-remove", help="Remove members, all-or-nothing (admin)",
    )
    p_brem.add_argument("principals", nargs="+")

    p_clear = sub.add_parser("clear-index", help="Remove the member at an index (admin)")
    p_clear.add_argument("index", type=int)

    p_limit = sub.add_parser("set-limit", help="Set the member limit (admin)")
    p_limit.add_argument("limit", type=int)

    p_ulimit = sub.add_parser(
        "update-limit", help="Set the limit if it exceeds the current count",
    )
    p_ulimit.add_argument("limit", type=int)

    sub.add_parser("reset-count", help="Zero the member counter (admin)")
    sub.add_parser("reset", help="Clear indexed members and zero the counter (admin)")
    sub.add_parser("toggle-pause", help="Flip the pause flag (admin)")

    p_deleg = sub.add_parser("delegate", help="Delegate the caller's vote")
    p_deleg.add_argument("delegate")

    sub.add_parser("revoke-delegation", help="Revoke the caller's delegation")

    sub.add_parser("check-invariants", help="Run registry policy invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "check": cmd_check,
        "add": cmd_add,
        "remove": cmd_remove,
        "batch-add": cmd_batch_add,
        "batch-remove": cmd_batch_remove,
        "clear-index": cmd_clear_index,
        "set-limit": cmd_set_limit,
        "update-limit": cmd_update_limit,
        "reset-count": cmd_reset_count,
        "reset": cmd_reset,
        "toggle-pause": cmd_toggle_pause,
        "delegate": cmd_delegate,
        "revoke-delegation": cmd_revoke_delegation,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except ValueError as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
