#!/usr/bin/env python3
"""Registry invariant checks against the executable policy artifact."""

import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from dao_membership.policy.invariants import check_registry_policy

POLICY_PATH = ROOT / "config" / "registry_policy.json"


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check(policy_path: Path = POLICY_PATH) -> int:
    errors = check_registry_policy(load_json(policy_path))
    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"  - {err}")
        return 1
    print("Invariant checks passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(check())
