#!/usr/bin/env python3
"""Check an exported event log against a previously anchored audit root.

Observers run this with the events.jsonl they were given and the root
they read from the anchor transaction. Loading the log re-verifies every
event hash; the Merkle root is then recomputed in log order.

Usage:
    python3 tools/verify_audit_root.py data/events.jsonl sha256:<root>
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from progressvault.crypto.anchor import audit_root
from progressvault.persistence.event_log import EventLog


def verify(log_path: Path, expected_root: str) -> int:
    if not log_path.exists():
        print(f"ERROR: event log not found: {log_path}")
        return 1
    try:
        log = EventLog(storage_path=log_path)
    except ValueError as e:
        print(f"FAIL: {e}")
        return 1

    root = audit_root(log)
    if not expected_root.startswith("sha256:"):
        expected_root = f"sha256:{expected_root}"
    if root != expected_root:
        print(f"FAIL: {log.count} events hash to {root}, expected {expected_root}")
        return 1
    print(f"OK: {log.count} events, root {root}")
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print(__doc__)
        sys.exit(2)
    sys.exit(verify(Path(sys.argv[1]), sys.argv[2]))
