"""JSON snapshot of ledger state between process runs.

Stores the metric records, the ACL and the reference backend's ciphertext
table in one file. Writes go to a temporary file that replaces the
target, so a crash mid-write leaves the previous snapshot intact.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from progressvault.crypto.reference_backend import PlaintextReferenceBackend
from progressvault.engine.ledger import MetricLedger


STATE_VERSION = 1


class StateStore:
    """File-backed snapshot of a MetricLedger and its reference backend."""

    def __init__(self, storage_path: Path) -> None:
        self._path = storage_path

    @property
    def exists(self) -> bool:
        return self._path.exists()

    def save(self, ledger: MetricLedger, backend: PlaintextReferenceBackend) -> None:
        data: dict[str, Any] = {
            "version": STATE_VERSION,
            "ledger_address": backend.ledger_address,
            "records": ledger.to_dict(),
            "acl": ledger.acl.to_dict(),
            # Intermediates never get an ACL entry and cannot be disclosed.
            "backend": backend.to_dict(retain=ledger.acl.has_entry),
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, sort_keys=True, indent=1), encoding="utf-8")
        os.replace(tmp, self._path)

    def load(self, ledger: MetricLedger, backend: PlaintextReferenceBackend) -> None:
        """Populate ``ledger`` and ``backend`` from disk. No-op if no file yet."""
        if not self._path.exists():
            return
        data = json.loads(self._path.read_text(encoding="utf-8"))
        version = data.get("version")
        if version != STATE_VERSION:
            raise ValueError(f"Unsupported state version: {version}")
        if data.get("ledger_address") != backend.ledger_address:
            raise ValueError(
                f"State belongs to ledger {data.get('ledger_address')}, "
                f"not {backend.ledger_address}"
            )
        backend.load_dict(data["backend"])
        ledger.acl.load_dict(data["acl"])
        ledger.load_dict(data["records"])
