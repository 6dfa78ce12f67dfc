"""Read-only accessors over the metric ledger.

No encrypted computation happens here. Encrypted fields come back as
exported handles; plaintext metadata comes back as-is, with defaults for
records that do not exist.
"""

from __future__ import annotations

from typing import Optional

from progressvault.crypto.ciphertext import Ciphertext
from progressvault.engine.ledger import MetricLedger
from progressvault.errors import NoSubmissions, NotConfigured
from progressvault.models.metric import MetricRecord, Orientation, RecordState


class HandleQueryService:
    """Handle and metadata lookups for (owner, metric) records."""

    def __init__(self, ledger: MetricLedger) -> None:
        self._ledger = ledger

    # Encrypted fields

    def goal_handle(self, owner: str, metric_id: str) -> str:
        record = self._configured(owner, metric_id)
        return self._export(record.goal)

    def last_result_handle(self, owner: str, metric_id: str) -> str:
        return self._export(self._submitted(owner, metric_id).last_result)

    def best_handle(self, owner: str, metric_id: str) -> str:
        return self._export(self._submitted(owner, metric_id).best)

    def last_gap_abs_handle(self, owner: str, metric_id: str) -> str:
        return self._export(self._submitted(owner, metric_id).last_gap_abs)

    def last_hit_handle(self, owner: str, metric_id: str) -> str:
        return self._export(self._submitted(owner, metric_id).last_hit)

    # Plaintext metadata

    def is_configured(self, owner: str, metric_id: str) -> bool:
        record = self._find(owner, metric_id)
        return record is not None and record.configured

    def orientation(self, owner: str, metric_id: str) -> Orientation:
        record = self._find(owner, metric_id)
        return record.orientation if record is not None else Orientation.HIGHER_IS_BETTER

    def submission_count(self, owner: str, metric_id: str) -> int:
        record = self._find(owner, metric_id)
        return record.submission_count if record is not None else 0

    def last_submission_time(self, owner: str, metric_id: str) -> int:
        record = self._find(owner, metric_id)
        return record.last_submission_time if record is not None else 0

    def state(self, owner: str, metric_id: str) -> RecordState:
        record = self._find(owner, metric_id)
        return record.state if record is not None else RecordState.UNCONFIGURED

    def is_authorized(self, owner: str, metric_id: str, principal: str) -> bool:
        """True iff ``principal`` may decrypt every current handle of the record."""
        record = self._find(owner, metric_id)
        if record is None:
            return False
        handles = [c.handle for c in record.current_ciphertexts()]
        if not handles:
            return False
        acl = self._ledger.acl
        return all(acl.is_authorized(h, principal) for h in handles)

    # Internals

    def _find(self, owner: str, metric_id: str) -> Optional[MetricRecord]:
        try:
            return self._ledger.get(owner, metric_id)
        except ValueError:
            return None

    def _configured(self, owner: str, metric_id: str) -> MetricRecord:
        record = self._find(owner, metric_id)
        if record is None or not record.configured:
            raise NotConfigured(f"No goal configured for metric {metric_id}")
        return record

    def _submitted(self, owner: str, metric_id: str) -> MetricRecord:
        record = self._configured(owner, metric_id)
        if record.last_result is None:
            raise NoSubmissions(f"No results submitted for metric {metric_id}")
        return record

    def _export(self, value: Optional[Ciphertext]) -> str:
        if value is None:
            raise NoSubmissions("Field has no ciphertext yet")
        return self._ledger.backend.export_handle(value)
