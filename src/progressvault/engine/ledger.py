"""Metric ledger: the encrypted per-metric record state machine.

Transitions per record (monotonic):
    UNCONFIGURED -> CONFIGURED              (configure_goal)
    CONFIGURED -> CONFIGURED_WITH_SUBMISSIONS (submit_result)

Every comparison result stays encrypted. The only plaintext branch the
ledger takes is on orientation, which is itself plaintext. Choices that
depend on encrypted values go through backend.select().

The ledger stages all new values locally and writes them to the record
at the end of an operation. Atomicity across the ACL and the record is
the host's job (see ProgressVaultService); this module does no rollback.
Event emission is also handled by the service layer.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Optional

from progressvault.access.acl import AccessControlList
from progressvault.crypto.ciphertext import (
    Ciphertext,
    EncryptedBackend,
    ExternalInput,
)
from progressvault.errors import NotConfigured
from progressvault.models.metric import (
    UINT32_MODULUS,
    MetricRecord,
    Orientation,
    SubmissionReceipt,
    normalize_metric_id,
    normalize_principal,
)


logger = logging.getLogger(__name__)

RecordKey = tuple[str, str]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MetricLedger:
    """Owns all metric records and drives ACL grants for their handles.

    Usage:
        ledger = MetricLedger(backend, acl)
        ledger.configure_goal(alice, metric_id, goal_input, proof, Orientation.HIGHER_IS_BETTER)
        receipt = ledger.submit_result(alice, metric_id, result_input, proof)
    """

    def __init__(
        self,
        backend: EncryptedBackend,
        acl: AccessControlList,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._backend = backend
        self._acl = acl
        self._clock = clock or _utc_now
        self._records: dict[RecordKey, MetricRecord] = {}

    @property
    def backend(self) -> EncryptedBackend:
        return self._backend

    @property
    def acl(self) -> AccessControlList:
        return self._acl

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, owner: str, metric_id: str) -> Optional[MetricRecord]:
        return self._records.get(self.key(owner, metric_id))

    def records(self) -> Iterator[MetricRecord]:
        return iter(list(self._records.values()))

    @property
    def count(self) -> int:
        return len(self._records)

    @staticmethod
    def key(owner: str, metric_id: str) -> RecordKey:
        return (normalize_principal(owner), normalize_metric_id(metric_id))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def configure_goal(
        self,
        owner: str,
        metric_id: str,
        external_goal: ExternalInput,
        attestation: bytes,
        orientation: Orientation | str,
    ) -> str:
        """Set or replace the encrypted goal. Returns the goal handle.

        The record is created on first call. Later calls overwrite goal and
        orientation but keep best, last_result and submission_count.
        """
        key = self.key(owner, metric_id)
        orientation = Orientation(orientation)

        goal = self._backend.import_uint32(external_goal, attestation, key[0])

        record = self._records.get(key)
        if record is None:
            record = MetricRecord(owner=key[0], metric_id=key[1])
        self._grant(record, [goal])

        record.configured = True
        record.orientation = orientation
        record.goal = goal
        self._records[key] = record

        logger.info(
            "Goal configured owner=%s metric=%s orientation=%s goal=%s",
            key[0], key[1], orientation.value, goal.handle,
        )
        return self._backend.export_handle(goal)

    def submit_result(
        self,
        owner: str,
        metric_id: str,
        external_result: ExternalInput,
        attestation: bytes,
    ) -> SubmissionReceipt:
        """Ingest an encrypted result and update hit, gap and best."""
        key = self.key(owner, metric_id)
        record = self._records.get(key)
        if record is None or not record.configured or record.goal is None:
            raise NotConfigured(f"No goal configured for metric {key[1]}")

        backend = self._backend
        goal = record.goal
        higher = record.orientation == Orientation.HIGHER_IS_BETTER

        result = backend.import_uint32(external_result, attestation, key[0])

        reached_up = backend.ge(result, goal)
        reached_down = backend.le(result, goal)
        hit = reached_up if higher else reached_down

        diff_pos = backend.sub(result, goal)
        diff_neg = backend.sub(goal, result)
        gap_abs = backend.select(reached_up, diff_pos, diff_neg)

        if record.best is None:
            best = result
        else:
            better = backend.gt(result, record.best) if higher else backend.lt(result, record.best)
            best = backend.select(better, result, record.best)

        self._grant(record, [result, best, gap_abs, hit])

        record.last_result = result
        record.best = best
        record.last_gap_abs = gap_abs
        record.last_hit = hit
        record.submission_count = (record.submission_count + 1) % UINT32_MODULUS
        record.last_submission_time = int(self._clock().timestamp())

        receipt = SubmissionReceipt(
            hit_handle=backend.export_handle(hit),
            gap_abs_handle=backend.export_handle(gap_abs),
        )
        logger.info(
            "Result submitted owner=%s metric=%s count=%d hit=%s gap=%s",
            key[0], key[1], record.submission_count,
            receipt.hit_handle, receipt.gap_abs_handle,
        )
        return receipt

    def authorize(self, owner: str, metric_id: str, principal: str) -> str:
        """Grant ``principal`` every current and future handle of the record.

        Returns the normalized principal. Raises InvalidPrincipal or
        NotConfigured.
        """
        key = self.key(owner, metric_id)
        grantee = normalize_principal(principal)
        record = self._configured(key)

        for c in record.current_ciphertexts():
            self._acl.authorize(c.handle, grantee)
        if grantee not in record.viewers:
            record.viewers.append(grantee)

        logger.info("Access granted owner=%s metric=%s principal=%s", key[0], key[1], grantee)
        return grantee

    def make_public(self, owner: str, metric_id: str) -> None:
        """Mark every current and future handle of the record public."""
        key = self.key(owner, metric_id)
        record = self._configured(key)

        for c in record.current_ciphertexts():
            self._acl.make_public(c.handle)
        record.public = True

        logger.info("Metric made public owner=%s metric=%s", key[0], key[1])

    # ------------------------------------------------------------------
    # Host transaction support
    # ------------------------------------------------------------------

    def snapshot_record(self, key: RecordKey) -> Optional[MetricRecord]:
        record = self._records.get(key)
        return copy.deepcopy(record) if record is not None else None

    def restore_record(self, key: RecordKey, snapshot: Optional[MetricRecord]) -> None:
        if snapshot is None:
            self._records.pop(key, None)
        else:
            self._records[key] = snapshot

    def to_dict(self) -> list[dict[str, Any]]:
        return [r.to_dict() for r in self._records.values()]

    def load_dict(self, data: list[dict[str, Any]]) -> None:
        self._records = {}
        for item in data:
            record = MetricRecord.from_dict(item)
            self._records[record.key] = record

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _configured(self, key: RecordKey) -> MetricRecord:
        record = self._records.get(key)
        if record is None or not record.configured:
            raise NotConfigured(f"No goal configured for metric {key[1]}")
        return record

    def _grant(self, record: MetricRecord, ciphertexts: list[Ciphertext]) -> None:
        """Authorize holder, owner and metric-wide grantees on new handles."""
        for c in ciphertexts:
            self._acl.authorize_holder(c.handle)
            self._acl.authorize(c.handle, record.owner)
            for viewer in record.viewers:
                self._acl.authorize(c.handle, viewer)
            if record.public:
                self._acl.make_public(c.handle)
