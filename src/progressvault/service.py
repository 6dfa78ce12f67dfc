"""progressvault service: the host around the metric ledger.

The service plays the role the shared ledger's runtime plays in
production:
- it authenticates the caller, who is always the record owner,
- it wraps every mutation in a transaction (snapshot, run, restore on
  failure) so no partial field or ACL grant survives an error,
- it emits GoalSet / ResultSubmitted / AccessGranted / MetricMadePublic
  events to the append-only event log,
- it persists state after commit when a StateStore is wired.

Mutations return a ServiceResult. Read-only handle getters raise the
typed ledger errors directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from progressvault.access.acl import AccessControlList
from progressvault.config import LedgerSettings
from progressvault.crypto.anchor import audit_root
from progressvault.crypto.ciphertext import EncryptedBackend, ExternalInput
from progressvault.crypto.reference_backend import PlaintextReferenceBackend
from progressvault.engine.ledger import MetricLedger
from progressvault.engine.queries import HandleQueryService
from progressvault.errors import LedgerError
from progressvault.models.metric import Orientation, RecordState
from progressvault.persistence.event_log import EventKind, EventLog, EventRecord
from progressvault.persistence.state_store import StateStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    code: Optional[str] = None


class ProgressVaultService:
    """Facade over MetricLedger, HandleQueryService and the event log.

    Usage:
        backend = PlaintextReferenceBackend(verifier_key, ledger_address)
        service = ProgressVaultService(backend, ledger_address)

        goal, proof = backend.encrypt_input(20, alice)
        service.configure_goal(alice, metric_id, goal, proof, Orientation.HIGHER_IS_BETTER)

        result, proof = backend.encrypt_input(25, alice)
        outcome = service.submit_result(alice, metric_id, result, proof)
        outcome.data["hit_handle"], outcome.data["gap_abs_handle"]

    Persistence (optional, reference backend only):
        service = ProgressVaultService.from_settings(LedgerSettings.from_env())
    """

    def __init__(
        self,
        backend: EncryptedBackend,
        ledger_address: str,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if state_store is not None and not isinstance(backend, PlaintextReferenceBackend):
            raise TypeError("StateStore persistence requires the plaintext reference backend")

        self._backend = backend
        self._acl = AccessControlList(ledger_address)
        self._ledger = MetricLedger(backend, self._acl, clock=clock)
        self._queries = HandleQueryService(self._ledger)
        self._event_log = event_log if event_log is not None else EventLog()
        self._state_store = state_store

        if state_store is not None:
            state_store.load(self._ledger, backend)

        # Continue numbering from a persisted log so ids never collide.
        self._event_counter = self._event_log.count

        # Set when a post-commit StateStore write fails; the event log is
        # still authoritative.
        self._persistence_degraded = False

    @classmethod
    def from_settings(cls, settings: LedgerSettings) -> ProgressVaultService:
        """Reference backend with durable event log and state snapshot."""
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        backend = PlaintextReferenceBackend(settings.verifier_key, settings.ledger_address)
        return cls(
            backend,
            settings.ledger_address,
            event_log=EventLog(storage_path=settings.events_path),
            state_store=StateStore(settings.state_path),
        )

    @property
    def backend(self) -> EncryptedBackend:
        return self._backend

    @property
    def acl(self) -> AccessControlList:
        return self._acl

    @property
    def ledger(self) -> MetricLedger:
        return self._ledger

    @property
    def queries(self) -> HandleQueryService:
        return self._queries

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def configure_goal(
        self,
        caller: str,
        metric_id: str,
        external_goal: ExternalInput,
        attestation: bytes,
        orientation: Orientation | str,
    ) -> ServiceResult:
        """Set or replace the caller's encrypted goal for ``metric_id``."""
        def _op(owner: str, mid: str) -> dict[str, Any]:
            goal_handle = self._ledger.configure_goal(
                owner, mid, external_goal, attestation, orientation,
            )
            record = self._ledger.get(owner, mid)
            self._emit(EventKind.GOAL_SET, owner, {
                "metric_id": mid,
                "orientation": record.orientation.value,
            })
            return {"metric_id": mid, "goal_handle": goal_handle}

        return self._run("configure_goal", caller, metric_id, _op)

    def submit_result(
        self,
        caller: str,
        metric_id: str,
        external_result: ExternalInput,
        attestation: bytes,
    ) -> ServiceResult:
        """Submit an encrypted result; data carries hit and gap handles."""
        def _op(owner: str, mid: str) -> dict[str, Any]:
            receipt = self._ledger.submit_result(owner, mid, external_result, attestation)
            self._emit(EventKind.RESULT_SUBMITTED, owner, {
                "metric_id": mid,
                "hit_handle": receipt.hit_handle,
                "gap_abs_handle": receipt.gap_abs_handle,
            })
            return {
                "metric_id": mid,
                "hit_handle": receipt.hit_handle,
                "gap_abs_handle": receipt.gap_abs_handle,
            }

        return self._run("submit_result", caller, metric_id, _op)

    def authorize(self, caller: str, metric_id: str, principal: str) -> ServiceResult:
        """Let ``principal`` decrypt every current and future value of the metric."""
        def _op(owner: str, mid: str) -> dict[str, Any]:
            grantee = self._ledger.authorize(owner, mid, principal)
            self._emit(EventKind.ACCESS_GRANTED, owner, {
                "metric_id": mid,
                "principal": grantee,
            })
            return {"metric_id": mid, "principal": grantee}

        return self._run("authorize", caller, metric_id, _op)

    def make_public(self, caller: str, metric_id: str) -> ServiceResult:
        """Make every current and future value of the metric publicly decryptable."""
        def _op(owner: str, mid: str) -> dict[str, Any]:
            self._ledger.make_public(owner, mid)
            self._emit(EventKind.METRIC_MADE_PUBLIC, owner, {"metric_id": mid})
            return {"metric_id": mid}

        return self._run("make_public", caller, metric_id, _op)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def goal_handle(self, owner: str, metric_id: str) -> str:
        return self._queries.goal_handle(owner, metric_id)

    def last_result_handle(self, owner: str, metric_id: str) -> str:
        return self._queries.last_result_handle(owner, metric_id)

    def best_handle(self, owner: str, metric_id: str) -> str:
        return self._queries.best_handle(owner, metric_id)

    def last_gap_abs_handle(self, owner: str, metric_id: str) -> str:
        return self._queries.last_gap_abs_handle(owner, metric_id)

    def last_hit_handle(self, owner: str, metric_id: str) -> str:
        return self._queries.last_hit_handle(owner, metric_id)

    def orientation(self, owner: str, metric_id: str) -> Orientation:
        return self._queries.orientation(owner, metric_id)

    def submission_count(self, owner: str, metric_id: str) -> int:
        return self._queries.submission_count(owner, metric_id)

    def last_submission_time(self, owner: str, metric_id: str) -> int:
        return self._queries.last_submission_time(owner, metric_id)

    def is_configured(self, owner: str, metric_id: str) -> bool:
        return self._queries.is_configured(owner, metric_id)

    def record_state(self, owner: str, metric_id: str) -> RecordState:
        return self._queries.state(owner, metric_id)

    def audit_root(self) -> str:
        return audit_root(self._event_log)

    def status(self) -> dict[str, Any]:
        return {
            "ledger_address": self._acl.holder_address,
            "records": self._ledger.count,
            "events": self._event_log.count,
            "audit_root": self.audit_root(),
            "persistence_degraded": self._persistence_degraded,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(
        self,
        action: str,
        caller: str,
        metric_id: str,
        op: Callable[[str, str], dict[str, Any]],
    ) -> ServiceResult:
        """Run ``op`` as one transaction over the caller's record and the ACL."""
        try:
            key = MetricLedger.key(caller, metric_id)
        except LedgerError as e:
            return ServiceResult(success=False, errors=[str(e)], code=e.code)
        except ValueError as e:
            return ServiceResult(success=False, errors=[str(e)], code="invalid_request")

        record_snapshot = self._ledger.snapshot_record(key)
        counter = self._event_counter
        self._acl.begin()

        def _rollback() -> None:
            self._ledger.restore_record(key, record_snapshot)
            self._acl.rollback()
            self._event_counter = counter

        try:
            data = op(*key)
        except LedgerError as e:
            _rollback()
            logger.warning("%s rejected for %s/%s: %s", action, key[0], key[1], e)
            return ServiceResult(success=False, errors=[str(e)], code=e.code)
        except ValueError as e:
            _rollback()
            logger.warning("%s rejected for %s/%s: %s", action, key[0], key[1], e)
            return ServiceResult(success=False, errors=[str(e)], code="invalid_request")
        except OSError as e:
            _rollback()
            logger.error("%s aborted, event log failure: %s", action, e)
            return ServiceResult(
                success=False, errors=[f"Event log failure: {e}"], code="event_log_failure",
            )
        except Exception:
            _rollback()
            logger.exception("%s aborted for %s/%s", action, key[0], key[1])
            raise

        self._acl.commit()

        warning = self._persist_post_commit()
        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data)

    def _next_event_id(self) -> str:
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _emit(self, kind: EventKind, owner: str, payload: dict[str, Any]) -> None:
        event = EventRecord.create(
            event_id=self._next_event_id(),
            event_kind=kind,
            actor_id=owner,
            payload=payload,
        )
        self._event_log.append(event)

    def _persist_post_commit(self) -> Optional[str]:
        """Save a snapshot after commit. Failure degrades, never rolls back."""
        if self._state_store is None:
            return None
        try:
            self._state_store.save(self._ledger, self._backend)
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.error("State snapshot failed: %s", e)
            return f"Persistence degraded: {e}; state is committed in the event log"
