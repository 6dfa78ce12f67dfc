"""Tests for StateStore snapshots and the audit-root verification tool."""

import importlib.util
import json
import pytest
from pathlib import Path

from eth_account import Account

from progressvault.access.acl import AccessControlList
from progressvault.config import DEV_LEDGER_ADDRESS, DEV_VERIFIER_KEY
from progressvault.crypto.anchor import audit_root
from progressvault.crypto.reference_backend import PlaintextReferenceBackend
from progressvault.crypto.relayer import ReferenceRelayer
from progressvault.engine.ledger import MetricLedger
from progressvault.models.metric import Orientation, metric_id_from_label
from progressvault.persistence.event_log import EventKind, EventLog, EventRecord
from progressvault.persistence.state_store import STATE_VERSION, StateStore


ALICE = Account.from_key("0x" + "11" * 32).address
BOB = Account.from_key("0x" + "22" * 32).address
PLANK = metric_id_from_label("plank")
TOOLS = Path(__file__).resolve().parents[1] / "tools"


def _fresh() -> tuple[MetricLedger, PlaintextReferenceBackend]:
    backend = PlaintextReferenceBackend(DEV_VERIFIER_KEY, DEV_LEDGER_ADDRESS)
    return MetricLedger(backend, AccessControlList(DEV_LEDGER_ADDRESS)), backend


def _populated() -> tuple[MetricLedger, PlaintextReferenceBackend]:
    ledger, backend = _fresh()
    goal, proof = backend.encrypt_input(60, ALICE)
    ledger.configure_goal(ALICE, PLANK, goal, proof, Orientation.HIGHER_IS_BETTER)
    result, proof = backend.encrypt_input(75, ALICE)
    ledger.submit_result(ALICE, PLANK, result, proof)
    ledger.authorize(ALICE, PLANK, BOB)
    return ledger, backend


class TestStateStore:
    def test_missing_file_is_noop(self, tmp_path) -> None:
        store = StateStore(tmp_path / "state.json")
        ledger, backend = _fresh()
        store.load(ledger, backend)
        assert not store.exists
        assert ledger.count == 0

    def test_round_trip(self, tmp_path) -> None:
        store = StateStore(tmp_path / "nested" / "state.json")
        ledger, backend = _populated()
        store.save(ledger, backend)
        assert store.exists
        assert not (tmp_path / "nested" / "state.json.tmp").exists()

        restored, restored_backend = _fresh()
        store.load(restored, restored_backend)
        record = restored.get(ALICE, PLANK)
        assert record is not None
        assert record.submission_count == 1
        assert record.viewers == [BOB]

        relayer = ReferenceRelayer(restored_backend, restored.acl)
        assert relayer.user_decrypt(record.best.handle, BOB) == 75
        assert relayer.user_decrypt(record.last_hit.handle, ALICE) is True

    def test_intermediates_are_not_persisted(self, tmp_path) -> None:
        path = tmp_path / "state.json"
        ledger, backend = _populated()
        StateStore(path).save(ledger, backend)

        saved = json.loads(path.read_text(encoding="utf-8"))
        persisted = set(saved["backend"]["values"])
        assert persisted
        assert all(ledger.acl.has_entry(h) for h in persisted)
        assert len(persisted) < len(backend.to_dict()["values"])
        record = ledger.get(ALICE, PLANK)
        assert {c.handle for c in record.current_ciphertexts()} <= persisted

    def test_restored_backend_keeps_issuing_fresh_handles(self, tmp_path) -> None:
        store = StateStore(tmp_path / "state.json")
        ledger, backend = _populated()
        store.save(ledger, backend)

        restored, restored_backend = _fresh()
        store.load(restored, restored_backend)
        old_handles = {c.handle for c in restored.get(ALICE, PLANK).current_ciphertexts()}
        result, proof = restored_backend.encrypt_input(80, ALICE)
        receipt = restored.submit_result(ALICE, PLANK, result, proof)
        assert receipt.hit_handle not in old_handles
        assert receipt.gap_abs_handle not in old_handles

    def test_rejects_unknown_version(self, tmp_path) -> None:
        path = tmp_path / "state.json"
        ledger, backend = _populated()
        StateStore(path).save(ledger, backend)
        data = json.loads(path.read_text(encoding="utf-8"))
        data["version"] = STATE_VERSION + 1
        path.write_text(json.dumps(data), encoding="utf-8")

        with pytest.raises(ValueError, match="version"):
            StateStore(path).load(*_fresh())


def _load_verify_tool():
    spec = importlib.util.spec_from_file_location(
        "verify_audit_root", TOOLS / "verify_audit_root.py",
    )
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestVerifyAuditRoot:
    def _log(self, path: Path) -> EventLog:
        log = EventLog(storage_path=path)
        for i, kind in enumerate([EventKind.GOAL_SET, EventKind.RESULT_SUBMITTED], start=1):
            log.append(EventRecord.create(
                event_id=f"EVT-{i:08d}", event_kind=kind, actor_id=ALICE,
                payload={"metric_id": PLANK},
            ))
        return log

    def test_matching_root(self, tmp_path, capsys) -> None:
        path = tmp_path / "events.jsonl"
        log = self._log(path)
        tool = _load_verify_tool()
        assert tool.verify(path, audit_root(log)) == 0
        assert "OK: 2 events" in capsys.readouterr().out

    def test_bare_hex_root_accepted(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        root = audit_root(self._log(path))
        assert _load_verify_tool().verify(path, root.removeprefix("sha256:")) == 0

    def test_mismatched_root(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        self._log(path)
        assert _load_verify_tool().verify(path, "sha256:" + "0" * 64) == 1

    def test_missing_log(self, tmp_path) -> None:
        assert _load_verify_tool().verify(tmp_path / "absent.jsonl", "sha256:00") == 1
