"""Tests for the handle/query service."""

import pytest
from datetime import datetime, timezone

from eth_account import Account

from progressvault.access.acl import AccessControlList
from progressvault.config import DEV_LEDGER_ADDRESS, DEV_VERIFIER_KEY
from progressvault.crypto.reference_backend import PlaintextReferenceBackend
from progressvault.engine import HandleQueryService, MetricLedger
from progressvault.errors import NoSubmissions, NotConfigured
from progressvault.models.metric import (
    Orientation,
    RecordState,
    ZERO_ADDRESS,
    metric_id_from_label,
)


ALICE = Account.from_key("0x" + "11" * 32).address
BOB = Account.from_key("0x" + "22" * 32).address
PLANK = metric_id_from_label("plank-seconds")
NOW = datetime(2026, 5, 4, 18, 0, 0, tzinfo=timezone.utc)

HANDLE_GETTERS = [
    "last_result_handle",
    "best_handle",
    "last_gap_abs_handle",
    "last_hit_handle",
]


@pytest.fixture
def backend() -> PlaintextReferenceBackend:
    return PlaintextReferenceBackend(DEV_VERIFIER_KEY, DEV_LEDGER_ADDRESS)


@pytest.fixture
def ledger(backend) -> MetricLedger:
    return MetricLedger(backend, AccessControlList(DEV_LEDGER_ADDRESS), clock=lambda: NOW)


@pytest.fixture
def queries(ledger) -> HandleQueryService:
    return HandleQueryService(ledger)


def _configure(ledger, backend, goal=90, orientation=Orientation.HIGHER_IS_BETTER) -> None:
    external, proof = backend.encrypt_input(goal, ALICE)
    ledger.configure_goal(ALICE, PLANK, external, proof, orientation)


def _submit(ledger, backend, value):
    external, proof = backend.encrypt_input(value, ALICE)
    return ledger.submit_result(ALICE, PLANK, external, proof)


class TestBeforeConfiguration:
    def test_goal_not_configured(self, queries) -> None:
        with pytest.raises(NotConfigured):
            queries.goal_handle(ALICE, PLANK)

    @pytest.mark.parametrize("getter", HANDLE_GETTERS)
    def test_result_getters_not_configured(self, queries, getter) -> None:
        with pytest.raises(NotConfigured):
            getattr(queries, getter)(ALICE, PLANK)

    def test_metadata_defaults(self, queries) -> None:
        assert queries.is_configured(ALICE, PLANK) is False
        assert queries.orientation(ALICE, PLANK) == Orientation.HIGHER_IS_BETTER
        assert queries.submission_count(ALICE, PLANK) == 0
        assert queries.last_submission_time(ALICE, PLANK) == 0
        assert queries.state(ALICE, PLANK) == RecordState.UNCONFIGURED

    def test_metadata_total_on_bad_keys(self, queries) -> None:
        assert queries.submission_count(ZERO_ADDRESS, PLANK) == 0
        assert queries.is_configured(ALICE, "not-a-tag") is False
        with pytest.raises(NotConfigured):
            queries.goal_handle("nobody", PLANK)


class TestAfterConfiguration:
    @pytest.mark.parametrize("getter", HANDLE_GETTERS)
    def test_result_getters_no_submissions(self, ledger, backend, queries, getter) -> None:
        _configure(ledger, backend)
        with pytest.raises(NoSubmissions):
            getattr(queries, getter)(ALICE, PLANK)

    def test_goal_available(self, ledger, backend, queries) -> None:
        _configure(ledger, backend)
        assert queries.goal_handle(ALICE, PLANK) == ledger.get(ALICE, PLANK).goal.handle
        assert queries.is_configured(ALICE, PLANK)
        assert queries.state(ALICE, PLANK) == RecordState.CONFIGURED

    def test_lower_orientation_reported(self, ledger, backend, queries) -> None:
        _configure(ledger, backend, orientation=Orientation.LOWER_IS_BETTER)
        assert queries.orientation(ALICE, PLANK) == Orientation.LOWER_IS_BETTER

    def test_handles_after_submission(self, ledger, backend, queries) -> None:
        _configure(ledger, backend)
        receipt = _submit(ledger, backend, 75)
        assert queries.last_hit_handle(ALICE, PLANK) == receipt.hit_handle
        assert queries.last_gap_abs_handle(ALICE, PLANK) == receipt.gap_abs_handle
        assert queries.best_handle(ALICE, PLANK) == queries.last_result_handle(ALICE, PLANK)
        assert queries.submission_count(ALICE, PLANK) == 1
        assert queries.last_submission_time(ALICE, PLANK) == int(NOW.timestamp())

    def test_configure_does_not_touch_counter(self, ledger, backend, queries) -> None:
        _configure(ledger, backend)
        _submit(ledger, backend, 75)
        _configure(ledger, backend, goal=120)
        assert queries.submission_count(ALICE, PLANK) == 1


class TestIsAuthorized:
    def test_no_record(self, queries) -> None:
        assert not queries.is_authorized(ALICE, PLANK, BOB)

    def test_owner_and_grantee(self, ledger, backend, queries) -> None:
        _configure(ledger, backend)
        _submit(ledger, backend, 75)
        assert queries.is_authorized(ALICE, PLANK, ALICE)
        assert not queries.is_authorized(ALICE, PLANK, BOB)
        ledger.authorize(ALICE, PLANK, BOB)
        assert queries.is_authorized(ALICE, PLANK, BOB)
        _submit(ledger, backend, 95)
        assert queries.is_authorized(ALICE, PLANK, BOB)
