"""Tests for the progressvault CLI."""

import json
import pytest

from eth_account import Account

from progressvault.cli import _reference_backend, build_parser, main
from progressvault.config import DEV_LEDGER_ADDRESS
from progressvault.models.metric import metric_id_from_label
from progressvault.service import ProgressVaultService


ALICE = Account.from_key("0x" + "11" * 32).address
BOB = Account.from_key("0x" + "22" * 32).address
CAROL = Account.from_key("0x" + "33" * 32).address


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> None:
    for name in (
        "PROGRESSVAULT_LEDGER_ADDRESS",
        "PROGRESSVAULT_VERIFIER_KEY",
        "PROGRESSVAULT_DATA_DIR",
        "PROGRESSVAULT_CHAIN_ID",
        "SEPOLIA_RPC_URL",
        "PRIVATE_KEY",
        "SEPOLIA_PRIVATE_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


def _run(tmp_path, capsys, *argv: str) -> tuple[int, str]:
    capsys.readouterr()
    code = main(["--data-dir", str(tmp_path), *argv])
    return code, capsys.readouterr().out


class TestCLIParsing:
    def test_configure_goal_command(self) -> None:
        args = build_parser().parse_args([
            "configure-goal", "--owner", ALICE, "--metric", "pushups",
            "--goal", "20", "--orientation", "lower_is_better",
        ])
        assert args.command == "configure-goal"
        assert args.goal == 20
        assert args.orientation == "lower_is_better"

    def test_orientation_default(self) -> None:
        args = build_parser().parse_args([
            "configure-goal", "--owner", ALICE, "--metric", "pushups", "--goal", "20",
        ])
        assert args.orientation == "higher_is_better"

    def test_rejects_unknown_orientation(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([
                "configure-goal", "--owner", ALICE, "--metric", "m",
                "--goal", "1", "--orientation", "sideways",
            ])


class TestCLIExecution:
    def test_no_command_shows_help(self) -> None:
        assert main([]) == 0

    def test_status(self, tmp_path, capsys) -> None:
        code, out = _run(tmp_path, capsys, "status")
        assert code == 0
        assert json.loads(out)["records"] == 0

    def test_metric_id(self, tmp_path, capsys) -> None:
        code, out = _run(tmp_path, capsys, "metric-id", "--label", "pushups")
        assert code == 0
        assert out.strip() == metric_id_from_label("pushups")

    def test_full_flow(self, tmp_path, capsys) -> None:
        code, _ = _run(tmp_path, capsys, "configure-goal", "--owner", ALICE,
                       "--metric", "pushups", "--goal", "20")
        assert code == 0

        code, out = _run(tmp_path, capsys, "submit-result", "--owner", ALICE,
                         "--metric", "pushups", "--value", "15")
        assert code == 0
        handles = json.loads(out)

        code, out = _run(tmp_path, capsys, "decrypt", "--handle", handles["gap_abs_handle"],
                         "--requester", ALICE)
        assert code == 0
        assert json.loads(out)["value"] == 5

        code, _ = _run(tmp_path, capsys, "decrypt", "--handle", handles["hit_handle"],
                       "--requester", BOB)
        assert code == 1

        code, _ = _run(tmp_path, capsys, "grant", "--owner", ALICE,
                       "--metric", "pushups", "--principal", BOB)
        assert code == 0
        code, out = _run(tmp_path, capsys, "decrypt", "--handle", handles["hit_handle"],
                         "--requester", BOB)
        assert code == 0
        assert json.loads(out)["value"] is False

        code, _ = _run(tmp_path, capsys, "make-public", "--owner", ALICE, "--metric", "pushups")
        assert code == 0
        code, out = _run(tmp_path, capsys, "decrypt", "--handle", handles["gap_abs_handle"])
        assert code == 0
        assert json.loads(out)["value"] == 5

        code, out = _run(tmp_path, capsys, "show", "--owner", ALICE, "--metric", "pushups")
        shown = json.loads(out)
        assert shown["submission_count"] == 1
        assert shown["state"] == "configured_with_submissions"
        assert shown["last_hit"] == handles["hit_handle"]

        code, out = _run(tmp_path, capsys, "status")
        assert json.loads(out)["events"] == 4

    def test_show_unconfigured(self, tmp_path, capsys) -> None:
        code, out = _run(tmp_path, capsys, "show", "--owner", CAROL, "--metric", "plank")
        assert code == 0
        shown = json.loads(out)
        assert shown["goal"] is None
        assert shown["unavailable"]["goal"] == "not_configured"
        assert shown["unavailable"]["best"] == "not_configured"

    def test_submit_without_goal_fails(self, tmp_path, capsys) -> None:
        code, _ = _run(tmp_path, capsys, "submit-result", "--owner", ALICE,
                       "--metric", "pushups", "--value", "3")
        assert code == 1

    def test_out_of_range_value_fails(self, tmp_path, capsys) -> None:
        code, _ = _run(tmp_path, capsys, "configure-goal", "--owner", ALICE,
                       "--metric", "pushups", "--goal", str(2 ** 32))
        assert code == 1

    def test_anchor_requires_credentials(self, tmp_path, capsys) -> None:
        code, _ = _run(tmp_path, capsys, "anchor")
        assert code == 1

    def test_audit_root(self, tmp_path, capsys) -> None:
        code, out = _run(tmp_path, capsys, "audit-root")
        assert code == 0
        assert out.strip().startswith("sha256:")

    def test_rejects_non_reference_backend(self) -> None:
        service = ProgressVaultService(object(), DEV_LEDGER_ADDRESS)
        with pytest.raises(TypeError, match="reference backend"):
            _reference_backend(service)
