"""progressvault CLI, backed by the plaintext reference backend.

Usage:
    python -m progressvault.cli status
    python -m progressvault.cli configure-goal --owner 0xabc... --metric pushups --goal 20
    python -m progressvault.cli submit-result --owner 0xabc... --metric pushups --value 25
    python -m progressvault.cli grant --owner 0xabc... --metric pushups --principal 0xdef...
    python -m progressvault.cli make-public --owner 0xabc... --metric pushups
    python -m progressvault.cli show --owner 0xabc... --metric pushups
    python -m progressvault.cli decrypt --handle 0x... --requester 0xabc...
    python -m progressvault.cli anchor

``--metric`` takes either a 32-byte hex tag or a label, which is hashed
into a tag. The owner acts as the authenticated caller; there is no
wallet signing in the CLI.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path

from progressvault.config import LedgerSettings
from progressvault.crypto.anchor import anchor_to_chain
from progressvault.crypto.reference_backend import PlaintextReferenceBackend
from progressvault.crypto.relayer import ReferenceRelayer
from progressvault.errors import LedgerError
from progressvault.models.metric import (
    Orientation,
    metric_id_from_label,
    normalize_metric_id,
)
from progressvault.service import ProgressVaultService, ServiceResult


def _settings(args: argparse.Namespace) -> LedgerSettings:
    settings = LedgerSettings.from_env(args.env_file)
    if args.data_dir is not None:
        settings = dataclasses.replace(settings, data_dir=args.data_dir)
    return settings


def _make_service(args: argparse.Namespace) -> ProgressVaultService:
    return ProgressVaultService.from_settings(_settings(args))


def _reference_backend(service: ProgressVaultService) -> PlaintextReferenceBackend:
    backend = service.backend
    if not isinstance(backend, PlaintextReferenceBackend):
        raise TypeError("The CLI needs the plaintext reference backend to encrypt and decrypt")
    return backend


def _metric_id(value: str) -> str:
    try:
        return normalize_metric_id(value)
    except ValueError:
        return metric_id_from_label(value)


def _report(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2))
        return 0
    print(f"Failed ({result.code}): {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_metric_id(args: argparse.Namespace) -> int:
    print(metric_id_from_label(args.label))
    return 0


def cmd_configure_goal(args: argparse.Namespace) -> int:
    service = _make_service(args)
    external, proof = _reference_backend(service).encrypt_input(args.goal, args.owner)
    result = service.configure_goal(
        args.owner, _metric_id(args.metric), external, proof, Orientation(args.orientation),
    )
    return _report(result)


def cmd_submit_result(args: argparse.Namespace) -> int:
    service = _make_service(args)
    external, proof = _reference_backend(service).encrypt_input(args.value, args.owner)
    result = service.submit_result(args.owner, _metric_id(args.metric), external, proof)
    return _report(result)


def cmd_grant(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.authorize(args.owner, _metric_id(args.metric), args.principal))


def cmd_make_public(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.make_public(args.owner, _metric_id(args.metric)))


def cmd_show(args: argparse.Namespace) -> int:
    service = _make_service(args)
    owner, mid = args.owner, _metric_id(args.metric)
    out: dict[str, object] = {
        "metric_id": mid,
        "state": service.record_state(owner, mid).value,
        "orientation": service.orientation(owner, mid).value,
        "submission_count": service.submission_count(owner, mid),
        "last_submission_time": service.last_submission_time(owner, mid),
    }
    getters = {
        "goal": service.goal_handle,
        "last_result": service.last_result_handle,
        "best": service.best_handle,
        "last_gap_abs": service.last_gap_abs_handle,
        "last_hit": service.last_hit_handle,
    }
    unavailable: dict[str, str] = {}
    for name, getter in getters.items():
        try:
            out[name] = getter(owner, mid)
        except LedgerError as e:
            out[name] = None
            unavailable[name] = e.code
    if unavailable:
        out["unavailable"] = unavailable
    print(json.dumps(out, indent=2))
    return 0


def cmd_decrypt(args: argparse.Namespace) -> int:
    service = _make_service(args)
    relayer = ReferenceRelayer(_reference_backend(service), service.acl)
    try:
        if args.requester:
            value = relayer.user_decrypt(args.handle, args.requester)
        else:
            value = relayer.public_decrypt(args.handle)
    except LedgerError as e:
        print(f"Failed ({e.code}): {e}", file=sys.stderr)
        return 1
    print(json.dumps({"handle": args.handle, "value": value}))
    return 0


def cmd_audit_root(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(service.audit_root())
    return 0


def cmd_anchor(args: argparse.Namespace) -> int:
    settings = _settings(args)
    if not settings.can_anchor:
        print("Failed: SEPOLIA_RPC_URL and PRIVATE_KEY must be set", file=sys.stderr)
        return 1
    service = ProgressVaultService.from_settings(settings)
    record = anchor_to_chain(
        root=service.audit_root(),
        event_count=service.event_log.count,
        rpc_url=settings.rpc_url,
        private_key=settings.anchor_private_key,
        chain_id=settings.chain_id,
    )
    print(json.dumps(dataclasses.asdict(record), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="progressvault",
        description="Private encrypted progress ledger (reference backend)",
    )
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="State directory (default: $PROGRESSVAULT_DATA_DIR or data/)")
    parser.add_argument("--env-file", type=Path, default=None, help="Path to a .env file")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show ledger status")

    p_mid = sub.add_parser("metric-id", help="Derive a metric tag from a label")
    p_mid.add_argument("--label", required=True)

    p_goal = sub.add_parser("configure-goal", help="Set or replace an encrypted goal")
    p_goal.add_argument("--owner", required=True, help="Owner address (caller)")
    p_goal.add_argument("--metric", required=True, help="Metric tag or label")
    p_goal.add_argument("--goal", required=True, type=int, help="Goal value (uint32)")
    p_goal.add_argument(
        "--orientation", default=Orientation.HIGHER_IS_BETTER.value,
        choices=[o.value for o in Orientation],
    )

    p_sub = sub.add_parser("submit-result", help="Submit an encrypted result")
    p_sub.add_argument("--owner", required=True)
    p_sub.add_argument("--metric", required=True)
    p_sub.add_argument("--value", required=True, type=int, help="Result value (uint32)")

    p_grant = sub.add_parser("grant", help="Grant a principal access to a metric")
    p_grant.add_argument("--owner", required=True)
    p_grant.add_argument("--metric", required=True)
    p_grant.add_argument("--principal", required=True)

    p_pub = sub.add_parser("make-public", help="Make a metric publicly decryptable")
    p_pub.add_argument("--owner", required=True)
    p_pub.add_argument("--metric", required=True)

    p_show = sub.add_parser("show", help="Show metadata and handles of a metric")
    p_show.add_argument("--owner", required=True)
    p_show.add_argument("--metric", required=True)

    p_dec = sub.add_parser("decrypt", help="Decrypt a handle through the reference relayer")
    p_dec.add_argument("--handle", required=True)
    p_dec.add_argument("--requester", help="Requester address (omit for public decryption)")

    sub.add_parser("audit-root", help="Print the Merkle root of the event log")
    sub.add_parser("anchor", help="Anchor the audit root on-chain")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "status": cmd_status,
        "metric-id": cmd_metric_id,
        "configure-goal": cmd_configure_goal,
        "submit-result": cmd_submit_result,
        "grant": cmd_grant,
        "make-public": cmd_make_public,
        "show": cmd_show,
        "decrypt": cmd_decrypt,
        "audit-root": cmd_audit_root,
        "anchor": cmd_anchor,
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
