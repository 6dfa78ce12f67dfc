"""Metric record data model.

A metric record is keyed by (owner principal, metric id). Plaintext
metadata (orientation, counters, timestamps) lives beside opaque
ciphertext handles for the goal and the derived result values.

Invariants enforced by the ledger:
- goal is set iff configured.
- last_result, best, last_gap_abs and last_hit are set iff
  submission_count > 0.
- viewers only grow and public never flips back to False.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from web3 import Web3

from progressvault.crypto.ciphertext import EncryptedBool, EncryptedUint32
from progressvault.errors import InvalidPrincipal


ZERO_ADDRESS = "0x" + "0" * 40
UINT32_MODULUS = 2 ** 32

_METRIC_ID_RE = re.compile(r"^0x[0-9a-f]{64}$")


class Orientation(str, enum.Enum):
    """Whether larger or smaller values count as better."""
    HIGHER_IS_BETTER = "higher_is_better"
    LOWER_IS_BETTER = "lower_is_better"


class RecordState(str, enum.Enum):
    """Lifecycle of a record. Transitions only move forward."""
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    CONFIGURED_WITH_SUBMISSIONS = "configured_with_submissions"


def normalize_principal(principal: str) -> str:
    """Return the checksum form of an account address.

    Raises InvalidPrincipal for malformed input and for the zero address.
    """
    if not isinstance(principal, str) or not Web3.is_address(principal):
        raise InvalidPrincipal(f"Not an account address: {principal!r}")
    checksummed = Web3.to_checksum_address(principal)
    if checksummed.lower() == ZERO_ADDRESS:
        raise InvalidPrincipal("The zero address cannot be granted access")
    return checksummed


def metric_id_from_label(label: str) -> str:
    """Derive a 32-byte metric tag from a human label (keccak256)."""
    if not label:
        raise ValueError("Metric label must not be empty")
    return "0x" + bytes(Web3.keccak(text=label)).hex()


def normalize_metric_id(metric_id: str) -> str:
    """Validate a metric tag: 0x followed by 64 hex characters."""
    value = metric_id.strip().lower() if isinstance(metric_id, str) else ""
    if not _METRIC_ID_RE.match(value):
        raise ValueError(f"Metric id must be a 32-byte hex tag, got {metric_id!r}")
    return value


@dataclass(frozen=True)
class SubmissionReceipt:
    """Handles a caller typically wants right after a submission."""
    hit_handle: str
    gap_abs_handle: str


@dataclass
class MetricRecord:
    """Per-(owner, metric) encrypted progress record."""
    owner: str
    metric_id: str
    configured: bool = False
    orientation: Orientation = Orientation.HIGHER_IS_BETTER
    submission_count: int = 0
    last_submission_time: int = 0
    goal: Optional[EncryptedUint32] = None
    last_result: Optional[EncryptedUint32] = None
    best: Optional[EncryptedUint32] = None
    last_gap_abs: Optional[EncryptedUint32] = None
    last_hit: Optional[EncryptedBool] = None
    viewers: list[str] = field(default_factory=list)
    public: bool = False

    @property
    def key(self) -> tuple[str, str]:
        return (self.owner, self.metric_id)

    @property
    def state(self) -> RecordState:
        if not self.configured:
            return RecordState.UNCONFIGURED
        if self.submission_count == 0 and self.last_result is None:
            return RecordState.CONFIGURED
        return RecordState.CONFIGURED_WITH_SUBMISSIONS

    def current_ciphertexts(self) -> list[EncryptedUint32 | EncryptedBool]:
        """Every encrypted field that currently holds a value."""
        fields = (self.goal, self.last_result, self.best, self.last_gap_abs, self.last_hit)
        return [c for c in fields if c is not None]

    def to_dict(self) -> dict[str, Any]:
        def _h(c: Optional[EncryptedUint32 | EncryptedBool]) -> Optional[str]:
            return c.handle if c is not None else None

        return {
            "owner": self.owner,
            "metric_id": self.metric_id,
            "configured": self.configured,
            "orientation": self.orientation.value,
            "submission_count": self.submission_count,
            "last_submission_time": self.last_submission_time,
            "goal": _h(self.goal),
            "last_result": _h(self.last_result),
            "best": _h(self.best),
            "last_gap_abs": _h(self.last_gap_abs),
            "last_hit": _h(self.last_hit),
            "viewers": list(self.viewers),
            "public": self.public,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> MetricRecord:
        def _u(h: Optional[str]) -> Optional[EncryptedUint32]:
            return EncryptedUint32(h) if h else None

        return MetricRecord(
            owner=data["owner"],
            metric_id=data["metric_id"],
            configured=data["configured"],
            orientation=Orientation(data["orientation"]),
            submission_count=data["submission_count"],
            last_submission_time=data["last_submission_time"],
            goal=_u(data.get("goal")),
            last_result=_u(data.get("last_result")),
            best=_u(data.get("best")),
            last_gap_abs=_u(data.get("last_gap_abs")),
            last_hit=EncryptedBool(data["last_hit"]) if data.get("last_hit") else None,
            viewers=list(data.get("viewers", [])),
            public=data.get("public", False),
        )
