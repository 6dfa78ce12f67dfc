"""Ledger engine: encrypted record state machine and read-only queries."""

from progressvault.engine.ledger import MetricLedger
from progressvault.engine.queries import HandleQueryService

__all__ = ["MetricLedger", "HandleQueryService"]
