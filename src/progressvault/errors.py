"""Error taxonomy for the metric ledger.

Every error aborts the operation that raised it. Nothing is retried or
recovered inside the core; the service layer rolls back and reports the
failure as a ServiceResult.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all ledger errors."""
    code = "ledger_error"


class NotConfigured(LedgerError):
    """No goal has ever been configured for this (owner, metric) record."""
    code = "not_configured"


class NoSubmissions(LedgerError):
    """The record has no submitted results yet."""
    code = "no_submissions"


class InvalidAttestation(LedgerError):
    """The backend rejected the proof attached to an external input."""
    code = "invalid_attestation"


class InvalidPrincipal(LedgerError, ValueError):
    """A grant target is the zero address or not an address at all."""
    code = "invalid_principal"


class AccessDenied(LedgerError):
    """A requester asked the relayer for a handle it may not decrypt."""
    code = "access_denied"
