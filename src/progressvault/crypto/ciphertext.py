"""Ciphertext abstraction: opaque encrypted values and the operator set.

The ledger only ever sees handles. Plaintext lives inside whatever
implements EncryptedBackend (a coprocessor in production, the plaintext
reference backend in tests). There is deliberately no decrypt method on
the backend interface; disclosure goes through a relayer that checks the
ACL first.

All operators are total over their inputs and always evaluate every
operand. select() is the only conditional primitive.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TypeVar, Union


_HANDLE_RE = re.compile(r"^0x[0-9a-f]{64}$")


def _check_handle(handle: str) -> None:
    if not isinstance(handle, str) or not _HANDLE_RE.match(handle):
        raise ValueError(f"Malformed ciphertext handle: {handle!r}")


@dataclass(frozen=True)
class EncryptedUint32:
    """Handle to an encrypted unsigned 32-bit integer."""
    handle: str

    def __post_init__(self) -> None:
        _check_handle(self.handle)


@dataclass(frozen=True)
class EncryptedBool:
    """Handle to an encrypted boolean."""
    handle: str

    def __post_init__(self) -> None:
        _check_handle(self.handle)


Ciphertext = Union[EncryptedUint32, EncryptedBool]
C = TypeVar("C", EncryptedUint32, EncryptedBool)


@dataclass(frozen=True)
class ExternalInput:
    """A client-encrypted value that has not been ingested yet.

    ``handle`` points at ciphertext material the backend already holds;
    the accompanying attestation proves it was produced for a given
    submitter and ledger.
    """
    handle: str

    def __post_init__(self) -> None:
        _check_handle(self.handle)


class EncryptedBackend(ABC):
    """Operator set of an encrypted-execution backend."""

    @abstractmethod
    def import_uint32(
        self,
        external: ExternalInput,
        attestation: bytes,
        submitter: str,
    ) -> EncryptedUint32:
        """Verify the attestation and ingest the input as a fresh ciphertext.

        Raises InvalidAttestation if verification fails.
        """

    @abstractmethod
    def ge(self, a: EncryptedUint32, b: EncryptedUint32) -> EncryptedBool: ...

    @abstractmethod
    def le(self, a: EncryptedUint32, b: EncryptedUint32) -> EncryptedBool: ...

    @abstractmethod
    def gt(self, a: EncryptedUint32, b: EncryptedUint32) -> EncryptedBool: ...

    @abstractmethod
    def lt(self, a: EncryptedUint32, b: EncryptedUint32) -> EncryptedBool: ...

    @abstractmethod
    def sub(self, a: EncryptedUint32, b: EncryptedUint32) -> EncryptedUint32:
        """a - b modulo 2**32. The result wraps when a < b."""

    @abstractmethod
    def select(self, cond: EncryptedBool, if_true: C, if_false: C) -> C:
        """Return a new ciphertext equal to one arm, without revealing which."""

    def export_handle(self, value: Ciphertext) -> str:
        """Stable external reference for a ciphertext."""
        return value.handle
