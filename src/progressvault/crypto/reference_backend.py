"""Plaintext reference implementation of EncryptedBackend.

Values are kept in the clear inside this object, keyed by handle. It
exists so the ledger can be exercised end to end in tests and in the CLI
demo without a coprocessor. The ledger never calls reveal(); only the
relayer does, after an ACL check.

Handles are keccak256(op, operand handles, nonce), so every operation
yields a fresh handle and old handles keep resolving to their values.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Union

from web3 import Web3

from progressvault.crypto.attestation import AttestationSigner, InputVerifier
from progressvault.crypto.ciphertext import (
    C,
    EncryptedBackend,
    EncryptedBool,
    EncryptedUint32,
    ExternalInput,
)
from progressvault.errors import InvalidAttestation


UINT32_MAX = 2 ** 32 - 1

Plain = Union[int, bool]


class PlaintextReferenceBackend(EncryptedBackend):
    """In-memory backend that plays coprocessor and input verifier.

    Usage:
        backend = PlaintextReferenceBackend(verifier_key, ledger_address)
        external, proof = backend.encrypt_input(20, alice)
        goal = backend.import_uint32(external, proof, alice)
    """

    def __init__(self, verifier_key: str, ledger_address: str) -> None:
        self._signer = AttestationSigner(verifier_key)
        self._verifier = InputVerifier(self._signer.address, ledger_address)
        self._values: dict[str, Plain] = {}
        self._inputs: dict[str, int] = {}
        self._nonce = 0

    @property
    def verifier_address(self) -> str:
        return self._signer.address

    @property
    def ledger_address(self) -> str:
        return self._verifier.ledger_address

    # ------------------------------------------------------------------
    # Client side
    # ------------------------------------------------------------------

    def encrypt_input(self, value: int, submitter: str) -> tuple[ExternalInput, bytes]:
        """Encrypt a uint32 for ``submitter`` and return it with its attestation."""
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Expected an int, got {type(value).__name__}")
        if not 0 <= value <= UINT32_MAX:
            raise ValueError(f"Value out of uint32 range: {value}")
        external = ExternalInput(self._derive_handle("input", Web3.to_checksum_address(submitter)))
        self._inputs[external.handle] = value
        proof = self._signer.sign(external, submitter, self.ledger_address)
        return external, proof

    # ------------------------------------------------------------------
    # Operator set
    # ------------------------------------------------------------------

    def import_uint32(
        self,
        external: ExternalInput,
        attestation: bytes,
        submitter: str,
    ) -> EncryptedUint32:
        self._verifier.verify(external, attestation, submitter)
        if external.handle not in self._inputs:
            raise InvalidAttestation(f"Unknown input ciphertext: {external.handle}")
        return EncryptedUint32(self._store("import", self._inputs[external.handle], external.handle))

    def ge(self, a: EncryptedUint32, b: EncryptedUint32) -> EncryptedBool:
        x, y = self._u32(a), self._u32(b)
        return EncryptedBool(self._store("ge", x >= y, a.handle, b.handle))

    def le(self, a: EncryptedUint32, b: EncryptedUint32) -> EncryptedBool:
        x, y = self._u32(a), self._u32(b)
        return EncryptedBool(self._store("le", x <= y, a.handle, b.handle))

    def gt(self, a: EncryptedUint32, b: EncryptedUint32) -> EncryptedBool:
        x, y = self._u32(a), self._u32(b)
        return EncryptedBool(self._store("gt", x > y, a.handle, b.handle))

    def lt(self, a: EncryptedUint32, b: EncryptedUint32) -> EncryptedBool:
        x, y = self._u32(a), self._u32(b)
        return EncryptedBool(self._store("lt", x < y, a.handle, b.handle))

    def sub(self, a: EncryptedUint32, b: EncryptedUint32) -> EncryptedUint32:
        x, y = self._u32(a), self._u32(b)
        return EncryptedUint32(self._store("sub", (x - y) & UINT32_MAX, a.handle, b.handle))

    def select(self, cond: EncryptedBool, if_true: C, if_false: C) -> C:
        if type(if_true) is not type(if_false):
            raise TypeError(
                f"select arms differ: {type(if_true).__name__} vs {type(if_false).__name__}"
            )
        flag = self._bool(cond)
        # Both arms are resolved before choosing.
        t = self._lookup(if_true)
        f = self._lookup(if_false)
        chosen = t if flag else f
        handle = self._store("select", chosen, cond.handle, if_true.handle, if_false.handle)
        return type(if_true)(handle)

    # ------------------------------------------------------------------
    # Disclosure channel (relayer only)
    # ------------------------------------------------------------------

    def reveal(self, handle: str) -> Plain:
        """Plaintext behind a handle. Callers must check the ACL first."""
        if handle not in self._values:
            raise KeyError(f"Unknown ciphertext handle: {handle}")
        return self._values[handle]

    def knows(self, handle: str) -> bool:
        return handle in self._values

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self, retain: Optional[Callable[[str], bool]] = None) -> dict[str, Any]:
        """Serializable state. ``retain`` filters which ciphertext values are kept."""
        values = self._values if retain is None else {
            h: v for h, v in self._values.items() if retain(h)
        }
        return {
            "nonce": self._nonce,
            "values": dict(values),
            "inputs": dict(self._inputs),
        }

    def load_dict(self, data: dict[str, Any]) -> None:
        self._nonce = data.get("nonce", 0)
        self._values = dict(data.get("values", {}))
        self._inputs = dict(data.get("inputs", {}))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _derive_handle(self, op: str, *operands: str) -> str:
        self._nonce += 1
        digest = Web3.solidity_keccak(
            ["string", "string", "uint256"],
            [op, ",".join(operands), self._nonce],
        )
        return "0x" + bytes(digest).hex()

    def _store(self, op: str, value: Plain, *operands: str) -> str:
        handle = self._derive_handle(op, *operands)
        self._values[handle] = value
        return handle

    def _lookup(self, value: EncryptedUint32 | EncryptedBool) -> Plain:
        if value.handle not in self._values:
            raise ValueError(f"Unknown ciphertext handle: {value.handle}")
        return self._values[value.handle]

    def _u32(self, value: EncryptedUint32) -> int:
        if not isinstance(value, EncryptedUint32):
            raise TypeError(f"Expected EncryptedUint32, got {type(value).__name__}")
        return int(self._lookup(value))

    def _bool(self, value: EncryptedBool) -> bool:
        if not isinstance(value, EncryptedBool):
            raise TypeError(f"Expected EncryptedBool, got {type(value).__name__}")
        return bool(self._lookup(value))
