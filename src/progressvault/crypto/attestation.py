"""Input attestation: proofs that accompany externally encrypted inputs.

An attestation is an EIP-191 signature by the input verifier over
keccak256(handle, submitter, ledger). Binding the submitter and the
ledger address means a proof cannot be replayed by another principal or
against another ledger deployment.
"""

from __future__ import annotations

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from web3 import Web3

from progressvault.crypto.ciphertext import ExternalInput
from progressvault.errors import InvalidAttestation


def attestation_digest(handle: str, submitter: str, ledger_address: str) -> bytes:
    """keccak256 over the packed (bytes32 handle, submitter, ledger)."""
    return bytes(Web3.solidity_keccak(
        ["bytes32", "address", "address"],
        [handle, Web3.to_checksum_address(submitter), Web3.to_checksum_address(ledger_address)],
    ))


class AttestationSigner:
    """Signs input attestations. Held by the input verifier, never by the ledger."""

    def __init__(self, private_key: str) -> None:
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    def sign(self, external: ExternalInput, submitter: str, ledger_address: str) -> bytes:
        message = encode_defunct(
            primitive=attestation_digest(external.handle, submitter, ledger_address),
        )
        return bytes(self._account.sign_message(message).signature)


class InputVerifier:
    """Checks attestations against a trusted verifier address."""

    def __init__(self, verifier_address: str, ledger_address: str) -> None:
        self._verifier = Web3.to_checksum_address(verifier_address)
        self._ledger = Web3.to_checksum_address(ledger_address)

    @property
    def ledger_address(self) -> str:
        return self._ledger

    def verify(self, external: ExternalInput, attestation: bytes, submitter: str) -> None:
        """Raise InvalidAttestation unless the verifier signed this exact input."""
        if not attestation:
            raise InvalidAttestation("Missing attestation")
        if not Web3.is_address(submitter):
            raise InvalidAttestation(f"Attestation submitter is not an address: {submitter!r}")
        message = encode_defunct(
            primitive=attestation_digest(external.handle, submitter, self._ledger),
        )
        try:
            signer = Account.recover_message(message, signature=attestation)
        except (ValueError, TypeError, BadSignature, KeyValidationError) as e:
            raise InvalidAttestation(f"Unreadable attestation: {e}") from e
        if signer != self._verifier:
            raise InvalidAttestation(
                f"Attestation for {external.handle} not signed by the input verifier"
            )
