"""Cryptographic primitives: ciphertext handles, backend interface, Merkle roots."""

from progressvault.crypto.ciphertext import (
    EncryptedBackend,
    EncryptedBool,
    EncryptedUint32,
    ExternalInput,
)
from progressvault.crypto.merkle import MerkleTree

__all__ = [
    "EncryptedBackend",
    "EncryptedBool",
    "EncryptedUint32",
    "ExternalInput",
    "MerkleTree",
]
