"""Merkle root over event-log hashes.

Leaves are kept in append order, so the root commits to the order in
which ledger events happened as well as their content. Odd nodes are
paired with themselves. Node values are bare SHA-256 hex; the root is
returned with a ``sha256:`` prefix to match event hashes.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass


@dataclass(frozen=True)
class MerkleProof:
    """Inclusion proof for the leaf at ``index``."""
    leaf_hash: str
    index: int
    path: list[tuple[str, str]]  # (sibling, "L" | "R")
    root: str


class MerkleTree:
    """Append-ordered Merkle tree.

    Usage:
        tree = MerkleTree(event_log.event_hashes())
        root = tree.root
        proof = tree.inclusion_proof(3)
        assert verify_proof(proof)
    """

    def __init__(self, leaves: list[str] | None = None) -> None:
        self._leaves: list[str] = [_strip(h) for h in (leaves or [])]
        self._levels: list[list[str]] | None = None

    def add_leaf(self, leaf_hash: str) -> None:
        self._leaves.append(_strip(leaf_hash))
        self._levels = None

    @property
    def leaf_count(self) -> int:
        return len(self._leaves)

    @property
    def root(self) -> str:
        levels = self._build()
        return f"sha256:{levels[-1][0]}"

    def inclusion_proof(self, index: int) -> MerkleProof:
        if not 0 <= index < len(self._leaves):
            raise IndexError(f"No leaf at index {index}")
        levels = self._build()
        path: list[tuple[str, str]] = []
        i = index
        for level in levels[:-1]:
            if i % 2 == 0:
                sibling = level[i + 1] if i + 1 < len(level) else level[i]
                path.append((sibling, "R"))
            else:
                path.append((level[i - 1], "L"))
            i //= 2
        return MerkleProof(
            leaf_hash=f"sha256:{self._leaves[index]}",
            index=index,
            path=path,
            root=f"sha256:{levels[-1][0]}",
        )

    def _build(self) -> list[list[str]]:
        if self._levels is not None:
            return self._levels
        if not self._leaves:
            self._levels = [[hashlib.sha256(b"").hexdigest()]]
            return self._levels
        levels = [list(self._leaves)]
        current = levels[0]
        while len(current) > 1:
            nxt = []
            for i in range(0, len(current), 2):
                left = current[i]
                right = current[i + 1] if i + 1 < len(current) else left
                nxt.append(_hash_pair(left, right))
            levels.append(nxt)
            current = nxt
        self._levels = levels
        return levels


def verify_proof(proof: MerkleProof) -> bool:
    node = _strip(proof.leaf_hash)
    for sibling, side in proof.path:
        node = _hash_pair(sibling, node) if side == "L" else _hash_pair(node, sibling)
    return f"sha256:{node}" == proof.root


def _strip(h: str) -> str:
    return h.removeprefix("sha256:")


def _hash_pair(left: str, right: str) -> str:
    return hashlib.sha256(f"{left}{right}".encode("utf-8")).hexdigest()
