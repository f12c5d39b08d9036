"""
Fixed-Height Sparse Merkle Tree

Binary tree of field elements with 2^(height-1) leaves. Empty leaves are zero
and internal nodes are H(left, right), so an untouched subtree of any level
has a known default hash and only written paths are stored.

Supports:
- Setting and reading leaves
- Generating authentication paths (witnesses)
- Recomputing the root from a witness and a candidate leaf
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..commitment import CommitmentHasher
from ..field import ZERO, FieldElement, to_field


@dataclass(frozen=True)
class MerkleWitness:
    """Authentication path from a leaf to the root, bottom-up."""
    siblings: Tuple[Tuple[FieldElement, bool], ...]  # (sibling_hash, is_right)

    @property
    def height(self) -> int:
        return len(self.siblings) + 1

    def calculate_root(self, leaf: FieldElement, hasher: CommitmentHasher) -> FieldElement:
        """Root implied by placing `leaf` at this witness's position."""
        current = to_field(leaf)
        for sibling, is_right in self.siblings:
            if is_right:
                current = hasher(current, sibling)
            else:
                current = hasher(sibling, current)
        return current

    def calculate_index(self) -> int:
        """Leaf index encoded by the left/right choices of the path."""
        index = 0
        for level, (_, is_right) in enumerate(self.siblings):
            if not is_right:
                index |= 1 << level
        return index

    def to_fields(self) -> List[FieldElement]:
        out: List[FieldElement] = []
        for sibling, is_right in self.siblings:
            out.append(sibling)
            out.append(FieldElement(int(is_right)))
        return out


class MerkleTree:
    """
    Sparse Merkle tree of fixed height.

    Properties:
    - Deterministic: same leaves give the same root
    - O(height) updates and witnesses
    - Memory proportional to the number of written leaves
    """

    def __init__(self, height: int, hasher: Optional[CommitmentHasher] = None):
        if height < 1:
            raise ValueError(f"Tree height must be at least 1, got {height}")
        self.height = height
        self.hasher = hasher or CommitmentHasher()
        self.leaf_count = 1 << (height - 1)

        # zeros[level] is the hash of an empty subtree rooted at `level`
        self._zeros: List[FieldElement] = [ZERO]
        for _ in range(height - 1):
            z = self._zeros[-1]
            self._zeros.append(self.hasher(z, z))

        self._nodes: Dict[Tuple[int, int], FieldElement] = {}

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= self.leaf_count:
            raise IndexError(f"Index {index} out of range [0, {self.leaf_count})")

    def get_node(self, level: int, index: int) -> FieldElement:
        return self._nodes.get((level, index), self._zeros[level])

    def get_leaf(self, index: int) -> FieldElement:
        self._check_index(index)
        return self.get_node(0, index)

    def set_leaf(self, index: int, value: FieldElement) -> None:
        """Write a leaf and rehash its path to the root."""
        self._check_index(index)
        current = to_field(value)
        self._nodes[(0, index)] = current
        for level in range(self.height - 1):
            if index % 2 == 0:
                current = self.hasher(current, self.get_node(level, index + 1))
            else:
                current = self.hasher(self.get_node(level, index - 1), current)
            index //= 2
            self._nodes[(level + 1, index)] = current

    @property
    def root(self) -> FieldElement:
        return self.get_node(self.height - 1, 0)

    def get_witness(self, index: int) -> MerkleWitness:
        """
        Generate authentication path for leaf at index.

        Args:
            index: Leaf index (0-based)

        Returns:
            MerkleWitness whose calculate_root(leaf) equals root
        """
        self._check_index(index)
        siblings = []
        for level in range(self.height - 1):
            if index % 2 == 0:
                siblings.append((self.get_node(level, index + 1), True))
            else:
                siblings.append((self.get_node(level, index - 1), False))
            index //= 2
        return MerkleWitness(tuple(siblings))
