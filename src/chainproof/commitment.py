"""
Commitment Hash H

H(x_1, ..., x_n) -> FieldElement

A deterministic, domain-separated, collision-resistant commitment over field
elements. The encoding is length-prefixed, so H(a, b) and H(a ‖ b) cannot be
confused, and H(x) never equals H(x, 0).

Two cores are available:
- SHAKE256 (hashlib) - default
- BLAKE3 (blake3 library)

The core output is 64 bytes, reduced mod p into the commitment field.
"""

from __future__ import annotations
from enum import Enum
from typing import Iterable, Protocol, Sequence
import hashlib

import blake3

from .codec import pack_bytes
from .field import FieldElement, to_fields
from .tags import CommitTag, tag_bytes


CORE_OUTPUT_BYTES = 64


class HashCore(Enum):
    """Underlying XOF used by the commitment hash."""
    SHAKE256 = 'shake256'
    BLAKE3 = 'blake3'


class Packable(Protocol):
    """Anything that flattens to a fixed-length list of field elements."""

    def to_fields(self) -> Sequence[FieldElement]:
        ...


def _xof(core: HashCore, data: bytes, length: int) -> bytes:
    if core is HashCore.BLAKE3:
        return blake3.blake3(data).digest(length=length)
    return hashlib.shake_256(data).digest(length)


def encode_fields(tag: CommitTag, elements: Sequence[FieldElement]) -> bytes:
    """Canonical tape: TAG(2) ‖ count(8) ‖ x_1(32) ‖ ... ‖ x_n(32)."""
    parts = [tag_bytes(tag), len(elements).to_bytes(8, 'big')]
    parts.extend(e.to_bytes() for e in elements)
    return b''.join(parts)


class CommitmentHasher:
    """
    Commitment hash bound to one core.

    Instances are immutable and cheap; protocol programs keep one taken from
    their ProofParams.
    """

    __slots__ = ('core',)

    def __init__(self, core: HashCore = HashCore.SHAKE256):
        self.core = HashCore(core)

    def __call__(self, *elements) -> FieldElement:
        """H(x_1, ..., x_n). Accepts FieldElements and ints."""
        fields = to_fields(elements)
        return FieldElement.from_hash(
            _xof(self.core, encode_fields(CommitTag.FIELDS, fields), CORE_OUTPUT_BYTES)
        )

    def packed(self, obj: Packable) -> FieldElement:
        """H over the flattened fields of a structured value."""
        return self(*obj.to_fields())

    def many(self, elements: Iterable) -> FieldElement:
        return self(*elements)

    def tagged(self, tag: CommitTag, payload: bytes) -> FieldElement:
        """Domain-separated commitment to raw bytes (used for key digests)."""
        data = tag_bytes(tag) + len(payload).to_bytes(8, 'big') + payload
        return FieldElement.from_hash(_xof(self.core, data, CORE_OUTPUT_BYTES))

    def bytes_with(self, data: bytes, *extra) -> FieldElement:
        """H(pack(data) ‖ extra): commitment to a byte string plus trailing fields."""
        return self(len(data), *pack_bytes(data), *extra)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, CommitmentHasher) and other.core is self.core

    def __hash__(self) -> int:
        return hash(self.core)

    def __repr__(self) -> str:
        return f"CommitmentHasher({self.core.value})"


# Default instance
_default_hasher = CommitmentHasher()


def commit(*elements) -> FieldElement:
    """H(x_1, ..., x_n) with the default SHAKE256 core."""
    return _default_hasher(*elements)


def commit_packed(obj: Packable) -> FieldElement:
    """H over obj.to_fields() with the default core."""
    return _default_hasher.packed(obj)


def digest_commitment(
    digest: bytes,
    salt: FieldElement,
    hasher: CommitmentHasher = _default_hasher,
) -> FieldElement:
    """
    Salted commitment to a finished digest: H(pack(digest), salt).

    This is the only value a finished StepChain exposes publicly.
    """
    return hasher.bytes_with(digest, salt)
