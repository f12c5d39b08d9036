"""
Domain Tags for Commitments

All tags are domain-separated to prevent cross-protocol collisions.
These tags are PINNED - changing them changes every commitment.
"""

from enum import IntEnum


class CommitTag(IntEnum):
    """Domain separation tags for chainproof commitments."""

    # Generic commitment hash H(x_1, ..., x_n)
    FIELDS = 0x01

    # Proving backend
    PROGRAM = 0x10      # Verification-key digest of a compiled program
    SEAL = 0x11         # Proof seal (keyed)

    # Configuration
    PARAMS = 0x20


def tag_bytes(tag: CommitTag) -> bytes:
    """Convert tag to canonical bytes (2 bytes, big-endian)."""
    return tag.to_bytes(2, 'big')
