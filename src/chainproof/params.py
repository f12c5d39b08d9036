"""
Public Parameters

ProofParams fixes every compile-time constant the protocol programs depend on.
The parameters are bound into each program's verification-key digest, so two
programs built from different parameters never share a key.

All validation happens at construction: a mismatch fails fast, before any
program is compiled or any proof attempted.
"""

from __future__ import annotations
from dataclasses import dataclass
import hashlib
import math

from .commitment import CommitmentHasher, HashCore
from .errors import ConfigurationError
from .sha2 import VARIANTS, Sha2Variant, get_variant
from .tags import CommitTag, tag_bytes


@dataclass(frozen=True)
class ProofParams:
    """
    Compile-time constants for the chainproof programs.

    All parameters are immutable and hashable.
    """

    # ==========================================================================
    # StepChain
    # ==========================================================================

    digest_algorithm: str = 'sha2_256'
    """SHA-2 variant folded by the StepChain."""

    blocks_per_step: int = 1
    """Message blocks absorbed by one step (block group size)."""

    # ==========================================================================
    # Split State Machine
    # ==========================================================================

    exponent_bits: int = 20
    """Fixed exponent width W. 65537 needs 17 bits."""

    phase_bits: int = 10
    """Maximum exponent bits processed by one phase (k)."""

    modulus_bits: int = 4096
    """Maximum modulus width."""

    # ==========================================================================
    # Trust Store
    # ==========================================================================

    trust_tree_height: int = 64
    """Height of the trust-store Merkle tree; it has 2^(height-1) slots."""

    # ==========================================================================
    # Commitments
    # ==========================================================================

    hash_core: HashCore = HashCore.SHAKE256

    version: int = 1

    def __post_init__(self):
        if self.digest_algorithm not in VARIANTS:
            raise ConfigurationError(f"Unsupported SHA algorithm: {self.digest_algorithm}")
        if self.blocks_per_step < 1:
            raise ConfigurationError(f"blocks_per_step must be positive, got {self.blocks_per_step}")
        if self.exponent_bits < 1:
            raise ConfigurationError(f"exponent_bits must be positive, got {self.exponent_bits}")
        if not 1 <= self.phase_bits <= self.exponent_bits:
            raise ConfigurationError(
                f"phase_bits must be in [1, {self.exponent_bits}], got {self.phase_bits}"
            )
        if self.modulus_bits < 16:
            raise ConfigurationError(f"modulus_bits too small: {self.modulus_bits}")
        if self.trust_tree_height < 2:
            raise ConfigurationError(
                f"trust_tree_height must be at least 2, got {self.trust_tree_height}"
            )
        # Accept the string form of the core too
        object.__setattr__(self, 'hash_core', HashCore(self.hash_core))

    # ==========================================================================
    # Derived Values
    # ==========================================================================

    @property
    def variant(self) -> Sha2Variant:
        return get_variant(self.digest_algorithm)

    @property
    def hasher(self) -> CommitmentHasher:
        return CommitmentHasher(self.hash_core)

    @property
    def phase_count(self) -> int:
        return math.ceil(self.exponent_bits / self.phase_bits)

    @property
    def trust_slots(self) -> int:
        return 1 << (self.trust_tree_height - 1)

    # ==========================================================================
    # Serialization
    # ==========================================================================

    def serialize(self) -> bytes:
        """
        Canonical serialization for binding into key digests.

        Format:
            TAG(2) || version(2) || alg_len(2) || alg || blocks_per_step(4) ||
            exponent_bits(4) || phase_bits(4) || modulus_bits(4) ||
            trust_tree_height(2) || core_len(2) || core
        """
        alg = self.digest_algorithm.encode('utf-8')
        core = self.hash_core.value.encode('utf-8')
        return b''.join([
            tag_bytes(CommitTag.PARAMS),
            self.version.to_bytes(2, 'big'),
            len(alg).to_bytes(2, 'big'),
            alg,
            self.blocks_per_step.to_bytes(4, 'big'),
            self.exponent_bits.to_bytes(4, 'big'),
            self.phase_bits.to_bytes(4, 'big'),
            self.modulus_bits.to_bytes(4, 'big'),
            self.trust_tree_height.to_bytes(2, 'big'),
            len(core).to_bytes(2, 'big'),
            core,
        ])

    @classmethod
    def deserialize(cls, data: bytes) -> 'ProofParams':
        """Deserialize from bytes."""
        offset = 2  # Skip tag

        version = int.from_bytes(data[offset:offset+2], 'big')
        offset += 2

        alg_len = int.from_bytes(data[offset:offset+2], 'big')
        offset += 2
        digest_algorithm = data[offset:offset+alg_len].decode('utf-8')
        offset += alg_len

        blocks_per_step = int.from_bytes(data[offset:offset+4], 'big')
        offset += 4
        exponent_bits = int.from_bytes(data[offset:offset+4], 'big')
        offset += 4
        phase_bits = int.from_bytes(data[offset:offset+4], 'big')
        offset += 4
        modulus_bits = int.from_bytes(data[offset:offset+4], 'big')
        offset += 4
        trust_tree_height = int.from_bytes(data[offset:offset+2], 'big')
        offset += 2

        core_len = int.from_bytes(data[offset:offset+2], 'big')
        offset += 2
        hash_core = HashCore(data[offset:offset+core_len].decode('utf-8'))

        return cls(
            digest_algorithm=digest_algorithm,
            blocks_per_step=blocks_per_step,
            exponent_bits=exponent_bits,
            phase_bits=phase_bits,
            modulus_bits=modulus_bits,
            trust_tree_height=trust_tree_height,
            hash_core=hash_core,
            version=version,
        )

    def hash(self) -> bytes:
        """Hash of parameters for binding."""
        return hashlib.shake_256(self.serialize()).digest(32)


# =============================================================================
# Preset Configurations
# =============================================================================

# Default: SHA-256 chain, 20-bit exponent split 10+10, 4096-bit moduli
PARAMS_DEFAULT = ProofParams()

# Wide digests
PARAMS_SHA512 = ProofParams(digest_algorithm='sha2_512')

# Local document signers typically use 2048-bit keys
PARAMS_RSA2048 = ProofParams(modulus_bits=2048)
