"""
Pallas Base Field Arithmetic

Field: F_p where p = 2^254 + 45560315531419706090280762371685220353

Every commitment, boundary value and Merkle node in chainproof is an element
of this field. Elements are immutable; arithmetic returns new elements.
"""

from __future__ import annotations
from typing import Iterable, List
import secrets


# Pallas base field modulus (the native field of the Mina proof system)
FIELD_PRIME = 0x40000000000000000000000000000000224698fc094cf91b992d30ed00000001

# Canonical encoding width in bytes
FIELD_BYTES = 32


class FieldElement:
    """
    Element of the Pallas base field.

    Accepts any Python int and reduces it mod p. Compares equal to ints
    congruent mod p, so ``FieldElement(0) == 0`` holds.
    """

    __slots__ = ('value',)

    def __init__(self, value: int):
        """Create field element from integer."""
        if isinstance(value, FieldElement):
            value = value.value
        self.value = value % FIELD_PRIME

    # =========================================================================
    # Arithmetic Operations
    # =========================================================================

    def __add__(self, other: FieldElement) -> FieldElement:
        """Addition in F_p."""
        return FieldElement(self.value + _value(other))

    def __sub__(self, other: FieldElement) -> FieldElement:
        """Subtraction in F_p."""
        return FieldElement(self.value - _value(other))

    def __mul__(self, other: FieldElement) -> FieldElement:
        """Multiplication in F_p."""
        return FieldElement(self.value * _value(other))

    def __neg__(self) -> FieldElement:
        """Negation in F_p."""
        return FieldElement(-self.value)

    # =========================================================================
    # Comparison Operations
    # =========================================================================

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FieldElement):
            return self.value == other.value
        if isinstance(other, int) and not isinstance(other, bool):
            return self.value == (other % FIELD_PRIME)
        return False

    def __ne__(self, other: object) -> bool:
        return not self.__eq__(other)

    def __hash__(self) -> int:
        return hash(self.value)

    def __int__(self) -> int:
        return self.value

    def __repr__(self) -> str:
        return f"FieldElement({self.value})"

    def __str__(self) -> str:
        return str(self.value)

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_bytes(self) -> bytes:
        """Serialize to 32 bytes (little-endian)."""
        return self.value.to_bytes(FIELD_BYTES, 'little')

    @classmethod
    def from_bytes(cls, data: bytes) -> FieldElement:
        """Deserialize from 32 bytes (little-endian)."""
        if len(data) != FIELD_BYTES:
            raise ValueError(f"Field element must be {FIELD_BYTES} bytes, got {len(data)}")
        value = int.from_bytes(data, 'little')
        if value >= FIELD_PRIME:
            raise ValueError("Non-canonical field element encoding")
        return cls(value)

    def to_int(self) -> int:
        """Convert to integer."""
        return self.value

    # =========================================================================
    # Predicates
    # =========================================================================

    def is_zero(self) -> bool:
        return self.value == 0

    # =========================================================================
    # Class Methods
    # =========================================================================

    @classmethod
    def zero(cls) -> FieldElement:
        """Additive identity."""
        return cls(0)

    @classmethod
    def one(cls) -> FieldElement:
        """Multiplicative identity."""
        return cls(1)

    @classmethod
    def random(cls) -> FieldElement:
        """Uniformly random field element (suitable for salts)."""
        return cls(secrets.randbelow(FIELD_PRIME))

    @classmethod
    def from_hash(cls, data: bytes) -> FieldElement:
        """
        Create field element from hash output.

        Expects at least 48 bytes so the reduction mod p is statistically
        close to uniform.
        """
        if len(data) < 48:
            raise ValueError(f"Need at least 48 bytes of hash output, got {len(data)}")
        return cls(int.from_bytes(data, 'little'))


def _value(x) -> int:
    if isinstance(x, FieldElement):
        return x.value
    return int(x)


def to_field(x) -> FieldElement:
    """Coerce an int or FieldElement to a FieldElement."""
    if isinstance(x, FieldElement):
        return x
    if isinstance(x, bool):
        return FieldElement(int(x))
    if isinstance(x, int):
        return FieldElement(x)
    raise TypeError(f"Cannot convert {type(x).__name__} to FieldElement")


def to_fields(values: Iterable) -> List[FieldElement]:
    """Coerce every element of an iterable to a FieldElement."""
    return [to_field(v) for v in values]


ZERO = FieldElement(0)
ONE = FieldElement(1)
