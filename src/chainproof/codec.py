"""
Field codecs.

- Byte arrays pack into field elements, 31 bytes per element (big-endian
  inside each chunk), so every chunk is below the field modulus.
- Big integers (RSA moduli, signatures, accumulators) split into fixed-width
  116-bit limbs, least-significant limb first.
- Exponents decompose into a fixed-width bit vector, most-significant bit
  first. Values that do not fit are rejected, never truncated.
"""

from __future__ import annotations
from typing import List, Tuple

from .errors import ConfigurationError
from .field import FieldElement


BYTES_PER_FIELD = 31

LIMB_BITS = 116
LIMB_MASK = (1 << LIMB_BITS) - 1


def pack_bytes(data: bytes) -> List[FieldElement]:
    """Pack bytes into field elements, 31 bytes per element."""
    return [
        FieldElement(int.from_bytes(data[i:i + BYTES_PER_FIELD], 'big'))
        for i in range(0, len(data), BYTES_PER_FIELD)
    ]


def limb_count(bits: int) -> int:
    """Number of 116-bit limbs needed for a `bits`-wide integer."""
    return -(-bits // LIMB_BITS)


def bigint_to_limbs(value: int, count: int) -> List[FieldElement]:
    """Split a non-negative integer into `count` limbs, least significant first."""
    if value < 0:
        raise ValueError("Cannot encode negative integer as limbs")
    if value >> (LIMB_BITS * count):
        raise ConfigurationError(
            f"Integer of {value.bit_length()} bits does not fit in {count} limbs"
        )
    return [FieldElement((value >> (LIMB_BITS * i)) & LIMB_MASK) for i in range(count)]


def exponent_to_bits(exponent: int, width: int) -> Tuple[bool, ...]:
    """
    Fixed-width bit decomposition, most-significant bit first.

    Raises ConfigurationError if the exponent needs more than `width` bits.
    """
    if exponent < 0:
        raise ValueError("Exponent must be non-negative")
    if exponent.bit_length() > width:
        raise ConfigurationError(
            f"Exponent needs {exponent.bit_length()} bits, configured width is {width}"
        )
    return tuple(bool((exponent >> (width - 1 - i)) & 1) for i in range(width))


def int_to_bytes(value: int, length: int) -> bytes:
    """I2OSP: big-endian encoding of exactly `length` bytes."""
    if value >> (8 * length):
        raise ValueError(f"Integer too large for {length} bytes")
    return value.to_bytes(length, 'big')
