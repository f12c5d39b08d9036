"""
SHA-2 Family (FIPS 180-4)

Exposes the pieces the StepChain needs separately:
- initial_state: the fixed IV (S_0)
- padding: message -> list of 16-word blocks, final block encodes bit length
- message_schedule / compression: one block applied to one state
- digest: state words -> truncated big-endian digest bytes

Round constants and IVs are derived from prime roots exactly as the standard
defines them, rather than transcribed.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Tuple
import math

from .errors import ConfigurationError


Words = Tuple[int, ...]


# =============================================================================
# Constant Derivation
# =============================================================================

def _first_primes(n: int) -> List[int]:
    primes: List[int] = []
    candidate = 2
    while len(primes) < n:
        if all(candidate % p for p in primes if p * p <= candidate):
            primes.append(candidate)
        candidate += 1
    return primes


def _icbrt(n: int) -> int:
    """Integer cube root (floor)."""
    x = 1 << -(-n.bit_length() // 3)
    while True:
        y = (2 * x + n // (x * x)) // 3
        if y >= x:
            return x
        x = y


def _frac_sqrt(p: int, bits: int) -> int:
    """First `bits` bits of the fractional part of sqrt(p)."""
    return math.isqrt(p << (2 * bits)) & ((1 << bits) - 1)


def _frac_cbrt(p: int, bits: int) -> int:
    """First `bits` bits of the fractional part of cbrt(p)."""
    return _icbrt(p << (3 * bits)) & ((1 << bits) - 1)


_PRIMES = _first_primes(80)

_K32 = tuple(_frac_cbrt(p, 32) for p in _PRIMES[:64])
_K64 = tuple(_frac_cbrt(p, 64) for p in _PRIMES[:80])

_IV256 = tuple(_frac_sqrt(p, 32) for p in _PRIMES[:8])
_IV512 = tuple(_frac_sqrt(p, 64) for p in _PRIMES[:8])
_IV384 = tuple(_frac_sqrt(p, 64) for p in _PRIMES[8:16])
_IV224 = tuple(_frac_sqrt(p, 64) & 0xFFFFFFFF for p in _PRIMES[8:16])


# =============================================================================
# Algorithm Descriptions
# =============================================================================

@dataclass(frozen=True)
class Sha2Variant:
    """Parameters of one SHA-2 variant."""
    name: str
    digest_bits: int
    word_bits: int
    rounds: int
    iv: Words
    k: Words
    big_sigma0: Tuple[int, int, int]
    big_sigma1: Tuple[int, int, int]
    small_sigma0: Tuple[int, int, int]   # (rotr, rotr, shr)
    small_sigma1: Tuple[int, int, int]

    @property
    def word_bytes(self) -> int:
        return self.word_bits // 8

    @property
    def block_bytes(self) -> int:
        return 16 * self.word_bytes

    @property
    def length_bytes(self) -> int:
        """Width of the trailing message-length field."""
        return 2 * self.word_bytes

    @property
    def digest_bytes(self) -> int:
        return self.digest_bits // 8

    @property
    def mask(self) -> int:
        return (1 << self.word_bits) - 1


_SIGMAS_32 = dict(
    big_sigma0=(2, 13, 22), big_sigma1=(6, 11, 25),
    small_sigma0=(7, 18, 3), small_sigma1=(17, 19, 10),
)
_SIGMAS_64 = dict(
    big_sigma0=(28, 34, 39), big_sigma1=(14, 18, 41),
    small_sigma0=(1, 8, 7), small_sigma1=(19, 61, 6),
)

VARIANTS = {
    'sha2_224': Sha2Variant('sha2_224', 224, 32, 64, _IV224, _K32, **_SIGMAS_32),
    'sha2_256': Sha2Variant('sha2_256', 256, 32, 64, _IV256, _K32, **_SIGMAS_32),
    'sha2_384': Sha2Variant('sha2_384', 384, 64, 80, _IV384, _K64, **_SIGMAS_64),
    'sha2_512': Sha2Variant('sha2_512', 512, 64, 80, _IV512, _K64, **_SIGMAS_64),
}


def get_variant(name: str) -> Sha2Variant:
    """Look up a SHA-2 variant by name (sha2_224, sha2_256, sha2_384, sha2_512)."""
    try:
        return VARIANTS[name]
    except KeyError:
        raise ConfigurationError(f"Unsupported SHA algorithm: {name}") from None


# =============================================================================
# Primitive Operations
# =============================================================================

def _rotr(x: int, n: int, bits: int, mask: int) -> int:
    return ((x >> n) | (x << (bits - n))) & mask


def initial_state(variant: Sha2Variant) -> Words:
    """The fixed starting state S_0."""
    return variant.iv


def padding(variant: Sha2Variant, data: bytes) -> List[Words]:
    """
    Pad a message and split it into blocks of 16 words.

    data ‖ 0x80 ‖ 0x00* ‖ bit_length, so the final block always encodes the
    total input length.
    """
    bit_length = len(data) * 8
    block = variant.block_bytes
    zeros = (block - (len(data) + 1 + variant.length_bytes) % block) % block
    padded = (
        data
        + b'\x80'
        + b'\x00' * zeros
        + bit_length.to_bytes(variant.length_bytes, 'big')
    )
    wb = variant.word_bytes
    blocks = []
    for offset in range(0, len(padded), block):
        chunk = padded[offset:offset + block]
        blocks.append(tuple(
            int.from_bytes(chunk[i:i + wb], 'big') for i in range(0, block, wb)
        ))
    return blocks


def message_schedule(variant: Sha2Variant, block: Words) -> List[int]:
    """Expand a 16-word block to the full round schedule W_0..W_{rounds-1}."""
    if len(block) != 16:
        raise ValueError(f"Block must have 16 words, got {len(block)}")
    bits, mask = variant.word_bits, variant.mask
    r00, r01, s0 = variant.small_sigma0
    r10, r11, s1 = variant.small_sigma1
    w = list(block)
    for t in range(16, variant.rounds):
        x, y = w[t - 15], w[t - 2]
        sigma0 = _rotr(x, r00, bits, mask) ^ _rotr(x, r01, bits, mask) ^ (x >> s0)
        sigma1 = _rotr(y, r10, bits, mask) ^ _rotr(y, r11, bits, mask) ^ (y >> s1)
        w.append((sigma1 + w[t - 7] + sigma0 + w[t - 16]) & mask)
    return w


def compression(variant: Sha2Variant, state: Words, block: Words) -> Words:
    """Apply one block to a state: S_{i+1} = compress(S_i, block_i)."""
    if len(state) != 8:
        raise ValueError(f"State must have 8 words, got {len(state)}")
    bits, mask = variant.word_bits, variant.mask
    a0, a1, a2 = variant.big_sigma0
    e0, e1, e2 = variant.big_sigma1
    w = message_schedule(variant, block)

    a, b, c, d, e, f, g, h = state
    for t in range(variant.rounds):
        big_s1 = _rotr(e, e0, bits, mask) ^ _rotr(e, e1, bits, mask) ^ _rotr(e, e2, bits, mask)
        ch = (e & f) ^ (~e & g)
        t1 = (h + big_s1 + ch + variant.k[t] + w[t]) & mask
        big_s0 = _rotr(a, a0, bits, mask) ^ _rotr(a, a1, bits, mask) ^ _rotr(a, a2, bits, mask)
        maj = (a & b) ^ (a & c) ^ (b & c)
        t2 = (big_s0 + maj) & mask
        h, g, f, e, d, c, b, a = g, f, e, (d + t1) & mask, c, b, a, (t1 + t2) & mask

    return tuple(
        (x + y) & mask for x, y in zip(state, (a, b, c, d, e, f, g, h))
    )


def digest(variant: Sha2Variant, state: Words) -> bytes:
    """Big-endian state words, truncated to the digest width."""
    raw = b''.join(word.to_bytes(variant.word_bytes, 'big') for word in state)
    return raw[:variant.digest_bytes]


def sha2_hash(name: str, data: bytes) -> bytes:
    """Full SHA-2 hash by folding every padded block."""
    variant = get_variant(name)
    state = initial_state(variant)
    for block in padding(variant, data):
        state = compression(variant, state, block)
    return digest(variant, state)
