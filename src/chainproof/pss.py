"""
EMSA-PSS with MGF1 (RFC 8017, sections 9.1 and B.2.1).

The hash function is one of the SHA-2 variants in chainproof.sha2, named the
same way as ProofParams.digest_algorithm. emsa_pss_verify raises PaddingError
on the first framing defect; verify_pss_signature runs the modular
exponentiation through the split state machine and then checks the framing of
the recovered encoded message.
"""

from __future__ import annotations
from typing import Optional
import logging
import secrets

from .backend import Proof
from .codec import int_to_bytes
from .errors import PaddingError
from .params import PARAMS_DEFAULT, ProofParams
from .protocol.exponentiation import SplitExponentiation
from .sha2 import get_variant, sha2_hash


logger = logging.getLogger(__name__)


def mgf1(seed: bytes, mask_len: int, algorithm: str = 'sha2_256') -> bytes:
    """Mask generation function: H(seed || counter) blocks, truncated."""
    if mask_len < 0:
        raise ValueError("Mask length must be non-negative")
    h_len = get_variant(algorithm).digest_bytes
    if mask_len > (h_len << 32):
        raise ValueError("Mask too long")
    out = bytearray()
    counter = 0
    while len(out) < mask_len:
        out += sha2_hash(algorithm, seed + counter.to_bytes(4, 'big'))
        counter += 1
    return bytes(out[:mask_len])


def _xor(a: bytes, b: bytes) -> bytes:
    return bytes(x ^ y for x, y in zip(a, b))


def emsa_pss_encode(
    m_hash: bytes,
    em_bits: int,
    algorithm: str = 'sha2_256',
    salt: Optional[bytes] = None,
    salt_len: Optional[int] = None,
) -> bytes:
    """
    Encode a message digest as EM = maskedDB || H || 0xBC.

    Args:
        m_hash: Digest of the message
        em_bits: Maximal bit length of the encoded message (modulus bits - 1)
        algorithm: SHA-2 variant name
        salt: Explicit salt; random of salt_len bytes if None
        salt_len: Salt length when salt is None (default: digest length)
    """
    h_len = get_variant(algorithm).digest_bytes
    if len(m_hash) != h_len:
        raise ValueError(f"Digest must be {h_len} bytes, got {len(m_hash)}")
    if salt is None:
        salt = secrets.token_bytes(h_len if salt_len is None else salt_len)
    em_len = -(-em_bits // 8)
    if em_len < h_len + len(salt) + 2:
        raise ValueError("Encoding error: em_bits too small for digest and salt")

    h = sha2_hash(algorithm, b'\x00' * 8 + m_hash + salt)
    ps = b'\x00' * (em_len - len(salt) - h_len - 2)
    db = ps + b'\x01' + salt
    masked_db = bytearray(_xor(db, mgf1(h, em_len - h_len - 1, algorithm)))
    masked_db[0] &= 0xFF >> (8 * em_len - em_bits)
    return bytes(masked_db) + h + b'\xbc'


def emsa_pss_verify(
    em: bytes,
    em_bits: int,
    m_hash: bytes,
    algorithm: str = 'sha2_256',
    salt_len: Optional[int] = None,
) -> bytes:
    """
    Check the framing of an encoded message against a message digest.

    Returns:
        The recovered salt

    Raises:
        PaddingError: on any framing defect
    """
    h_len = get_variant(algorithm).digest_bytes
    s_len = h_len if salt_len is None else salt_len
    em_len = -(-em_bits // 8)

    if len(m_hash) != h_len:
        raise PaddingError(f"Digest must be {h_len} bytes, got {len(m_hash)}")
    if len(em) != em_len:
        raise PaddingError(f"Encoded message must be {em_len} bytes, got {len(em)}")
    if em_len < h_len + s_len + 2:
        raise PaddingError("Encoded message too small for digest and salt")
    if em[-1] != 0xBC:
        raise PaddingError("Encoded message must end with 0xBC")

    masked_db = em[:em_len - h_len - 1]
    h = em[em_len - h_len - 1:-1]

    top_bits = 8 * em_len - em_bits
    if masked_db[0] & ~(0xFF >> top_bits) & 0xFF:
        raise PaddingError("Leftmost bits of masked DB are not zero")

    db = bytearray(_xor(masked_db, mgf1(h, em_len - h_len - 1, algorithm)))
    db[0] &= 0xFF >> top_bits

    ps_len = em_len - h_len - s_len - 2
    if any(db[:ps_len]):
        raise PaddingError("Inconsistent zero padding")
    if db[ps_len] != 0x01:
        raise PaddingError("Missing 0x01 separator")

    salt = bytes(db[ps_len + 1:])
    if sha2_hash(algorithm, b'\x00' * 8 + m_hash + salt) != h:
        raise PaddingError("Hash mismatch")
    return salt


def verify_pss_signature(
    modulus: int,
    exponent: int,
    signature: int,
    message: bytes,
    algorithm: str = 'sha2_256',
    salt_len: Optional[int] = None,
    params: ProofParams = PARAMS_DEFAULT,
    exponentiation: Optional[SplitExponentiation] = None,
) -> Proof:
    """
    Prove signature^exponent mod modulus, then check its PSS framing.

    Returns:
        The final exponentiation proof

    Raises:
        PaddingError: if the recovered encoded message is malformed
        ConfigurationError: if modulus or exponent exceed the configured widths
    """
    if exponentiation is None:
        exponentiation = SplitExponentiation(params)
        exponentiation.compile()

    proof = exponentiation.verify_signature(modulus, exponent, signature)
    em_bits = modulus.bit_length() - 1
    em_len = -(-em_bits // 8)
    accumulator = proof.public_output.accumulator
    if accumulator >> (8 * em_len):
        raise PaddingError("Recovered encoded message is wider than em_bits")

    em = int_to_bytes(accumulator, em_len)
    emsa_pss_verify(em, em_bits, sha2_hash(algorithm, message), algorithm, salt_len)
    logger.debug("PSS framing valid for %d-bit modulus", modulus.bit_length())
    return proof
