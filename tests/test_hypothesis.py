"""
Property-Based Testing with Hypothesis

These tests use Hypothesis to generate random inputs and verify that the
protocol properties hold across the input space, not just on hand-picked
examples.
"""

import hashlib
from math import gcd

from hypothesis import HealthCheck, assume, given, settings, strategies as st

from chainproof.codec import BYTES_PER_FIELD, LIMB_BITS, bigint_to_limbs, pack_bytes
from chainproof.commitment import commit
from chainproof.field import FIELD_PRIME, FieldElement
from chainproof.params import ProofParams
from chainproof.protocol.exponentiation import SplitExponentiation
from chainproof.protocol.merkle import MerkleTree
from chainproof.protocol.stepchain import StepChain, expected_digest_commitment
from chainproof.sha2 import VARIANTS, sha2_hash


# =============================================================================
# SHARED PROGRAMS (compiled once)
# =============================================================================

CHAIN = StepChain()
CHAIN.compile()

CHAIN_GROUPED = StepChain(ProofParams(blocks_per_step=3))
CHAIN_GROUPED.compile()

EXP = SplitExponentiation()
EXP.compile()


field_ints = st.integers(min_value=0, max_value=FIELD_PRIME - 1)


class TestFieldProperties:
    """Field axioms."""

    @given(a=field_ints, b=field_ints)
    def test_add_sub_inverse(self, a, b):
        fa, fb = FieldElement(a), FieldElement(b)
        assert (fa + fb) - fb == fa

    @given(a=field_ints, b=field_ints, c=field_ints)
    def test_distributive(self, a, b, c):
        fa, fb, fc = FieldElement(a), FieldElement(b), FieldElement(c)
        assert fa * (fb + fc) == fa * fb + fa * fc


class TestCodecProperties:
    """Codec layout."""

    @given(data=st.binary(max_size=300))
    def test_pack_chunks(self, data):
        fields = pack_bytes(data)
        assert len(fields) == -(-len(data) // BYTES_PER_FIELD)
        for i, f in enumerate(fields):
            chunk = data[i * BYTES_PER_FIELD:(i + 1) * BYTES_PER_FIELD]
            assert f == int.from_bytes(chunk, 'big')

    @given(value=st.integers(min_value=0, max_value=(1 << 4096) - 1))
    def test_limbs_recombine(self, value):
        limbs = bigint_to_limbs(value, 36)
        assert sum(limb.to_int() << (LIMB_BITS * i) for i, limb in enumerate(limbs)) == value


class TestCommitmentProperties:
    """Commitment determinism and spot-checked collision resistance."""

    @given(a=st.lists(field_ints, max_size=6), b=st.lists(field_ints, max_size=6))
    def test_distinct_inputs(self, a, b):
        assume(a != b)
        assert commit(*a) != commit(*b)

    @given(a=st.lists(field_ints, max_size=6))
    def test_deterministic(self, a):
        assert commit(*a) == commit(*a)


class TestSha2Properties:
    """SHA-2 against hashlib on arbitrary input."""

    @given(name=st.sampled_from(sorted(VARIANTS)), data=st.binary(max_size=400))
    @settings(max_examples=200)
    def test_matches_hashlib(self, name, data):
        assert sha2_hash(name, data) == hashlib.new(name.replace('sha2_', 'sha'), data).digest()


class TestStepChainProperties:
    """Final chain output equals the reference commitment for any input."""

    @given(data=st.binary(max_size=300), salt=field_ints)
    @settings(max_examples=25, deadline=None)
    def test_chain_output(self, data, salt):
        salt = FieldElement(salt)
        proofs = CHAIN.run_chain(salt, data)
        assert proofs[-1].public_output == expected_digest_commitment(salt, data)
        assert CHAIN.verify_chain(proofs, salt, data)

    @given(data=st.binary(max_size=600), salt=field_ints)
    @settings(max_examples=15, deadline=None)
    def test_grouped_chain_output(self, data, salt):
        salt = FieldElement(salt)
        proofs = CHAIN_GROUPED.run_chain(salt, data)
        assert proofs[-1].public_output == expected_digest_commitment(salt, data)


class TestExponentiationProperties:
    """Split exponentiation agrees with pow."""

    @given(
        modulus=st.integers(min_value=3, max_value=(1 << 2048) - 1),
        exponent=st.integers(min_value=0, max_value=(1 << 20) - 1),
        data=st.data(),
    )
    @settings(max_examples=30, deadline=None, suppress_health_check=[HealthCheck.filter_too_much])
    def test_matches_pow(self, modulus, exponent, data):
        signature = data.draw(st.integers(min_value=1, max_value=modulus - 1))
        # A zero accumulator would read as the not-started sentinel
        assume(gcd(signature, modulus) == 1)
        proof = EXP.verify_signature(modulus, exponent, signature)
        assert proof.public_output.accumulator == pow(signature, exponent, modulus)


class TestMerkleProperties:
    """Every witness reproduces the root."""

    @given(writes=st.dictionaries(
        st.integers(min_value=0, max_value=31), field_ints, max_size=12,
    ))
    @settings(max_examples=50, deadline=None)
    def test_witnesses(self, writes):
        tree = MerkleTree(6)
        for index, value in writes.items():
            tree.set_leaf(index, FieldElement(value))
        for index in range(tree.leaf_count):
            witness = tree.get_witness(index)
            assert witness.calculate_index() == index
            assert witness.calculate_root(tree.get_leaf(index), tree.hasher) == tree.root
