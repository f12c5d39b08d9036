"""
Tests for the in-process proving backend

- Compile / prove / verify round trip
- Seal binding (public values, key, backend instance)
- Feature flags and dynamic proofs
"""

import dataclasses

import pytest

from chainproof.backend import (
    DynamicProof,
    FeatureFlags,
    Program,
    ProvingBackend,
    assert_true,
    method,
)
from chainproof.errors import ConstraintViolation, ProgramNotCompiledError
from chainproof.field import FieldElement
from chainproof.params import PARAMS_DEFAULT, PARAMS_SHA512


class Adder(Program):
    name = 'adder'

    @method()
    def add(self, x, y):
        return x + y

    @method('range_check0')
    def add_small(self, x, y):
        assert_true(y.to_int() < 1000, "y too large")
        return x + y


class Doubler(Program):
    name = 'doubler'

    @method('foreign_field_mul', 'xor')
    def double(self, x):
        return x + x


@pytest.fixture
def adder():
    program = Adder()
    program.compile()
    return program


class TestProving:
    """Tests for compile, prove and verify."""

    def test_roundtrip(self, adder):
        proof = adder.prove('add', FieldElement(2), FieldElement(3))
        assert proof.public_output == 5
        assert proof.verify(adder.verification_key)

    def test_compile_is_idempotent(self, adder):
        assert adder.compile() is adder.verification_key

    def test_prove_before_compile(self):
        with pytest.raises(ProgramNotCompiledError):
            Adder().prove('add', FieldElement(1), FieldElement(1))

    def test_unknown_method(self, adder):
        with pytest.raises(ValueError):
            adder.prove('sub', FieldElement(1), FieldElement(1))

    def test_constraint_failure_produces_no_proof(self, adder):
        with pytest.raises(ConstraintViolation):
            adder.prove('add_small', FieldElement(1), FieldElement(5000))

    def test_tampered_output_rejected(self, adder):
        proof = adder.prove('add', FieldElement(2), FieldElement(3))
        forged = dataclasses.replace(proof, public_output=FieldElement(6))
        assert not forged.verify(adder.verification_key)

    def test_tampered_input_rejected(self, adder):
        proof = adder.prove('add', FieldElement(2), FieldElement(3))
        forged = dataclasses.replace(proof, public_input=FieldElement(1))
        assert not forged.verify(adder.verification_key)

    def test_wrong_key_rejected(self, adder):
        doubler = Doubler()
        doubler.compile()
        proof = adder.prove('add', FieldElement(2), FieldElement(3))
        assert not proof.verify(doubler.verification_key)

    def test_other_backend_rejected(self, adder):
        other = Adder(backend=ProvingBackend())
        other.compile()
        proof = other.prove('add', FieldElement(2), FieldElement(3))
        assert proof.public_output == 5
        assert not adder.backend.verify(proof, adder.verification_key)
        assert proof.verify(other.verification_key)

    def test_backend_key_length(self):
        with pytest.raises(ValueError):
            ProvingBackend(b'short')

    def test_params_bound_into_key(self):
        a = Adder(PARAMS_DEFAULT).compile()
        b = Adder(PARAMS_SHA512).compile()
        assert a.digest != b.digest

    def test_same_program_same_key(self):
        backend = ProvingBackend(bytes(32))
        assert Adder(backend=backend).compile().digest == Adder().compile().digest


class TestFeatureFlags:
    """Tests for feature flags and ceilings."""

    def test_of_and_names(self):
        assert FeatureFlags.of('xor', 'rot').names() == ('xor', 'rot')
        assert FeatureFlags.none().names() == ()

    def test_covers(self):
        assert FeatureFlags.all().covers(FeatureFlags.of('lookup'))
        assert FeatureFlags.none().covers(FeatureFlags.none())
        assert not FeatureFlags.of('xor').covers(FeatureFlags.of('xor', 'rot'))

    def test_from_program(self):
        assert FeatureFlags.from_program(Adder()) == FeatureFlags.of('range_check0')
        assert FeatureFlags.from_program(Doubler()).names() == ('foreign_field_mul', 'xor')

    def test_key_carries_flags(self, adder):
        assert adder.verification_key.flags == FeatureFlags.of('range_check0')
        assert adder.verification_key.methods == ('add', 'add_small')


class TestDynamicProof:
    """Tests for proofs checked against a runtime-supplied key."""

    def test_within_ceiling(self, adder):
        proof = adder.prove('add', FieldElement(2), FieldElement(3))
        dynamic = DynamicProof(proof, ceiling=FeatureFlags.from_program(adder))
        assert dynamic.verify(adder.verification_key)
        assert dynamic.public_output == 5

    def test_outside_ceiling_rejected(self):
        doubler = Doubler()
        doubler.compile()
        proof = doubler.prove('double', FieldElement(4))
        dynamic = DynamicProof(proof, ceiling=FeatureFlags.of('range_check0'))
        assert proof.verify(doubler.verification_key)
        assert not dynamic.verify(doubler.verification_key)

    def test_recursion_depth_bound(self, adder):
        proof = adder.prove('add', FieldElement(2), FieldElement(3))
        key = dataclasses.replace(adder.verification_key, max_proofs_verified=2)
        dynamic = DynamicProof(proof, max_proofs_verified=0)
        assert not dynamic.verify(key)
