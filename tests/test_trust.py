"""
Tests for the dynamic trust store

- Registration into empty slots only, against the current root
- Slot-bound verification of proofs from runtime-registered programs
- Feature-flag ceiling from a representative program
- Validation chain advancing an application state
"""

from concurrent.futures import ThreadPoolExecutor
import logging

import pytest

from chainproof.backend import FeatureFlags, Program, method
from chainproof.errors import ConstraintViolation
from chainproof.field import ZERO, FieldElement
from chainproof.params import ProofParams
from chainproof.protocol.trust import TrustState, TrustStore


class Walk(Program):
    name = 'walk'

    @method()
    def step(self, start, delta):
        return start + delta


class Stride(Program):
    name = 'stride'

    @method()
    def step(self, start, delta):
        return start + delta * 3


class Heavy(Program):
    name = 'heavy'

    @method('foreign_field_mul', 'range_check0')
    def step(self, start, delta):
        return start * delta


@pytest.fixture(scope='module')
def programs():
    out = {}
    for cls in (Walk, Stride, Heavy):
        program = cls()
        program.compile()
        out[cls.name] = program
    return out


@pytest.fixture
def store():
    s = TrustStore(Walk())
    s.compile()
    return s


def vk(programs, name):
    return programs[name].verification_key


def prove(programs, name, start=0, delta=5):
    return programs[name].prove('step', FieldElement(start), FieldElement(delta))


class TestRegister:
    """Tests for slot registration."""

    def test_new_root(self, store, programs):
        before = store.root
        root = store.register(3, vk(programs, 'walk'), store.witness(3))
        assert root == store.root
        assert root != before
        assert store.tree.get_leaf(3) == vk(programs, 'walk').digest

    def test_occupied_slot(self, store, programs):
        store.register(3, vk(programs, 'walk'), store.witness(3))
        with pytest.raises(ConstraintViolation):
            store.register(3, vk(programs, 'stride'), store.witness(3))

    def test_stale_witness(self, store, programs):
        stale = store.witness(5)
        store.register(3, vk(programs, 'walk'), store.witness(3))
        with pytest.raises(ConstraintViolation):
            store.register(5, vk(programs, 'stride'), stale)

    def test_witness_for_other_slot(self, store, programs):
        with pytest.raises(ConstraintViolation):
            store.register(3, vk(programs, 'walk'), store.witness(4))

    def test_slot_range(self, store, programs):
        assert store.slot_count == 1 << 63
        with pytest.raises(IndexError):
            store.register(store.slot_count, vk(programs, 'walk'), store.witness(0))

    def test_sequential_registrations(self, store, programs):
        store.register(1, vk(programs, 'walk'), store.witness(1))
        store.register(2, vk(programs, 'stride'), store.witness(2))
        assert store.head.public_output == TrustState(store.root, ZERO)

    def test_concurrent_registrations(self, store, programs):
        slots = range(1, 7)
        witnesses = {slot: store.witness(slot) for slot in slots}
        with ThreadPoolExecutor(max_workers=len(slots)) as pool:
            futures = [
                pool.submit(store.register, slot, vk(programs, 'walk'), witnesses[slot])
                for slot in slots
            ]
        errors = [f.exception() for f in futures]
        winners = [slot for slot, err in zip(slots, errors) if err is None]
        assert len(winners) == 1
        assert all(isinstance(err, ConstraintViolation) for err in errors if err is not None)
        assert store.tree.get_leaf(winners[0]) == vk(programs, 'walk').digest
        assert store.root == store.tree.root

    def test_witness_height_checked(self, programs):
        small = TrustStore(Walk(), ProofParams(trust_tree_height=8))
        small.compile()
        with pytest.raises(ConstraintViolation):
            small.register(0, vk(programs, 'walk'), TrustStore(Walk()).witness(0))


class TestVerifyAgainstSlot:
    """Tests for slot-bound verification."""

    def test_registered_key(self, store, programs):
        store.register(3, vk(programs, 'walk'), store.witness(3))
        assert store.verify_against_slot(3, vk(programs, 'walk'), store.witness(3), prove(programs, 'walk'))

    def test_different_slot(self, store, programs):
        store.register(3, vk(programs, 'walk'), store.witness(3))
        assert not store.verify_against_slot(4, vk(programs, 'walk'), store.witness(4), prove(programs, 'walk'))

    def test_different_key(self, store, programs):
        store.register(3, vk(programs, 'walk'), store.witness(3))
        assert not store.verify_against_slot(
            3, vk(programs, 'stride'), store.witness(3), prove(programs, 'stride')
        )

    def test_proof_from_other_program(self, store, programs):
        store.register(3, vk(programs, 'walk'), store.witness(3))
        assert not store.verify_against_slot(3, vk(programs, 'walk'), store.witness(3), prove(programs, 'stride'))

    def test_stale_root(self, store, programs):
        old_root = store.root
        store.register(3, vk(programs, 'walk'), store.witness(3))
        proof = prove(programs, 'walk')
        assert not store.verify_against_slot(3, vk(programs, 'walk'), store.witness(3), proof, root=old_root)
        assert store.verify_against_slot(3, vk(programs, 'walk'), store.witness(3), proof, root=store.root)

    def test_rejection_logged(self, store, programs, caplog):
        with caplog.at_level(logging.WARNING, logger='chainproof.protocol.trust'):
            assert not store.verify_against_slot(7, vk(programs, 'walk'), store.witness(7), prove(programs, 'walk'))
        assert "Rejected proof for slot 7" in caplog.text


class TestCeiling:
    """Keys beyond the representative's features are rejected."""

    def test_ceiling_from_representative(self, store):
        assert store.ceiling == FeatureFlags.none()
        assert TrustStore(Heavy()).ceiling == FeatureFlags.of('foreign_field_mul', 'range_check0')

    def test_key_outside_ceiling(self, store, programs):
        store.register(6, vk(programs, 'heavy'), store.witness(6))
        assert not store.verify_against_slot(6, vk(programs, 'heavy'), store.witness(6), prove(programs, 'heavy'))

    def test_wider_ceiling_accepts(self, programs):
        store = TrustStore(FeatureFlags.all())
        store.compile()
        store.register(6, vk(programs, 'heavy'), store.witness(6))
        assert store.verify_against_slot(6, vk(programs, 'heavy'), store.witness(6), prove(programs, 'heavy'))

    def test_ceiling_bound_into_key(self):
        assert TrustStore(Walk()).compile().digest != TrustStore(Heavy()).compile().digest


class TestValidate:
    """Tests for the validation chain over registered programs."""

    def test_chain(self, store, programs):
        store.register(1, vk(programs, 'walk'), store.witness(1))
        store.register(2, vk(programs, 'stride'), store.witness(2))

        first = store.validate(vk(programs, 'walk'), store.witness(1), prove(programs, 'walk', 0, 10))
        assert first.public_output == TrustState(store.root, FieldElement(10))

        second = store.validate(vk(programs, 'stride'), store.witness(2), prove(programs, 'stride', 10, 2))
        assert second.public_output.state == 16
        assert store.state == 16
        assert second.verify(store.verification_key)

    def test_wrong_start_state(self, store, programs):
        store.register(1, vk(programs, 'walk'), store.witness(1))
        with pytest.raises(ConstraintViolation):
            store.validate(vk(programs, 'walk'), store.witness(1), prove(programs, 'walk', 4, 10))

    def test_unregistered_key(self, store, programs):
        store.register(1, vk(programs, 'walk'), store.witness(1))
        with pytest.raises(ConstraintViolation):
            store.validate(vk(programs, 'stride'), store.witness(2), prove(programs, 'stride'))

    def test_nothing_registered(self, store, programs):
        with pytest.raises(ValueError):
            store.validate(vk(programs, 'walk'), store.witness(1), prove(programs, 'walk'))
