"""
Tests for split modular exponentiation

- Result equals pow(signature, exponent, modulus)
- Clean-start rules for the first and later phases
- Fail-fast configuration checks
- Phase planning
"""

import dataclasses
import random

import pytest

from chainproof.errors import CleanStartError, ConfigurationError, ConstraintViolation
from chainproof.params import PARAMS_RSA2048, ProofParams
from chainproof.protocol.exponentiation import SplitExponentiation, plan_phases


# Product of two Mersenne primes: a 1128-bit modulus with known factors
P = (1 << 521) - 1
Q = (1 << 607) - 1
N = P * Q


def make_exp(**kwargs):
    exp = SplitExponentiation(ProofParams(**kwargs))
    exp.compile()
    return exp


@pytest.fixture(scope='module')
def exp():
    return make_exp()


class TestPlanPhases:
    """Tests for the phase planner."""

    def test_default_split(self):
        assert plan_phases(20, 10) == (range(0, 10), range(10, 20))

    def test_uneven_split(self):
        phases = plan_phases(20, 7)
        assert [len(p) for p in phases] == [7, 7, 6]
        assert phases[-1].stop == 20

    def test_single_phase(self):
        assert plan_phases(17, 17) == (range(0, 17),)

    @pytest.mark.parametrize('total,per', [(0, 1), (10, 0), (-1, 3)])
    def test_invalid(self, total, per):
        with pytest.raises(ConfigurationError):
            plan_phases(total, per)


class TestExponentiation:
    """Tests for the full phase sequence."""

    def test_small_rsa(self, exp):
        proof = exp.verify_signature(3233, 17, 65)
        assert proof.public_output.accumulator == pow(65, 17, 3233)

    def test_rsa_65537(self, exp):
        rng = random.Random(1)
        for _ in range(3):
            s = rng.randrange(2, N)
            proof = exp.verify_signature(N, 65537, s)
            assert proof.public_output.accumulator == pow(s, 65537, N)

    @pytest.mark.parametrize('e', [0, 1, 2, 3, 1023, 1024, (1 << 20) - 1])
    def test_exponent_edges(self, exp, e):
        proof = exp.verify_signature(1000003, e, 12345)
        assert proof.public_output.accumulator == pow(12345, e, 1000003)

    def test_phase_count(self, exp):
        proofs = exp.run_phases(3233, 17, 65)
        assert len(proofs) == 2
        assert [p.method for p in proofs] == ['first_phase', 'later_phase']
        assert proofs[0].public_output == proofs[1].public_input
        assert proofs[-1].public_output.position == 20

    @pytest.mark.parametrize('bits,per,phases', [(17, 17, 1), (24, 5, 5), (20, 7, 3)])
    def test_other_splits(self, bits, per, phases):
        exp = make_exp(exponent_bits=bits, phase_bits=per)
        proofs = exp.run_phases(N, 65537, 987654321)
        assert len(proofs) == phases
        assert proofs[-1].public_output.accumulator == pow(987654321, 65537, N)

    def test_verify_phases(self, exp):
        proofs = exp.run_phases(3233, 17, 65)
        assert exp.verify_phases(proofs)
        assert not exp.verify_phases(proofs[:1])
        assert not exp.verify_phases(list(reversed(proofs)))


class TestCleanStart:
    """The sentinel accumulator enforces phase order."""

    def test_later_phase_needs_first(self, exp):
        state = exp.initial_state(3233, 17, 65)
        with pytest.raises(CleanStartError):
            exp.program.prove('later_phase', state)

    def test_first_phase_needs_sentinel(self, exp):
        first = exp.run_phases(3233, 17, 65)[0]
        with pytest.raises(CleanStartError):
            exp.program.prove('first_phase', first.public_output)

    def test_first_phase_needs_position_zero(self, exp):
        state = dataclasses.replace(exp.initial_state(3233, 17, 65), position=10)
        with pytest.raises(CleanStartError):
            exp.program.prove('first_phase', state)

    def test_phase_cannot_repeat(self, exp):
        last = exp.run_phases(3233, 17, 65)[-1]
        with pytest.raises(CleanStartError):
            exp.program.prove('later_phase', last.public_output)

    def test_later_phase_cannot_restart(self, exp):
        state = dataclasses.replace(exp.initial_state(3233, 17, 65), accumulator=5)
        with pytest.raises(CleanStartError):
            exp.program.prove('later_phase', state)


class TestConfiguration:
    """Mismatched widths fail before anything is proven."""

    def test_exponent_too_wide(self, exp):
        with pytest.raises(ConfigurationError):
            exp.initial_state(3233, 1 << 20, 65)

    def test_modulus_too_wide(self):
        exp = SplitExponentiation(PARAMS_RSA2048)
        with pytest.raises(ConfigurationError):
            exp.initial_state((1 << 2048) + 1, 65537, 2)

    def test_signature_out_of_range(self, exp):
        with pytest.raises(ValueError):
            exp.initial_state(3233, 17, 3233)
        with pytest.raises(ValueError):
            exp.initial_state(3233, 17, 0)

    def test_signature_shares_factor(self, exp):
        # pow(2, 2048, 4) == 0 would collide with the not-started accumulator
        with pytest.raises(ValueError, match="shares a factor"):
            exp.verify_signature(4, 2048, 2)
        with pytest.raises(ValueError):
            exp.initial_state(3233, 17, 61)

    def test_modulus_too_small(self, exp):
        with pytest.raises(ValueError):
            exp.initial_state(1, 17, 1)

    def test_state_shape_checked(self, exp):
        state = exp.initial_state(3233, 17, 65)
        short = dataclasses.replace(state, exponent_bits=state.exponent_bits[:10])
        with pytest.raises(ConstraintViolation):
            exp.program.prove('first_phase', short)
        narrow = dataclasses.replace(state, limbs=18)
        with pytest.raises(ConstraintViolation):
            exp.program.prove('first_phase', narrow)

    def test_program_name_reflects_widths(self):
        exp = SplitExponentiation(PARAMS_RSA2048)
        assert exp.program.name == 'rsa2048-exp20'
