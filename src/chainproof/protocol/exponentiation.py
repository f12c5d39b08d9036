"""
Split State Machine: Bounded-Width Modular Exponentiation

Proves signature^exponent mod modulus when the square-and-multiply ladder is
too long for one step. The fixed exponent width W is cut into
ceil(W / k) phases by plan_phases; every phase shares one state structure as
public input and public output, so phase j+1 consumes phase j's output.

The accumulator starts at the zero sentinel ("not started"). The first phase
requires the sentinel and initializes from the leading bit; every later phase
requires a non-sentinel accumulator. The state also records how many
exponent bits have been absorbed, so phases cannot be skipped or repeated.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from math import gcd
from typing import List, Optional, Tuple
import logging

from ..backend import Program, Proof, ProvingBackend, VerificationKey, assert_true, method
from ..codec import bigint_to_limbs, exponent_to_bits, limb_count
from ..errors import CleanStartError, ConfigurationError
from ..field import FieldElement
from ..params import PARAMS_DEFAULT, ProofParams


logger = logging.getLogger(__name__)


def plan_phases(total_bits: int, phase_bits: int) -> Tuple[range, ...]:
    """
    Cut W exponent bits into ceil(W / k) contiguous phases.

    >>> plan_phases(20, 10)
    (range(0, 10), range(10, 20))
    """
    if total_bits < 1 or phase_bits < 1:
        raise ConfigurationError(
            f"Cannot plan phases for width {total_bits} with {phase_bits} bits per phase"
        )
    return tuple(
        range(start, min(start + phase_bits, total_bits))
        for start in range(0, total_bits, phase_bits)
    )


@dataclass(frozen=True)
class ExponentiationState:
    """
    Public state shared by every phase.

    exponent_bits is most-significant bit first. position counts absorbed bits.
    """
    accumulator: int
    modulus: int
    signature: int
    exponent_bits: Tuple[bool, ...]
    position: int = 0
    limbs: int = limb_count(4096)

    def to_fields(self) -> List[FieldElement]:
        return [
            *bigint_to_limbs(self.accumulator, self.limbs),
            *bigint_to_limbs(self.modulus, self.limbs),
            *bigint_to_limbs(self.signature, self.limbs),
            *(FieldElement(int(b)) for b in self.exponent_bits),
            FieldElement(self.position),
        ]


class ExponentiationProgram(Program):
    """Square-and-multiply over a fixed-width exponent, one phase per proof."""

    def __init__(
        self,
        params: ProofParams = PARAMS_DEFAULT,
        backend: Optional[ProvingBackend] = None,
    ):
        super().__init__(params, backend)
        self.phases = plan_phases(params.exponent_bits, params.phase_bits)
        self.limbs = limb_count(params.modulus_bits)
        self.name = f'rsa{params.modulus_bits}-exp{params.exponent_bits}'

    def _ladder(self, state: ExponentiationState, acc: int, bits: range) -> int:
        n = state.modulus
        for i in bits:
            acc = (acc * acc) % n
            acc = (acc * (state.signature if state.exponent_bits[i] else 1)) % n
        return acc

    def _phase_at(self, position: int) -> range:
        for phase in self.phases:
            if phase.start == position:
                return phase
        raise CleanStartError(f"No phase starts at exponent bit {position}")

    def _check_shape(self, state: ExponentiationState) -> None:
        assert_true(
            len(state.exponent_bits) == self.params.exponent_bits,
            f"Expected {self.params.exponent_bits} exponent bits, got {len(state.exponent_bits)}",
        )
        assert_true(state.limbs == self.limbs, "State limb width does not match program")

    @method('range_check0', 'range_check1', 'foreign_field_mul')
    def first_phase(self, state: ExponentiationState) -> ExponentiationState:
        self._check_shape(state)
        # Clean start
        assert_true(state.accumulator == 0, "Accumulator must start at the sentinel", CleanStartError)
        assert_true(state.position == 0, "First phase must start at bit 0", CleanStartError)

        phase = self.phases[0]
        acc = state.signature if state.exponent_bits[0] else 1
        acc = self._ladder(state, acc, phase[1:])
        return replace(state, accumulator=acc, position=phase.stop)

    @method('range_check0', 'range_check1', 'foreign_field_mul')
    def later_phase(self, state: ExponentiationState) -> ExponentiationState:
        self._check_shape(state)
        # Must have gone through the first phase
        assert_true(state.accumulator != 0, "Accumulator is still the sentinel", CleanStartError)

        phase = self._phase_at(state.position)
        assert_true(phase.start > 0, "Later phase cannot start at bit 0", CleanStartError)
        acc = self._ladder(state, state.accumulator, phase)
        return replace(state, accumulator=acc, position=phase.stop)


class SplitExponentiation:
    """
    Runs every phase of an ExponentiationProgram as one external call.

    Example:
        exp = SplitExponentiation()
        exp.compile()
        proof = exp.verify_signature(n, 65537, s)
        assert proof.public_output.accumulator == pow(s, 65537, n)
    """

    def __init__(
        self,
        params: ProofParams = PARAMS_DEFAULT,
        backend: Optional[ProvingBackend] = None,
    ):
        self.params = params
        self.program = ExponentiationProgram(params, backend)

    def compile(self) -> VerificationKey:
        return self.program.compile()

    @property
    def verification_key(self) -> VerificationKey:
        return self.program.verification_key

    def initial_state(self, modulus: int, exponent: int, signature: int) -> ExponentiationState:
        """Validate inputs and build the sentinel state. Fails fast on width mismatch."""
        if modulus < 2:
            raise ValueError("Modulus must be at least 2")
        if modulus.bit_length() > self.params.modulus_bits:
            raise ConfigurationError(
                f"Modulus has {modulus.bit_length()} bits, configured width is {self.params.modulus_bits}"
            )
        if not 0 < signature < modulus:
            raise ValueError("Signature must be in [1, modulus)")
        # A shared factor can drive the accumulator back to the sentinel
        if gcd(signature, modulus) != 1:
            raise ValueError("Signature shares a factor with the modulus")
        return ExponentiationState(
            accumulator=0,
            modulus=modulus,
            signature=signature,
            exponent_bits=exponent_to_bits(exponent, self.params.exponent_bits),
            limbs=self.program.limbs,
        )

    def run_phases(self, modulus: int, exponent: int, signature: int) -> List[Proof]:
        """Prove every phase in order; returns all phase proofs."""
        state = self.initial_state(modulus, exponent, signature)
        proofs = [self.program.prove('first_phase', state)]
        for _ in self.program.phases[1:]:
            proofs.append(self.program.prove('later_phase', proofs[-1].public_output))
        logger.info(
            "%s: %d phases proven", self.program.name, len(proofs),
        )
        return proofs

    def verify_signature(self, modulus: int, exponent: int, signature: int) -> Proof:
        """Single external call: returns the last phase proof."""
        return self.run_phases(modulus, exponent, signature)[-1]

    def verify_phases(self, proofs: List[Proof]) -> bool:
        """Check a phase sequence: all verify, they chain, and all bits are absorbed."""
        if len(proofs) != len(self.program.phases):
            return False
        vk = self.verification_key
        if not all(p.verify(vk) for p in proofs):
            return False
        if proofs[0].method != 'first_phase':
            return False
        for left, right in zip(proofs, proofs[1:]):
            if left.public_output != right.public_input:
                return False
        return proofs[-1].public_output.position == self.params.exponent_bits
