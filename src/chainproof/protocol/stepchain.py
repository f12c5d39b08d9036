"""
StepChain: Streaming Digest Proofs

Proves that a long message was folded into a SHA-2 digest one bounded block
group at a time. Every step proof has exactly one commitment in and one out,
whatever the total input size.

Off the restricted path the prover precomputes:

    S_0 = IV,  S_{i+1} = compress(S_i, group_i)
    C_i = H(S_i)
    R_N = 0,   R_i = H(C_{i+1}, R_{i+1})

R_i commits, in order, to every state after S_i. Step i receives
(S_i, salt, R_{i+1}) privately, recomputes S_{i+1}, rebuilds R_i from it and
checks the public input against H(S_i, salt, R_i) (or against 0 at genesis).
A swapped, skipped or reordered group changes S_{i+1} and hence R_i, so the
check fails.

Output switches from H(S_{i+1}, salt, R_{i+1}) to H(digest, salt) exactly
when R_{i+1} is the zero sentinel.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import hashlib
import logging
import time

from ..backend import (
    Program,
    Proof,
    ProvingBackend,
    VerificationKey,
    assert_equal,
    assert_true,
    method,
)
from ..commitment import CommitmentHasher, digest_commitment
from ..errors import ContinuityError
from ..field import ZERO, FieldElement, to_field
from ..params import PARAMS_DEFAULT, ProofParams
from ..sha2 import Sha2Variant, Words, compression, digest, get_variant, initial_state, padding


logger = logging.getLogger(__name__)

BlockGroup = Tuple[Words, ...]


@dataclass(frozen=True)
class StepState:
    """
    Private state carried into one step.

    - core_state: running SHA-2 state before the step's blocks
    - salt: personalizes the final digest commitment
    - remaining: commitment to every state after the one this step produces
      (zero when the step is the last)
    """
    core_state: Words
    salt: FieldElement
    remaining: FieldElement

    def to_fields(self) -> List[FieldElement]:
        return [FieldElement(w) for w in self.core_state] + [self.salt, self.remaining]


@dataclass(frozen=True)
class ChainPlan:
    """
    Precomputed forward and backward chains for one message.

    states[i] is S_i, commitments[i] is C_i, remaining[i] is R_i, for
    i in 0..N where N = len(groups).
    """
    algorithm: str
    salt: FieldElement
    groups: Tuple[BlockGroup, ...]
    states: Tuple[Words, ...]
    commitments: Tuple[FieldElement, ...]
    remaining: Tuple[FieldElement, ...]

    @property
    def steps(self) -> int:
        return len(self.groups)

    def witness(self, i: int) -> StepState:
        """Private input for step i."""
        return StepState(
            core_state=self.states[i],
            salt=self.salt,
            remaining=self.remaining[i + 1],
        )


def split_groups(blocks: Sequence[Words], group_size: int) -> Tuple[BlockGroup, ...]:
    """Split padded blocks into consecutive groups; the last may be shorter."""
    return tuple(
        tuple(blocks[i:i + group_size]) for i in range(0, len(blocks), group_size)
    )


def expected_digest_commitment(
    salt: FieldElement,
    data: bytes,
    algorithm: str = 'sha2_256',
    hasher: Optional[CommitmentHasher] = None,
) -> FieldElement:
    """
    Reference value for the last step's output: H(digest(data), salt).

    Uses hashlib for the digest, independent of the in-circuit SHA-2.
    """
    get_variant(algorithm)
    raw = hashlib.new(algorithm.replace('sha2_', 'sha'), data).digest()
    if hasher is None:
        return digest_commitment(raw, to_field(salt))
    return digest_commitment(raw, to_field(salt), hasher)


class StepChainProgram(Program):
    """One bounded step of a streaming SHA-2 computation."""

    def __init__(
        self,
        params: ProofParams = PARAMS_DEFAULT,
        backend: Optional[ProvingBackend] = None,
    ):
        super().__init__(params, backend)
        self.variant: Sha2Variant = params.variant
        self.name = f'stepchain-{self.variant.name}'
        self._initial_commitment = self.hasher(*initial_state(self.variant))

    @method('xor', 'rot', 'range_check0', 'range_check1')
    def iterate(self, in_comm: FieldElement, state: StepState, blocks: BlockGroup) -> FieldElement:
        assert_true(
            1 <= len(blocks) <= self.params.blocks_per_step,
            f"Step absorbs 1..{self.params.blocks_per_step} blocks, got {len(blocks)}",
        )
        h = self.hasher
        is_initial = h(*state.core_state) == self._initial_commitment

        next_state = state.core_state
        for block in blocks:
            next_state = compression(self.variant, next_state, block)
        next_comm = h(*next_state)

        # R_i rebuilt from the state this step actually produced
        prev_remaining = h(next_comm, state.remaining)
        expected_in = ZERO if is_initial else h(*state.core_state, state.salt, prev_remaining)
        assert_equal(
            in_comm,
            expected_in,
            "Step input does not match the committed chain",
            error=ContinuityError,
        )

        if state.remaining.is_zero():
            return digest_commitment(digest(self.variant, next_state), state.salt, h)
        return h.packed(StepState(next_state, state.salt, state.remaining))


class StepChain:
    """
    Drives a StepChainProgram over a whole message.

    Example:
        chain = StepChain()
        chain.compile()
        proofs = chain.run_chain(salt, data)
        assert proofs[-1].public_output == expected_digest_commitment(salt, data)
    """

    def __init__(
        self,
        params: ProofParams = PARAMS_DEFAULT,
        backend: Optional[ProvingBackend] = None,
    ):
        self.params = params
        self.variant = params.variant
        self.hasher = params.hasher
        self.program = StepChainProgram(params, backend)

    def compile(self) -> VerificationKey:
        return self.program.compile()

    @property
    def verification_key(self) -> VerificationKey:
        return self.program.verification_key

    def plan(self, salt: FieldElement, data: bytes) -> ChainPlan:
        """Precompute S_0..S_N, C_0..C_N and R_0..R_N for `data`."""
        salt = to_field(salt)
        blocks = padding(self.variant, data)
        groups = split_groups(blocks, self.params.blocks_per_step)

        state = initial_state(self.variant)
        states = [state]
        for group in groups:
            for block in group:
                state = compression(self.variant, state, block)
            states.append(state)

        commitments = [self.hasher(*s) for s in states]

        n = len(groups)
        remaining = [ZERO] * (n + 1)
        for i in range(n - 1, -1, -1):
            remaining[i] = self.hasher(commitments[i + 1], remaining[i + 1])

        return ChainPlan(
            algorithm=self.variant.name,
            salt=salt,
            groups=groups,
            states=tuple(states),
            commitments=tuple(commitments),
            remaining=tuple(remaining),
        )

    def prove_step(self, plan: ChainPlan, i: int, in_comm: FieldElement) -> Proof:
        return self.program.prove('iterate', in_comm, plan.witness(i), plan.groups[i])

    def prove_plan(self, plan: ChainPlan) -> List[Proof]:
        """Prove every step in order; each step's output feeds the next."""
        proofs: List[Proof] = []
        in_comm = ZERO
        for i in range(plan.steps):
            start = time.perf_counter()
            proof = self.prove_step(plan, i, in_comm)
            logger.info(
                "%s step %d / %d (%.1f ms)",
                self.program.name, i + 1, plan.steps,
                (time.perf_counter() - start) * 1000,
            )
            proofs.append(proof)
            in_comm = proof.public_output
        return proofs

    def run_chain(self, salt: FieldElement, data: bytes) -> List[Proof]:
        """One proof per block group; the last one outputs the digest commitment."""
        return self.prove_plan(self.plan(salt, data))

    def expected_digest_commitment(self, salt: FieldElement, data: bytes) -> FieldElement:
        return expected_digest_commitment(salt, data, self.variant.name, self.hasher)

    def verify_chain(
        self,
        proofs: Sequence[Proof],
        salt: Optional[FieldElement] = None,
        data: Optional[bytes] = None,
    ) -> bool:
        """
        Check a proof sequence: every proof verifies, the first starts at the
        genesis marker, outputs feed inputs, and (if given) the last output is
        the digest commitment of `data` under `salt`.
        """
        if not proofs:
            return False
        vk = self.verification_key
        if not all(p.verify(vk) for p in proofs):
            return False
        if proofs[0].public_input != ZERO:
            return False
        for left, right in zip(proofs, proofs[1:]):
            if left.public_output != right.public_input:
                return False
        if salt is not None and data is not None:
            return proofs[-1].public_output == self.expected_digest_commitment(salt, data)
        return True
