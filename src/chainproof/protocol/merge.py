"""
Merge Tree

Folds a binary tree of proofs into one proof whose public output is a
constant-size MergeNode:

    left            boundary value before the merged range
    right           boundary value after the merged range
    identity_digest order-sensitive digest of every contributing program

Leaves are dynamic: each is verified against a caller-supplied key. Inner
nodes are verified against the merger's own key. Every merge enforces
continuity, left.right == right.left.
"""

from __future__ import annotations
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple
import logging

from ..backend import (
    DynamicProof,
    FeatureFlags,
    Program,
    Proof,
    ProvingBackend,
    VerificationKey,
    assert_equal,
    assert_verified,
    method,
)
from ..commitment import CommitmentHasher
from ..errors import ContinuityError
from ..field import ZERO, FieldElement, to_field
from ..params import PARAMS_DEFAULT, ProofParams


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergeNode:
    """A contiguous, opaque range of a larger computation."""
    left: FieldElement
    right: FieldElement
    identity_digest: FieldElement = ZERO

    def to_fields(self) -> List[FieldElement]:
        return [self.left, self.right, self.identity_digest]


def leaf_boundary(artifact: Any) -> Tuple[FieldElement, FieldElement]:
    """
    Boundary values of any leaf.

    A leaf whose output is a MergeNode contributes (left, right). A leaf with
    one commitment in and one out, such as a StepChain step, contributes
    (public_input, public_output).
    """
    out = artifact.public_output
    if isinstance(out, MergeNode):
        return out.left, out.right
    return to_field(artifact.public_input), to_field(out)


def as_dynamic(proof: Any) -> DynamicProof:
    if isinstance(proof, DynamicProof):
        return proof
    return DynamicProof(proof, ceiling=FeatureFlags.all())


class MergerProgram(Program):
    """The merge program; its own proofs are the inner nodes of the tree."""

    name = 'merger'

    @method(max_proofs_verified=2)
    def merge_leaves(
        self,
        _: None,
        proof_left: DynamicProof,
        vk_left: VerificationKey,
        proof_right: DynamicProof,
        vk_right: VerificationKey,
    ) -> MergeNode:
        assert_verified(proof_left, vk_left, "Left leaf does not verify against its key")
        assert_verified(proof_right, vk_right, "Right leaf does not verify against its key")

        left_start, left_end = leaf_boundary(proof_left)
        right_start, right_end = leaf_boundary(proof_right)
        assert_equal(left_end, right_start, "Leaf boundaries do not chain", ContinuityError)

        return MergeNode(
            left=left_start,
            right=right_end,
            identity_digest=self.hasher(vk_left.digest, vk_right.digest),
        )

    @method(max_proofs_verified=1)
    def process_single_leaf(self, _: None, proof: DynamicProof, vk: VerificationKey) -> MergeNode:
        assert_verified(proof, vk, "Leaf does not verify against its key")
        start, end = leaf_boundary(proof)
        return MergeNode(left=start, right=end, identity_digest=vk.digest)

    @method(max_proofs_verified=2)
    def merge_mergers(self, _: None, proof_left: Proof, proof_right: Proof) -> MergeNode:
        # Children come from this program, so the key is implicit
        self.verify_self(proof_left, "Left merge proof does not verify")
        self.verify_self(proof_right, "Right merge proof does not verify")

        out_left: MergeNode = proof_left.public_output
        out_right: MergeNode = proof_right.public_output
        assert_equal(out_left.right, out_right.left, "Merge boundaries do not chain", ContinuityError)

        return MergeNode(
            left=out_left.left,
            right=out_right.right,
            identity_digest=self.hasher(out_left.identity_digest, out_right.identity_digest),
        )


class MergeTree:
    """
    Host-side driver for a MergerProgram.

    Example:
        tree = MergeTree()
        tree.compile()
        ab = tree.merge_leaves(proof_a, vk_a, proof_b, vk_b)
        cd = tree.merge_leaves(proof_c, vk_c, proof_d, vk_d)
        root = tree.merge_mergers(ab, cd)
    """

    def __init__(
        self,
        params: ProofParams = PARAMS_DEFAULT,
        backend: Optional[ProvingBackend] = None,
    ):
        self.params = params
        self.program = MergerProgram(params, backend)

    def compile(self) -> VerificationKey:
        return self.program.compile()

    @property
    def verification_key(self) -> VerificationKey:
        return self.program.verification_key

    def merge_leaves(self, proof_left: Any, vk_left: VerificationKey, proof_right: Any, vk_right: VerificationKey) -> Proof:
        return self.program.prove(
            'merge_leaves', None,
            as_dynamic(proof_left), vk_left,
            as_dynamic(proof_right), vk_right,
        )

    def process_single_leaf(self, proof: Any, vk: VerificationKey) -> Proof:
        return self.program.prove('process_single_leaf', None, as_dynamic(proof), vk)

    def merge_mergers(self, proof_left: Proof, proof_right: Proof) -> Proof:
        return self.program.prove('merge_mergers', None, proof_left, proof_right)

    def verify(self, proof: Proof) -> bool:
        return proof.verify(self.verification_key)

    def generate_root_proof(
        self,
        proofs: Sequence[Any],
        vks: Sequence[VerificationKey],
        executor: Optional[Executor] = None,
    ) -> Proof:
        """
        Fold a left-to-right sequence of leaves into one root proof.

        Leaves are merged pairwise, an odd last leaf is wrapped on its own,
        and odd nodes at higher levels are carried up unchanged. With an
        executor, all merges of one level run concurrently.
        """
        if len(proofs) != len(vks):
            raise ValueError("Number of proofs must match number of verification keys")
        if not proofs:
            raise ValueError("Empty array of proofs")

        for i in range(len(proofs) - 1):
            _, left_end = leaf_boundary(proofs[i])
            right_start, _ = leaf_boundary(proofs[i + 1])
            if left_end != right_start:
                raise ContinuityError(
                    f"Neighborhood mismatch between proofs at indices {i} and {i + 1}: "
                    f"left.right ({left_end}) != right.left ({right_start})"
                )

        jobs: List[Callable[[], Proof]] = []
        for i in range(0, len(proofs) - 1, 2):
            jobs.append(lambda i=i: self.merge_leaves(proofs[i], vks[i], proofs[i + 1], vks[i + 1]))
        if len(proofs) % 2 == 1:
            jobs.append(lambda: self.process_single_leaf(proofs[-1], vks[-1]))
        level = _run(jobs, executor)
        logger.info("Merged %d leaves into %d nodes", len(proofs), len(level))

        while len(level) > 1:
            current = level
            jobs = [
                lambda i=i: self.merge_mergers(current[i], current[i + 1])
                for i in range(0, len(current) - 1, 2)
            ]
            level = _run(jobs, executor)
            if len(current) % 2 == 1:
                level.append(current[-1])
            logger.info("Merged level of %d nodes into %d", len(current), len(level))

        return level[0]


def _run(jobs: List[Callable[[], Proof]], executor: Optional[Executor]) -> List[Proof]:
    if executor is None:
        return [job() for job in jobs]
    return [f.result() for f in [executor.submit(job) for job in jobs]]


def calculate_root_identity_digest(
    vks: Sequence[VerificationKey],
    hasher: Optional[CommitmentHasher] = None,
) -> FieldElement:
    """
    The identity digest generate_root_proof produces for these leaf keys.

    Pairs are hashed left to right; an odd last element is carried up.
    """
    if not vks:
        raise ValueError("Empty array of VerificationKeys")
    h = hasher or PARAMS_DEFAULT.hasher

    level = [vk.digest for vk in vks]
    while len(level) > 1:
        nxt = [h(level[i], level[i + 1]) for i in range(0, len(level) - 1, 2)]
        if len(level) % 2 == 1:
            nxt.append(level[-1])
        level = nxt
    return level[0]
