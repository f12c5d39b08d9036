"""
Dynamic Trust Store

A Merkle registry of verification-key digests. An aggregator that accepts
proofs from programs unknown at its own compile time checks instead that the
proof's key sits at a registered slot of a tree whose root it knows.

The root is the only shared state. It travels through every registration and
validation as part of the public input and output, so each consumer sees one
consistent view. Registration only writes into an empty slot.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, List, Optional, Union
import logging
import threading

from ..backend import (
    DynamicProof,
    FeatureFlags,
    Program,
    Proof,
    ProvingBackend,
    VerificationKey,
    assert_equal,
    assert_true,
    assert_verified,
    fields_of,
    method,
)
from ..errors import ConstraintViolation
from ..field import ZERO, FieldElement, to_field
from ..params import PARAMS_DEFAULT, ProofParams
from .merkle import MerkleTree, MerkleWitness


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrustState:
    """Public state of the store: the registry root plus an application value."""
    tree_root: FieldElement
    state: Any = ZERO

    def to_fields(self) -> List[FieldElement]:
        return [self.tree_root] + fields_of(self.state)


class TrustStoreProgram(Program):
    """
    Registry program.

    `ceiling` is the feature set this verifier accepts. It is part of the
    program's identity, so two stores with different ceilings have different
    keys.
    """

    name = 'trust-store'

    def __init__(
        self,
        ceiling: FeatureFlags,
        max_child_proofs: int = 0,
        params: ProofParams = PARAMS_DEFAULT,
        backend: Optional[ProvingBackend] = None,
    ):
        super().__init__(params, backend)
        self.ceiling = ceiling
        self.max_child_proofs = max_child_proofs
        self.height = params.trust_tree_height
        self.name = 'trust-store[{}]/{}'.format(','.join(ceiling.names()), max_child_proofs)

    def _accept(self, proof: Any) -> DynamicProof:
        if isinstance(proof, DynamicProof):
            proof = proof.proof
        return DynamicProof(proof, ceiling=self.ceiling, max_proofs_verified=self.max_child_proofs)

    def _check_slot(self, slot_index: int, witness: MerkleWitness) -> None:
        assert_true(
            witness.height == self.height,
            f"Witness height {witness.height} does not match tree height {self.height}",
        )
        assert_true(
            witness.calculate_index() == slot_index,
            f"Witness is not for slot {slot_index}",
        )

    @method()
    def register(
        self,
        state: TrustState,
        slot_index: int,
        vk: VerificationKey,
        witness: MerkleWitness,
    ) -> TrustState:
        # Access control over who may register lives outside this program
        self._check_slot(slot_index, witness)
        assert_equal(
            witness.calculate_root(ZERO, self.hasher), state.tree_root,
            "Provided witness not correct or slot not empty",
        )
        return TrustState(
            tree_root=witness.calculate_root(vk.digest, self.hasher),
            state=state.state,
        )

    @method(max_proofs_verified=1)
    def verify_in_slot(
        self,
        root: FieldElement,
        slot_index: int,
        vk: VerificationKey,
        witness: MerkleWitness,
        proof: Any,
    ) -> FieldElement:
        self._check_slot(slot_index, witness)
        assert_equal(
            witness.calculate_root(vk.digest, self.hasher), root,
            "Witness with provided key not correct",
        )
        assert_verified(self._accept(proof), vk, "Proof does not verify against registered key")
        return vk.digest

    @method(max_proofs_verified=2)
    def validate(
        self,
        state: TrustState,
        previous: Proof,
        vk: VerificationKey,
        witness: MerkleWitness,
        proof: Any,
    ) -> TrustState:
        self.verify_self(previous, "Previous store proof does not verify")
        assert_equal(previous.public_output, state, "Previous store state does not match")

        assert_equal(
            witness.calculate_root(vk.digest, self.hasher), state.tree_root,
            "Witness with provided key not correct",
        )
        dynamic = self._accept(proof)
        assert_verified(dynamic, vk, "Proof does not verify against registered key")

        assert_equal(dynamic.public_input, state.state, "Proof does not start from the store state")
        return TrustState(tree_root=state.tree_root, state=dynamic.public_output)


class TrustStore:
    """
    Host-side driver holding the current root and a mirror of the tree.

    Registrations are serialized: each one reads the root the previous one
    produced. A witness taken before another registration is stale and is
    rejected.

    Example:
        store = TrustStore(representative_program)
        store.register(3, vk, store.witness(3))
        ok = store.verify_against_slot(3, vk, store.witness(3), proof)
    """

    def __init__(
        self,
        representative: Union[Program, FeatureFlags],
        params: ProofParams = PARAMS_DEFAULT,
        backend: Optional[ProvingBackend] = None,
        initial_state: Any = ZERO,
    ):
        if isinstance(representative, FeatureFlags):
            ceiling = representative
            max_child_proofs = 0
        else:
            ceiling = FeatureFlags.from_program(representative)
            max_child_proofs = representative.max_proofs_verified

        self.params = params
        self.program = TrustStoreProgram(ceiling, max_child_proofs, params, backend)
        self.tree = MerkleTree(params.trust_tree_height, self.program.hasher)
        self.root = self.tree.root
        self.state = initial_state
        self.head: Optional[Proof] = None
        self._lock = threading.Lock()

    @property
    def ceiling(self) -> FeatureFlags:
        return self.program.ceiling

    @property
    def slot_count(self) -> int:
        return self.tree.leaf_count

    def compile(self) -> VerificationKey:
        return self.program.compile()

    @property
    def verification_key(self) -> VerificationKey:
        return self.program.verification_key

    def witness(self, slot_index: int) -> MerkleWitness:
        """Witness for a slot against the current root."""
        return self.tree.get_witness(slot_index)

    def register(self, slot_index: int, vk: VerificationKey, witness: MerkleWitness) -> FieldElement:
        """
        Write `vk` into an empty slot.

        Returns:
            The new root

        Raises:
            ConstraintViolation: stale or wrong witness, or occupied slot
        """
        if not 0 <= slot_index < self.slot_count:
            raise IndexError(f"Slot {slot_index} out of range [0, {self.slot_count})")
        with self._lock:
            proof = self.program.prove(
                'register', TrustState(self.root, self.state), slot_index, vk, witness,
            )
            self.tree.set_leaf(slot_index, vk.digest)
            new_root = proof.public_output.tree_root
            # The mirror and the proven root must agree
            if new_root != self.tree.root:
                raise RuntimeError("Tree mirror diverged from proven root")
            self.root = new_root
            self.head = proof
        logger.info("Registered key %s at slot %d", vk.program, slot_index)
        return new_root

    def verify_against_slot(
        self,
        slot_index: int,
        vk: VerificationKey,
        witness: MerkleWitness,
        proof: Any,
        root: Optional[FieldElement] = None,
    ) -> bool:
        """
        Check that `vk` is registered at `slot_index` and `proof` verifies
        against it.

        Rejections are reported as False, never raised.
        """
        root = self.root if root is None else to_field(root)
        try:
            self.program.prove('verify_in_slot', root, slot_index, vk, witness, proof)
        except ConstraintViolation as e:
            logger.warning("Rejected proof for slot %d: %s", slot_index, e)
            return False
        return True

    def validate(self, vk: VerificationKey, witness: MerkleWitness, proof: Any) -> Proof:
        """
        Advance the application state by one registered-program proof.

        The proof's public input must equal the current state; its public
        output becomes the new state.
        """
        if self.head is None:
            raise ValueError("No keys registered")
        with self._lock:
            result = self.program.prove(
                'validate', TrustState(self.root, self.state), self.head, vk, witness, proof,
            )
            self.head = result
            self.state = result.public_output.state
        return result
