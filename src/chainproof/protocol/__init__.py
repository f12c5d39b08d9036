"""
Composable proof protocols.

- StepChain: streaming SHA-2 digest, one proof per block group, linked by
  forward state and backward "remaining" commitments
- Split exponentiation: bounded-width modular exponentiation in phases
- Merge tree: binary aggregation of arbitrary leaves into one MergeNode
- Trust store: Merkle registry of verification keys for dynamic leaves
"""

from .stepchain import (
    StepState,
    ChainPlan,
    StepChainProgram,
    StepChain,
    split_groups,
    expected_digest_commitment,
)
from .exponentiation import (
    ExponentiationState,
    ExponentiationProgram,
    SplitExponentiation,
    plan_phases,
)
from .merge import (
    MergeNode,
    MergerProgram,
    MergeTree,
    leaf_boundary,
    calculate_root_identity_digest,
)
from .merkle import MerkleTree, MerkleWitness
from .trust import TrustState, TrustStoreProgram, TrustStore

__all__ = [
    # StepChain
    "StepState",
    "ChainPlan",
    "StepChainProgram",
    "StepChain",
    "split_groups",
    "expected_digest_commitment",
    # Exponentiation
    "ExponentiationState",
    "ExponentiationProgram",
    "SplitExponentiation",
    "plan_phases",
    # Merge
    "MergeNode",
    "MergerProgram",
    "MergeTree",
    "leaf_boundary",
    "calculate_root_identity_digest",
    # Merkle
    "MerkleTree",
    "MerkleWitness",
    # Trust store
    "TrustState",
    "TrustStoreProgram",
    "TrustStore",
]
