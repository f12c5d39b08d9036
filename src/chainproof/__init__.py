"""
ChainProof: Composable Proofs over Long Computations

Turns computations too large for one proof into chains and trees of small
proofs that compose into one.

- StepChain proves a SHA-2 digest block group by block group
- Split exponentiation proves RSA-size modular exponentiation in phases
- The merge tree folds any number of proofs into one constant-size node
- The trust store accepts proofs from programs registered at runtime

Usage:
    from chainproof import StepChain, MergeTree, to_field

    chain = StepChain()
    chain.compile()
    proofs = chain.run_chain(to_field(7), b"hello")

    tree = MergeTree()
    tree.compile()
    vk = chain.verification_key
    root = tree.generate_root_proof(proofs, [vk] * len(proofs))
"""

from .errors import (
    ChainProofError,
    ConstraintViolation,
    ContinuityError,
    CleanStartError,
    PaddingError,
    ConfigurationError,
    VerificationError,
    ProgramNotCompiledError,
)
from .field import FIELD_PRIME, FieldElement, to_field, to_fields, ZERO, ONE
from .tags import CommitTag, tag_bytes
from .commitment import (
    HashCore,
    CommitmentHasher,
    commit,
    commit_packed,
    digest_commitment,
)
from .params import ProofParams, PARAMS_DEFAULT, PARAMS_SHA512, PARAMS_RSA2048
from .backend import (
    FeatureFlags,
    VerificationKey,
    Proof,
    DynamicProof,
    Program,
    ProvingBackend,
    method,
    default_backend,
)
from .sha2 import sha2_hash, get_variant
from .protocol import (
    StepState,
    ChainPlan,
    StepChain,
    ExponentiationState,
    SplitExponentiation,
    plan_phases,
    MergeNode,
    MergeTree,
    calculate_root_identity_digest,
    MerkleTree,
    MerkleWitness,
    TrustState,
    TrustStore,
    expected_digest_commitment,
)
from .pss import mgf1, emsa_pss_encode, emsa_pss_verify, verify_pss_signature

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Errors
    "ChainProofError",
    "ConstraintViolation",
    "ContinuityError",
    "CleanStartError",
    "PaddingError",
    "ConfigurationError",
    "VerificationError",
    "ProgramNotCompiledError",
    # Field and commitments
    "FIELD_PRIME",
    "FieldElement",
    "to_field",
    "to_fields",
    "ZERO",
    "ONE",
    "CommitTag",
    "tag_bytes",
    "HashCore",
    "CommitmentHasher",
    "commit",
    "commit_packed",
    "digest_commitment",
    # Config
    "ProofParams",
    "PARAMS_DEFAULT",
    "PARAMS_SHA512",
    "PARAMS_RSA2048",
    # Backend
    "FeatureFlags",
    "VerificationKey",
    "Proof",
    "DynamicProof",
    "Program",
    "ProvingBackend",
    "method",
    "default_backend",
    # Hashing
    "sha2_hash",
    "get_variant",
    # Protocols
    "StepState",
    "ChainPlan",
    "StepChain",
    "ExponentiationState",
    "SplitExponentiation",
    "plan_phases",
    "MergeNode",
    "MergeTree",
    "calculate_root_identity_digest",
    "MerkleTree",
    "MerkleWitness",
    "TrustState",
    "TrustStore",
    "expected_digest_commitment",
    # PSS
    "mgf1",
    "emsa_pss_encode",
    "emsa_pss_verify",
    "verify_pss_signature",
]
