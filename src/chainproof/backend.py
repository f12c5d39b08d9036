"""
Proving Backend

The proof system itself is an external collaborator. This module provides an
in-process backend with the same surface:

    compile(program) -> VerificationKey
    prove(program, method, public_input, *private) -> Proof
    verify(proof, vk) -> bool

Proving runs the method body. The body is the constraint system: every
assertion it makes must hold, otherwise ConstraintViolation propagates and no
proof exists. A successful run is sealed with a keyed BLAKE3 MAC over
(vk digest, method, public input, public output). The key never leaves the
backend instance, so a seal can only come from an actual proving run.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields as dataclass_fields
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple
import hmac
import logging
import secrets

import blake3

from .commitment import encode_fields
from .errors import (
    ConstraintViolation,
    ProgramNotCompiledError,
    VerificationError,
)
from .field import FieldElement, to_field
from .params import PARAMS_DEFAULT, ProofParams
from .tags import CommitTag, tag_bytes


logger = logging.getLogger(__name__)


# =============================================================================
# Feature Flags
# =============================================================================

@dataclass(frozen=True)
class FeatureFlags:
    """
    Structural capabilities a circuit uses.

    A verifier compiled against a ceiling of flags can only accept keys whose
    flags are within that ceiling.
    """
    range_check0: bool = False
    range_check1: bool = False
    foreign_field_add: bool = False
    foreign_field_mul: bool = False
    xor: bool = False
    rot: bool = False
    lookup: bool = False
    runtime_tables: bool = False

    @classmethod
    def none(cls) -> 'FeatureFlags':
        return cls()

    @classmethod
    def all(cls) -> 'FeatureFlags':
        return cls(**{f.name: True for f in dataclass_fields(cls)})

    @classmethod
    def of(cls, *names: str) -> 'FeatureFlags':
        return cls(**{name: True for name in names})

    @classmethod
    def from_program(cls, program: 'Program') -> 'FeatureFlags':
        """Union of the features used by every method of a program."""
        flags = cls()
        for spec in program.method_specs().values():
            flags = flags.union(spec.features)
        return flags

    def names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in dataclass_fields(self) if getattr(self, f.name))

    def union(self, other: 'FeatureFlags') -> 'FeatureFlags':
        return FeatureFlags(**{
            f.name: getattr(self, f.name) or getattr(other, f.name)
            for f in dataclass_fields(self)
        })

    def covers(self, other: 'FeatureFlags') -> bool:
        """True if every flag set in `other` is also set here."""
        return all(
            getattr(self, f.name) or not getattr(other, f.name)
            for f in dataclass_fields(self)
        )

    def to_fields(self) -> List[FieldElement]:
        return [FieldElement(int(getattr(self, f.name))) for f in dataclass_fields(self)]


# =============================================================================
# Keys and Proofs
# =============================================================================

@dataclass(frozen=True)
class VerificationKey:
    """Identity of one compiled program. Only `digest` crosses proof boundaries."""
    program: str
    methods: Tuple[str, ...]
    flags: FeatureFlags
    max_proofs_verified: int
    digest: FieldElement

    def to_fields(self) -> List[FieldElement]:
        return [self.digest]


def fields_of(value: Any) -> List[FieldElement]:
    """Flatten a public value (None, int, FieldElement, struct, sequence) to fields."""
    if value is None:
        return []
    if isinstance(value, (FieldElement, int)):
        return [to_field(value)]
    if hasattr(value, 'to_fields'):
        return list(value.to_fields())
    if isinstance(value, (list, tuple)):
        out: List[FieldElement] = []
        for item in value:
            out.extend(fields_of(item))
        return out
    raise TypeError(f"Cannot flatten {type(value).__name__} to field elements")


class VerifiableArtifact(Protocol):
    """Anything with public IO that can be checked against a verification key."""

    @property
    def public_input(self) -> Any:
        ...

    @property
    def public_output(self) -> Any:
        ...

    def verify(self, vk: VerificationKey) -> bool:
        ...


@dataclass(frozen=True)
class Proof:
    """A sealed statement: `method` of program `vk_digest` maps input to output."""
    program: str
    method: str
    vk_digest: FieldElement
    public_input: Any
    public_output: Any
    seal: bytes
    backend: 'ProvingBackend' = field(compare=False, repr=False)

    def verify(self, vk: VerificationKey) -> bool:
        return self.backend.verify(self, vk)


@dataclass(frozen=True)
class DynamicProof:
    """
    A proof from a program not fixed at the verifier's compile time.

    `ceiling` is the feature set the verifier was compiled for. A key asking
    for more than the ceiling is rejected, never downgraded.
    """
    proof: Proof
    ceiling: FeatureFlags = field(default_factory=FeatureFlags.all)
    max_proofs_verified: int = 2

    @property
    def public_input(self) -> Any:
        return self.proof.public_input

    @property
    def public_output(self) -> Any:
        return self.proof.public_output

    def verify(self, vk: VerificationKey) -> bool:
        if not self.ceiling.covers(vk.flags):
            logger.debug(
                "Key %s needs features %s outside ceiling %s",
                vk.program, vk.flags.names(), self.ceiling.names(),
            )
            return False
        if vk.max_proofs_verified > self.max_proofs_verified:
            return False
        return self.proof.verify(vk)


# =============================================================================
# Programs
# =============================================================================

@dataclass(frozen=True)
class MethodSpec:
    name: str
    features: FeatureFlags
    max_proofs_verified: int


def method(*features: str, max_proofs_verified: int = 0) -> Callable:
    """
    Mark a Program method as provable.

    Example:
        class Adder(Program):
            name = 'adder'

            @method('range_check0')
            def add(self, x, y):
                return x + y
    """
    def decorator(fn: Callable) -> Callable:
        fn.__method_spec__ = MethodSpec(
            name=fn.__name__,
            features=FeatureFlags.of(*features),
            max_proofs_verified=max_proofs_verified,
        )
        return fn
    return decorator


class Program:
    """
    Base class for provable programs.

    Subclasses set `name` and decorate their provable methods with @method.
    Each method receives the public input followed by the private witnesses
    and returns the public output.
    """

    name = 'program'

    def __init__(
        self,
        params: ProofParams = PARAMS_DEFAULT,
        backend: Optional['ProvingBackend'] = None,
    ):
        self.params = params
        self.hasher = params.hasher
        self.backend = backend or default_backend()
        self._vk: Optional[VerificationKey] = None

    @classmethod
    def method_specs(cls) -> Dict[str, MethodSpec]:
        specs = {}
        for klass in reversed(cls.__mro__):
            for attr, value in vars(klass).items():
                spec = getattr(value, '__method_spec__', None)
                if spec is not None:
                    specs[attr] = spec
        return specs

    @property
    def feature_flags(self) -> FeatureFlags:
        return FeatureFlags.from_program(self)

    @property
    def max_proofs_verified(self) -> int:
        return max((s.max_proofs_verified for s in self.method_specs().values()), default=0)

    def compile(self) -> VerificationKey:
        if self._vk is None:
            self._vk = self.backend.compile(self)
        return self._vk

    @property
    def compiled(self) -> bool:
        return self._vk is not None

    @property
    def verification_key(self) -> VerificationKey:
        if self._vk is None:
            raise ProgramNotCompiledError(f"Program {self.name!r} has not been compiled")
        return self._vk

    def prove(self, method_name: str, public_input: Any, *private: Any) -> Proof:
        return self.backend.prove(self, method_name, public_input, *private)

    def verify_self(self, proof: Proof, message: str = "Self proof does not verify") -> None:
        """In-circuit check of a proof made by this same program."""
        if not self.backend.verify(proof, self.verification_key):
            raise VerificationError(message)


# =============================================================================
# Constraint Helpers
# =============================================================================

def assert_equal(
    a: Any,
    b: Any,
    message: str,
    error: type = ConstraintViolation,
) -> None:
    """Constrain a == b (field-wise)."""
    if fields_of(a) != fields_of(b):
        raise error(message)


def assert_true(condition: bool, message: str, error: type = ConstraintViolation) -> None:
    if not condition:
        raise error(message)


def assert_verified(
    artifact: VerifiableArtifact,
    vk: VerificationKey,
    message: str = "Proof does not verify",
) -> None:
    """Constrain that `artifact` verifies against `vk`."""
    if not artifact.verify(vk):
        raise VerificationError(message)


# =============================================================================
# Backend
# =============================================================================

class ProvingBackend:
    """
    In-process proving backend.

    Thread-safe: the seal key is fixed at construction and proving has no
    shared mutable state.
    """

    def __init__(self, key: Optional[bytes] = None):
        if key is not None and len(key) != 32:
            raise ValueError(f"Backend key must be 32 bytes, got {len(key)}")
        self._key = key or secrets.token_bytes(32)

    def compile(self, program: Program) -> VerificationKey:
        specs = program.method_specs()
        if not specs:
            raise ValueError(f"Program {program.name!r} has no provable methods")
        flags = FeatureFlags.from_program(program)
        methods = tuple(sorted(specs))
        max_verified = program.max_proofs_verified

        name = program.name.encode('utf-8')
        payload = b''.join([
            len(name).to_bytes(2, 'big'),
            name,
            len(methods).to_bytes(2, 'big'),
            *(len(m).to_bytes(2, 'big') + m.encode('utf-8') for m in methods),
            bytes(f.to_int() for f in flags.to_fields()),
            max_verified.to_bytes(1, 'big'),
            program.params.hash(),
        ])
        digest = program.hasher.tagged(CommitTag.PROGRAM, payload)
        logger.debug("Compiled %s (%d methods)", program.name, len(methods))
        return VerificationKey(
            program=program.name,
            methods=methods,
            flags=flags,
            max_proofs_verified=max_verified,
            digest=digest,
        )

    def _seal(self, vk_digest: FieldElement, method_name: str, public_input: Any, public_output: Any) -> bytes:
        name = method_name.encode('utf-8')
        data = b''.join([
            tag_bytes(CommitTag.SEAL),
            vk_digest.to_bytes(),
            len(name).to_bytes(2, 'big'),
            name,
            encode_fields(CommitTag.FIELDS, fields_of(public_input)),
            encode_fields(CommitTag.FIELDS, fields_of(public_output)),
        ])
        return blake3.blake3(data, key=self._key).digest()

    def prove(self, program: Program, method_name: str, public_input: Any, *private: Any) -> Proof:
        vk = program.verification_key
        specs = program.method_specs()
        if method_name not in specs:
            raise ValueError(f"Program {program.name!r} has no method {method_name!r}")

        body = getattr(program, method_name)
        public_output = body(public_input, *private)

        proof = Proof(
            program=program.name,
            method=method_name,
            vk_digest=vk.digest,
            public_input=public_input,
            public_output=public_output,
            seal=self._seal(vk.digest, method_name, public_input, public_output),
            backend=self,
        )
        logger.debug("Proved %s.%s", program.name, method_name)
        return proof

    def verify(self, proof: Proof, vk: VerificationKey) -> bool:
        """Check a proof against a key. Never raises."""
        if proof.backend is not self:
            return False
        if proof.vk_digest != vk.digest or proof.method not in vk.methods:
            return False
        try:
            expected = self._seal(vk.digest, proof.method, proof.public_input, proof.public_output)
        except TypeError:
            return False
        return hmac.compare_digest(expected, proof.seal)


_default_backend = ProvingBackend()


def default_backend() -> ProvingBackend:
    """Process-wide backend used when a Program is built without one."""
    return _default_backend
