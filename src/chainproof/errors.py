"""
Exception taxonomy.

Constraint violations stand for an unsatisfiable circuit: the proof simply
does not come into existence. Configuration errors are raised while building
programs, before anything is proven.
"""


class ChainProofError(Exception):
    """Base class for all chainproof errors."""


class ConstraintViolation(ChainProofError):
    """A circuit constraint could not be satisfied; no proof was produced."""


class ContinuityError(ConstraintViolation):
    """Adjacent boundary values or step commitments do not match."""


class CleanStartError(ConstraintViolation):
    """An accumulator was (or was not) at its sentinel value when it had to be."""


class PaddingError(ConstraintViolation):
    """Malformed PSS/MGF1 framing."""


class ConfigurationError(ChainProofError, ValueError):
    """Compile-time constants disagree with a hardcoded assumption."""


class VerificationError(ConstraintViolation):
    """
    A proof or verification key was not accepted.

    Inside a circuit this makes the constraint system unsatisfiable, like any
    other violation. Boundaries that promise a boolean answer catch it.
    """


class ProgramNotCompiledError(ChainProofError):
    """A program was asked to prove before being compiled."""
