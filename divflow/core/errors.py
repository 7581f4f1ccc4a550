"""
Error types for divflow.

Only compile-time problems are modelled as exceptions. Evaluation faults,
degenerate color ranges and near-singular point sources are handled in place
(zero substitution, midpoint normalization, epsilon regularization) and never
reach the caller.
"""


class DivflowError(Exception):
    """Base class for divflow errors."""


class CompileError(DivflowError):
    """Malformed expression source or a disallowed construct."""

    def __init__(self, message, position=None):
        self.message = message
        self.position = position
        if position is not None:
            message = f"{message} (at position {position})"
        super().__init__(message)


class UnknownIdentifierError(CompileError):
    """Reference to a name that is neither a declared variable nor a math builtin."""

    def __init__(self, name, position=None):
        self.name = name
        super().__init__(f"Unknown identifier '{name}'", position)


class LimitExceededError(CompileError):
    """Expression exceeds the parser's size or depth limits."""
