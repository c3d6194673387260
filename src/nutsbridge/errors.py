"""
Exception types raised by nutsbridge.

The hierarchy mirrors the failure modes of a sampling run:

- ``DomainError``: a model was evaluated outside its support. Recoverable
  errors are absorbed by the sampling engine (the proposal is rejected).
- ``EngineFatalError``: the engine cannot continue (e.g. non-finite energy).
  Aborts the affected chain and carries the chain's seed.
- ``DimensionMismatchError``: a position or buffer has the wrong length.
- ``InsufficientDrawsError``: more posterior samples were requested than
  the collection holds.
- ``ChainCancelledError``: a chain stopped because its cancel event was set.
- ``ObservationError``: observed data could not be turned into a model.
"""
from __future__ import annotations

from typing import Optional


class NutsBridgeError(Exception):
    """Base class for all nutsbridge errors."""
    pass


class DomainError(NutsBridgeError):
    """
    Raised when a model is evaluated at a position outside its support.

    Parameters
    ----------
    message : str
        Description of the violated constraint.
    recoverable : bool, default=True
        Whether the sampling engine may treat the error as a rejected
        proposal. Non-recoverable domain errors abort the chain.
    """

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


class EngineFatalError(NutsBridgeError):
    """
    Unrecoverable failure inside the sampling engine.

    ``seed`` is filled in by the chain runner so callers can tell which
    chain failed.
    """

    def __init__(self, message: str, seed: Optional[int] = None):
        super().__init__(message)
        self.seed = seed

    def __str__(self) -> str:
        message = super().__str__()
        if self.seed is None:
            return message
        return f"{message} (chain seed {self.seed})"


class DimensionMismatchError(NutsBridgeError, ValueError):
    """Raised when a vector length does not match the model dimension."""

    def __init__(self, expected: int, got: int, what: str = "position"):
        super().__init__(f"Expected {what} of length {expected}, got {got}")
        self.expected = expected
        self.got = got


class InsufficientDrawsError(NutsBridgeError, ValueError):
    """Raised when more posterior samples are requested than draws exist."""

    def __init__(self, requested: int, available: int):
        super().__init__(
            f"Requested {requested} posterior samples but only {available} draws are available"
        )
        self.requested = requested
        self.available = available


class ChainCancelledError(NutsBridgeError):
    """Raised when a chain observes its cancel event between draws."""

    def __init__(self, seed: int, completed: int):
        super().__init__(f"Chain with seed {seed} cancelled after {completed} draws")
        self.seed = seed
        self.completed = completed


class ObservationError(NutsBridgeError, ValueError):
    """Raised when observed data is malformed."""
    pass


__all__ = [
    "NutsBridgeError",
    "DomainError",
    "EngineFatalError",
    "DimensionMismatchError",
    "InsufficientDrawsError",
    "ChainCancelledError",
    "ObservationError",
]
