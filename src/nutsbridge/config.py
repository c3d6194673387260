"""
Sampler settings and run argument validation.

Settings are plain frozen dataclasses so they can be shared read-only across
chains. Validation collects every problem before raising so a caller sees all
misconfigurations at once.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple


@dataclass(frozen=True)
class NutsSettings:
    """
    Tuning knobs for the default NUTS engine.

    Attributes
    ----------
    target_acceptance : float
        Target mean acceptance probability for step size adaptation.
    initial_step_size : float
        Step size used before adaptation starts.
    max_num_doublings : int
        Maximum tree depth of a NUTS trajectory.
    divergence_threshold : float
        Energy error above which a transition is flagged divergent.
    adapt_mass_matrix : bool
        Whether to estimate a diagonal inverse mass matrix during tuning.
    mass_matrix_window : tuple of float
        Fractions of the tuning phase delimiting the window in which draws
        are accumulated for the mass matrix estimate.
    """
    target_acceptance: float = 0.8
    initial_step_size: float = 0.1
    max_num_doublings: int = 10
    divergence_threshold: float = 1000.0
    adapt_mass_matrix: bool = True
    mass_matrix_window: Tuple[float, float] = (0.15, 0.9)

    def validate(self) -> "NutsSettings":
        """
        Check that the settings are sensible.

        Returns
        -------
        NutsSettings
            ``self``, to allow chaining.

        Raises
        ------
        ValueError
            Listing every invalid field.
        """
        errors: List[str] = []

        if not 0.0 < self.target_acceptance < 1.0:
            errors.append(f"target_acceptance must be in (0, 1), got {self.target_acceptance}")
        if self.initial_step_size <= 0:
            errors.append(f"initial_step_size must be > 0, got {self.initial_step_size}")
        if self.max_num_doublings < 1:
            errors.append(f"max_num_doublings must be >= 1, got {self.max_num_doublings}")
        if self.divergence_threshold <= 0:
            errors.append(f"divergence_threshold must be > 0, got {self.divergence_threshold}")

        start, end = self.mass_matrix_window
        if not 0.0 <= start < end <= 1.0:
            errors.append(
                f"mass_matrix_window must satisfy 0 <= start < end <= 1, got {self.mass_matrix_window}"
            )

        if errors:
            raise ValueError("Invalid NUTS settings:\n  " + "\n  ".join(errors))
        return self


def validate_run_arguments(chain_count: int, tuning: int, samples: int, n_workers: int = 1) -> None:
    """
    Validate the integer arguments of a multi-chain run.

    Raises
    ------
    ValueError
        Listing every invalid argument.
    """
    errors = []

    if chain_count < 0:
        errors.append(f"chain_count must be >= 0, got {chain_count}")
    if tuning < 0:
        errors.append(f"tuning must be >= 0, got {tuning}")
    if samples < 0:
        errors.append(f"samples must be >= 0, got {samples}")
    if n_workers < 1:
        errors.append(f"n_workers must be >= 1, got {n_workers}")

    if errors:
        raise ValueError("Invalid run arguments:\n  " + "\n  ".join(errors))


__all__ = ["NutsSettings", "validate_run_arguments"]
