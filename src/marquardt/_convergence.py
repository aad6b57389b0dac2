from __future__ import annotations

from enum import IntEnum
from typing import NamedTuple

import numpy as np

__all__ = [
    "ConvergenceStatus",
    "LMStatus",
    "assess_convergence",
]


class ConvergenceStatus(NamedTuple):
    x_converged: bool
    f_converged: bool
    gr_converged: bool
    converged: bool


class LMStatus(IntEnum):
    """Status codes for Levenberg-Marquardt optimization results."""

    # Success codes (convergence achieved)
    FTOL_REACHED = 1  # Relative decrease in the sum of squares
    XTOL_REACHED = 2  # Step size relative to the parameters
    BOTH_TOL_REACHED = 3  # Both ftol and xtol satisfied
    GRTOL_REACHED = 4  # Gradient infinity norm

    # Failure codes
    MAX_ITER = 5  # Iteration limit reached

    @property
    def message(self) -> str:
        """Get descriptive message for this status code."""
        messages = {
            self.FTOL_REACHED: "Relative reduction in the sum of squares is at most ftol",
            self.XTOL_REACHED: "Step size relative to the parameters is at most xtol",
            self.BOTH_TOL_REACHED: "Conditions for ftol and xtol both hold",
            self.GRTOL_REACHED: "Infinity norm of the gradient is at most grtol",
            self.MAX_ITER: "Number of iterations has reached the limit",
        }
        return messages.get(self, "Unknown status")

    @property
    def success(self) -> bool:
        """Check if this status indicates successful convergence."""
        return self is not LMStatus.MAX_ITER

    @classmethod
    def from_flags(
        cls, x_converged: bool, f_converged: bool, gr_converged: bool
    ) -> LMStatus:
        if gr_converged:
            return cls.GRTOL_REACHED
        if x_converged and f_converged:
            return cls.BOTH_TOL_REACHED
        if f_converged:
            return cls.FTOL_REACHED
        if x_converged:
            return cls.XTOL_REACHED
        return cls.MAX_ITER


def assess_convergence(
    dx: np.ndarray,
    x: np.ndarray,
    maxabs_gr: float,
    ssr: float,
    trial_ssr: float,
    xtol: float,
    ftol: float,
    grtol: float,
) -> ConvergenceStatus:
    """
    Evaluate the stopping criteria after a trial step.

    Parameters
    ----------
    dx : ndarray, shape (n,)
        Step proposed in this iteration.
    x : ndarray, shape (n,)
        Current parameters.
    maxabs_gr : float
        Infinity norm of the gradient ``J^T f``.
    ssr : float
        Sum of squares before the step.
    trial_ssr : float
        Sum of squares at the trial point.
    xtol, ftol, grtol : float
        Tolerances on the step size, the relative decrease in the sum of
        squares and the gradient norm.

    Returns
    -------
    status : ConvergenceStatus
        The three individual criteria and their logical OR.
    """
    maxabs_dx = np.max(np.abs(dx)) if dx.size else 0.0
    maxabs_x = np.max(np.abs(x)) if x.size else 0.0

    x_converged = bool(maxabs_dx < xtol * (xtol + maxabs_x))
    f_converged = bool(abs(ssr - trial_ssr) <= ftol * ssr)
    gr_converged = bool(maxabs_gr <= grtol)

    return ConvergenceStatus(
        x_converged,
        f_converged,
        gr_converged,
        x_converged or f_converged or gr_converged,
    )
