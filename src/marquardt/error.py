"""Exceptions raised by the least-squares solvers."""

import numpy as np

__all__ = [
    "ShapeMismatchError",
    "NonFiniteError",
    "LinearSolveError",
]


class ShapeMismatchError(ValueError):
    """Array or buffer shapes are inconsistent with the problem dimensions."""


class NonFiniteError(FloatingPointError):
    """The iterate or the residual vector contains NaN or infinite values."""


class LinearSolveError(np.linalg.LinAlgError):
    """The damped linear system could not be solved."""
