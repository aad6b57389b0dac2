"""Nonlinear least-squares problem definition"""

from __future__ import annotations

from typing import Any, Callable

import numpy as np
import scipy.sparse as sp

from ._config import component
from .error import ShapeMismatchError

__all__ = ["LeastSquaresProblem"]


# Relative step for central differences, balancing truncation and rounding error
FD_REL_STEP = np.finfo(float).eps ** (1.0 / 3.0)


@component
class LeastSquaresProblem:
    """
    Nonlinear least-squares problem ``min_x ||f(x)||^2``.

    Parameters
    ----------
    x : array_like, shape (n,)
        Initial guess for the parameters.
    f : callable
        Residual function with signature ``f(x, *args) -> ndarray, shape (m,)``.
    g : callable, optional
        Jacobian of the residual function with signature
        ``g(x, *args) -> ndarray or sparse matrix, shape (m, n)``.  If None,
        the Jacobian is approximated with central finite differences.
    args : tuple, optional
        Extra arguments passed to ``f`` and ``g``.

    Notes
    -----
    The residual size ``m`` is determined by evaluating ``f`` at the initial
    guess, which happens once when the solver state is initialized.  Every
    later evaluation must return the same shape.
    """

    x: Any
    f: Callable
    g: Callable | None = None
    args: tuple = ()

    def __post_init__(self):
        x = np.array(self.x, dtype=float)
        if x.ndim != 1:
            raise ShapeMismatchError(
                f"Initial guess must be a 1-D array, got shape {x.shape}."
            )
        self.x = x

    @property
    def n(self) -> int:
        return self.x.size

    def residual(self, x: np.ndarray, out: np.ndarray | None = None) -> np.ndarray:
        """Evaluate the residual vector, optionally copying it into ``out``."""
        r = np.asarray(self.f(x, *self.args), dtype=float)
        if r.ndim != 1:
            raise ShapeMismatchError(
                f"Residual function must return a 1-D array, got shape {r.shape}."
            )
        if out is None:
            return r
        if r.shape != out.shape:
            raise ShapeMismatchError(
                f"Expected residual of shape {out.shape}, got shape {r.shape}."
            )
        np.copyto(out, r)
        return out

    def jacobian(
        self,
        x: np.ndarray,
        fx: np.ndarray,
        out: np.ndarray | None = None,
    ):
        """Evaluate the Jacobian at ``x``.

        ``fx`` is the residual at ``x``; it fixes the expected number of rows.
        Dense results are copied into ``out`` when it is given; sparse results
        are returned as-is.
        """
        shape = (fx.size, x.size)

        if self.g is None:
            J = _central_difference(self.f, x, shape, self.args)
        else:
            J = self.g(x, *self.args)
            if not sp.issparse(J):
                J = np.asarray(J, dtype=float)

        if J.shape != shape:
            raise ShapeMismatchError(
                f"Expected Jacobian of shape {shape}, got shape {J.shape}."
            )

        if out is None or sp.issparse(J):
            return J

        np.copyto(out, J)
        return out


def _central_difference(f, x, shape, args):
    J = np.empty(shape)
    x_pert = x.copy()
    for j in range(x.size):
        h = FD_REL_STEP * max(1.0, abs(x[j]))
        x_pert[j] = x[j] + h
        f_plus = np.asarray(f(x_pert, *args), dtype=float)
        x_pert[j] = x[j] - h
        f_minus = np.asarray(f(x_pert, *args), dtype=float)
        x_pert[j] = x[j]
        J[:, j] = (f_plus - f_minus) / (2.0 * h)
    return J
