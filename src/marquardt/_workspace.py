"""Buffers and iteration state owned by a single Levenberg-Marquardt solve"""

from __future__ import annotations

from typing import Any

import numpy as np

from ._config import component
from .error import ShapeMismatchError

__all__ = [
    "Workspace",
    "OptimizationState",
]


@component
class Workspace:
    """
    Scratch buffers reused by every iteration of a solve.

    Attributes
    ----------
    dx : ndarray, shape (n,)
        Proposed step.
    dtd : ndarray, shape (n,)
        Damping diagonal; reused to hold the gradient ``J^T f`` once the
        damping has been consumed by the linear solver.
    ftrial : ndarray, shape (m,)
        Residual at the trial point.
    fpredict : ndarray, shape (m,)
        Residual at the trial point predicted by the linearized model.
    """

    dx: np.ndarray
    dtd: np.ndarray
    ftrial: np.ndarray
    fpredict: np.ndarray

    def __post_init__(self):
        if len(self.dx) != len(self.dtd):
            raise ShapeMismatchError(
                f"The lengths of dx ({len(self.dx)}) and dtd ({len(self.dtd)}) "
                "must match."
            )
        if len(self.ftrial) != len(self.fpredict):
            raise ShapeMismatchError(
                f"The lengths of ftrial ({len(self.ftrial)}) and fpredict "
                f"({len(self.fpredict)}) must match."
            )

    @classmethod
    def allocate(cls, n: int, m: int) -> Workspace:
        return cls(
            dx=np.zeros(n),
            dtd=np.zeros(n),
            ftrial=np.zeros(m),
            fpredict=np.zeros(m),
        )


@component
class OptimizationState:
    """
    Mutable state of one Levenberg-Marquardt solve.

    The state is created by :py:meth:`initialize`, mutated in place by the
    trust-region controller on every iteration, and discarded once the result
    has been assembled.
    """

    x: np.ndarray
    fcur: np.ndarray
    work: Workspace
    jac: Any = None
    radius: float = 10.0
    decrease_factor: float = 2.0
    ssr: float = 0.0
    maxabs_gr: float = np.inf
    need_jacobian: bool = True
    iter: int = 0
    f_calls: int = 0
    g_calls: int = 0
    mul_calls: int = 0
    x_converged: bool = False
    f_converged: bool = False
    gr_converged: bool = False
    converged: bool = False

    def __post_init__(self):
        if len(self.x) != len(self.work.dx):
            raise ShapeMismatchError(
                f"The lengths of x ({len(self.x)}) and dx ({len(self.work.dx)}) "
                "must match."
            )
        if len(self.fcur) != len(self.work.ftrial):
            raise ShapeMismatchError(
                f"The lengths of fcur ({len(self.fcur)}) and ftrial "
                f"({len(self.work.ftrial)}) must match."
            )

    @classmethod
    def initialize(cls, problem, radius: float = 10.0) -> OptimizationState:
        """Evaluate the initial residual and allocate all buffers for ``problem``."""
        x = problem.x.copy()
        fcur = np.array(problem.residual(x), dtype=float)
        n, m = x.size, fcur.size

        return cls(
            x=x,
            fcur=fcur,
            work=Workspace.allocate(n, m),
            jac=np.zeros((m, n)),
            radius=float(radius),
            ssr=float(np.dot(fcur, fcur)),
            f_calls=1,
        )
