"""Solvers for the damped linear least-squares subproblem

Each Levenberg-Marquardt iteration computes the step ``dx`` minimizing

    ||J dx - f||^2 + sum_j D[j] * dx[j]^2

for the current Jacobian ``J``, residual ``f`` and damping diagonal ``D``.
The solvers here are interchangeable backends for that subproblem.  They
return the step along with the number of inner iterations they performed so
the caller can keep track of the matrix-vector product count.
"""

from __future__ import annotations

from typing import Literal, Protocol, Union

import numpy as np
import scipy.sparse as sp
from pydantic import Field
from scipy.linalg import cho_factor, cho_solve, qr, solve_triangular
from scipy.sparse.linalg import LinearOperator, lsmr

from ._config import ComponentConfig, UnionConfig, component
from .error import LinearSolveError

__all__ = [
    "DampedLinearSolver",
    "QRSolver",
    "CholeskySolver",
    "LSMRSolver",
    "QRSolverConfig",
    "CholeskySolverConfig",
    "LSMRSolverConfig",
    "LinearSolverConfig",
    "make_solver",
]


class DampedLinearSolver(Protocol):
    def solve(
        self,
        J,
        f: np.ndarray,
        damp: np.ndarray,
        out: np.ndarray | None = None,
    ) -> tuple[np.ndarray, int]:
        ...


def _as_dense(J) -> np.ndarray:
    if sp.issparse(J):
        return J.toarray()
    return np.asarray(J)


def _check_step(dx: np.ndarray, name: str) -> None:
    if not np.all(np.isfinite(dx)):
        raise LinearSolveError(
            f"{name} solver returned a non-finite step; the damped system is "
            "likely singular or badly scaled."
        )


def _store(dx: np.ndarray, out: np.ndarray | None) -> np.ndarray:
    if out is None:
        return dx
    np.copyto(out, dx)
    return out


@component
class QRSolver:
    """
    Dense solver based on a column-pivoted QR factorization.

    The damped problem is written as the ordinary least-squares problem

        min || [ J         ] dx - [ f ] ||^2
            || [ diag(√D)  ]      [ 0 ] ||

    and solved by factorizing the augmented matrix.  This avoids squaring the
    condition number of ``J``, which makes it the most robust of the dense
    backends.
    """

    def solve(self, J, f, damp, out=None):
        J = _as_dense(J)
        m, n = J.shape

        A = np.vstack([J, np.diag(np.sqrt(damp))])
        b = np.concatenate([f, np.zeros(n)])

        try:
            q, r, p = qr(A, pivoting=True, mode="economic")
            z = solve_triangular(r, q.T @ b)
        except (np.linalg.LinAlgError, ValueError) as err:
            raise LinearSolveError(f"QR solve of the damped system failed: {err}") from err

        dx = np.empty(n)
        dx[p] = z
        _check_step(dx, "QR")
        return _store(dx, out), 1


@component
class CholeskySolver:
    """
    Dense solver for the damped normal equations ``(J^T J + diag(D)) dx = J^T f``.

    Cheaper than :py:class:`QRSolver` when ``m >> n``, at the cost of squaring
    the condition number of the Jacobian.
    """

    def solve(self, J, f, damp, out=None):
        J = _as_dense(J)

        A = J.T @ J
        A[np.diag_indices_from(A)] += damp
        rhs = J.T @ f

        try:
            c_and_lower = cho_factor(A)
            dx = cho_solve(c_and_lower, rhs)
        except (np.linalg.LinAlgError, ValueError) as err:
            raise LinearSolveError(
                f"Cholesky solve of the damped normal equations failed: {err}"
            ) from err

        _check_step(dx, "Cholesky")
        return _store(dx, out), 1


@component
class LSMRSolver:
    """
    Iterative matrix-free solver using LSMR.

    Only products with ``J`` and ``J^T`` are required, so the Jacobian may be a
    dense array or any ``scipy.sparse`` matrix.  The reported iteration count
    is the number of LSMR iterations.

    Attributes
    ----------
    atol, btol : float
        Stopping tolerances passed to :py:func:`scipy.sparse.linalg.lsmr`.
    maxiter : int, optional
        Maximum number of LSMR iterations.  If None, SciPy's default (the
        number of parameters) is used.
    """

    atol: float = 1e-10
    btol: float = 1e-10
    maxiter: int | None = None

    def solve(self, J, f, damp, out=None):
        m, n = J.shape
        sqrt_damp = np.sqrt(damp)

        def matvec(v):
            v = np.ravel(v)
            return np.concatenate([J @ v, sqrt_damp * v])

        def rmatvec(u):
            u = np.ravel(u)
            return J.T @ u[:m] + sqrt_damp * u[m:]

        A = LinearOperator((m + n, n), matvec=matvec, rmatvec=rmatvec, dtype=float)
        b = np.concatenate([f, np.zeros(n)])

        try:
            dx, _istop, itn, *_ = lsmr(
                A, b, atol=self.atol, btol=self.btol, maxiter=self.maxiter
            )
        except (np.linalg.LinAlgError, ValueError) as err:
            raise LinearSolveError(f"LSMR solve of the damped system failed: {err}") from err

        _check_step(dx, "LSMR")
        return _store(dx, out), int(itn)


class QRSolverConfig(ComponentConfig):
    type: Literal["qr"] = "qr"

    def build(self) -> QRSolver:
        return QRSolver()


class CholeskySolverConfig(ComponentConfig):
    type: Literal["cholesky"] = "cholesky"

    def build(self) -> CholeskySolver:
        return CholeskySolver()


class LSMRSolverConfig(ComponentConfig):
    type: Literal["lsmr"] = "lsmr"

    atol: float = Field(1e-10, description="LSMR stopping tolerance on A.", gt=0.0)
    btol: float = Field(1e-10, description="LSMR stopping tolerance on b.", gt=0.0)
    maxiter: int | None = Field(
        None, description="Maximum number of LSMR iterations.", gt=0
    )

    def build(self) -> LSMRSolver:
        return LSMRSolver(atol=self.atol, btol=self.btol, maxiter=self.maxiter)


LinearSolverConfig = UnionConfig[QRSolverConfig, CholeskySolverConfig, LSMRSolverConfig]

_CONFIGS = {
    "qr": QRSolverConfig,
    "cholesky": CholeskySolverConfig,
    "lsmr": LSMRSolverConfig,
}


def make_solver(
    solver: Union[DampedLinearSolver, ComponentConfig, str, None] = None,
) -> DampedLinearSolver:
    """Resolve a solver name, config or instance to a damped linear solver.

    ``None`` selects the QR solver.
    """
    if solver is None:
        solver = "qr"

    if isinstance(solver, str):
        if solver not in _CONFIGS:
            raise ValueError(
                f"Linear solver '{solver}' is not supported. "
                f"Supported solvers are: {', '.join(_CONFIGS)}."
            )
        return _CONFIGS[solver]().build()

    if isinstance(solver, ComponentConfig):
        return solver.build()

    if not callable(getattr(solver, "solve", None)):
        raise TypeError(
            f"Expected a linear solver with a solve() method, got {type(solver)}."
        )
    return solver
