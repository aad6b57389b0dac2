"""Trust-region control of the Levenberg-Marquardt damping.

The damping applied to each parameter is its column curvature ``sum_i J[i, j]^2``
divided by the trust-region radius, so a larger radius permits a longer step.
After every trial step the radius is adapted from the gain ratio between the
actual and the predicted reduction of the sum of squares.
"""

from __future__ import annotations

import logging

import numpy as np
import scipy.sparse as sp

from ._convergence import assess_convergence
from .error import NonFiniteError

__all__ = [
    "MAX_RADIUS",
    "MIN_RADIUS",
    "MIN_STEP_QUALITY",
    "MIN_DIAGONAL",
    "MAX_DIAGONAL",
    "damping_diagonal",
    "gain_ratio",
    "expand_radius",
    "shrink_radius",
    "trust_region_step",
]

_LOGGER = logging.getLogger(__name__)


MAX_RADIUS = 1e16
MIN_RADIUS = 1e-16
MIN_STEP_QUALITY = 1e-3
MIN_DIAGONAL = 1e-6
MAX_DIAGONAL = 1e32


def _matvec(J, v, out):
    if sp.issparse(J):
        out[:] = J @ v
    else:
        np.dot(J, v, out=out)
    return out


def _rmatvec(J, v, out):
    if sp.issparse(J):
        out[:] = J.T @ v
    else:
        np.dot(v, J, out=out)
    return out


def damping_diagonal(J, radius: float, out: np.ndarray) -> np.ndarray:
    """
    Compute the scaled damping diagonal ``clip(sum_i J[i, j]^2) / radius``.

    Parameters
    ----------
    J : ndarray or sparse matrix, shape (m, n)
        Current Jacobian.
    radius : float
        Trust-region radius.
    out : ndarray, shape (n,)
        Buffer receiving the damping diagonal.

    Returns
    -------
    out : ndarray, shape (n,)
        The damping diagonal, written in place.
    """
    if sp.issparse(J):
        out[:] = np.asarray(J.multiply(J).sum(axis=0)).ravel()
    else:
        np.einsum("ij,ij->j", J, J, out=out)
    np.clip(out, MIN_DIAGONAL, MAX_DIAGONAL, out=out)
    out /= radius
    return out


def gain_ratio(ssr: float, trial_ssr: float, predicted_ssr: float) -> float:
    """Ratio of the actual to the predicted reduction in the sum of squares.

    A model that predicts no reduction gives a ratio of zero, as does a
    non-finite actual reduction.
    """
    predicted_reduction = ssr - predicted_ssr
    if not predicted_reduction > 0.0:
        return 0.0
    rho = (ssr - trial_ssr) / predicted_reduction
    if not np.isfinite(rho):
        return 0.0
    return float(rho)


def expand_radius(radius: float, rho: float) -> float:
    # Smooth update from Ceres: grows by up to 3x as rho -> 1
    return min(radius / max(1.0 / 3.0, 1.0 - (2.0 * rho - 1.0) ** 3), MAX_RADIUS)


def shrink_radius(radius: float, decrease_factor: float) -> float:
    return max(radius / decrease_factor, MIN_RADIUS)


def trust_region_step(
    state,
    problem,
    solver,
    xtol: float = 1e-8,
    ftol: float = 1e-8,
    grtol: float = 1e-8,
) -> tuple[float, float]:
    """
    Propose, evaluate and accept or reject one damped step.

    The state is updated in place: parameters, residuals, radius, decrease
    factor, call counters, the gradient norm and the convergence flags.  On
    return ``state.work.dx`` holds the proposed step, whether or not it was
    accepted.

    The gradient ``J^T f`` and the convergence criteria are evaluated at the
    trial point before the step is accepted or rejected, so the gradient
    test sees the residual the step was computed from.

    A trial residual that is not finite (e.g. a step leaving the domain of
    the residual function) is rejected like any other poor step and the
    trust region shrinks.  If this happens once the radius has already
    reached ``MIN_RADIUS`` the residual function is treated as diverged and
    the solve is aborted.

    Parameters
    ----------
    state : OptimizationState
        State of the current solve.
    problem : LeastSquaresProblem
        Residual and Jacobian evaluators.
    solver : DampedLinearSolver
        Backend for the damped linear subproblem.
    xtol, ftol, grtol : float, optional
        Tolerances passed to :py:func:`assess_convergence`.

    Returns
    -------
    trial_ssr : float
        Sum of squares at the trial point (``inf`` if the trial residual is
        not finite).
    rho : float
        Gain ratio of the trial step.

    Raises
    ------
    NonFiniteError
        If the trial residual is not finite and the radius cannot shrink
        any further.
    """
    work = state.work
    x, fcur, dx, dtd = state.x, state.fcur, work.dx, work.dtd

    if state.need_jacobian:
        out = state.jac if isinstance(state.jac, np.ndarray) else None
        state.jac = problem.jacobian(x, fcur, out=out)
        state.g_calls += 1
        state.need_jacobian = False
    J = state.jac

    damping_diagonal(J, state.radius, out=dtd)
    _, inner_iterations = solver.solve(J, fcur, dtd, out=dx)
    state.mul_calls += inner_iterations

    x -= dx
    problem.residual(x, out=work.ftrial)
    state.f_calls += 1

    if np.all(np.isfinite(work.ftrial)):
        trial_ssr = float(np.dot(work.ftrial, work.ftrial))
    elif state.radius > MIN_RADIUS:
        trial_ssr = np.inf
        _LOGGER.debug(f"trial residual is not finite at iteration {state.iter}")
    else:
        raise NonFiniteError(
            f"Residual is not finite at iteration {state.iter} with the trust "
            "radius at its minimum; the solve has diverged."
        )

    _matvec(J, dx, out=work.fpredict)
    state.mul_calls += 1
    work.fpredict -= fcur
    predicted_ssr = float(np.dot(work.fpredict, work.fpredict))

    rho = gain_ratio(state.ssr, trial_ssr, predicted_ssr)

    _rmatvec(J, fcur, out=dtd)
    state.maxabs_gr = float(np.max(np.abs(dtd))) if dtd.size else 0.0
    state.mul_calls += 1

    (
        state.x_converged,
        state.f_converged,
        state.gr_converged,
        state.converged,
    ) = assess_convergence(
        dx, x, state.maxabs_gr, state.ssr, trial_ssr, xtol, ftol, grtol
    )

    if rho > MIN_STEP_QUALITY:
        np.copyto(fcur, work.ftrial)
        state.ssr = trial_ssr
        state.radius = expand_radius(state.radius, rho)
        state.decrease_factor = 2.0
        state.need_jacobian = True
        _LOGGER.debug(
            f"step accepted (rho={rho:.3e}), increasing trust radius to "
            f"{state.radius:.4e}"
        )
    else:
        x += dx
        state.radius = shrink_radius(state.radius, state.decrease_factor)
        state.decrease_factor *= 2.0
        _LOGGER.debug(
            f"step rejected (rho={rho:.3e}), reducing trust radius to "
            f"{state.radius:.4e}"
        )

    return trial_ssr, rho
