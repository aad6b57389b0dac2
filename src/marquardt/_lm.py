"""Trust-region Levenberg-Marquardt solver for nonlinear least squares."""

from __future__ import annotations

from typing import Any, Callable, Literal, NamedTuple, Optional

import numpy as np
from pydantic import Field

from ._config import ComponentConfig, component
from ._convergence import LMStatus
from ._linear import DampedLinearSolver, LinearSolverConfig, make_solver
from ._problem import LeastSquaresProblem
from ._trace import OptimizationTrace, TraceRecord
from ._trust_region import trust_region_step
from ._workspace import OptimizationState
from .error import NonFiniteError

__all__ = [
    "LevenbergMarquardtConfig",
    "LevenbergMarquardt",
    "LeastSquaresResult",
    "levenberg_marquardt",
]


class LevenbergMarquardtConfig(ComponentConfig):
    """Configuration for the Levenberg-Marquardt solver."""

    type: Literal["levenberg_marquardt"] = "levenberg_marquardt"

    xtol: float = Field(
        1e-8, description="Tolerance on the step size relative to the parameters.", ge=0.0
    )
    ftol: float = Field(
        1e-8, description="Tolerance on the relative decrease in the sum of squares.", ge=0.0
    )
    grtol: float = Field(
        1e-8, description="Tolerance on the infinity norm of the gradient.", ge=0.0
    )
    iterations: int = Field(1_000, description="Maximum number of iterations.", ge=0)
    radius: float = Field(10.0, description="Initial trust-region radius.", gt=0.0)

    store_trace: bool = Field(False, description="Store a record of every iteration.")
    show_trace: bool = Field(False, description="Print progress while iterating.")
    show_every: int = Field(
        1, description="Print progress every ``show_every`` iterations.", gt=0
    )

    solver: Optional[LinearSolverConfig] = Field(
        None, description="Damped linear solver. Defaults to dense QR."
    )

    def build(self) -> LevenbergMarquardt:
        return LevenbergMarquardt(config=self)


class LeastSquaresResult(NamedTuple):
    """Result of a Levenberg-Marquardt solve.

    Attributes
    ----------
    method : str
        Name of the method used.
    x : ndarray
        Solution array
    ssr : float
        Final sum of squared residuals
    iterations : int
        Number of iterations
    converged : bool
        Whether any of the convergence criteria was met
    x_converged, f_converged, gr_converged : bool
        Individual convergence criteria
    xtol, ftol, grtol : float
        Tolerances used for the convergence criteria
    trace : OptimizationTrace
        Iteration records (empty unless tracing was enabled)
    f_calls : int
        Number of residual evaluations
    g_calls : int
        Number of Jacobian evaluations
    mul_calls : int
        Number of matrix-vector products, including those of the linear solver
    status : LMStatus
        Status code indicating termination reason
    message : str
        Description of termination reason
    """

    method: str
    x: np.ndarray
    ssr: float
    iterations: int
    converged: bool
    x_converged: bool
    xtol: float
    f_converged: bool
    ftol: float
    gr_converged: bool
    grtol: float
    trace: OptimizationTrace
    f_calls: int
    g_calls: int
    mul_calls: int
    status: LMStatus
    message: str

    @property
    def success(self) -> bool:
        return self.status.success


def _check_finite(values: np.ndarray, what: str, iteration: int) -> None:
    if not np.all(np.isfinite(values)):
        raise NonFiniteError(
            f"{what} contains non-finite values at iteration {iteration}; the "
            "solve has diverged."
        )


@component
class LevenbergMarquardt:
    """Configured Levenberg-Marquardt method, see :py:func:`levenberg_marquardt`."""

    config: LevenbergMarquardtConfig = None
    solver: Any = None

    def __post_init__(self):
        if self.config is None:
            self.config = LevenbergMarquardtConfig()
        if self.solver is None:
            self.solver = self.config.solver
        self.solver = make_solver(self.solver)

    def optimize(
        self,
        problem: LeastSquaresProblem,
        callback: Callable[[TraceRecord], Any] | None = None,
    ) -> LeastSquaresResult:
        config = self.config

        trace = OptimizationTrace(
            store_trace=config.store_trace,
            show_trace=config.show_trace,
            show_every=config.show_every,
            callback=callback,
        )
        tracing = trace.enabled

        state = OptimizationState.initialize(problem, radius=config.radius)
        _check_finite(state.fcur, "Initial residual", 0)

        if tracing:
            trace.update(state.iter, state.ssr, state.maxabs_gr, {"radius": state.radius})

        while not state.converged and state.iter < config.iterations:
            state.iter += 1
            _check_finite(state.x, "Parameter vector", state.iter)

            _, rho = trust_region_step(
                state,
                problem,
                self.solver,
                xtol=config.xtol,
                ftol=config.ftol,
                grtol=config.grtol,
            )

            if tracing:
                trace.update(
                    state.iter,
                    state.ssr,
                    state.maxabs_gr,
                    {"radius": state.radius, "gain_ratio": rho},
                )

        status = LMStatus.from_flags(
            state.x_converged, state.f_converged, state.gr_converged
        )
        if config.show_trace:
            print(status.message)

        return LeastSquaresResult(
            method="levenberg_marquardt",
            x=state.x.copy(),
            ssr=state.ssr,
            iterations=state.iter,
            converged=state.converged,
            x_converged=state.x_converged,
            xtol=config.xtol,
            f_converged=state.f_converged,
            ftol=config.ftol,
            gr_converged=state.gr_converged,
            grtol=config.grtol,
            trace=trace,
            f_calls=state.f_calls,
            g_calls=state.g_calls,
            mul_calls=state.mul_calls,
            status=status,
            message=status.message,
        )


def levenberg_marquardt(
    problem: LeastSquaresProblem,
    solver: DampedLinearSolver | ComponentConfig | str | None = None,
    config: LevenbergMarquardtConfig | None = None,
    callback: Callable[[TraceRecord], Any] | None = None,
    **options,
) -> LeastSquaresResult:
    """
    Solve a nonlinear least-squares problem with trust-region Levenberg-Marquardt.

    Each iteration solves the damped linear subproblem

        min_dx ||J dx - f||^2 + sum_j D[j] * dx[j]^2,   D = clip(diag(J^T J)) / radius

    and takes the step ``x - dx`` if the gain ratio between the actual and the
    predicted reduction of the sum of squares exceeds ``MIN_STEP_QUALITY``.
    The trust-region radius grows after accepted steps and shrinks, with
    exponential backoff, after rejected ones.  A trial point where the residual
    is not finite counts as a rejected step.

    Parameters
    ----------
    problem : LeastSquaresProblem
        Initial guess, residual function and (optionally) its Jacobian.
    solver : DampedLinearSolver, ComponentConfig or str, optional
        Backend for the damped linear subproblem: a solver instance, a solver
        config, or one of ``"qr"``, ``"cholesky"``, ``"lsmr"``.  Defaults to
        ``config.solver`` or, if that is unset, dense QR.
    config : LevenbergMarquardtConfig, optional
        Solver configuration.  Defaults are used when None.
    callback : callable, optional
        Called with a :py:class:`TraceRecord` after every iteration.
    **options : dict, optional
        Overrides for individual fields of ``config``, e.g. ``xtol=1e-10``.

    Returns
    -------
    result : LeastSquaresResult
        Solution, convergence flags, trace and call counters.

    Raises
    ------
    NonFiniteError
        If the parameters or the initial residual are not finite, or trial
        residuals are still not finite once the trust region has shrunk to
        its minimum radius.
    LinearSolveError
        If the damped linear subproblem cannot be solved.
    ShapeMismatchError
        If the residual or Jacobian functions return arrays of the wrong shape.

    Examples
    --------
    >>> import numpy as np
    >>> from marquardt import LeastSquaresProblem, levenberg_marquardt
    >>>
    >>> def f(x):
    ...     return np.array([x[0] - 3.0, x[1] - 5.0])
    >>>
    >>> def g(x):
    ...     return np.eye(2)
    >>>
    >>> result = levenberg_marquardt(LeastSquaresProblem(np.zeros(2), f, g))
    >>> np.allclose(result.x, [3.0, 5.0])
    True
    """
    if config is None:
        config = LevenbergMarquardtConfig(**options)
    elif options:
        config = LevenbergMarquardtConfig(**{**config.model_dump(), **options})

    method = LevenbergMarquardt(config=config, solver=solver)
    return method.optimize(problem, callback=callback)
