from __future__ import annotations

from typing import Any, Callable, Sequence

import numpy as np
from scipy.optimize import OptimizeResult, least_squares as scipy_lstsq

from ._lm import LeastSquaresResult, levenberg_marquardt
from ._problem import LeastSquaresProblem

__all__ = ["least_squares"]


SCIPY_METHODS = ["trf", "dogbox"]
SUPPORTED_METHODS = ["lm"] + SCIPY_METHODS


def least_squares(
    func: Callable[..., np.ndarray],
    x0: Any,
    jac: Callable[..., Any] | None = None,
    args: Sequence[Any] = (),
    method: str = "lm",
    solver: Any = None,
    options: dict | None = None,
) -> LeastSquaresResult | OptimizeResult:
    """
    Minimize the sum of squares of a residual function.

    Parameters
    ----------
    func : callable
        Residual function ``func(x, *args) -> ndarray, shape (m,)``.
    x0 : array_like, shape (n,)
        Initial guess.
    jac : callable, optional
        Jacobian ``jac(x, *args) -> (m, n)``.  If None, finite differences
        are used.
    args : tuple, optional
        Extra arguments passed to ``func`` and ``jac``.
    method : {"lm", "trf", "dogbox"}, optional
        ``"lm"`` (default) uses the trust-region Levenberg-Marquardt solver
        in this package; the others dispatch to
        :py:func:`scipy.optimize.least_squares`.
    solver : optional
        Damped linear solver for ``method="lm"``, see
        :py:func:`levenberg_marquardt`.
    options : dict, optional
        Keyword options for the selected method.

    Returns
    -------
    result : LeastSquaresResult or scipy.optimize.OptimizeResult
        ``LeastSquaresResult`` for ``method="lm"``, SciPy's result otherwise.
    """
    if method not in SUPPORTED_METHODS:
        raise ValueError(
            f"Method '{method}' is not supported. "
            f"Supported methods are: {', '.join(SUPPORTED_METHODS)}."
        )

    if options is None:
        options = {}

    if method == "lm":
        problem = LeastSquaresProblem(x0, func, jac, args=tuple(args))
        return levenberg_marquardt(problem, solver=solver, **options)

    if solver is not None:
        raise ValueError(f"A linear solver cannot be selected for method '{method}'.")

    return scipy_lstsq(
        func,
        np.asarray(x0, dtype=float),
        jac="2-point" if jac is None else jac,
        args=tuple(args),
        method=method,
        **options,
    )
