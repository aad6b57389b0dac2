"""Trust-region Levenberg-Marquardt for nonlinear least squares"""

import importlib.metadata

from . import error
from ._convergence import ConvergenceStatus, LMStatus, assess_convergence
from ._least_squares import least_squares
from ._linear import (
    CholeskySolver,
    CholeskySolverConfig,
    DampedLinearSolver,
    LinearSolverConfig,
    LSMRSolver,
    LSMRSolverConfig,
    QRSolver,
    QRSolverConfig,
    make_solver,
)
from ._lm import (
    LeastSquaresResult,
    LevenbergMarquardt,
    LevenbergMarquardtConfig,
    levenberg_marquardt,
)
from ._problem import LeastSquaresProblem
from ._trace import OptimizationTrace, TraceRecord

try:
    __version__ = importlib.metadata.version("marquardt")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0+unknown"

__all__ = [
    "__version__",
    "error",
    "LeastSquaresProblem",
    "levenberg_marquardt",
    "least_squares",
    "LevenbergMarquardt",
    "LevenbergMarquardtConfig",
    "LeastSquaresResult",
    "LMStatus",
    "ConvergenceStatus",
    "assess_convergence",
    "OptimizationTrace",
    "TraceRecord",
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
