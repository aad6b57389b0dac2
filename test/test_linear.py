import numpy as np
import pytest
import scipy.sparse as sp

from marquardt import (
    CholeskySolver,
    CholeskySolverConfig,
    LSMRSolver,
    LSMRSolverConfig,
    QRSolver,
    QRSolverConfig,
    make_solver,
)
from marquardt.error import LinearSolveError


def damped_reference(J, f, damp):
    # Normal equations of min ||J dx - f||^2 + sum(damp * dx^2)
    return np.linalg.solve(J.T @ J + np.diag(damp), J.T @ f)


@pytest.fixture
def system():
    rng = np.random.default_rng(0)
    J = rng.normal(size=(8, 3))
    f = rng.normal(size=8)
    damp = np.array([0.1, 1.0, 2.5])
    return J, f, damp


class TestDampedSolvers:
    @pytest.mark.parametrize("solver", [QRSolver(), CholeskySolver()])
    def test_dense_solvers(self, system, solver):
        J, f, damp = system
        dx, iterations = solver.solve(J, f, damp)

        assert dx.shape == (3,)
        assert iterations == 1
        assert np.allclose(dx, damped_reference(J, f, damp), rtol=1e-10, atol=1e-12)

    def test_lsmr(self, system):
        J, f, damp = system
        dx, iterations = LSMRSolver(atol=1e-12, btol=1e-12).solve(J, f, damp)

        assert iterations >= 1
        assert np.allclose(dx, damped_reference(J, f, damp), rtol=1e-6, atol=1e-8)

    def test_lsmr_sparse(self, system):
        J, f, damp = system
        dx, _ = LSMRSolver(atol=1e-12, btol=1e-12).solve(sp.csr_matrix(J), f, damp)
        assert np.allclose(dx, damped_reference(J, f, damp), rtol=1e-6, atol=1e-8)

    def test_qr_sparse_is_densified(self, system):
        J, f, damp = system
        dx, _ = QRSolver().solve(sp.csr_matrix(J), f, damp)
        assert np.allclose(dx, damped_reference(J, f, damp))

    def test_output_buffer(self, system):
        J, f, damp = system
        out = np.zeros(3)
        dx, _ = QRSolver().solve(J, f, damp, out=out)
        assert dx is out
        assert np.allclose(out, damped_reference(J, f, damp))

    def test_damping_shrinks_step(self, system):
        J, f, _ = system
        small, _ = QRSolver().solve(J, f, np.full(3, 1e-8))
        large, _ = QRSolver().solve(J, f, np.full(3, 1e8))
        assert np.linalg.norm(large) < 1e-6 * np.linalg.norm(small)

    def test_cholesky_singular(self):
        J = np.array([[1.0, 1.0], [1.0, 1.0]])
        with pytest.raises(LinearSolveError):
            CholeskySolver().solve(J, np.ones(2), np.zeros(2))

    @pytest.mark.parametrize("solver", [QRSolver(), CholeskySolver()])
    def test_nonfinite_jacobian(self, solver):
        J = np.array([[np.nan, 0.0], [0.0, 1.0]])
        with pytest.raises(LinearSolveError):
            solver.solve(J, np.ones(2), np.ones(2))


class TestMakeSolver:
    def test_default(self):
        assert isinstance(make_solver(None), QRSolver)

    @pytest.mark.parametrize(
        "name, cls",
        [("qr", QRSolver), ("cholesky", CholeskySolver), ("lsmr", LSMRSolver)],
    )
    def test_by_name(self, name, cls):
        assert isinstance(make_solver(name), cls)

    def test_from_config(self):
        solver = make_solver(LSMRSolverConfig(atol=1e-6, maxiter=5))
        assert isinstance(solver, LSMRSolver)
        assert solver.atol == 1e-6
        assert solver.maxiter == 5

        assert isinstance(make_solver(QRSolverConfig()), QRSolver)
        assert isinstance(make_solver(CholeskySolverConfig()), CholeskySolver)

    def test_instance_passthrough(self):
        solver = CholeskySolver()
        assert make_solver(solver) is solver

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="not supported"):
            make_solver("svd")

    def test_invalid_object(self):
        with pytest.raises(TypeError):
            make_solver(object())
