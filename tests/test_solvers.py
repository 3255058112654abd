"""Tests for the preconditioned Krylov solvers."""

import numpy as np
import pytest
from scipy import sparse

from pybioclog.core.exceptions import ErrorContext, SolverDivergence
from pybioclog.solvers.linear import (
    _check,
    jacobi_preconditioner,
    solve_nonsymmetric,
    solve_symmetric,
    ssor_preconditioner,
)


def _spd(n=20):
    return sparse.diags([-np.ones(n - 1), 2.5 * np.ones(n), -np.ones(n - 1)], [-1, 0, 1]).tocsr()


def _advective(n=20):
    return sparse.diags([-1.5 * np.ones(n - 1), 3.0 * np.ones(n), -0.5 * np.ones(n - 1)], [-1, 0, 1]).tocsr()


class TestPreconditioners:
    def test_jacobi(self):
        A = _spd(5)
        np.testing.assert_allclose(jacobi_preconditioner(A).matvec(np.full(5, 2.5)), 1.0)

    def test_jacobi_zero_diagonal(self):
        A = sparse.csr_matrix(np.array([[0.0, 1.0], [1.0, 2.0]]))
        np.testing.assert_allclose(jacobi_preconditioner(A).matvec(np.array([3.0, 4.0])), [3.0, 2.0])

    def test_ssor_exact_for_diagonal(self):
        A = sparse.diags(np.array([2.0, 4.0, 8.0])).tocsr()
        M = ssor_preconditioner(A, omega=1.0)
        np.testing.assert_allclose(M.matvec(np.array([2.0, 4.0, 8.0])), 1.0)


class TestSolvers:
    def test_symmetric(self):
        A = _spd()
        x_true = np.linspace(0.0, 1.0, 20)
        x = solve_symmetric(A, A @ x_true)
        np.testing.assert_allclose(x, x_true, rtol=1e-6, atol=1e-8)

    def test_symmetric_initial_guess(self):
        A = _spd()
        x_true = np.ones(20)
        x = solve_symmetric(A, A @ x_true, x0=x_true)
        np.testing.assert_allclose(x, x_true)

    def test_nonsymmetric(self):
        A = _advective()
        x_true = np.sin(np.linspace(0.0, 3.0, 20))
        x = solve_nonsymmetric(A, A @ x_true)
        np.testing.assert_allclose(x, x_true, rtol=1e-6, atol=1e-8)


class TestDivergence:
    def test_iteration_cap(self):
        with pytest.raises(SolverDivergence, match="CG did not converge") as info:
            _check(25, "CG", 10, ErrorContext(component="flow"))
        assert info.value.context.details["unknowns"] == 10
        assert "component=flow" in str(info.value)

    def test_breakdown(self):
        with pytest.raises(SolverDivergence, match="broke down"):
            _check(-1, "BiCGStab", 10, None)

    def test_success_is_silent(self):
        _check(0, "CG", 10, None)
