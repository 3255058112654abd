"""Preconditioned Krylov solvers for the assembled systems.

The flow matrix is symmetric positive definite and is solved with
conjugate gradients and an SSOR preconditioner; the SUPG transport
matrix is non-symmetric and is solved with BiCGStab and a Jacobi
preconditioner.  Both stop at a residual of ``1e-8 * ||rhs||`` or after
``1000 * n`` iterations.
"""

from __future__ import annotations

import numpy as np
from scipy import sparse
from scipy.sparse.linalg import LinearOperator, bicgstab, cg, spsolve_triangular

from pybioclog.core.exceptions import ErrorContext, SolverDivergence

RELATIVE_TOLERANCE = 1e-8
ITERATIONS_PER_UNKNOWN = 1000
SSOR_RELAXATION = 1.2


def jacobi_preconditioner(A: sparse.spmatrix) -> LinearOperator:
    """Inverse of the diagonal of *A* as a linear operator."""
    diag = A.diagonal()
    inv = np.where(diag != 0.0, 1.0 / np.where(diag != 0.0, diag, 1.0), 1.0)
    return LinearOperator(A.shape, matvec=lambda r: inv * r, dtype=float)


def ssor_preconditioner(A: sparse.spmatrix, omega: float = SSOR_RELAXATION) -> LinearOperator:
    """Symmetric successive over-relaxation preconditioner.

    Applies ``M⁻¹ r = ω(2-ω) (D + ωU)⁻¹ D (D + ωL)⁻¹ r`` with ``L``/``U``
    the strict lower/upper triangles of *A*.
    """
    A = sparse.csr_matrix(A)
    diag = A.diagonal()
    D = sparse.diags(diag)
    lower = (D + omega * sparse.tril(A, k=-1)).tocsr()
    upper = (D + omega * sparse.triu(A, k=1)).tocsr()
    scale = omega * (2.0 - omega)

    def apply(r: np.ndarray) -> np.ndarray:
        y = spsolve_triangular(lower, np.ravel(r), lower=True)
        return scale * spsolve_triangular(upper, diag * y, lower=False)

    return LinearOperator(A.shape, matvec=apply, dtype=float)


def _check(info: int, method: str, n: int, context: ErrorContext | None) -> None:
    if info == 0:
        return
    context = context or ErrorContext()
    context.details.setdefault("method", method)
    context.details.setdefault("unknowns", n)
    if info > 0:
        raise SolverDivergence(
            f"{method} did not converge within {info} iterations.", context
        )
    raise SolverDivergence(f"{method} broke down (info={info}).", context)


def solve_symmetric(
    A: sparse.spmatrix,
    rhs: np.ndarray,
    x0: np.ndarray | None = None,
    context: ErrorContext | None = None,
) -> np.ndarray:
    """Solve an SPD system with SSOR-preconditioned CG.

    Raises:
        SolverDivergence: If CG does not reach the tolerance.
    """
    n = A.shape[0]
    x, info = cg(
        A,
        rhs,
        x0=x0,
        rtol=RELATIVE_TOLERANCE,
        atol=0.0,
        maxiter=ITERATIONS_PER_UNKNOWN * n,
        M=ssor_preconditioner(A),
    )
    _check(info, "CG", n, context)
    return x


def solve_nonsymmetric(
    A: sparse.spmatrix,
    rhs: np.ndarray,
    x0: np.ndarray | None = None,
    context: ErrorContext | None = None,
) -> np.ndarray:
    """Solve a general system with Jacobi-preconditioned BiCGStab.

    Raises:
        SolverDivergence: If BiCGStab does not converge or breaks down.
    """
    n = A.shape[0]
    x, info = bicgstab(
        A,
        rhs,
        x0=x0,
        rtol=RELATIVE_TOLERANCE,
        atol=0.0,
        maxiter=ITERATIONS_PER_UNKNOWN * n,
        M=jacobi_preconditioner(A),
    )
    _check(info, "BiCGStab", n, context)
    if not np.all(np.isfinite(x)):
        raise SolverDivergence("BiCGStab returned non-finite values.", context or ErrorContext())
    return x
