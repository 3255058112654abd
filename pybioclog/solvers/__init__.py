"""Linear solvers."""

from pybioclog.solvers.linear import solve_nonsymmetric, solve_symmetric

__all__ = ["solve_symmetric", "solve_nonsymmetric"]
