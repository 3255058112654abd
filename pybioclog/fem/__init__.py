"""Finite-element machinery: quadrature and P1 function spaces."""

from pybioclog.fem.quadrature import QuadratureRule, gauss, trapezoidal
from pybioclog.fem.space import FunctionSpace

__all__ = ["QuadratureRule", "gauss", "trapezoidal", "FunctionSpace"]
