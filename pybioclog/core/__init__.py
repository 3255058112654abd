"""Configuration and error types."""

from pybioclog.core.exceptions import (
    BioclogError,
    ConfigError,
    ErrorContext,
    NumericalBreakdown,
    SolverDivergence,
    StateIOError,
)
from pybioclog.core.config import Parameters, load_parameters

__all__ = [
    "BioclogError",
    "ConfigError",
    "ErrorContext",
    "NumericalBreakdown",
    "SolverDivergence",
    "StateIOError",
    "Parameters",
    "load_parameters",
]
