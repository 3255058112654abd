"""Exception hierarchy for pybioclog.

Every error raised by the package derives from :class:`BioclogError` and
carries an :class:`ErrorContext` describing where the failure happened,
so the command-line entry point can report the offending state before
exiting.

Classes
-------
ErrorContext
    Diagnostic context attached to an error.
BioclogError
    Base class.
ConfigError
    Invalid configuration, unknown model identifier, malformed restart.
NumericalBreakdown
    Non-finite or negative velocity, Péclet number or SUPG parameter.
SolverDivergence
    Linear solver or Picard loop failed to converge.
StateIOError
    Restart snapshot missing or unreadable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ErrorContext:
    """Context information attached to an error."""

    component: str | None = None
    operation: str | None = None
    timestep: int | None = None
    time: float | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def describe(self) -> str:
        parts = []
        if self.component:
            parts.append(f"component={self.component}")
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.timestep is not None:
            parts.append(f"timestep={self.timestep}")
        if self.time is not None:
            parts.append(f"time={self.time:g}")
        for key, value in self.details.items():
            parts.append(f"{key}={value}")
        return ", ".join(parts)


class BioclogError(Exception):
    """Base exception for all pybioclog errors."""

    def __init__(self, message: str, context: ErrorContext | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()

    def __str__(self) -> str:
        described = self.context.describe()
        if described:
            return f"{self.message} [{described}]"
        return self.message


class ConfigError(BioclogError, ValueError):
    """Invalid or inconsistent configuration."""


class NumericalBreakdown(BioclogError, ArithmeticError):
    """The discretisation produced a non-finite or negative quantity."""


class SolverDivergence(BioclogError, RuntimeError):
    """An iterative solver did not converge within its limits."""


class StateIOError(BioclogError):
    """A restart snapshot could not be read or written."""
