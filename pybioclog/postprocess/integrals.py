"""Column-scale integrals.

Functions
---------
effective_hydraulic_conductivity
    Harmonic mean of the nodal conductivity.
water_volume
    Water stored in the domain.
"""

from __future__ import annotations

from typing import Any

import numpy as np

from pybioclog.simulation import fields as F


def effective_hydraulic_conductivity(conductivity: np.ndarray) -> float:
    """Harmonic mean of nodal conductivities.

    For a layered column in series flow this is the equivalent
    conductivity.  Returns 0 if any node is fully clogged.
    """
    conductivity = np.asarray(conductivity, dtype=float)
    if conductivity.size == 0:
        raise ValueError("No conductivity values given.")
    if np.any(conductivity <= 0.0):
        return 0.0
    return float(conductivity.size / np.sum(1.0 / conductivity))


def water_volume(space: Any, fields: F.FieldSet, level: str = "new") -> float:
    """∫ θ over the domain."""
    return space.integrate(getattr(fields[F.MOISTURE_TOTAL], level))
