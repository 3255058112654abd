"""Restart snapshots of the primary fields.

A snapshot named after a regime (``dry``, ``saturated`` or ``final``)
holds three ``.npy`` files::

    state_{regime}_pressure.npy
    state_{regime}_substrate.npy
    state_{regime}_bacteria.npy

Values are stored in the internal units of the run (mg/cm³ for
substrate and biomass).
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from pybioclog.core.exceptions import ConfigError, ErrorContext, StateIOError
from pybioclog.simulation import fields as F

logger = logging.getLogger(__name__)

REGIMES = ("dry", "saturated", "final")
_FILES = {
    "pressure": F.PRESSURE,
    "substrate": F.SUBSTRATE,
    "bacteria": F.BIOMASS,
}


def state_path(directory: str | Path, regime: str, quantity: str) -> Path:
    if regime not in REGIMES:
        raise ConfigError(f"Unknown restart regime {regime!r}; expected one of {REGIMES}.")
    return Path(directory) / f"state_{regime}_{quantity}.npy"


def save_state(directory: str | Path, regime: str, fields: F.FieldSet) -> list[Path]:
    """Write the current pressure, substrate and biomass of *fields*.

    Raises:
        StateIOError: If a file cannot be written.
    """
    directory = Path(directory)
    paths = []
    try:
        directory.mkdir(parents=True, exist_ok=True)
        for quantity, name in _FILES.items():
            path = state_path(directory, regime, quantity)
            np.save(path, fields[name].new)
            paths.append(path)
    except OSError as exc:
        raise StateIOError(
            f"Cannot write restart state {regime!r}: {exc}",
            ErrorContext(component="restart", operation="save", details={"directory": str(directory)}),
        ) from exc
    logger.info("Saved restart state %r to %s", regime, directory)
    return paths


def load_state(directory: str | Path, regime: str, n_dofs: int) -> dict[str, np.ndarray]:
    """Read a snapshot.

    Args:
        directory: Directory holding the snapshot files.
        regime: Snapshot name.
        n_dofs: Expected number of values per field.

    Returns:
        Arrays keyed by field name (pressure, substrate, biomass).

    Raises:
        StateIOError: If a file is missing, unreadable or has the wrong
            size for the mesh.
    """
    state = {}
    for quantity, name in _FILES.items():
        path = state_path(directory, regime, quantity)
        context = ErrorContext(component="restart", operation="load", details={"path": str(path)})
        try:
            values = np.load(path, allow_pickle=False)
        except FileNotFoundError as exc:
            raise StateIOError(f"Restart file not found: {path}", context) from exc
        except (OSError, ValueError) as exc:
            raise StateIOError(f"Cannot read restart file {path}: {exc}", context) from exc
        values = np.asarray(values, dtype=float).ravel()
        if values.shape != (n_dofs,):
            context.details["expected"] = n_dofs
            context.details["found"] = values.size
            raise StateIOError(
                f"Restart file {path} does not match the mesh.", context
            )
        state[name] = values
    logger.info("Loaded restart state %r from %s", regime, directory)
    return state
