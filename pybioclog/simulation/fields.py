"""Nodal fields with an old and a new time level.

Classes
-------
FieldPair
    Old/new arrays of one quantity with an atomic commit.
FieldSet
    Named collection of pairs sharing the degree-of-freedom count.
"""

from __future__ import annotations

from typing import Callable, Iterator

import numpy as np

# Quantities carried through a run
PRESSURE = "pressure"
SUBSTRATE = "substrate"
BIOMASS = "biomass"
BIOMASS_FRACTION = "biomass_fraction"
CONDUCTIVITY = "hydraulic_conductivity"
MOISTURE_TOTAL = "moisture_content_total"
MOISTURE_FREE = "moisture_content_free"
CAPACITY = "specific_moisture_capacity"

FIELD_NAMES = (
    PRESSURE,
    SUBSTRATE,
    BIOMASS,
    BIOMASS_FRACTION,
    CONDUCTIVITY,
    MOISTURE_TOTAL,
    MOISTURE_FREE,
    CAPACITY,
)


class FieldPair:
    """Old and new values of one nodal quantity.

    ``old`` holds the last committed time level and is only replaced by
    :meth:`commit`, or by :meth:`set_levels` for quantities recomputed
    from other fields.  ``new`` holds the current iterate.

    Args:
        values: Initial values, used for both levels.
    """

    def __init__(self, values: np.ndarray) -> None:
        values = np.asarray(values, dtype=float)
        self.old = values.copy()
        self.new = values.copy()

    @property
    def size(self) -> int:
        return len(self.new)

    def set(self, values: np.ndarray) -> None:
        """Replace the current iterate."""
        values = np.asarray(values, dtype=float)
        if values.shape != self.new.shape:
            raise ValueError(
                f"Cannot assign {values.shape} values to a field of shape {self.new.shape}."
            )
        self.new = values.copy()

    def reset(self, values: np.ndarray) -> None:
        """Set both time levels."""
        self.set(values)
        self.old = self.new.copy()

    def set_levels(self, old: np.ndarray, new: np.ndarray) -> None:
        """Replace both levels of a quantity derived from other fields."""
        self.set(new)
        self.old = np.asarray(old, dtype=float).copy()

    def commit(self) -> None:
        """Make the current iterate the old time level."""
        self.old = self.new.copy()

    def __repr__(self) -> str:
        return f"FieldPair(size={self.size})"


class FieldSet:
    """Collection of :class:`FieldPair` objects of equal size.

    Args:
        n_dofs: Number of degrees of freedom.
        names: Quantities to create, initialised to zero.
    """

    def __init__(self, n_dofs: int, names: tuple[str, ...] = FIELD_NAMES) -> None:
        self.n_dofs = n_dofs
        self._pairs: dict[str, FieldPair] = {name: FieldPair(np.zeros(n_dofs)) for name in names}

    def __getitem__(self, name: str) -> FieldPair:
        return self._pairs[name]

    def __contains__(self, name: str) -> bool:
        return name in self._pairs

    def __iter__(self) -> Iterator[str]:
        return iter(self._pairs)

    def names(self) -> list[str]:
        return list(self._pairs)

    def commit_all(self) -> None:
        """Commit every pair at the end of a time step."""
        for pair in self._pairs.values():
            pair.commit()

    def new_values(self) -> dict[str, np.ndarray]:
        """Copies of the current iterates, keyed by name."""
        return {name: pair.new.copy() for name, pair in self._pairs.items()}

    def transfer(self, mapping: Callable[[np.ndarray], np.ndarray], n_dofs: int) -> None:
        """Map every field onto a new degree-of-freedom set.

        All mapped arrays are computed before any pair is replaced, so a
        failing mapping leaves the set untouched.

        Args:
            mapping: Function from an old nodal array to a new one.
            n_dofs: Size of the new arrays.
        """
        mapped = {}
        for name, pair in self._pairs.items():
            old = np.asarray(mapping(pair.old), dtype=float)
            new = np.asarray(mapping(pair.new), dtype=float)
            if old.shape != (n_dofs,) or new.shape != (n_dofs,):
                raise ValueError(
                    f"Transfer of {name!r} produced {new.shape}, expected ({n_dofs},)."
                )
            mapped[name] = (old, new)
        for name, (old, new) in mapped.items():
            pair = FieldPair(new)
            pair.old = old
            self._pairs[name] = pair
        self.n_dofs = n_dofs

    def check_sizes(self) -> None:
        """Raise if any pair does not match the degree-of-freedom count."""
        for name, pair in self._pairs.items():
            if pair.old.shape != (self.n_dofs,) or pair.new.shape != (self.n_dofs,):
                raise ValueError(
                    f"Field {name!r} has sizes {pair.old.shape}/{pair.new.shape}, "
                    f"expected ({self.n_dofs},)."
                )

    def __repr__(self) -> str:
        return f"FieldSet(n_dofs={self.n_dofs}, fields={self.names()})"
