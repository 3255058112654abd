"""Materials: hydraulic properties and biomass kinetics."""

from pybioclog.materials.hydraulics import (
    HydraulicModel,
    HydraulicProperties,
    RelativePermeabilityModel,
)
from pybioclog.materials.kinetics import MonodKinetics

__all__ = [
    "HydraulicModel",
    "HydraulicProperties",
    "RelativePermeabilityModel",
    "MonodKinetics",
]
