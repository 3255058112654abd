"""
pybioclog: Coupled unsaturated flow and substrate transport in porous
media with biologically driven clogging.

Subpackages
-----------
core
    Configuration and error types.
geometry
    Column and square meshes, vertex incidence, 1-D adaptation.
fem
    P1 function spaces and quadrature.
materials
    Hydraulic properties and biomass kinetics.
boundaries
    Boundary condition specification and elimination.
physics
    Richards' equation and SUPG substrate transport.
coupling
    Picard iteration of flow and transport.
solvers
    Preconditioned Krylov solvers.
time
    θ-scheme and adaptive time-step control.
simulation
    Fields, phases, balance and the time-loop driver.
postprocess
    Result files, summary table, restart snapshots.
visualization
    Column profiles and conductivity history plots.
"""

from pybioclog import (
    core,
    geometry,
    fem,
    materials,
    boundaries,
    time,
    solvers,
    simulation,
    physics,
    coupling,
    postprocess,
    visualization,
)
from pybioclog.core.config import Parameters, load_parameters
from pybioclog.simulation.driver import SimulationDriver

__version__ = "0.1.0"

__all__ = [
    "core",
    "geometry",
    "fem",
    "materials",
    "boundaries",
    "time",
    "solvers",
    "simulation",
    "physics",
    "coupling",
    "postprocess",
    "visualization",
    "Parameters",
    "load_parameters",
    "SimulationDriver",
]
