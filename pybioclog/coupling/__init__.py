"""Coupling of flow and transport."""

from pybioclog.coupling.picard import CoupledPicardSolver, PicardReport, PicardStage

__all__ = ["CoupledPicardSolver", "PicardReport", "PicardStage"]
