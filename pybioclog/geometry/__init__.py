"""Geometry: meshes, vertex incidence and 1-D adaptation."""

from pybioclog.geometry.mesh import BOTTOM_MARKER, TOP_MARKER, Mesh, import_mesh
from pybioclog.geometry.incidence import VertexIncidence
from pybioclog.geometry.refinement import MeshAdapter

__all__ = [
    "BOTTOM_MARKER",
    "TOP_MARKER",
    "Mesh",
    "import_mesh",
    "VertexIncidence",
    "MeshAdapter",
]
