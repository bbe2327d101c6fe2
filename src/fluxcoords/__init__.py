"""
fluxcoords: metric, Jacobian and Christoffel geometry of structured
curvilinear meshes, with the differential operators built on it.
"""

from .config import GeometryOptions
from .errors import (
    GeometryError,
    MetricValidationError,
    SingularMetricError,
    SpacingError,
    GuardCellError,
    FieldLocationError,
)
from .logging_config import setup_logging
from .mesh import CellLoc, Region, Field2D, Field3D, FieldPerp, Mesh, StructuredMesh, BoundaryRegion
from .geometry import (
    Coordinates,
    get_coordinates,
    get_coordinates_staggered,
    get_coordinates_xycorner,
)
from .operators import LaplacePerpInversion
from .io import Datafile

__version__ = "0.1.0"

__all__ = [
    'GeometryOptions',
    'GeometryError', 'MetricValidationError', 'SingularMetricError', 'SpacingError',
    'GuardCellError', 'FieldLocationError',
    'setup_logging',
    'CellLoc', 'Region', 'Field2D', 'Field3D', 'FieldPerp', 'Mesh', 'StructuredMesh', 'BoundaryRegion',
    'Coordinates', 'get_coordinates', 'get_coordinates_staggered', 'get_coordinates_xycorner',
    'LaplacePerpInversion',
    'Datafile',
]
