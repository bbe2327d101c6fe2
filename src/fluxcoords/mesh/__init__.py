from .field import CellLoc, Region, Field, Field2D, Field3D, FieldPerp, STAGGERED_LOCATIONS
from .mesh import Mesh, StructuredMesh, BoundaryRegion
from .interpolation import interp_to

__all__ = [
    'CellLoc', 'Region', 'Field', 'Field2D', 'Field3D', 'FieldPerp', 'STAGGERED_LOCATIONS',
    'Mesh', 'StructuredMesh', 'BoundaryRegion', 'interp_to',
]
